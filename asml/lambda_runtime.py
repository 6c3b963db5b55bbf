"""A client for the AWS Lambda runtime API."""

from __future__ import annotations

import os
import urllib.error
import urllib.request
from dataclasses import dataclass

_API_VERSION = "2018-06-01"
_REQUEST_ID_HEADER = "Lambda-Runtime-Aws-Request-Id"


class LambdaRuntimeError(Exception):
    """Raised when the runtime API cannot be reached or answers badly."""


@dataclass(frozen=True)
class AwsLambdaEvent:
    request_id: str
    event_body: str


class AwsLambdaRuntime:
    """Fetches invocations from, and posts responses to, the runtime API.

    The endpoint defaults to the ``AWS_LAMBDA_RUNTIME_API`` environment variable.
    """

    def __init__(self, api_endpoint: str | None = None) -> None:
        if api_endpoint is None:
            api_endpoint = os.environ.get("AWS_LAMBDA_RUNTIME_API")
            if api_endpoint is None:
                raise LambdaRuntimeError("AWS_LAMBDA_RUNTIME_API is not set")
        self.api_endpoint = api_endpoint

    def _url(self, suffix: str) -> str:
        return f"http://{self.api_endpoint}/{_API_VERSION}/runtime/invocation/{suffix}"

    def _open(self, request: urllib.request.Request):
        try:
            return urllib.request.urlopen(request)
        except urllib.error.HTTPError as exc:
            return exc
        except urllib.error.URLError as exc:
            raise LambdaRuntimeError(str(exc.reason)) from exc
        except OSError as exc:
            raise LambdaRuntimeError(str(exc)) from exc

    def get_next_event(self) -> AwsLambdaEvent:
        """Wait for and return the next invocation."""
        with self._open(urllib.request.Request(self._url("next"))) as response:
            request_id = response.headers.get(_REQUEST_ID_HEADER)
            if request_id is None:
                raise LambdaRuntimeError(f'missing header "{_REQUEST_ID_HEADER}"')
            body = response.read().decode("utf-8")
        return AwsLambdaEvent(request_id=request_id, event_body=body)

    def respond(self, request_id: str, response: str) -> None:
        """Post the function's ``response`` for the invocation ``request_id``."""
        request = urllib.request.Request(
            self._url(f"{request_id}/response"),
            data=response.encode("utf-8"),
            method="POST",
        )
        with self._open(request):
            pass