"""API Gateway events and responses as seen by a Lambda function."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

AWS_EVENT_STRING_BUFFER_SIZE = 8192


class EventBufferError(ValueError):
    """Raised when no valid event can be read from the event buffer."""


def _string(data: Mapping, key: str) -> str:
    if key not in data:
        raise ValueError(f"missing field `{key}`")
    value = data[key]
    if not isinstance(value, str):
        raise ValueError(f"field `{key}`: expected a string")
    return value


def _string_map(value: Any, key: str) -> dict[str, str]:
    if not isinstance(value, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        raise ValueError(f"field `{key}`: expected a map of strings")
    return dict(value)


def _optional_map(data: Mapping, key: str) -> dict[str, str] | None:
    value = data.get(key)
    return None if value is None else _string_map(value, key)


@dataclass(frozen=True)
class ApiGatewayEvent:
    resource: str
    path: str
    http_method: str
    headers: dict[str, str]
    query_string_parameters: dict[str, str] | None = None
    path_parameters: dict[str, str] | None = None
    stage_variables: dict[str, str] | None = None
    body: str | None = None

    @classmethod
    def from_json(cls, data: str | bytes | Mapping[str, Any]) -> ApiGatewayEvent:
        """Build an event from its JSON text or decoded JSON object."""
        if isinstance(data, (str, bytes, bytearray)):
            data = json.loads(data)
        if not isinstance(data, Mapping):
            raise ValueError("expected a JSON object")
        if "headers" not in data:
            raise ValueError("missing field `headers`")
        body = data.get("body")
        if body is not None and not isinstance(body, str):
            raise ValueError("field `body`: expected a string")
        return cls(
            resource=_string(data, "resource"),
            path=_string(data, "path"),
            http_method=_string(data, "httpMethod"),
            headers=_string_map(data["headers"], "headers"),
            query_string_parameters=_optional_map(data, "queryStringParameters"),
            path_parameters=_optional_map(data, "pathParameters"),
            stage_variables=_optional_map(data, "stageVariables"),
            body=body,
        )


def read_event(buffer: bytes | bytearray) -> ApiGatewayEvent:
    """Parse the NUL-delimited event string in the event buffer."""
    start = next((i for i, b in enumerate(buffer) if b != 0), None)
    end = buffer.find(b"\0", start) if start is not None else -1
    if start is None or end == -1:
        raise EventBufferError("ERROR reading Lambda Event from buffer")
    try:
        return ApiGatewayEvent.from_json(bytes(buffer[start:end]))
    except ValueError as exc:
        raise EventBufferError(f"ERROR deserializing Lambda Event: {exc}") from exc


class ApiGatewayErrorCode(IntEnum):
    FUNCTION_ERROR = 520

    def __str__(self) -> str:
        return {ApiGatewayErrorCode.FUNCTION_ERROR: "Function Error"}[self]


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class ApiGatewayError:
    code: int
    desc: str
    message: str

    def to_json(self) -> str:
        return _dumps({"code": self.code, "desc": self.desc, "message": self.message})


@dataclass(frozen=True)
class ApiGatewayResponse:
    status_code: int
    body: str
    headers: dict[str, str] = field(default_factory=dict)
    is_base64_encoded: bool = False

    @classmethod
    def ok(cls, body: str, content_type: str | None = None) -> ApiGatewayResponse:
        return cls(
            status_code=200,
            body=body,
            headers={"content-type": content_type or "application/json"},
        )

    @classmethod
    def error(
        cls,
        message: str,
        code: ApiGatewayErrorCode = ApiGatewayErrorCode.FUNCTION_ERROR,
    ) -> ApiGatewayResponse:
        error = ApiGatewayError(code=int(code), desc=str(code), message=message)
        return cls(
            status_code=int(code),
            body=error.to_json(),
            headers={"content-type": "application/json"},
        )

    def to_json(self) -> str:
        return _dumps(
            {
                "isBase64Encoded": self.is_base64_encoded,
                "statusCode": self.status_code,
                "headers": self.headers,
                "body": self.body,
            }
        )


def http_ok(response: Any) -> str:
    """The serialized 200 response whose body is ``response`` as JSON."""
    return ApiGatewayResponse.ok(_dumps(response)).to_json()


def http_error(message: str) -> str:
    """The serialized function-error response carrying ``message``."""
    return ApiGatewayResponse.error(message, ApiGatewayErrorCode.FUNCTION_ERROR).to_json()