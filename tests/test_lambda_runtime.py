import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from asml.lambda_runtime import AwsLambdaEvent, AwsLambdaRuntime, LambdaRuntimeError


class _Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        state = self.server.state
        state["requests"].append(("GET", self.path, b""))
        body = state["event_body"].encode()
        self.send_response(200)
        if state["request_id"] is not None:
            self.send_header("Lambda-Runtime-Aws-Request-Id", state["request_id"])
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_POST(self):
        length = int(self.headers.get("Content-Length", "0"))
        body = self.rfile.read(length)
        self.server.state["requests"].append(("POST", self.path, body))
        self.send_response(202)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, format, *args):
        pass


@pytest.fixture
def server():
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    httpd.state = {"requests": [], "event_body": '{"k":"v"}', "request_id": "req-1"}
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    yield httpd
    httpd.shutdown()
    httpd.server_close()


def _endpoint(httpd):
    host, port = httpd.server_address[:2]
    return f"{host}:{port}"


def test_get_next_event(server):
    runtime = AwsLambdaRuntime(_endpoint(server))
    event = runtime.get_next_event()
    assert event == AwsLambdaEvent(request_id="req-1", event_body='{"k":"v"}')
    assert server.state["requests"] == [
        ("GET", "/2018-06-01/runtime/invocation/next", b"")
    ]


def test_missing_request_id_header(server):
    server.state["request_id"] = None
    runtime = AwsLambdaRuntime(_endpoint(server))
    with pytest.raises(LambdaRuntimeError, match="Lambda-Runtime-Aws-Request-Id"):
        runtime.get_next_event()


def test_respond_posts_body(server):
    runtime = AwsLambdaRuntime(_endpoint(server))
    runtime.respond("req-7", "OK")
    assert server.state["requests"] == [
        ("POST", "/2018-06-01/runtime/invocation/req-7/response", b"OK")
    ]


def test_unreachable_endpoint():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    runtime = AwsLambdaRuntime(f"127.0.0.1:{port}")
    with pytest.raises(LambdaRuntimeError):
        runtime.get_next_event()


def test_endpoint_from_environment(monkeypatch):
    monkeypatch.setenv("AWS_LAMBDA_RUNTIME_API", "localhost:9001")
    assert AwsLambdaRuntime().api_endpoint == "localhost:9001"


def test_missing_environment_variable(monkeypatch):
    monkeypatch.delenv("AWS_LAMBDA_RUNTIME_API", raising=False)
    with pytest.raises(LambdaRuntimeError):
        AwsLambdaRuntime()