import base64
import json

import pytest

from dispatchlib.config import RemoteConfig
from dispatchlib.errors import DeserializationError, InvocationError, SerializationError
from dispatchlib.metrics import DispatchMetrics
from dispatchlib.remote import (
    LambdaClientInvoker,
    RemoteInvocationBackend,
    decode_body,
    encode_descriptor,
    wants_hex_body,
)
from dispatchlib.types import RequestDescriptor


class StubInvoker:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def invoke(self, function: str, payload: bytes) -> bytes:
        self.calls.append((function, payload))
        if self.error:
            raise self.error
        return self.result


def result(body, status=200, headers=None):
    return json.dumps({"statusCode": status, "body": body, "headers": headers or {}}).encode()


def backend(invoker, metrics=None):
    return RemoteInvocationBackend(invoker, RemoteConfig(function="fetcher", region="eu-west-1"), metrics=metrics)


def test_descriptor_encoding():
    desc = RequestDescriptor(
        "POST",
        "https://x.test/p",
        query_params={"a": "1"},
        payload=b"\x00raw",
        headers={"accept": "text/plain"},
        timeout=4,
        ja3_fingerprint="771",
        skip_redirects=True,
    )
    doc = json.loads(encode_descriptor(desc))
    assert doc == {
        "method": "POST",
        "url": "https://x.test/p",
        "queryParams": {"a": "1"},
        "payload": base64.b64encode(b"\x00raw").decode(),
        "headers": {"accept": "text/plain"},
        "timeout": 4,
        "ja3": "771",
        "skipRedirects": True,
        "hexEncodedResponse": False,
    }


def test_unencodable_descriptor():
    desc = RequestDescriptor("GET", "https://x.test/", headers={"X": object()})
    invoker = StubInvoker(result(""))
    with pytest.raises(SerializationError):
        backend(invoker).do(desc)
    assert invoker.calls == []


def test_invokes_named_function():
    invoker = StubInvoker(result("hi", status=202, headers={"Content-Type": "text/plain"}))
    b = backend(invoker)
    resp = b.do(RequestDescriptor("GET", "https://x.test/"))
    assert invoker.calls[0][0] == "fetcher"
    assert b.region == "eu-west-1"
    assert resp.status_code == 202
    assert resp.body == b"hi"
    assert resp.headers == {"Content-Type": "text/plain"}


def test_protobuf_accept_hex_decodes_body():
    invoker = StubInvoker(result("48656c6c6f"))
    resp = backend(invoker).do(RequestDescriptor("GET", "https://x.test/", headers={"accept": "application/x-protobuf"}))
    assert resp.body == b"Hello"


@pytest.mark.parametrize("headers", [{}, {"accept": "text/plain"}])
def test_other_accept_keeps_text(headers):
    invoker = StubInvoker(result("48656c6c6f"))
    resp = backend(invoker).do(RequestDescriptor("GET", "https://x.test/", headers=headers))
    assert resp.body == b"48656c6c6f"


def test_invalid_hex_falls_back_to_text():
    invoker = StubInvoker(result("not-hex!!"))
    resp = backend(invoker).do(RequestDescriptor("GET", "https://x.test/", headers={"accept": "application/x-protobuf"}))
    assert resp.body == b"not-hex!!"


def test_accept_header_case_and_decode_body():
    assert wants_hex_body({"Accept": "application/x-protobuf"})
    assert not wants_hex_body({"Accept": "application/json"})
    assert decode_body("00ff", True) == b"\x00\xff"
    assert decode_body("abc", True) == b"abc"
    assert decode_body("00ff", False) == b"00ff"


def test_invocation_failure():
    invoker = StubInvoker(error=RuntimeError("throttled"))
    with pytest.raises(InvocationError) as info:
        backend(invoker).do(RequestDescriptor("GET", "https://x.test/"))
    assert isinstance(info.value.__cause__, RuntimeError)


@pytest.mark.parametrize(
    "raw",
    [
        b"not json",
        b"[1, 2]",
        json.dumps({"body": "x"}).encode(),
        json.dumps({"statusCode": "200", "body": "x"}).encode(),
        json.dumps({"statusCode": 200, "body": 5}).encode(),
        json.dumps({"statusCode": 200, "body": "x", "headers": []}).encode(),
    ],
)
def test_malformed_result(raw):
    with pytest.raises(DeserializationError):
        backend(StubInvoker(raw)).do(RequestDescriptor("GET", "https://x.test/"))


def test_missing_body_and_headers_default_empty():
    resp = backend(StubInvoker(b'{"statusCode": 204}')).do(RequestDescriptor("DELETE", "https://x.test/"))
    assert resp.status_code == 204
    assert resp.body == b""
    assert resp.headers == {}


def test_metrics_recorded():
    metrics = DispatchMetrics()
    backend(StubInvoker(result("ok")), metrics).do(RequestDescriptor("GET", "https://x.test/"))
    with pytest.raises(DeserializationError):
        backend(StubInvoker(b"{"), metrics).do(RequestDescriptor("GET", "https://x.test/"))
    totals, _ = metrics.snapshot()
    assert totals.requests == 2
    assert totals.errors == 1


class FakeStream:
    def __init__(self, data):
        self.data = data

    def read(self):
        return self.data


class FakeLambdaClient:
    def __init__(self, response):
        self.response = response
        self.kwargs = None

    def invoke(self, **kwargs):
        self.kwargs = kwargs
        return self.response


def test_lambda_client_invoker():
    client = FakeLambdaClient({"StatusCode": 200, "Payload": FakeStream(result("ok"))})
    resp = backend(LambdaClientInvoker(client)).do(RequestDescriptor("GET", "https://x.test/"))
    assert resp.body == b"ok"
    assert client.kwargs["FunctionName"] == "fetcher"
    assert json.loads(client.kwargs["Payload"])["url"] == "https://x.test/"


def test_lambda_function_error():
    client = FakeLambdaClient({"StatusCode": 200, "FunctionError": "Unhandled", "Payload": FakeStream(b'{"errorMessage": "boom"}')})
    with pytest.raises(InvocationError):
        backend(LambdaClientInvoker(client)).do(RequestDescriptor("GET", "https://x.test/"))


def test_hex_flag_alone_keeps_text():
    invoker = StubInvoker(result("48656c6c6f"))
    desc = RequestDescriptor("GET", "https://x.test/", headers={"accept": "text/plain"}, hex_encoded_response=True)
    resp = backend(invoker).do(desc)
    assert resp.body == b"48656c6c6f"
    assert json.loads(invoker.calls[0][1])["hexEncodedResponse"] is True


@pytest.mark.parametrize("raw", [None, 42, object()])
def test_non_bytes_result_is_deserialization_error(raw):
    metrics = DispatchMetrics()
    with pytest.raises(DeserializationError):
        backend(StubInvoker(raw), metrics).do(RequestDescriptor("GET", "https://x.test/"))
    totals, _ = metrics.snapshot()
    assert totals.errors == 1


def test_null_header_values_dropped():
    raw = json.dumps({"statusCode": 200, "body": "", "headers": {"X-Empty": None, "X-One": "1"}}).encode()
    resp = backend(StubInvoker(raw)).do(RequestDescriptor("GET", "https://x.test/"))
    assert resp.headers == {"X-One": "1"}
