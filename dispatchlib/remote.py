"""Dispatch through a remote function.

The descriptor travels as a JSON document; the function answers with
``{"statusCode": int, "body": str, "headers": {str: str}}``. Binary bodies come
back hex-encoded and are decoded when the request asked for protobuf.
"""

import base64
import binascii
import json
import logging
import time
from typing import Any, Dict, Mapping, Optional, Tuple

from .config import RemoteConfig
from .errors import DeserializationError, DispatchError, InvocationError, SerializationError
from .metrics import DispatchMetrics
from .types import RemoteInvoker, RequestDescriptor, RequestResponse


logger = logging.getLogger(__name__)

PROTOBUF_CONTENT_TYPE = "application/x-protobuf"


def encode_descriptor(descriptor: RequestDescriptor) -> bytes:
    try:
        doc = {
            "method": descriptor.method,
            "url": descriptor.url,
            "queryParams": dict(descriptor.query_params),
            "payload": base64.b64encode(descriptor.payload).decode("ascii"),
            "headers": dict(descriptor.headers),
            "timeout": descriptor.timeout,
            "ja3": descriptor.ja3_fingerprint,
            "skipRedirects": descriptor.skip_redirects,
            "hexEncodedResponse": descriptor.hex_encoded_response,
        }
        return json.dumps(doc).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"cannot encode request for {descriptor.url}: {exc}") from exc


def decode_result(raw: bytes) -> Tuple[int, str, Dict[str, str]]:
    try:
        doc = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise DeserializationError(f"remote result is not valid JSON: {exc}") from exc
    if not isinstance(doc, dict):
        raise DeserializationError(f"remote result must be an object, got {type(doc).__name__}")
    status = doc.get("statusCode")
    if not isinstance(status, int) or isinstance(status, bool):
        raise DeserializationError(f"remote result has invalid statusCode: {status!r}")
    body = doc.get("body") or ""
    if not isinstance(body, str):
        raise DeserializationError(f"remote result body must be a string, got {type(body).__name__}")
    headers = doc.get("headers") or {}
    if not isinstance(headers, dict):
        raise DeserializationError("remote result headers must be an object")
    # null header values carry nothing
    return status, body, {str(k): str(v) for k, v in headers.items() if v is not None}


def wants_hex_body(headers: Mapping[str, str]) -> bool:
    for key, value in headers.items():
        if key.lower() == "accept":
            return value == PROTOBUF_CONTENT_TYPE
    return False


def decode_body(body: str, hex_encoded: bool) -> bytes:
    if hex_encoded:
        try:
            return binascii.unhexlify(body)
        except ValueError:
            # not hex after all, hand back the text
            logger.debug("Response body is not valid hex; using raw text")
    return body.encode("utf-8")


class RemoteInvocationBackend:
    def __init__(self, invoker: RemoteInvoker, config: RemoteConfig, metrics: Optional[DispatchMetrics] = None):
        self.invoker = invoker
        self.config = config
        self.metrics = metrics

    @property
    def function(self) -> str:
        return self.config.function

    @property
    def region(self) -> str:
        return self.config.region

    def do(self, descriptor: RequestDescriptor) -> RequestResponse:
        t0 = time.perf_counter()
        try:
            response = self._do(descriptor)
        except DispatchError:
            self._record(False, t0)
            raise
        self._record(True, t0)
        return response

    def _do(self, descriptor: RequestDescriptor) -> RequestResponse:
        payload = encode_descriptor(descriptor)
        logger.debug("Invoking %s (%s) for %s %s", self.function, self.region or "-", descriptor.method, descriptor.url)
        if self.metrics:
            self.metrics.record_attempt()
        try:
            raw = self.invoker.invoke(self.function, payload)
        except DispatchError:
            raise
        except Exception as exc:
            raise InvocationError(f"invoking {self.function} failed: {exc}") from exc
        status, body, headers = decode_result(raw)
        hex_encoded = wants_hex_body(descriptor.headers)
        return RequestResponse(status_code=status, body=decode_body(body, hex_encoded), headers=headers)

    def _record(self, ok: bool, t0: float) -> None:
        if self.metrics:
            self.metrics.record_request(ok, (time.perf_counter() - t0) * 1000.0)


class LambdaClientInvoker:
    """Adapts a Lambda-style client (``invoke(FunctionName=..., Payload=...)``)."""

    def __init__(self, client: Any):
        self.client = client

    def invoke(self, function: str, payload: bytes) -> bytes:
        result = self.client.invoke(FunctionName=function, Payload=payload)
        stream = result.get("Payload")
        data = stream.read() if stream is not None else b""
        if result.get("FunctionError"):
            raise InvocationError(f"{function} reported {result['FunctionError']}: {data[:200]!r}")
        return data
