from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Protocol, Union

from .errors import InvalidRequestError


HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")

ProxyResolver = Callable[[str], str]


def no_proxy(url: str) -> str:
    return ""


@dataclass(frozen=True)
class RequestDescriptor:
    method: str
    url: str
    query_params: Dict[str, str] = field(default_factory=dict)
    payload: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: int = 0
    ja3_fingerprint: str = ""
    skip_redirects: bool = False
    hex_encoded_response: bool = False

    def __post_init__(self) -> None:
        method = (self.method or "").upper()
        if method not in HTTP_METHODS:
            raise InvalidRequestError(f"unsupported HTTP method: {self.method!r}")
        object.__setattr__(self, "method", method)


@dataclass(frozen=True)
class RequestResponse:
    status_code: int
    body: bytes
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TransportOptions:
    body: bytes = b""
    ja3: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: int = 0
    disable_redirect: bool = False
    proxy: str = ""
    user_agent: str = ""


@dataclass(frozen=True)
class TransportResponse:
    status: int
    body: Union[bytes, str]
    headers: Mapping[str, Union[str, List[str]]] = field(default_factory=dict)


class Dispatcher(Protocol):
    def do(self, descriptor: RequestDescriptor) -> RequestResponse: ...


class Transport(Protocol):
    def execute(self, url: str, options: TransportOptions, method: str) -> TransportResponse: ...


class RemoteInvoker(Protocol):
    def invoke(self, function: str, payload: bytes) -> bytes: ...
