from dataclasses import dataclass, field
from typing import Dict

from .retry import RetryPolicy


DEFAULT_PROXY_TIMEOUT = 10

# urllib3 transport
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_READ_TIMEOUT = 30.0
DEFAULT_NUM_POOLS = 8
DEFAULT_MAX_CONNECTIONS = 16
MAX_REDIRECTS = 10


@dataclass(frozen=True)
class DirectConfig:
    ja3: str = ""
    additional_headers: Dict[str, str] = field(default_factory=dict)
    default_timeout: int = 0
    retry: RetryPolicy = field(default_factory=RetryPolicy)


@dataclass(frozen=True)
class RemoteConfig:
    function: str
    region: str = ""
