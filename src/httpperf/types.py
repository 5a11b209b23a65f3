from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Hashable, Mapping, Optional
from urllib.parse import urlsplit

if TYPE_CHECKING:
    from .backends.base import HttpMetric


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    OPTIONS = "OPTIONS"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "HttpMethod":
        if not isinstance(value, str):
            return cls.UNKNOWN
        name = value.strip().upper()
        if name == "UNKNOWN":
            return cls.UNKNOWN
        return cls.__members__.get(name, cls.UNKNOWN)


def normalize_url(url: Any) -> str:
    """
    Reduce a URL to scheme://host/path.

    Query string, fragment, port and userinfo are dropped so that metrics
    aggregate across query variants. Raises ValueError when the URL has no
    scheme or host.
    """
    parts = urlsplit(str(url))
    host = parts.hostname
    if not parts.scheme or not host:
        raise ValueError(f"Cannot normalize URL without scheme and host: {url!r}")
    if ":" in host:
        host = f"[{host}]"
    return f"{parts.scheme.lower()}://{host}{parts.path}"


def strip_query(url: Any) -> str:
    text = str(url)
    for sep in ("#", "?"):
        text = text.split(sep, 1)[0]
    return text


Headers = Mapping[str, str]


def header_value(headers: Optional[Headers], name: str) -> Optional[str]:
    if not headers:
        return None
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


@dataclass(frozen=True)
class RequestInfo:
    correlation_key: Hashable
    url: str
    method: Optional[str] = None
    headers: Headers = field(default_factory=dict)
    body: Any = None


@dataclass(frozen=True)
class ResponseInfo:
    status_code: Optional[int] = None
    headers: Headers = field(default_factory=dict)
    body: Any = None
    content_type: Optional[str] = None

    def resolved_content_type(self) -> Optional[str]:
        return self.content_type or header_value(self.headers, "content-type")


@dataclass(frozen=True)
class FailureInfo:
    error: Optional[BaseException] = None
    response: Optional[ResponseInfo] = None


@dataclass
class PendingCall:
    correlation_key: Hashable
    route: str
    method: HttpMethod
    started_at: float
    tracked_at: float
    metric: "HttpMetric"
    request_payload_size: Optional[int] = None


@dataclass(frozen=True)
class CallOutcome:
    correlation_key: Hashable
    route: str
    method: HttpMethod
    started_at: float
    duration_ms: float
    request_payload_size: Optional[int] = None
    response_payload_size: Optional[int] = None
    response_content_type: Optional[str] = None
    status_code: Optional[int] = None
    error: Optional[str] = None
