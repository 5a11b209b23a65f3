"""
Payload size estimators.

The request/response bodies seen by the tracker are not always the bytes
that went over the wire, so sizes are approximated from what is available:
serialized headers plus the body's character length. Character count stands
in for byte count and multi-byte encodings are ignored. Pass your own
estimator to CallTracker if you need exact numbers.
"""
from __future__ import annotations

import json
from typing import Callable, Mapping, Optional

from .types import Headers, RequestInfo, ResponseInfo

RequestContentLength = Callable[[RequestInfo], Optional[int]]
ResponseContentLength = Callable[[ResponseInfo], Optional[int]]


def serialize_headers(headers: Optional[Headers]) -> str:
    if not headers:
        return ""
    return "".join(f"{name}: {value}\r\n" for name, value in headers.items())


def default_request_content_length(request: RequestInfo) -> Optional[int]:
    body = request.body
    if isinstance(body, str):
        text = body
    elif isinstance(body, (Mapping, list, tuple)):
        try:
            text = json.dumps(body)
        except (TypeError, ValueError):
            return None
    else:
        return None
    return len(serialize_headers(request.headers)) + len(text)


def default_response_content_length(response: ResponseInfo) -> Optional[int]:
    if not isinstance(response.body, str):
        return None
    return len(serialize_headers(response.headers)) + len(response.body)
