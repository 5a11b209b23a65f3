from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Hashable, Iterator, List, Optional, Union

import httpx

from .tracker import CallTracker
from .types import FailureInfo, Headers, RequestInfo, ResponseInfo, header_value

logger = logging.getLogger(__name__)

DEFAULT_MAX_CAPTURE_BYTES = 1024 * 1024

TEXT_MIME_TYPES = {
    "application/json",
    "application/xml",
    "application/javascript",
    "application/x-www-form-urlencoded",
    "application/graphql",
}


def _mime_and_charset(headers: Optional[Headers]) -> tuple[str, Optional[str]]:
    raw = header_value(headers, "content-type") or ""
    mime, _, params = raw.partition(";")
    charset = None
    for param in params.split(";"):
        name, _, value = param.partition("=")
        if name.strip().lower() == "charset" and value.strip():
            charset = value.strip().strip('"')
    return mime.strip().lower(), charset


def is_textual(headers: Optional[Headers]) -> bool:
    encoding = (header_value(headers, "content-encoding") or "identity").strip().lower()
    if encoding not in ("", "identity"):
        return False
    mime, _ = _mime_and_charset(headers)
    return (
        mime.startswith("text/")
        or mime in TEXT_MIME_TYPES
        or mime.endswith("+json")
        or mime.endswith("+xml")
    )


def decode_body(content: Optional[bytes], headers: Optional[Headers]) -> Union[str, bytes, None]:
    """Text bodies come back as str, everything else is left as bytes."""
    if content is None or not is_textual(headers):
        return content
    _, charset = _mime_and_charset(headers)
    try:
        return content.decode(charset or "utf-8", errors="replace")
    except LookupError:
        return content.decode("utf-8", errors="replace")


def request_info(request: httpx.Request, correlation_key: Hashable) -> RequestInfo:
    try:
        content: Optional[bytes] = request.content
    except httpx.RequestNotRead:
        content = None
    return RequestInfo(
        correlation_key=correlation_key,
        url=str(request.url),
        method=request.method,
        headers=request.headers,
        body=decode_body(content, request.headers),
    )


def response_info(response: httpx.Response, content: Optional[bytes] = None) -> ResponseInfo:
    return ResponseInfo(
        status_code=response.status_code,
        headers=response.headers,
        body=decode_body(content, response.headers),
    )


def failure_info(exc: BaseException, partial: Optional[ResponseInfo] = None) -> FailureInfo:
    if partial is None:
        attached = getattr(exc, "response", None)
        if isinstance(attached, httpx.Response):
            partial = response_info(attached)
    return FailureInfo(error=exc, response=partial)


class _Meter:
    """
    Collects a response body as it streams and completes the tracked call.

    Only textual bodies are buffered, and only up to max_capture_bytes. Past
    that the buffer is dropped and the estimator sees no body.
    """

    def __init__(
        self,
        tracker: CallTracker,
        key: Hashable,
        response: httpx.Response,
        max_capture_bytes: int = DEFAULT_MAX_CAPTURE_BYTES,
    ) -> None:
        self._tracker = tracker
        self._key = key
        self._response = response
        self._max_capture_bytes = max_capture_bytes
        self._capture = is_textual(response.headers)
        self._chunks: List[bytes] = []
        self._captured = 0
        self._done = False

    @property
    def captured_bytes(self) -> int:
        return self._captured

    def feed(self, chunk: bytes) -> None:
        if not self._capture:
            return
        if self._captured + len(chunk) > self._max_capture_bytes:
            logger.debug(
                "Response body for key %r exceeds %d bytes, not estimating",
                self._key,
                self._max_capture_bytes,
            )
            self._capture = False
            self._chunks = []
            self._captured = 0
            return
        self._chunks.append(chunk)
        self._captured += len(chunk)

    def _body(self) -> Optional[bytes]:
        return b"".join(self._chunks) if self._capture else None

    def complete(self) -> None:
        if self._done:
            return
        self._done = True
        try:
            info = response_info(self._response, self._body())
        except Exception:
            logger.debug("Could not describe response for key %r", self._key, exc_info=True)
            info = ResponseInfo(status_code=self._response.status_code)
        self._tracker.on_response_success(info, self._key)

    def fail(self, exc: BaseException) -> None:
        if self._done:
            return
        self._done = True
        try:
            partial: Optional[ResponseInfo] = response_info(self._response, self._body())
        except Exception:
            logger.debug("Could not describe partial response for key %r", self._key, exc_info=True)
            partial = None
        self._tracker.on_request_failure(failure_info(exc, partial), self._key)

    def cancel(self) -> None:
        if self._done:
            return
        self._done = True
        self._tracker.cancel(self._key)


class _MeteredStream(httpx.SyncByteStream):
    def __init__(self, stream: httpx.SyncByteStream, meter: _Meter) -> None:
        self._stream = stream
        self._meter = meter

    def __iter__(self) -> Iterator[bytes]:
        try:
            for chunk in self._stream:
                self._meter.feed(chunk)
                yield chunk
        except Exception as exc:
            self._meter.fail(exc)
            raise

    def close(self) -> None:
        try:
            self._stream.close()
        finally:
            self._meter.complete()


class _AsyncMeteredStream(httpx.AsyncByteStream):
    def __init__(self, stream: httpx.AsyncByteStream, meter: _Meter) -> None:
        self._stream = stream
        self._meter = meter

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._stream:
                self._meter.feed(chunk)
                yield chunk
        except asyncio.CancelledError:
            self._meter.cancel()
            raise
        except Exception as exc:
            self._meter.fail(exc)
            raise

    async def aclose(self) -> None:
        try:
            await self._stream.aclose()
        finally:
            self._meter.complete()


def _rewrap(
    response: httpx.Response,
    stream: Union[httpx.SyncByteStream, httpx.AsyncByteStream],
) -> httpx.Response:
    return httpx.Response(
        status_code=response.status_code,
        headers=response.headers,
        stream=stream,
        extensions=response.extensions,
    )


class _TrackingMixin:
    _tracker: CallTracker
    _max_capture_bytes: int

    def _begin(self, request: httpx.Request) -> Hashable:
        key = self._tracker.new_key()
        try:
            info = request_info(request, key)
        except Exception:
            logger.debug("Could not describe request to %s", request.url, exc_info=True)
            return key
        self._tracker.on_request_start(info)
        return key

    def _fallback(self, response: httpx.Response, key: Hashable) -> httpx.Response:
        logger.debug("Reporting unmetered response for key %r", key)
        self._tracker.on_response_success(
            ResponseInfo(status_code=response.status_code, headers=response.headers), key
        )
        return response

    def _meter(self, response: httpx.Response, key: Hashable) -> _Meter:
        return _Meter(self._tracker, key, response, self._max_capture_bytes)


class InstrumentedTransport(_TrackingMixin, httpx.BaseTransport):
    """
    Wraps another httpx transport and reports every call to a CallTracker.

    The call is completed when the response body has been fully received and
    the response closed, so duration includes body download.
    """

    def __init__(
        self,
        tracker: CallTracker,
        transport: Optional[httpx.BaseTransport] = None,
        *,
        max_capture_bytes: int = DEFAULT_MAX_CAPTURE_BYTES,
    ) -> None:
        if max_capture_bytes < 0:
            raise ValueError("max_capture_bytes must not be negative")
        self._tracker = tracker
        self._transport = transport if transport is not None else httpx.HTTPTransport()
        self._max_capture_bytes = max_capture_bytes

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        key = self._begin(request)
        try:
            response = self._transport.handle_request(request)
        except Exception as exc:
            self._tracker.on_request_failure(failure_info(exc), key)
            raise

        if not isinstance(response.stream, httpx.SyncByteStream):
            return self._fallback(response, key)
        try:
            return _rewrap(response, _MeteredStream(response.stream, self._meter(response, key)))
        except Exception:
            logger.debug("Could not meter response stream for key %r", key, exc_info=True)
            return self._fallback(response, key)

    def close(self) -> None:
        self._transport.close()


class AsyncInstrumentedTransport(_TrackingMixin, httpx.AsyncBaseTransport):
    """Async counterpart of InstrumentedTransport. Task cancellation drops the call."""

    def __init__(
        self,
        tracker: CallTracker,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        *,
        max_capture_bytes: int = DEFAULT_MAX_CAPTURE_BYTES,
    ) -> None:
        if max_capture_bytes < 0:
            raise ValueError("max_capture_bytes must not be negative")
        self._tracker = tracker
        self._transport = transport if transport is not None else httpx.AsyncHTTPTransport()
        self._max_capture_bytes = max_capture_bytes

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        key = self._begin(request)
        try:
            response = await self._transport.handle_async_request(request)
        except asyncio.CancelledError:
            self._tracker.cancel(key)
            raise
        except Exception as exc:
            self._tracker.on_request_failure(failure_info(exc), key)
            raise

        if not isinstance(response.stream, httpx.AsyncByteStream):
            return self._fallback(response, key)
        try:
            return _rewrap(response, _AsyncMeteredStream(response.stream, self._meter(response, key)))
        except Exception:
            logger.debug("Could not meter response stream for key %r", key, exc_info=True)
            return self._fallback(response, key)

    async def aclose(self) -> None:
        await self._transport.aclose()
