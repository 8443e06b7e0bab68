# Copyright (C) 2025, Ionic.

# This program is licensed under the Apache License 2.0.
# See LICENSE or go to <https://www.apache.org/licenses/LICENSE-2.0> for full license details.


"""Decodes 2xx response bodies into a single value or a stream of values."""

from __future__ import annotations
import asyncio
from enum import Enum
from typing import Any, Awaitable, Generic, Optional, Protocol, TypeVar, Union

import aiohttp
import msgspec
from loguru import logger

from ionic_tezos_client.coders.stream_coder import JSONStreamSplitter
from ionic_tezos_client.coders.variant_coder import dec_hook
from ionic_tezos_client.errors import DecodeError

T = TypeVar("T")

_CANCELLED = object()


class DispatchOutcome(Enum):
    COMPLETED = "completed"
    """Single value decoded, or the stream reached end of body"""

    CANCELLED = "cancelled"
    """The caller's cancellation event fired before the stream ended"""


class Sink(Protocol[T]):
    async def put(self, item: T) -> None:
        ...


class Slot(Generic[T]):
    """Destination for exactly one decoded JSON value."""

    def __init__(self, value_type: Any):
        self.value_type = value_type
        self.decoder = msgspec.json.Decoder(value_type, dec_hook=dec_hook)
        self.value: Optional[T] = None
        self.filled = False


class StreamSink(Generic[T]):
    """Destination for a stream of JSON values of one element type.

    The sink (usually an `asyncio.Queue`) belongs to the caller: values are
    only ever put into it, it is never closed here.
    """

    def __init__(self, value_type: Any, sink: Sink[T], cancel: Optional[asyncio.Event] = None):
        self.value_type = value_type
        self.sink = sink
        self.cancel = cancel


Destination = Union[Slot, StreamSink, None]


async def _race(aw: Awaitable, cancel: Optional[asyncio.Event]) -> Any:
    """Awaits `aw` unless `cancel` fires first.

    Cancellation wins when both are ready at the same time.
    """
    if cancel is None:
        return await aw

    task = asyncio.ensure_future(aw)
    if cancel.is_set():
        task.cancel()
        return _CANCELLED

    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait((task, waiter), return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()

    if cancel.is_set():
        if task.done() and not task.cancelled() and task.exception() is not None:
            logger.debug(f"Discarding failed read after cancellation: {task.exception()!r}")
        return _CANCELLED
    return task.result()


class ResponseStream(Generic[T]):
    """Pull-based iterator over the JSON values of a streaming response body.

    Iteration ends at end of body, or early when `cancel` fires; in the latter
    case `cancelled` is True. The response is closed on every exit path.
    """

    def __init__(self, response: aiohttp.ClientResponse, value_type: Any, cancel: Optional[asyncio.Event] = None):
        self.response = response
        self.cancel = cancel
        self.cancelled = False
        self.delivered = 0
        self._decoder = msgspec.json.Decoder(value_type, dec_hook=dec_hook)
        self._splitter = JSONStreamSplitter()
        self._ready: list[bytes] = []
        self._eof = False
        self._closed = False

    def __aiter__(self) -> ResponseStream[T]:
        return self

    async def __anext__(self) -> T:
        if self._closed:
            raise StopAsyncIteration

        try:
            while not self._ready:
                if self._eof:
                    self._finish()
                    raise StopAsyncIteration

                chunk = await _race(self.response.content.readany(), self.cancel)
                if chunk is _CANCELLED:
                    self._abort()
                    raise StopAsyncIteration

                if chunk:
                    self._ready.extend(self._splitter.feed(chunk))
                else:
                    self._eof = True
                    self._ready.extend(self._splitter.close())

            if self.cancel is not None and self.cancel.is_set():
                self._abort()
                raise StopAsyncIteration

            value = self._decode(self._ready.pop(0))
        except (DecodeError, aiohttp.ClientError, asyncio.CancelledError):
            self._close()
            raise

        self.delivered += 1
        return value

    async def aclose(self) -> None:
        """Stops reading and closes the response."""
        self._close()

    def _decode(self, data: bytes) -> T:
        try:
            return self._decoder.decode(data)
        except msgspec.MsgspecError as e:
            raise DecodeError(
                f"tezos: error decoding stream element {self.delivered}: {e}",
                index=self.delivered,
            ) from e

    def _abort(self) -> None:
        self.cancelled = True
        logger.warning(f"Stream from {self.response.url} cancelled after {self.delivered} elements")
        self._close()

    def _finish(self) -> None:
        logger.debug(f"Stream from {self.response.url} ended after {self.delivered} elements")
        self._closed = True
        self.response.release()

    def _close(self) -> None:
        if not self._closed:
            self._closed = True
            self.response.close()


async def dispatch(response: aiohttp.ClientResponse, destination: Destination) -> DispatchOutcome:
    """Decodes a 2xx response body into `destination`.

    Args:
        response: Open response; it is released or closed before returning
        destination: `Slot` for one value, `StreamSink` for a stream, None to discard the body

    Returns:
        COMPLETED, or CANCELLED when a stream was stopped by its cancellation event

    Raises:
        DecodeError: If the body does not decode into the destination type
    """
    if isinstance(destination, StreamSink):
        return await _dispatch_stream(response, destination)

    try:
        body = await response.read()
    finally:
        response.release()

    if destination is None:
        return DispatchOutcome.COMPLETED

    if not body.strip():
        raise DecodeError(
            "tezos: error decoding response: empty body",
            status_code=response.status,
            body=body,
        )

    try:
        destination.value = destination.decoder.decode(body)
    except msgspec.MsgspecError as e:
        raise DecodeError(
            f"tezos: error decoding response: {e}",
            status_code=response.status,
            body=body,
        ) from e

    destination.filled = True
    return DispatchOutcome.COMPLETED


async def _dispatch_stream(response: aiohttp.ClientResponse, destination: StreamSink) -> DispatchOutcome:
    stream = ResponseStream(response, destination.value_type, destination.cancel)
    try:
        async for value in stream:
            delivered = await _race(destination.sink.put(value), destination.cancel)
            if delivered is _CANCELLED:
                stream.cancelled = True
                logger.warning(f"Delivery from {response.url} cancelled after {stream.delivered - 1} elements")
                break
    finally:
        await stream.aclose()

    if stream.cancelled:
        return DispatchOutcome.CANCELLED

    logger.success(f"Stream from {response.url} completed with {stream.delivered} elements")
    return DispatchOutcome.COMPLETED
