# Copyright (C) 2025, Ionic.

# This program is licensed under the Apache License 2.0.
# See LICENSE or go to <https://www.apache.org/licenses/LICENSE-2.0> for full license details.


"""HTTP transport for the Tezos node RPC."""

import asyncio
from typing import Any, AsyncIterator, Optional

import aiohttp
import msgspec
from loguru import logger
from yarl import URL

from ionic_tezos_client.data_source.rpc.classifier import classify
from ionic_tezos_client.data_source.rpc.dispatcher import (
    Destination,
    DispatchOutcome,
    ResponseStream,
    Slot,
    StreamSink,
    dispatch,
)
from ionic_tezos_client.data_source.rpc.model import RPCRequest

LIBRARY_VERSION = "0.1.0"
USER_AGENT = f"ionic-tezos-client/{LIBRARY_VERSION}"
MEDIA_TYPE = "application/json"

DEFAULT_TIMEOUT = 30.0


class RPCClient:
    """Manages communication with a Tezos RPC server."""

    def __init__(
            self,
            base_url: str,
            timeout: float = DEFAULT_TIMEOUT,
            user_agent: str = USER_AGENT,
            session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initializes the client.

        Args:
            base_url: Node URL that request paths are resolved against
            timeout: Total time in seconds a single-value request may take
            user_agent: Value of the User-Agent header
            session: Externally owned session; one is created on `connect` otherwise
        """
        self.base_url = URL(base_url)
        self.user_agent = user_agent
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        # Streams stay open for as long as the node keeps sending
        self.stream_timeout = aiohttp.ClientTimeout(total=None, connect=timeout)
        self.session = session
        self._owns_session = session is None
        self.encoder = msgspec.json.Encoder()

    async def connect(self) -> None:
        """Opens the HTTP session."""
        if not self.session:
            self.session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        logger.info(f"Connected to Tezos RPC at {self.base_url}")

    async def disconnect(self) -> None:
        """Closes the HTTP session if this client created it."""
        if self.session and self._owns_session:
            await self.session.close()
            logger.info(f"Disconnected from Tezos RPC at {self.base_url}")
        self.session = None

    async def __aenter__(self) -> "RPCClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

    def new_request(self, method: str, path: str, body: Any = None) -> RPCRequest:
        """Creates a Tezos RPC request.

        Args:
            method: HTTP method
            path: Path, optionally with query, resolved against the base URL
            body: Value to send as JSON, if any

        Returns:
            The request description consumed by `get`
        """
        url = self.base_url.join(URL(path))

        payload = self.encoder.encode(body) if body is not None else None

        headers = {
            "Content-Type": MEDIA_TYPE,
            "Accept": MEDIA_TYPE,
            "User-Agent": self.user_agent,
        }
        return RPCRequest(method=method, url=str(url), headers=headers, body=payload)

    async def _execute(self, request: RPCRequest, streaming: bool = False) -> aiohttp.ClientResponse:
        if not self.session:
            raise RuntimeError("RPC client not connected")

        logger.debug(f"{request.method} {request.url}")
        return await self.session.request(
            request.method,
            request.url,
            data=request.body,
            headers=request.headers,
            timeout=self.stream_timeout if streaming else self.timeout,
        )

    @staticmethod
    async def _raise_for_status(response: aiohttp.ClientResponse) -> None:
        if response.status // 100 == 2:
            return

        try:
            body = await response.read()
        finally:
            response.release()

        error = classify(response.status, response.reason or "", response.headers.get("Content-Type"), body)
        if error is not None:
            raise error

    async def get(self, request: RPCRequest, destination: Destination = None) -> DispatchOutcome:
        """Executes the request and decodes the response into `destination`.

        Args:
            request: Request built by `new_request`
            destination: `Slot`, `StreamSink`, or None to discard the body

        Returns:
            COMPLETED, or CANCELLED for a stream stopped by its cancellation event

        Raises:
            HTTPStatusError: Non-2xx status, including its RPC subclasses
            DecodeError: Malformed body
            aiohttp.ClientError: Transport failure, passed through unchanged
        """
        response = await self._execute(request, streaming=isinstance(destination, StreamSink))
        await self._raise_for_status(response)
        return await dispatch(response, destination)

    async def fetch(self, request: RPCRequest, value_type: Any) -> Any:
        """Executes the request and returns the single decoded value."""
        slot = Slot(value_type)
        await self.get(request, slot)
        return slot.value

    async def stream(
            self,
            request: RPCRequest,
            value_type: Any,
            cancel: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[Any]:
        """Executes a streaming request and yields decoded values as they arrive.

        Iteration ends when the node closes the connection or `cancel` fires.
        """
        response = await self._execute(request, streaming=True)
        await self._raise_for_status(response)

        stream = ResponseStream(response, value_type, cancel)
        try:
            async for value in stream:
                yield value
        finally:
            await stream.aclose()
