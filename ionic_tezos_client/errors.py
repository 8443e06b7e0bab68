# Copyright (C) 2025, Ionic.

# This program is licensed under the Apache License 2.0.
# See LICENSE or go to <https://www.apache.org/licenses/LICENSE-2.0> for full license details.

"""Error taxonomy raised by the Tezos RPC client."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from aiohttp import ClientError

if TYPE_CHECKING:
    from ionic_tezos_client.data_source.rpc.model import RPCError

TransportError = ClientError
"""Connection-level failures come straight from aiohttp and are never reclassified."""


class TezosError(Exception):
    """Base class for every error produced by the client."""


class HTTPStatusError(TezosError):
    """Non-2xx response whose body was not interpreted."""

    def __init__(self, status_code: int, status: str = "", body: bytes = b""):
        super().__init__(status_code, status, body)
        self.status_code = status_code
        self.status = status
        self.body = body

    def __str__(self) -> str:
        return f"tezos: HTTP status {self.status_code}"


class RPCProtocolError(HTTPStatusError):
    """Failure reported by the node inside a structured 5xx body."""

    def __init__(self, errors: list[RPCError], status_code: int, status: str = "", body: bytes = b""):
        super().__init__(status_code, status, body)
        self.errors = errors

    @property
    def kind(self) -> str:
        return self.errors[0].kind

    @property
    def id(self) -> str:
        return self.errors[0].id

    def __str__(self) -> str:
        entries = "; ".join(f'kind = "{e.kind}", id = "{e.id}"' for e in self.errors)
        return f"tezos: RPC error ({entries})"


class EmptyRPCError(HTTPStatusError):
    """Structured 5xx body that decoded to an empty error list."""

    def __str__(self) -> str:
        return f"tezos: empty error response (HTTP status {self.status_code})"


class DecodeError(TezosError):
    """Body present but not of the expected shape."""

    def __init__(
            self,
            message: str,
            status_code: Optional[int] = None,
            body: Optional[bytes] = None,
            index: Optional[int] = None,
            discriminator: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.index = index
        self.discriminator = discriminator
