# Copyright (C) 2025, Ionic.

# This program is licensed under the Apache License 2.0.
# See LICENSE or go to <https://www.apache.org/licenses/LICENSE-2.0> for full license details.


"""Request and error models for the Tezos RPC data source."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from msgspec import Struct, field


class RPCErrorKind(str, Enum):
    """
    Error kinds reported by the node, see http://tezos.gitlab.io/mainnet/api/errors.html.
    """

    PERMANENT = "permanent"
    """The error will happen again whatever the context"""

    TEMPORARY = "temporary"
    """The error may go away after some time, e.g. when the node catches up"""

    BRANCH = "branch"
    """The error is specific to the current branch of the chain"""

    UNKNOWN = "unknown"
    """Any kind not listed above, e.g. introduced by a protocol upgrade"""

    @classmethod
    def handle_kind_field(cls, field_value: Any) -> RPCErrorKind:
        if isinstance(field_value, str):
            try:
                return cls(field_value)
            except ValueError:
                return RPCErrorKind.UNKNOWN
        return RPCErrorKind.UNKNOWN


class RPCError(Struct):
    """One entry of a structured 5xx error body."""
    kind: str
    id: str
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def error_kind(self) -> RPCErrorKind:
        return RPCErrorKind.handle_kind_field(self.kind)


class RPCRequest(Struct):
    """Addressable request description produced by `RPCClient.new_request`."""
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
