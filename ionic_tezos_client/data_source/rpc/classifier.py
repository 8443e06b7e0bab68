# Copyright (C) 2025, Ionic.

# This program is licensed under the Apache License 2.0.
# See LICENSE or go to <https://www.apache.org/licenses/LICENSE-2.0> for full license details.


"""Turns non-2xx responses into the client's error taxonomy."""

from typing import Any, Dict, List, Optional

import msgspec
from loguru import logger

from ionic_tezos_client.data_source.rpc.model import RPCError
from ionic_tezos_client.errors import (
    DecodeError,
    EmptyRPCError,
    HTTPStatusError,
    RPCProtocolError,
    TezosError,
)

_error_list_decoder = msgspec.json.Decoder(List[Dict[str, Any]])


def is_structured_content_type(content_type: Optional[str]) -> bool:
    """Checks if the content type announces a JSON body."""
    if not content_type:
        return False
    mime = content_type.split(";", 1)[0].strip().lower()
    return mime == "application/json" or (mime.startswith("application/") and mime.endswith("+json"))


def decode_rpc_errors(body: bytes) -> List[RPCError]:
    """Decodes a structured error body into RPC error records.

    Raises:
        msgspec.MsgspecError: If the body is not a list of objects with `kind` and `id`
    """
    errors = []
    for item in _error_list_decoder.decode(body):
        error = msgspec.convert(item, RPCError)
        error.raw = item
        errors.append(error)
    return errors


def classify(status_code: int, reason: str, content_type: Optional[str], body: bytes) -> Optional[TezosError]:
    """Classifies a response by status code, content type and raw body.

    Args:
        status_code: HTTP status code
        reason: HTTP status text, e.g. "Not Found"
        content_type: Value of the Content-Type header, if any
        body: Raw response body

    Returns:
        None for 2xx responses, otherwise the most specific applicable error
    """
    status_class = status_code // 100
    if status_class == 2:
        return None

    if status_class != 5 or not is_structured_content_type(content_type):
        # Unknown body format, usually a human readable string
        logger.warning(f"HTTP status {status_code} {reason}: {body[:200]!r}")
        return HTTPStatusError(status_code, reason, body)

    try:
        errors = decode_rpc_errors(body)
    except msgspec.MsgspecError as e:
        logger.warning(f"Malformed RPC error body with HTTP status {status_code}: {e}")
        return DecodeError(f"tezos: error decoding RPC error: {e}", status_code=status_code, body=body)

    if not errors:
        logger.warning(f"Empty RPC error body with HTTP status {status_code}")
        return EmptyRPCError(status_code, reason, body)

    logger.warning(f"RPC error with HTTP status {status_code}: {[(e.kind, e.id) for e in errors]}")
    return RPCProtocolError(errors, status_code, reason, body)
