# Copyright (C) 2025, Ionic.

# This program is licensed under the Apache License 2.0.
# See LICENSE or go to <https://www.apache.org/licenses/LICENSE-2.0> for full license details.


"""Optional file sink for the client's loguru logs."""

import os
from typing import Optional

from loguru import logger

_sinks: dict[str, int] = {}


def configure_file_logging(path: Optional[str] = None, level: str = "DEBUG") -> Optional[int]:
    """Adds a rotating file sink, once per path.

    Args:
        path: Log file; defaults to the TEZOS_RPC_LOG_FILE environment variable
        level: Minimum level written to the file

    Returns:
        The loguru sink id, or None when no path is configured
    """
    path = path or os.getenv("TEZOS_RPC_LOG_FILE")
    if not path:
        return None
    if path not in _sinks:
        _sinks[path] = logger.add(path, rotation="10 MB", level=level)
    return _sinks[path]
