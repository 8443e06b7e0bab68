# Copyright (C) 2025, Ionic.

# This program is licensed under the Apache License 2.0.
# See LICENSE or go to <https://www.apache.org/licenses/LICENSE-2.0> for full license details.

"""Abstract base class for Tezos node data sources."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Optional

from loguru import logger

from ionic_tezos_client.block.block import Block
from ionic_tezos_client.errors import TezosError, TransportError
from ionic_tezos_client.network.network import BootstrappedBlock, NetworkStats


class BaseDataSource(ABC):
    """Common surface of every way this client reaches a Tezos node.

    Subclasses own the connection; the base keeps the configuration and the
    connected flag and derives the health check from a network stats call.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self._connected = False

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        ...

    @abstractmethod
    async def get_network_stats(self) -> NetworkStats:
        """Returns global network bandwidth totals."""

    @abstractmethod
    async def get_block(self, chain_id: str, block_id: str) -> Block:
        """Retrieves the block `block_id` of chain `chain_id`."""

    @abstractmethod
    def iter_bootstrapped(self, cancel: Optional[asyncio.Event] = None) -> AsyncIterator[BootstrappedBlock]:
        """Yields blocks as the node reports them bootstrapped."""

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def health_check(self) -> bool:
        """Returns True when connected and the node answers a network stats call."""
        if not self.is_connected:
            return False

        try:
            await self.get_network_stats()
            return True
        except (TezosError, TransportError, asyncio.TimeoutError) as e:
            logger.error(f"Health check failed: {e}")
            return False

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
