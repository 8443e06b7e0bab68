# Copyright (C) 2025, Ionic.

# This program is licensed under the Apache License 2.0.
# See LICENSE or go to <https://www.apache.org/licenses/LICENSE-2.0> for full license details.


import asyncio
import os
from typing import Any, AsyncIterator, Dict, List, Optional

from dotenv import load_dotenv
from loguru import logger
from yarl import URL

from ionic_tezos_client.block.block import Block
from ionic_tezos_client.block.operations import MempoolOperations
from ionic_tezos_client.data_source.data_source import BaseDataSource
from ionic_tezos_client.data_source.rpc.client import DEFAULT_TIMEOUT, USER_AGENT, RPCClient
from ionic_tezos_client.data_source.rpc.dispatcher import DispatchOutcome, Sink, StreamSink
from ionic_tezos_client.network.network import (
    BootstrappedBlock,
    NetworkConnection,
    NetworkPeer,
    NetworkPeerLogEntry,
    NetworkPeerWithID,
    NetworkStats,
)
from ionic_tezos_client.utils.log_config import configure_file_logging

load_dotenv()


class TezosRPCDataSource(BaseDataSource):
    """Tezos node RPC data source implementation."""

    def __init__(self, rpc_url: Optional[str] = None, config: Optional[Dict[str, Any]] = None):
        """Initializes the Tezos RPC data source."""
        super().__init__(config)
        self.rpc_url = rpc_url or os.getenv("TEZOS_RPC_URL")
        if not self.rpc_url:
            raise ValueError("RPC URL must be provided either as parameter or TEZOS_RPC_URL environment variable")

        timeout = float(self.config.get("timeout") or os.getenv("TEZOS_RPC_TIMEOUT") or DEFAULT_TIMEOUT)
        user_agent = self.config.get("user_agent", USER_AGENT)
        self.client = RPCClient(self.rpc_url, timeout=timeout, user_agent=user_agent)
        configure_file_logging(self.config.get("log_file"))

    async def connect(self) -> None:
        """Establishes connection to the Tezos RPC endpoint."""
        await self.client.connect()
        self._connected = True

    async def disconnect(self) -> None:
        """Closes connection to the Tezos RPC endpoint."""
        await self.client.disconnect()
        self._connected = False

    async def _fetch(self, path: str, value_type: Any) -> Any:
        request = self.client.new_request("GET", path)
        return await self.client.fetch(request, value_type)

    async def _monitor(self, path: str, value_type: Any, results: Sink, cancel: Optional[asyncio.Event]) -> DispatchOutcome:
        request = self.client.new_request("GET", path)
        return await self.client.get(request, StreamSink(value_type, results, cancel))

    async def get_network_stats(self) -> NetworkStats:
        """Returns current network stats, see https://tezos.gitlab.io/betanet/api/rpc.html#get-network-stat"""
        return await self._fetch("/network/stat", NetworkStats)

    async def get_network_connections(self) -> List[NetworkConnection]:
        """Returns all network connections, see http://tezos.gitlab.io/mainnet/api/rpc.html#get-network-connections"""
        return await self._fetch("/network/connections", List[NetworkConnection])

    async def get_network_peers(self, filter: str = "") -> List[NetworkPeer]:
        """Returns all network peers, optionally filtered by state ("accepted", "running" or "disconnected")."""
        path = URL("/network/peers")
        if filter:
            path = path.with_query(filter=filter)

        peers = NetworkPeerWithID.convert_all(await self._fetch(str(path), List[Any]))
        logger.info(f"Fetched {len(peers)} network peers")
        return peers

    async def get_network_peer(self, peer_id: str) -> NetworkPeer:
        """Returns info about one peer."""
        peer = await self._fetch(f"/network/peers/{peer_id}", NetworkPeer)
        peer.peer_id = peer_id
        return peer

    async def ban_network_peer(self, peer_id: str) -> None:
        """Bans the peer."""
        request = self.client.new_request("GET", f"/network/peers/{peer_id}/ban")
        await self.client.get(request, None)
        logger.info(f"Banned peer {peer_id}")

    async def trust_network_peer(self, peer_id: str) -> None:
        """Turns the peer into trust mode."""
        request = self.client.new_request("GET", f"/network/peers/{peer_id}/trust")
        await self.client.get(request, None)
        logger.info(f"Trusted peer {peer_id}")

    async def get_network_peer_banned(self, peer_id: str) -> bool:
        """Returns True if the peer is banned."""
        return await self._fetch(f"/network/peers/{peer_id}/banned", bool)

    async def get_network_peer_log(self, peer_id: str) -> List[NetworkPeerLogEntry]:
        """Returns the peer's log."""
        return await self._fetch(f"/network/peers/{peer_id}/log", List[NetworkPeerLogEntry])

    async def monitor_network_peer_log(
            self,
            peer_id: str,
            results: Sink[List[NetworkPeerLogEntry]],
            cancel: Optional[asyncio.Event] = None,
    ) -> DispatchOutcome:
        """Puts batches of the peer's log into `results` until the node closes the stream or `cancel` fires."""
        logger.info(f"Monitoring log of peer {peer_id}")
        return await self._monitor(f"/network/peers/{peer_id}/log?monitor", List[NetworkPeerLogEntry], results, cancel)

    def iter_network_peer_log(
            self,
            peer_id: str,
            cancel: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[List[NetworkPeerLogEntry]]:
        """Pull-based form of `monitor_network_peer_log`."""
        request = self.client.new_request("GET", f"/network/peers/{peer_id}/log?monitor")
        return self.client.stream(request, List[NetworkPeerLogEntry], cancel)

    async def get_delegate_balance(self, chain_id: str, block_id: str, pkh: str) -> str:
        """Returns a delegate's balance in mutez."""
        path = f"/chains/{chain_id}/blocks/{block_id}/context/delegates/{pkh}/balance"
        return await self._fetch(path, str)

    async def get_contract_balance(self, chain_id: str, block_id: str, contract_id: str) -> str:
        """Returns a contract's balance in mutez."""
        path = f"/chains/{chain_id}/blocks/{block_id}/context/contracts/{contract_id}/balance"
        return await self._fetch(path, str)

    async def get_block(self, chain_id: str, block_id: str) -> Block:
        """Retrieves the block `block_id` of chain `chain_id`."""
        logger.info(f"Fetching block {block_id} of chain {chain_id}")
        block = await self._fetch(f"/chains/{chain_id}/blocks/{block_id}", Block)

        logger.success(
            f"Successfully retrieved block {block.hash} at level {block.header.level} "
            f"with {sum(len(ops) for ops in block.operations)} operations")
        return block

    async def get_mempool_pending_operations(self, chain_id: str = "main") -> MempoolOperations:
        """Returns the operations waiting in the node's mempool."""
        return await self._fetch(f"/chains/{chain_id}/mempool/pending_operations", MempoolOperations)

    async def get_bootstrapped(
            self,
            results: Sink[BootstrappedBlock],
            cancel: Optional[asyncio.Event] = None,
    ) -> DispatchOutcome:
        """Puts bootstrapped blocks into `results` until the node closes the stream or `cancel` fires."""
        return await self._monitor("/monitor/bootstrapped", BootstrappedBlock, results, cancel)

    def iter_bootstrapped(self, cancel: Optional[asyncio.Event] = None) -> AsyncIterator[BootstrappedBlock]:
        """Pull-based form of `get_bootstrapped`."""
        request = self.client.new_request("GET", "/monitor/bootstrapped")
        return self.client.stream(request, BootstrappedBlock, cancel)
