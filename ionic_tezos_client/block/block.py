# Copyright (C) 2025, Ionic.

# This program is licensed under the Apache License 2.0.
# See LICENSE or go to <https://www.apache.org/licenses/LICENSE-2.0> for full license details.

"""Defines Tezos block, header and header metadata structures."""
from datetime import datetime
from typing import Any, Optional

from msgspec import Struct, field

from ionic_tezos_client.block.operations import BALANCE_UPDATE_REGISTRY, Operation
from ionic_tezos_client.coders.variant_coder import VariantRegistry


class GenericTestChainStatus(Struct):
    """Most generic test chain status, also kept for unknown statuses."""
    status: Optional[str] = None

    def discriminator(self) -> Optional[str]:
        return self.status


class NotRunningTestChainStatus(GenericTestChainStatus):
    pass


class ForkingTestChainStatus(GenericTestChainStatus, kw_only=True):
    protocol: str

    expiration: str


class RunningTestChainStatus(GenericTestChainStatus, kw_only=True):
    chain_id: str

    genesis: str

    protocol: str

    expiration: str


TEST_CHAIN_STATUS_REGISTRY = VariantRegistry("status", GenericTestChainStatus, {
    "not_running": NotRunningTestChainStatus,
    "forking": ForkingTestChainStatus,
    "running": RunningTestChainStatus,
})


class RawBlockHeader(Struct):
    level: int
    """Height of the block, from the genesis"""

    proto: int
    """Number of protocol changes since genesis"""

    predecessor: str

    timestamp: datetime

    validation_pass: int
    """Number of validation passes, also the number of lists of operations"""

    operations_hash: str

    fitness: list[str]
    """Hex encoded fitness components"""

    context: str

    signature: str

    priority: Optional[int] = None

    proof_of_work_nonce: Optional[str] = None

    seed_nonce_hash: Optional[str] = None

    @property
    def fitness_bytes(self) -> list[bytes]:
        return [bytes.fromhex(f) for f in self.fitness]

    @property
    def proof_of_work_nonce_bytes(self) -> Optional[bytes]:
        if self.proof_of_work_nonce is None:
            return None
        return bytes.fromhex(self.proof_of_work_nonce)


class MaxOperationListLength(Struct):
    max_size: int

    max_op: Optional[int] = None


class LevelInfo(Struct):
    level: int

    level_position: int

    cycle: int

    cycle_position: int

    voting_period: Optional[int] = None

    voting_period_position: Optional[int] = None

    expected_commitment: bool = False


class BlockHeaderMetadata(Struct):
    protocol: str

    next_protocol: str

    test_chain_status: Any
    """Test chain status, decoded by its `status`"""

    max_operations_ttl: int

    max_operation_data_length: int

    max_block_header_length: int

    max_operation_list_length: list[MaxOperationListLength]

    baker: Optional[str] = None

    level: Optional[LevelInfo] = None

    voting_period_kind: Optional[str] = None

    nonce_hash: Optional[str] = None

    consumed_gas: Optional[str] = None

    deactivated: list[str] = field(default_factory=list)

    balance_updates: list[Any] = field(default_factory=list)

    def __post_init__(self):
        self.test_chain_status = TEST_CHAIN_STATUS_REGISTRY.convert_one(self.test_chain_status)
        self.balance_updates = BALANCE_UPDATE_REGISTRY.convert(self.balance_updates)


class Block(Struct):
    """A Tezos block as returned by ``/chains/<chain>/blocks/<block>``."""
    protocol: str

    chain_id: str

    hash: str

    header: RawBlockHeader

    metadata: BlockHeaderMetadata

    operations: list[list[Operation]] = field(default_factory=list)
    """One list of operations per validation pass"""
