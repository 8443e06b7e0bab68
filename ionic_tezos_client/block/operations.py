# Copyright (C) 2025, Ionic.

# This program is licensed under the Apache License 2.0.
# See LICENSE or go to <https://www.apache.org/licenses/LICENSE-2.0> for full license details.

"""Operations, operation elements and balance updates"""
from typing import Any, Optional

from msgspec import Struct, field, structs

from ionic_tezos_client.coders.variant_coder import TupleRecord, VariantRegistry
from ionic_tezos_client.data_source.rpc.model import RPCError


class GenericBalanceUpdate(Struct):
    """Most generic balance update, also kept for unknown kinds."""
    kind: Optional[str] = None

    change_str: Optional[str] = field(name="change", default=None)

    def discriminator(self) -> Optional[str]:
        return self.kind

    @property
    def change(self) -> int:
        """Balance change in mutez; the node encodes it as a string."""
        return int(self.change_str) if self.change_str else 0


class ContractBalanceUpdate(GenericBalanceUpdate, kw_only=True):
    contract: str


class FreezerBalanceUpdate(GenericBalanceUpdate, kw_only=True):
    category: str

    delegate: str

    level: Optional[int] = None

    cycle: Optional[int] = None


BALANCE_UPDATE_REGISTRY = VariantRegistry("kind", GenericBalanceUpdate, {
    "contract": ContractBalanceUpdate,
    "freezer": FreezerBalanceUpdate,
})


class OperationMetadata(Struct):
    balance_updates: list[Any] = field(default_factory=list)
    """Balance updates, each decoded by its `kind`"""

    delegate: Optional[str] = None

    slots: Optional[list[int]] = None

    operation_result: Optional[dict[str, Any]] = None

    def __post_init__(self):
        self.balance_updates = BALANCE_UPDATE_REGISTRY.convert(self.balance_updates)


class GenericOperationElem(Struct):
    """Most generic operation element, also kept for unknown kinds."""
    kind: Optional[str] = None

    def discriminator(self) -> Optional[str]:
        return self.kind


class EndorsementOperationElem(GenericOperationElem, kw_only=True):
    level: int

    metadata: Optional[OperationMetadata] = None


class ManagerOperationElem(GenericOperationElem, kw_only=True):
    """Fields shared by the operations a manager account signs."""
    source: str

    fee: str

    counter: str

    gas_limit: str

    storage_limit: str

    metadata: Optional[OperationMetadata] = None


class TransactionOperationElem(ManagerOperationElem, kw_only=True):
    amount: str

    destination: str

    parameters: Optional[dict[str, Any]] = None


class RevealOperationElem(ManagerOperationElem, kw_only=True):
    public_key: str


class DelegationOperationElem(ManagerOperationElem, kw_only=True):
    delegate: Optional[str] = None


class OriginationOperationElem(ManagerOperationElem, kw_only=True):
    balance: str

    delegate: Optional[str] = None

    script: Optional[dict[str, Any]] = None


class ActivateAccountOperationElem(GenericOperationElem, kw_only=True):
    pkh: str

    secret: str

    metadata: Optional[OperationMetadata] = None


OPERATION_ELEMENT_REGISTRY = VariantRegistry("kind", GenericOperationElem, {
    "endorsement": EndorsementOperationElem,
    "transaction": TransactionOperationElem,
    "reveal": RevealOperationElem,
    "delegation": DelegationOperationElem,
    "origination": OriginationOperationElem,
    "activate_account": ActivateAccountOperationElem,
})


class Operation(Struct):
    """An operation included into a block or waiting in the mempool."""
    branch: str

    contents: list[Any]
    """Operation elements, each decoded by its `kind`, in application order"""

    protocol: Optional[str] = None

    chain_id: Optional[str] = None

    hash: Optional[str] = None

    signature: Optional[str] = None

    def __post_init__(self):
        self.contents = OPERATION_ELEMENT_REGISTRY.convert(self.contents)


class OperationWithError(Operation):
    """Unsuccessful operation."""
    error: list[RPCError] = field(default_factory=list)


class OperationAlt(TupleRecord):
    """
    Operation encoded with its hash as the first array member, i.e.
    ``["<hash>", {"protocol": ..., ...}]`` instead of ``{"hash": "<hash>", ...}``.

    Decodes to an `Operation`.
    """

    __tuple_types__ = (str, Operation)

    @classmethod
    def from_items(cls, operation_hash: str, operation: Operation) -> Operation:
        return structs.replace(operation, hash=operation_hash)


class OperationWithErrorAlt(OperationAlt):
    """Hash-prefixed `OperationWithError`, see `OperationAlt`."""

    __tuple_types__ = (str, OperationWithError)


class MempoolOperations(Struct):
    """Content of the mempool, by classification.

    Every list but `applied` holds hash-prefixed operations on the wire.
    """
    applied: list[Operation] = field(default_factory=list)

    refused: list[Any] = field(default_factory=list)

    branch_refused: list[Any] = field(default_factory=list)

    branch_delayed: list[Any] = field(default_factory=list)

    unprocessed: list[Any] = field(default_factory=list)

    def __post_init__(self):
        self.refused = OperationWithErrorAlt.convert_all(self.refused)
        self.branch_refused = OperationWithErrorAlt.convert_all(self.branch_refused)
        self.branch_delayed = OperationWithErrorAlt.convert_all(self.branch_delayed)
        self.unprocessed = OperationAlt.convert_all(self.unprocessed)
