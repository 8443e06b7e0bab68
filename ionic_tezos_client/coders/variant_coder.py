# Copyright (C) 2025, Ionic.

# This program is licensed under the Apache License 2.0.
# See LICENSE or go to <https://www.apache.org/licenses/LICENSE-2.0> for full license details.


"""Decoders for discriminator-tagged variants and heterogeneous JSON arrays."""

from __future__ import annotations
from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Protocol

import msgspec
from msgspec import Struct

from ionic_tezos_client.errors import DecodeError


class Variant(Protocol):
    """A decoded element that can report its own discriminator."""

    def discriminator(self) -> Optional[str]:
        ...


class VariantRegistry:
    """Maps discriminator values of one variant family to concrete struct types.

    The registry is immutable once built and may be shared by any number of
    concurrent decode calls.
    """

    def __init__(self, field: str, fallback: type[Struct], variants: Mapping[str, type[Struct]]):
        """Build the registry.

        Args:
            field: JSON name of the discriminator field (e.g. "kind")
            fallback: Type kept for unknown discriminators; built from the discriminator only
            variants: Discriminator value to concrete type
        """
        self.field = field
        self.fallback = fallback
        self._variants = MappingProxyType(dict(variants))
        self._tag_decoder = msgspec.json.Decoder(
            msgspec.defstruct("DiscriminatorOnly", [(field, Any, None)])
        )
        self._decoders = MappingProxyType({
            tag: msgspec.json.Decoder(variant_type, dec_hook=dec_hook)
            for tag, variant_type in self._variants.items()
        })

    @property
    def variants(self) -> Mapping[str, type[Struct]]:
        return self._variants

    def get(self, tag: Optional[str]) -> Optional[type[Struct]]:
        """Returns the type registered for a discriminator, None if unknown."""
        if tag is None:
            return None
        return self._variants.get(tag)

    def decode(self, data: bytes) -> list:
        """Decodes a raw JSON array of tagged objects, preserving order."""
        try:
            fragments = msgspec.json.decode(data, type=list[msgspec.Raw])
        except msgspec.MsgspecError as e:
            raise DecodeError(f"tezos: error decoding variant array: {e}") from e

        return [self._decode_fragment(i, fragment) for i, fragment in enumerate(fragments)]

    def decode_one(self, data: bytes) -> Variant:
        """Decodes a single raw tagged JSON object."""
        return self._decode_fragment(0, data)

    def convert(self, items: Any) -> list:
        """Same as `decode`, for a JSON array that was already parsed.

        Structs in `items` are taken as already decoded, so a record's
        ``__post_init__`` may call this on values it built itself.
        """
        if not isinstance(items, list):
            raise DecodeError(f"tezos: expected JSON array of variants, got {type(items).__name__}")
        return [self._convert_item(i, item) for i, item in enumerate(items)]

    def convert_one(self, item: Any) -> Variant:
        """Same as `decode_one`, for a JSON object that was already parsed."""
        return self._convert_item(0, item)

    def _decode_fragment(self, index: int, fragment: bytes) -> Variant:
        try:
            tagged = self._tag_decoder.decode(fragment)
        except msgspec.MsgspecError as e:
            raise DecodeError(f"tezos: error decoding element {index}: {e}", index=index) from e

        tag = getattr(tagged, self.field)
        return self._resolve(index, tag, lambda: self._decoders[tag].decode(fragment))

    def _convert_item(self, index: int, item: Any) -> Variant:
        if isinstance(item, Struct):
            return item
        if not isinstance(item, dict):
            raise DecodeError(
                f"tezos: error decoding element {index}: expected object, got {type(item).__name__}",
                index=index,
            )

        tag = item.get(self.field)
        return self._resolve(index, tag, lambda: msgspec.convert(item, self._variants[tag], dec_hook=dec_hook))

    def _resolve(self, index: int, tag: Any, load: Callable[[], Variant]) -> Variant:
        if not isinstance(tag, str):
            tag = None

        if self.get(tag) is None:
            return self.fallback(**{self.field: tag})

        try:
            return load()
        except msgspec.MsgspecError as e:
            raise DecodeError(
                f'tezos: error decoding element {index} ({self.field} = "{tag}"): {e}',
                index=index,
                discriminator=tag,
            ) from e


def decode_variants(raw_array: bytes, registry: VariantRegistry) -> list:
    """Decodes a raw JSON array into the variant types of `registry`."""
    return registry.decode(raw_array)


def decode_tuple(raw: Any, *types: Any) -> tuple:
    """Decodes a JSON array whose leading elements have different shapes.

    Element ``i`` is decoded into ``types[i]``. Trailing elements beyond the
    requested types are ignored.

    Args:
        raw: Raw JSON bytes of the array, or an already-parsed list
        *types: Destination type for each leading position

    Returns:
        Tuple of decoded values, one per type
    """
    parsed = isinstance(raw, list)
    try:
        items = raw if parsed else msgspec.json.decode(raw, type=list[msgspec.Raw])
    except msgspec.MsgspecError as e:
        raise DecodeError(f"tezos: error decoding JSON array: {e}") from e

    if len(items) < len(types):
        raise DecodeError(f"tezos: JSON array is too short, expected {len(types)}, got {len(items)}")

    values = []
    for i, (item, item_type) in enumerate(zip(items, types)):
        try:
            if parsed:
                values.append(msgspec.convert(item, item_type, dec_hook=dec_hook))
            else:
                values.append(msgspec.json.decode(item, type=item_type, dec_hook=dec_hook))
        except msgspec.MsgspecError as e:
            raise DecodeError(f"tezos: error decoding JSON array element {i}: {e}", index=i) from e

    return tuple(values)


class TupleRecord(ABC):
    """Record encoded as a positional JSON array.

    Subclasses list the element types in `__tuple_types__` and build the
    decoded value in `from_items`. A subclass whose `from_items` returns an
    instance of itself may annotate struct fields directly (see `dec_hook`);
    the others are applied with `convert` or `convert_all`, usually from a
    struct's ``__post_init__``.
    """

    __tuple_types__: tuple = ()

    @classmethod
    @abstractmethod
    def from_items(cls, *items: Any) -> Any:
        """Builds the record from the decoded array elements."""

    @classmethod
    def convert(cls, obj: Any) -> Any:
        """Decodes one already-parsed JSON array; decoded structs pass through."""
        if isinstance(obj, Struct):
            return obj
        if not isinstance(obj, list):
            raise DecodeError(f"tezos: expected JSON array for {cls.__name__}, got {type(obj).__name__}")
        return cls.from_items(*decode_tuple(obj, *cls.__tuple_types__))

    @classmethod
    def convert_all(cls, items: list) -> list:
        return [cls.convert(item) for item in items]


def dec_hook(type_: type, obj: Any) -> Any:
    """msgspec decode hook for `TupleRecord` fields."""
    if isinstance(type_, type) and issubclass(type_, TupleRecord):
        return type_.convert(obj)
    raise NotImplementedError(f"Unsupported type {type_}")
