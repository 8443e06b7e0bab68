# Copyright (C) 2025, Ionic.

# This program is licensed under the Apache License 2.0.
# See LICENSE or go to <https://www.apache.org/licenses/LICENSE-2.0> for full license details.


"""Splits a byte stream of concatenated JSON values into single values."""

from __future__ import annotations

from ionic_tezos_client.errors import DecodeError

_WHITESPACE = frozenset(b" \t\r\n")
_OPEN = frozenset(b"{[")
_CLOSE = frozenset(b"}]")
_QUOTE = ord('"')
_BACKSLASH = ord("\\")

# Bytes that end a bare top-level scalar (number, true, false, null)
_SCALAR_END = _WHITESPACE | _OPEN | frozenset(b'"')


class JSONStreamSplitter:
    """Incremental splitter for whitespace-separated JSON values.

    Feed it chunks as they arrive; every complete top-level value is returned
    as raw bytes, ready for a typed msgspec decoder. Chunk boundaries may fall
    anywhere, including inside strings and escapes.
    """

    def __init__(self):
        self._buffer = bytearray()
        self._pos = 0
        self._start: int | None = None
        self._depth = 0
        self._in_string = False
        self._escape = False
        self._scalar = False

    @property
    def pending(self) -> bool:
        """True while a value has started but is not complete yet."""
        return self._start is not None

    def feed(self, data: bytes) -> list[bytes]:
        """Appends a chunk and returns the values completed by it, in order."""
        self._buffer += data
        values = self._scan()
        self._compact()
        return values

    def close(self) -> list[bytes]:
        """Signals end of stream and returns the last value, if any.

        Raises:
            DecodeError: If the stream ends in the middle of a value
        """
        values = []
        if self._start is not None:
            if not self._scalar:
                raise DecodeError(
                    f"tezos: unexpected end of stream inside JSON value: {bytes(self._buffer[self._start:])[:64]!r}"
                )
            values.append(bytes(self._buffer[self._start:]))
        self._buffer.clear()
        self._pos = 0
        self._start = None
        self._scalar = False
        return values

    def _scan(self) -> list[bytes]:
        values = []
        buf = self._buffer
        i = self._pos

        while i < len(buf):
            c = buf[i]

            if self._start is None:
                if c not in _WHITESPACE:
                    self._start = i
                    if c in _OPEN:
                        self._depth = 1
                    elif c == _QUOTE:
                        self._in_string = True
                    else:
                        self._scalar = True
                i += 1
                continue

            if self._scalar:
                if c in _SCALAR_END:
                    values.append(bytes(buf[self._start:i]))
                    self._start = None
                    self._scalar = False
                    continue  # rescan this byte as the start of the next value
                i += 1
                continue

            if self._in_string:
                if self._escape:
                    self._escape = False
                elif c == _BACKSLASH:
                    self._escape = True
                elif c == _QUOTE:
                    self._in_string = False
                    if self._depth == 0:
                        values.append(bytes(buf[self._start:i + 1]))
                        self._start = None
            elif c == _QUOTE:
                self._in_string = True
            elif c in _OPEN:
                self._depth += 1
            elif c in _CLOSE:
                self._depth -= 1
                if self._depth == 0:
                    values.append(bytes(buf[self._start:i + 1]))
                    self._start = None
            i += 1

        self._pos = i
        return values

    def _compact(self) -> None:
        keep_from = self._start if self._start is not None else self._pos
        if keep_from:
            del self._buffer[:keep_from]
            self._pos -= keep_from
            if self._start is not None:
                self._start = 0
