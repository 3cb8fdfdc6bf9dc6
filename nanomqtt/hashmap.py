"""Open-addressing hash map keyed by strings, holding 32-bit unsigned values.

Hashing uses a table-driven CRC-32C (Castagnoli polynomial, zero initial
value, no final XOR), mixed with Jenkins' 32-bit mix and Knuth's
multiplicative method. Collisions are resolved by bounded linear probing;
the table doubles in size whenever a key cannot be placed.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Iterator, Union

Key = Union[str, bytes]

DEFAULT_MAX_CHAIN_LENGTH = 8
_MASK32 = 0xFFFFFFFF
_CRC32C_POLY = 0x82F63B78


def _build_crc_table() -> tuple[int, ...]:
    table = []
    for byte in range(256):
        crc = byte
        for _ in range(8):
            crc = (crc >> 1) ^ _CRC32C_POLY if crc & 1 else crc >> 1
        table.append(crc)
    return tuple(table)


_CRC_TABLE = _build_crc_table()


def _as_bytes(key: Key) -> bytes:
    if isinstance(key, str):
        return key.encode("utf-8")
    if isinstance(key, (bytes, bytearray, memoryview)):
        return bytes(key)
    raise TypeError(f"key must be str or bytes, not {type(key).__name__}")


def crc32c(data: Key) -> int:
    """Return the raw CRC-32C of ``data`` (initial value 0, no final XOR)."""
    crc = 0
    for byte in _as_bytes(data):
        crc = _CRC_TABLE[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc


def hash_index(key: Key, table_size: int) -> int:
    """Return the preferred slot of ``key`` in a table of ``table_size`` slots."""
    if table_size <= 0:
        raise ValueError("table_size must be positive")
    h = crc32c(key)
    h = (h + (h << 12)) & _MASK32
    h ^= h >> 22
    h = (h + (h << 4)) & _MASK32
    h ^= h >> 9
    h = (h + (h << 10)) & _MASK32
    h ^= h >> 2
    h = (h + (h << 7)) & _MASK32
    h ^= h >> 12
    h = ((h >> 3) * 2654435761) & _MASK32
    return h % table_size


@dataclass
class _Entry:
    key: Key
    raw: bytes
    value: int


def _is_power_of_two(n: int) -> bool:
    return n > 0 and n & (n - 1) == 0


class HashMap:
    """Thread-safe string-to-uint32 map with bounded linear probing."""

    def __init__(
        self, initial_size: int, max_chain_length: int = DEFAULT_MAX_CHAIN_LENGTH
    ) -> None:
        if not _is_power_of_two(initial_size):
            raise ValueError("initial_size must be a non-zero power of two")
        if max_chain_length <= 0:
            raise ValueError("max_chain_length must be positive")
        self.max_chain_length = max_chain_length
        self._slots: list[_Entry | None] = [None] * initial_size
        self._size = 0
        self._lock = threading.RLock()

    @property
    def table_size(self) -> int:
        """Number of slots currently allocated."""
        return len(self._slots)

    def _probe(self, raw: bytes) -> Iterator[int]:
        table_size = len(self._slots)
        curr = hash_index(raw, table_size)
        for _ in range(self.max_chain_length):
            yield curr
            curr = (curr + 1) % table_size

    def _find(self, raw: bytes) -> int | None:
        for index in self._probe(raw):
            entry = self._slots[index]
            if entry is not None and entry.raw == raw:
                return index
        return None

    def _slot_for(self, raw: bytes) -> int | None:
        if self._size >= len(self._slots):
            return None
        in_use = 0
        for index in self._probe(raw):
            entry = self._slots[index]
            if entry is not None:
                in_use += 1
                if entry.raw == raw:
                    return index
        if in_use < self.max_chain_length:
            for index in self._probe(raw):
                if self._slots[index] is None:
                    return index
        return None

    def _rehash(self) -> None:
        bigger = HashMap(2 * len(self._slots), self.max_chain_length)
        for entry in self._slots:
            if entry is not None:
                bigger._put_raw(entry.key, entry.raw, entry.value)
        self._slots = bigger._slots
        self._size = bigger._size

    def _put_raw(self, key: Key, raw: bytes, value: int) -> None:
        index = self._slot_for(raw)
        while index is None:
            self._rehash()
            index = self._slot_for(raw)
        if self._slots[index] is None:
            self._size += 1
        self._slots[index] = _Entry(key, raw, value)

    def put(self, key: Key, value: int) -> None:
        """Insert or replace the value stored under ``key``."""
        if not isinstance(value, int) or not 0 <= value <= _MASK32:
            raise ValueError("value must be an unsigned 32-bit integer")
        raw = _as_bytes(key)
        with self._lock:
            self._put_raw(key, raw, value)

    def get(self, key: Key) -> int:
        """Return the value under ``key``, or 0 when the key is absent."""
        raw = _as_bytes(key)
        with self._lock:
            index = self._find(raw)
            return 0 if index is None else self._slots[index].value

    def remove(self, key: Key) -> None:
        """Remove ``key``; raise KeyError if it is not present."""
        raw = _as_bytes(key)
        with self._lock:
            index = self._find(raw)
            if index is None:
                raise KeyError(key)
            self._slots[index] = None
            self._size -= 1

    def iterate_pairs(self, func: Callable[[Key, int], int]) -> bool:
        """Call ``func(key, value)`` for each entry in table order.

        A return of -1 removes the current entry, 0 continues, and any
        other value stops the walk. Returns True if the walk stopped early.
        """
        with self._lock:
            for index, entry in enumerate(self._slots):
                if entry is None:
                    continue
                result = func(entry.key, entry.value)
                if result == -1:
                    self._slots[index] = None
                    self._size -= 1
                elif result != 0:
                    return True
            return False

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[Key]:
        with self._lock:
            keys = [entry.key for entry in self._slots if entry is not None]
        return iter(keys)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, (str, bytes, bytearray, memoryview)):
            return False
        raw = _as_bytes(key)
        with self._lock:
            return self._find(raw) is not None