# lodaengine/registers.py
"""
Sparse register file.

Registers are addressed by non-negative integers below a fixed capacity
and hold arbitrary-size integers. Unwritten registers read as zero; the
backing ``dict`` only keeps non-zero values, so two files compare equal
exactly when every register holds the same value.
"""

from __future__ import annotations

from typing import Dict, Iterator, Optional, Tuple

from lodaengine.errors import RegisterAddressError

DEFAULT_CAPACITY = 10_000


class RegisterFile:
    """Mapping from register index to value, default zero."""

    __slots__ = ("_values", "capacity")

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self._values: Dict[int, int] = {}
        self.capacity = capacity

    def check_address(self, index: int) -> int:
        if index < 0 or index >= self.capacity:
            raise RegisterAddressError(index, self.capacity)
        return index

    def get(self, index: int) -> int:
        return self._values.get(self.check_address(index), 0)

    def set(self, index: int, value: int) -> None:
        self.check_address(index)
        if value:
            self._values[index] = value
        else:
            self._values.pop(index, None)

    def clear_range(self, start: int, count: int) -> None:
        """Zero ``count`` registers from ``start``; ``count <= 0`` does nothing."""
        if count <= 0:
            return
        self.check_address(start)
        self.check_address(start + count - 1)
        if count < len(self._values):
            for index in range(start, start + count):
                self._values.pop(index, None)
        else:
            for index in [i for i in self._values if start <= i < start + count]:
                del self._values[index]

    # -- snapshots -----------------------------------------------------------

    def snapshot(self) -> Dict[int, int]:
        return dict(self._values)

    def restore(self, snapshot: Dict[int, int]) -> None:
        self._values = dict(snapshot)

    def copy(self) -> "RegisterFile":
        other = RegisterFile(self.capacity)
        other._values = dict(self._values)
        return other

    def is_less_range(self, other: Dict[int, int], start: int, length: int) -> bool:
        """
        Compare registers ``start .. start+length-1`` against *other*.

        The comparison is lexicographic from ``start`` upwards. A negative
        value in this file ends the comparison as "not less"; an empty
        range is never less.
        """
        for index in range(start, start + length):
            value = self._values.get(index, 0)
            if value < 0:
                return False
            previous = other.get(index, 0)
            if value < previous:
                return True
            if value > previous:
                return False
        return False

    def has_negative(self, start: int, length: int) -> bool:
        return any(self._values.get(i, 0) < 0 for i in range(start, start + length))

    # -- introspection -------------------------------------------------------

    @property
    def highest_index(self) -> Optional[int]:
        return max(self._values) if self._values else None

    def items(self) -> Iterator[Tuple[int, int]]:
        return iter(sorted(self._values.items()))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RegisterFile):
            return NotImplemented
        return self._values == other._values

    def __len__(self) -> int:
        return len(self._values)

    def __str__(self) -> str:
        return "[" + ",".join(f"{i}:{v}" for i, v in self.items()) + "]"

    def __repr__(self) -> str:
        return f"RegisterFile({self})"


__all__ = ["DEFAULT_CAPACITY", "RegisterFile"]
