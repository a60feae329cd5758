# tests/test_registers.py
"""
Tests for the sparse register file.
"""

import pytest

from lodaengine.errors import RegisterAddressError
from lodaengine.registers import DEFAULT_CAPACITY, RegisterFile


def make_file(*values, capacity=DEFAULT_CAPACITY):
    registers = RegisterFile(capacity)
    for index, value in enumerate(values):
        registers.set(index, value)
    return registers


class TestAccess:

    def test_default_zero(self):
        registers = RegisterFile()
        assert registers.get(42) == 0
        assert len(registers) == 0

    def test_zero_not_stored(self):
        registers = make_file(5, 0, 3)
        assert len(registers) == 2
        registers.set(0, 0)
        assert len(registers) == 1
        assert registers.highest_index == 2

    @pytest.mark.parametrize("index", [-1, 100])
    def test_address_bounds(self, index):
        registers = RegisterFile(capacity=100)
        with pytest.raises(RegisterAddressError):
            registers.get(index)
        with pytest.raises(RegisterAddressError):
            registers.set(index, 1)

    def test_last_address(self):
        registers = RegisterFile(capacity=100)
        registers.set(99, 7)
        assert registers.get(99) == 7

    def test_str(self):
        assert str(make_file(5, 0, 3)) == "[0:5,2:3]"
        assert str(RegisterFile()) == "[]"

    def test_equality_ignores_explicit_zero(self):
        assert make_file(1, 0, 0) == make_file(1)
        assert make_file(1, 2) != make_file(1)


class TestClear:

    def test_clear_range(self):
        registers = make_file(1, 2, 3, 4, 5)
        registers.clear_range(1, 3)
        assert str(registers) == "[0:1,4:5]"

    @pytest.mark.parametrize("count", [0, -3])
    def test_non_positive_count(self, count):
        registers = make_file(1, 2)
        registers.clear_range(0, count)
        assert str(registers) == "[0:1,1:2]"

    def test_wide_range_on_sparse_file(self):
        registers = make_file(1, 2)
        registers.set(500, 9)
        registers.clear_range(1, 1000)
        assert str(registers) == "[0:1]"

    def test_range_beyond_capacity(self):
        registers = make_file(1, capacity=10)
        with pytest.raises(RegisterAddressError):
            registers.clear_range(5, 10)


class TestSnapshots:

    def test_restore(self):
        registers = make_file(1, 2)
        snapshot = registers.snapshot()
        registers.set(0, 9)
        registers.set(5, 1)
        registers.restore(snapshot)
        assert str(registers) == "[0:1,1:2]"

    def test_snapshot_is_independent(self):
        registers = make_file(1)
        snapshot = registers.snapshot()
        registers.set(0, 2)
        assert snapshot == {0: 1}

    def test_copy(self):
        registers = make_file(1, 2)
        other = registers.copy()
        other.set(0, 0)
        assert registers.get(0) == 1
        assert other.capacity == registers.capacity


class TestRangeComparison:

    @pytest.mark.parametrize("before, after, start, length, expected", [
        ((5,), (4,), 0, 1, True),
        ((5,), (5,), 0, 1, False),
        ((5,), (6,), 0, 1, False),
        ((5, 1), (5, 0), 0, 2, True),
        ((5, 1), (4, 9), 0, 2, True),
        ((5, 1), (6, 0), 0, 2, False),
        ((5, 1), (5, 0), 0, 1, False),
        ((0, 3), (0, 2), 1, 1, True),
        ((5,), (-1,), 0, 1, False),
        ((1, 5), (1, -2), 0, 2, False),
        ((5,), (4,), 0, 0, False),
    ])
    def test_is_less_range(self, before, after, start, length, expected):
        snapshot = make_file(*before).snapshot()
        assert make_file(*after).is_less_range(snapshot, start, length) is expected

    def test_has_negative(self):
        registers = make_file(1, -1, 2)
        assert registers.has_negative(0, 2)
        assert not registers.has_negative(2, 5)
