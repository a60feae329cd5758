# lodaengine/bigint.py
"""
Big-integer value layer.

Python ``int`` already is an arbitrary-precision signed integer, so this
module only pins down the semantics of each arithmetic mnemonic: truncating
division, sign rules for ``mod`` and the bitwise operations, the domain of
``log``/``nrt``/``dgs``/``dgr``, the negative-``n`` binomial and so on.
Every failure is reported as a typed :class:`~lodaengine.errors.EvalError`;
no ``ZeroDivisionError`` or ``ValueError`` leaves this module.

The optional magnitude limit mirrors a mining configuration: when
``max_bits`` is given, an operand or a result with ``bit_length() >=
max_bits`` raises :class:`~lodaengine.errors.MagnitudeLimitExceededError`.
"""

from __future__ import annotations

import math
from typing import Callable, Dict, Optional

from lodaengine.errors import (
    DivisionByZeroError,
    DomainError,
    MagnitudeLimitExceededError,
)
from lodaengine.program import Opcode

# pow() refuses exponents that do not fit in 32 bits.
MAX_POWER_EXPONENT = 0xFFFF_FFFF

BinaryOperation = Callable[[int, int], int]


# ---------------------------------------------------------------------------
# Division helpers
# ---------------------------------------------------------------------------

def truncated_div(x: int, y: int) -> int:
    """Quotient rounded toward zero."""
    if y == 0:
        raise DivisionByZeroError()
    q = abs(x) // abs(y)
    return q if (x < 0) == (y < 0) else -q


def truncated_mod(x: int, y: int) -> int:
    """Remainder whose sign follows the dividend: ``-999 mod 10 == -9``."""
    if y == 0:
        raise DivisionByZeroError()
    r = abs(x) % abs(y)
    return -r if x < 0 else r


# ---------------------------------------------------------------------------
# Instruction semantics
# ---------------------------------------------------------------------------

def op_mov(x: int, y: int) -> int:
    return y


def op_add(x: int, y: int) -> int:
    return x + y


def op_sub(x: int, y: int) -> int:
    return x - y


def op_trn(x: int, y: int) -> int:
    return max(x - y, 0)


def op_mul(x: int, y: int) -> int:
    return x * y


def op_div(x: int, y: int) -> int:
    return truncated_div(x, y)


def op_dif(x: int, y: int) -> int:
    if y == 0:
        return x
    if truncated_mod(x, y) == 0:
        return truncated_div(x, y)
    return x


def op_dir(x: int, y: int) -> int:
    # dividing by 0 or +-1 never changes the magnitude
    result = x
    while True:
        divided = op_dif(result, y)
        if abs(divided) == abs(result):
            return result
        result = divided


def op_mod(x: int, y: int) -> int:
    return truncated_mod(x, y)


def op_pow(base: int, exponent: int) -> int:
    if base == 0:
        if exponent > 0:
            return 0
        if exponent == 0:
            return 1
        raise DivisionByZeroError("Power zero division")
    if base == 1:
        return 1
    if base == -1:
        return 1 if exponent % 2 == 0 else -1
    if exponent < 0:
        # 1/(base^k) truncates to zero for |base| >= 2
        return 0
    if exponent > MAX_POWER_EXPONENT:
        raise MagnitudeLimitExceededError(
            bits=abs(base).bit_length() * exponent, limit=None
        )
    return base ** exponent


def op_gcd(x: int, y: int) -> int:
    return math.gcd(x, y)


def op_bin(n: int, k: int) -> int:
    """Binomial coefficient, extended to negative ``n``."""
    if n >= 0:
        if k < 0 or k > n:
            return 0
        return math.comb(n, k)

    sign = 1
    if k >= 0:
        if k % 2 == 1:
            sign = -1
        n, k = -n + k - 1, k
    elif k <= n:
        if (n - k) % 2 == 1:
            sign = -1
        n, k = -k - 1, n - k
    else:
        return 0

    if k < 0 or k > n:
        return 0
    return sign * math.comb(n, k)


def op_cmp(x: int, y: int) -> int:
    return 1 if x == y else 0


def op_neq(x: int, y: int) -> int:
    return 0 if x == y else 1


def op_leq(x: int, y: int) -> int:
    return 1 if x <= y else 0


def op_geq(x: int, y: int) -> int:
    return 1 if x >= y else 0


def op_min(x: int, y: int) -> int:
    return min(x, y)


def op_max(x: int, y: int) -> int:
    return max(x, y)


def op_ban(x: int, y: int) -> int:
    result = abs(x) & abs(y)
    return -result if x < 0 and y < 0 else result


def op_bor(x: int, y: int) -> int:
    result = abs(x) | abs(y)
    return -result if x < 0 or y < 0 else result


def op_bxo(x: int, y: int) -> int:
    result = abs(x) ^ abs(y)
    return -result if (x < 0) != (y < 0) else result


def op_log(n: int, base: int) -> int:
    """Floor of the base-``base`` logarithm of ``n``."""
    if n <= 0:
        raise DomainError(f"log of non-positive value {n}")
    if base <= 1:
        raise DomainError(f"log with base {base}")
    count = 0
    while n >= base:
        n //= base
        count += 1
    return count


def op_nrt(n: int, degree: int) -> int:
    """Floor of the ``degree``-th root of ``n``."""
    if n < 0:
        raise DomainError(f"root of negative value {n}")
    if degree <= 0:
        raise DomainError(f"root of degree {degree}")
    if degree > MAX_POWER_EXPONENT:
        raise DomainError(f"root of degree {degree} is too large")
    if degree == 1 or n < 2:
        return n
    if degree == 2:
        return math.isqrt(n)
    low, high, result = 0, n, 0
    while low <= high:
        mid = (low + high) // 2
        value = mid ** degree
        if value == n:
            return mid
        if value < n:
            result = mid
            low = mid + 1
        else:
            high = mid - 1
    return result


def _digits(n: int, base: int):
    while n > 0:
        yield n % base
        n //= base


def op_dgs(n: int, base: int) -> int:
    """Digit sum of ``n`` in ``base``, carrying the sign of ``n``."""
    if base < 2:
        raise DomainError(f"digit sum with base {base}")
    total = sum(_digits(abs(n), base))
    return -total if n < 0 else total


def op_dgr(n: int, base: int) -> int:
    """Digital root of ``n`` in ``base``, carrying the sign of ``n``."""
    if base < 2:
        raise DomainError(f"digital root with base {base}")
    total = abs(n)
    while True:
        total = sum(_digits(total, base))
        if total < base:
            break
    return -total if n < 0 else total


BINARY_OPERATIONS: Dict[Opcode, BinaryOperation] = {
    Opcode.MOV: op_mov,
    Opcode.ADD: op_add,
    Opcode.SUB: op_sub,
    Opcode.TRN: op_trn,
    Opcode.MUL: op_mul,
    Opcode.DIV: op_div,
    Opcode.DIF: op_dif,
    Opcode.DIR: op_dir,
    Opcode.MOD: op_mod,
    Opcode.POW: op_pow,
    Opcode.GCD: op_gcd,
    Opcode.BIN: op_bin,
    Opcode.CMP: op_cmp,
    Opcode.EQU: op_cmp,
    Opcode.NEQ: op_neq,
    Opcode.LEQ: op_leq,
    Opcode.GEQ: op_geq,
    Opcode.MIN: op_min,
    Opcode.MAX: op_max,
    Opcode.BAN: op_ban,
    Opcode.BOR: op_bor,
    Opcode.BXO: op_bxo,
    Opcode.LOG: op_log,
    Opcode.NRT: op_nrt,
    Opcode.DGS: op_dgs,
    Opcode.DGR: op_dgr,
}


# ---------------------------------------------------------------------------
# Magnitude guard
# ---------------------------------------------------------------------------

def check_magnitude(value: int, max_bits: Optional[int]) -> int:
    """Return *value*, or raise if it needs ``max_bits`` bits or more."""
    if max_bits is not None:
        bits = value.bit_length()
        if bits >= max_bits:
            raise MagnitudeLimitExceededError(bits=bits, limit=max_bits)
    return value


def compute(opcode: Opcode, x: int, y: int, max_bits: Optional[int] = None) -> int:
    """Apply the binary instruction *opcode* to ``x`` and ``y``."""
    operation = BINARY_OPERATIONS[opcode]
    if max_bits is None or opcode is Opcode.MOV:
        return operation(x, y)
    check_magnitude(x, max_bits)
    check_magnitude(y, max_bits)
    if opcode is Opcode.POW and abs(x) > 1 and y > 0:
        estimate = abs(x).bit_length() * y
        if estimate > max_bits:
            raise MagnitudeLimitExceededError(bits=estimate, limit=max_bits)
    return check_magnitude(operation(x, y), max_bits)


__all__ = [
    "MAX_POWER_EXPONENT",
    "BINARY_OPERATIONS",
    "truncated_div",
    "truncated_mod",
    "check_magnitude",
    "compute",
]
