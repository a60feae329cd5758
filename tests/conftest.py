# tests/conftest.py
"""
Shared program texts, store builders and fixtures for the lodaengine tests.
"""

import textwrap

import pytest

from lodaengine.config import LoopPolicy, RuntimeConfig
from lodaengine.runtime import LodaRuntime
from lodaengine.store import DirectoryProgramStore, MemoryProgramStore


def asm(text: str) -> str:
    """Dedent an inline program."""
    return textwrap.dedent(text).lstrip("\n")


# ─────────────────────────────────────────────────────────────────────────
# Programs
# ─────────────────────────────────────────────────────────────────────────

FIBONACCI_ASM = asm("""
    ; A000045: Fibonacci numbers
    mov $3,1
    lpb $0
      sub $0,1
      mov $2,$1
      add $1,$3
      mov $3,$2
    lpe
    mov $0,$1
""")
FIBONACCI_TERMS = [0, 1, 1, 2, 3, 5, 8, 13, 21, 34]

POWERS_OF_TWO_ASM = asm("""
    ; A000079: Powers of 2
    mov $1,2
    pow $1,$0
    mov $0,$1
""")
POWERS_OF_TWO_TERMS = [1, 2, 4, 8, 16, 32, 64, 128, 256, 512]

ISQRT_ASM = asm("""
    ; A000196: floor(sqrt(n))
    mov $1,1
    lpb $0
      add $1,2
      trn $0,$1
    lpe
    div $1,2
    mov $0,$1
""")
ISQRT_TERMS = [0, 1, 1, 1, 2, 2, 2, 2, 2, 3, 3, 3, 3, 3, 3, 3, 4, 4, 4, 4]

A005131_ASM = asm("""
    mul $0,2
    mov $2,2
    sub $2,$0
    sub $0,2
    add $2,3
    dif $2,3
    add $0,$2
    div $0,2
""")
A005131_TERMS = [1, 0, 1, 1, 2, 1, 1, 4, 1, 1, 6, 1, 1, 8, 1, 1, 10, 1, 1, 12]

A284429_ASM = asm("""
    ; A284429: A quasilinear solution to Hofstadter's Q recurrence.
    mov $1,$0
    mov $2,$0
    mod $2,3
    sub $2,4
    mov $0,$2
    div $0,2
    add $0,2
    add $1,3
    mov $3,4
    mov $4,-1
    pow $4,$2
    lpb $0
      sub $0,$0
      mov $1,$3
    lpe
    sub $0,$4
    sub $1,$0
    sub $1,2
    mov $0,$1
""")
A284429_TERMS = [2, 1, 3, 5, 1, 3, 8, 1, 3, 11]

PRIMES_ASM = asm("""
    ; A000040: The prime numbers.
    #offset 1
    mov $7,$0
    add $7,1
    pow $7,2
    mov $1,1
    lpb $7
      mov $4,$0
      min $4,1
      add $1,1
      mov $2,$1
      sub $2,2
      mov $3,1
      lpb $2
        mov $5,$2
        add $5,1
        mov $6,$1
        mod $6,$5
        cmp $6,0
        mov $8,1
        sub $8,$6
        mul $3,$8
        sub $2,1
      lpe
      sub $0,$3
      mul $7,$4
      sub $7,1
    lpe
    mov $0,$1
""")
PRIMES_TERMS = [2, 3, 5, 7, 11, 13, 17, 19, 23, 29,
                31, 37, 41, 43, 47, 53, 59, 61, 67, 71]

SQUARES_ASM = asm("""
    ; Squares, starting at 1
    #offset 1
    mov $1,$0
    mul $0,$1
""")
SQUARES_TERMS = [1, 4, 9, 16, 25]

MERSENNE_ASM = asm("""
    ; A000225: 2^n - 1
    seq $0,79
    sub $0,1
""")
MERSENNE_TERMS = [0, 1, 3, 7, 15, 31, 63, 127, 255, 511]

A007958_ASM = asm("""
    ; A007958: Even numbers with at least one odd digit.
    mov $1,1
    mov $2,6
    mov $6,$0
    lpb $1
      add $2,6
      add $6,1
      lpb $1
        sub $1,1
        add $2,2
      lpe
      add $2,2
    lpe
    lpb $5,5
      add $0,5
      trn $6,5
      lpb $5,3
        mov $6,$2
      lpe
    lpe
    lpb $0
      sub $0,1
      add $1,2
    lpe
    mov $0,$1
""")
A007958_TERMS = [10, 12, 14, 16, 18, 30, 32, 34, 36, 38, 50, 52, 54, 56, 58]

A206735_ASM = asm("""
    ; A206735: Triangle T(n,k), read by rows
    mov $4,$0
    lpb $4,$4
      add $3,1
      sub $4,$3
    lpe
    bin $3,$4
    mov $0,$3
""")
A206735_TERMS = [1, 0, 1, 0, 2, 1, 0, 3, 3, 1, 0, 4, 6, 4, 1]

A253472_ASM = asm("""
    ; A253472: Square Pairs
    mov $2,$0
    lpb $2,$0
      add $0,2
      mov $5,$2
      sub $2,$5
    lpe
    add $0,4
    mov $1,$0
""")
A253472_TERMS = [4, 7, 8, 9, 12, 13, 14, 15, 16, 17, 18, 19, 20, 21, 22]

SPIN_ASM = asm("""
    lpb $0
      add $1,1
    lpe
""")

DIVIDE_BY_ZERO_ASM = asm("""
    mov $1,1
    div $1,0
""")


def cycle_programs():
    """Three programs calling each other in a ring: 1 -> 2 -> 3 -> 1."""
    return {
        1: "seq $0,2\n",
        2: "add $0,1\nseq $0,3\n",
        3: "seq $0,1\n",
    }


def library_programs():
    """A small library with shared dependencies."""
    return {
        45: FIBONACCI_ASM,
        79: POWERS_OF_TWO_ASM,
        225: MERSENNE_ASM,
        1000: "seq $0,225\nseq $0,45\n",
        1001: "seq $0,79\nadd $0,1\nseq $0,45\n",
    }


# ─────────────────────────────────────────────────────────────────────────
# Builders
# ─────────────────────────────────────────────────────────────────────────

def make_store(programs=None):
    return MemoryProgramStore(programs or {})


def make_runtime(programs=None, **config):
    return LodaRuntime(make_store(programs), RuntimeConfig(**config))


def write_program_dir(root, programs):
    """Lay *programs* out as ``root/NNN/A######.asm`` and return a store."""
    store = DirectoryProgramStore(root)
    for program_id, text in programs.items():
        path = store.path_for(program_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return store


@pytest.fixture
def library_runtime():
    return make_runtime(library_programs())


@pytest.fixture
def rollback_runtime():
    return make_runtime(loop_policy=LoopPolicy.ROLLBACK)
