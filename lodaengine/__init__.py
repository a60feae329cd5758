"""lodaengine: evaluation engine for integer-sequence assembly programs.

Programs in the LODA assembly language compute one term of an integer
sequence per run: the input ``n`` is placed in register ``$0`` and the
term is read back from ``$0`` when the program finishes. Programs may
call each other by numeric id, so a whole library of programs forms a
dependency graph.

Submodules
----------
errors
    Error taxonomy with ``LODA-XXXX`` codes, ``SourceSpan`` and
    GCC/JSON formatting.

program
    Immutable program tree: ``Opcode``, operands, ``Instruction``,
    ``Loop``, ``Program``; canonical text, S-expression and JSON forms.

grammar, parser
    Parsimonious line grammar and the ``parse`` front-end that checks
    operands and builds the loop tree.

bigint, registers, vm
    Arithmetic semantics, sparse register file and the interpreter
    with step accounting and loop policies.

callgraph
    Dependency resolver (cycle paths, missing programs) and call graph
    analytics (SCCs, DOT export).

cache, store, runtime
    Single-flight result cache, program stores and the ``LodaRuntime``
    session façade.

main
    CLI entry-point with subcommands: ``eval``, ``steps``, ``parse``,
    ``deps``, ``graph``, ``compare``.

Usage
-----
Command-line::

    python -m lodaengine eval A000045.asm -t 20
    loda steps 40 --programs-dir programs/oeis

Programmatic::

    from lodaengine import parse, evaluate_range

    fib = parse(open("A000045.asm").read())
    evaluate_range(fib, 0, 10)
"""

from __future__ import annotations

__version__: str = "0.1.0"

from lodaengine.parser import parse
from lodaengine.runtime import (
    LodaRuntime,
    RuntimeConfig,
    create_runtime,
    direct_dependencies,
    evaluate,
    evaluate_range,
    step_cost,
    transitive_dependencies,
)

__all__: list[str] = [
    "__version__",
    "parse",
    "evaluate",
    "evaluate_range",
    "step_cost",
    "direct_dependencies",
    "transitive_dependencies",
    "LodaRuntime",
    "RuntimeConfig",
    "create_runtime",
]
