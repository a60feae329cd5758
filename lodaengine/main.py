#!/usr/bin/env python3
"""lodaengine/main.py: CLI entry-point for the ``loda`` command.

Usage examples
--------------
    # First 10 terms of a program file
    loda eval programs/oeis/000/A000045.asm

    # Same, by id, from a programs directory
    loda eval 45 --programs-dir programs/oeis -t 20

    # Total step cost of the first 30 terms
    loda steps 40 --programs-dir programs/oeis -t 30

    # Parse and print in canonical, S-expression or JSON form
    loda parse A000045.asm --format sexp

    # Direct / transitive dependencies
    loda deps 10051 --programs-dir programs/oeis --transitive

    # Call graph of everything reachable from some programs
    loda graph 45 10051 --programs-dir programs/oeis --format dot

    # Decide whether a candidate beats the installed program
    loda compare 45 candidate.asm --programs-dir programs/oeis -t 40

Exit codes
----------
    0   Success.
    1   Parse, evaluation or dependency error.
    2   Infrastructure failure (missing file, bad arguments, etc.).

The module doubles as ``python -m lodaengine`` via the companion
``lodaengine/__main__.py`` which simply calls :func:`main`.
"""

from __future__ import annotations

import argparse
import json
import logging
import re
import sys
import textwrap
from pathlib import Path
from typing import List, Optional, Sequence, TextIO

from lodaengine import __version__
from lodaengine.callgraph import callgraph_summary, program_name
from lodaengine.config import LoopPolicy, RuntimeConfig
from lodaengine.errors import LodaError
from lodaengine.parser import parse_file
from lodaengine.program import Program
from lodaengine.runtime import LodaRuntime
from lodaengine.store import DirectoryProgramStore

_log = logging.getLogger("lodaengine")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2

_PROGRAM_ID = re.compile(r"^A?(\d+)$")


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``lodaengine`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("lodaengine")
    root.setLevel(level)
    root.handlers[:] = [handler]


def _resolve_path(raw: str, label: str = "file") -> Path:
    """Resolve *raw* to an absolute ``Path``, raising on missing files."""
    p = Path(raw).expanduser().resolve()
    if not p.exists():
        _log.error("%s not found: %s", label, p)
        raise SystemExit(EXIT_INFRA)
    return p


def _open_output(dest: Optional[str]) -> TextIO:
    """Return a writable text stream.

    *dest* ``None`` or ``"-"`` → ``sys.stdout``; otherwise open the path
    for writing (creating parent directories as needed).
    """
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def _write(dest: Optional[str], text: str) -> None:
    out = _open_output(dest)
    try:
        out.write(text if text.endswith("\n") else text + "\n")
    finally:
        if out is not sys.stdout:
            out.close()


def _build_runtime(args: argparse.Namespace) -> LodaRuntime:
    store = None
    if getattr(args, "programs_dir", None):
        store = DirectoryProgramStore(_resolve_path(args.programs_dir, "programs directory"))
    config = RuntimeConfig(
        step_budget=args.step_budget,
        loop_policy=LoopPolicy(args.loop_policy),
        max_loop_iterations=args.max_loop_iterations,
        max_value_bits=args.max_bits,
    )
    return LodaRuntime(store, config)


def _program_id_from_name(path: Path) -> Optional[int]:
    match = _PROGRAM_ID.match(path.stem)
    return int(match.group(1)) if match else None


def _load(runtime: LodaRuntime, raw: str, args: argparse.Namespace) -> Program:
    """A program given as a file path, or as an id in the programs directory."""
    match = _PROGRAM_ID.match(raw)
    if match and not Path(raw).exists():
        if not getattr(args, "programs_dir", None):
            _log.error("program id %s given without --programs-dir", raw)
            raise SystemExit(EXIT_INFRA)
        return runtime.load_program(int(match.group(1)))
    path = _resolve_path(raw, "program file")
    return parse_file(path, program_id=_program_id_from_name(path))


def _report(exc: LodaError) -> int:
    _log.debug("%s", exc.to_json())
    print(exc.to_gcc_format(), file=sys.stderr)
    return EXIT_ERROR


# ===========================================================================
# Sub-command implementations
# ===========================================================================

def cmd_eval(args: argparse.Namespace) -> int:
    """Print the first terms of a program, comma separated."""
    runtime = _build_runtime(args)
    try:
        program = _load(runtime, args.program, args)
        start = program.offset if args.start is None else args.start
        terms = runtime.evaluate_range(program, start, args.terms)
    except LodaError as exc:
        return _report(exc)
    _write(args.output, ",".join(str(t) for t in terms))
    return EXIT_OK


def cmd_steps(args: argparse.Namespace) -> int:
    """Print the total step cost of the first terms."""
    runtime = _build_runtime(args)
    try:
        program = _load(runtime, args.program, args)
        steps = runtime.step_cost(program, args.terms)
    except LodaError as exc:
        return _report(exc)
    _write(args.output, str(steps))
    return EXIT_OK


def cmd_parse(args: argparse.Namespace) -> int:
    """Parse a program and print it back in the chosen format."""
    runtime = _build_runtime(args)
    try:
        program = _load(runtime, args.program, args)
    except LodaError as exc:
        return _report(exc)

    if args.format == "sexp":
        text = program.to_sexp()
    elif args.format == "json":
        text = json.dumps(program.to_dict(), indent=2)
    else:
        text = program.unparse()
    _write(args.output, text)
    return EXIT_OK


def cmd_deps(args: argparse.Namespace) -> int:
    """List the programs a program depends on."""
    runtime = _build_runtime(args)
    try:
        program = _load(runtime, args.program, args)
        if args.transitive:
            ids = runtime.transitive_dependencies(program)
        else:
            ids = runtime.direct_dependencies(program)
    except LodaError as exc:
        return _report(exc)
    _write(args.output, "\n".join(program_name(i) for i in sorted(ids)))
    return EXIT_OK


def cmd_graph(args: argparse.Namespace) -> int:
    """Print the call graph reachable from the given ids."""
    runtime = _build_runtime(args)
    ids: List[int] = []
    for raw in args.programs:
        match = _PROGRAM_ID.match(raw)
        if not match:
            _log.error("not a program id: %s", raw)
            return EXIT_INFRA
        ids.append(int(match.group(1)))
    try:
        cg = runtime.call_graph(ids)
    except LodaError as exc:
        return _report(exc)
    if args.format == "dot":
        text = cg.to_dot(title=args.title)
    else:
        text = callgraph_summary(cg)
    _write(args.output, text)
    return EXIT_OK


def cmd_compare(args: argparse.Namespace) -> int:
    """Compare the step cost of an installed and a candidate program."""
    runtime = _build_runtime(args)
    try:
        installed = _load(runtime, args.installed, args)
        candidate = _load(runtime, args.candidate, args)
    except LodaError as exc:
        return _report(exc)
    result = runtime.compare_programs(installed, candidate, args.terms)
    lines = [
        f"winner: {result.winner}",
        f"reason: {result.reason}",
        f"installed steps: {result.installed_steps}",
        f"candidate steps: {result.candidate_steps}",
        f"terms match: {'yes' if result.terms_match else 'no'}",
    ]
    _write(args.output, "\n".join(lines))
    return EXIT_OK


# ===========================================================================
# Argument parser construction
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct the full CLI argument parser with subcommands."""

    # --- Top-level parser --------------------------------------------------
    parser = argparse.ArgumentParser(
        prog="loda",
        description=(
            "Evaluate, inspect and compare integer-sequence programs\n"
            "written in the LODA assembly language."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              loda eval A000045.asm -t 20
              loda steps 40 --programs-dir programs/oeis
              loda deps 10051 --programs-dir programs/oeis --transitive
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    # Shared argument groups (reusable) ------------------------------------

    def _add_output_args(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "-o", "--output",
            default=None,
            metavar="FILE",
            help='Output file ("-" or omit for stdout).',
        )

    def _add_runtime_args(p: argparse.ArgumentParser) -> None:
        g = p.add_argument_group("runtime tuning")
        g.add_argument(
            "-d", "--programs-dir",
            default=None,
            metavar="DIR",
            help="Directory laid out as DIR/000/A000045.asm.",
        )
        g.add_argument(
            "--step-budget",
            type=int,
            default=RuntimeConfig.step_budget,
            metavar="N",
            help="Maximum steps per evaluation (default: %(default)s).",
        )
        g.add_argument(
            "--loop-policy",
            choices=[policy.value for policy in LoopPolicy],
            default=LoopPolicy.GUARDED.value,
            help="Behaviour of loops that stop making progress (default: guarded).",
        )
        g.add_argument(
            "--max-loop-iterations",
            type=int,
            default=None,
            metavar="N",
            help="Fail when a single loop runs more than N iterations.",
        )
        g.add_argument(
            "--max-bits",
            type=int,
            default=None,
            metavar="N",
            help="Fail on values of N bits or more.",
        )

    def _add_terms_arg(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "-t", "--terms",
            type=int,
            default=10,
            metavar="N",
            help="Number of terms (default: 10).",
        )

    # --- eval --------------------------------------------------------------
    p_eval = subparsers.add_parser(
        "eval",
        help="Print the first terms of a program.",
    )
    p_eval.add_argument("program", metavar="PROGRAM", help="Program file or id.")
    _add_terms_arg(p_eval)
    p_eval.add_argument(
        "--start",
        type=int,
        default=None,
        metavar="N",
        help="First input (default: the program offset).",
    )
    _add_output_args(p_eval)
    _add_runtime_args(p_eval)
    p_eval.set_defaults(func=cmd_eval)

    # --- steps -------------------------------------------------------------
    p_steps = subparsers.add_parser(
        "steps",
        help="Print the total step cost of the first terms.",
    )
    p_steps.add_argument("program", metavar="PROGRAM", help="Program file or id.")
    _add_terms_arg(p_steps)
    _add_output_args(p_steps)
    _add_runtime_args(p_steps)
    p_steps.set_defaults(func=cmd_steps)

    # --- parse -------------------------------------------------------------
    p_parse = subparsers.add_parser(
        "parse",
        help="Parse a program and print it back.",
        description=(
            "Parse a program and print its canonical assembly, its "
            "S-expression form or a JSON tree. Useful for front-end debugging."
        ),
    )
    p_parse.add_argument("program", metavar="PROGRAM", help="Program file or id.")
    p_parse.add_argument(
        "-f", "--format",
        choices=["asm", "sexp", "json"],
        default="asm",
        help="Output format (default: asm).",
    )
    _add_output_args(p_parse)
    _add_runtime_args(p_parse)
    p_parse.set_defaults(func=cmd_parse)

    # --- deps --------------------------------------------------------------
    p_deps = subparsers.add_parser(
        "deps",
        help="List the programs a program calls.",
    )
    p_deps.add_argument("program", metavar="PROGRAM", help="Program file or id.")
    p_deps.add_argument(
        "--transitive",
        action="store_true",
        help="Include indirect dependencies.",
    )
    _add_output_args(p_deps)
    _add_runtime_args(p_deps)
    p_deps.set_defaults(func=cmd_deps)

    # --- graph -------------------------------------------------------------
    p_graph = subparsers.add_parser(
        "graph",
        help="Print the call graph reachable from some programs.",
    )
    p_graph.add_argument("programs", nargs="+", metavar="ID", help="Program ids.")
    p_graph.add_argument(
        "-f", "--format",
        choices=["dot", "summary"],
        default="summary",
        help="Output format (default: summary).",
    )
    p_graph.add_argument(
        "--title",
        default=None,
        help="Graph label for DOT output.",
    )
    _add_output_args(p_graph)
    _add_runtime_args(p_graph)
    p_graph.set_defaults(func=cmd_graph)

    # --- compare -----------------------------------------------------------
    p_compare = subparsers.add_parser(
        "compare",
        help="Compare an installed program with a candidate.",
    )
    p_compare.add_argument("installed", metavar="INSTALLED", help="Program file or id.")
    p_compare.add_argument("candidate", metavar="CANDIDATE", help="Program file or id.")
    _add_terms_arg(p_compare)
    _add_output_args(p_compare)
    _add_runtime_args(p_compare)
    p_compare.set_defaults(func=cmd_compare)

    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the ``loda`` CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_INFRA

    _configure_logging(args.verbose)

    # No subcommand given → print help.
    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_INFRA
    except OSError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA
    except Exception as exc:
        _log.error("Unhandled exception: %s", exc, exc_info=True)
        return EXIT_INFRA


# ---------------------------------------------------------------------------
# Module execution support
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    raise SystemExit(main())
