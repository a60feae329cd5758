"""
lodaengine.callgraph
====================

Static call structure between programs.

A program calls another with ``seq $r,ID`` (or ``cal``); the callee id is a
constant, so the whole dependency graph is known without running anything.

Dependency resolution
---------------------
:class:`DependencyResolver` computes the transitive closure of a program's
callees with an iterative depth-first search: an explicit work-list, an
"on path" set for back-edge detection and a memo of finished closures. A
back edge raises :class:`~lodaengine.errors.CyclicDependencyError` whose
``cycle`` is the exact path ``[A, B, C, A]``; a program the loader cannot
find raises :class:`~lodaengine.errors.UnresolvedDependencyError`.

Call graph analytics
--------------------
:class:`CallGraph` holds programs as nodes and call sites as edges and
offers callers/callees, transitive closures, strongly connected components,
topological orders, in-degree ranking, statistics and Graphviz DOT output.

Public API
----------
    direct_dependencies - callee ids of one program
    DependencyResolver  - memoised, thread-safe transitive closure
    CallGraphNode       - a program in the call graph
    CallGraphEdge       - a directed edge (call site)
    CallGraph           - the whole call graph
    build_callgraph     - crawl every program reachable from some ids
    NodeKind            - enum of node kinds

Typical usage::

    from lodaengine.callgraph import build_callgraph

    cg = build_callgraph([45, 10051], runtime.load_program_or_none)
    for node in cg.bottom_up_order():
        print(node.name)
    print(cg.to_dot())
"""

from __future__ import annotations

import enum
import itertools
import logging
import threading
from collections import OrderedDict, deque
from typing import (
    Any,
    Callable,
    Deque,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Optional,
    Set,
    Tuple,
)

from lodaengine.errors import CyclicDependencyError, UnresolvedDependencyError
from lodaengine.program import Instruction, Program

logger = logging.getLogger(__name__)

ProgramLoader = Callable[[int], Optional[Program]]


def program_name(program_id: int) -> str:
    return f"A{program_id:06d}"


def direct_dependencies(program: Program) -> Set[int]:
    """Ids of every program called by *program*."""
    return set(program.call_targets())


# ===========================================================================
# DEPENDENCY RESOLUTION
# ===========================================================================

class DependencyResolver:
    """Transitive dependency closures over a program loader.

    Parameters
    ----------
    loader : callable
        ``loader(program_id) -> Program | None``.

    Closures are memoised per program id; an id whose closure is known is
    *validated*, meaning it and all of its callees exist and are acyclic.
    The memo is shared between threads.
    """

    def __init__(self, loader: ProgramLoader) -> None:
        self._loader = loader
        self._closures: Dict[int, FrozenSet[int]] = {}
        self._lock = threading.Lock()

    # ----- memo -------------------------------------------------------------

    def is_validated(self, program_id: int) -> bool:
        with self._lock:
            return program_id in self._closures

    def _cached(self, program_id: int) -> Optional[FrozenSet[int]]:
        with self._lock:
            return self._closures.get(program_id)

    def clear(self) -> None:
        with self._lock:
            self._closures.clear()

    # ----- resolution -------------------------------------------------------

    def _children(self, program_id: int, referenced_by: Optional[int]) -> List[int]:
        program = self._loader(program_id)
        if program is None:
            raise UnresolvedDependencyError(program_id, referenced_by=referenced_by)
        return sorted(direct_dependencies(program))

    def transitive_dependencies(
        self,
        program_id: int,
        root_dependencies: Optional[Iterable[int]] = None,
    ) -> FrozenSet[int]:
        """Every program reachable from *program_id*, excluding itself.

        ``root_dependencies`` replaces the callees of *program_id* itself,
        for a program that is in hand but not (or differently) in the store.
        """
        if root_dependencies is None:
            cached = self._cached(program_id)
            if cached is not None:
                logger.debug("Dependencies of %s already resolved", program_name(program_id))
                return cached
            root_children = self._children(program_id, None)
        else:
            root_children = sorted(set(root_dependencies))

        finished: Dict[int, FrozenSet[int]] = {}
        path: List[int] = [program_id]
        on_path: Set[int] = {program_id}
        stack: List[Tuple[int, List[int], Iterator[int]]] = [
            (program_id, root_children, iter(root_children))
        ]

        while stack:
            node, children, pending = stack[-1]
            child = next(pending, None)
            if child is None:
                stack.pop()
                path.pop()
                on_path.discard(node)
                closure: Set[int] = set()
                for c in children:
                    closure.add(c)
                    closure |= finished[c]
                finished[node] = frozenset(closure)
                continue

            if child in on_path:
                cycle = path[path.index(child):] + [child]
                logger.warning(
                    "Circular dependency: %s",
                    " -> ".join(program_name(p) for p in cycle),
                )
                raise CyclicDependencyError(cycle)
            if child in finished:
                continue
            cached = self._cached(child)
            if cached is not None:
                finished[child] = cached
                continue

            grandchildren = self._children(child, node)
            stack.append((child, grandchildren, iter(grandchildren)))
            path.append(child)
            on_path.add(child)

        result = finished.pop(program_id)
        with self._lock:
            self._closures.update(finished)
            if root_dependencies is None:
                self._closures[program_id] = result
        return result

    def dependencies_of(self, program: Program) -> FrozenSet[int]:
        """Transitive dependencies of an in-hand program.

        When the program has an id, a path leading back to it is reported
        as a cycle.
        """
        direct = direct_dependencies(program)
        if program.program_id is not None:
            return self.transitive_dependencies(program.program_id, direct)
        closure: Set[int] = set(direct)
        for dep in sorted(direct):
            closure |= self.transitive_dependencies(dep)
        return frozenset(closure)


# ---------------------------------------------------------------------------
# Node kinds
# ---------------------------------------------------------------------------

class NodeKind(enum.Enum):
    PROGRAM = "program"
    MISSING = "missing"


# ---------------------------------------------------------------------------
# CallGraphNode
# ---------------------------------------------------------------------------

class CallGraphNode:
    """A node in the call graph.

    Attributes
    ----------
    id : int
        The program id.
    name : str
        ``A`` followed by the zero-padded id.
    kind : NodeKind
        ``MISSING`` when the program is referenced but could not be loaded.
    program : Program or None
        The parsed program (``None`` for missing nodes).
    out_edges : list[CallGraphEdge]
        Outgoing call edges (this program calls …).
    in_edges : list[CallGraphEdge]
        Incoming call edges (… calls this program).
    """

    __slots__ = ("id", "name", "kind", "program", "out_edges", "in_edges")

    def __init__(
        self,
        program_id: int,
        kind: NodeKind = NodeKind.PROGRAM,
        program: Optional[Program] = None,
    ) -> None:
        self.id: int = program_id
        self.name: str = program_name(program_id)
        self.kind: NodeKind = kind
        self.program = program
        self.out_edges: List[CallGraphEdge] = []
        self.in_edges: List[CallGraphEdge] = []

    # ----- queries ----------------------------------------------------------

    @property
    def callees(self) -> List[CallGraphNode]:
        return [e.callee for e in self.out_edges]

    @property
    def callers(self) -> List[CallGraphNode]:
        return [e.caller for e in self.in_edges]

    @property
    def is_leaf(self) -> bool:
        return len(self.out_edges) == 0

    @property
    def is_root(self) -> bool:
        return len(self.in_edges) == 0

    @property
    def is_recursive(self) -> bool:
        """Does this program call itself (directly)?"""
        return any(e.callee is self for e in self.out_edges)

    def __repr__(self) -> str:
        return f"CallGraphNode({self.name!r}, kind={self.kind.value})"

    def __hash__(self) -> int:
        return hash(self.id)

    def __eq__(self, other) -> bool:
        if isinstance(other, CallGraphNode):
            return self.id == other.id
        return NotImplemented


# ---------------------------------------------------------------------------
# CallGraphEdge
# ---------------------------------------------------------------------------

class CallGraphEdge:
    """A call site: ``caller`` runs ``seq``/``cal`` on ``callee`` at ``line``."""

    __slots__ = ("caller", "callee", "mnemonic", "line")

    def __init__(
        self,
        caller: CallGraphNode,
        callee: CallGraphNode,
        mnemonic: str = "seq",
        line: int = 0,
    ) -> None:
        self.caller = caller
        self.callee = callee
        self.mnemonic = mnemonic
        self.line = line

    def __repr__(self) -> str:
        loc = f" @ line {self.line}" if self.line else ""
        return (
            f"CallGraphEdge({self.caller.name} -> {self.callee.name}, "
            f"{self.mnemonic}{loc})"
        )


# ---------------------------------------------------------------------------
# CallGraph
# ---------------------------------------------------------------------------

class CallGraph:
    """Call graph over a set of programs.

    Attributes
    ----------
    nodes : OrderedDict[int, CallGraphNode]
        All nodes, keyed by program id, in discovery order.
    edges : list[CallGraphEdge]
        All edges, one per call site.
    """

    def __init__(self) -> None:
        self.nodes: OrderedDict[int, CallGraphNode] = OrderedDict()
        self.edges: List[CallGraphEdge] = []

    # ----- node and edge management -----------------------------------------

    def get_or_create_node(
        self,
        program_id: int,
        kind: NodeKind = NodeKind.PROGRAM,
        program: Optional[Program] = None,
    ) -> CallGraphNode:
        node = self.nodes.get(program_id)
        if node is None:
            node = CallGraphNode(program_id, kind=kind, program=program)
            self.nodes[program_id] = node
        elif program is not None and node.program is None:
            node.program = program
            node.kind = NodeKind.PROGRAM
        return node

    def add_edge(
        self,
        caller: CallGraphNode,
        callee: CallGraphNode,
        mnemonic: str = "seq",
        line: int = 0,
    ) -> CallGraphEdge:
        """Create a call edge and wire it up."""
        edge = CallGraphEdge(caller, callee, mnemonic=mnemonic, line=line)
        self.edges.append(edge)
        caller.out_edges.append(edge)
        callee.in_edges.append(edge)
        return edge

    def add_program(self, program: Program) -> CallGraphNode:
        """Add *program* (which must carry an id) and an edge per call site."""
        if program.program_id is None:
            raise ValueError("program without id cannot join a call graph")
        node = self.get_or_create_node(program.program_id, program=program)
        for instr in program.instructions():
            if instr.callee_id is not None:
                callee = self.get_or_create_node(instr.callee_id, kind=NodeKind.MISSING)
                self.add_edge(node, callee, mnemonic=instr.opcode.value, line=instr.line)
        return node

    # ----- lookups ----------------------------------------------------------

    def node(self, program_id: int) -> Optional[CallGraphNode]:
        return self.nodes.get(program_id)

    def __contains__(self, program_id: object) -> bool:
        return program_id in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    @property
    def roots(self) -> List[CallGraphNode]:
        """Programs nobody calls."""
        return [n for n in self.nodes.values() if n.is_root]

    @property
    def leaves(self) -> List[CallGraphNode]:
        """Programs that call nothing (missing ones excluded)."""
        return [
            n for n in self.nodes.values()
            if n.is_leaf and n.kind != NodeKind.MISSING
        ]

    @property
    def missing(self) -> List[CallGraphNode]:
        return [n for n in self.nodes.values() if n.kind == NodeKind.MISSING]

    # ----- whole-graph queries ----------------------------------------------

    @staticmethod
    def _closure(
        node: CallGraphNode,
        step: Callable[[CallGraphNode], List[CallGraphNode]],
    ) -> Set[CallGraphNode]:
        reached: Dict[int, CallGraphNode] = {}
        pending = list(step(node))
        while pending:
            current = pending.pop()
            if current.id not in reached:
                reached[current.id] = current
                pending.extend(step(current))
        reached.pop(node.id, None)
        return set(reached.values())

    def transitive_callees(self, node: CallGraphNode) -> Set[CallGraphNode]:
        """Every program *node* may end up calling, itself excluded."""
        return self._closure(node, lambda n: n.callees)

    def transitive_callers(self, node: CallGraphNode) -> Set[CallGraphNode]:
        """Every program whose evaluation may reach *node*, itself excluded."""
        return self._closure(node, lambda n: n.callers)

    def is_recursive(self, node: CallGraphNode) -> bool:
        """Is *node* part of a (possibly indirect) cycle?"""
        for callee in node.callees:
            if callee is node or node in self.transitive_callees(callee):
                return True
        return False

    def strongly_connected_components(self) -> List[List[CallGraphNode]]:
        """Compute SCCs using Tarjan's algorithm, without recursion.

        Returns a list of SCCs in reverse topological order (callees before
        callers). Each SCC with more than one node is a call cycle.
        """
        counter = itertools.count()
        index: Dict[int, int] = {}
        lowlink: Dict[int, int] = {}
        on_stack: Set[int] = set()
        stack: List[CallGraphNode] = []
        result: List[List[CallGraphNode]] = []

        def visit(v: CallGraphNode) -> None:
            index[v.id] = lowlink[v.id] = next(counter)
            stack.append(v)
            on_stack.add(v.id)

        for root in self.nodes.values():
            if root.id in index:
                continue
            visit(root)
            work: List[Tuple[CallGraphNode, Iterator[CallGraphNode]]] = [
                (root, iter(root.callees))
            ]
            while work:
                v, successors = work[-1]
                w = next(successors, None)
                if w is not None:
                    if w.id not in index:
                        visit(w)
                        work.append((w, iter(w.callees)))
                    elif w.id in on_stack:
                        lowlink[v.id] = min(lowlink[v.id], index[w.id])
                    continue

                work.pop()
                if work:
                    parent = work[-1][0]
                    lowlink[parent.id] = min(lowlink[parent.id], lowlink[v.id])
                if lowlink[v.id] == index[v.id]:
                    scc: List[CallGraphNode] = []
                    while True:
                        w = stack.pop()
                        on_stack.discard(w.id)
                        scc.append(w)
                        if w.id == v.id:
                            break
                    result.append(scc)

        return result

    def topological_order(self) -> List[CallGraphNode]:
        """Return nodes callee-first; nodes within an SCC in arbitrary order."""
        sccs = self.strongly_connected_components()
        return [node for scc in sccs for node in scc]

    def bottom_up_order(self) -> List[CallGraphNode]:
        """Alias for :meth:`topological_order`, callees before callers."""
        return self.topological_order()

    def most_called(self, limit: int = 10) -> List[Tuple[CallGraphNode, int]]:
        """Programs ranked by the number of distinct callers."""
        ranking = [
            (n, len({e.caller.id for e in n.in_edges}))
            for n in self.nodes.values()
            if n.in_edges
        ]
        ranking.sort(key=lambda item: (-item[1], item[0].id))
        return ranking[:limit]

    # ----- statistics -------------------------------------------------------

    def statistics(self) -> Dict[str, Any]:
        """Return a dict with summary statistics."""
        n_programs = sum(1 for n in self.nodes.values()
                         if n.kind == NodeKind.PROGRAM)
        n_missing = sum(1 for n in self.nodes.values()
                        if n.kind == NodeKind.MISSING)
        n_seq = sum(1 for e in self.edges if e.mnemonic == "seq")
        sccs = self.strongly_connected_components()
        n_recursive = sum(1 for scc in sccs if len(scc) > 1)
        n_self_recursive = sum(1 for n in self.nodes.values() if n.is_recursive)
        return {
            "programs": n_programs,
            "missing_programs": n_missing,
            "total_nodes": len(self.nodes),
            "total_edges": len(self.edges),
            "seq_calls": n_seq,
            "cal_calls": len(self.edges) - n_seq,
            "sccs": len(sccs),
            "recursive_sccs": n_recursive,
            "self_recursive_programs": n_self_recursive,
            "root_programs": len(self.roots),
            "leaf_programs": len(self.leaves),
        }

    # ----- serialisation ----------------------------------------------------

    def to_dot(self, title: Optional[str] = None) -> str:
        """Return a Graphviz DOT representation."""
        lines = ["digraph CallGraph {"]
        lines.append("  rankdir=TB;")
        if title:
            escaped_title = title.replace('"', '\\"')
            lines.append(f'  label="{escaped_title}";')
        lines.append('  node [shape=box, fontname="Helvetica", fontsize=10];')

        kind_attrs = {
            NodeKind.PROGRAM: 'style=filled, fillcolor="#ddeeff"',
            NodeKind.MISSING: 'style=filled, fillcolor="#ffcccc", shape=diamond',
        }
        for n in self.nodes.values():
            attrs = kind_attrs.get(n.kind, "")
            lines.append(f'  "{n.name}" [label="{n.name}", {attrs}];')

        for e in self.edges:
            elabel = e.mnemonic
            if e.line:
                elabel += f":{e.line}"
            lines.append(
                f'  "{e.caller.name}" -> "{e.callee.name}" [label="{elabel}"];'
            )
        lines.append("}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"CallGraph(nodes={len(self.nodes)}, edges={len(self.edges)})"


# ===========================================================================
# PUBLIC API
# ===========================================================================

def build_callgraph(
    program_ids: Iterable[int],
    loader: ProgramLoader,
) -> CallGraph:
    """Build the call graph of every program reachable from *program_ids*.

    Parameters
    ----------
    program_ids : iterable of int
        Starting programs.
    loader : callable
        ``loader(program_id) -> Program | None``; programs it cannot find
        become ``MISSING`` nodes instead of raising.

    Returns
    -------
    CallGraph
        The constructed call graph.
    """
    cg = CallGraph()
    seen: Set[int] = set()
    worklist: Deque[int] = deque(program_ids)
    while worklist:
        program_id = worklist.popleft()
        if program_id in seen:
            continue
        seen.add(program_id)
        program = loader(program_id)
        if program is None:
            logger.debug("Call graph: %s not found", program_name(program_id))
            cg.get_or_create_node(program_id, kind=NodeKind.MISSING)
            continue
        cg.add_program(program.with_id(program_id))
        worklist.extend(sorted(direct_dependencies(program)))
    return cg


# ---------------------------------------------------------------------------
# Convenience utilities
# ---------------------------------------------------------------------------

def _names(nodes: Iterable[CallGraphNode]) -> str:
    return ", ".join(sorted({n.name for n in nodes})) or "-"


def callgraph_summary(cg: CallGraph, top: int = 5) -> str:
    """
    Describe what blocks or slows evaluation of the crawled programs.

    Missing callees make every program above them unusable, recursive
    groups can never be evaluated, and the most called programs are the
    ones whose cached results are shared the most.
    """
    stats = cg.statistics()
    lines = [
        "Call Graph Summary",
        f"  Programs:             {stats['programs']}",
        f"  Calls:                {stats['total_edges']}"
        f" ({stats['seq_calls']} seq, {stats['cal_calls']} cal)",
        f"  Root programs:        {stats['root_programs']}",
        f"  Leaf programs:        {stats['leaf_programs']}",
    ]

    if cg.missing:
        lines += ["", "Missing programs:"]
        for node in sorted(cg.missing, key=lambda n: n.id):
            blocked = _names(cg.transitive_callers(node))
            lines.append(f"  {node.name}: needed by {_names(node.callers)}; blocks {blocked}")

    groups = find_recursive_programs(cg)
    if groups:
        lines += ["", "Recursive groups:"]
        for group in sorted(groups, key=lambda g: min(n.id for n in g)):
            lines.append(f"  {_names(group)}")

    ranking = cg.most_called(top)
    if ranking:
        lines += ["", "Most called:"]
        for node, count in ranking:
            lines.append(f"  {node.name}: {count} caller{'s' if count != 1 else ''}")

    lines += ["", "Evaluation order (callees first):"]
    for node in cg.bottom_up_order():
        if node.kind is NodeKind.MISSING:
            continue
        lines.append(f"  {node.name}: calls {_names(node.callees)}")
    return "\n".join(lines)


def find_recursive_programs(cg: CallGraph) -> List[Set[CallGraphNode]]:
    """Return a list of sets of mutually-recursive programs.

    Singleton sets indicate direct self-recursion.
    """
    result: List[Set[CallGraphNode]] = []
    for scc in cg.strongly_connected_components():
        if len(scc) == 1:
            if scc[0].is_recursive:
                result.append({scc[0]})
        else:
            result.append(set(scc))
    return result


__all__ = [
    "ProgramLoader",
    "program_name",
    "direct_dependencies",
    "DependencyResolver",
    "NodeKind",
    "CallGraphNode",
    "CallGraphEdge",
    "CallGraph",
    "build_callgraph",
    "callgraph_summary",
    "find_recursive_programs",
]
