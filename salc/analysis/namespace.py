"""Batch-wide namespace table for cross-file ``use`` imports.

The table is built in two phases. While open, every parsed file registers
its exported declarations and its ``use`` statements. ``freeze()`` then
returns an immutable ``FrozenNamespace`` that is shared read-only by the
per-file resolution work; nothing mutates it afterwards.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from graphlib import CycleError, TopologicalSorter
from types import MappingProxyType

from salc.errors import CyclicImportError, UnresolvedImportError
from salc.parser.ast_nodes import (
    Module, Statement, UseStmt, ConstantBufferStmt, ConstantStmt, OutputStmt,
    VertexFormatStmt, PipelineStmt, BlendFuncStmt,
)

logger = logging.getLogger(__name__)

_KINDS = {
    ConstantBufferStmt: "constant_buffer",
    ConstantStmt: "constant",
    OutputStmt: "output",
    VertexFormatStmt: "vertex_format",
    PipelineStmt: "pipeline",
    BlendFuncStmt: "blendfunc",
}


@dataclass(frozen=True)
class Symbol:
    name: str
    file: str        # defining file
    kind: str
    statement: Statement


@dataclass(frozen=True)
class ResolvedImport:
    use: UseStmt
    symbol: Symbol


class NamespaceTable:
    def __init__(self):
        self._exports: dict[str, dict[str, Symbol]] = {}
        self._uses: dict[str, list[UseStmt]] = {}
        self._frozen = False

    def register(self, module: Module) -> None:
        if self._frozen:
            raise RuntimeError("namespace table is frozen")
        exports = self._exports.setdefault(module.file, {})
        uses = self._uses.setdefault(module.file, [])
        for stmt in module.statements:
            if isinstance(stmt, UseStmt):
                uses.append(stmt)
                continue
            kind = _KINDS.get(type(stmt))
            if kind is None:
                continue
            # First definition wins; the model builder reports duplicates.
            exports.setdefault(stmt.name, Symbol(stmt.name, module.file, kind, stmt))
        logger.debug("registered %d export(s) for %s", len(exports), module.file)

    def freeze(self) -> FrozenNamespace:
        self._frozen = True
        return FrozenNamespace(self._exports, self._uses)


class FrozenNamespace:
    def __init__(self, exports: dict[str, dict[str, Symbol]], uses: dict[str, list[UseStmt]]):
        self._exports = MappingProxyType({
            f: MappingProxyType(dict(syms)) for f, syms in exports.items()
        })
        self._uses = MappingProxyType({f: tuple(u) for f, u in uses.items()})
        self._graph = MappingProxyType({
            f: frozenset(u.namespace for u in us) for f, us in self._uses.items()
        })
        self._cycles = MappingProxyType(self._find_cycles())

    @property
    def files(self) -> list[str]:
        return list(self._exports)

    @property
    def import_graph(self) -> MappingProxyType:
        return self._graph

    def lookup(self, file: str, name: str) -> Symbol | None:
        """A symbol exported (declared) by ``file``."""
        syms = self._exports.get(file)
        if syms is None:
            return None
        return syms.get(name)

    def resolve_name(self, file: str, name: str) -> Symbol | None:
        """Resolve ``name`` in the scope of ``file``: its own declarations
        first, then the local names introduced by its ``use`` statements."""
        sym = self.lookup(file, name)
        if sym is not None:
            return sym
        for use in self._uses.get(file, ()):
            if use.name == name:
                return self.lookup(use.namespace, use.member)
        return None

    def _find_cycles(self) -> dict[str, tuple[str, ...]]:
        pending = {
            f: {d for d in deps if d in self._graph}
            for f, deps in self._graph.items()
        }
        cycles = {}
        while True:
            try:
                TopologicalSorter(pending).prepare()
                break
            except CycleError as e:
                # graphlib walks from a file to its importers; flip to import order
                cycle = list(reversed(e.args[1]))
                ring = cycle[:-1]
                for i, node in enumerate(ring):
                    rotated = ring[i:] + ring[:i]
                    cycles.setdefault(node, tuple(rotated + [node]))
                for node in ring:
                    pending.pop(node, None)
                for deps in pending.values():
                    deps.difference_update(ring)
        return cycles

    def dependency_cycle(self, file: str) -> tuple[str, ...] | None:
        """Import path from ``file`` into a cycle, or None if acyclic."""
        if file in self._cycles:
            return self._cycles[file]
        seen = {file}
        stack = [(file, (file,))]
        while stack:
            node, path = stack.pop()
            for dep in sorted(self._graph.get(node, ())):
                if dep in self._cycles:
                    return path + self._cycles[dep]
                if dep not in seen:
                    seen.add(dep)
                    stack.append((dep, path + (dep,)))
        return None


def resolve_imports(module: Module, namespace: FrozenNamespace) -> list[ResolvedImport]:
    """Phase 2: look every ``use`` of ``module`` up in the frozen table."""
    cycle = namespace.dependency_cycle(module.file)
    if cycle is not None:
        first_hop = cycle[1]
        use = next(u for u in module.uses if u.namespace == first_hop)
        raise CyclicImportError(list(cycle), module.file, *_pos(use))

    resolved = []
    for use in module.uses:
        sym = namespace.lookup(use.namespace, use.member)
        if sym is None:
            raise UnresolvedImportError(use.namespace, use.member, module.file, *_pos(use))
        logger.debug("%s: resolved use %s::%s as %s", module.file, use.namespace, use.member, use.name)
        resolved.append(ResolvedImport(use, sym))
    return resolved


def _pos(stmt) -> tuple[int, int]:
    if stmt.loc is None:
        return (0, 0)
    return (stmt.loc.line, stmt.loc.column)
