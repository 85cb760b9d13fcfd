"""
Gating hierarchies.

A ``GateTree`` organises named gates into a gating strategy. Nodes live in
an arena and refer to each other by integer index, so parent links are plain
integers rather than back-references.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from cytogate.core.gates import Gate, as_population
from cytogate.utils.logging import log_info, log_warn


@dataclass
class GateNode:
    name: str
    gate: Gate
    parent: Optional[int] = None
    children: List[int] = field(default_factory=list)


class GateTree:

    def __init__(self):
        self._nodes = []
        self._by_name = {}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def __len__(self):
        return len(self._nodes)

    def __contains__(self, name):
        return name in self._by_name

    def __iter__(self):
        return iter(range(len(self._nodes)))

    def _resolve(self, ref):
        if isinstance(ref, str):
            try:
                return self._by_name[ref]
            except KeyError:
                raise KeyError(f"No gate named '{ref}' in tree") from None
        index = int(ref)
        if not 0 <= index < len(self._nodes):
            raise IndexError(f"Node index {index} out of range ({len(self._nodes)} nodes)")
        return index

    def node(self, ref):
        return self._nodes[self._resolve(ref)]

    def index_of(self, name):
        return self._by_name.get(name)

    def gate(self, ref):
        return self.node(ref).gate

    def name(self, ref):
        return self.node(ref).name

    def parent(self, ref):
        return self.node(ref).parent

    def children(self, ref):
        return tuple(self.node(ref).children)

    def roots(self):
        return tuple(i for i, n in enumerate(self._nodes) if n.parent is None)

    def root_of(self, ref):
        i = self._resolve(ref)
        while self._nodes[i].parent is not None:
            i = self._nodes[i].parent
        return i

    def ancestors(self, ref):
        """Indices from the parent up to the root."""
        out = []
        p = self.node(ref).parent
        while p is not None:
            out.append(p)
            p = self._nodes[p].parent
        return out

    def _siblings(self, i):
        p = self._nodes[i].parent
        if p is None:
            return None
        return self._nodes[p].children

    def previous_sibling(self, ref):
        i = self._resolve(ref)
        siblings = self._siblings(i)
        if siblings is None:
            return None
        pos = siblings.index(i)
        return siblings[pos - 1] if pos > 0 else None

    def next_sibling(self, ref):
        i = self._resolve(ref)
        siblings = self._siblings(i)
        if siblings is None:
            return None
        pos = siblings.index(i)
        return siblings[pos + 1] if pos + 1 < len(siblings) else None

    def descendant(self, ref, predicate):
        """First direct child whose node satisfies ``predicate``."""
        for c in self.node(ref).children:
            if predicate(self._nodes[c]):
                return c
        return None

    def ancestor(self, ref, predicate):
        """Nearest ancestor whose node satisfies ``predicate``."""
        for a in self.ancestors(ref):
            if predicate(self._nodes[a]):
                return a
        return None

    def walk(self, start=None):
        """Depth-first indices, every parent before its children."""
        stack = list(reversed(self.roots() if start is None else (self._resolve(start),)))
        while stack:
            i = stack.pop()
            yield i
            stack.extend(reversed(self._nodes[i].children))

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def add(self, name, gate, parent=None):
        """Add a named gate, optionally under ``parent``; returns its index."""
        if name in self._by_name:
            raise ValueError(f"Duplicate gate name: '{name}'")
        if not isinstance(gate, Gate):
            raise TypeError(f"Gate '{name}' must be a Gate, got {type(gate).__name__}")
        p = self._resolve(parent) if parent is not None else None

        index = len(self._nodes)
        self._nodes.append(GateNode(name=name, gate=gate, parent=p))
        self._by_name[name] = index
        if p is not None:
            self._nodes[p].children.append(index)
        return index

    def _attach(self, parent_ref, child_ref, front):
        p = self._resolve(parent_ref)
        c = self._resolve(child_ref)
        if p == c or p in self.walk(c):
            raise ValueError(
                f"Cannot move '{self._nodes[c].name}' under its own descendant "
                f"'{self._nodes[p].name}'"
            )
        old = self._nodes[c].parent
        if old is not None:
            self.remove_child(old, c)
        if front:
            self._nodes[p].children.insert(0, c)
        else:
            self._nodes[p].children.append(c)
        self._nodes[c].parent = p

    def append_child(self, parent, child):
        self._attach(parent, child, front=False)

    def prepend_child(self, parent, child):
        self._attach(parent, child, front=True)

    def remove_child(self, parent, child):
        p = self._resolve(parent)
        c = self._resolve(child)
        if c not in self._nodes[p].children:
            raise ValueError(
                f"'{self._nodes[c].name}' is not a child of '{self._nodes[p].name}'"
            )
        self._nodes[p].children.remove(c)
        self._nodes[c].parent = None

    def remove_all_children(self, ref):
        p = self._resolve(ref)
        for c in self._nodes[p].children:
            self._nodes[c].parent = None
        self._nodes[p].children = []

    def sort_children(self, ref, key=None):
        """Sort children by ``key(node)``; by name if no key is given."""
        p = self._resolve(ref)
        key = key or (lambda node: node.name)
        self._nodes[p].children.sort(key=lambda c: key(self._nodes[c]))

    def insert_sibling(self, ref, sibling):
        i = self._resolve(ref)
        p = self._nodes[i].parent
        if p is None:
            raise ValueError(f"'{self._nodes[i].name}' is a root and has no siblings")
        self.append_child(p, sibling)

    # ------------------------------------------------------------------
    # Running the strategy
    # ------------------------------------------------------------------

    def apply(self, source):
        """
        Gate a sample (or population) through the whole tree.

        Root gates see the input population; every other gate sees its
        parent's output. Returns ``{gate name: Population}`` in depth-first
        order. A gate that fails is reported and skipped along with its
        descendants.
        """
        start = as_population(source)
        populations = {}

        stack = [(i, start) for i in reversed(self.roots())]
        while stack:
            i, parent_population = stack.pop()
            node = self._nodes[i]

            result = node.gate.evaluate(parent_population)
            if not result:
                skipped = sum(1 for _ in self.walk(i)) - 1
                log_warn(
                    f"Gate '{node.name}' failed ({result.detail}); "
                    f"skipping it and {skipped} descendant gate(s)."
                )
                continue

            populations[node.name] = result.population
            log_info(f"Gate '{node.name}': {result.population.count} events")
            stack.extend((c, result.population) for c in reversed(node.children))

        return populations

    def format(self):
        """Indented text outline of the tree."""
        lines = []

        def depth(i):
            return len(self.ancestors(i))

        for i in self.walk():
            node = self._nodes[i]
            dims = ", ".join(node.gate.dimensions)
            lines.append(f"{'  ' * depth(i)}- {node.name} [{node.gate.gate_type}: {dims}]")
        return "\n".join(lines)
