"""Core data structures and the spatial hypergraph store.

A minimal multigraph of ordered integer hyperedges, sized for rewriting:
edges are plain tuples of vertex ids, duplicates are meaningful, and every
lookup the rewriting loop needs (template search, multiplicity count, bulk
delta application) is served from an index.

Thread Safety:
    This module is thread-safe. All operations on SpatialHypergraph are
    protected by an internal RLock (reentrant lock), allowing safe concurrent
    inspection from other threads while a rewrite is in progress.

    For atomic multi-step reads or writes, use the batch() context manager:
        with store.batch():
            if store.count(lhs):
                store.rewrite(lhs, rhs)

References:
- Wolfram: "A Class of Models with the Potential to Represent Fundamental
  Physics" (2020), section 2 (hypergraph rewriting)
"""

from __future__ import annotations

import logging
import threading
from collections import Counter, defaultdict
from collections.abc import Generator, Iterable, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

Edge = tuple[int, ...]
Pattern = tuple[int, ...]

# Free position in a search template
ANY = -1


def _as_edge(values: Iterable[Any], what: str = "Edge") -> tuple[int, ...]:
    edge = tuple(values)
    for v in edge:
        if isinstance(v, bool) or not isinstance(v, int):
            raise TypeError(f"{what} entries must be integers, got: {type(v).__name__}")
        if v < 0:
            raise ValueError(f"{what} entries must be non-negative, got: {v}")
    return edge


@dataclass(frozen=True)
class Rule:
    """A rewriting rule: replace an occurrence of ``lhs`` by ``rhs``.

    Patterns hold pattern-variable indices. Left-hand-side variables must be
    numbered ``0..k-1``; variables appearing only on the right-hand side
    (``>= k``) denote freshly created vertices.

    Attributes:
        lhs: Left-hand-side patterns, matched in declared order
        rhs: Right-hand-side patterns

    Raises:
        TypeError: If a pattern variable is not an integer
        ValueError: If lhs is empty, a pattern is empty, or lhs variables
                    are not numbered contiguously from 0
    """

    lhs: tuple[Pattern, ...]
    rhs: tuple[Pattern, ...] = ()

    def __post_init__(self) -> None:
        lhs = tuple(_as_edge(p, "Pattern") for p in self.lhs)
        rhs = tuple(_as_edge(p, "Pattern") for p in self.rhs)
        if not lhs:
            raise ValueError("Rule lhs must contain at least one pattern")
        if any(len(p) == 0 for p in lhs + rhs):
            raise ValueError("Rule patterns must have non-zero arity")
        variables = {v for p in lhs for v in p}
        if variables != set(range(len(variables))):
            raise ValueError(
                f"Rule lhs variables must be numbered 0..{len(variables) - 1}, "
                f"got: {sorted(variables)}"
            )
        # Normalise nested lists to tuples on a frozen instance
        object.__setattr__(self, "lhs", lhs)
        object.__setattr__(self, "rhs", rhs)

    @property
    def num_variables(self) -> int:
        """Number of variables bound by a complete lhs match."""
        return max(v for p in self.lhs for v in p) + 1

    @property
    def fresh_variables(self) -> list[int]:
        """Variables that only occur on the right-hand side."""
        bound = self.num_variables
        return sorted({v for p in self.rhs for v in p if v >= bound})

    def __str__(self) -> str:
        def fmt(patterns: tuple[Pattern, ...]) -> str:
            return "".join("(" + ",".join(str(v) for v in p) + ")" for p in patterns)

        return f"{fmt(self.lhs)}->{fmt(self.rhs)}"

    @classmethod
    def from_labels(
        cls,
        lhs: Sequence[Sequence[Any]],
        rhs: Sequence[Sequence[Any]] = (),
    ) -> Rule:
        """Build a rule from patterns over arbitrary int or string labels.

        Labels are renumbered by first appearance, left-hand side first, so
        ``[["x", "y"]] -> [["x", "y"], ["y", "z"]]`` and
        ``[[1, 2]] -> [[1, 2], [2, 3]]`` give the same rule.

        Raises:
            TypeError: If a label is not an int or a string
            ValueError: If the renumbered rule is malformed
        """
        index: dict[Any, int] = {}
        for pattern in list(lhs) + list(rhs):
            for label in pattern:
                if isinstance(label, bool) or not isinstance(label, (int, str)):
                    raise TypeError(
                        f"Pattern labels must be integers or strings, got: {type(label).__name__}"
                    )
                index.setdefault(label, len(index))
        return cls(
            tuple(tuple(index[x] for x in p) for p in lhs),
            tuple(tuple(index[x] for x in p) for p in rhs),
        )


@dataclass
class Match:
    """A candidate application of a rule, not yet validated against live state.

    Attributes:
        rule: Index of the rule in the active rule list
        mapping: Concrete vertex bound to each lhs variable, by variable index
        order: Ordering key attached by event ordering (None when unused)
    """

    rule: int
    mapping: tuple[int, ...]
    order: tuple[int, ...] | None = None


class SpatialHypergraph:
    """Multigraph store of ordered hyperedges.

    Design principles:
    - Edges are tuples of non-negative vertex ids; arity is significant
    - Identical edges are kept as separate copies (multiplicity)
    - ``maxv`` only grows between clears, so fresh ids never collide
    - Positional index for template search
    """

    def __init__(self) -> None:
        # Live copies per distinct edge, insertion ordered
        self._counts: dict[Edge, int] = {}
        # Position index: (arity, position, vertex) -> distinct edges
        self._by_position: dict[tuple[int, int, int], dict[Edge, None]] = defaultdict(dict)
        # Arity index: arity -> distinct edges
        self._by_arity: dict[int, dict[Edge, None]] = defaultdict(dict)
        self._num_edges = 0
        self._maxv = -1
        self._lock = threading.RLock()

    def __getstate__(self) -> dict[str, Any]:
        """Support for pickle/deepcopy - exclude the lock."""
        state = self.__dict__.copy()
        del state["_lock"]
        return state

    def __setstate__(self, state: dict[str, Any]) -> None:
        """Support for pickle/deepcopy - recreate the lock."""
        self.__dict__.update(state)
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return self.num_edges

    # ========== Thread Safety ==========

    @contextmanager
    def batch(self) -> Generator[None, None, None]:
        """Hold lock for multiple operations - provides isolation, NOT rollback.

        Yields:
            None
        """
        with self._lock:
            yield

    # ========== Properties ==========

    @property
    def maxv(self) -> int:
        """Highest vertex id seen since the last clear, -1 when empty."""
        with self._lock:
            return self._maxv

    @property
    def num_edges(self) -> int:
        """Number of live edges, counting duplicates."""
        with self._lock:
            return self._num_edges

    # ========== Mutation ==========

    def clear(self) -> None:
        """Remove every edge and reset ``maxv``."""
        with self._lock:
            self._counts.clear()
            self._by_position.clear()
            self._by_arity.clear()
            self._num_edges = 0
            self._maxv = -1

    def _add(self, edge: Edge) -> None:
        n = self._counts.get(edge, 0)
        self._counts[edge] = n + 1
        self._num_edges += 1
        if n == 0:
            arity = len(edge)
            self._by_arity[arity][edge] = None
            for pos, v in enumerate(edge):
                self._by_position[(arity, pos, v)][edge] = None
        if edge and max(edge) > self._maxv:
            self._maxv = max(edge)

    def _remove(self, edge: Edge) -> bool:
        n = self._counts.get(edge, 0)
        if n == 0:
            return False
        self._num_edges -= 1
        if n > 1:
            self._counts[edge] = n - 1
            return True
        del self._counts[edge]
        arity = len(edge)
        del self._by_arity[arity][edge]
        if not self._by_arity[arity]:
            del self._by_arity[arity]
        for pos, v in enumerate(edge):
            key = (arity, pos, v)
            del self._by_position[key][edge]
            # Clean up empty index buckets
            if not self._by_position[key]:
                del self._by_position[key]
        return True

    def rewrite(self, remove: Sequence[Sequence[int]], add: Sequence[Sequence[int]]) -> None:
        """Remove one copy of each edge in ``remove``, then add ``add``.

        Absent entries in ``remove`` are skipped; callers are expected to
        have checked presence with count() beforehand.

        Args:
            remove: Edges to delete (one copy each)
            add: Edges to append
        """
        to_remove = [_as_edge(e) for e in remove]
        to_add = [_as_edge(e) for e in add]
        with self._lock:
            for edge in to_remove:
                if not self._remove(edge):
                    logger.debug("Edge %s not present, removal skipped", edge)
            for edge in to_add:
                self._add(edge)

    # ========== Queries ==========

    def find(self, template: Sequence[int]) -> list[Edge]:
        """Find distinct live edges matching a partially bound template.

        Positions holding ``ANY`` are unconstrained, other positions must
        equal the edge's vertex at that position.

        Args:
            template: Edge template of the wanted arity

        Returns:
            Distinct matching edges in first-insertion order
        """
        with self._lock:
            arity = len(template)
            buckets = [
                self._by_position.get((arity, pos, v), {})
                for pos, v in enumerate(template)
                if v != ANY
            ]
            if not buckets:
                return list(self._by_arity.get(arity, {}))
            buckets.sort(key=len)
            smallest, rest = buckets[0], buckets[1:]
            return [e for e in smallest if all(e in b for b in rest)]

    def count(self, edges: Sequence[Sequence[int]]) -> int:
        """Count how many complete copies of an edge multiset are present.

        An edge required ``k`` times that is present ``n`` times allows
        ``n // k`` copies; the result is the minimum over all distinct edges.

        Args:
            edges: Concrete edges, possibly repeated

        Returns:
            Multiplicity of the edge set, 0 if any edge is missing
        """
        required = Counter(tuple(e) for e in edges)
        if not required:
            return 0
        with self._lock:
            return min(self._counts.get(e, 0) // k for e, k in required.items())

    def multiplicity(self, edge: Sequence[int]) -> int:
        """Number of live copies of a single edge."""
        with self._lock:
            return self._counts.get(tuple(edge), 0)

    def has_edge(self, edge: Sequence[int]) -> bool:
        """Check if at least one copy of ``edge`` is live."""
        return self.multiplicity(edge) > 0

    def edges(self) -> list[Edge]:
        """All live edges, duplicates repeated, in first-insertion order."""
        with self._lock:
            return [e for e, n in self._counts.items() for _ in range(n)]

    def distinct_edges(self) -> list[Edge]:
        """Distinct live edges in first-insertion order."""
        with self._lock:
            return list(self._counts)

    def vertices(self) -> list[int]:
        """Sorted ids of every vertex referenced by a live edge."""
        with self._lock:
            return sorted({v for e in self._counts for v in e})

    def stats(self) -> dict[str, Any]:
        """Get hypergraph statistics.

        Returns:
            Dict with num_edges, num_distinct_edges, num_vertices, maxv
            and edges_by_arity
        """
        with self._lock:
            by_arity: dict[int, int] = defaultdict(int)
            for e, n in self._counts.items():
                by_arity[len(e)] += n
            return {
                "num_edges": self._num_edges,
                "num_distinct_edges": len(self._counts),
                "num_vertices": len({v for e in self._counts for v in e}),
                "maxv": self._maxv,
                "edges_by_arity": dict(sorted(by_arity.items())),
            }

    def validate(self) -> dict[str, Any]:
        """Validate index consistency and the ``maxv`` high-water mark.

        Returns:
            Dict with 'valid' (bool) and 'errors' (list of error descriptions)
        """
        with self._lock:
            errors: list[str] = []
            total = 0
            for edge, n in self._counts.items():
                total += n
                if n < 1:
                    errors.append(f"Edge {edge} has non-positive count {n}")
                if edge not in self._by_arity.get(len(edge), {}):
                    errors.append(f"Arity index is missing edge {edge}")
                for pos, v in enumerate(edge):
                    if edge not in self._by_position.get((len(edge), pos, v), {}):
                        errors.append(f"Position index is missing edge {edge} at {pos}")
                    if v > self._maxv:
                        errors.append(f"Edge {edge} references vertex {v} above maxv {self._maxv}")
            if total != self._num_edges:
                errors.append(f"Edge count {self._num_edges} does not match stored copies {total}")
            for (arity, pos, v), bucket in self._by_position.items():
                for edge in bucket:
                    if edge not in self._counts:
                        errors.append(f"Position index ({arity}, {pos}, {v}) references dead edge {edge}")
            return {"valid": not errors, "errors": errors}

    # ========== Serialization ==========

    def to_dict(self) -> dict[str, Any]:
        """Export live edges (with duplicates) and ``maxv``."""
        with self._lock:
            return {"maxv": self._maxv, "edges": [list(e) for e in self.edges()]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SpatialHypergraph:
        """Rebuild a store from to_dict() output."""
        store = cls()
        store.rewrite([], data.get("edges", []))
        # Keep the high-water mark even if its vertex is no longer referenced
        store._maxv = max(store._maxv, int(data.get("maxv", -1)))
        return store
