"""Causal graph store.

Records one event per applied rewrite. Each event lists the spatial vertices
it consumed (the match) and the vertices it produced (every vertex of the
added edges). An event causally depends on the events that most recently
produced any of its consumed vertices, which gives every event a causal rank
(its depth in the causal DAG) and every vertex a rank label used to order
concurrent matches.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class CausalEvent:
    """One node of the causal graph.

    Attributes:
        id: Dense event index; the seeding event is 0
        consumed: Vertices the event depended on (the match's bound vertices)
        produced: Sorted, deduplicated vertices of the added edges
        step: Scheduler step in which the event occurred
        rank: 0 without causes, else 1 + the highest rank among causes
        causes: Sorted ids of the events this event depends on
    """

    id: int
    consumed: tuple[int, ...]
    produced: tuple[int, ...]
    step: int
    rank: int = 0
    causes: tuple[int, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "consumed": list(self.consumed),
            "produced": list(self.produced),
            "step": self.step,
            "rank": self.rank,
            "causes": list(self.causes),
        }


class CausalGraph:
    """Append-only causal graph with per-vertex rank labels."""

    def __init__(self) -> None:
        self._events: list[CausalEvent] = []
        # Vertex -> ranks of the events that produced it, most recent first
        self._labels: dict[int, list[int]] = {}
        # Vertex -> id of the event that most recently produced it
        self._last_producer: dict[int, int] = {}
        # Vertex -> id of the event that first introduced it
        self._introduced_by: dict[int, int] = {}
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
        return self.num_events

    @property
    def num_events(self) -> int:
        with self._lock:
            return len(self._events)

    def clear(self) -> None:
        """Drop every event and label."""
        with self._lock:
            self._events.clear()
            self._labels.clear()
            self._last_producer.clear()
            self._introduced_by.clear()

    def rewrite(
        self,
        consumed: Sequence[int],
        produced: Sequence[int],
        meta: Mapping[str, Any] | None = None,
    ) -> CausalEvent:
        """Append an event linking consumed vertices to produced ones.

        Args:
            consumed: Vertices the event depends on
            produced: Vertices the event outputs
            meta: Event metadata; ``step`` is read from it

        Returns:
            The recorded event
        """
        step = int((meta or {}).get("step", 0))
        with self._lock:
            causes = sorted(
                {self._last_producer[v] for v in consumed if v in self._last_producer}
            )
            rank = 1 + max(self._events[c].rank for c in causes) if causes else 0
            event = CausalEvent(
                id=len(self._events),
                consumed=tuple(consumed),
                produced=tuple(sorted(set(produced))),
                step=step,
                rank=rank,
                causes=tuple(causes),
            )
            self._events.append(event)
            for v in event.produced:
                self._labels.setdefault(v, []).insert(0, rank)
                self._last_producer[v] = event.id
                self._introduced_by.setdefault(v, event.id)
            return event

    def rank_of(self, vertex: int) -> list[int]:
        """Rank labels of ``vertex``, most recent producer first.

        Raises:
            KeyError: If no event has produced the vertex
        """
        with self._lock:
            return list(self._labels[vertex])

    def has_vertex(self, vertex: int) -> bool:
        with self._lock:
            return vertex in self._labels

    def introduced_by(self, vertex: int) -> int | None:
        """Id of the event that first produced ``vertex``, or None."""
        with self._lock:
            return self._introduced_by.get(vertex)

    def get_event(self, event_id: int) -> CausalEvent | None:
        with self._lock:
            if 0 <= event_id < len(self._events):
                return self._events[event_id]
            return None

    def events(self) -> list[CausalEvent]:
        """All events in recording order."""
        with self._lock:
            return list(self._events)

    def causal_edges(self) -> list[tuple[int, int]]:
        """All (cause, effect) event pairs."""
        with self._lock:
            return [(c, e.id) for e in self._events for c in e.causes]

    def generations(self) -> dict[int, list[int]]:
        """Event ids grouped by causal rank."""
        with self._lock:
            groups: dict[int, list[int]] = defaultdict(list)
            for e in self._events:
                groups[e.rank].append(e.id)
            return dict(sorted(groups.items()))

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "num_events": len(self._events),
                "num_causal_edges": sum(len(e.causes) for e in self._events),
                "max_rank": max((e.rank for e in self._events), default=-1),
                "num_vertices": len(self._labels),
            }

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {"events": [e.to_dict() for e in self._events]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CausalGraph:
        """Replay to_dict() output into a new graph."""
        graph = cls()
        for e in data.get("events", []):
            graph.rewrite(e["consumed"], e["produced"], {"step": e.get("step", 0)})
        return graph
