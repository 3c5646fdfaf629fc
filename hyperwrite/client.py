"""Hyperwrite client — the primary interface for running hypergraph rewriting."""

from __future__ import annotations

import random
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, Union

from hyperwrite.engine.causal import CausalEvent as CoreEvent
from hyperwrite.engine.core import Rule
from hyperwrite.engine.persistence import load_run, save_run
from hyperwrite.engine.scheduler import RewritingSystem, SchedulerConfig
from hyperwrite.models import (
    CausalEvent,
    EventOrdering,
    RewriteStats,
    RuleOrdering,
    RuleSpec,
    RunStatus,
    ValidationResult,
)

RuleLike = Union[Rule, RuleSpec, dict, str]


def _to_rule(rule: RuleLike) -> Rule:
    if isinstance(rule, Rule):
        return rule
    if isinstance(rule, RuleSpec):
        return rule.to_rule()
    if isinstance(rule, dict):
        return RuleSpec.model_validate(rule).to_rule()
    if isinstance(rule, str):
        return RuleSpec.model_validate_json(rule).to_rule()
    raise TypeError(f"Unsupported rule type: {type(rule).__name__}")


def _core_event_to_model(ev: CoreEvent) -> CausalEvent:
    return CausalEvent(
        id=ev.id,
        consumed=list(ev.consumed),
        produced=list(ev.produced),
        step=ev.step,
        rank=ev.rank,
        causes=list(ev.causes),
    )


class Rewriter:
    """A hypergraph rewriting client.

    Wraps a RewritingSystem: runs rules over an initial hypergraph and exposes
    the resulting edges and causal graph as plain Python values and pydantic
    models.

    Example:
        ```python
        rw = Rewriter(seed=7)
        rw.run([{"lhs": [["x", "y"]], "rhs": [["x", "y"], ["y", "z"]]}], [[0, 0]], max_events=50)
        rw.edges()        # 51 edges
        rw.events()       # 51 causal events (including the initial one)
        ```
    """

    def __init__(
        self,
        *,
        seed: int | None = None,
        rng: random.Random | None = None,
        config: SchedulerConfig | None = None,
    ) -> None:
        self._system = RewritingSystem(config=config or SchedulerConfig.from_env(), rng=rng, seed=seed)

    @property
    def system(self) -> RewritingSystem:
        """The underlying engine instance."""
        return self._system

    def __enter__(self) -> Rewriter:
        return self

    def __exit__(self, *args: object) -> None:
        self.cancel()

    # --- Running ---

    def run(
        self,
        rules: Sequence[RuleLike],
        initial: Sequence[Sequence[int]],
        *,
        rule_ordering: RuleOrdering = "mixed",
        event_ordering: EventOrdering = "random",
        max_events: int | None = None,
        on_progress: Callable[[int], None] | None = None,
        on_finished: Callable[[], None] | None = None,
        wait: bool = True,
        timeout: float | None = None,
    ) -> RunStatus:
        """Start a run on background timer threads.

        Args:
            rules: Rules as RuleSpec, dicts, JSON strings or engine Rules
            initial: Initial edges
            rule_ordering: "mixed", "index" or "indexrev"
            event_ordering: "random", "ascending" or "descending"
            max_events: Event budget (defaults to the configured budget)
            on_progress: Called with the event count after each slice
            on_finished: Called once when the run ends
            wait: Block until the run finishes (or ``timeout`` expires)
            timeout: Seconds to wait when ``wait`` is True

        Returns:
            Status snapshot after waiting (or right after scheduling)
        """
        self._system.run(
            [_to_rule(r) for r in rules],
            initial,
            rule_ordering,
            event_ordering,
            max_events,
            on_progress,
            on_finished,
        )
        if wait:
            self._system.wait(timeout)
        return self.status()

    def run_sync(
        self,
        rules: Sequence[RuleLike],
        initial: Sequence[Sequence[int]],
        *,
        rule_ordering: RuleOrdering = "mixed",
        event_ordering: EventOrdering = "random",
        max_events: int | None = None,
        on_progress: Callable[[int], None] | None = None,
        on_finished: Callable[[], None] | None = None,
    ) -> RunStatus:
        """Run to completion on the calling thread, slice by slice."""
        self._system.start(
            [_to_rule(r) for r in rules],
            initial,
            rule_ordering,
            event_ordering,
            max_events,
            on_progress,
            on_finished,
        )
        while self._system.tick():
            pass
        return self.status()

    def reseed(self, seed: int | None) -> None:
        """Replace the shuffle source; None draws a fresh unseeded one."""
        self._system.rng = random.Random(seed)

    def cancel(self) -> None:
        """Request a graceful stop of the current run."""
        self._system.cancel()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the current run finishes. Returns False on timeout."""
        return self._system.wait(timeout)

    def status(self) -> RunStatus:
        return RunStatus(**self._system.status())

    # --- Results ---

    @property
    def rules(self) -> list[RuleSpec]:
        return [RuleSpec.from_rule(r) for r in self._system.rules]

    def edges(self) -> list[list[int]]:
        """Live edges of the spatial hypergraph, duplicates included."""
        return [list(e) for e in self._system.spatial.edges()]

    def events(self) -> list[CausalEvent]:
        """Causal events in the order they were recorded."""
        return [_core_event_to_model(e) for e in self._system.causal.events()]

    def causal_edges(self) -> list[tuple[int, int]]:
        """(cause, effect) pairs between causal events."""
        return self._system.causal.causal_edges()

    def stats(self) -> RewriteStats:
        spatial = self._system.spatial.stats()
        causal = self._system.causal.stats()
        return RewriteStats(
            edge_count=spatial["num_edges"],
            distinct_edge_count=spatial["num_distinct_edges"],
            vertex_count=spatial["num_vertices"],
            maxv=spatial["maxv"],
            edges_by_arity=spatial["edges_by_arity"],
            event_count=causal["num_events"],
            causal_edge_count=causal["num_causal_edges"],
            max_rank=causal["max_rank"],
            steps=self._system.state.step,
        )

    def validate(self) -> ValidationResult:
        """Check store indexes and the provenance invariants.

        Every vertex of a live edge must have been introduced by exactly one
        causal event, and ``maxv`` must bound every vertex in use.
        """
        spatial = self._system.spatial
        causal = self._system.causal
        result = spatial.validate()
        errors: list[str] = list(result["errors"])
        warnings: list[str] = []

        for v in spatial.vertices():
            if causal.introduced_by(v) is None:
                errors.append(f"Vertex {v} was not introduced by any causal event")

        events = causal.events()
        if events and events[0].consumed:
            warnings.append("Initial causal event consumes vertices")

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    # --- Serialization ---

    def to_dict(self) -> dict[str, Any]:
        return {
            "rules": [r.model_dump() for r in self.rules],
            "spatial": self._system.spatial.to_dict(),
            "causal": self._system.causal.to_dict(),
            "status": self.status().model_dump(),
        }

    def save(self, path: str | Path) -> None:
        """Write a JSON snapshot of the current run."""
        save_run(
            path,
            self._system.rules,
            self._system.spatial,
            self._system.causal,
            self._system.status(),
        )

    @classmethod
    def load(cls, path: str | Path, **kwargs: Any) -> Rewriter:
        """Restore graphs and rules from a snapshot; the run itself is not resumed."""
        rules, spatial, causal, _status = load_run(path)
        rw = cls(**kwargs)
        rw._system.rules = rules
        rw._system.spatial = spatial
        rw._system.causal = causal
        return rw
