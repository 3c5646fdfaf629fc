"""Rewriting scheduler and the RewritingSystem composition root.

The rewrite loop runs in time-bounded slices. Each slice repeats rounds of
find -> shuffle/order -> process until the slice budget is spent, the rules
stop matching, or the event budget is reached. Between slices control is
handed back to the host for ``rewrite_delay`` seconds; that yield is the only
suspension point, and the moment at which cancel() and status() take effect.

Two ways to drive a run:

- ``run(...)`` seeds the graphs and schedules slices on ``threading.Timer``
  threads, returning immediately. ``wait()`` blocks until finished.
- ``start(...)`` seeds the graphs without scheduling; the caller then invokes
  ``tick()`` from its own loop until it returns False.

Example:
    >>> system = RewritingSystem(rng=random.Random(1))
    >>> system.start([Rule([(0, 1)], [(0, 1), (1, 2)])], [(0, 0)], max_events=10)
    >>> while system.tick():
    ...     pass
    >>> system.status()["event_count"]
    10
"""

from __future__ import annotations

import functools
import logging
import os
import random
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from .causal import CausalGraph
from .core import Match, Rule, SpatialHypergraph
from .matcher import find_matches, process_matches

logger = logging.getLogger(__name__)

RuleOrdering = Literal["mixed", "index", "indexrev"]
EventOrdering = Literal["random", "ascending", "descending"]

RULE_ORDERINGS: tuple[str, ...] = ("mixed", "index", "indexrev")
EVENT_ORDERINGS: tuple[str, ...] = ("random", "ascending", "descending")

ProgressCallback = Callable[[int], None]
FinishedCallback = Callable[[], None]


@dataclass
class SchedulerConfig:
    """Timing and budget defaults for the rewrite loop.

    Attributes:
        slice_budget: Seconds of continuous work before yielding
        rewrite_delay: Seconds between slices
        default_max_events: Event budget when run() is not given one
    """

    slice_budget: float = 0.5
    rewrite_delay: float = 0.1
    default_max_events: int = 500

    def __post_init__(self) -> None:
        if self.slice_budget <= 0:
            raise ValueError(f"slice_budget must be positive, got: {self.slice_budget}")
        if self.rewrite_delay < 0:
            raise ValueError(f"rewrite_delay must be non-negative, got: {self.rewrite_delay}")
        if self.default_max_events < 0:
            raise ValueError(
                f"default_max_events must be non-negative, got: {self.default_max_events}"
            )

    @classmethod
    def from_env(cls) -> SchedulerConfig:
        """Read overrides from HYPERWRITE_* environment variables."""
        config = cls()
        if "HYPERWRITE_SLICE_BUDGET_MS" in os.environ:
            config.slice_budget = float(os.environ["HYPERWRITE_SLICE_BUDGET_MS"]) / 1000
        if "HYPERWRITE_REWRITE_DELAY_MS" in os.environ:
            config.rewrite_delay = float(os.environ["HYPERWRITE_REWRITE_DELAY_MS"]) / 1000
        if "HYPERWRITE_MAX_EVENTS" in os.environ:
            config.default_max_events = int(os.environ["HYPERWRITE_MAX_EVENTS"])
        config.__post_init__()
        return config


class RunPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    FINISHED = "finished"
    FAILED = "failed"


@dataclass
class RunState:
    """Counters and hits of one run, carried from slice to slice."""

    step: int = 0
    event_count: int = 0
    max_events: int = 0
    matches: list[Match] = field(default_factory=list)
    duration: float = 0.0
    phase: RunPhase = RunPhase.IDLE
    exhausted: bool = False
    cancelled: bool = False
    error: str | None = None

    @property
    def budget_reached(self) -> bool:
        return self.event_count >= self.max_events

    @property
    def done(self) -> bool:
        return self.phase in (RunPhase.FINISHED, RunPhase.FAILED)


def _compare_ascending(a: Match, b: Match) -> int:
    a_key, b_key = a.order or (), b.order or ()
    for x, y in zip(a_key, b_key):
        if x != y:
            return y - x
    return len(b_key) - len(a_key)


def _compare_descending(a: Match, b: Match) -> int:
    return -_compare_ascending(a, b)


def order_matches(
    matches: list[Match],
    rules: Sequence[Rule],
    causal: CausalGraph,
    rule_ordering: str,
    event_ordering: str,
    rng: random.Random | None,
) -> None:
    """Order a round's hits in place.

    Hits are shuffled first (skipped when ``rng`` is None), then stably
    sorted by causal rank key unless ``event_ordering`` is "random", then
    stably sorted by rule index for "index"/"indexrev" when several rules
    are defined, so rule index ends up as the primary key.

    The rank key of a hit is the first rank label of each bound vertex,
    sorted descending.
    """
    if rng is not None:
        rng.shuffle(matches)

    if event_ordering != "random":
        for match in matches:
            match.order = tuple(
                sorted((causal.rank_of(v)[0] for v in match.mapping), reverse=True)
            )
        if event_ordering == "ascending":
            matches.sort(key=functools.cmp_to_key(_compare_ascending))
        elif event_ordering == "descending":
            matches.sort(key=functools.cmp_to_key(_compare_descending))

    if len(rules) > 1:
        if rule_ordering == "index":
            matches.sort(key=lambda m: m.rule)
        elif rule_ordering == "indexrev":
            matches.sort(key=lambda m: m.rule, reverse=True)


def rewrite_slice(
    state: RunState,
    spatial: SpatialHypergraph,
    causal: CausalGraph,
    rules: Sequence[Rule],
    *,
    rule_ordering: str = "mixed",
    event_ordering: str = "random",
    rng: random.Random | None = None,
    slice_budget: float = 0.5,
) -> RunState:
    """Run rounds until the slice budget is spent or the run is over.

    Args:
        state: Run state to advance (mutated and returned)
        spatial: Hypergraph being rewritten
        causal: Causal graph receiving events
        rules: Active rules
        rule_ordering: "mixed", "index" or "indexrev"
        event_ordering: "random", "ascending" or "descending"
        rng: Shuffle source; None keeps discovery order
        slice_budget: Seconds of work before returning

    Returns:
        ``state``, with ``exhausted`` set when the last search found no hits
    """
    start = time.perf_counter()

    while True:
        state.step += 1
        state.matches = find_matches(spatial, rules)
        if not state.matches:
            state.exhausted = True
            break

        order_matches(state.matches, rules, causal, rule_ordering, event_ordering, rng)

        state.event_count = process_matches(
            spatial,
            causal,
            rules,
            state.matches,
            step=state.step,
            event_count=state.event_count,
            max_events=lambda: state.max_events,
        )
        if state.budget_reached:
            break
        if time.perf_counter() - start >= slice_budget:
            break

    state.duration += time.perf_counter() - start
    return state


class RewritingSystem:
    """Owns a spatial hypergraph, its causal graph and one rewriting run.

    Rules and orderings are fixed for the duration of a run; a new run()
    or start() clears both graphs and reseeds them from the initial edges.
    """

    def __init__(
        self,
        *,
        config: SchedulerConfig | None = None,
        rng: random.Random | None = None,
        seed: int | None = None,
    ) -> None:
        self.config = config or SchedulerConfig()
        if rng is not None and seed is not None:
            raise ValueError("Pass either rng or seed, not both")
        self.rng = rng if rng is not None else random.Random(seed)
        self.shuffle = True

        self.spatial = SpatialHypergraph()
        self.causal = CausalGraph()

        self.rules: list[Rule] = []
        self.initial: list[tuple[int, ...]] = []
        self.rule_ordering: str = "mixed"
        self.event_ordering: str = "random"
        self.on_progress: ProgressCallback | None = None
        self.on_finished: FinishedCallback | None = None

        self.state = RunState()
        self._run_id = 0
        self._timer: threading.Timer | None = None
        self._done = threading.Event()
        self._lock = threading.RLock()

    # ========== Lifecycle ==========

    def start(
        self,
        rules: Sequence[Rule | Sequence[Sequence[Sequence[int]]]],
        initial: Sequence[Sequence[int]],
        rule_ordering: RuleOrdering = "mixed",
        event_ordering: EventOrdering = "random",
        max_events: int | None = None,
        on_progress: ProgressCallback | None = None,
        on_finished: FinishedCallback | None = None,
    ) -> None:
        """Reset and seed a run without scheduling any slice.

        Drive the run with tick(). Rules may be Rule instances or
        ``(lhs, rhs)`` pairs.

        Raises:
            ValueError: On an unknown ordering, a negative budget or a
                malformed rule
        """
        if rule_ordering not in RULE_ORDERINGS:
            raise ValueError(
                f"rule_ordering must be one of {RULE_ORDERINGS}, got: {rule_ordering!r}"
            )
        if event_ordering not in EVENT_ORDERINGS:
            raise ValueError(
                f"event_ordering must be one of {EVENT_ORDERINGS}, got: {event_ordering!r}"
            )
        if max_events is None:
            max_events = self.config.default_max_events
        if max_events < 0:
            raise ValueError(f"max_events must be non-negative, got: {max_events}")
        parsed_rules = [r if isinstance(r, Rule) else Rule(*r) for r in rules]
        initial_edges = [tuple(e) for e in initial]

        with self._lock:
            self._cancel_timer()
            self._run_id += 1
            self._done.clear()

            self.spatial.clear()
            self.causal.clear()
            self.state = RunState(max_events=max_events, phase=RunPhase.PAUSED)

            self.rules = parsed_rules
            self.initial = initial_edges
            self.rule_ordering = rule_ordering
            self.event_ordering = event_ordering
            self.on_progress = on_progress
            self.on_finished = on_finished

            self.spatial.rewrite([], self.initial)
            self.causal.rewrite(
                [], sorted({v for e in self.initial for v in e}), {"step": self.state.step}
            )

        logger.info(
            "Starting run: %d rules, %d initial edges, rule_ordering=%s, "
            "event_ordering=%s, max_events=%d",
            len(self.rules),
            len(self.initial),
            rule_ordering,
            event_ordering,
            max_events,
        )

    def run(
        self,
        rules: Sequence[Rule | Sequence[Sequence[Sequence[int]]]],
        initial: Sequence[Sequence[int]],
        rule_ordering: RuleOrdering = "mixed",
        event_ordering: EventOrdering = "random",
        max_events: int | None = None,
        on_progress: ProgressCallback | None = None,
        on_finished: FinishedCallback | None = None,
    ) -> None:
        """Start a fresh run in the background and return immediately.

        The first slice runs after ``config.rewrite_delay`` seconds.
        on_progress receives the cumulative event count after every slice;
        on_finished is called once when the run ends.
        """
        self.start(
            rules,
            initial,
            rule_ordering,
            event_ordering,
            max_events,
            on_progress,
            on_finished,
        )
        with self._lock:
            self._schedule(self._run_id)

    def tick(self) -> bool:
        """Run one slice synchronously.

        Returns:
            True while more slices are needed, False once finished

        Raises:
            Exception: Anything raised by the slice or a callback; the run
                is marked FAILED first
        """
        with self._lock:
            if self.state.phase in (RunPhase.IDLE, RunPhase.FINISHED, RunPhase.FAILED):
                return False

            state = self.state
            state.phase = RunPhase.RUNNING
            try:
                rewrite_slice(
                    state,
                    self.spatial,
                    self.causal,
                    self.rules,
                    rule_ordering=self.rule_ordering,
                    event_ordering=self.event_ordering,
                    rng=self.rng if self.shuffle else None,
                    slice_budget=self.config.slice_budget,
                )
                if self.on_progress:
                    self.on_progress(state.event_count)
            except Exception as exc:
                state.phase = RunPhase.FAILED
                state.error = f"{type(exc).__name__}: {exc}"
                raise

            # on_progress may have started a new run
            if state is not self.state:
                return False

            state.matches = []
            if state.exhausted or state.budget_reached:
                self._finish()
                return False

            state.phase = RunPhase.PAUSED
            return True

    def cancel(self) -> None:
        """Request a graceful stop.

        The remaining budget drops to zero; a slice in flight completes its
        current application and the run then finishes normally.
        """
        self.state.cancelled = True
        self.state.max_events = 0
        logger.info("Cancellation requested after %d events", self.state.event_count)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the run finishes.

        Returns:
            True if finished, False on timeout
        """
        return self._done.wait(timeout)

    def status(self) -> dict[str, Any]:
        """Snapshot of the current run."""
        state = self.state
        return {
            "phase": state.phase.value,
            "step": state.step,
            "event_count": state.event_count,
            "max_events": state.max_events,
            "cancelled": state.cancelled,
            "exhausted": state.exhausted,
            "secs": round(state.duration, 3),
            "num_edges": self.spatial.num_edges,
            "num_causal_events": self.causal.num_events,
            "error": state.error,
        }

    # ========== Internals ==========

    def _finish(self) -> None:
        run_id = self._run_id
        self.state.phase = RunPhase.FINISHED
        logger.info(
            "Run finished: %d events in %d steps (%.3fs)",
            self.state.event_count,
            self.state.step,
            self.state.duration,
        )
        try:
            if self.on_finished:
                self.on_finished()
        finally:
            # on_finished may have started a new run that owns _done now
            if run_id == self._run_id:
                self._done.set()

    def _schedule(self, run_id: int) -> None:
        timer = threading.Timer(self.config.rewrite_delay, self._rewrite, args=(run_id,))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _rewrite(self, run_id: int) -> None:
        """Timer callback: one slice, then reschedule unless finished."""
        with self._lock:
            # A newer run replaced the one this timer belongs to
            if run_id != self._run_id:
                return
            try:
                more = self.tick()
            except Exception as exc:
                logger.exception("Rewrite slice failed")
                if run_id == self._run_id:
                    self.state.phase = RunPhase.FAILED
                    if self.state.error is None:
                        self.state.error = f"{type(exc).__name__}: {exc}"
                    self._done.set()
                return
            # A callback started a new run, which scheduled its own timer
            if run_id != self._run_id:
                return
            if more:
                self._schedule(run_id)
            else:
                self._timer = None
