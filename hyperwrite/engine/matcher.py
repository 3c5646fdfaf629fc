"""Pattern mapping, match finding and match processing.

One rewriting round is find -> order -> process:

- find_matches() enumerates every occurrence of every rule's left-hand side
  against the current hypergraph (a backtracking join over lhs patterns),
  replicated by multiplicity.
- process_matches() walks the ordered hit list, re-checks each hit against
  the live hypergraph and applies the factored delta of those still present.

Matches are found against a snapshot but validated against live state, so
two hits competing for the same edge are resolved in list order without any
locking: the later one fails its presence check and is skipped.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from .causal import CausalGraph
from .core import ANY, Edge, Match, Pattern, Rule, SpatialHypergraph

logger = logging.getLogger(__name__)

# Placeholder for a not-yet-bound variable inside a partial assignment
UNBOUND = -1


def map_patterns(
    graph: SpatialHypergraph,
    patterns: Sequence[Pattern],
    mapping: Sequence[int],
) -> list[Edge]:
    """Substitute pattern variables with concrete vertices.

    Variables below ``len(mapping)`` take their bound vertex. Any other
    variable ``v`` becomes the fresh vertex ``maxv + (v - len(mapping)) + 1``,
    so repeated occurrences of one unbound variable agree within a call.

    Args:
        graph: Hypergraph providing the current ``maxv``
        patterns: Patterns to substitute
        mapping: Vertex bound to each variable index

    Returns:
        The concrete edges, one per pattern
    """
    bound = len(mapping)
    maxv = graph.maxv
    return [
        tuple(mapping[v] if v < bound else maxv + (v - bound) + 1 for v in p)
        for p in patterns
    ]


def match_template(pattern: Pattern, partial: Sequence[int]) -> tuple[int, ...]:
    """Search template for ``pattern`` under a partial assignment.

    Bound variables keep their vertex; unbound ones become ``ANY``.
    """
    return tuple(
        partial[v] if v < len(partial) and partial[v] != UNBOUND else ANY for v in pattern
    )


def _extend(pattern: Pattern, partial: list[int], edge: Edge) -> list[int] | None:
    """Bind ``pattern``'s variables to ``edge``, or None on a conflict."""
    extended = list(partial)
    for v, vertex in zip(pattern, edge):
        if extended[v] == UNBOUND:
            extended[v] = vertex
        elif extended[v] != vertex:
            return None
    return extended


def find_matches(graph: SpatialHypergraph, rules: Sequence[Rule]) -> list[Match]:
    """Enumerate all left-hand-side occurrences of every rule.

    Each distinct edge seeds the first lhs pattern of every rule of equal
    arity; remaining patterns are joined one at a time in declared order. A
    complete assignment is reported once per copy of its full lhs edge set.

    Args:
        graph: Hypergraph to search (not modified)
        rules: Rules to match

    Returns:
        Unordered list of hits
    """
    matches: list[Match] = []
    if not rules:
        return matches

    with graph.batch():
        for edge in graph.distinct_edges():
            for index, rule in enumerate(rules):
                first = rule.lhs[0]
                if len(edge) != len(first):
                    continue

                seed = _extend(first, [UNBOUND] * rule.num_variables, edge)
                if seed is None:
                    continue

                partials = [seed]
                for pattern in rule.lhs[1:]:
                    next_partials = []
                    for partial in partials:
                        for found in graph.find(match_template(pattern, partial)):
                            extended = _extend(pattern, partial, found)
                            if extended is not None:
                                next_partials.append(extended)
                    partials = next_partials
                    if not partials:
                        break

                for partial in partials:
                    mapping = tuple(partial)
                    copies = graph.count(map_patterns(graph, rule.lhs, mapping))
                    matches.extend(Match(index, mapping) for _ in range(copies))

    return matches


@dataclass(frozen=True)
class RuleDelta:
    """Minimal edit for a rule: patterns shared by both sides removed.

    Attributes:
        lhs: Patterns only on the left-hand side (edges to delete)
        rhs: Patterns only on the right-hand side (edges to add)
    """

    lhs: tuple[Pattern, ...]
    rhs: tuple[Pattern, ...]


def factor_rule(rule: Rule) -> RuleDelta:
    """Drop every pattern that appears identically on both sides.

    Unchanged edges are then neither deleted nor re-created, which keeps
    them out of the causal record.
    """
    return RuleDelta(
        lhs=tuple(p for p in rule.lhs if p not in rule.rhs),
        rhs=tuple(p for p in rule.rhs if p not in rule.lhs),
    )


def process_matches(
    graph: SpatialHypergraph,
    causal: CausalGraph,
    rules: Sequence[Rule],
    matches: Sequence[Match],
    *,
    step: int,
    event_count: int,
    max_events: Callable[[], int],
) -> int:
    """Apply the hits still valid against the live hypergraph, in order.

    Args:
        graph: Hypergraph to rewrite in place
        causal: Causal graph receiving one event per applied hit
        rules: Rules the hits refer to
        matches: Ordered hit list
        step: Current scheduler step, stamped on each event
        event_count: Events applied so far in the run
        max_events: Returns the current event budget; read at every check
            so a concurrent cancel() is observed between applications

    Returns:
        The updated event count
    """
    deltas = [factor_rule(rule) for rule in rules]
    skipped = 0

    for match in matches:
        if event_count >= max_events():
            break

        rule = rules[match.rule]
        with graph.batch():
            if not graph.count(map_patterns(graph, rule.lhs, match.mapping)):
                skipped += 1
                continue

            delta = deltas[match.rule]
            delete = map_patterns(graph, delta.lhs, match.mapping)
            add = map_patterns(graph, delta.rhs, match.mapping)
            graph.rewrite(delete, add)

            modified = sorted({v for e in add for v in e})
            causal.rewrite(match.mapping, modified, {"step": step})

        event_count += 1
        if event_count >= max_events():
            break

    if skipped:
        logger.debug("Step %d: skipped %d invalidated hits", step, skipped)
    return event_count
