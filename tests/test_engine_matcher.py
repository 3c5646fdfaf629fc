"""Tests for pattern mapping, match finding and match processing."""

from hyperwrite.engine.causal import CausalGraph
from hyperwrite.engine.core import ANY, Match, Rule, SpatialHypergraph
from hyperwrite.engine.matcher import (
    factor_rule,
    find_matches,
    map_patterns,
    match_template,
    process_matches,
)
from tests.conftest import DELETE_RULE, GROWTH_RULE, SIGNATURE_RULE


def _graph(*edges):
    g = SpatialHypergraph()
    g.rewrite([], edges)
    return g


def _budget(n):
    return lambda: n


class TestMapPatterns:
    """Tests for variable substitution."""

    def test_bound_variables(self):
        g = _graph((1, 9))
        assert map_patterns(g, [(0, 1), (1, 0)], (5, 6)) == [(5, 6), (6, 5)]

    def test_fresh_variables_above_maxv(self):
        g = _graph((1, 10))
        edges = map_patterns(g, [(0, 2, 3), (2, 2)], (3, 4))
        assert edges == [(3, 11, 12), (11, 11)]
        assert all(v > g.maxv for v in (11, 12))

    def test_fresh_variables_stable_within_call(self):
        g = _graph((0, 4))
        edges = map_patterns(g, [(0, 2), (2, 3), (3, 2)], (0, 1))
        assert edges == [(0, 5), (5, 6), (6, 5)]

    def test_separate_calls_share_baseline(self):
        # Same maxv, same variable index: both calls allocate the same id.
        g = _graph((0, 4))
        first = map_patterns(g, [(0, 2)], (0, 1))
        second = map_patterns(g, [(2, 0)], (0, 1))
        assert first[0][1] == second[0][0] == 5

    def test_empty_mapping(self):
        g = SpatialHypergraph()
        assert map_patterns(g, [(0, 1)], ()) == [(0, 1)]


class TestMatchTemplate:
    def test_unbound_become_any(self):
        assert match_template((1, 2, 3), [7, 8, -1, -1]) == (8, ANY, ANY)

    def test_out_of_range_become_any(self):
        assert match_template((0, 5), [7]) == (7, ANY)


class TestFindMatches:
    """Tests for left-hand-side enumeration."""

    def test_no_rules(self):
        assert find_matches(_graph((1, 2)), []) == []

    def test_empty_graph(self):
        assert find_matches(SpatialHypergraph(), [GROWTH_RULE]) == []

    def test_single_pattern(self):
        hits = find_matches(_graph((1, 2), (2, 3)), [GROWTH_RULE])
        assert sorted(h.mapping for h in hits) == [(1, 2), (2, 3)]
        assert all(h.rule == 0 for h in hits)

    def test_arity_filter(self):
        rule = Rule(lhs=((0, 1, 2),), rhs=())
        g = _graph((1, 2), (1, 2, 3, 4), (5, 6, 7))
        hits = find_matches(g, [rule])
        assert [h.mapping for h in hits] == [(5, 6, 7)]

    def test_repeated_variable_must_agree(self):
        rule = Rule(lhs=((0, 0),), rhs=())
        hits = find_matches(_graph((1, 2), (3, 3)), [rule])
        assert [h.mapping for h in hits] == [(3,)]

    def test_join_across_patterns(self, seeded_graphs):
        spatial, _ = seeded_graphs
        hits = find_matches(spatial, [SIGNATURE_RULE])
        assert sorted(h.mapping for h in hits) == [(1, 2, 2, 3), (2, 3, 3, 4)]

    def test_join_rejects_inconsistent_repeat_in_later_pattern(self):
        # (x,y)(y,z,z): (2,5,6) would bind z twice to different vertices
        rule = Rule(lhs=((0, 1), (1, 2, 2)), rhs=())
        g = _graph((1, 2), (2, 5, 6), (2, 7, 7))
        hits = find_matches(g, [rule])
        assert [h.mapping for h in hits] == [(1, 2, 7)]

    def test_join_fans_out(self):
        rule = Rule(lhs=((0, 1), (1, 2)), rhs=())
        g = _graph((1, 2), (2, 3), (2, 4))
        hits = find_matches(g, [rule])
        assert sorted(h.mapping for h in hits) == [(1, 2, 3), (1, 2, 4)]

    def test_multiplicity_replicates_hits(self):
        hits = find_matches(_graph((1, 2), (1, 2), (1, 2)), [DELETE_RULE])
        assert [h.mapping for h in hits] == [(1, 2)] * 3

    def test_multiplicity_of_edge_set(self):
        rule = Rule(lhs=((0, 1), (1, 2)), rhs=())
        g = _graph((1, 2), (1, 2), (2, 3), (2, 3), (2, 3))
        hits = find_matches(g, [rule])
        assert [h.mapping for h in hits] == [(1, 2, 3)] * 2

    def test_repeated_pattern_needs_two_copies(self):
        rule = Rule(lhs=((0, 1), (0, 1)), rhs=())
        assert find_matches(_graph((1, 2)), [rule]) == []
        assert len(find_matches(_graph((1, 2), (1, 2)), [rule])) == 1
        assert len(find_matches(_graph(*[(1, 2)] * 4), [rule])) == 2

    def test_several_rules_tag_index(self):
        unary = Rule(lhs=((0,),), rhs=())
        hits = find_matches(_graph((1, 2), (5,)), [GROWTH_RULE, unary])
        assert sorted((h.rule, h.mapping) for h in hits) == [(0, (1, 2)), (1, (5,))]

    def test_does_not_mutate_graph(self, seeded_graphs):
        spatial, _ = seeded_graphs
        before = spatial.to_dict()
        find_matches(spatial, [SIGNATURE_RULE])
        assert spatial.to_dict() == before


class TestFactorRule:
    def test_shared_patterns_removed(self):
        delta = factor_rule(GROWTH_RULE)
        assert delta.lhs == ()
        assert delta.rhs == ((1, 2),)

    def test_nothing_shared(self):
        delta = factor_rule(SIGNATURE_RULE)
        assert delta.lhs == SIGNATURE_RULE.lhs
        assert delta.rhs == SIGNATURE_RULE.rhs

    def test_identity_rule_is_empty(self):
        rule = Rule(lhs=((0, 1), (1, 2)), rhs=((1, 2), (0, 1)))
        delta = factor_rule(rule)
        assert delta.lhs == ()
        assert delta.rhs == ()

    def test_structural_equality_only(self):
        rule = Rule(lhs=((0, 1),), rhs=((1, 0),))
        delta = factor_rule(rule)
        assert delta.lhs == ((0, 1),)
        assert delta.rhs == ((1, 0),)


class TestProcessMatches:
    """Tests for applying hits against the live hypergraph."""

    def test_applies_hit_and_records_event(self, seeded_graphs):
        spatial, causal = seeded_graphs
        hits = [Match(0, (1, 2, 2, 3))]
        count = process_matches(
            spatial, causal, [SIGNATURE_RULE], hits,
            step=1, event_count=0, max_events=_budget(10),
        )
        assert count == 1
        assert sorted(spatial.edges()) == [(1, 5, 3), (2, 5, 2), (3, 3, 4), (5, 5, 3)]
        event = causal.get_event(1)
        assert event.consumed == (1, 2, 2, 3)
        assert event.produced == (1, 2, 3, 5)
        assert event.step == 1
        assert event.causes == (0,)

    def test_conflicting_hit_is_skipped(self, seeded_graphs):
        spatial, causal = seeded_graphs
        hits = [Match(0, (2, 3, 3, 4)), Match(0, (1, 2, 2, 3))]
        count = process_matches(
            spatial, causal, [SIGNATURE_RULE], hits,
            step=1, event_count=0, max_events=_budget(10),
        )
        assert count == 1
        assert causal.num_events == 2
        # Second hit needed (2,2,3), already consumed by the first
        assert spatial.has_edge((1, 1, 2))
        assert spatial.num_edges == 3 - 2 + 3

    def test_no_edge_removed_twice(self):
        g = _graph((1, 2))
        causal = CausalGraph()
        causal.rewrite([], [1, 2])
        hits = [Match(0, (1, 2)), Match(0, (1, 2))]
        count = process_matches(
            g, causal, [DELETE_RULE], hits, step=1, event_count=0, max_events=_budget(10)
        )
        assert count == 1
        assert g.num_edges == 0

    def test_duplicate_edges_allow_repeated_hits(self):
        g = _graph((1, 2), (1, 2))
        causal = CausalGraph()
        causal.rewrite([], [1, 2])
        hits = find_matches(g, [DELETE_RULE])
        count = process_matches(
            g, causal, [DELETE_RULE], hits, step=1, event_count=0, max_events=_budget(10)
        )
        assert count == 2
        assert g.num_edges == 0

    def test_stops_at_budget(self):
        g = _graph((1, 2), (3, 4), (5, 6))
        causal = CausalGraph()
        causal.rewrite([], [1, 2, 3, 4, 5, 6])
        hits = find_matches(g, [DELETE_RULE])
        count = process_matches(
            g, causal, [DELETE_RULE], hits, step=1, event_count=3, max_events=_budget(5)
        )
        assert count == 5
        assert g.num_edges == 1

    def test_zero_budget_applies_nothing(self):
        g = _graph((1, 2))
        causal = CausalGraph()
        causal.rewrite([], [1, 2])
        hits = find_matches(g, [DELETE_RULE])
        count = process_matches(
            g, causal, [DELETE_RULE], hits, step=1, event_count=0, max_events=_budget(0)
        )
        assert count == 0
        assert g.num_edges == 1
        assert causal.num_events == 1

    def test_budget_read_between_applications(self):
        g = _graph((1, 2), (3, 4), (5, 6))
        causal = CausalGraph()
        causal.rewrite([], [1, 2, 3, 4, 5, 6])
        budget = {"max": 10}

        def max_events():
            # Cancelled once the first event has been recorded
            if causal.num_events > 1:
                budget["max"] = 0
            return budget["max"]

        hits = find_matches(g, [DELETE_RULE])
        count = process_matches(
            g, causal, [DELETE_RULE], hits, step=1, event_count=0, max_events=max_events
        )
        assert count == 1

    def test_identity_rule_leaves_graph_unchanged(self):
        rule = Rule(lhs=((0, 1),), rhs=((0, 1),))
        g = _graph((1, 2))
        causal = CausalGraph()
        causal.rewrite([], [1, 2])
        hits = find_matches(g, [rule])
        count = process_matches(
            g, causal, [rule], hits, step=1, event_count=0, max_events=_budget(10)
        )
        assert count == 1
        assert g.edges() == [(1, 2)]
        assert causal.get_event(1).produced == ()

    def test_fresh_vertices_do_not_collide(self):
        rule = Rule(lhs=((0,),), rhs=((0, 1, 2), (2, 1)))
        g = _graph((4,))
        causal = CausalGraph()
        causal.rewrite([], [4])
        process_matches(
            g, causal, [rule], [Match(0, (4,))], step=1, event_count=0, max_events=_budget(10)
        )
        assert sorted(g.edges()) == [(4, 5, 6), (6, 5)]
        assert g.maxv == 6

    def test_growth_keeps_shared_edge(self):
        g = _graph((0, 1))
        causal = CausalGraph()
        causal.rewrite([], [0, 1])
        process_matches(
            g, causal, [GROWTH_RULE], [Match(0, (0, 1))],
            step=1, event_count=0, max_events=_budget(10),
        )
        assert g.edges() == [(0, 1), (1, 2)]
        assert causal.get_event(1).produced == (1, 2)
