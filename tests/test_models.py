"""Tests for the pydantic API models."""

import pytest
from pydantic import ValidationError

from hyperwrite.engine.core import Rule
from hyperwrite.models import CausalEvent, RuleSpec, RunStatus


class TestRuleSpec:
    def test_string_labels_renumbered(self):
        spec = RuleSpec(lhs=[["x", "x", "y"], ["y", "z", "u"]],
                        rhs=[["x", "v", "u"], ["y", "v", "z"], ["v", "v", "u"]])
        rule = spec.to_rule()
        assert rule == Rule(((0, 0, 1), (1, 2, 3)), ((0, 4, 3), (1, 4, 2), (4, 4, 3)))

    def test_integer_labels_renumbered(self):
        rule = RuleSpec(lhs=[[1, 2]], rhs=[[1, 2], [2, 3]]).to_rule()
        assert rule == Rule(((0, 1),), ((0, 1), (1, 2)))

    def test_same_rule_from_either_labelling(self):
        a = RuleSpec(lhs=[["x", "y"]], rhs=[["x", "y"], ["y", "z"]]).to_rule()
        b = RuleSpec(lhs=[[1, 2]], rhs=[[1, 2], [2, 3]]).to_rule()
        assert a == b

    def test_rhs_defaults_empty(self):
        assert RuleSpec(lhs=[[0]]).to_rule().rhs == ()

    def test_empty_lhs_rejected(self):
        with pytest.raises(ValidationError, match="at least one pattern"):
            RuleSpec(lhs=[], rhs=[[0]])

    def test_empty_pattern_rejected(self):
        with pytest.raises(ValidationError, match="non-zero arity"):
            RuleSpec(lhs=[[0], []])

    def test_from_rule(self):
        spec = RuleSpec.from_rule(Rule(((0, 1),), ((1, 2),)))
        assert spec.lhs == [[0, 1]]
        assert spec.rhs == [[1, 2]]

    def test_str(self):
        assert str(RuleSpec(lhs=[["x", "y"]], rhs=[["y", "z"]])) == "(x,y)->(y,z)"

    def test_from_json(self):
        spec = RuleSpec.model_validate_json('{"lhs": [[0, 1]], "rhs": [[1, 2]]}')
        assert spec.to_rule() == Rule(((0, 1),), ((1, 2),))


class TestRunStatus:
    def test_finished_flag(self):
        assert RunStatus(phase="finished").finished is True
        assert RunStatus(phase="failed").finished is True
        assert RunStatus(phase="paused").finished is False

    def test_invalid_phase(self):
        with pytest.raises(ValidationError):
            RunStatus(phase="sleeping")


class TestCausalEvent:
    def test_defaults(self):
        ev = CausalEvent(id=0, consumed=[], produced=[1, 2], step=0, rank=0)
        assert ev.causes == []
