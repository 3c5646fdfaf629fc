"""Pydantic models for the Hyperwrite public API.

These are thin wrappers over the engine types (engine.core, engine.causal),
providing validation and serialization for the client-facing API.
"""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, Field, field_validator

from hyperwrite.engine.core import Rule

Label = Union[int, str]

RuleOrdering = Literal["mixed", "index", "indexrev"]
EventOrdering = Literal["random", "ascending", "descending"]


class RuleSpec(BaseModel):
    """A rewriting rule as a pair of edge-pattern lists.

    Pattern entries are variable labels (ints or strings). Labels are
    renumbered by first appearance, left-hand side first, so
    ``[["x", "y"]] -> [["x", "y"], ["y", "z"]]`` and
    ``[[1, 2]] -> [[1, 2], [2, 3]]`` describe the same rule. Labels found only
    on the right-hand side create new vertices.
    """

    lhs: list[list[Label]]
    rhs: list[list[Label]] = Field(default_factory=list)

    @field_validator("lhs")
    @classmethod
    def _check_lhs(cls, v: list[list[Label]]) -> list[list[Label]]:
        if not v:
            raise ValueError("lhs must contain at least one pattern")
        return v

    @field_validator("lhs", "rhs")
    @classmethod
    def _check_arity(cls, v: list[list[Label]]) -> list[list[Label]]:
        if any(len(p) == 0 for p in v):
            raise ValueError("patterns must have non-zero arity")
        return v

    def to_rule(self) -> Rule:
        """Renumber labels and build the engine Rule."""
        return Rule.from_labels(self.lhs, self.rhs)

    @classmethod
    def from_rule(cls, rule: Rule) -> RuleSpec:
        return cls(lhs=[list(p) for p in rule.lhs], rhs=[list(p) for p in rule.rhs])

    def __str__(self) -> str:
        def fmt(patterns: list[list[Label]]) -> str:
            return "".join("(" + ",".join(str(x) for x in p) + ")" for p in patterns)

        return f"{fmt(self.lhs)}->{fmt(self.rhs)}"


class CausalEvent(BaseModel):
    """One applied rewrite in the causal graph.

    ``consumed`` lists the matched vertices, ``produced`` the vertices of the
    added edges. ``causes`` are the events this one depends on.
    """

    id: int
    consumed: list[int]
    produced: list[int]
    step: int
    rank: int
    causes: list[int] = Field(default_factory=list)


class RunStatus(BaseModel):
    """Snapshot of a rewriting run."""

    phase: Literal["idle", "running", "paused", "finished", "failed"]
    step: int = 0
    event_count: int = 0
    max_events: int = 0
    cancelled: bool = False
    exhausted: bool = False
    secs: float = 0.0
    num_edges: int = 0
    num_causal_events: int = 0
    error: str | None = None

    @property
    def finished(self) -> bool:
        return self.phase in ("finished", "failed")


class ValidationResult(BaseModel):
    """Result of a consistency check over both graphs."""

    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class RewriteStats(BaseModel):
    """Summary counts for the spatial hypergraph and causal graph."""

    edge_count: int
    distinct_edge_count: int
    vertex_count: int
    maxv: int
    edges_by_arity: dict[int, int]
    event_count: int
    causal_edge_count: int
    max_rank: int
    steps: int

    def as_dict(self) -> dict[str, Any]:
        return self.model_dump()
