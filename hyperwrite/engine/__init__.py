from hyperwrite.engine.causal import CausalEvent, CausalGraph
from hyperwrite.engine.core import ANY, Match, Rule, SpatialHypergraph
from hyperwrite.engine.matcher import (
    RuleDelta,
    factor_rule,
    find_matches,
    map_patterns,
    match_template,
    process_matches,
)
from hyperwrite.engine.persistence import load_rules, load_run, save_rules, save_run
from hyperwrite.engine.scheduler import (
    RewritingSystem,
    RunPhase,
    RunState,
    SchedulerConfig,
    order_matches,
    rewrite_slice,
)

__all__ = [
    "ANY",
    "Rule",
    "Match",
    "SpatialHypergraph",
    "CausalEvent",
    "CausalGraph",
    "RuleDelta",
    "map_patterns",
    "match_template",
    "find_matches",
    "factor_rule",
    "process_matches",
    "RewritingSystem",
    "RunPhase",
    "RunState",
    "SchedulerConfig",
    "order_matches",
    "rewrite_slice",
    "save_rules",
    "load_rules",
    "save_run",
    "load_run",
]
