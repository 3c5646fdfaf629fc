"""Hyperwrite — incremental hypergraph rewriting with causal provenance."""

__version__ = "0.1.0"

from hyperwrite.client import Rewriter
from hyperwrite.models import CausalEvent, RewriteStats, RuleSpec, RunStatus, ValidationResult

__all__ = [
    "CausalEvent",
    "Rewriter",
    "RewriteStats",
    "RuleSpec",
    "RunStatus",
    "ValidationResult",
    "__version__",
]
