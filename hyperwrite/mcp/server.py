"""Hyperwrite MCP server — exposes hypergraph rewriting as tools for AI agents."""

from __future__ import annotations

import functools
import logging
import sys
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

from mcp.server.fastmcp import FastMCP

from hyperwrite.client import Rewriter
from hyperwrite.models import RuleSpec

# Logging goes to stderr; stdout carries JSON-RPC
logging.basicConfig(stream=sys.stderr, level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger("hyperwrite.mcp")

# ---------------------------------------------------------------------------
# Client singleton for single-process stdio MCP
# ---------------------------------------------------------------------------

_CLIENT: Rewriter | None = None

# Cap on edges returned inline by a tool call
MAX_EDGES_RETURNED = 1000


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[dict]:
    global _CLIENT
    logger.info("Starting Hyperwrite rewriting client")
    _CLIENT = Rewriter()
    try:
        yield {}
    finally:
        if _CLIENT is not None:
            _CLIENT.cancel()
            _CLIENT = None


mcp = FastMCP(
    "Hyperwrite",
    instructions=(
        "Hyperwrite runs hypergraph rewriting systems. "
        "A rule is {lhs, rhs}: lists of edge patterns over variable labels. "
        "Labels that occur only in rhs create new vertices. "
        "The rewrite tool replaces the current run: it seeds the initial edges, applies "
        "rules until none match or max_events is reached, and records a causal graph "
        "linking every event to the events whose output it consumed. "
        "Use get_edges, get_events and get_status to inspect the last run."
    ),
    lifespan=app_lifespan,
)


def _get_client() -> Rewriter:
    """Return the active Rewriter client."""
    if _CLIENT is None:
        raise RuntimeError("Hyperwrite client is not initialized")
    return _CLIENT


def _safe_tool(fn: Callable[..., dict]) -> Callable[..., dict]:
    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> dict:
        try:
            return fn(*args, **kwargs)
        except Exception as exc:
            logger.exception("Tool %s failed", fn.__name__)
            return {"error": True, "message": f"{type(exc).__name__}: {exc}"}
    return wrapper


def _edges_dict(rw: Rewriter, limit: int) -> dict:
    edges = rw.edges()
    return {
        "edges": edges[:limit],
        "total": len(edges),
        "truncated": len(edges) > limit,
    }


# ===================================================================
# Tools
# ===================================================================


@mcp.tool()
@_safe_tool
def rewrite(
    rules: list[dict[str, Any]],
    initial: list[list[int]],
    rule_ordering: str = "mixed",
    event_ordering: str = "random",
    max_events: int = 500,
    seed: int | None = None,
) -> dict:
    """Run a rewriting system to completion.

    Args:
        rules: Rules as {"lhs": [[...], ...], "rhs": [[...], ...]} over variable labels.
        initial: Initial hyperedges as lists of integer vertex ids.
        rule_ordering: "mixed", "index" or "indexrev".
        event_ordering: "random", "ascending" or "descending".
        max_events: Maximum number of rewriting events.
        seed: Optional seed for the match shuffle (reproducible runs).
    """
    rw = _get_client()
    rw.reseed(seed)
    status = rw.run_sync(
        [RuleSpec.model_validate(r) for r in rules],
        initial,
        rule_ordering=rule_ordering,  # type: ignore[arg-type]
        event_ordering=event_ordering,  # type: ignore[arg-type]
        max_events=max_events,
    )
    return {"status": status.model_dump(), **_edges_dict(rw, MAX_EDGES_RETURNED)}


@mcp.tool()
@_safe_tool
def get_edges(limit: int = MAX_EDGES_RETURNED) -> dict:
    """Get the edges of the current spatial hypergraph.

    Args:
        limit: Maximum number of edges to return.
    """
    return _edges_dict(_get_client(), limit)


@mcp.tool()
@_safe_tool
def get_events(step: int | None = None, limit: int = 100) -> dict:
    """Get causal events of the current run.

    Args:
        step: Only return events recorded in this step.
        limit: Maximum number of events to return.
    """
    events = _get_client().events()
    if step is not None:
        events = [e for e in events if e.step == step]
    return {
        "events": [e.model_dump() for e in events[:limit]],
        "total": len(events),
    }


@mcp.tool()
@_safe_tool
def get_status() -> dict:
    """Get the status and summary statistics of the current run."""
    rw = _get_client()
    return {"status": rw.status().model_dump(), "stats": rw.stats().model_dump()}


@mcp.tool()
@_safe_tool
def validate_rules(rules: list[dict[str, Any]]) -> dict:
    """Check rules without running them.

    Args:
        rules: Rules as {"lhs": [[...], ...], "rhs": [[...], ...]}.
    """
    normalized = []
    for r in rules:
        rule = RuleSpec.model_validate(r).to_rule()
        normalized.append(str(rule))
    return {"valid": True, "rules": normalized}


# ===================================================================
# Resources
# ===================================================================


@mcp.resource("hyperwrite://stats")
def stats_resource() -> str:
    """Statistics of the current run."""
    if _CLIENT is None:
        raise RuntimeError("Hyperwrite client is not initialized")
    status = _CLIENT.status()
    stats = _CLIENT.stats()
    lines = [
        "# Hyperwrite Statistics\n",
        f"Phase: {status.phase}",
        f"Events: {status.event_count} in {status.step} steps",
        f"Edges: {stats.edge_count} ({stats.distinct_edge_count} distinct)",
        f"Vertices: {stats.vertex_count} (maxv {stats.maxv})",
        f"Causal graph: {stats.event_count} events, {stats.causal_edge_count} links, "
        f"max rank {stats.max_rank}",
    ]
    if _CLIENT.rules:
        lines.append("\n## Rules")
        for rule in _CLIENT.rules:
            lines.append(f"- {rule}")
    return "\n".join(lines)


# ===================================================================
# Entry point
# ===================================================================


def run_server() -> None:
    """Run the Hyperwrite MCP server over stdio."""
    mcp.run(transport="stdio")
