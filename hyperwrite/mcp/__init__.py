"""Hyperwrite MCP server — exposes hypergraph rewriting as tools for AI agents."""

from hyperwrite.mcp.server import mcp, run_server

__all__ = ["mcp", "run_server"]
