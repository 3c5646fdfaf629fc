"""Persistence utilities for rules and run snapshots.

Rules file format (JSON):
    [
        {"lhs": [[0, 0, 1], [1, 2, 3]], "rhs": [[0, 4, 3], [1, 4, 2], [4, 4, 3]]},
        ...
    ]

A bare ``[lhs, rhs]`` pair is accepted in place of each object.

Run snapshot format (JSON):
    {
        "version": "1.0",
        "rules": [...],              # as above
        "spatial": {"maxv": ..., "edges": [...]},
        "causal": {"events": [...]},
        "status": {...}
    }

Security:
    Path validation is performed to prevent path traversal attacks.
    All paths are resolved to absolute paths and validated.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from .causal import CausalGraph
from .core import Rule, SpatialHypergraph

SNAPSHOT_VERSION = "1.0"


def _validate_path(path: str | Path, base_dir: Path | None = None) -> Path:
    """Validate and resolve a file path.

    Args:
        path: The path to validate
        base_dir: Optional base directory that the path must be within

    Returns:
        Resolved absolute Path

    Raises:
        ValueError: If path is invalid or attempts path traversal
    """
    # Check for null bytes before any path operations (common attack vector)
    if "\x00" in str(path):
        raise ValueError(f"Invalid path (contains null bytes): {str(path)!r}")

    resolved = Path(path).resolve()

    if base_dir is not None:
        base_resolved = base_dir.resolve()
        try:
            resolved.relative_to(base_resolved)
        except ValueError:
            raise ValueError(
                f"Path traversal detected: {path} is outside base directory {base_dir}"
            )

    return resolved


def rule_to_dict(rule: Rule) -> dict[str, Any]:
    return {"lhs": [list(p) for p in rule.lhs], "rhs": [list(p) for p in rule.rhs]}


def rule_from_data(data: Any) -> Rule:
    """Build a Rule from ``{"lhs": ..., "rhs": ...}`` or ``[lhs, rhs]``.

    Patterns may use any int or string labels; they are renumbered by first
    appearance (see Rule.from_labels).

    Raises:
        ValueError: If the entry has neither shape or the rule is malformed
        TypeError: If a label is not an int or a string
    """
    if isinstance(data, dict):
        if "lhs" not in data:
            raise ValueError(f"Rule entry is missing 'lhs': {data!r}")
        return Rule.from_labels(data["lhs"], data.get("rhs", []))
    if isinstance(data, (list, tuple)) and len(data) == 2:
        return Rule.from_labels(data[0], data[1])
    raise ValueError(f"Rule entry must be an object or an [lhs, rhs] pair, got: {data!r}")


def save_rules(rules: list[Rule], path: str | Path) -> None:
    """Write rules as a JSON list.

    Raises:
        ValueError: If path is invalid
    """
    validated_path = _validate_path(path)
    validated_path.parent.mkdir(parents=True, exist_ok=True)
    with open(validated_path, "w", encoding="utf-8") as f:
        json.dump([rule_to_dict(r) for r in rules], f, indent=2)


def load_rules(path: str | Path) -> list[Rule]:
    """Read rules from a JSON file.

    Raises:
        ValueError: If path is invalid, the JSON is malformed or a rule is invalid
        FileNotFoundError: If file does not exist
    """
    validated_path = _validate_path(path)
    with open(validated_path, encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in rules file {path}: {exc}") from exc
    if isinstance(data, dict) and "rules" in data:
        data = data["rules"]
    if not isinstance(data, list):
        raise ValueError(f"Rules file must contain a list of rules, got: {type(data).__name__}")
    return [rule_from_data(entry) for entry in data]


def save_run(
    path: str | Path,
    rules: list[Rule],
    spatial: SpatialHypergraph,
    causal: CausalGraph,
    status: dict[str, Any] | None = None,
) -> None:
    """Write a snapshot of a run to a JSON file.

    Raises:
        ValueError: If path is invalid
    """
    validated_path = _validate_path(path)
    validated_path.parent.mkdir(parents=True, exist_ok=True)
    data = {
        "version": SNAPSHOT_VERSION,
        "rules": [rule_to_dict(r) for r in rules],
        "spatial": spatial.to_dict(),
        "causal": causal.to_dict(),
        "status": status or {},
    }
    with open(validated_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def load_run(path: str | Path) -> tuple[list[Rule], SpatialHypergraph, CausalGraph, dict[str, Any]]:
    """Read a snapshot written by save_run().

    Returns:
        Tuple of (rules, spatial hypergraph, causal graph, status)

    Raises:
        ValueError: If path is invalid or the snapshot version is unknown
        FileNotFoundError: If file does not exist
    """
    validated_path = _validate_path(path)
    with open(validated_path, encoding="utf-8") as f:
        data = json.load(f)
    version = data.get("version")
    if version != SNAPSHOT_VERSION:
        raise ValueError(f"Unsupported snapshot version: {version!r}")
    rules = [rule_from_data(r) for r in data.get("rules", [])]
    spatial = SpatialHypergraph.from_dict(data.get("spatial", {}))
    causal = CausalGraph.from_dict(data.get("causal", {}))
    return rules, spatial, causal, data.get("status", {})
