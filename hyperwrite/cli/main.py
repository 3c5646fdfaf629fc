"""Hyperwrite CLI — command-line interface for hypergraph rewriting."""

from __future__ import annotations

import json
import logging

import click

from hyperwrite.client import Rewriter
from hyperwrite.engine.persistence import load_rules


def _load_rules(path: str) -> list:
    try:
        return load_rules(path)
    except (ValueError, TypeError) as exc:
        raise click.ClickException(f"Invalid rules file {path}: {exc}") from exc


def _parse_initial(value: str) -> list[list[int]]:
    try:
        edges = json.loads(value)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"not valid JSON: {exc}", param_hint="--initial") from exc
    if not isinstance(edges, list) or not all(isinstance(e, list) for e in edges):
        raise click.BadParameter("expected a list of edges, e.g. [[1,1,2],[2,2,3]]",
                                 param_hint="--initial")
    return edges


@click.group()
@click.option("--seed", default=None, type=int, help="Seed for the match shuffle.")
@click.option("--verbose", "-v", is_flag=True, help="Log rewriting progress to stderr.")
@click.pass_context
def cli(ctx: click.Context, seed: int | None, verbose: bool) -> None:
    """Hyperwrite CLI — run hypergraph rewriting systems from the command line."""
    ctx.ensure_object(dict)
    ctx.obj["seed"] = seed
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )


@cli.command()
@click.argument("rules_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--initial", required=True, help="Initial edges as JSON, e.g. [[1,1,2]].")
@click.option("--max-events", default=500, show_default=True, type=click.IntRange(min=0),
              help="Maximum number of events.")
@click.option("--rule-ordering", default="mixed", show_default=True,
              type=click.Choice(["mixed", "index", "indexrev"]), help="Rule ordering.")
@click.option("--event-ordering", default="random", show_default=True,
              type=click.Choice(["random", "ascending", "descending"]), help="Event ordering.")
@click.option("--output", default=None, type=click.Path(dir_okay=False),
              help="Write a JSON snapshot of the result.")
@click.option("--show-edges", is_flag=True, help="Print the final edges.")
@click.pass_context
def run(
    ctx: click.Context,
    rules_file: str,
    initial: str,
    max_events: int,
    rule_ordering: str,
    event_ordering: str,
    output: str | None,
    show_edges: bool,
) -> None:
    """Run the rules in RULES_FILE until exhausted or the budget is spent."""
    rules = _load_rules(rules_file)
    edges = _parse_initial(initial)
    rw = Rewriter(seed=ctx.obj["seed"])
    try:
        status = rw.run_sync(
            rules,
            edges,
            rule_ordering=rule_ordering,  # type: ignore[arg-type]
            event_ordering=event_ordering,  # type: ignore[arg-type]
            max_events=max_events,
            on_progress=lambda n: click.echo(f"  events: {n}", err=True),
        )
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc

    s = rw.stats()
    click.echo(f"Events: {status.event_count}  Steps: {status.step}  ({status.secs:.3f}s)")
    click.echo(f"Edges: {s.edge_count}  Vertices: {s.vertex_count}  Max rank: {s.max_rank}")
    if status.exhausted:
        click.echo("No more matches.")
    if show_edges:
        for e in rw.edges():
            click.echo("  (" + ",".join(str(v) for v in e) + ")")
    if output:
        rw.save(output)
        click.echo(f"Saved snapshot to {output}")


@cli.command()
@click.argument("rules_file", type=click.Path(exists=True, dir_okay=False))
def validate(rules_file: str) -> None:
    """Validate a rules file."""
    rules = _load_rules(rules_file)
    click.echo(f"{len(rules)} valid rule(s):")
    for r in rules:
        click.echo(f"  {r}")


@cli.command()
def mcp() -> None:
    """Start the MCP server for AI agent integration."""
    from hyperwrite.mcp.server import run_server

    run_server()


if __name__ == "__main__":
    cli()
