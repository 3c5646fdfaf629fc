"""Benchmark fixtures for rewriting performance tests."""

import random

import pytest

from hyperwrite.engine import SpatialHypergraph


def generate_random_graph(
    num_vertices: int,
    num_edges: int,
    arity: int = 3,
    loop_ratio: float = 0.3,
    seed: int = 42,
) -> SpatialHypergraph:
    """Generate a random hypergraph for benchmarking.

    Args:
        num_vertices: Size of the vertex pool
        num_edges: Number of hyperedges to create
        arity: Arity of every edge
        loop_ratio: Fraction of edges whose first two vertices coincide
        seed: Random seed for reproducibility

    Returns:
        SpatialHypergraph with random data
    """
    rng = random.Random(seed)
    edges = []
    for _ in range(num_edges):
        edge = [rng.randrange(num_vertices) for _ in range(arity)]
        if arity > 1 and rng.random() < loop_ratio:
            edge[1] = edge[0]
        edges.append(tuple(edge))

    graph = SpatialHypergraph()
    graph.rewrite([], edges)
    return graph


@pytest.fixture(scope="module")
def graph_1k():
    """1K ternary edges over 500 vertices."""
    return generate_random_graph(500, 1_000)


@pytest.fixture(scope="module")
def graph_10k():
    """10K ternary edges over 5K vertices."""
    return generate_random_graph(5_000, 10_000)
