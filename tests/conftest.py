"""Shared fixtures for Hyperwrite tests."""

import random

import pytest

from hyperwrite import Rewriter
from hyperwrite.engine import CausalGraph, Rule, RewritingSystem, SchedulerConfig, SpatialHypergraph

# (x,x,y)(y,z,u) -> (x,v,u)(y,v,z)(v,v,u) with x=0, y=1, z=2, u=3, v=4
SIGNATURE_RULE = Rule(
    lhs=((0, 0, 1), (1, 2, 3)),
    rhs=((0, 4, 3), (1, 4, 2), (4, 4, 3)),
)
SIGNATURE_INITIAL = [(1, 1, 2), (2, 2, 3), (3, 3, 4)]

# (x,y) -> (x,y)(y,z): every edge sprouts a new one each step
GROWTH_RULE = Rule(lhs=((0, 1),), rhs=((0, 1), (1, 2)))

# (x,y) -> (): consumes every binary edge
DELETE_RULE = Rule(lhs=((0, 1),), rhs=())

# (x,y) -> (y,z): a single edge walks forward forever
WALK_RULE = Rule(lhs=((0, 1),), rhs=((1, 2),))


@pytest.fixture()
def fast_config():
    """Scheduler config with short slices and near-immediate resumption."""
    return SchedulerConfig(slice_budget=0.02, rewrite_delay=0.001)


@pytest.fixture()
def system(fast_config):
    """Seeded RewritingSystem with fast timing."""
    return RewritingSystem(config=fast_config, rng=random.Random(1234))


@pytest.fixture()
def rw(fast_config):
    """Seeded Rewriter client with fast timing."""
    client = Rewriter(seed=1234, config=fast_config)
    yield client
    client.cancel()


@pytest.fixture()
def spatial():
    return SpatialHypergraph()


@pytest.fixture()
def seeded_graphs():
    """Spatial and causal graphs seeded like the start of a run.

    Spatial: (1,1,2)(2,2,3)(3,3,4)
    Causal:  one initial event producing vertices 1..4
    """
    spatial = SpatialHypergraph()
    causal = CausalGraph()
    spatial.rewrite([], SIGNATURE_INITIAL)
    causal.rewrite([], [1, 2, 3, 4], {"step": 0})
    return spatial, causal
