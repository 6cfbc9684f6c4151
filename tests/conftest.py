"""
Shared test fixtures for the evisa-lifecycle test suite.

Hypothesis profiles are registered here for the property tests; select one
with HYPOTHESIS_PROFILE=ci|dev (default: "default").
"""

from __future__ import annotations

import os

import pytest
from hypothesis import Verbosity, settings

from tests.support import FrozenClock, World

settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal, deadline=None)
settings.register_profile("ci", max_examples=500, verbosity=Verbosity.verbose, deadline=None)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose, deadline=None)
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "default"))


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def world(clock: FrozenClock) -> World:
    """In-process adapters and services sharing the frozen clock."""
    return World(clock=clock)


@pytest.fixture()
def tourist_world(world: World) -> World:
    """A world with the TOURIST visa type registered."""
    world.register_tourist()
    return world
