"""Test fixtures for sleep-architecture-engine."""

from tests.fixtures.history_seed import make_night, seed_history

__all__ = [
    "make_night",
    "seed_history",
]
