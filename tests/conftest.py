"""
Pytest configuration and shared fixtures for Commitment Registry tests.
"""
import os
import sys
import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from commitment_registry.hashing import keccak_pair
from commitment_registry.indexer import TreeIndexer
from commitment_registry.registry import AccountRegistry
from commitment_registry.zero_values import zero_values


class FakeClock:
    """Settable clock returning whole seconds."""

    def __init__(self, start: int = 1_700_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class ReferenceTree:
    """Naive full-tree recomputation used to cross-check the engine."""

    def __init__(self, depth, leaves=()):
        self.depth = depth
        self.leaves = list(leaves)

    def levels(self):
        zeros = zero_values(self.depth)
        levels = [list(self.leaves)]
        for i in range(self.depth):
            current = list(levels[-1])
            if len(current) % 2:
                current.append(zeros[i])
            levels.append([keccak_pair(current[k], current[k + 1]) for k in range(0, len(current), 2)])
        return levels

    def root(self):
        top = self.levels()[-1]
        return top[0] if top else zero_values(self.depth)[self.depth]

    def siblings(self, index):
        zeros = zero_values(self.depth)
        levels = self.levels()
        siblings = []
        for i in range(self.depth):
            position = (index >> i) ^ 1
            siblings.append(levels[i][position] if position < len(levels[i]) else zeros[i])
        return siblings


@pytest.fixture
def clock():
    """Return a fake clock starting at a fixed timestamp."""
    return FakeClock()


@pytest.fixture
def reference():
    """Return the ReferenceTree class."""
    return ReferenceTree


@pytest.fixture
def registry(clock):
    """Depth-30 registry with a 3600s window on a fake clock."""
    return AccountRegistry(depth=30, root_validity_window=3600, clock=clock)


@pytest.fixture
def indexed_registry(registry):
    """Registry with a TreeIndexer subscribed to its events."""
    indexer = TreeIndexer(depth=registry.get_depth())
    registry.events.subscribe(indexer.handle)
    return registry, indexer


@pytest.fixture
def db_path(tmp_path):
    """Return path to a temporary registry database."""
    return str(tmp_path / "registry.db")
