import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from census import CensusTree  # noqa: E402
from zk.field import PRIME  # noqa: E402
from zk.poseidon import default_hasher  # noqa: E402


class LinearHash:
    """Order-dependent toy compression, for checking hasher injection"""

    def hash(self, a: int, b: int) -> int:
        return (3 * a + 5 * b + 7) % PRIME


@pytest.fixture(scope="session")
def hasher():
    return default_hasher()


@pytest.fixture
def linear_hash():
    return LinearHash()


@pytest.fixture
def full_tree():
    """Depth-4 census with leaves 100..107"""
    return CensusTree.from_leaves(4, range(100, 108))
