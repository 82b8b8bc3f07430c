"""
Census Merkle tree
Fixed-depth binary Poseidon tree whose leaves are voters' public keys
"""

import logging
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

from zk.field import ZERO, check_field_element
from zk.gadgets import TwoToOneHash
from zk.poseidon import default_hasher

logger = logging.getLogger(__name__)


class CensusError(Exception):
    """Base exception for census tree operations"""
    pass


class CensusCapacityError(CensusError):
    """All leaf slots are already filled"""
    pass


class CensusNotCalculatedError(CensusError):
    """Root or path requested before calc()"""
    pass


class CensusFinalizedError(CensusError):
    """Tree was already calculated and is read-only"""
    pass


class PathStep(NamedTuple):
    """One level of an authentication path.

    ``is_left`` is True when the node on the path is the left child at this
    level, so the level hashes as ``hash(current, sibling)``.
    """
    sibling: int
    is_left: bool


AuthenticationPath = List[PathStep]


class CensusTree:
    """Fixed-depth Merkle tree stored as a flat array.

    The first ``capacity`` entries are the leaves in insertion order; the
    internal nodes follow level by level, so the root is the last entry once
    :meth:`calc` has run. A tree of depth ``d`` holds ``2**(d-1)`` leaves and
    its authentication paths have ``d - 1`` steps.
    """

    def __init__(self, depth: int, hasher: Optional[TwoToOneHash] = None):
        if not isinstance(depth, int) or depth < 1:
            raise ValueError(f"Census tree depth must be >= 1, got {depth!r}")

        self.depth = depth
        self.hasher = hasher or default_hasher()
        self.capacity = 2 ** (depth - 1)
        self.storage_size = 2 * self.capacity - 1
        self._nodes: List[int] = []
        self._leaf_count = 0
        self._calculated = False

    @classmethod
    def from_leaves(cls, depth: int, leaves: Iterable[int],
                    hasher: Optional[TwoToOneHash] = None) -> 'CensusTree':
        """Build and calculate a tree in one go"""
        tree = cls(depth, hasher)
        for leaf in leaves:
            tree.insert(leaf)
        tree.calc()
        return tree

    def __len__(self) -> int:
        """Number of inserted leaves (padding excluded)"""
        if self._calculated:
            return self._leaf_count
        return len(self._nodes)

    @property
    def is_calculated(self) -> bool:
        return self._calculated

    def insert(self, value: int) -> int:
        """Append a leaf and return its index"""
        if self._calculated:
            raise CensusFinalizedError("Cannot insert into a calculated census tree")

        if len(self._nodes) >= self.capacity:
            raise CensusCapacityError(
                f"Census tree of depth {self.depth} already holds {self.capacity} leaves")

        check_field_element(value, "Leaf value")
        self._nodes.append(value)
        return len(self._nodes) - 1

    def calc(self):
        """Pad the unused leaves with zero and hash every level up to the root"""
        if self._calculated:
            raise CensusFinalizedError("Census tree was already calculated")

        # Built aside so a failing hasher leaves the tree as it was
        nodes = self._nodes + [ZERO] * (self.capacity - len(self._nodes))

        i = 0
        while i < self.storage_size - 1:
            nodes.append(self.hasher.hash(nodes[i], nodes[i + 1]))
            i += 2

        self._leaf_count = len(self._nodes)
        self._nodes = nodes
        self._calculated = True
        logger.info(
            f"Census tree calculated: depth={self.depth}, "
            f"leaves={self._leaf_count}/{self.capacity}")

    def _require_calculated(self, operation: str):
        if not self._calculated:
            raise CensusNotCalculatedError(
                f"{operation} requires calc() to have run on the census tree")

    def root(self) -> int:
        self._require_calculated("root()")
        return self._nodes[-1]

    def get(self, index: int) -> int:
        """Leaf value at insertion index"""
        limit = self.capacity if self._calculated else len(self._nodes)
        if index < 0 or index >= limit:
            raise IndexError(f"Leaf index {index} out of range [0, {limit})")
        return self._nodes[index]

    def leaves(self) -> List[int]:
        """Leaf slots, including zero padding once calculated"""
        limit = self.capacity if self._calculated else len(self._nodes)
        return list(self._nodes[:limit])

    def witness(self, index: int) -> AuthenticationPath:
        """Authentication path from leaf ``index`` up to (excluding) the root"""
        self._require_calculated("witness()")
        if index < 0 or index >= self.capacity:
            raise IndexError(
                f"Leaf index {index} out of range [0, {self.capacity})")

        base = 0
        path = []
        for n in range(self.depth - 1):
            sibling_offset = 1 - (index & 1)
            path.append(PathStep(
                sibling=self._nodes[base + (index & ~1) + sibling_offset],
                is_left=sibling_offset == 1,
            ))
            base += 2 ** (self.depth - n - 1)
            index >>= 1

        return path

    @staticmethod
    def check_witness(leaf: int, path: Sequence[Union[PathStep, Tuple[int, bool]]],
                      expected_root: int, hasher: Optional[TwoToOneHash] = None) -> bool:
        """Recompute the root from a leaf and its path and compare"""
        hasher = hasher or default_hasher()

        current = leaf
        for sibling, is_left in path:
            if is_left:
                current = hasher.hash(current, sibling)
            else:
                current = hasher.hash(sibling, current)

        return current == expected_root

    def render(self, width: int = 6) -> str:
        """Text dump of the tree, root first, each node as its last hex digits"""
        self._require_calculated("render()")

        lines = []
        pos = len(self._nodes) - 1
        count = 1
        while pos >= 0:
            level = self._nodes[pos:pos + count]
            lines.append(" ".join(f"{node:064x}"[-width:] for node in level))
            pos -= count * 2
            count *= 2

        return "\n".join(lines)
