import pytest

from census import (
    CensusCapacityError,
    CensusFinalizedError,
    CensusNotCalculatedError,
    CensusTree,
    PathStep,
)
from zk.field import PRIME


class TestConstruction:

    def test_depth_zero_rejected(self):
        with pytest.raises(ValueError):
            CensusTree(0)

    @pytest.mark.parametrize("depth,capacity,storage", [(1, 1, 1), (2, 2, 3), (4, 8, 15)])
    def test_capacity(self, depth, capacity, storage):
        tree = CensusTree(depth)
        assert tree.capacity == capacity
        assert tree.storage_size == storage

    def test_insert_returns_sequential_indices(self):
        tree = CensusTree(3)
        assert [tree.insert(v) for v in (10, 20, 30)] == [0, 1, 2]
        assert len(tree) == 3
        assert tree.get(1) == 20

    def test_insert_beyond_capacity(self):
        tree = CensusTree(2)
        tree.insert(1)
        tree.insert(2)
        with pytest.raises(CensusCapacityError):
            tree.insert(3)
        assert tree.leaves() == [1, 2]

    def test_insert_rejects_non_field_values(self):
        tree = CensusTree(2)
        with pytest.raises(ValueError):
            tree.insert(PRIME)
        with pytest.raises(ValueError):
            tree.insert(-1)
        assert len(tree) == 0

    def test_insert_after_calc(self, full_tree):
        with pytest.raises(CensusFinalizedError):
            full_tree.insert(1)

    def test_calc_twice(self, full_tree):
        with pytest.raises(CensusFinalizedError):
            full_tree.calc()


class TestUninitializedReads:

    def test_root_before_calc(self):
        tree = CensusTree(3)
        tree.insert(1)
        with pytest.raises(CensusNotCalculatedError):
            tree.root()

    def test_witness_before_calc(self):
        tree = CensusTree(3)
        tree.insert(1)
        with pytest.raises(CensusNotCalculatedError):
            tree.witness(0)

    def test_get_before_calc_limited_to_inserted(self):
        tree = CensusTree(3)
        tree.insert(1)
        with pytest.raises(IndexError):
            tree.get(1)


class TestRootAndPaths:

    def test_depth_two_root(self, hasher):
        tree = CensusTree.from_leaves(2, [5, 9])
        assert tree.root() == hasher.hash(5, 9)
        assert tree.witness(0) == [PathStep(9, True)]
        assert tree.witness(1) == [PathStep(5, False)]

    def test_depth_three_root(self, hasher):
        tree = CensusTree.from_leaves(3, [1, 2, 3, 4])
        expected = hasher.hash(hasher.hash(1, 2), hasher.hash(3, 4))
        assert tree.root() == expected
        assert tree.witness(2) == [PathStep(4, True), PathStep(hasher.hash(1, 2), False)]

    @pytest.mark.parametrize("depth", [1, 2, 3, 4, 5, 6])
    def test_round_trip_full_tree(self, depth):
        tree = CensusTree.from_leaves(depth, range(1, 2 ** (depth - 1) + 1))
        for i in range(tree.capacity):
            path = tree.witness(i)
            assert len(path) == depth - 1
            assert CensusTree.check_witness(tree.get(i), path, tree.root())

    @pytest.mark.parametrize("filled", [1, 3, 5])
    def test_round_trip_partial_tree(self, filled):
        tree = CensusTree.from_leaves(4, range(50, 50 + filled))
        assert len(tree) == filled
        assert tree.leaves()[filled:] == [0] * (tree.capacity - filled)
        for i in range(filled):
            assert CensusTree.check_witness(tree.get(i), tree.witness(i), tree.root())

    def test_zero_padding_matches_explicit_zeros(self):
        padded = CensusTree.from_leaves(3, [7, 8])
        explicit = CensusTree.from_leaves(3, [7, 8, 0, 0])
        assert padded.root() == explicit.root()

    def test_witness_index_out_of_range(self, full_tree):
        with pytest.raises(IndexError):
            full_tree.witness(full_tree.capacity)
        with pytest.raises(IndexError):
            full_tree.witness(-1)

    def test_tampered_path_rejected(self, full_tree):
        path = full_tree.witness(5)
        leaf = full_tree.get(5)
        root = full_tree.root()

        assert not CensusTree.check_witness(leaf + 1, path, root)

        wrong_sibling = list(path)
        wrong_sibling[1] = PathStep(path[1].sibling + 1, path[1].is_left)
        assert not CensusTree.check_witness(leaf, wrong_sibling, root)

        flipped = list(path)
        flipped[0] = PathStep(path[0].sibling, not path[0].is_left)
        assert not CensusTree.check_witness(leaf, flipped, root)

    def test_path_of_other_leaf_rejected(self, full_tree):
        assert not CensusTree.check_witness(
            full_tree.get(0), full_tree.witness(1), full_tree.root())

    def test_accepts_plain_tuples(self, full_tree):
        path = [(step.sibling, step.is_left) for step in full_tree.witness(3)]
        assert CensusTree.check_witness(full_tree.get(3), path, full_tree.root())


class TestDegenerateDepth:

    def test_single_leaf_tree(self):
        tree = CensusTree.from_leaves(1, [42])
        assert tree.root() == 42
        assert tree.witness(0) == []
        assert CensusTree.check_witness(42, [], 42)
        assert not CensusTree.check_witness(42, [], 43)

    def test_empty_single_leaf_tree(self):
        tree = CensusTree.from_leaves(1, [])
        assert tree.root() == 0


class FailOnceHash:
    """Delegates to a real hasher but raises on one chosen call"""

    def __init__(self, inner, fail_on_call):
        self.inner = inner
        self.fail_on_call = fail_on_call
        self.calls = 0

    def hash(self, a, b):
        self.calls += 1
        if self.calls == self.fail_on_call:
            raise RuntimeError("hasher unavailable")
        return self.inner.hash(a, b)


class TestHasherInjection:

    def test_failed_calc_leaves_tree_unchanged(self, hasher):
        tree = CensusTree(3, hasher=FailOnceHash(hasher, fail_on_call=2))
        tree.insert(1)
        tree.insert(2)

        with pytest.raises(RuntimeError):
            tree.calc()

        assert not tree.is_calculated
        assert len(tree) == 2
        assert tree.leaves() == [1, 2]

        tree.calc()
        assert tree.is_calculated
        assert len(tree) == 2
        assert tree.root() == CensusTree.from_leaves(3, [1, 2]).root()

    def test_custom_hasher_used_for_tree_and_check(self, linear_hash):
        tree = CensusTree.from_leaves(3, [1, 2, 3, 4], hasher=linear_hash)
        assert tree.root() == linear_hash.hash(linear_hash.hash(1, 2), linear_hash.hash(3, 4))
        for i in range(4):
            assert CensusTree.check_witness(
                tree.get(i), tree.witness(i), tree.root(), hasher=linear_hash)


def test_render_lists_levels_root_first(full_tree):
    lines = full_tree.render(width=6).splitlines()
    assert [len(line.split()) for line in lines] == [1, 2, 4, 8]
    assert lines[0] == f"{full_tree.root():064x}"[-6:]
    assert lines[-1].split()[0] == f"{100:064x}"[-6:]
