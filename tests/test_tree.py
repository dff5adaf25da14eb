"""
Tests for the incremental Merkle tree engine.
"""
import os
import sys
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from commitment_registry.errors import (
    EmptyBatch,
    InvalidIndex,
    ProofMismatch,
    TreeFull,
    ValueOutOfField,
    WrongProofLength,
)
from commitment_registry.hashing import SNARK_SCALAR_FIELD, keccak_pair
from commitment_registry.tree import (
    TreeState,
    init_tree,
    insert,
    insert_many,
    path_nodes,
    remove,
    replay_path,
    update,
)
from commitment_registry.zero_values import zero_values


def leaves_from(start, count):
    return [1000 + i for i in range(start, start + count)]


class TestInitTree:
    """Test empty tree construction."""

    def test_empty_root_is_top_zero_value(self):
        """Verify an empty tree's root is the top zero value."""
        state = init_tree(depth=30)
        assert state.root == zero_values(30)[30]
        assert state.number_of_leaves == 0
        assert state.filled_subtrees == list(zero_values(30)[:30])

    def test_capacity(self):
        """Verify capacity is two to the depth."""
        assert init_tree(depth=4).capacity == 16

    @pytest.mark.parametrize("depth", [0, 33, -1, True])
    def test_rejects_bad_depth(self, depth):
        """Verify unsupported depths are rejected."""
        with pytest.raises(ValueError):
            init_tree(depth=depth)


class TestPathReplay:
    """Test the shared left/right-by-index-bit replay."""

    def test_bit_zero_puts_running_hash_left(self):
        """Verify bit 0 places the running hash on the left."""
        assert replay_path(7, 0, [9]) == keccak_pair(7, 9)

    def test_bit_one_puts_running_hash_right(self):
        """Verify bit 1 places the running hash on the right."""
        assert replay_path(7, 1, [9]) == keccak_pair(9, 7)

    def test_two_levels(self):
        """Verify the index bits are applied level by level."""
        # index 2 = 0b10: left at level 0, right at level 1
        expected = keccak_pair(5, keccak_pair(7, 8))
        assert replay_path(7, 2, [8, 5]) == expected

    def test_path_nodes_ends_at_root(self):
        """Verify path nodes start at the leaf and end at the root."""
        nodes = path_nodes(7, 2, [8, 5], keccak_pair)
        assert nodes[0] == 7
        assert nodes[-1] == replay_path(7, 2, [8, 5])
        assert len(nodes) == 3


class TestInsert:
    """Test single-leaf insertion."""

    def test_returns_sequential_indices(self):
        """Verify inserts return consecutive indices."""
        state = init_tree(depth=4)
        assert [insert(state, v) for v in (11, 12, 13)] == [0, 1, 2]
        assert state.number_of_leaves == 3

    @pytest.mark.parametrize("count", range(1, 10))
    def test_root_matches_full_recomputation(self, reference, count):
        """Verify the incremental root matches a full rebuild."""
        state = init_tree(depth=4)
        leaves = leaves_from(0, count)
        for leaf in leaves:
            insert(state, leaf)
        assert state.root == reference(4, leaves).root()

    def test_root_changes_on_every_insert(self):
        """Verify every insert produces a new root."""
        state = init_tree(depth=30)
        seen = {state.root}
        for leaf in leaves_from(0, 5):
            insert(state, leaf)
            assert state.root not in seen
            seen.add(state.root)

    def test_fills_to_capacity_then_rejects(self):
        """Verify a full tree rejects further inserts."""
        state = init_tree(depth=3)
        for leaf in leaves_from(0, 8):
            insert(state, leaf)
        root = state.root
        with pytest.raises(TreeFull):
            insert(state, 99)
        assert state.root == root
        assert state.number_of_leaves == 8

    def test_rejects_value_out_of_field(self):
        """Verify out-of-field leaves are rejected."""
        state = init_tree(depth=4)
        with pytest.raises(ValueOutOfField):
            insert(state, SNARK_SCALAR_FIELD)
        assert state.number_of_leaves == 0

    def test_zero_leaf_allowed_at_tree_level(self, reference):
        """Verify the tree itself accepts the empty leaf value."""
        state = init_tree(depth=4)
        insert(state, 0)
        assert state.number_of_leaves == 1
        assert state.root == reference(4).root()


class TestInsertMany:
    """Test batch insertion equivalence with repeated insert."""

    @pytest.mark.parametrize("start", range(0, 6))
    @pytest.mark.parametrize("size", [1, 2, 3, 4, 5, 7, 9])
    def test_matches_sequential_inserts(self, start, size):
        """Verify a batch equals repeated inserts from any offset."""
        batched = init_tree(depth=5)
        sequential = init_tree(depth=5)
        for leaf in leaves_from(0, start):
            insert(batched, leaf)
            insert(sequential, leaf)

        batch = leaves_from(start, size)
        first = insert_many(batched, batch)
        for leaf in batch:
            insert(sequential, leaf)

        assert first == start
        assert batched.root == sequential.root
        assert batched.number_of_leaves == sequential.number_of_leaves
        assert batched.filled_subtrees == sequential.filled_subtrees

    def test_subsequent_insert_after_batch(self, reference):
        """Verify single inserts continue correctly after a batch."""
        state = init_tree(depth=5)
        insert_many(state, leaves_from(0, 3))
        insert(state, 500)
        assert state.root == reference(5, leaves_from(0, 3) + [500]).root()

    def test_fill_whole_tree_in_one_batch(self, reference):
        """Verify one batch can fill the tree exactly."""
        state = init_tree(depth=3)
        insert_many(state, leaves_from(0, 8))
        assert state.root == reference(3, leaves_from(0, 8)).root()

    def test_rejects_empty_batch(self):
        """Verify an empty batch is rejected."""
        state = init_tree(depth=4)
        with pytest.raises(EmptyBatch):
            insert_many(state, [])

    def test_rejects_over_capacity_without_mutation(self):
        """Verify an oversized batch leaves the tree unchanged."""
        state = init_tree(depth=3)
        insert_many(state, leaves_from(0, 6))
        before = state.to_dict()
        with pytest.raises(TreeFull):
            insert_many(state, leaves_from(6, 3))
        assert state.to_dict() == before

    def test_rejects_bad_value_without_mutation(self):
        """Verify a bad batch value leaves the tree unchanged."""
        state = init_tree(depth=4)
        before = state.to_dict()
        with pytest.raises(ValueOutOfField):
            insert_many(state, [1, 2, SNARK_SCALAR_FIELD + 1])
        assert state.to_dict() == before


class TestUpdate:
    """Test authenticated update and removal."""

    def build(self, reference, depth, count):
        state = init_tree(depth=depth)
        leaves = leaves_from(0, count)
        insert_many(state, leaves)
        return state, reference(depth, leaves)

    @pytest.mark.parametrize("index", range(0, 5))
    def test_update_matches_full_recomputation(self, reference, index):
        """Verify an update root matches a full rebuild."""
        state, ref = self.build(reference, 4, 5)
        siblings = ref.siblings(index)
        old = ref.leaves[index]
        ref.leaves[index] = 4242
        root = update(state, index, old, 4242, siblings)
        assert root == state.root == ref.root()

    @pytest.mark.parametrize("index", range(0, 7))
    def test_inserts_after_update_stay_consistent(self, reference, index):
        """Verify updates on the rightmost path refresh the insert cache."""
        state, ref = self.build(reference, 4, 7)
        old = ref.leaves[index]
        update(state, index, old, 777, ref.siblings(index))
        ref.leaves[index] = 777

        for leaf in (801, 802, 803):
            insert(state, leaf)
            ref.leaves.append(leaf)
            assert state.root == ref.root()

    @pytest.mark.parametrize("index", range(0, 6))
    def test_batch_after_update_stays_consistent(self, reference, index):
        """Verify batches after an update match a full rebuild."""
        state, ref = self.build(reference, 4, 6)
        update(state, index, ref.leaves[index], 555, ref.siblings(index))
        ref.leaves[index] = 555
        insert_many(state, [901, 902, 903])
        ref.leaves.extend([901, 902, 903])
        assert state.root == ref.root()

    def test_stale_old_value_rejected(self, reference):
        """Verify a wrong old value raises ProofMismatch."""
        state, ref = self.build(reference, 4, 3)
        siblings = ref.siblings(1)
        update(state, 1, ref.leaves[1], 2000, siblings)
        with pytest.raises(ProofMismatch):
            update(state, 1, ref.leaves[1], 3000, siblings)

    def test_wrong_sibling_rejected_without_mutation(self, reference):
        """Verify a wrong sibling leaves the tree unchanged."""
        state, ref = self.build(reference, 4, 3)
        siblings = ref.siblings(0)
        siblings[2] = 12345
        before = state.to_dict()
        with pytest.raises(ProofMismatch):
            update(state, 0, ref.leaves[0], 1, siblings)
        assert state.to_dict() == before

    def test_index_at_leaf_count_rejected(self, reference):
        """Verify the next free index cannot be updated."""
        state, ref = self.build(reference, 4, 3)
        with pytest.raises(InvalidIndex):
            update(state, 3, 0, 1, ref.siblings(3))

    def test_negative_index_rejected(self, reference):
        """Verify negative indices are rejected."""
        state, ref = self.build(reference, 4, 3)
        with pytest.raises(InvalidIndex):
            update(state, -1, 1000, 1, ref.siblings(0))

    @pytest.mark.parametrize("length", [0, 3, 5])
    def test_wrong_proof_length_rejected(self, reference, length):
        """Verify sibling paths of the wrong length are rejected."""
        state, ref = self.build(reference, 4, 3)
        with pytest.raises(WrongProofLength):
            update(state, 0, ref.leaves[0], 1, [0] * length)

    def test_sibling_equal_to_modulus_rejected(self, reference):
        """Verify a sibling equal to the modulus is rejected."""
        state, ref = self.build(reference, 4, 3)
        siblings = ref.siblings(0)
        siblings[1] = SNARK_SCALAR_FIELD
        with pytest.raises(ValueOutOfField):
            update(state, 0, ref.leaves[0], 1, siblings)

    def test_remove_sets_empty_leaf_and_keeps_count(self, reference):
        """Verify removal writes the empty leaf and keeps the count."""
        state, ref = self.build(reference, 4, 4)
        remove(state, 2, ref.leaves[2], ref.siblings(2))
        ref.leaves[2] = 0
        assert state.root == ref.root()
        assert state.number_of_leaves == 4

    def test_removing_all_leaves_returns_empty_root(self, reference):
        """Verify removing every leaf restores the empty root."""
        state, ref = self.build(reference, 3, 2)
        for index in (0, 1):
            remove(state, index, ref.leaves[index], ref.siblings(index))
            ref.leaves[index] = 0
        assert state.root == zero_values(3)[3]
        assert state.number_of_leaves == 2


class TestTreeStateSerialization:
    """Test snapshot round trip used by the store."""

    def test_to_dict_from_dict(self):
        """Verify a tree state survives a dict round trip."""
        state = init_tree(depth=5)
        insert_many(state, leaves_from(0, 7))
        restored = TreeState.from_dict(state.to_dict())
        assert restored == state
        insert(restored, 1)
        insert(state, 1)
        assert restored.root == state.root
