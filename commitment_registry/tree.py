# commitment_registry/tree.py
"""
Fixed-depth binary incremental Merkle tree.

The tree keeps only the rightmost-path cache (``filled_subtrees``), the
leaf count and the root. Updates and removals are authenticated by the
caller supplying the current leaf value together with its sibling path;
the path is replayed against the stored root before anything changes.

All functions validate every input before assigning to the state, so a
rejected call leaves the tree untouched.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Sequence, Dict, Any

from .errors import (
    EmptyBatch,
    InvalidIndex,
    ProofMismatch,
    TreeFull,
    WrongProofLength,
)
from .hashing import DEFAULT_HASHER, Hasher, require_field_element, to_hex, from_hex
from .zero_values import EMPTY_LEAF, zero_values


logger = logging.getLogger(__name__)

DEFAULT_DEPTH = 30
MAX_DEPTH = 32


@dataclass
class TreeState:
    """Mutable tree data; operated on by the module-level functions."""
    depth: int
    number_of_leaves: int
    filled_subtrees: List[int]
    root: int
    hasher: Hasher = field(default=DEFAULT_HASHER, repr=False, compare=False)

    @property
    def capacity(self) -> int:
        return 1 << self.depth

    def to_dict(self) -> Dict[str, Any]:
        return {
            "depth": self.depth,
            "number_of_leaves": self.number_of_leaves,
            "filled_subtrees": [to_hex(v) for v in self.filled_subtrees],
            "root": to_hex(self.root),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], hasher: Hasher = DEFAULT_HASHER) -> "TreeState":
        return cls(
            depth=data["depth"],
            number_of_leaves=data["number_of_leaves"],
            filled_subtrees=[from_hex(v) for v in data["filled_subtrees"]],
            root=from_hex(data["root"]),
            hasher=hasher,
        )


def init_tree(depth: int = DEFAULT_DEPTH, hasher: Hasher = DEFAULT_HASHER) -> TreeState:
    """Create an empty tree with every level at its zero value."""
    if isinstance(depth, bool) or not isinstance(depth, int) or not 1 <= depth <= MAX_DEPTH:
        raise ValueError(f"Tree depth must be in [1, {MAX_DEPTH}], got {depth!r}")
    zeros = zero_values(depth, hasher)
    return TreeState(
        depth=depth,
        number_of_leaves=0,
        filled_subtrees=list(zeros[:depth]),
        root=zeros[depth],
        hasher=hasher,
    )


def path_nodes(leaf: int, index: int, siblings: Sequence[int], hasher: Hasher) -> List[int]:
    """
    Replay a sibling path bottom-up.

    Returns the node on the path at every level: [0] is the leaf and
    [len(siblings)] the resulting root. At level i the running hash is the
    left input when bit i of index is 0, the right input otherwise.
    """
    nodes = [leaf]
    current = leaf
    for i, sibling in enumerate(siblings):
        if (index >> i) & 1 == 0:
            current = hasher(current, sibling)
        else:
            current = hasher(sibling, current)
        nodes.append(current)
    return nodes


def replay_path(leaf: int, index: int, siblings: Sequence[int], hasher: Hasher = DEFAULT_HASHER) -> int:
    return path_nodes(leaf, index, siblings, hasher)[-1]


def insert(state: TreeState, leaf: int) -> int:
    """Append leaf at the next free index. Returns that index."""
    require_field_element(leaf, "leaf")
    index = state.number_of_leaves
    if index >= state.capacity:
        raise TreeFull(f"Tree of depth {state.depth} is full", capacity=state.capacity)

    zeros = zero_values(state.depth, state.hasher)
    filled = list(state.filled_subtrees)
    current = leaf
    for i in range(state.depth):
        if (index >> i) & 1 == 0:
            filled[i] = current
            current = state.hasher(current, zeros[i])
        else:
            current = state.hasher(filled[i], current)

    state.filled_subtrees = filled
    state.root = current
    state.number_of_leaves = index + 1
    logger.debug("Inserted leaf at index %d, root %s", index, to_hex(current))
    return index


def insert_many(state: TreeState, leaves: Sequence[int]) -> int:
    """
    Append leaves at contiguous indices. Returns the first assigned index.

    Hashes the new leaves level by level instead of walking the full path
    once per leaf; the resulting root and cache match repeated insert().
    """
    leaves = list(leaves)
    if not leaves:
        raise EmptyBatch("Cannot insert an empty batch")
    for position, leaf in enumerate(leaves):
        require_field_element(leaf, f"leaves[{position}]")
    start = state.number_of_leaves
    if start + len(leaves) > state.capacity:
        raise TreeFull(
            f"Batch of {len(leaves)} exceeds remaining capacity {state.capacity - start}",
            capacity=state.capacity,
        )

    zeros = zero_values(state.depth, state.hasher)
    filled = list(state.filled_subtrees)
    nodes = leaves
    first = start
    for i in range(state.depth):
        if first & 1:
            nodes = [filled[i]] + nodes
            first -= 1
        # last node sitting at an even (left) position
        filled[i] = nodes[(len(nodes) - 1) & ~1]
        if len(nodes) & 1:
            nodes = nodes + [zeros[i]]
        nodes = [state.hasher(nodes[k], nodes[k + 1]) for k in range(0, len(nodes), 2)]
        first >>= 1

    state.filled_subtrees = filled
    state.root = nodes[0]
    state.number_of_leaves = start + len(leaves)
    logger.debug(
        "Inserted %d leaves at indices %d..%d, root %s",
        len(leaves), start, state.number_of_leaves - 1, to_hex(state.root),
    )
    return start


def _check_proof_inputs(state: TreeState, index: int, leaves: Sequence[int], siblings: Sequence[int]) -> List[int]:
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < state.number_of_leaves:
        raise InvalidIndex(
            f"Index {index!r} has not been assigned (leaf count {state.number_of_leaves})",
            index=index if isinstance(index, int) else None,
            limit=state.number_of_leaves,
        )
    siblings = list(siblings)
    if len(siblings) != state.depth:
        raise WrongProofLength(
            f"Expected {state.depth} siblings, got {len(siblings)}",
            expected=state.depth,
            actual=len(siblings),
        )
    for leaf in leaves:
        require_field_element(leaf, "leaf")
    for i, sibling in enumerate(siblings):
        require_field_element(sibling, f"siblings[{i}]")
    return siblings


def update(state: TreeState, index: int, old_leaf: int, new_leaf: int, siblings: Sequence[int]) -> int:
    """
    Replace old_leaf at index with new_leaf. Returns the new root.

    old_leaf and siblings must replay to the current root; otherwise
    ProofMismatch is raised and nothing changes.
    """
    siblings = _check_proof_inputs(state, index, (old_leaf, new_leaf), siblings)

    computed = replay_path(old_leaf, index, siblings, state.hasher)
    if computed != state.root:
        logger.warning("Rejected proof for index %d: stale or incorrect siblings", index)
        raise ProofMismatch(
            f"Proof for index {index} does not match the current root",
            expected_root=state.root,
            computed_root=computed,
        )

    nodes = path_nodes(new_leaf, index, siblings, state.hasher)
    filled = list(state.filled_subtrees)
    n = state.number_of_leaves
    for i in range(state.depth):
        # filled[i] is read on the next insert only when bit i of n is set,
        # and then holds the node just left of the rightmost path
        if (n >> i) & 1 and (index >> i) == (n >> i) - 1:
            filled[i] = nodes[i]

    state.filled_subtrees = filled
    state.root = nodes[-1]
    logger.debug("Updated index %d, root %s", index, to_hex(state.root))
    return state.root


def remove(state: TreeState, index: int, leaf: int, siblings: Sequence[int]) -> int:
    """Vacate index by setting it to the empty leaf. The slot stays counted."""
    return update(state, index, leaf, EMPTY_LEAF, siblings)
