# commitment_registry/verifier.py

from typing import Sequence

from .errors import InvalidIndex, WrongProofLength
from .hashing import DEFAULT_HASHER, Hasher, require_field_element
from .tree import replay_path


def verify_proof(
    root: int,
    leaf: int,
    siblings: Sequence[int],
    index: int,
    depth: int,
    hasher: Hasher = DEFAULT_HASHER,
) -> bool:
    """
    Check that leaf sits at index under root, without any tree state.

    Malformed input (non-field values, wrong path length, index outside the
    tree) raises; a well-formed proof that does not match returns False.
    """
    siblings = list(siblings)
    if len(siblings) != depth:
        raise WrongProofLength(
            f"Expected {depth} siblings, got {len(siblings)}",
            expected=depth,
            actual=len(siblings),
        )
    require_field_element(root, "root")
    require_field_element(leaf, "leaf")
    for i, sibling in enumerate(siblings):
        require_field_element(sibling, f"siblings[{i}]")
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < (1 << depth):
        raise InvalidIndex(f"Index {index!r} outside a tree of depth {depth}", limit=1 << depth)

    return replay_path(leaf, index, siblings, hasher) == root
