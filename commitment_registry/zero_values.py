# commitment_registry/zero_values.py

from functools import lru_cache
from typing import Tuple

from .errors import InvalidLevel
from .hashing import DEFAULT_HASHER, Hasher

EMPTY_LEAF = 0


@lru_cache(maxsize=None)
def zero_values(depth: int, hasher: Hasher = DEFAULT_HASHER) -> Tuple[int, ...]:
    """
    Hashes of empty subtrees for levels 0..depth.
    zero_values(d)[0] is the empty leaf; [i] = H([i-1], [i-1]).
    """
    values = [EMPTY_LEAF]
    for _ in range(depth):
        values.append(hasher(values[-1], values[-1]))
    return tuple(values)


def zero_value(level: int, depth: int, hasher: Hasher = DEFAULT_HASHER) -> int:
    if isinstance(level, bool) or not isinstance(level, int) or not 0 <= level <= depth:
        raise InvalidLevel(f"Level {level!r} outside [0, {depth}]")
    return zero_values(depth, hasher)[level]
