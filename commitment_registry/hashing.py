# commitment_registry/hashing.py
"""
Field-bounded two-input compression hash.

Every leaf, sibling and root in the registry is an element of the BN254
scalar field. The default node hash is keccak256 over the 64-byte
concatenation of both inputs (Solidity ``abi.encode(uint256, uint256)``
layout), reduced into the field.
"""

from typing import Any, Callable

from eth_utils import keccak

from .errors import ValueOutOfField

SNARK_SCALAR_FIELD = 21888242871839275222246405745257275088548364400416034343698204186575808495617

# (left, right) -> parent
Hasher = Callable[[int, int], int]


def is_field_element(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return 0 <= value < SNARK_SCALAR_FIELD


def require_field_element(value: Any, name: str = "value") -> int:
    """Return value unchanged, or raise ValueOutOfField."""
    if not is_field_element(value):
        raise ValueOutOfField(f"{name} is not a field element: {value!r}", value=value)
    return value


def keccak_pair(left: int, right: int) -> int:
    """Hash two field elements into one."""
    digest = keccak(left.to_bytes(32, "big") + right.to_bytes(32, "big"))
    return int.from_bytes(digest, "big") % SNARK_SCALAR_FIELD


DEFAULT_HASHER: Hasher = keccak_pair


def to_hex(value: int) -> str:
    """Fixed-width hex form used in the audit trail."""
    return f"0x{value:064x}"


def from_hex(value: str) -> int:
    return int(value, 16)
