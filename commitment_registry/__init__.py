# commitment_registry/__init__.py
"""
Commitment Registry - append/update/remove registry of identity commitments
backed by a fixed-depth incremental Merkle tree.

Roots are recorded with a timestamp and epoch and stay valid for a
configurable window; membership proofs can be checked statelessly against
any recorded root.

Integrations:
- EventStore: sqlite audit trail with optional Ed25519-signed roots
- TreeIndexer: full node cache serving sibling paths from the event stream
"""

__version__ = "0.1.0"

from .hashing import SNARK_SCALAR_FIELD, keccak_pair, is_field_element
from .zero_values import zero_value, zero_values
from .tree import TreeState, init_tree, insert, insert_many, update, remove, replay_path
from .root_history import RootHistory
from .verifier import verify_proof
from .registry import AccountRegistry, RegistryState
from .events import (
    AccountAdded,
    AccountUpdated,
    AccountRemoved,
    RootRecorded,
    RootValidityWindowSet,
    EventLog,
)
from .indexer import TreeIndexer, InclusionProof
from .config import RegistryConfig
from .errors import (
    RegistryError,
    InvalidCommitment,
    EmptyBatch,
    InvalidIndex,
    WrongProofLength,
    ValueOutOfField,
    ProofMismatch,
    TreeFull,
    UnauthorizedCaller,
)

__all__ = [
    # Core
    "SNARK_SCALAR_FIELD",
    "keccak_pair",
    "is_field_element",
    "zero_value",
    "zero_values",
    "TreeState",
    "init_tree",
    "insert",
    "insert_many",
    "update",
    "remove",
    "replay_path",
    "RootHistory",
    "verify_proof",
    "AccountRegistry",
    "RegistryState",
    # Events
    "AccountAdded",
    "AccountUpdated",
    "AccountRemoved",
    "RootRecorded",
    "RootValidityWindowSet",
    "EventLog",
    # Indexing / config
    "TreeIndexer",
    "InclusionProof",
    "RegistryConfig",
    # Errors
    "RegistryError",
    "InvalidCommitment",
    "EmptyBatch",
    "InvalidIndex",
    "WrongProofLength",
    "ValueOutOfField",
    "ProofMismatch",
    "TreeFull",
    "UnauthorizedCaller",
]
