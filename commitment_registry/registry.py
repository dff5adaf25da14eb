# commitment_registry/registry.py
"""
Account registry over the incremental Merkle tree.

Owns the tree, the root history and the validity window, and exposes the
operations an authorized caller may invoke. Account indices are 1-based;
account ``a`` is stored at tree index ``a - 1`` and index 0 is reserved.
"""

import logging
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from . import tree as imt
from .errors import InvalidCommitment, InvalidIndex, UnauthorizedCaller
from .events import (
    AccountAdded,
    AccountRemoved,
    AccountUpdated,
    EventLog,
    RegistryEvent,
    RootValidityWindowSet,
)
from .hashing import DEFAULT_HASHER, Hasher, require_field_element, to_hex
from .root_history import Clock, RootHistory, check_window
from .verifier import verify_proof
from .zero_values import zero_value


logger = logging.getLogger(__name__)

FIRST_ACCOUNT_INDEX = 1
DEFAULT_ROOT_VALIDITY_WINDOW = 3600


@dataclass
class RegistryState:
    tree: imt.TreeState
    root_history: RootHistory
    validity_window: int
    next_account_index: int = FIRST_ACCOUNT_INDEX

    def to_dict(self) -> dict:
        return {
            "tree": self.tree.to_dict(),
            "root_history": self.root_history.to_dict(),
            "validity_window": self.validity_window,
            "next_account_index": self.next_account_index,
        }


def require_commitment(value, name: str = "commitment") -> int:
    require_field_element(value, name)
    if value == 0:
        raise InvalidCommitment(f"{name} must be nonzero", commitment=value)
    return value


class AccountRegistry:
    """Identity commitment registry.

    Mutating operations take an optional ``caller``. When the registry is
    created with ``authorized_callers``, only those identities may mutate;
    otherwise the capability check is left to the host.
    """

    def __init__(
        self,
        depth: int = imt.DEFAULT_DEPTH,
        root_validity_window: int = DEFAULT_ROOT_VALIDITY_WINDOW,
        hasher: Hasher = DEFAULT_HASHER,
        clock: Clock = time.time,
        authorized_callers: Optional[Iterable[str]] = None,
        events: Optional[EventLog] = None,
        state: Optional[RegistryState] = None,
    ):
        self.hasher = hasher
        self.events = events if events is not None else EventLog()
        self.authorized_callers = set(authorized_callers) if authorized_callers is not None else None

        if state is None:
            history = RootHistory(clock=clock)
            state = RegistryState(
                tree=imt.init_tree(depth, hasher),
                root_history=history,
                validity_window=check_window(root_validity_window),
            )
        else:
            state.tree.hasher = hasher
            state.root_history.clock = clock
            state.root_history.emit = None
        self.state = state

    @classmethod
    def from_dict(cls, data: dict, hasher: Hasher = DEFAULT_HASHER, clock: Clock = time.time,
                  authorized_callers: Optional[Iterable[str]] = None,
                  events: Optional[EventLog] = None) -> "AccountRegistry":
        """Restore a registry from a RegistryState.to_dict() snapshot."""
        state = RegistryState(
            tree=imt.TreeState.from_dict(data["tree"], hasher),
            root_history=RootHistory.from_dict(data["root_history"], clock=clock),
            validity_window=data["validity_window"],
            next_account_index=data["next_account_index"],
        )
        return cls(hasher=hasher, clock=clock, authorized_callers=authorized_callers,
                   events=events, state=state)

    # ==================== Authorization ====================

    def _authorize(self, caller: Optional[str], action: str) -> None:
        if self.authorized_callers is None:
            return
        if caller not in self.authorized_callers:
            logger.warning("Unauthorized %s attempt by %r", action, caller)
            raise UnauthorizedCaller(f"Caller {caller!r} may not {action}", caller=caller)

    def _tree_index(self, account_index) -> int:
        if (isinstance(account_index, bool) or not isinstance(account_index, int)
                or not FIRST_ACCOUNT_INDEX <= account_index < self.state.next_account_index):
            raise InvalidIndex(
                f"Account index {account_index!r} is not an existing account",
                index=account_index if isinstance(account_index, int) else None,
                limit=self.state.next_account_index,
            )
        return account_index - FIRST_ACCOUNT_INDEX

    # ==================== Mutations ====================

    def _publish(self, events: List[RegistryEvent], root: int) -> None:
        # state is final before any listener runs
        record = self.state.root_history.record(root)
        self.events.emit_all(events + [record])

    def add_one(self, commitment: int, caller: Optional[str] = None) -> int:
        """Register one commitment. Returns its account index."""
        self._authorize(caller, "add accounts")
        require_commitment(commitment)

        imt.insert(self.state.tree, commitment)
        account_index = self.state.next_account_index
        self.state.next_account_index += 1

        logger.info("Added account %d", account_index)
        self._publish([AccountAdded(account_index=account_index, commitment=commitment)],
                      self.state.tree.root)
        return account_index

    def add_batch(self, commitments: Sequence[int], caller: Optional[str] = None) -> List[int]:
        """Register commitments at contiguous account indices; the root is recorded once."""
        self._authorize(caller, "add accounts")
        commitments = list(commitments)
        for position, commitment in enumerate(commitments):
            require_commitment(commitment, f"commitments[{position}]")

        # raises EmptyBatch / TreeFull before touching state
        imt.insert_many(self.state.tree, commitments)
        first = self.state.next_account_index
        self.state.next_account_index += len(commitments)

        indices = list(range(first, first + len(commitments)))
        logger.info("Added %d accounts starting at %d", len(commitments), first)
        self._publish(
            [AccountAdded(account_index=a, commitment=c) for a, c in zip(indices, commitments)],
            self.state.tree.root,
        )
        return indices

    def update(self, account_index: int, old_commitment: int, new_commitment: int,
               siblings: Sequence[int], caller: Optional[str] = None) -> int:
        """Replace an account's commitment. Returns the new root."""
        self._authorize(caller, "update accounts")
        tree_index = self._tree_index(account_index)
        require_commitment(old_commitment, "old_commitment")
        require_commitment(new_commitment, "new_commitment")

        root = imt.update(self.state.tree, tree_index, old_commitment, new_commitment, siblings)

        logger.info("Updated account %d", account_index)
        self._publish([AccountUpdated(
            account_index=account_index,
            old_commitment=old_commitment,
            new_commitment=new_commitment,
        )], root)
        return root

    def remove(self, account_index: int, commitment: int, siblings: Sequence[int],
               caller: Optional[str] = None) -> int:
        """Zero an account's leaf. The account index is never reused."""
        self._authorize(caller, "remove accounts")
        tree_index = self._tree_index(account_index)
        require_commitment(commitment)

        root = imt.remove(self.state.tree, tree_index, commitment, siblings)

        logger.info("Removed account %d", account_index)
        self._publish([AccountRemoved(account_index=account_index, commitment=commitment)], root)
        return root

    def set_root_validity_window(self, seconds: int, caller: Optional[str] = None) -> None:
        self._authorize(caller, "set the root validity window")
        check_window(seconds)
        old = self.state.validity_window
        self.state.validity_window = seconds
        logger.info("Root validity window changed from %d to %d seconds", old, seconds)
        self.events.emit(RootValidityWindowSet(old_window=old, new_window=seconds))

    # ==================== Views ====================

    def get_root(self) -> int:
        return self.state.tree.root

    def get_depth(self) -> int:
        return self.state.tree.depth

    def get_total_accounts(self) -> int:
        """Next account index to be assigned (index 0 is reserved)."""
        return self.state.next_account_index

    def get_number_of_leaves(self) -> int:
        return self.state.tree.number_of_leaves

    def get_zero_value(self, level: int) -> int:
        return zero_value(level, self.state.tree.depth, self.hasher)

    def get_root_validity_window(self) -> int:
        return self.state.validity_window

    def is_valid_root(self, root: int) -> bool:
        require_field_element(root, "root")
        return self.state.root_history.is_valid(root, self.state.validity_window)

    def root_timestamp(self, root: int) -> int:
        return self.state.root_history.timestamp(root)

    def verify_proof_stateless(self, root: int, leaf: int, siblings: Sequence[int],
                               index: int, depth: int) -> bool:
        return verify_proof(root, leaf, siblings, index, depth, self.hasher)

    def __repr__(self) -> str:
        return (f"AccountRegistry(depth={self.get_depth()}, leaves={self.get_number_of_leaves()}, "
                f"root={to_hex(self.get_root())})")
