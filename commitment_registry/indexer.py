# commitment_registry/indexer.py
"""
Off-line tree indexer.

Replays registry events into a full sparse node cache so that sibling
paths can be served for any account. The registry itself keeps only the
rightmost path, so callers of update/remove obtain their proofs here.
Each RootRecorded event is checked against the locally computed root.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .errors import InvalidIndex
from .events import (
    AccountAdded,
    AccountRemoved,
    AccountUpdated,
    RegistryEvent,
    RootRecorded,
)
from .hashing import DEFAULT_HASHER, Hasher, to_hex
from .registry import FIRST_ACCOUNT_INDEX
from .tree import DEFAULT_DEPTH
from .verifier import verify_proof
from .zero_values import EMPTY_LEAF, zero_values


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InclusionProof:
    account_index: int
    tree_index: int
    commitment: int
    root: int
    siblings: Tuple[int, ...]

    def verify(self, hasher: Hasher = DEFAULT_HASHER) -> bool:
        return verify_proof(self.root, self.commitment, self.siblings, self.tree_index,
                            len(self.siblings), hasher)

    def to_dict(self) -> dict:
        return {
            "account_index": self.account_index,
            "tree_index": self.tree_index,
            "commitment": to_hex(self.commitment),
            "root": to_hex(self.root),
            "siblings": [to_hex(s) for s in self.siblings],
            "depth": len(self.siblings),
        }


class TreeIndexer:
    def __init__(self, depth: int = DEFAULT_DEPTH, hasher: Hasher = DEFAULT_HASHER):
        self.depth = depth
        self.hasher = hasher
        self.zeros = zero_values(depth, hasher)
        # (level, position) -> hash; absent entries are empty subtrees
        self.nodes: Dict[Tuple[int, int], int] = {}
        self.commitments: Dict[int, int] = {}
        self.latest_recorded: Optional[RootRecorded] = None
        self.mismatches: List[RootRecorded] = []
        self.total_updates = 0
        self.total_roots = 0

    def node(self, level: int, position: int) -> int:
        return self.nodes.get((level, position), self.zeros[level])

    @property
    def root(self) -> int:
        return self.node(self.depth, 0)

    def set_leaf(self, tree_index: int, value: int) -> None:
        if not 0 <= tree_index < (1 << self.depth):
            raise InvalidIndex(f"Tree index {tree_index} out of range for depth {self.depth}",
                               index=tree_index, limit=1 << self.depth)
        self.nodes[(0, tree_index)] = value
        position = tree_index
        for level in range(self.depth):
            left = self.node(level, position & ~1)
            right = self.node(level, position | 1)
            position >>= 1
            self.nodes[(level + 1, position)] = self.hasher(left, right)

    def siblings(self, tree_index: int) -> List[int]:
        return [self.node(level, (tree_index >> level) ^ 1) for level in range(self.depth)]

    def account(self, account_index: int) -> Optional[int]:
        return self.commitments.get(account_index)

    def proof(self, account_index: int) -> InclusionProof:
        if account_index not in self.commitments:
            raise InvalidIndex(f"Account {account_index} has not been indexed", index=account_index)
        tree_index = account_index - FIRST_ACCOUNT_INDEX
        return InclusionProof(
            account_index=account_index,
            tree_index=tree_index,
            commitment=self.commitments[account_index],
            root=self.root,
            siblings=tuple(self.siblings(tree_index)),
        )

    # ==================== Event handling ====================

    def handle(self, event: RegistryEvent) -> None:
        if isinstance(event, AccountAdded):
            self._apply(event.account_index, event.commitment)
            logger.debug("Indexed account %d", event.account_index)
        elif isinstance(event, AccountUpdated):
            self._apply(event.account_index, event.new_commitment)
            self.total_updates += 1
        elif isinstance(event, AccountRemoved):
            self._apply(event.account_index, EMPTY_LEAF)
            self.total_updates += 1
        elif isinstance(event, RootRecorded):
            self.total_roots += 1
            self.latest_recorded = event
            if event.root != self.root:
                self.mismatches.append(event)
                logger.warning(
                    "Root mismatch at epoch %d: registry %s, computed %s",
                    event.epoch, to_hex(event.root), to_hex(self.root),
                )
            else:
                logger.debug("Root at epoch %d verified", event.epoch)

    def _apply(self, account_index: int, commitment: int) -> None:
        if account_index < FIRST_ACCOUNT_INDEX:
            raise InvalidIndex("Account index cannot be zero", index=account_index)
        self.set_leaf(account_index - FIRST_ACCOUNT_INDEX, commitment)
        self.commitments[account_index] = commitment

    def load_accounts(self, accounts) -> None:
        """Bulk-load (account_index, commitment) pairs, e.g. from the store."""
        for account_index, commitment in accounts:
            self._apply(account_index, commitment)
        logger.info("Indexed %d accounts, root %s", len(self.commitments), to_hex(self.root))

    def stats(self) -> dict:
        return {
            "total_accounts": len(self.commitments),
            "total_updates": self.total_updates,
            "total_roots": self.total_roots,
            "root_mismatches": len(self.mismatches),
            "root": to_hex(self.root),
        }
