# commitment_registry/root_history.py
"""
Root history bookkeeping.

Every root the registry produces is recorded with the wall-clock second it
was recorded at and a strictly increasing epoch. A root stays acceptable
for ``window`` seconds after its (latest) recording; a window of 0 means
recorded roots never expire.
"""

import time
from typing import Callable, Dict, Optional, Tuple

from .errors import InvalidValidityWindow
from .events import RootRecorded
from .hashing import to_hex, from_hex

UNSET_TIMESTAMP = 0

Clock = Callable[[], float]


def check_window(window: int) -> int:
    if isinstance(window, bool) or not isinstance(window, int) or window < 0:
        raise InvalidValidityWindow(f"Validity window must be a non-negative integer, got {window!r}")
    return window


class RootHistory:
    def __init__(self, clock: Clock = time.time, emit: Optional[Callable[[RootRecorded], None]] = None):
        self.clock = clock
        self.emit = emit
        self.timestamps: Dict[int, int] = {}
        self.epochs: Dict[int, int] = {}
        self.current_epoch = 0
        self.latest_root: Optional[int] = None

    def now(self) -> int:
        return int(self.clock())

    def record(self, root: int) -> RootRecorded:
        """Stamp root with the current time and the next epoch."""
        now = self.now()
        event = RootRecorded(root=root, timestamp=now, epoch=self.current_epoch)
        self.timestamps[root] = now
        self.epochs[root] = self.current_epoch
        self.latest_root = root
        self.current_epoch += 1
        if self.emit is not None:
            self.emit(event)
        return event

    def timestamp(self, root: int) -> int:
        return self.timestamps.get(root, UNSET_TIMESTAMP)

    def is_valid(self, root: int, window: int) -> bool:
        if root not in self.timestamps:
            return False
        if window == 0:
            return True
        return self.now() <= self.timestamps[root] + window

    def latest(self) -> Optional[RootRecorded]:
        if self.latest_root is None:
            return None
        return RootRecorded(
            root=self.latest_root,
            timestamp=self.timestamps[self.latest_root],
            epoch=self.epochs[self.latest_root],
        )

    def entries(self) -> Tuple[RootRecorded, ...]:
        """Retained entries ordered by epoch (one per distinct root)."""
        return tuple(sorted(
            (RootRecorded(root=r, timestamp=self.timestamps[r], epoch=self.epochs[r]) for r in self.timestamps),
            key=lambda e: e.epoch,
        ))

    def to_dict(self) -> dict:
        return {
            "current_epoch": self.current_epoch,
            "latest_root": to_hex(self.latest_root) if self.latest_root is not None else None,
            "entries": [
                {"root": to_hex(e.root), "timestamp": e.timestamp, "epoch": e.epoch}
                for e in self.entries()
            ],
        }

    @classmethod
    def from_dict(cls, data: dict, clock: Clock = time.time, emit=None) -> "RootHistory":
        history = cls(clock=clock, emit=emit)
        for entry in data["entries"]:
            root = from_hex(entry["root"])
            history.timestamps[root] = entry["timestamp"]
            history.epochs[root] = entry["epoch"]
        history.current_epoch = data["current_epoch"]
        if data.get("latest_root"):
            history.latest_root = from_hex(data["latest_root"])
        return history
