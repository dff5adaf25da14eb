# commitment_registry/events.py
"""
Notifications emitted by the registry.

These form the durable audit trail: external observers replay them to
rebuild the leaf set and sibling paths off-line.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Type, Union


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountAdded:
    account_index: int
    commitment: int


@dataclass(frozen=True)
class AccountUpdated:
    account_index: int
    old_commitment: int
    new_commitment: int


@dataclass(frozen=True)
class AccountRemoved:
    account_index: int
    commitment: int


@dataclass(frozen=True)
class RootRecorded:
    root: int
    timestamp: int
    epoch: int


@dataclass(frozen=True)
class RootValidityWindowSet:
    old_window: int
    new_window: int


RegistryEvent = Union[AccountAdded, AccountUpdated, AccountRemoved, RootRecorded, RootValidityWindowSet]
Listener = Callable[[RegistryEvent], None]


class EventLog:
    """In-memory ordered event log with synchronous subscribers."""

    def __init__(self):
        self._events: List[RegistryEvent] = []
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        self._listeners.remove(listener)

    def emit(self, event: RegistryEvent) -> None:
        self.emit_all([event])

    def emit_all(self, events: Sequence[RegistryEvent]) -> None:
        """Append every event, then notify listeners in order.

        A listener that raises stops notification; the events stay logged.
        """
        self._events.extend(events)
        for event in events:
            logger.debug("Emitted %s", event)
            for listener in self._listeners:
                listener(event)

    def events(self, kind: Optional[Type] = None) -> List[RegistryEvent]:
        if kind is None:
            return list(self._events)
        return [e for e in self._events if isinstance(e, kind)]

    def __len__(self) -> int:
        return len(self._events)
