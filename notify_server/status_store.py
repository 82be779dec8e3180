"""
MODULE OVERVIEW:
The Status Tracking Map: message identifier -> current lifecycle status.

WHAT IS HAPPENING HERE:
This is the single source of truth the status endpoints and the statistics
aggregator read, and the only thing the processor writes. HTTP handlers may
run on a threadpool while the consumer runs on the event loop, so every access
goes through one `threading.Lock` and readers only ever get copies.

Each identifier also keeps the ordered list of statuses it went through, which
makes the PROCESSING -> terminal ordering directly observable.

Intake reserves a direct `mensagemId` before publishing it. A reservation is
invisible to `get` (the identifier still reads as unknown until the processor
picks it up) but makes a second intake of the same id fail with
DuplicateMessageError instead of being silently dropped by the consumer.
"""
import threading
from typing import Dict, List, Optional, Set

from loguru import logger

from notify_shared.errors import DuplicateMessageError, InvalidTransitionError
from notify_shared.models import LifecycleStatus

_ALLOWED = {
    None: {LifecycleStatus.PROCESSING},
    LifecycleStatus.PENDING: {LifecycleStatus.PROCESSING},
    LifecycleStatus.PROCESSING: {LifecycleStatus.COMPLETED, LifecycleStatus.FAILED},
}


class StatusStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._statuses: Dict[str, LifecycleStatus] = {}
        self._history: Dict[str, List[LifecycleStatus]] = {}
        self._reserved: Set[str] = set()

    def reserve(self, identifier: str) -> None:
        """Claim an identifier at intake. Raises DuplicateMessageError if it is taken."""
        with self._lock:
            if identifier in self._reserved or identifier in self._statuses:
                raise DuplicateMessageError(f"mensagemId {identifier} is already tracked")
            self._reserved.add(identifier)

    def release(self, identifier: str) -> None:
        """Drop a reservation whose publish never happened."""
        with self._lock:
            self._reserved.discard(identifier)

    def set(self, identifier: str, status: LifecycleStatus) -> None:
        """Record a transition. Raises InvalidTransitionError on out-of-order writes."""
        with self._lock:
            current = self._statuses.get(identifier)
            if status not in _ALLOWED.get(current, set()):
                raise InvalidTransitionError(identifier, current, status)
            self._statuses[identifier] = status
            self._reserved.discard(identifier)
            self._history.setdefault(identifier, []).append(status)
        logger.debug(f"mensagem_id={identifier} status={status.value} event=transition")

    def get(self, identifier: str) -> Optional[LifecycleStatus]:
        """Current status, or None when the identifier was never tracked."""
        with self._lock:
            return self._statuses.get(identifier)

    def all(self) -> Dict[str, LifecycleStatus]:
        with self._lock:
            return dict(self._statuses)

    def history(self, identifier: str) -> List[LifecycleStatus]:
        with self._lock:
            return list(self._history.get(identifier, []))

    def __len__(self) -> int:
        with self._lock:
            return len(self._statuses)
