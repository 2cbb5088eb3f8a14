# paygate/gate/replay.py
"""
Replay protection for payment proofs.

Each (network, transaction id) pair authorizes at most one request. The
in-memory store is process-local and append-only: entries are never removed,
so memory grows with the number of accepted payments and the record is lost
on restart. Running several processes requires a shared ReplayStore.
"""
import logging
import threading
import time
from enum import Enum
from typing import Dict, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

ReplayKey = Tuple[str, str]


class ReplayStatus(Enum):
    FIRST_USE = "first_use"
    ALREADY_USED = "already_used"


class ReplayStore(Protocol):
    """Storage for consumed payment proofs. check_and_insert must not suspend."""

    def check_and_insert(self, key: ReplayKey, timestamp: float) -> bool:
        """
        Insert key if absent.

        Returns:
            True if the key was inserted, False if it was already present
        """
        ...


class InMemoryReplayStore:
    """Process-local consumed-proof set."""

    def __init__(self):
        self._consumed: Dict[ReplayKey, float] = {}
        self._lock = threading.Lock()

    def check_and_insert(self, key: ReplayKey, timestamp: float) -> bool:
        with self._lock:
            if key in self._consumed:
                return False
            self._consumed[key] = timestamp
            return True

    def consumed_at(self, key: ReplayKey) -> Optional[float]:
        return self._consumed.get(key)

    def __len__(self) -> int:
        return len(self._consumed)


class ReplayGuard:
    """Marks verified payment proofs as consumed."""

    def __init__(self, store: Optional[ReplayStore] = None, clock=time.time):
        self._store = store if store is not None else InMemoryReplayStore()
        self._clock = clock

    @property
    def store(self) -> ReplayStore:
        return self._store

    def consume(self, network: str, transaction_id: str) -> ReplayStatus:
        """
        Consume a payment proof.

        Only call this after the proof has been verified on-chain, so a
        rejected proof stays usable.

        Args:
            network: Network or network name ("solana" or "base")
            transaction_id: Normalized transaction id

        Returns:
            FIRST_USE the first time, ALREADY_USED on every later call
        """
        network = getattr(network, "value", network)
        if self._store.check_and_insert((network, transaction_id), self._clock()):
            return ReplayStatus.FIRST_USE

        logger.warning(f"Replay rejected: {network} tx {transaction_id} already used")
        return ReplayStatus.ALREADY_USED
