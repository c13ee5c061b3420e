"""
Engine State - In-memory bookkeeping shared by the engine and the executor

Owned by one LimitOrderEngine and passed by reference; nothing here is
persisted, a restart starts from a clean slate.
"""
import time
import logging
from typing import Callable, Dict, List, Set, Tuple

logger = logging.getLogger(__name__)

DEFAULT_PROCESSING_TTL = 300.0  # 5 min


class ProcessingRegistry:
    """
    Orders currently being dispatched, keyed by order id

    A marker older than the TTL is considered stale and swept, so an order
    whose continuation died can be picked up again by a later tick.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_PROCESSING_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._marks: Dict[int, float] = {}

    def try_mark(self, order_id: int) -> bool:
        """Mark ``order_id`` as processing; False if it already was"""
        if order_id in self._marks:
            return False
        self._marks[order_id] = self._clock()
        return True

    def unmark(self, order_id: int) -> None:
        self._marks.pop(order_id, None)

    def is_processing(self, order_id: int) -> bool:
        return order_id in self._marks

    def sweep(self, ttl_seconds: float = None) -> List[int]:
        """Drop markers older than the TTL, returning the swept ids"""
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        now = self._clock()
        stale = [oid for oid, marked_at in self._marks.items() if now - marked_at > ttl]
        for oid in stale:
            del self._marks[oid]
        if stale:
            logger.warning(f"Swept stale processing markers: {stale}")
        return stale

    def __len__(self) -> int:
        return len(self._marks)


class EngineState:
    """Processing markers, one-time notices and dispatched approvals"""

    def __init__(self, processing_ttl_seconds: float = DEFAULT_PROCESSING_TTL, clock: Callable[[], float] = time.monotonic):
        self.processing = ProcessingRegistry(processing_ttl_seconds, clock)
        self._notices: Set[int] = set()
        self._approvals: Set[Tuple[str, str]] = set()

    # Notices ---------------------------------------------------------------

    def should_notify_once(self, order_id: int) -> bool:
        """True the first time it is called for ``order_id``"""
        if order_id in self._notices:
            return False
        self._notices.add(order_id)
        return True

    def forget_notice(self, order_id: int) -> None:
        self._notices.discard(order_id)

    # Approvals ---------------------------------------------------------------

    def claim_approval(self, wallet_address: str, token: str) -> bool:
        """True the first time a (wallet, token) pair is seen"""
        key = (wallet_address.lower(), token.lower())
        if key in self._approvals:
            return False
        self._approvals.add(key)
        return True

    def release_approval(self, wallet_address: str, token: str) -> None:
        self._approvals.discard((wallet_address.lower(), token.lower()))
