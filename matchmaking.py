# -----------------------------
# matchmaking.py
# -----------------------------
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from utils import monotonic, payload_keys

# emit(connection_id, event, data)
Emitter = Callable[[str, str, Any], None]

MATCH_FOUND = "match-found"
WAITING_FOR_PEER = "waiting-for-peer"
SIGNAL = "signal"
PEER_DISCONNECTED = "peer-disconnected"
ERROR = "error"

NO_ACTIVE_PEER = "No active peer to signal"

@dataclass
class WaitingEntry:
    connection_id: str
    enqueued_at: float

@dataclass
class MatchmakerStats:
    active_connections: int
    waiting: int
    active_pairs: int

class Matchmaker:
    """
    Pairs anonymous connections first come, first served and relays
    signaling payloads between paired connections.

    Every connection is in exactly one state: idle, waiting or paired.
    Methods are synchronous and must be serialized by the caller.
    """

    def __init__(self, emit: Emitter, waiting_timeout: float = 300.0,
                 clock: Callable[[], float] = monotonic):
        self._emit = emit
        self._clock = clock
        self.waiting_timeout = waiting_timeout
        self._connections: Dict[str, float] = {}       # id -> connected_at
        self._queue: Dict[str, WaitingEntry] = {}      # insertion ordered, FIFO
        self._pairs: Dict[str, str] = {}

    # ---------------- events ----------------

    def on_connect(self, connection_id: str) -> None:
        if connection_id in self._connections:
            logger.warning(f"Ignoring repeated connect for {connection_id}")
            return
        self._connections[connection_id] = self._clock()
        logger.info(f"User connected: {connection_id}")
        self._match(connection_id)

    def on_signal(self, connection_id: str, payload: Any) -> bool:
        """Relay `payload` untouched to the partner. Returns False if there is none."""
        partner = self._pairs.get(connection_id)
        if partner is None or partner not in self._connections:
            logger.info(f"No peer found for {connection_id}")
            self._emit(connection_id, ERROR, {"message": NO_ACTIVE_PEER})
            return False
        logger.debug(f"Relaying signal from {connection_id} to {partner}: {payload_keys(payload)}")
        self._emit(partner, SIGNAL, payload)
        return True

    def on_find_next(self, connection_id: str) -> None:
        if connection_id not in self._connections:
            logger.warning(f"find-next from unknown connection {connection_id}")
            return
        logger.info(f"User {connection_id} looking for next peer")
        self._unpair(connection_id)
        self._queue.pop(connection_id, None)
        self._match(connection_id)

    def on_disconnect(self, connection_id: str, reason: str = "") -> None:
        if connection_id not in self._connections:
            return
        logger.info(f"User disconnected: {connection_id} ({reason or 'no reason'})")
        self._unpair(connection_id)
        if self._queue.pop(connection_id, None) is not None:
            logger.info(f"Removed {connection_id} from waiting queue")
        del self._connections[connection_id]

    def expire_stale_waiting_entries(self, now: Optional[float] = None,
                                     timeout: Optional[float] = None) -> List[str]:
        """Drop queue entries older than `timeout` seconds. Nobody is notified."""
        now = self._clock() if now is None else now
        timeout = self.waiting_timeout if timeout is None else timeout
        expired = [cid for cid, entry in self._queue.items() if now - entry.enqueued_at > timeout]
        for cid in expired:
            del self._queue[cid]
        if expired:
            logger.info(f"Expired {len(expired)} stale waiting entries")
        return expired

    # ---------------- status ----------------

    def stats(self) -> MatchmakerStats:
        return MatchmakerStats(
            active_connections=len(self._connections),
            waiting=len(self._queue),
            active_pairs=len(self._pairs) // 2,
        )

    def waiting_ids(self) -> List[str]:
        return list(self._queue)

    def pairs(self) -> Dict[str, str]:
        return dict(self._pairs)

    def connection_ids(self) -> List[str]:
        return list(self._connections)

    def partner_of(self, connection_id: str) -> Optional[str]:
        return self._pairs.get(connection_id)

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._connections

    # ---------------- internals ----------------

    def _match(self, connection_id: str) -> None:
        # FIFO: the longest waiting connection is the partner and the initiator
        if self._queue:
            partner = next(iter(self._queue))
            del self._queue[partner]
            self._pairs[connection_id] = partner
            self._pairs[partner] = connection_id
            logger.info(f"Match found: {connection_id} and {partner}")
            self._emit(partner, MATCH_FOUND, {"peer": connection_id, "isInitiator": True})
            self._emit(connection_id, MATCH_FOUND, {"peer": partner, "isInitiator": False})
        else:
            self._queue[connection_id] = WaitingEntry(connection_id, self._clock())
            logger.info(f"User {connection_id} added to the waiting queue")
            self._emit(connection_id, WAITING_FOR_PEER, None)

    def _unpair(self, connection_id: str) -> None:
        partner = self._pairs.pop(connection_id, None)
        if partner is None:
            return
        self._pairs.pop(partner, None)
        if partner in self._connections:
            logger.info(f"Notifying {partner} that {connection_id} left")
            self._emit(partner, PEER_DISCONNECTED, None)
