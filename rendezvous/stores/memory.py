"""In-process stores. State lives as long as the process and is not shared."""
from typing import Dict, List, Optional, Tuple
import uuid

from .base import WaitingPool, MatchRegistry, snapshot_info
from ..models import MatchRecord, Signal, WaitingEntry


class MemoryWaitingPool(WaitingPool):
    def __init__(self):
        # dicts keep insertion order, which is arrival order
        self._entries: Dict[str, WaitingEntry] = {}

    async def upsert(self, entry: WaitingEntry) -> None:
        self._entries.pop(entry.user_id, None)
        self._entries[entry.user_id] = entry

    async def remove(self, user_id: str) -> bool:
        return self._entries.pop(user_id, None) is not None

    async def get(self, user_id: str) -> Optional[WaitingEntry]:
        return self._entries.get(user_id)

    async def entries(self) -> List[WaitingEntry]:
        return list(self._entries.values())

    async def position(self, user_id: str) -> int:
        for idx, uid in enumerate(self._entries):
            if uid == user_id:
                return idx + 1
        return 0

    async def size(self) -> int:
        return len(self._entries)

    async def evict_older_than(self, max_age: float, now: float) -> List[WaitingEntry]:
        cutoff = now - max_age
        expired = [entry for entry in self._entries.values() if entry.arrival_time < cutoff]
        for entry in expired:
            del self._entries[entry.user_id]
        return expired

    async def evict_excess(self, capacity: int) -> int:
        excess = len(self._entries) - capacity
        if excess <= 0:
            return 0
        for user_id in list(self._entries)[:excess]:
            del self._entries[user_id]
        return excess


class MemoryMatchRegistry(MatchRegistry):
    def __init__(self, queue_limit: int = 100, queue_keep: int = 50):
        super().__init__(queue_limit, queue_keep)
        self._matches: Dict[str, MatchRecord] = {}
        self._members: Dict[str, str] = {}
        self._notices: Dict[str, List[Tuple[float, Signal]]] = {}

    async def create(
        self,
        participant_x: str,
        participant_y: str,
        *,
        created_at: float,
        compatibility_score: float = 0,
        score_breakdown: Optional[dict] = None,
        declared_info: Optional[dict] = None,
        timezones: Optional[dict] = None,
        preferred_id: Optional[str] = None,
    ) -> MatchRecord:
        participant_a, participant_b = self.order_participants(participant_x, participant_y)

        match_id = preferred_id if preferred_id and preferred_id not in self._matches else uuid.uuid4().hex
        match = MatchRecord(
            match_id=match_id,
            participant_a=participant_a,
            participant_b=participant_b,
            created_at=created_at,
            compatibility_score=compatibility_score,
            score_breakdown=score_breakdown or {},
            declared_info=snapshot_info(declared_info),
            timezones=dict(timezones or {}),
            queues={participant_a: [], participant_b: []},
        )

        self._matches[match_id] = match
        self._members[participant_a] = match_id
        self._members[participant_b] = match_id
        return match

    async def get(self, match_id: str) -> Optional[MatchRecord]:
        return self._matches.get(match_id)

    async def find_by_member(self, user_id: str) -> Optional[MatchRecord]:
        match_id = self._members.get(user_id)
        if match_id is None:
            return None
        return self._matches.get(match_id)

    async def enqueue_signal(self, match_id: str, recipient_id: str, signal: Signal) -> int:
        match = self._matches[match_id]
        queue = match.queues.setdefault(recipient_id, [])
        queue.append(signal)
        if len(queue) > self.queue_limit:
            del queue[:-self.queue_keep]
        return len(queue)

    async def drain_signals(self, match_id: str, recipient_id: str) -> List[Signal]:
        match = self._matches.get(match_id)
        if match is None:
            return []
        signals = match.queues.get(recipient_id, [])
        match.queues[recipient_id] = []
        return signals

    async def delete(self, match_id: str) -> bool:
        match = self._matches.pop(match_id, None)
        if match is None:
            return False
        for user_id in match.participants:
            if self._members.get(user_id) == match_id:
                del self._members[user_id]
        return True

    async def evict_older_than(self, max_age: float, now: float) -> List[str]:
        cutoff = now - max_age
        expired = [m.match_id for m in self._matches.values() if m.created_at < cutoff]
        for match_id in expired:
            await self.delete(match_id)

        for user_id in list(self._notices):
            fresh = [(ts, s) for ts, s in self._notices[user_id] if ts >= cutoff]
            if fresh:
                self._notices[user_id] = fresh
            else:
                del self._notices[user_id]
        return expired

    async def count(self) -> int:
        return len(self._matches)

    async def matches(self) -> List[MatchRecord]:
        return list(self._matches.values())

    async def post_notice(self, user_id: str, signal: Signal, now: float) -> None:
        if user_id not in self._notices:
            self._notices[user_id] = []
        self._notices[user_id].append((now, signal))

    async def drain_notices(self, user_id: str) -> List[Signal]:
        return [signal for _, signal in self._notices.pop(user_id, [])]
