from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from ..models import MatchRecord, Signal, WaitingEntry, DeclaredInfo


class WaitingPool(ABC):
    """Users currently looking for a partner, keyed by user id, in arrival order."""

    @abstractmethod
    async def upsert(self, entry: WaitingEntry) -> None:
        """Insert ``entry``, replacing (and re-queuing) any prior entry for the user."""

    @abstractmethod
    async def remove(self, user_id: str) -> bool:
        """Remove the user's entry. Only one concurrent caller gets True."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[WaitingEntry]: ...

    @abstractmethod
    async def entries(self) -> List[WaitingEntry]:
        """All entries, oldest arrival first."""

    @abstractmethod
    async def position(self, user_id: str) -> int:
        """1-based position in arrival order, 0 if the user is not waiting."""

    @abstractmethod
    async def size(self) -> int: ...

    @abstractmethod
    async def evict_older_than(self, max_age: float, now: float) -> List[WaitingEntry]: ...

    @abstractmethod
    async def evict_excess(self, capacity: int) -> int:
        """Drop the oldest entries until at most ``capacity`` remain."""


class MatchRegistry(ABC):
    """Active matches, their pending signals and per-user notice mailboxes."""

    def __init__(self, queue_limit: int = 100, queue_keep: int = 50):
        self.queue_limit = queue_limit
        self.queue_keep = queue_keep

    @abstractmethod
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
    ) -> MatchRecord: ...

    @abstractmethod
    async def get(self, match_id: str) -> Optional[MatchRecord]: ...

    @abstractmethod
    async def find_by_member(self, user_id: str) -> Optional[MatchRecord]: ...

    @abstractmethod
    async def enqueue_signal(self, match_id: str, recipient_id: str, signal: Signal) -> int:
        """Append to the recipient's queue and return the queue length after trimming."""

    @abstractmethod
    async def drain_signals(self, match_id: str, recipient_id: str) -> List[Signal]: ...

    @abstractmethod
    async def delete(self, match_id: str) -> bool: ...

    @abstractmethod
    async def evict_older_than(self, max_age: float, now: float) -> List[str]:
        """Drop matches (and parked notices) older than ``max_age``; return evicted match ids."""

    @abstractmethod
    async def count(self) -> int: ...

    @abstractmethod
    async def matches(self) -> List[MatchRecord]: ...

    @abstractmethod
    async def post_notice(self, user_id: str, signal: Signal, now: float) -> None:
        """Park a signal for a user that must survive the deletion of their match."""

    @abstractmethod
    async def drain_notices(self, user_id: str) -> List[Signal]: ...

    def trimmed_length(self, length: int) -> int:
        return self.queue_keep if length > self.queue_limit else length

    @staticmethod
    def order_participants(participant_x: str, participant_y: str) -> Tuple[str, str]:
        """The lexicographically smaller id is participant A, the initiator."""
        if participant_x == participant_y:
            raise ValueError("cannot match a user with themselves")
        return (participant_x, participant_y) if participant_x < participant_y else (participant_y, participant_x)


def snapshot_info(declared_info: Optional[dict]) -> dict:
    return {
        user_id: info if isinstance(info, DeclaredInfo) else DeclaredInfo.model_validate(info)
        for user_id, info in (declared_info or {}).items()
    }
