"""
Redis-backed stores, shared by every instance pointed at the same Redis.

Key layout (all keys share ``settings.REDIS_KEY_PREFIX`` and expire after the
match lifetime so a crashed instance cannot leak state):

    waiting                 sorted set, user id scored by arrival time
    waiting:{user_id}       hash, one waiting entry
    tzqueue:{tz}            list, per-timezone FIFO of waiting user ids; only its
                            LLEN is read, as the capacity counter (matching
                            scans the ``waiting`` index, it never pops here)
    matches                 sorted set, match id scored by creation time
    match:{match_id}        hash, one match record
    member:{user_id}        string, id of the user's current match
    signals:{match_id}:{user_id}  list, pending signals for one participant
    notices:{user_id}       list, signals parked after a match was deleted

Concurrent instances only rely on single-command atomicity and MULTI
pipelines: ZREM decides which caller claims a waiting user, LRANGE+DEL in
one transaction drains a queue exactly once.
"""
import json
import logging
from typing import List, Optional
import uuid

import redis.asyncio as aioredis

from .base import WaitingPool, MatchRegistry, snapshot_info
from ..config import settings
from ..core.exceptions import CapacityError
from ..models import DeclaredInfo, MatchRecord, Signal, WaitingEntry

logger = logging.getLogger(__name__)

# Redis client
redis_client: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    """Initialize Redis connection"""
    global redis_client

    redis_client = aioredis.from_url(
        settings.REDIS_URL,
        encoding="utf8",
        decode_responses=True
    )
    # Test connection
    await redis_client.ping()
    logger.info(f"Redis connected at {settings.REDIS_HOST}:{settings.REDIS_PORT}")
    return redis_client


async def close_redis() -> None:
    """Close Redis connection"""
    global redis_client
    if redis_client:
        try:
            await redis_client.aclose()
            logger.info("Redis disconnected")
        except Exception as e:
            logger.warning(f"Error closing Redis: {str(e)}")
        finally:
            redis_client = None


def _timezone_slot(timezone: Optional[int]) -> str:
    return "none" if timezone is None else str(timezone)


class RedisWaitingPool(WaitingPool):
    def __init__(
        self,
        redis: aioredis.Redis,
        prefix: str = "rdv:",
        ttl: int = 600,
        timezone_capacity: int = 5000,
        retry_after: int = 5,
    ):
        self.redis = redis
        self.prefix = prefix
        self.ttl = ttl
        self.timezone_capacity = timezone_capacity
        self.retry_after = retry_after

    @property
    def index_key(self) -> str:
        return f"{self.prefix}waiting"

    def entry_key(self, user_id: str) -> str:
        return f"{self.prefix}waiting:{user_id}"

    def timezone_key(self, timezone: Optional[int]) -> str:
        return f"{self.prefix}tzqueue:{_timezone_slot(timezone)}"

    @staticmethod
    def _decode(data: dict) -> Optional[WaitingEntry]:
        if not data:
            return None
        timezone = data.get("timezone")
        return WaitingEntry(
            user_id=data["user_id"],
            declared_info=DeclaredInfo.model_validate(json.loads(data.get("declared_info") or "{}")),
            timezone=int(timezone) if timezone not in (None, "") else None,
            arrival_time=float(data["arrival_time"]),
        )

    async def upsert(self, entry: WaitingEntry) -> None:
        """Store or replace an entry; the timezone list length bounds admission."""
        previous = await self.get(entry.user_id)
        tz_key = self.timezone_key(entry.timezone)

        queued = await self.redis.llen(tz_key)
        if previous is not None and previous.timezone == entry.timezone:
            queued -= 1
        if queued >= self.timezone_capacity:
            raise CapacityError(
                f"Waiting queue for timezone {_timezone_slot(entry.timezone)} is full",
                retry_after=self.retry_after,
            )

        async with self.redis.pipeline(transaction=True) as pipe:
            if previous is not None:
                pipe.lrem(self.timezone_key(previous.timezone), 0, entry.user_id)
                pipe.delete(self.entry_key(entry.user_id))
            pipe.hset(
                self.entry_key(entry.user_id),
                mapping={
                    "user_id": entry.user_id,
                    "declared_info": entry.declared_info.model_dump_json(),
                    "timezone": "" if entry.timezone is None else str(entry.timezone),
                    "arrival_time": repr(entry.arrival_time),
                },
            )
            pipe.expire(self.entry_key(entry.user_id), self.ttl)
            pipe.zadd(self.index_key, {entry.user_id: entry.arrival_time})
            pipe.expire(self.index_key, self.ttl)
            pipe.rpush(tz_key, entry.user_id)
            pipe.expire(tz_key, self.ttl)
            await pipe.execute()

    async def remove(self, user_id: str) -> bool:
        timezone = await self.redis.hget(self.entry_key(user_id), "timezone")

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.zrem(self.index_key, user_id)
            pipe.delete(self.entry_key(user_id))
            if timezone is not None:
                pipe.lrem(self.timezone_key(int(timezone) if timezone else None), 0, user_id)
            results = await pipe.execute()

        return results[0] == 1

    async def get(self, user_id: str) -> Optional[WaitingEntry]:
        return self._decode(await self.redis.hgetall(self.entry_key(user_id)))

    async def entries(self) -> List[WaitingEntry]:
        user_ids = await self.redis.zrange(self.index_key, 0, -1)
        if not user_ids:
            return []

        async with self.redis.pipeline(transaction=False) as pipe:
            for user_id in user_ids:
                pipe.hgetall(self.entry_key(user_id))
            rows = await pipe.execute()

        entries = []
        for user_id, row in zip(user_ids, rows):
            entry = self._decode(row)
            if entry is None:
                # hash expired before the index caught up
                await self.redis.zrem(self.index_key, user_id)
                continue
            entries.append(entry)
        return entries

    async def position(self, user_id: str) -> int:
        rank = await self.redis.zrank(self.index_key, user_id)
        return 0 if rank is None else rank + 1

    async def size(self) -> int:
        return await self.redis.zcard(self.index_key)

    async def evict_older_than(self, max_age: float, now: float) -> List[WaitingEntry]:
        cutoff = now - max_age
        user_ids = await self.redis.zrangebyscore(self.index_key, "-inf", f"({cutoff!r}")

        evicted = []
        for user_id in user_ids:
            entry = await self.get(user_id)
            if await self.remove(user_id):
                evicted.append(entry or WaitingEntry(user_id=user_id, arrival_time=cutoff))
        return evicted

    async def evict_excess(self, capacity: int) -> int:
        excess = await self.redis.zcard(self.index_key) - capacity
        if excess <= 0:
            return 0

        removed = 0
        for user_id in await self.redis.zrange(self.index_key, 0, excess - 1):
            if await self.remove(user_id):
                removed += 1
        return removed


class RedisMatchRegistry(MatchRegistry):
    def __init__(
        self,
        redis: aioredis.Redis,
        prefix: str = "rdv:",
        ttl: int = 600,
        queue_limit: int = 100,
        queue_keep: int = 50,
    ):
        super().__init__(queue_limit, queue_keep)
        self.redis = redis
        self.prefix = prefix
        self.ttl = ttl

    @property
    def index_key(self) -> str:
        return f"{self.prefix}matches"

    def match_key(self, match_id: str) -> str:
        return f"{self.prefix}match:{match_id}"

    def member_key(self, user_id: str) -> str:
        return f"{self.prefix}member:{user_id}"

    def signals_key(self, match_id: str, user_id: str) -> str:
        return f"{self.prefix}signals:{match_id}:{user_id}"

    def notices_key(self, user_id: str) -> str:
        return f"{self.prefix}notices:{user_id}"

    @staticmethod
    def _decode(data: dict) -> Optional[MatchRecord]:
        if not data:
            return None
        return MatchRecord(
            match_id=data["match_id"],
            participant_a=data["participant_a"],
            participant_b=data["participant_b"],
            created_at=float(data["created_at"]),
            compatibility_score=float(data.get("compatibility_score") or 0),
            score_breakdown=json.loads(data.get("score_breakdown") or "{}"),
            declared_info=json.loads(data.get("declared_info") or "{}"),
            timezones=json.loads(data.get("timezones") or "{}"),
        )

    @staticmethod
    def _decode_signals(rows: List[str]) -> List[Signal]:
        return [Signal.model_validate_json(row) for row in rows]

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

        match_id = uuid.uuid4().hex
        if preferred_id and not await self.redis.exists(self.match_key(preferred_id)):
            match_id = preferred_id

        match = MatchRecord(
            match_id=match_id,
            participant_a=participant_a,
            participant_b=participant_b,
            created_at=created_at,
            compatibility_score=compatibility_score,
            score_breakdown=score_breakdown or {},
            declared_info=snapshot_info(declared_info),
            timezones=dict(timezones or {}),
        )

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hset(
                self.match_key(match_id),
                mapping={
                    "match_id": match_id,
                    "participant_a": participant_a,
                    "participant_b": participant_b,
                    "created_at": repr(created_at),
                    "compatibility_score": repr(float(compatibility_score)),
                    "score_breakdown": json.dumps(match.score_breakdown),
                    "declared_info": json.dumps(
                        {uid: info.model_dump(mode="json") for uid, info in match.declared_info.items()}
                    ),
                    "timezones": json.dumps(match.timezones),
                },
            )
            pipe.expire(self.match_key(match_id), self.ttl)
            pipe.zadd(self.index_key, {match_id: created_at})
            pipe.expire(self.index_key, self.ttl)
            pipe.set(self.member_key(participant_a), match_id, ex=self.ttl)
            pipe.set(self.member_key(participant_b), match_id, ex=self.ttl)
            await pipe.execute()

        return match

    async def get(self, match_id: str) -> Optional[MatchRecord]:
        return self._decode(await self.redis.hgetall(self.match_key(match_id)))

    async def find_by_member(self, user_id: str) -> Optional[MatchRecord]:
        match_id = await self.redis.get(self.member_key(user_id))
        if not match_id:
            return None
        match = await self.get(match_id)
        if match is None or not match.has_member(user_id):
            return None
        return match

    async def enqueue_signal(self, match_id: str, recipient_id: str, signal: Signal) -> int:
        key = self.signals_key(match_id, recipient_id)

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.rpush(key, signal.model_dump_json(by_alias=True))
            pipe.expire(key, self.ttl)
            length, _ = await pipe.execute()

        if length > self.queue_limit:
            await self.redis.ltrim(key, -self.queue_keep, -1)
        return self.trimmed_length(length)

    async def drain_signals(self, match_id: str, recipient_id: str) -> List[Signal]:
        key = self.signals_key(match_id, recipient_id)

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.lrange(key, 0, -1)
            pipe.delete(key)
            rows, _ = await pipe.execute()

        return self._decode_signals(rows)

    async def delete(self, match_id: str) -> bool:
        match = await self.get(match_id)

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.zrem(self.index_key, match_id)
            pipe.delete(self.match_key(match_id))
            if match is not None:
                for user_id in match.participants:
                    pipe.delete(self.signals_key(match_id, user_id))
            results = await pipe.execute()

        if match is not None:
            for user_id in match.participants:
                # leave the index alone if the user already moved on to another match
                if await self.redis.get(self.member_key(user_id)) == match_id:
                    await self.redis.delete(self.member_key(user_id))

        return bool(results[0] or results[1])

    async def evict_older_than(self, max_age: float, now: float) -> List[str]:
        cutoff = now - max_age
        match_ids = await self.redis.zrangebyscore(self.index_key, "-inf", f"({cutoff!r}")

        evicted = []
        for match_id in match_ids:
            if await self.delete(match_id):
                evicted.append(match_id)
        return evicted

    async def count(self) -> int:
        return await self.redis.zcard(self.index_key)

    async def matches(self) -> List[MatchRecord]:
        records = []
        for match_id in await self.redis.zrange(self.index_key, 0, -1):
            match = await self.get(match_id)
            if match is not None:
                records.append(match)
        return records

    async def post_notice(self, user_id: str, signal: Signal, now: float) -> None:
        key = self.notices_key(user_id)

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.rpush(key, signal.model_dump_json(by_alias=True))
            pipe.expire(key, self.ttl)
            await pipe.execute()

    async def drain_notices(self, user_id: str) -> List[Signal]:
        key = self.notices_key(user_id)

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.lrange(key, 0, -1)
            pipe.delete(key)
            rows, _ = await pipe.execute()

        return self._decode_signals(rows)
