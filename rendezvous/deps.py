from fastapi import Request
from typing import Callable, Optional
import time

from .config import Settings
from .core.dispatcher import ActionDispatcher
from .core.matchmaking import Matchmaker
from .core.scoring import ScoreWeights
from .core.sweeper import LifecycleSweeper
from .stores import MemoryWaitingPool, MemoryMatchRegistry, WaitingPool, MatchRegistry


def build_memory_stores(settings: Settings) -> tuple:
    return (
        MemoryWaitingPool(),
        MemoryMatchRegistry(
            queue_limit=settings.SIGNAL_QUEUE_LIMIT,
            queue_keep=settings.SIGNAL_QUEUE_KEEP,
        ),
    )


def build_redis_stores(redis, settings: Settings) -> tuple:
    from .stores.redis_store import RedisWaitingPool, RedisMatchRegistry

    return (
        RedisWaitingPool(
            redis,
            prefix=settings.REDIS_KEY_PREFIX,
            ttl=settings.MATCH_LIFETIME_SECONDS,
            timezone_capacity=settings.TIMEZONE_QUEUE_CAPACITY,
            retry_after=settings.CAPACITY_RETRY_AFTER_SECONDS,
        ),
        RedisMatchRegistry(
            redis,
            prefix=settings.REDIS_KEY_PREFIX,
            ttl=settings.MATCH_LIFETIME_SECONDS,
            queue_limit=settings.SIGNAL_QUEUE_LIMIT,
            queue_keep=settings.SIGNAL_QUEUE_KEEP,
        ),
    )


def build_dispatcher(
    pool: WaitingPool,
    registry: MatchRegistry,
    settings: Settings,
    clock: Optional[Callable[[], float]] = None,
) -> ActionDispatcher:
    """Wire the matchmaking core on top of one pair of stores."""
    matchmaker = Matchmaker(
        pool,
        registry,
        weights=ScoreWeights.from_settings(settings),
        seconds_per_position=settings.SECONDS_PER_QUEUE_POSITION,
        max_estimated_wait=settings.MAX_ESTIMATED_WAIT_SECONDS,
    )
    sweeper = LifecycleSweeper(
        pool,
        registry,
        waiting_timeout=settings.WAITING_TIMEOUT_SECONDS,
        match_lifetime=settings.MATCH_LIFETIME_SECONDS,
        pool_capacity=settings.POOL_CAPACITY,
    )
    return ActionDispatcher(
        pool,
        registry,
        matchmaker,
        sweeper,
        clock=clock or time.time,
        request_log_size=settings.REQUEST_LOG_SIZE,
    )


async def get_dispatcher(request: Request) -> ActionDispatcher:
    """Dispatcher created by the application lifespan"""
    return request.app.state.dispatcher
