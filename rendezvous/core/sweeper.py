from pydantic import BaseModel

from .logging import get_logger
from ..stores.base import WaitingPool, MatchRegistry

logger = get_logger(__name__)


class SweepReport(BaseModel):
    expired_waiting: int = 0
    expired_matches: int = 0
    evicted_excess: int = 0
    failed: bool = False

    @property
    def total(self) -> int:
        return self.expired_waiting + self.expired_matches + self.evicted_excess


class LifecycleSweeper:
    """
    Request-driven cleanup. There is no background timer: the dispatcher runs
    one pass before handling every action.
    """

    def __init__(
        self,
        pool: WaitingPool,
        registry: MatchRegistry,
        waiting_timeout: float = 120,
        match_lifetime: float = 600,
        pool_capacity: int = 10000,
    ):
        self.pool = pool
        self.registry = registry
        self.waiting_timeout = waiting_timeout
        self.match_lifetime = match_lifetime
        self.pool_capacity = pool_capacity

    async def sweep(self, now: float) -> SweepReport:
        report = SweepReport()
        try:
            expired = await self.pool.evict_older_than(self.waiting_timeout, now)
            report.expired_waiting = len(expired)

            report.expired_matches = len(await self.registry.evict_older_than(self.match_lifetime, now))

            report.evicted_excess = await self.pool.evict_excess(self.pool_capacity)
        except Exception as e:
            # a failed pass is retried by the next request
            logger.exception("sweep_failed", error=str(e))
            report.failed = True

        if report.total:
            logger.info(
                "sweep",
                expired_waiting=report.expired_waiting,
                expired_matches=report.expired_matches,
                evicted_excess=report.evicted_excess,
            )
        return report
