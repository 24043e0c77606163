import asyncio
import time
from collections import deque
from typing import Callable, Optional

from pydantic import ValidationError

from .exceptions import InvalidRequestError
from .logging import get_logger
from .matchmaking import Matchmaker, to_millis
from .scoring import circular_distance, score
from .sweeper import LifecycleSweeper
from ..schemas.signaling import (
    ACTION_SCHEMAS,
    JoinRequest,
    PollRequest,
    SendSignalRequest,
    P2PConnectedRequest,
    DisconnectRequest,
)
from ..stores.base import WaitingPool, MatchRegistry

logger = get_logger(__name__)


class ActionDispatcher:
    """
    Turns one decoded request body into matchmaking operations.

    Every call runs the sweeper and then the action handler under a single
    lock, so within one process an action is one uninterrupted step.
    """

    def __init__(
        self,
        pool: WaitingPool,
        registry: MatchRegistry,
        matchmaker: Matchmaker,
        sweeper: LifecycleSweeper,
        clock: Callable[[], float] = time.time,
        request_log_size: int = 50,
    ):
        self.pool = pool
        self.registry = registry
        self.matchmaker = matchmaker
        self.sweeper = sweeper
        self.clock = clock
        self.request_log = deque(maxlen=request_log_size)
        self.sweep_totals = {"expiredWaiting": 0, "expiredMatches": 0, "evictedExcess": 0}
        self._lock = asyncio.Lock()

    async def _sweep(self, now: float) -> None:
        report = await self.sweeper.sweep(now)
        self.sweep_totals["expiredWaiting"] += report.expired_waiting
        self.sweep_totals["expiredMatches"] += report.expired_matches
        self.sweep_totals["evictedExcess"] += report.evicted_excess

    def _record(self, action: str, user_id: Optional[str], result: str, now: float) -> None:
        self.request_log.append({
            "timestamp": to_millis(now),
            "action": action,
            "userId": user_id or "anonymous",
            "result": result,
        })

    async def dispatch(self, body: dict) -> dict:
        if not isinstance(body, dict):
            raise InvalidRequestError("Request body must be a JSON object")

        action = body.get("action")
        user_id = body.get("userId")

        async with self._lock:
            now = self.clock()
            await self._sweep(now)

            if not user_id:
                self._record(str(action), None, "error:no-userId", now)
                raise InvalidRequestError("userId is required", reason="missing_user_id")

            schema = ACTION_SCHEMAS.get(action) if isinstance(action, str) else None
            if schema is None:
                self._record(str(action), user_id, "error:unknown-action", now)
                raise InvalidRequestError(f"Unknown action: {action}", reason="unknown_action")

            try:
                request = schema.model_validate(body)
            except ValidationError as e:
                self._record(action, user_id, "error:invalid", now)
                raise InvalidRequestError(
                    "Invalid fields for action",
                    extra={"details": e.errors(include_url=False, include_context=False)},
                ) from e

            result = await self._handle(request, now)
            self._record(action, user_id, result["status"], now)

        result["timestamp"] = to_millis(now)
        return result

    async def _handle(self, request, now: float) -> dict:
        if isinstance(request, JoinRequest):
            return await self.matchmaker.join(
                request.user_id,
                now,
                declared_info=request.declared_info,
                timezone=request.timezone,
                preferred_match_id=request.preferred_match_id,
            )
        if isinstance(request, PollRequest):
            return await self.matchmaker.poll(request.user_id, now)
        if isinstance(request, SendSignalRequest):
            return await self.matchmaker.send_signal(
                request.user_id, request.match_id, request.kind, request.payload, now
            )
        if isinstance(request, P2PConnectedRequest):
            return await self.matchmaker.p2p_connected(
                request.user_id, request.match_id, request.partner_id, now
            )
        if isinstance(request, DisconnectRequest):
            return await self.matchmaker.disconnect(request.user_id, now)
        raise InvalidRequestError(f"Unsupported action: {request.action}")

    async def poll(self, user_id: str) -> dict:
        return await self.dispatch({"action": "poll", "userId": user_id})

    async def snapshot(self, verbose: bool = False) -> dict:
        """Health view of the pool and registry, with score matrices when verbose."""
        async with self._lock:
            now = self.clock()
            await self._sweep(now)

            waiting = await self.pool.entries()
            matches = await self.registry.matches()

        snapshot = {
            "status": "online",
            "stats": {
                "waiting": len(waiting),
                "matches": len(matches),
                "totalUsers": len(waiting) + len(matches) * 2,
                "sweeps": dict(self.sweep_totals),
            },
            "queueUserIds": [entry.user_id for entry in waiting],
            "matchIds": [match.match_id for match in matches],
            "timestamp": to_millis(now),
        }
        if not verbose:
            return snapshot

        weights = self.matchmaker.weights
        snapshot["users"] = [
            {
                "userId": entry.user_id,
                "declaredInfo": entry.declared_info.model_dump(mode="json"),
                "timezone": entry.timezone,
                "waitedSeconds": round(entry.waited(now), 3),
            }
            for entry in waiting
        ]
        snapshot["scores"] = {
            a.user_id: {
                b.user_id: score(a.declared_info, a.timezone, b, now, weights)
                for b in waiting if b.user_id != a.user_id
            }
            for a in waiting
        }
        snapshot["distances"] = {
            a.user_id: {
                b.user_id: circular_distance(a.timezone, b.timezone)
                for b in waiting if b.user_id != a.user_id
            }
            for a in waiting
        }
        snapshot["matches"] = [
            {
                "matchId": match.match_id,
                "participants": list(match.participants),
                "createdAt": to_millis(match.created_at),
                "compatibilityScore": match.compatibility_score,
                "scoreBreakdown": match.score_breakdown,
            }
            for match in matches
        ]
        snapshot["requestLog"] = list(self.request_log)[-20:]
        return snapshot
