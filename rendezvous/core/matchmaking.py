from typing import Any, Optional

from .exceptions import InvalidRequestError, MatchNotFoundError, NotParticipantError
from .logging import get_logger
from .scoring import DEFAULT_WEIGHTS, ScoreWeights, score_breakdown
from ..models import DeclaredInfo, MatchRecord, Signal, WaitingEntry
from ..stores.base import WaitingPool, MatchRegistry

logger = get_logger(__name__)


def to_millis(now: float) -> int:
    return int(now * 1000)


class Matchmaker:
    """
    Pairs users and relays their handshake signals.

    Per user: ABSENT -> WAITING -> MATCHED -> ABSENT. Matching only happens
    when a user joins; a waiting user's polls never trigger a scan.
    """

    def __init__(
        self,
        pool: WaitingPool,
        registry: MatchRegistry,
        weights: ScoreWeights = DEFAULT_WEIGHTS,
        seconds_per_position: int = 10,
        max_estimated_wait: int = 120,
    ):
        self.pool = pool
        self.registry = registry
        self.weights = weights
        self.seconds_per_position = seconds_per_position
        self.max_estimated_wait = max_estimated_wait

    def estimated_wait(self, position: int) -> int:
        return min(self.max_estimated_wait, max(0, (position - 1) * self.seconds_per_position))

    def _match_view(self, match: MatchRecord, user_id: str) -> dict:
        partner_id = match.partner_of(user_id)
        partner_info = match.declared_info.get(partner_id)
        return {
            "matchId": match.match_id,
            "partnerId": partner_id,
            "isInitiator": match.is_initiator(user_id),
            "partnerInfo": partner_info.model_dump(mode="json") if partner_info else None,
            "partnerTimezone": match.timezones.get(partner_id),
            "compatibilityScore": match.compatibility_score,
        }

    async def _leave(self, user_id: str, now: float, reason: str) -> bool:
        """Drop every trace of ``user_id``; a former partner gets a disconnect notice."""
        removed = await self.pool.remove(user_id)

        match = await self.registry.find_by_member(user_id)
        if match is not None:
            partner_id = match.partner_of(user_id)
            await self.registry.post_notice(
                partner_id,
                Signal.disconnect_notice(user_id, to_millis(now), reason=reason),
                now,
            )
            removed = await self.registry.delete(match.match_id) or removed
            logger.info("match_closed", match_id=match.match_id, user_id=user_id, reason=reason)

        return removed

    async def join(
        self,
        user_id: str,
        now: float,
        declared_info: Optional[DeclaredInfo] = None,
        timezone: Optional[int] = None,
        preferred_match_id: Optional[str] = None,
    ) -> dict:
        declared_info = declared_info or DeclaredInfo()

        # Re-joining always starts from a clean slate
        await self._leave(user_id, now, reason="rejoin")
        await self.registry.drain_notices(user_id)

        best: Optional[WaitingEntry] = None
        best_breakdown: dict = {}
        best_score = 0.0
        for candidate in await self.pool.entries():
            if candidate.user_id == user_id:
                continue
            breakdown = score_breakdown(declared_info, timezone, candidate, now, self.weights)
            total = sum(breakdown.values())
            if best is None or total > best_score:
                best, best_breakdown, best_score = candidate, breakdown, total

        if best is not None:
            claimed = await self.pool.remove(best.user_id)
            if claimed and await self.registry.find_by_member(best.user_id) is None:
                match = await self.registry.create(
                    user_id,
                    best.user_id,
                    created_at=now,
                    compatibility_score=best_score,
                    score_breakdown=best_breakdown,
                    declared_info={user_id: declared_info, best.user_id: best.declared_info},
                    timezones={user_id: timezone, best.user_id: best.timezone},
                    preferred_id=preferred_match_id,
                )
                logger.info(
                    "matched",
                    match_id=match.match_id,
                    initiator=match.participant_a,
                    responder=match.participant_b,
                    score=best_score,
                )
                return {"status": "matched", **self._match_view(match, user_id), "signals": []}

            logger.info("candidate_lost", user_id=user_id, candidate_id=best.user_id)

        await self.pool.upsert(
            WaitingEntry(
                user_id=user_id,
                declared_info=declared_info,
                timezone=timezone,
                arrival_time=now,
            )
        )
        position = await self.pool.position(user_id)
        logger.info("queued", user_id=user_id, position=position)

        return {
            "status": "queued",
            "position": position,
            "estimatedWait": self.estimated_wait(position),
        }

    async def poll(self, user_id: str, now: float) -> dict:
        match = await self.registry.find_by_member(user_id)
        if match is not None:
            signals = await self.registry.drain_signals(match.match_id, user_id)
            return {
                "status": "matched",
                **self._match_view(match, user_id),
                "signals": [s.to_wire() for s in signals],
            }

        position = await self.pool.position(user_id)
        if position:
            return {
                "status": "waiting",
                "position": position,
                "estimatedWait": self.estimated_wait(position),
            }

        notices = await self.registry.drain_notices(user_id)
        return {"status": "not_found", "signals": [s.to_wire() for s in notices]}

    async def send_signal(self, user_id: str, match_id: str, kind: str, payload: Any, now: float) -> dict:
        match = await self.registry.get(match_id)
        if match is None:
            raise MatchNotFoundError(f"Match {match_id} not found", extra={"matchId": match_id})
        if not match.has_member(user_id):
            raise NotParticipantError(f"User {user_id} is not part of match {match_id}")

        partner_id = match.partner_of(user_id)
        signal = Signal(kind=kind, payload=payload, sender_id=user_id, sent_at=to_millis(now))
        queue_length = await self.registry.enqueue_signal(match_id, partner_id, signal)

        logger.debug("signal_sent", match_id=match_id, sender=user_id, kind=kind, queue_length=queue_length)
        return {"status": "sent", "partnerId": partner_id, "queueLength": queue_length}

    async def disconnect(self, user_id: str, now: float) -> dict:
        removed = await self._leave(user_id, now, reason="disconnect")
        logger.info("disconnected", user_id=user_id, removed=removed)
        return {"status": "disconnected", "removed": removed}

    async def p2p_connected(self, user_id: str, match_id: str, partner_id: str, now: float) -> dict:
        match = await self.registry.get(match_id)
        if match is None:
            # the partner's confirmation already tore the match down
            return {"status": "p2p_connected", "removed": False}
        if not match.has_member(user_id):
            raise NotParticipantError(f"User {user_id} is not part of match {match_id}")
        if match.partner_of(user_id) != partner_id:
            raise InvalidRequestError(
                f"partnerId {partner_id} is not the partner in match {match_id}",
                reason="partner_mismatch",
            )

        for participant in match.participants:
            await self.pool.remove(participant)
        removed = await self.registry.delete(match_id)

        logger.info("p2p_connected", match_id=match_id, user_id=user_id)
        return {"status": "p2p_connected", "removed": removed}
