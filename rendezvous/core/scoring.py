"""
Compatibility scoring between a joining user and a user already waiting.

The score is a plain sum of independent terms and has no upper bound:

* base: every pairing starts at 1
* timezone: closeness on a 24 hour wheel, or a neutral 1 when either side
  did not report an offset
* gender: ``3 - coeff_a * coeff_b`` with Male=+1, Female=-1, other=0, so
  opposite genders score 4, equal genders 2 and anything unspecified 3
* status: flat bonus when both declared the same non-empty status
* freshness: bonus for candidates that started waiting only recently
"""
from pydantic import BaseModel, ConfigDict
from typing import Dict, Optional

from ..models import DeclaredInfo, GenderEnum, WaitingEntry


GENDER_COEFFICIENTS = {
    GenderEnum.MALE: 1,
    GenderEnum.FEMALE: -1,
    GenderEnum.UNSPECIFIED: 0,
}


class ScoreWeights(BaseModel):
    model_config = ConfigDict(frozen=True)

    base: float = 1
    max_tz_score: float = 20
    tz_penalty_per_hour: float = 1
    tz_unknown_score: float = 1
    status_bonus: float = 2
    fresh_wait_seconds: float = 30
    very_fresh_wait_seconds: float = 10

    @classmethod
    def from_settings(cls, settings) -> "ScoreWeights":
        return cls(
            max_tz_score=settings.MAX_TZ_SCORE,
            tz_penalty_per_hour=settings.TZ_PENALTY_PER_HOUR,
            status_bonus=settings.STATUS_BONUS,
            fresh_wait_seconds=settings.FRESH_WAIT_SECONDS,
            very_fresh_wait_seconds=settings.VERY_FRESH_WAIT_SECONDS,
        )


DEFAULT_WEIGHTS = ScoreWeights()


def circular_distance(a: Optional[int], b: Optional[int]) -> Optional[int]:
    """Hours between two offsets on a 24 hour wheel (never more than 12)."""
    if a is None or b is None:
        return None
    linear = abs(a - b) % 24
    return 24 - linear if linear > 12 else linear


def timezone_term(a: Optional[int], b: Optional[int], weights: ScoreWeights = DEFAULT_WEIGHTS) -> float:
    distance = circular_distance(a, b)
    if distance is None:
        return weights.tz_unknown_score
    return max(0, weights.max_tz_score - distance * weights.tz_penalty_per_hour)


def gender_term(a: DeclaredInfo, b: DeclaredInfo) -> float:
    return 3 - GENDER_COEFFICIENTS[a.gender] * GENDER_COEFFICIENTS[b.gender]


def status_term(a: DeclaredInfo, b: DeclaredInfo, weights: ScoreWeights = DEFAULT_WEIGHTS) -> float:
    if a.status and b.status and a.status == b.status:
        return weights.status_bonus
    return 0


def freshness_term(waited: float, weights: ScoreWeights = DEFAULT_WEIGHTS) -> float:
    bonus = 0
    if waited < weights.fresh_wait_seconds:
        bonus += 1
    if waited < weights.very_fresh_wait_seconds:
        bonus += 1
    return bonus


def score_breakdown(
    requester: DeclaredInfo,
    requester_timezone: Optional[int],
    candidate: WaitingEntry,
    now: float,
    weights: ScoreWeights = DEFAULT_WEIGHTS,
) -> Dict[str, float]:
    return {
        "base": weights.base,
        "timezone": timezone_term(requester_timezone, candidate.timezone, weights),
        "gender": gender_term(requester, candidate.declared_info),
        "status": status_term(requester, candidate.declared_info, weights),
        "freshness": freshness_term(candidate.waited(now), weights),
    }


def score(
    requester: DeclaredInfo,
    requester_timezone: Optional[int],
    candidate: WaitingEntry,
    now: float,
    weights: ScoreWeights = DEFAULT_WEIGHTS,
) -> float:
    """Affinity of ``requester`` for the waiting ``candidate``."""
    return sum(score_breakdown(requester, requester_timezone, candidate, now, weights).values())
