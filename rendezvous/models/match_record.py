from pydantic import BaseModel, Field, model_validator
from typing import Dict, List, Optional

from .signal import Signal
from .waiting_entry import DeclaredInfo


class MatchRecord(BaseModel):
    match_id: str
    participant_a: str
    participant_b: str
    created_at: float

    # Compatibility metadata, captured at match time
    compatibility_score: float = 0
    score_breakdown: Dict[str, float] = Field(default_factory=dict)
    declared_info: Dict[str, DeclaredInfo] = Field(default_factory=dict)
    timezones: Dict[str, Optional[int]] = Field(default_factory=dict)

    # Outbound signals per recipient; only the memory backend keeps them here
    queues: Dict[str, List[Signal]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_participants(self) -> "MatchRecord":
        if self.participant_a == self.participant_b:
            raise ValueError("a match needs two distinct participants")
        return self

    @property
    def participants(self) -> tuple:
        return (self.participant_a, self.participant_b)

    def has_member(self, user_id: str) -> bool:
        return user_id in self.participants

    def partner_of(self, user_id: str) -> str:
        if user_id == self.participant_a:
            return self.participant_b
        if user_id == self.participant_b:
            return self.participant_a
        raise KeyError(user_id)

    def is_initiator(self, user_id: str) -> bool:
        return user_id == self.participant_a

    def __repr__(self) -> str:
        return f"<MatchRecord {self.match_id} between {self.participant_a} and {self.participant_b}>"
