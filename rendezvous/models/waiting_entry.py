from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
import enum


class GenderEnum(str, enum.Enum):
    MALE = "Male"
    FEMALE = "Female"
    UNSPECIFIED = "Unspecified"


class DeclaredInfo(BaseModel):
    """Self-declared attributes. Unknown keys are kept as-is."""

    model_config = ConfigDict(extra="allow")

    gender: GenderEnum = GenderEnum.UNSPECIFIED
    status: Optional[str] = None

    @field_validator("gender", mode="before")
    @classmethod
    def normalize_gender(cls, value):
        if value is None or value == "":
            return GenderEnum.UNSPECIFIED
        if isinstance(value, str):
            for member in GenderEnum:
                if member.value.lower() == value.strip().lower():
                    return member
            # anything else scores like an undeclared gender
            return GenderEnum.UNSPECIFIED
        return value


class WaitingEntry(BaseModel):
    user_id: str
    declared_info: DeclaredInfo = Field(default_factory=DeclaredInfo)
    timezone: Optional[int] = None
    arrival_time: float

    def waited(self, now: float) -> float:
        return max(0.0, now - self.arrival_time)

    def __repr__(self) -> str:
        return f"<WaitingEntry {self.user_id} since {self.arrival_time}>"
