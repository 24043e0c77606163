from pydantic import BaseModel, ConfigDict, Field
from typing import Any


DISCONNECT_NOTICE = "disconnect-notice"


class Signal(BaseModel):
    """One handshake message relayed between the two members of a match.

    On the wire it keeps the short field names clients already send and
    expect: ``type``, ``payload``, ``from`` and ``ts`` (epoch milliseconds).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: str = Field(..., alias="type")
    payload: Any = None
    sender_id: str = Field(..., alias="from")
    sent_at: int = Field(..., alias="ts")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)

    @classmethod
    def disconnect_notice(cls, sender_id: str, sent_at: int, reason: str = "disconnect") -> "Signal":
        return cls(
            kind=DISCONNECT_NOTICE,
            payload={"reason": reason},
            sender_id=sender_id,
            sent_at=sent_at,
        )
