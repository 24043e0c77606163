from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional

from ..models import DeclaredInfo


class ActionRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    action: str
    user_id: str = Field(..., alias="userId", min_length=1, max_length=200)


class JoinRequest(ActionRequest):
    declared_info: Optional[DeclaredInfo] = Field(None, alias="declaredInfo")
    timezone: Optional[int] = Field(None, ge=-12, le=14, description="UTC offset in whole hours")
    preferred_match_id: Optional[str] = Field(None, alias="preferredMatchId", min_length=1, max_length=100)


class PollRequest(ActionRequest):
    pass


class SendSignalRequest(ActionRequest):
    match_id: str = Field(..., alias="matchId", min_length=1)
    kind: str = Field(..., alias="type", min_length=1, max_length=50)
    payload: Any = None


class P2PConnectedRequest(ActionRequest):
    match_id: str = Field(..., alias="matchId", min_length=1)
    partner_id: str = Field(..., alias="partnerId", min_length=1)


class DisconnectRequest(ActionRequest):
    pass


ACTION_SCHEMAS = {
    "join": JoinRequest,
    "instant-match": JoinRequest,
    "join-queue": JoinRequest,
    "poll": PollRequest,
    "get-signals": PollRequest,
    "send-signal": SendSignalRequest,
    "p2p-connected": P2PConnectedRequest,
    "disconnect": DisconnectRequest,
}
