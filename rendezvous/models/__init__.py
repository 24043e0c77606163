from .signal import Signal, DISCONNECT_NOTICE
from .waiting_entry import WaitingEntry, DeclaredInfo, GenderEnum
from .match_record import MatchRecord

__all__ = [
    "Signal",
    "DISCONNECT_NOTICE",
    "WaitingEntry",
    "DeclaredInfo",
    "GenderEnum",
    "MatchRecord",
]
