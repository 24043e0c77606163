from .base import WaitingPool, MatchRegistry
from .memory import MemoryWaitingPool, MemoryMatchRegistry

__all__ = [
    "WaitingPool",
    "MatchRegistry",
    "MemoryWaitingPool",
    "MemoryMatchRegistry",
]
