"""Core enumerations used across the market data pipeline."""

from enum import Enum, auto


class JobKind(Enum):
    REFRESH = auto()     # quote + historical + company as one unit
    QUOTE = auto()
    HISTORICAL = auto()
    COMPANY = auto()


class JobStatus(Enum):
    PENDING = auto()
    RUNNING = auto()
    COMPLETED = auto()
    FAILED = auto()


class FeedState(Enum):
    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    BACKOFF = auto()
