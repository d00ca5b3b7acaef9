"""Client-side voting core: counts cache, quota hints, live feed and vote submission."""

from .vote_cache import VoteCountCache
from .quota import QuotaTracker
from .realtime import RealtimeFeedAdapter, ConnectionState, VoteActivity
from .ledger_client import HttpLedgerClient, LocalLedgerClient
from .voting import VotingSession, VoteResult, open_http_session

__all__ = [
    "VoteCountCache",
    "QuotaTracker",
    "RealtimeFeedAdapter",
    "ConnectionState",
    "VoteActivity",
    "HttpLedgerClient",
    "LocalLedgerClient",
    "VotingSession",
    "VoteResult",
    "open_http_session",
]
