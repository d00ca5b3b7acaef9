"""
Client-side quota hints for one user and one show.

The ledger is the real gate. These counters only let the client reject a
vote it already knows would fail and show remaining votes without waiting
on the server.
"""

import logging
import threading

from setlist_voting.errors import ShowQuotaExceededError, DailyQuotaExceededError
from setlist_voting.utils.config import DAILY_VOTE_LIMIT, SHOW_VOTE_LIMIT

logger = logging.getLogger(__name__)


def _clamp(value, cap):
    return max(0, min(cap, int(value)))


class QuotaTracker:

    def __init__(self, ledger):
        self.ledger = ledger
        self.daily_used = 0
        self.show_used = 0
        self.voted_song_ids = set()
        # Reservations taken by reserve() and not yet committed or rolled back
        self.outstanding = 0
        self._lock = threading.Lock()

    def load(self, user_id, show_id):
        """
        Read the user's quota usage and voted songs for the show.

        Fails soft: unauthenticated users and read errors both produce zero
        usage, so a quota read problem never takes voting down with it.
        """
        bound_user = getattr(self.ledger, "user_id", None)
        if user_id and bound_user is not None and bound_user != user_id:
            raise ValueError(f"Ledger client is signed in as {bound_user}, not {user_id}")

        state = None
        if user_id:
            try:
                state = self.ledger.read_user_vote_state(show_id)
            except Exception as e:
                logger.error(f"Error fetching vote limits for show {show_id}: {e}")

        with self._lock:
            if state:
                self._apply_server(state)
                self.voted_song_ids = set(state.get("voted_song_ids") or [])
            else:
                self.daily_used = _clamp(self.outstanding, DAILY_VOTE_LIMIT)
                self.show_used = _clamp(self.outstanding, SHOW_VOTE_LIMIT)
                self.voted_song_ids = set()
            return self._usage()

    def _apply_server(self, server_state):
        # Server counts plus our votes the server has not seen yet
        if "daily_votes_used" in server_state:
            self.daily_used = _clamp(server_state["daily_votes_used"] + self.outstanding, DAILY_VOTE_LIMIT)
        if "show_votes_used" in server_state:
            self.show_used = _clamp(server_state["show_votes_used"] + self.outstanding, SHOW_VOTE_LIMIT)

    def _usage(self):
        return {
            "daily_used": self.daily_used,
            "daily_remaining": DAILY_VOTE_LIMIT - self.daily_used,
            "show_used": self.show_used,
            "show_remaining": SHOW_VOTE_LIMIT - self.show_used,
        }

    def usage(self):
        with self._lock:
            return self._usage()

    def is_exhausted(self):
        with self._lock:
            return self.show_used >= SHOW_VOTE_LIMIT or self.daily_used >= DAILY_VOTE_LIMIT

    def reserve(self):
        """Check both quotas and take one vote from each, or raise without changing anything"""
        with self._lock:
            if self.show_used >= SHOW_VOTE_LIMIT:
                raise ShowQuotaExceededError()
            if self.daily_used >= DAILY_VOTE_LIMIT:
                raise DailyQuotaExceededError()
            self.show_used += 1
            self.daily_used += 1
            self.outstanding += 1
            return self._usage()

    def commit(self, server_state):
        """Trust the server's counts after a confirmed vote (covers other sessions of the same user)"""
        with self._lock:
            self.outstanding = max(0, self.outstanding - 1)
            self._apply_server(server_state)
            return self._usage()

    def rollback(self):
        """Give back the vote taken by reserve()"""
        with self._lock:
            self.outstanding = max(0, self.outstanding - 1)
            self.show_used = _clamp(self.show_used - 1, SHOW_VOTE_LIMIT)
            self.daily_used = _clamp(self.daily_used - 1, DAILY_VOTE_LIMIT)
            return self._usage()
