"""
Vote submission for one user on one show's setlist.

VotingSession ties the client pieces together: counts come from the
VoteCountCache, quota hints from the QuotaTracker and live updates from the
RealtimeFeedAdapter. vote() applies its effects optimistically, then asks the
ledger, then either keeps them (aligned with the server's numbers) or undoes
them. It never raises; callers inspect the returned VoteResult.
"""

import logging
import threading
from collections import deque

from setlist_voting.errors import (
    ALREADY_VOTED,
    VotingError,
    UnauthenticatedError,
    AlreadyVotedError,
    SubmissionFailedError,
)
from setlist_voting.client.ledger_client import HttpLedgerClient
from setlist_voting.client.quota import QuotaTracker
from setlist_voting.client.realtime import RealtimeFeedAdapter
from setlist_voting.client.vote_cache import VoteCountCache

logger = logging.getLogger(__name__)


class VoteResult:
    """Outcome of VotingSession.vote()"""

    def __init__(self, success, error=None, message=None, votes=None, usage=None):
        self.success = success
        self.error = error
        self.message = message
        self.votes = votes
        self.usage = usage

    @classmethod
    def failure(cls, error, usage=None):
        return cls(False, error=error.kind, message=error.message, usage=usage)

    @property
    def is_benign(self):
        """Already-voted is informational, not an error state"""
        return self.error == ALREADY_VOTED

    def to_dict(self):
        return {
            "success": self.success,
            "error": self.error,
            "message": self.message,
            "votes": self.votes,
            "usage": self.usage,
        }

    def __repr__(self):
        if self.success:
            return f"VoteResult(success=True, votes={self.votes})"
        return f"VoteResult(success=False, error={self.error!r})"


class VotingSession:

    def __init__(self, ledger, show_id, setlist_id, user_id=None, feed=None,
                 on_activity=None, activity_limit=5):
        self.ledger = ledger
        self.show_id = show_id
        self.setlist_id = setlist_id
        self.user_id = user_id if user_id is not None else getattr(ledger, "user_id", None)
        self.feed = feed
        self.on_activity = on_activity

        self.cache = VoteCountCache(ledger)
        self.quota = QuotaTracker(ledger)
        self.recent_activity = deque(maxlen=activity_limit)

        self._voted = set()
        self._pending = set()
        self._subscription = None
        self._closed = False
        self._lock = threading.Lock()

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False

    def start(self):
        """Load counts and quota usage, then subscribe to live updates"""
        try:
            self.cache.seed(self.setlist_id)
        except Exception as e:
            logger.error(f"Error fetching vote counts for setlist {self.setlist_id}: {e}")

        self.quota.load(self.user_id, self.show_id)
        with self._lock:
            self._voted = set(self.quota.voted_song_ids)

        if self.feed is not None:
            self._subscription = self.feed.subscribe(
                self.setlist_id, self._handle_update, self._handle_activity
            )
        return self

    def close(self):
        """Stop live updates; votes still in flight are discarded when they resolve"""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subscription = self._subscription
            self._subscription = None

        if subscription is not None:
            subscription.unsubscribe()

    @property
    def is_connected(self):
        return self.feed is not None and self.feed.is_connected

    @property
    def connection_error(self):
        """ConnectionLostError once the live feed has given up, else None"""
        if self.feed is None:
            return None
        return self.feed.error

    @property
    def usage(self):
        return self.quota.usage()

    def get_vote_count(self, setlist_song_id):
        return self.cache.get(setlist_song_id)

    def has_user_voted(self, setlist_song_id):
        with self._lock:
            return setlist_song_id in self._voted

    def can_vote(self, setlist_song_id):
        """Whether the vote button should be enabled for this song"""
        with self._lock:
            if self._closed or not self.user_id:
                return False
            if setlist_song_id in self._voted or setlist_song_id in self._pending:
                return False
        return not self.quota.is_exhausted()

    def vote(self, setlist_song_id):
        with self._lock:
            if self._closed:
                return VoteResult.failure(SubmissionFailedError("Voting session is closed"))
            if not self.user_id:
                return VoteResult.failure(UnauthenticatedError())
            if setlist_song_id in self._voted or setlist_song_id in self._pending:
                return VoteResult.failure(AlreadyVotedError())

            try:
                self.quota.reserve()
            except VotingError as e:
                return VoteResult.failure(e, usage=self.quota.usage())

            self._pending.add(setlist_song_id)
            self._voted.add(setlist_song_id)
            version = self.cache.apply_pending(setlist_song_id, 1)

        error = None
        response = None
        try:
            response = self.ledger.submit_vote(setlist_song_id)
        except VotingError as e:
            error = e
        except Exception as e:
            logger.exception(f"Vote for {setlist_song_id} failed: {e}")
            error = SubmissionFailedError()

        with self._lock:
            self._pending.discard(setlist_song_id)
            if self._closed:
                logger.info(f"Discarding vote result for {setlist_song_id}, session closed")
                if error is not None:
                    return VoteResult.failure(error)
                return VoteResult(True, votes=(response or {}).get("votes"))

            if error is not None:
                self.cache.revert(setlist_song_id, 1, since_version=version)
                self.quota.rollback()
                self._voted.discard(setlist_song_id)
                logger.info(f"Vote for {setlist_song_id} rejected: {error.kind}")
                return VoteResult.failure(error, usage=self.quota.usage())

            usage = self.quota.commit(response or {})
            votes = (response or {}).get("votes")
            if votes is not None:
                self.cache.apply_confirmed(setlist_song_id, votes, since_version=version)
            logger.info(f"Vote for {setlist_song_id} confirmed, {usage['show_remaining']} show votes left")
            return VoteResult(True, votes=self.cache.get(setlist_song_id), usage=usage)

    def reconnect(self):
        """Manual retry after the live feed gave up"""
        if self.feed is None:
            return False
        return self.feed.reconnect()

    def refresh_votes(self):
        """Re-read counts and quota usage from the ledger"""
        counts = self.cache.seed(self.setlist_id)
        self.quota.load(self.user_id, self.show_id)
        with self._lock:
            self._voted = set(self.quota.voted_song_ids) | self._pending
        return counts

    def _handle_update(self, setlist_song_id, votes):
        self.cache.apply_remote(setlist_song_id, votes)

    def _handle_activity(self, activity):
        self.recent_activity.appendleft(activity)
        if self.on_activity:
            try:
                self.on_activity(activity)
            except Exception:
                logger.exception("on_activity callback failed")


def open_http_session(base_url, show_id, setlist_id, username=None, password=None,
                      on_activity=None, on_state_change=None):
    """
    Sign in against a running server and start a live VotingSession.

    With no credentials the voter uses the locally stored anonymous id.
    """
    ledger = HttpLedgerClient(base_url)
    if username:
        ledger.login(username, password)
    else:
        ledger.login_anonymous()

    feed = RealtimeFeedAdapter(
        ledger.base_url,
        user_id=ledger.user_id,
        headers={"Cookie": ledger.cookie_header},
        on_state_change=on_state_change,
    )
    session = VotingSession(ledger, show_id, setlist_id, feed=feed, on_activity=on_activity)
    return session.start()
