"""
Client-side vote counts for one setlist.

Reads are local. Optimistic deltas from this user's own votes are applied
immediately; counts pushed by the realtime feed replace whatever is cached,
so a vote that round-trips back through the feed is never counted twice.
"""

import logging
import threading

logger = logging.getLogger(__name__)


class VoteCountCache:

    def __init__(self, ledger):
        self.ledger = ledger
        self._counts = {}
        # Bumped by every authoritative push, per song
        self._versions = {}
        # Realtime pushes arrive on the Socket.IO client's thread
        self._lock = threading.Lock()

    def seed(self, setlist_id):
        """Replace the cache with the ledger's current counts for the setlist"""
        counts = self.ledger.read_vote_counts(setlist_id)
        with self._lock:
            self._counts = {slot_id: max(0, int(votes or 0)) for slot_id, votes in counts.items()}
            self._versions = {}
            logger.info(f"Initialized {len(self._counts)} song vote counts for setlist {setlist_id}")
            return dict(self._counts)

    def get(self, setlist_song_id):
        with self._lock:
            return self._counts.get(setlist_song_id, 0)

    def version(self, setlist_song_id):
        with self._lock:
            return self._versions.get(setlist_song_id, 0)

    def apply_optimistic(self, setlist_song_id, delta=1):
        with self._lock:
            value = max(0, self._counts.get(setlist_song_id, 0) + delta)
            self._counts[setlist_song_id] = value
            return value

    def apply_pending(self, setlist_song_id, delta=1):
        """apply_optimistic() that also returns the push version it was applied on top of"""
        with self._lock:
            self._counts[setlist_song_id] = max(0, self._counts.get(setlist_song_id, 0) + delta)
            return self._versions.get(setlist_song_id, 0)

    def revert(self, setlist_song_id, delta=1, since_version=None):
        """
        Undo an optimistic delta; counts never go below zero.

        With since_version, a push that landed after the delta was applied
        already replaced it, so there is nothing left to undo.
        """
        with self._lock:
            if since_version is not None and self._versions.get(setlist_song_id, 0) != since_version:
                return self._counts.get(setlist_song_id, 0)
            value = max(0, self._counts.get(setlist_song_id, 0) - delta)
            self._counts[setlist_song_id] = value
            return value

    def apply_confirmed(self, setlist_song_id, absolute_count, since_version=None):
        """Count returned by our own vote; loses to any push delivered while the vote was pending"""
        with self._lock:
            if since_version is not None and self._versions.get(setlist_song_id, 0) != since_version:
                return self._counts.get(setlist_song_id, 0)
            value = max(0, int(absolute_count))
            self._counts[setlist_song_id] = value
            return value

    def apply_remote(self, setlist_song_id, absolute_count):
        """Authoritative value from the ledger; last delivered push wins"""
        with self._lock:
            value = max(0, int(absolute_count))
            self._counts[setlist_song_id] = value
            self._versions[setlist_song_id] = self._versions.get(setlist_song_id, 0) + 1
            return value

    def snapshot(self):
        with self._lock:
            return dict(self._counts)
