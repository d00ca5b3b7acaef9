"""
Live vote updates for one setlist over Socket.IO.

The adapter joins the setlist's room on the server and turns the pushed
events into two callbacks: on_update(setlist_song_id, votes) for count
changes and on_activity(VoteActivity) for other people's votes. A dropped
connection is retried with exponential backoff (1s, 2s, 4s) before the
adapter settles in "disconnected" and reports connection_lost.
"""

import time
import logging
import threading
from collections import namedtuple

import socketio

from setlist_voting.errors import ConnectionLostError

logger = logging.getLogger(__name__)


class ConnectionState:
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    ERROR = "error"


VoteCountUpdate = namedtuple("VoteCountUpdate", ["setlist_song_id", "votes"])

VoteActivity = namedtuple(
    "VoteActivity",
    ["id", "setlist_song_id", "song_name", "user_display_name", "votes", "timestamp"]
)


def decode_count_update(data):
    """vote_count_changed payload -> VoteCountUpdate, or None when malformed"""
    try:
        return VoteCountUpdate(str(data["setlist_song_id"]), max(0, int(data["votes"])))
    except (KeyError, TypeError, ValueError):
        logger.warning(f"Ignoring malformed vote_count_changed payload: {data!r}")
        return None


def decode_activity(data):
    """vote_inserted payload -> VoteActivity, or None when malformed"""
    try:
        setlist_song_id = str(data["setlist_song_id"])
        return VoteActivity(
            id=f"{setlist_song_id}-{int(time.time() * 1000)}",
            setlist_song_id=setlist_song_id,
            song_name=data.get("song_name") or "Unknown Song",
            user_display_name=data.get("user_display_name") or "Someone",
            votes=int(data.get("votes") or 0),
            timestamp=data.get("created_at"),
        )
    except (KeyError, TypeError, ValueError, AttributeError):
        logger.warning(f"Ignoring malformed vote_inserted payload: {data!r}")
        return None


class Subscription:
    """Handle returned by subscribe(); cancelling it tears the feed down"""

    def __init__(self, adapter):
        self._adapter = adapter

    def unsubscribe(self):
        self._adapter.unsubscribe()


class RealtimeFeedAdapter:

    def __init__(self, server_url, user_id=None, headers=None, on_state_change=None,
                 client_factory=None, timer_factory=threading.Timer,
                 max_retries=3, base_delay=1.0, join_timeout=10):
        self.server_url = server_url
        self.user_id = user_id
        self.headers = headers or {}
        self.on_state_change = on_state_change
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.join_timeout = join_timeout
        self._client_factory = client_factory or (
            lambda: socketio.Client(reconnection=False, logger=False, engineio_logger=False)
        )
        self._timer_factory = timer_factory

        self.state = ConnectionState.DISCONNECTED
        self.retries = 0
        self.error = None
        self.setlist_id = None
        self._on_update = None
        self._on_activity = None
        self._client = None
        self._timer = None
        self._generation = 0
        self._closed = True
        # Held while callbacks run, so unsubscribe() waits for an in-flight delivery
        self._lock = threading.RLock()

    @property
    def is_connected(self):
        return self.state == ConnectionState.SUBSCRIBED

    def _set_state(self, state, error=None):
        if state == self.state and error is None:
            return
        logger.info(f"Realtime connection status for setlist {self.setlist_id}: {state}")
        self.state = state
        if self.on_state_change:
            try:
                self.on_state_change(state, error)
            except Exception:
                logger.exception("on_state_change callback failed")

    def subscribe(self, setlist_id, on_update, on_activity=None):
        """Open the live feed for a setlist; blocks only for the initial handshake"""
        if not self._closed:
            self.unsubscribe()

        with self._lock:
            self.setlist_id = setlist_id
            self._on_update = on_update
            self._on_activity = on_activity
            self.retries = 0
            self.error = None
            self._closed = False

        self._connect()
        return Subscription(self)

    def _connect(self):
        with self._lock:
            if self._closed:
                return
            self._timer = None
            self._generation += 1
            generation = self._generation
            client = self._client_factory()
            self._client = client
            self._set_state(ConnectionState.CONNECTING)

        client.on("vote_count_changed", lambda data: self._dispatch_update(generation, data))
        client.on("vote_inserted", lambda data: self._dispatch_activity(generation, data))
        client.on("disconnect", lambda *args: self._handle_failure(generation, "connection closed"))

        try:
            client.connect(self.server_url, headers=self.headers, wait_timeout=self.join_timeout)
        except Exception as e:
            self._handle_failure(generation, str(e))
            return

        with self._lock:
            stale = self._closed or generation != self._generation
        if stale:
            # Torn down while connecting; the earlier disconnect() could not close it yet
            self._disconnect_client(client)
            return

        try:
            ack = client.call("join_setlist", {"setlist_id": self.setlist_id}, timeout=self.join_timeout)
        except Exception as e:
            ack = {"ok": False, "message": str(e)}

        if not ack or not ack.get("ok"):
            self._handle_failure(generation, (ack or {}).get("message", "join rejected"))
            self._disconnect_client(client)
            return

        with self._lock:
            stale = self._closed or generation != self._generation
            if not stale:
                self.retries = 0
                self.error = None
                self._set_state(ConnectionState.SUBSCRIBED)

                # Resync from the join snapshot; pushes may have been missed while offline
                for setlist_song_id, votes in (ack.get("counts") or {}).items():
                    self._deliver_update(VoteCountUpdate(str(setlist_song_id), max(0, int(votes or 0))))

        if stale:
            self._disconnect_client(client)

    def _handle_failure(self, generation, reason):
        with self._lock:
            if self._closed or generation != self._generation:
                return
            # Anything still arriving from this connection is stale from here on
            self._generation += 1
            self._client = None

            if self.retries < self.max_retries:
                delay = self.base_delay * (2 ** self.retries)
                self.retries += 1
                logger.warning(f"Lost connection to live updates ({reason}), "
                               f"retry {self.retries}/{self.max_retries} in {delay:.0f}s")
                self._set_state(ConnectionState.ERROR)
                self._timer = self._timer_factory(delay, self._connect)
                self._timer.daemon = True
                self._timer.start()
            else:
                logger.error(f"Giving up on live updates for setlist {self.setlist_id} ({reason})")
                self.error = ConnectionLostError(f"Lost connection to live updates ({reason})")
                self._set_state(ConnectionState.DISCONNECTED, self.error.kind)

    def _deliver_update(self, update):
        try:
            self._on_update(update.setlist_song_id, update.votes)
        except Exception:
            logger.exception("on_update callback failed")

    def _dispatch_update(self, generation, data):
        if (data or {}).get("setlist_id") != self.setlist_id:
            return
        update = decode_count_update(data)
        if update is None:
            return
        with self._lock:
            if self._closed or generation != self._generation:
                return
            self._deliver_update(update)

    def _dispatch_activity(self, generation, data):
        data = data or {}
        if data.get("setlist_id") != self.setlist_id:
            return
        if self.user_id and data.get("user_id") == self.user_id:
            return
        activity = decode_activity(data)
        if activity is None:
            return
        with self._lock:
            if self._closed or generation != self._generation or self._on_activity is None:
                return
            try:
                self._on_activity(activity)
            except Exception:
                logger.exception("on_activity callback failed")

    def _detach_locked(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._generation += 1
        client = self._client
        self._client = None
        return client

    def _disconnect_client(self, client):
        if client is None:
            return
        try:
            client.disconnect()
        except Exception as e:
            logger.debug(f"Ignoring error while closing Socket.IO client: {e}")

    def reconnect(self):
        """Manual retry: reset the attempt counter and connect immediately"""
        with self._lock:
            if self._closed:
                return False
            client = self._detach_locked()
            self.retries = 0
        self._disconnect_client(client)
        self._connect()
        return self.is_connected

    def unsubscribe(self):
        """Tear the feed down; safe to call any number of times"""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            client = self._detach_locked()
            self.state = ConnectionState.DISCONNECTED
        self._disconnect_client(client)
        logger.info(f"Unsubscribed from setlist {self.setlist_id}")
