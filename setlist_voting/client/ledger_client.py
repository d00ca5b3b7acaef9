"""
Ledger clients used by the voting core.

HttpLedgerClient talks to the Setlist Voting HTTP API with a requests
session (the server identifies the voter by its session cookie).
LocalLedgerClient calls the ledger service in-process for a known user.
Both raise VotingError subclasses, so callers handle one error family.
"""

import os
import logging

import requests

from setlist_voting.errors import (
    ERRORS_BY_KIND,
    UNAUTHENTICATED,
    SUBMISSION_FAILED,
    SubmissionFailedError,
    error_from_kind,
)
from setlist_voting.identity import load_or_create_anonymous_id
from setlist_voting.services import ledger

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = os.getenv("SETLIST_VOTING_URL", "http://127.0.0.1:5000")


class HttpLedgerClient:

    def __init__(self, base_url=None, http=None, timeout=10):
        self.base_url = (base_url or DEFAULT_SERVER_URL).rstrip("/")
        self.http = http or requests.Session()
        self.timeout = timeout
        self.user_id = None
        self.display_name = None

    def _raise_for_error(self, response):
        try:
            payload = response.json()
        except ValueError:
            payload = {}

        kind = payload.get("error")
        message = payload.get("message")
        if kind not in ERRORS_BY_KIND:
            # Session routes answer {"error": "<human message>"}
            message = message or kind
            kind = UNAUTHENTICATED if response.status_code == 401 else SUBMISSION_FAILED
        raise error_from_kind(kind, message)

    def _request(self, method, path, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f"{method} {path} failed: {e}")
            raise SubmissionFailedError("Network error. Please try again.") from e

        if response.status_code >= 400:
            self._raise_for_error(response)

        try:
            return response.json()
        except ValueError as e:
            raise SubmissionFailedError("Unexpected response from server") from e

    @property
    def cookie_header(self):
        """Cookie header for the Socket.IO handshake, so the push channel sees the same session"""
        return "; ".join(f"{name}={value}" for name, value in self.http.cookies.items())

    def login(self, username, password):
        data = self._request("POST", "/api/session/login", json={"username": username, "password": password})
        self.user_id = data.get("user_id")
        self.display_name = data.get("username")
        return data

    def login_anonymous(self, anonymous_id=None):
        anonymous_id = anonymous_id or load_or_create_anonymous_id()
        data = self._request("POST", "/api/session/guest", json={"anonymous_id": anonymous_id})
        self.user_id = data.get("user_id")
        self.display_name = "Anonymous Fan"
        return data

    def logout(self):
        data = self._request("POST", "/api/session/logout")
        self.user_id = None
        self.display_name = None
        return data

    def read_vote_counts(self, setlist_id):
        return self._request("GET", f"/api/setlists/{setlist_id}/votes").get("counts", {})

    def read_user_vote_state(self, show_id):
        return self._request("GET", f"/api/votes/shows/{show_id}/me")

    def submit_vote(self, setlist_song_id):
        return self._request("POST", "/api/votes", json={"setlist_song_id": setlist_song_id})


class LocalLedgerClient:
    """In-process ledger access for one user (None means not signed in)"""

    def __init__(self, user_id=None, display_name=None):
        self.user_id = user_id
        self.display_name = display_name

    def read_vote_counts(self, setlist_id):
        return ledger.read_vote_counts(setlist_id)

    def read_user_vote_state(self, show_id):
        return ledger.read_user_vote_state(self.user_id, show_id)

    def submit_vote(self, setlist_song_id):
        return ledger.submit_vote(self.user_id, setlist_song_id)
