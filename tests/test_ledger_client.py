"""
Tests for the HTTP ledger client's error mapping and the anonymous identity store.
"""

import json
from unittest.mock import Mock

import pytest
import requests

from setlist_voting.client.ledger_client import HttpLedgerClient
from setlist_voting.errors import (
    AlreadyVotedError,
    RateLimitedError,
    SubmissionFailedError,
    UnauthenticatedError,
)
from setlist_voting.identity import is_valid_anonymous_id, load_or_create_anonymous_id, new_anonymous_id


def response(status_code, payload):
    resp = Mock()
    resp.status_code = status_code
    resp.json.return_value = payload
    return resp


def client_returning(*responses):
    http = Mock()
    http.request.side_effect = list(responses)
    return HttpLedgerClient("http://voting.test/", http=http)


class TestHttpLedgerClient:

    def test_submit_vote_posts_song(self):
        client = client_returning(response(200, {"success": True, "votes": 3}))

        assert client.submit_vote("song-1")["votes"] == 3
        client.http.request.assert_called_once_with(
            "POST", "http://voting.test/api/votes", timeout=10, json={"setlist_song_id": "song-1"}
        )

    def test_read_vote_counts(self):
        client = client_returning(response(200, {"setlist_id": "s", "counts": {"a": 1}}))
        assert client.read_vote_counts("s") == {"a": 1}

    @pytest.mark.parametrize("status, kind, error_class", [
        (409, "already_voted", AlreadyVotedError),
        (429, "rate_limited", RateLimitedError),
        (401, "unauthenticated", UnauthenticatedError),
        (500, "submission_failed", SubmissionFailedError),
    ])
    def test_error_kinds_round_trip(self, status, kind, error_class):
        """JSON errors come back as the same exception types the server raised"""
        client = client_returning(response(status, {"success": False, "error": kind, "message": "nope"}))
        with pytest.raises(error_class) as excinfo:
            client.submit_vote("song-1")
        assert excinfo.value.message == "nope"

    def test_plain_401_is_unauthenticated(self):
        client = client_returning(response(401, {"error": "Invalid username/email or password"}))
        with pytest.raises(UnauthenticatedError) as excinfo:
            client.login("fan", "bad")
        assert "Invalid" in excinfo.value.message
        assert client.user_id is None

    def test_network_error(self):
        http = Mock()
        http.request.side_effect = requests.ConnectionError("down")
        client = HttpLedgerClient("http://voting.test", http=http)
        with pytest.raises(SubmissionFailedError):
            client.submit_vote("song-1")

    def test_login_anonymous_uses_stored_id(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SETLIST_VOTING_IDENTITY", str(tmp_path / "identity.json"))
        anonymous_id = load_or_create_anonymous_id()
        client = client_returning(response(200, {"user_id": anonymous_id}))

        client.login_anonymous()

        sent = client.http.request.call_args.kwargs["json"]
        assert sent == {"anonymous_id": anonymous_id}
        assert client.user_id == anonymous_id


class TestAnonymousIdentity:

    def test_format(self):
        assert is_valid_anonymous_id(new_anonymous_id())
        assert not is_valid_anonymous_id("anon_SHOUTING_1")
        assert not is_valid_anonymous_id(None)

    def test_id_is_stable(self, tmp_path):
        path = str(tmp_path / "nested" / "identity.json")
        first = load_or_create_anonymous_id(path)
        assert load_or_create_anonymous_id(path) == first
        with open(path) as f:
            assert json.load(f) == {"anonymous_user_id": first}

    def test_malformed_file_replaced(self, tmp_path):
        path = tmp_path / "identity.json"
        path.write_text('{"anonymous_user_id": "hacked"}')
        assert is_valid_anonymous_id(load_or_create_anonymous_id(str(path)))
