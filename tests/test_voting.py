"""
Tests for VotingSession: preconditions, optimistic updates and reconciliation.
"""

from unittest.mock import Mock

import pytest

from setlist_voting.client.ledger_client import LocalLedgerClient
from setlist_voting.client.realtime import VoteActivity
from setlist_voting.client.voting import VotingSession
from setlist_voting.errors import (
    ALREADY_VOTED,
    UNAUTHENTICATED,
    SHOW_QUOTA_EXCEEDED,
    DAILY_QUOTA_EXCEEDED,
    SUBMISSION_FAILED,
    CONNECTION_LOST,
    AlreadyVotedError,
    ConnectionLostError,
    SubmissionFailedError,
)
from setlist_voting.services import ledger as ledger_service


class FakeLedger:
    """In-memory ledger; on_submit replaces the default accepting behaviour"""

    def __init__(self, counts=None, daily=0, show=0, voted=(), user_id="user-1"):
        self.user_id = user_id
        self.counts = dict(counts or {})
        self.state = {"daily_votes_used": daily, "show_votes_used": show, "voted_song_ids": list(voted)}
        self.submitted = []
        self.on_submit = None

    def read_vote_counts(self, setlist_id):
        return dict(self.counts)

    def read_user_vote_state(self, show_id):
        return dict(self.state)

    def submit_vote(self, setlist_song_id):
        self.submitted.append(setlist_song_id)
        if self.on_submit:
            return self.on_submit(setlist_song_id)
        self.counts[setlist_song_id] = self.counts.get(setlist_song_id, 0) + 1
        self.state["daily_votes_used"] += 1
        self.state["show_votes_used"] += 1
        return {"success": True, "votes": self.counts[setlist_song_id], **self.state}


def start_session(ledger, **kwargs):
    return VotingSession(ledger, "show-1", "setlist-1", **kwargs).start()


class TestVote:

    def test_first_vote(self):
        """Count and voted flag change before the write; quota follows the server"""
        ledger = FakeLedger(counts={"song-42": 4})
        session = start_session(ledger)
        seen = {}

        def accept(song_id):
            seen["count"] = session.get_vote_count(song_id)
            seen["voted"] = session.has_user_voted(song_id)
            return {"success": True, "votes": 5, "daily_votes_used": 1, "show_votes_used": 1}

        ledger.on_submit = accept
        result = session.vote("song-42")

        assert result.success
        assert seen == {"count": 5, "voted": True}
        assert session.get_vote_count("song-42") == 5
        assert session.has_user_voted("song-42")
        assert session.usage["show_used"] == 1

    def test_duplicate_vote(self):
        ledger = FakeLedger(counts={"song-42": 4})
        session = start_session(ledger)
        session.vote("song-42")

        result = session.vote("song-42")

        assert result.error == ALREADY_VOTED
        assert result.is_benign
        assert session.get_vote_count("song-42") == 5
        assert ledger.submitted == ["song-42"]

    def test_previously_voted_song_rejected_locally(self):
        ledger = FakeLedger(voted=["song-1"], show=1, daily=1)
        session = start_session(ledger)

        assert session.has_user_voted("song-1")
        assert session.vote("song-1").error == ALREADY_VOTED
        assert ledger.submitted == []

    def test_show_limit(self):
        """No cache or quota change when the show quota is used up"""
        ledger = FakeLedger(counts={"song-99": 2}, show=10, daily=10)
        session = start_session(ledger)

        result = session.vote("song-99")

        assert result.error == SHOW_QUOTA_EXCEEDED
        assert session.get_vote_count("song-99") == 2
        assert session.usage["show_used"] == 10
        assert not session.can_vote("song-99")
        assert ledger.submitted == []

    def test_daily_limit(self):
        ledger = FakeLedger(show=0, daily=50)
        session = start_session(ledger)
        assert session.vote("song-1").error == DAILY_QUOTA_EXCEEDED

    def test_unauthenticated(self):
        ledger = FakeLedger(user_id=None)
        session = start_session(ledger)

        assert session.vote("song-1").error == UNAUTHENTICATED
        assert not session.can_vote("song-1")

    def test_failed_write_rolls_back(self):
        """A rejected write restores count, quota and the voted flag exactly"""
        ledger = FakeLedger(counts={"song-7": 5}, daily=3, show=2)
        session = start_session(ledger)
        before = session.usage

        def reject(song_id):
            assert session.get_vote_count(song_id) == 6
            raise SubmissionFailedError()

        ledger.on_submit = reject
        result = session.vote("song-7")

        assert result.error == SUBMISSION_FAILED
        assert session.get_vote_count("song-7") == 5
        assert not session.has_user_voted("song-7")
        assert session.usage == before
        assert session.can_vote("song-7")

    def test_unexpected_exception_becomes_result(self):
        ledger = FakeLedger(counts={"song-7": 5})
        ledger.on_submit = Mock(side_effect=RuntimeError("socket closed"))
        session = start_session(ledger)

        result = session.vote("song-7")

        assert result.success is False
        assert result.error == SUBMISSION_FAILED
        assert session.get_vote_count("song-7") == 5

    def test_server_side_duplicate_reverts(self):
        """Another tab won the race; the local effects are undone"""
        ledger = FakeLedger(counts={"song-7": 5})
        ledger.on_submit = Mock(side_effect=AlreadyVotedError())
        session = start_session(ledger)

        result = session.vote("song-7")

        assert result.error == ALREADY_VOTED
        assert session.get_vote_count("song-7") == 5
        assert session.usage["show_used"] == 0

    def test_remote_push_during_pending_vote(self):
        """A push that lands while the vote is in flight wins over the vote's own count"""
        ledger = FakeLedger(counts={"song-7": 5})
        session = start_session(ledger)

        def push_then_accept(song_id):
            assert session.get_vote_count(song_id) == 6
            session._handle_update(song_id, 9)
            return {"success": True, "votes": 6, "daily_votes_used": 1, "show_votes_used": 1}

        ledger.on_submit = push_then_accept
        session.vote("song-7")

        assert session.get_vote_count("song-7") == 9

    def test_remote_push_during_failed_vote(self):
        ledger = FakeLedger(counts={"song-7": 5})
        session = start_session(ledger)

        def push_then_fail(song_id):
            session._handle_update(song_id, 9)
            raise SubmissionFailedError()

        ledger.on_submit = push_then_fail
        session.vote("song-7")

        assert session.get_vote_count("song-7") == 9

    def test_server_count_applied_without_push(self):
        """The vote response carries the authoritative count"""
        ledger = FakeLedger(counts={"song-7": 5})
        ledger.on_submit = lambda song_id: {"success": True, "votes": 11, "daily_votes_used": 1, "show_votes_used": 1}
        session = start_session(ledger)

        assert session.vote("song-7").votes == 11
        assert session.get_vote_count("song-7") == 11

    def test_quota_never_exceeds_caps(self):
        ledger = FakeLedger()
        session = start_session(ledger)

        results = [session.vote(f"song-{i}") for i in range(15)]

        assert sum(result.success for result in results) == 10
        assert all(result.error == SHOW_QUOTA_EXCEEDED for result in results[10:])
        assert session.usage["show_used"] == 10
        assert len(ledger.submitted) == 10

    def test_overlapping_votes_keep_quota_in_step(self):
        """One vote confirms while another is in flight, then the other fails"""
        ledger = FakeLedger()
        session = start_session(ledger)
        inner = {}

        def submit(song_id):
            if song_id == "song-b":
                ledger.on_submit = lambda _: {"success": True, "votes": 1, "daily_votes_used": 1, "show_votes_used": 1}
                inner["result"] = session.vote("song-a")
                raise SubmissionFailedError()
            raise AssertionError("unexpected submit")

        ledger.on_submit = submit
        result = session.vote("song-b")

        assert inner["result"].success
        assert result.error == SUBMISSION_FAILED
        assert session.usage["show_used"] == 1
        assert session.usage["daily_used"] == 1
        assert session.has_user_voted("song-a")
        assert not session.has_user_voted("song-b")

    def test_session_user_must_match_ledger(self):
        session = VotingSession(FakeLedger(user_id="user-1"), "show-1", "setlist-1", user_id="user-2")
        with pytest.raises(ValueError):
            session.start()

    def test_result_serializes(self):
        ledger = FakeLedger(show=10)
        result = start_session(ledger).vote("song-1")
        data = result.to_dict()
        assert data["success"] is False
        assert data["error"] == SHOW_QUOTA_EXCEEDED
        assert data["usage"]["show_remaining"] == 0

    def test_result_discarded_after_close(self):
        ledger = FakeLedger(counts={"song-7": 5})
        session = start_session(ledger)

        def close_then_fail(song_id):
            session.close()
            raise SubmissionFailedError()

        ledger.on_submit = close_then_fail
        result = session.vote("song-7")

        assert result.success is False
        assert session.vote("song-8").error == SUBMISSION_FAILED
        assert ledger.submitted == ["song-7"]


class TestSessionLifecycle:

    def test_start_subscribes_and_close_unsubscribes(self):
        feed = Mock()
        feed.is_connected = True
        ledger = FakeLedger()

        with VotingSession(ledger, "show-1", "setlist-1", feed=feed) as session:
            feed.subscribe.assert_called_once_with("setlist-1", session._handle_update, session._handle_activity)
            assert session.is_connected

        feed.subscribe.return_value.unsubscribe.assert_called_once()

    def test_no_feed_means_not_connected(self):
        session = start_session(FakeLedger())
        assert session.is_connected is False
        assert session.connection_error is None
        assert session.reconnect() is False

    def test_seed_failure_does_not_stop_voting(self):
        ledger = FakeLedger()
        ledger.read_vote_counts = Mock(side_effect=SubmissionFailedError())
        session = start_session(ledger)

        assert session.get_vote_count("song-1") == 0
        assert session.vote("song-1").success

    def test_recent_activity_keeps_last_five(self):
        on_activity = Mock()
        session = start_session(FakeLedger(), on_activity=on_activity)

        for i in range(7):
            session._handle_activity(VoteActivity(str(i), "song-1", "Hit", "Sam", i, None))

        assert [activity.id for activity in session.recent_activity] == ["6", "5", "4", "3", "2"]
        assert on_activity.call_count == 7

    def test_refresh_votes_rereads_ledger(self):
        ledger = FakeLedger(counts={"song-1": 1})
        session = start_session(ledger)
        ledger.counts["song-1"] = 8
        ledger.state["voted_song_ids"] = ["song-1"]

        assert session.refresh_votes() == {"song-1": 8}
        assert session.has_user_voted("song-1")


class TestAgainstLedger:
    """VotingSession over the real ledger, in-process"""

    def test_two_tabs_one_vote(self, show_with_setlist):
        """Two sessions of the same user racing on one song leave one vote"""
        show_id, setlist = show_with_setlist
        target = setlist["songs"][0]["id"]

        tab_a = VotingSession(LocalLedgerClient("fan"), show_id, setlist["id"]).start()
        tab_b = VotingSession(LocalLedgerClient("fan"), show_id, setlist["id"]).start()

        assert tab_a.vote(target).success
        second = tab_b.vote(target)

        assert second.error == ALREADY_VOTED
        assert tab_b.get_vote_count(target) == 0
        assert ledger_service.read_vote_counts(setlist["id"])[target] == 1
        assert ledger_service.read_user_vote_state("fan", show_id)["show_votes_used"] == 1

    def test_counts_follow_ledger(self, show_with_setlist):
        show_id, setlist = show_with_setlist
        first, second, _ = [slot["id"] for slot in setlist["songs"]]
        session = VotingSession(LocalLedgerClient("fan"), show_id, setlist["id"]).start()

        session.vote(first)
        session.vote(second)

        assert session.get_vote_count(first) == 1
        assert session.usage["show_used"] == 2
        assert session.usage["daily_used"] == 2


class TestConnectionLoss:

    def test_lost_feed_reported_and_voting_continues(self):
        """When live updates give up the session reports it and still accepts votes"""
        feed = Mock()
        feed.is_connected = False
        feed.error = ConnectionLostError()
        session = VotingSession(FakeLedger(counts={"song-1": 2}), "show-1", "setlist-1", feed=feed).start()

        assert session.connection_error.kind == CONNECTION_LOST
        assert session.vote("song-1").success
        assert session.get_vote_count("song-1") == 3
