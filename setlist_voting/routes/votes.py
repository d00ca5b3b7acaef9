"""
Voting routes for Setlist Voting.
Handles vote submission and the user's quota state.
"""

import uuid
import logging
from flask import Blueprint, session, request, jsonify

from setlist_voting.errors import (
    VotingError,
    UnauthenticatedError,
    InvalidRequestError,
    SubmissionFailedError,
)
from setlist_voting.services import ledger
from setlist_voting.utils.cache import check_vote_rate_limit, invalidate_vote_counts_snapshot
from setlist_voting.websockets.handlers import broadcast_vote

logger = logging.getLogger(__name__)

votes_bp = Blueprint('votes', __name__)


@votes_bp.route("", methods=["POST"])
def cast_vote():
    """Vote for one song in a show's setlist"""
    vote_event_id = str(uuid.uuid4())[:8]
    data = request.get_json(silent=True) or {}
    setlist_song_id = data.get("setlist_song_id")
    user_id = session.get("user_id")

    try:
        if not user_id:
            raise UnauthenticatedError()
        if not setlist_song_id:
            raise InvalidRequestError("Missing setlist_song_id")

        logger.info(f"[VOTE {vote_event_id}] START: user_id={user_id}, setlist_song_id={setlist_song_id}")
        check_vote_rate_limit(user_id)
        result = ledger.submit_vote(user_id, setlist_song_id)

    except VotingError as e:
        logger.info(f"[VOTE {vote_event_id}] REJECTED: {e.kind} ({e.message})")
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.exception(f"[VOTE {vote_event_id}] ERROR: {e}")
        return jsonify(SubmissionFailedError().to_dict()), 500

    logger.info(f"[VOTE {vote_event_id}] SUCCESS: {result['votes']} votes, "
                f"{result['show_votes_remaining']} show votes remaining")

    invalidate_vote_counts_snapshot(result["setlist_id"])
    try:
        broadcast_vote(result, user_id, session.get("display_name"))
    except Exception as e:
        # The vote is committed; live updates are best effort
        logger.error(f"[VOTE {vote_event_id}] Broadcast failed: {e}")

    return jsonify(result)


@votes_bp.route("/shows/<show_id>/me")
def get_my_votes(show_id):
    """Songs the current user voted for in this show, plus quota usage"""
    try:
        state = ledger.read_user_vote_state(session.get("user_id"), show_id)
    except Exception as e:
        logger.error(f"Error reading vote state for show {show_id}: {e}")
        return jsonify({"success": False, "error": "submission_failed", "message": "Failed to load vote status"}), 500

    return jsonify(state)
