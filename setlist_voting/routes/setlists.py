"""
Setlist routes for Setlist Voting.
Handles setlist creation, fan song suggestions and vote count reads.
"""

import logging
from flask import Blueprint, session, request, jsonify

from setlist_voting.errors import VotingError, UnauthenticatedError, InvalidRequestError
from setlist_voting.services import ledger
from setlist_voting.utils.cache import get_vote_counts_snapshot, get_snapshot_version, set_vote_counts_snapshot

logger = logging.getLogger(__name__)

setlists_bp = Blueprint('setlists', __name__)


@setlists_bp.route("", methods=["POST"])
def create_setlist():
    """Initialize the setlist for a show"""
    try:
        if not session.get("user_id"):
            raise UnauthenticatedError("Not authenticated")

        data = request.get_json(silent=True) or {}
        show_id = data.get("show_id")
        song_ids = data.get("song_ids") or []
        if not show_id or not isinstance(song_ids, list):
            raise InvalidRequestError("show_id and a list of song_ids are required")

        setlist = ledger.initialize_setlist(show_id, song_ids)
        return jsonify(setlist), 201

    except VotingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.error(f"Error creating setlist: {e}")
        return jsonify({"success": False, "error": "submission_failed", "message": "Failed to create setlist"}), 500


@setlists_bp.route("/<setlist_id>")
def get_setlist(setlist_id):
    """Setlist with its songs in position order"""
    try:
        return jsonify(ledger.get_setlist(setlist_id))
    except VotingError as e:
        return jsonify(e.to_dict()), e.status_code


@setlists_bp.route("/show/<show_id>")
def get_show_setlist(show_id):
    try:
        return jsonify(ledger.get_setlist_for_show(show_id))
    except VotingError as e:
        return jsonify(e.to_dict()), e.status_code


@setlists_bp.route("/<setlist_id>/songs", methods=["POST"])
def suggest_song(setlist_id):
    """Add a fan-suggested song to the end of the setlist"""
    try:
        if not session.get("user_id"):
            raise UnauthenticatedError("You must be logged in to add songs")

        data = request.get_json(silent=True) or {}
        song_id = data.get("song_id")
        if not song_id:
            raise InvalidRequestError("Missing song_id")

        slot = ledger.add_song_to_setlist(setlist_id, song_id)
        return jsonify(slot), 201

    except VotingError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.error(f"Error adding song to setlist {setlist_id}: {e}")
        return jsonify({"success": False, "error": "submission_failed", "message": "Failed to add song"}), 500


@setlists_bp.route("/<setlist_id>/votes")
def get_vote_counts(setlist_id):
    """Current vote counts, served from the snapshot cache when fresh"""
    counts = get_vote_counts_snapshot(setlist_id)
    if counts is None:
        version = get_snapshot_version(setlist_id)
        try:
            counts = ledger.read_vote_counts(setlist_id)
        except VotingError as e:
            return jsonify(e.to_dict()), e.status_code
        set_vote_counts_snapshot(setlist_id, counts, version=version)

    return jsonify({"setlist_id": setlist_id, "counts": counts})
