"""
Socket.IO event handlers for Setlist Voting.
Pushes vote count changes and vote activity to everyone watching a setlist.
"""

import logging
from flask import session, request
from flask_socketio import SocketIO, emit, join_room, leave_room

from setlist_voting.errors import VotingError
from setlist_voting.services import ledger

logger = logging.getLogger(__name__)

# SocketIO instance will be created by init_socketio
socketio = None


def setlist_room(setlist_id):
    return f"setlist:{setlist_id}"


def init_socketio(app):
    """Initialize Socket.IO with the Flask app"""
    global socketio
    socketio = SocketIO(
        app,
        cors_allowed_origins="*",
        ping_timeout=120,
        ping_interval=30,
        max_http_buffer_size=16384,
        manage_session=False,  # Let Flask-Session own the session
        engineio_logger=False,
        logger=False,
        async_mode='threading'
    )

    register_handlers()

    return socketio


def register_handlers():
    """Register all Socket.IO event handlers"""

    @socketio.on("connect")
    def handle_connect(auth=None):
        """Handle client connection; watching a setlist does not require a login"""
        user_id = session.get("user_id")
        logger.info(f"[CONNECTION] Client connected (user_id: {user_id}, sid: {request.sid})")
        emit("connected", {"user_id": user_id, "message": "Connected successfully"})

    @socketio.on("disconnect")
    def handle_disconnect(reason=None):
        """Handle client disconnection"""
        logger.info(f"[DISCONNECTION] Client disconnected (sid: {request.sid}, reason: {reason})")

    @socketio.on_error_default
    def default_error_handler(e):
        """Default error handler for all events"""
        logger.error(f"[SOCKET ERROR] {request.event}: {e}")
        return False

    @socketio.on("join_setlist")
    def handle_join_setlist(data):
        """Subscribe this client to a setlist's room; the ack carries current counts"""
        setlist_id = (data or {}).get("setlist_id")
        if not setlist_id:
            return {"ok": False, "error": "invalid_request", "message": "Missing setlist_id"}

        try:
            counts = ledger.read_vote_counts(setlist_id)
        except VotingError as e:
            return {"ok": False, "error": e.kind, "message": e.message}

        join_room(setlist_room(setlist_id))
        logger.info(f"[SUBSCRIBE] sid {request.sid} joined setlist {setlist_id}")
        return {"ok": True, "setlist_id": setlist_id, "counts": counts}

    @socketio.on("leave_setlist")
    def handle_leave_setlist(data):
        """Unsubscribe this client from a setlist's room"""
        setlist_id = (data or {}).get("setlist_id")
        if setlist_id:
            leave_room(setlist_room(setlist_id))
            logger.info(f"[UNSUBSCRIBE] sid {request.sid} left setlist {setlist_id}")
        return {"ok": True}


def broadcast_vote(result, user_id, user_display_name=None):
    """Push the new count and the vote activity to the setlist's room"""
    if socketio is None:
        logger.warning("Socket.IO not initialized, skipping vote broadcast")
        return

    room = setlist_room(result["setlist_id"])
    socketio.emit(
        "vote_count_changed",
        {
            "setlist_id": result["setlist_id"],
            "setlist_song_id": result["setlist_song_id"],
            "votes": result["votes"],
        },
        to=room
    )
    socketio.emit(
        "vote_inserted",
        {
            "setlist_id": result["setlist_id"],
            "setlist_song_id": result["setlist_song_id"],
            "user_id": user_id,
            "user_display_name": user_display_name or "Someone",
            "song_name": result.get("song_name") or "Unknown Song",
            "votes": result["votes"],
            "created_at": result.get("created_at"),
        },
        to=room
    )
