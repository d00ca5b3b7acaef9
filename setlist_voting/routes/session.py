"""
Session routes for Setlist Voting.
Handles registration, login, anonymous voters and logout.
"""

import re
import logging
from flask import Blueprint, request, session, jsonify
from sqlalchemy import or_

from setlist_voting.identity import is_valid_anonymous_id
from setlist_voting.models.models import get_db, User

logger = logging.getLogger(__name__)

session_bp = Blueprint('session', __name__)


def is_valid_email(email):
    """Validate email format"""
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return re.match(pattern, email) is not None


def is_valid_username(username):
    """Validate username format"""
    # 3-20 characters, alphanumeric and underscores only
    pattern = r'^[a-zA-Z0-9_]{3,20}$'
    return re.match(pattern, username) is not None


def start_session(user_id, display_name, authenticated):
    session.clear()
    session.permanent = True
    session['user_id'] = user_id
    session['display_name'] = display_name
    session['authenticated'] = authenticated


@session_bp.route("/register", methods=["POST"])
def register():
    """User registration"""
    try:
        data = request.get_json(silent=True) or {}
        username = data.get('username', '').strip()
        email = data.get('email', '').strip().lower()
        password = data.get('password', '')

        if not is_valid_username(username):
            return jsonify({"error": "Username must be 3-20 characters, letters, numbers, and underscores only"}), 400
        if not is_valid_email(email):
            return jsonify({"error": "Invalid email address"}), 400
        if len(password) < 6:
            return jsonify({"error": "Password must be at least 6 characters"}), 400

        with get_db() as db:
            taken = db.query(User).filter(or_(User.username == username, User.email == email)).first()
            if taken:
                return jsonify({"error": "Username or email already registered"}), 409

            user = User(username=username, email=email, display_name=data.get('display_name') or username)
            user.set_password(password)
            db.add(user)
            db.flush()

            start_session(user.id, user.display_name, True)
            logger.info(f"Registered user {username}")
            return jsonify({"message": "Account created", "user_id": user.id, "username": username}), 201

    except Exception as e:
        logger.error(f"Registration error: {e}")
        return jsonify({"error": "Registration failed. Please try again."}), 500


@session_bp.route("/login", methods=["POST"])
def login():
    """User login by username or email"""
    try:
        data = request.get_json(silent=True) or {}
        username_or_email = data.get('username', '').strip()
        password = data.get('password', '')

        if not username_or_email or not password:
            return jsonify({"error": "Username/email and password are required"}), 400

        with get_db() as db:
            if '@' in username_or_email:
                user = db.query(User).filter(User.email == username_or_email.lower()).first()
            else:
                user = db.query(User).filter(User.username == username_or_email).first()

            if not user or not user.check_password(password):
                return jsonify({"error": "Invalid username/email or password"}), 401

            start_session(user.id, user.display_name or user.username, True)
            return jsonify({
                "message": "Login successful",
                "user_id": user.id,
                "username": user.username
            }), 200

    except Exception as e:
        logger.error(f"Login error: {e}")
        return jsonify({"error": "Login failed. Please try again."}), 500


@session_bp.route("/guest", methods=["POST"])
def guest():
    """Adopt a client-generated anonymous id as this session's voter"""
    data = request.get_json(silent=True) or {}
    anonymous_id = data.get('anonymous_id', '')

    if not is_valid_anonymous_id(anonymous_id):
        return jsonify({"error": "Invalid anonymous id"}), 400

    start_session(anonymous_id, "Anonymous Fan", False)
    return jsonify({"message": "Voting anonymously", "user_id": anonymous_id}), 200


@session_bp.route("/logout", methods=["POST"])
def logout():
    """User logout"""
    session.clear()
    return jsonify({"message": "Logged out successfully"}), 200


@session_bp.route("/check-auth")
def check_auth():
    """Report the current voter identity"""
    if session.get('user_id'):
        return jsonify({
            "authenticated": bool(session.get('authenticated')),
            "user_id": session.get('user_id'),
            "display_name": session.get('display_name')
        }), 200
    return jsonify({"authenticated": False, "user_id": None}), 200
