"""
Setlist Voting - Flask application.
Wires configuration, database, HTTP routes and the Socket.IO push channel.
"""

import os
import logging
from flask import Flask, jsonify

from setlist_voting.models.models import init_db
from setlist_voting.routes.session import session_bp
from setlist_voting.routes.setlists import setlists_bp
from setlist_voting.routes.votes import votes_bp
from setlist_voting.utils import config
from setlist_voting.websockets.handlers import init_socketio

logger = logging.getLogger(__name__)


def create_app(testing=False):
    """Build the Flask app; returns (app, socketio)"""
    config.configure_logging()

    app = Flask(__name__)
    app.config["TESTING"] = testing

    app.cache = config.init_app(app)

    init_db()

    app.register_blueprint(session_bp, url_prefix="/api/session")
    app.register_blueprint(setlists_bp, url_prefix="/api/setlists")
    app.register_blueprint(votes_bp, url_prefix="/api/votes")

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"})

    socketio = init_socketio(app)
    app.socketio = socketio

    logger.info("Setlist Voting app initialized")
    return app, socketio


# Run the Flask app
if __name__ == "__main__":
    app, socketio = create_app()
    port = int(os.environ.get("PORT", 5000))
    socketio.run(app, host="0.0.0.0", port=port, debug=False, allow_unsafe_werkzeug=True)
