"""
Configuration module for Setlist Voting.
Handles app configuration, session storage, cache and rate limit initialization.
"""

import os
import logging
import tempfile
from datetime import timedelta
from urllib.parse import urlparse

import redis
from flask_session import Session
from flask_caching import Cache
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

# Voting policy, fixed
DAILY_VOTE_LIMIT = 50
SHOW_VOTE_LIMIT = 10

# Per-user submission throttle
VOTE_RATE_LIMIT = int(os.getenv("VOTE_RATE_LIMIT", "5"))
VOTE_RATE_WINDOW = int(os.getenv("VOTE_RATE_WINDOW", "60"))


def configure_logging():
    """Configure root logging once for the server process"""
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
    )


def get_redis_url():
    """Get Redis URL with proper SSL configuration for Heroku"""
    redis_url = os.getenv("REDIS_URL")

    if redis_url and redis_url.startswith("rediss://"):
        return redis_url + "?ssl_cert_reqs=none"
    return redis_url


def create_manual_redis_client():
    """Create a Redis client from REDIS_URL, or None when Redis is not configured or unreachable"""
    redis_url = os.getenv("REDIS_URL")
    if not redis_url:
        logger.info("No REDIS_URL found, Redis disabled")
        return None

    try:
        parsed = urlparse(redis_url)
        client = redis.Redis(
            host=parsed.hostname,
            port=parsed.port or 6379,
            password=parsed.password,
            ssl=parsed.scheme == 'rediss',
            ssl_cert_reqs=None,
            decode_responses=True,
            socket_connect_timeout=3,
            socket_timeout=3,
            retry_on_timeout=False
        )

        client.ping()
        logger.info(f"Manual Redis client connected successfully to {parsed.hostname}:{parsed.port}")
        return client

    except Exception as e:
        logger.warning(f"Manual Redis connection failed: {e}")
        return None


class ManualRedisCache:
    """Manual Redis cache wrapper with fallback to Flask-Caching"""

    def __init__(self, flask_cache, manual_client=None):
        self.flask_cache = flask_cache
        self.manual_client = manual_client
        self.use_manual = self.manual_client is not None

        if self.use_manual:
            logger.info("Using manual Redis client for caching")
        else:
            logger.info("Falling back to Flask-Caching")

    def get(self, key):
        if self.use_manual:
            try:
                return self.manual_client.get(key)
            except Exception as e:
                logger.warning(f"Manual Redis get failed for key: {key} - {e}, falling back to Flask-Caching")
        return self.flask_cache.get(key)

    def set(self, key, value, timeout=None):
        if self.use_manual:
            try:
                if timeout:
                    return self.manual_client.setex(key, timeout, value)
                return self.manual_client.set(key, value)
            except Exception as e:
                logger.warning(f"Manual Redis set failed for key: {key} - {e}, falling back to Flask-Caching")
        return self.flask_cache.set(key, value, timeout=timeout)

    def delete(self, key):
        if self.use_manual:
            try:
                return self.manual_client.delete(key)
            except Exception as e:
                logger.warning(f"Manual Redis delete failed for key: {key} - {e}, falling back to Flask-Caching")
        return self.flask_cache.delete(key)

    def incr(self, key, timeout):
        """Increment a counter that expires `timeout` seconds after its first hit"""
        if self.use_manual:
            try:
                count = self.manual_client.incr(key)
                if count == 1:
                    self.manual_client.expire(key, timeout)
                return count
            except Exception as e:
                logger.warning(f"Manual Redis incr failed for key: {key} - {e}, falling back to Flask-Caching")

        if self.flask_cache.add(key, 1, timeout=timeout):
            return 1
        count = (self.flask_cache.get(key) or 0) + 1
        self.flask_cache.set(key, count, timeout=timeout)
        return count


def configure_session_storage(app, manual_redis=None):
    """Configure server-side session storage, Redis in production when available"""
    app.config["SESSION_PERMANENT"] = True
    app.config["SESSION_USE_SIGNER"] = True
    app.config["SESSION_KEY_PREFIX"] = "setlist_voting:"
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(days=7)

    if os.getenv("FLASK_ENV") == "production" and manual_redis is not None:
        app.config["SESSION_TYPE"] = "redis"
        app.config["SESSION_REDIS"] = manual_redis
        app.config["SESSION_COOKIE_SECURE"] = True
        logger.info("Using Redis for session storage (production)")
        return True

    app.config["SESSION_TYPE"] = "filesystem"
    app.config["SESSION_FILE_DIR"] = os.getenv(
        "SESSION_FILE_DIR",
        tempfile.mkdtemp(prefix='setlist_voting_sessions_')
    )
    logger.info("Using filesystem for session storage")
    return False


def init_app(app):
    """Initialize Flask app with configuration and return cache instance"""

    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "your-secret-key-change-in-production")
    app.config.setdefault("VOTE_RATE_LIMIT", VOTE_RATE_LIMIT)
    app.config.setdefault("VOTE_RATE_WINDOW", VOTE_RATE_WINDOW)

    manual_redis = None if app.config.get("TESTING") else create_manual_redis_client()

    configure_session_storage(app, manual_redis)
    Session(app)

    if manual_redis is not None:
        app.config["CACHE_TYPE"] = "RedisCache"
        app.config["CACHE_REDIS_URL"] = get_redis_url()
    else:
        app.config["CACHE_TYPE"] = "SimpleCache"
    app.config["CACHE_DEFAULT_TIMEOUT"] = 300

    flask_cache = Cache(app)
    cache = ManualRedisCache(flask_cache, manual_redis)

    logger.info("Configuration and caching initialized successfully")
    return cache
