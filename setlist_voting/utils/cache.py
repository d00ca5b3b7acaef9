"""
Caching helpers for Setlist Voting.
Vote count snapshots per setlist and the per-user vote rate limit counters.
"""

import json
import logging
from flask import current_app

from setlist_voting.errors import RateLimitedError

logger = logging.getLogger(__name__)

SNAPSHOT_TIMEOUT = 30
SNAPSHOT_VERSION_TIMEOUT = 3600


def _get_cache(app=None):
    if app is not None:
        return getattr(app, 'cache', None)
    return getattr(current_app, 'cache', None)


def snapshot_key(setlist_id):
    return f"setlist_votes:{setlist_id}"


def snapshot_version_key(setlist_id):
    return f"setlist_votes_version:{setlist_id}"


def get_snapshot_version(setlist_id, app=None):
    """Bumped by every invalidation; a reader compares it before writing a snapshot back"""
    cache = _get_cache(app)
    if not cache:
        return 0

    try:
        return int(cache.get(snapshot_version_key(setlist_id)) or 0)
    except Exception as e:
        logger.warning(f"Failed to read snapshot version for {setlist_id}: {e}")
        return None


def get_vote_counts_snapshot(setlist_id, app=None):
    """Get cached {setlist_song_id: votes} for a setlist, or None"""
    cache = _get_cache(app)
    if not cache:
        return None

    try:
        cached_data = cache.get(snapshot_key(setlist_id))
        if cached_data:
            if isinstance(cached_data, str):
                cached_data = json.loads(cached_data)
            return cached_data
    except Exception as e:
        logger.warning(f"Failed to get vote counts snapshot for {setlist_id}: {e}")

    return None


def set_vote_counts_snapshot(setlist_id, counts, app=None, version=0):
    """Cache counts read at `version`; skipped when a vote invalidated the snapshot since"""
    cache = _get_cache(app)
    if not cache:
        return False

    if version is None or get_snapshot_version(setlist_id, app) != version:
        logger.debug(f"Vote counts for {setlist_id} changed during read, not caching")
        return False

    try:
        cache.set(snapshot_key(setlist_id), json.dumps(counts), timeout=SNAPSHOT_TIMEOUT)
        return True
    except Exception as e:
        logger.warning(f"Failed to cache vote counts snapshot for {setlist_id}: {e}")
        return False


def invalidate_vote_counts_snapshot(setlist_id, app=None):
    cache = _get_cache(app)
    if not cache:
        return False

    try:
        cache.incr(snapshot_version_key(setlist_id), SNAPSHOT_VERSION_TIMEOUT)
        cache.delete(snapshot_key(setlist_id))
        return True
    except Exception as e:
        logger.warning(f"Failed to clear vote counts snapshot for {setlist_id}: {e}")
        return False


def check_vote_rate_limit(user_id, app=None):
    """Count one vote attempt for the user; raise RateLimitedError past the limit"""
    app = app or current_app
    cache = _get_cache(app)
    if not cache:
        return 0

    limit = app.config.get("VOTE_RATE_LIMIT", 5)
    window = app.config.get("VOTE_RATE_WINDOW", 60)

    attempts = cache.incr(f"ratelimit:vote:{user_id}", window)
    if attempts > limit:
        logger.info(f"Vote rate limit hit for {user_id} ({attempts} attempts in {window}s)")
        raise RateLimitedError()
    return attempts
