"""
Anonymous voter identities.

A fan who does not sign in still gets a stable pseudonymous id, stored
locally and adopted by the server session. The id only identifies the voter;
quotas are enforced by the ledger against it like any other user id.
"""

import os
import re
import json
import time
import random
import string
import logging

logger = logging.getLogger(__name__)

ANONYMOUS_ID_PATTERN = re.compile(r"^anon_[a-z0-9]{9}_\d{10,16}$")

DEFAULT_IDENTITY_PATH = os.path.join(os.path.expanduser("~"), ".setlist_voting", "identity.json")

_ALPHABET = string.ascii_lowercase + string.digits


def new_anonymous_id():
    """anon_<9 random base36 chars>_<milliseconds since epoch>"""
    suffix = "".join(random.SystemRandom().choice(_ALPHABET) for _ in range(9))
    return f"anon_{suffix}_{int(time.time() * 1000)}"


def is_valid_anonymous_id(value):
    return bool(value) and ANONYMOUS_ID_PATTERN.match(value) is not None


def load_or_create_anonymous_id(path=None):
    """Return the stored anonymous id, creating and saving one on first use"""
    path = path or os.getenv("SETLIST_VOTING_IDENTITY", DEFAULT_IDENTITY_PATH)

    try:
        with open(path) as f:
            stored = json.load(f).get("anonymous_user_id")
        if is_valid_anonymous_id(stored):
            return stored
        logger.warning(f"Ignoring malformed anonymous id in {path}")
    except FileNotFoundError:
        pass
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read identity file {path}: {e}")

    anonymous_id = new_anonymous_id()
    try:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w") as f:
            json.dump({"anonymous_user_id": anonymous_id}, f)
    except OSError as e:
        # Still usable for this process, just not stable across runs
        logger.warning(f"Could not save identity file {path}: {e}")

    return anonymous_id
