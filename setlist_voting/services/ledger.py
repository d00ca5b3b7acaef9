"""
Vote ledger for Setlist Voting.

The authoritative side of voting: one Vote row per (user, setlist song),
the denormalized vote_count on each setlist song, and the quota counts
derived from a user's Vote rows. Every operation runs in a single
database transaction through get_db().
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from setlist_voting.errors import (
    UnauthenticatedError,
    AlreadyVotedError,
    ShowQuotaExceededError,
    DailyQuotaExceededError,
    SetlistNotFoundError,
    SetlistSongNotFoundError,
    NotFoundError,
    DuplicateSongError,
    InvalidRequestError,
)
from setlist_voting.models.models import get_db, Show, Song, Setlist, SetlistSong, Vote
from setlist_voting.utils.config import DAILY_VOTE_LIMIT, SHOW_VOTE_LIMIT

logger = logging.getLogger(__name__)


def day_window(now=None):
    """Start and end of the UTC calendar day containing `now`"""
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def empty_vote_state(authenticated=False):
    return {
        "authenticated": authenticated,
        "voted_song_ids": [],
        "daily_votes_used": 0,
        "daily_votes_remaining": DAILY_VOTE_LIMIT,
        "show_votes_used": 0,
        "show_votes_remaining": SHOW_VOTE_LIMIT,
    }


def _usage(daily_used, show_used):
    return {
        "daily_votes_used": daily_used,
        "daily_votes_remaining": max(0, DAILY_VOTE_LIMIT - daily_used),
        "show_votes_used": show_used,
        "show_votes_remaining": max(0, SHOW_VOTE_LIMIT - show_used),
    }


def _count_usage(db, user_id, show_id, now=None):
    start, end = day_window(now)
    daily_used = db.query(func.count(Vote.id)).filter(
        Vote.user_id == user_id,
        Vote.created_at >= start,
        Vote.created_at < end
    ).scalar() or 0
    show_used = db.query(func.count(Vote.id)).filter(
        Vote.user_id == user_id,
        Vote.show_id == show_id
    ).scalar() or 0
    return daily_used, show_used


def read_vote_counts(setlist_id):
    """Current {setlist_song_id: votes} for every song in a setlist"""
    with get_db() as db:
        if db.get(Setlist, setlist_id) is None:
            raise SetlistNotFoundError()

        rows = db.query(SetlistSong.id, SetlistSong.vote_count).filter(
            SetlistSong.setlist_id == setlist_id
        ).all()
        return {slot_id: votes or 0 for slot_id, votes in rows}


def read_user_vote_state(user_id, show_id, now=None):
    """The user's voted setlist songs for a show plus daily and per-show quota usage"""
    if not user_id:
        return empty_vote_state()

    with get_db() as db:
        voted = db.query(Vote.setlist_song_id).filter(
            Vote.user_id == user_id,
            Vote.show_id == show_id
        ).all()
        daily_used, show_used = _count_usage(db, user_id, show_id, now)

        state = {"authenticated": True, "voted_song_ids": sorted(row[0] for row in voted)}
        state.update(_usage(daily_used, show_used))
        return state


def submit_vote(user_id, setlist_song_id, now=None):
    """
    Insert one vote and increment the song's counter atomically.

    Raises AlreadyVotedError, ShowQuotaExceededError, DailyQuotaExceededError
    or SetlistSongNotFoundError without writing anything. The unique
    constraint on (user_id, setlist_song_id) is the final guard when two
    sessions of the same user race each other.
    """
    if not user_id:
        raise UnauthenticatedError()
    if not setlist_song_id:
        raise InvalidRequestError()

    with get_db() as db:
        slot = db.get(SetlistSong, setlist_song_id)
        if slot is None:
            raise SetlistSongNotFoundError()

        show_id = slot.setlist.show_id
        song_name = slot.song.name if slot.song else None

        existing = db.query(Vote.id).filter(
            Vote.user_id == user_id,
            Vote.setlist_song_id == setlist_song_id
        ).first()
        if existing:
            raise AlreadyVotedError()

        daily_used, show_used = _count_usage(db, user_id, show_id, now)
        if show_used >= SHOW_VOTE_LIMIT:
            raise ShowQuotaExceededError()
        if daily_used >= DAILY_VOTE_LIMIT:
            raise DailyQuotaExceededError()

        vote = Vote(setlist_song_id=setlist_song_id, show_id=show_id, user_id=user_id)
        if now is not None:
            vote.created_at = now
        db.add(vote)
        try:
            db.flush()
        except IntegrityError as e:
            logger.info(f"Duplicate vote rejected by constraint for {user_id} on {setlist_song_id}")
            raise AlreadyVotedError() from e

        db.query(SetlistSong).filter(SetlistSong.id == setlist_song_id).update(
            {SetlistSong.vote_count: SetlistSong.vote_count + 1},
            synchronize_session=False
        )
        new_count = db.query(SetlistSong.vote_count).filter(
            SetlistSong.id == setlist_song_id
        ).scalar()

        result = {
            "success": True,
            "vote_id": vote.id,
            "setlist_song_id": setlist_song_id,
            "setlist_id": slot.setlist_id,
            "show_id": show_id,
            "song_name": song_name,
            "votes": new_count,
            "created_at": vote.created_at.isoformat() if vote.created_at else None,
        }
        result.update(_usage(daily_used + 1, show_used + 1))

    return result


def _setlist_dict(setlist, db):
    slots = db.query(SetlistSong).filter(
        SetlistSong.setlist_id == setlist.id
    ).order_by(SetlistSong.position).all()
    return {
        "id": setlist.id,
        "show_id": setlist.show_id,
        "songs": [slot.to_dict() for slot in slots],
    }


def get_setlist(setlist_id):
    with get_db() as db:
        setlist = db.get(Setlist, setlist_id)
        if setlist is None:
            raise SetlistNotFoundError()
        return _setlist_dict(setlist, db)


def get_setlist_for_show(show_id):
    with get_db() as db:
        setlist = db.query(Setlist).filter(Setlist.show_id == show_id).first()
        if setlist is None:
            raise SetlistNotFoundError()
        return _setlist_dict(setlist, db)


def initialize_setlist(show_id, song_ids):
    """Create the show's setlist with songs at positions 1..n; an existing setlist is returned as is"""
    with get_db() as db:
        if db.get(Show, show_id) is None:
            raise NotFoundError("Show not found")

        setlist = db.query(Setlist).filter(Setlist.show_id == show_id).first()
        if setlist is not None:
            return _setlist_dict(setlist, db)

        setlist = Setlist(show_id=show_id)
        db.add(setlist)
        db.flush()

        seen = set()
        position = 0
        for song_id in song_ids:
            if song_id in seen:
                continue
            if db.get(Song, song_id) is None:
                raise NotFoundError(f"Song {song_id} not found")
            seen.add(song_id)
            position += 1
            db.add(SetlistSong(setlist_id=setlist.id, song_id=song_id, position=position, vote_count=0))
        db.flush()

        logger.info(f"Initialized setlist {setlist.id} for show {show_id} with {position} songs")
        return _setlist_dict(setlist, db)


def add_song_to_setlist(setlist_id, song_id):
    """Append a fan-suggested song at the end of the setlist"""
    with get_db() as db:
        if db.get(Setlist, setlist_id) is None:
            raise SetlistNotFoundError()
        song = db.get(Song, song_id)
        if song is None:
            raise NotFoundError("Song not found")

        already = db.query(SetlistSong.id).filter(
            SetlistSong.setlist_id == setlist_id,
            SetlistSong.song_id == song_id
        ).first()
        if already:
            raise DuplicateSongError()

        last_position = db.query(func.max(SetlistSong.position)).filter(
            SetlistSong.setlist_id == setlist_id
        ).scalar() or 0

        slot = SetlistSong(setlist_id=setlist_id, song_id=song_id, position=last_position + 1, vote_count=0)
        db.add(slot)
        try:
            db.flush()
        except IntegrityError as e:
            raise DuplicateSongError() from e

        logger.info(f"Added '{song.name}' to setlist {setlist_id} at position {slot.position}")
        return slot.to_dict()
