"""
Show, song and setlist models for Setlist Voting.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from .database_config import Base


def new_id():
    return str(uuid.uuid4())


class Show(Base):
    __tablename__ = "shows"

    id = Column(String(36), primary_key=True, default=new_id)
    artist_name = Column(String(255), nullable=False)
    venue_name = Column(String(255), nullable=True)
    show_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<Show {self.artist_name} @ {self.venue_name}>"


class Song(Base):
    __tablename__ = "songs"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    artist_name = Column(String(255), nullable=False)
    album = Column(String(255), nullable=True)
    spotify_url = Column(String(255), nullable=True)

    def __repr__(self):
        return f"<Song {self.name}>"


class Setlist(Base):
    __tablename__ = "setlists"

    id = Column(String(36), primary_key=True, default=new_id)
    show_id = Column(String(36), ForeignKey("shows.id"), nullable=False, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    show = relationship("Show", backref="setlists")

    def __repr__(self):
        return f"<Setlist for show {self.show_id}>"


class SetlistSong(Base):
    __tablename__ = "setlist_songs"
    __table_args__ = (
        UniqueConstraint("setlist_id", "song_id", name="uq_setlist_song"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    setlist_id = Column(String(36), ForeignKey("setlists.id"), nullable=False, index=True)
    song_id = Column(String(36), ForeignKey("songs.id"), nullable=False)
    position = Column(Integer, nullable=False)  # 1-based, contiguous within a setlist
    vote_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    setlist = relationship("Setlist", backref="slots")
    song = relationship("Song")

    def to_dict(self):
        return {
            "id": self.id,
            "setlist_id": self.setlist_id,
            "position": self.position,
            "votes": self.vote_count or 0,
            "song": {
                "id": self.song.id,
                "name": self.song.name,
                "artist_name": self.song.artist_name,
                "album": self.song.album,
                "spotify_url": self.song.spotify_url,
            },
        }

    def __repr__(self):
        return f"<SetlistSong #{self.position} ({self.vote_count} votes)>"
