"""
Vote model for Setlist Voting.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from .database_config import Base


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("user_id", "setlist_song_id", name="uq_user_setlist_song_vote"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    setlist_song_id = Column(String(36), ForeignKey("setlist_songs.id"), nullable=False, index=True)
    show_id = Column(String(36), ForeignKey("shows.id"), nullable=False, index=True)
    user_id = Column(String(80), nullable=False, index=True)  # account id or anon_ id
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True)

    def __repr__(self):
        return f"<Vote {self.user_id} for {self.setlist_song_id}>"
