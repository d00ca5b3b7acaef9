"""
Consolidated models import for Setlist Voting.
"""

# Import database configuration
from .database_config import Base, engine, SessionLocal, init_db, get_db

# Import all models
from .user_models import User
from .setlist_models import Show, Song, Setlist, SetlistSong
from .vote_models import Vote

__all__ = [
    'Base', 'engine', 'SessionLocal', 'init_db', 'get_db',
    'User', 'Show', 'Song', 'Setlist', 'SetlistSong', 'Vote'
]
