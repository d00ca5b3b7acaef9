import os
import pytest

# Set test environment before importing app
os.environ['DATABASE_URL'] = 'sqlite:///:memory:'
os.environ['SECRET_KEY'] = 'test-secret'
os.environ.pop('REDIS_URL', None)

from app import create_app
from setlist_voting.models.models import Base, engine, get_db, Show, Song


@pytest.fixture(scope="session")
def app_and_socketio():
    return create_app(testing=True)


@pytest.fixture
def app(app_and_socketio):
    app, _ = app_and_socketio
    Base.metadata.create_all(engine)
    app.cache.flask_cache.clear()
    yield app
    Base.metadata.drop_all(engine)


@pytest.fixture
def socketio(app_and_socketio):
    return app_and_socketio[1]


@pytest.fixture
def client(app):
    """Create a test client"""
    with app.test_client() as client:
        yield client


@pytest.fixture
def database():
    """Empty tables for tests that only use the ledger"""
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


def make_show(song_names=("Intro", "Hit Single", "Deep Cut"), artist="The Testers"):
    """Create a show and its songs; returns (show_id, [song_id, ...])"""
    with get_db() as db:
        show = Show(artist_name=artist, venue_name="Test Hall")
        db.add(show)
        songs = [Song(name=name, artist_name=artist) for name in song_names]
        db.add_all(songs)
        db.flush()
        return show.id, [song.id for song in songs]


@pytest.fixture
def show_with_setlist(database):
    """A show with a three song setlist; returns (show_id, setlist dict)"""
    from setlist_voting.services import ledger

    show_id, song_ids = make_show()
    return show_id, ledger.initialize_setlist(show_id, song_ids)
