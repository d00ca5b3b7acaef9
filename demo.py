#!/usr/bin/env python3
"""
Setlist Voting - Interactive Demo Script
Seeds a show into the configured database and walks two fans through voting,
including the limits and the duplicate-vote protection.

    python demo.py                      # in-process, against DATABASE_URL
    python demo.py <show_id> <setlist_id>   # against a running server (SETLIST_VOTING_URL)
"""

import sys
import time

from setlist_voting.client import VotingSession, LocalLedgerClient, open_http_session
from setlist_voting.models.models import init_db, get_db, Show, Song
from setlist_voting.services import ledger

DEMO_SONGS = [
    "Opening Number", "Fan Favourite", "Deep Cut", "New Single", "Acoustic Break",
    "Cover Song", "B-Side", "Slow Jam", "Sing-Along", "Big Closer", "Encore",
]


def seed_show():
    """Create a demo show with an eleven song setlist; returns (show_id, setlist)"""
    with get_db() as db:
        show = Show(artist_name="The Demo Band", venue_name="Example Arena")
        db.add(show)
        songs = [Song(name=name, artist_name="The Demo Band") for name in DEMO_SONGS]
        db.add_all(songs)
        db.flush()
        show_id, song_ids = show.id, [song.id for song in songs]

    return show_id, ledger.initialize_setlist(show_id, song_ids)


def print_setlist(session, setlist):
    for slot in setlist["songs"]:
        mark = "✅" if session.has_user_voted(slot["id"]) else "  "
        print(f"  {mark} {slot['position']:2}. {slot['song']['name']:<16} {session.get_vote_count(slot['id'])} votes")


def run_local_demo():
    print("🎵 Setlist Voting - Local Demo")
    print("=" * 50)
    init_db()
    show_id, setlist = seed_show()
    slots = [slot["id"] for slot in setlist["songs"]]
    print(f"🎤 Created show {show_id} with {len(slots)} songs")

    alice = VotingSession(LocalLedgerClient("demo-alice", "Alice"), show_id, setlist["id"]).start()
    bob = VotingSession(LocalLedgerClient("demo-bob", "Bob"), show_id, setlist["id"]).start()

    print("\n👤 Alice votes for every song")
    for slot_id in slots:
        result = alice.vote(slot_id)
        if not result.success:
            print(f"   ⛔ {result.message}")
    print(f"   Usage: {alice.usage}")

    print("\n👤 Bob votes for the closer twice")
    print(f"   First:  {bob.vote(slots[9])}")
    print(f"   Second: {bob.vote(slots[9])}")

    # Bob has no live feed here, so pull the latest counts
    bob.refresh_votes()
    print("\n📊 Bob's view of the setlist")
    print_setlist(bob, setlist)


def run_server_demo(show_id, setlist_id):
    print("🎵 Setlist Voting - Live Demo")
    print("=" * 50)

    def on_activity(activity):
        print(f"   🔔 {activity.user_display_name} voted for {activity.song_name} ({activity.votes})")

    def on_state_change(state, error):
        print(f"   📡 Live updates: {state}{' (' + error + ')' if error else ''}")

    session = open_http_session(None, show_id, setlist_id, on_activity=on_activity, on_state_change=on_state_change)
    try:
        print(f"Connected: {session.is_connected}, usage: {session.usage}")
        print("Watching for votes for 30 seconds...")
        time.sleep(30)
    finally:
        session.close()


def main():
    if len(sys.argv) == 3:
        run_server_demo(sys.argv[1], sys.argv[2])
    else:
        run_local_demo()


if __name__ == "__main__":
    main()
