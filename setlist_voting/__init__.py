"""
Setlist Voting: vote on the songs you want to hear at a show, with live results.
"""

__version__ = "0.1.0"
