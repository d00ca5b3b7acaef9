"""
Database models for Setlist Voting
"""

from .models import *
