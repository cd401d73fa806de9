"""Scoreboard domain services: scoring, reveal state and display broadcast.

This package contains pure(ish) domain logic that should be imported by
HTTP routes and socket handlers, keeping transport concerns separated
from the scoring and reveal mechanics.
"""
