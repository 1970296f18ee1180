"""Presence, membership and history-replay service for multi-room chat."""

__version__ = "0.1.0"
