"""Conversation identity, message ordering and live feed for a small chat app."""

__version__ = "0.1.0"
