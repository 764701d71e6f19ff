"""Multichat - read-only multi-channel Twitch chat client core."""

__version__ = "0.1.0"
