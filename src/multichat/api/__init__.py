"""HTTP API clients."""

from .twitch import StreamStatus, TwitchStatusClient

__all__ = ["StreamStatus", "TwitchStatusClient"]
