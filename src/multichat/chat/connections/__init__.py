"""Chat connections."""

from .base import BaseChatConnection, ChannelClosed, ConnectionState, DeliveryChannel
from .twitch import TwitchChatConnection

__all__ = [
    "BaseChatConnection",
    "ChannelClosed",
    "ConnectionState",
    "DeliveryChannel",
    "TwitchChatConnection",
]
