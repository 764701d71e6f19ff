"""Multi-channel Twitch chat core."""

from .manager import ChatSupervisor, ConnectAllResult
from .models import AnnotatedMessage, EmoteInfo, EmotePosition, Message, RewardRedemption

__all__ = [
    "AnnotatedMessage",
    "ChatSupervisor",
    "ConnectAllResult",
    "EmoteInfo",
    "EmotePosition",
    "Message",
    "RewardRedemption",
]
