"""Payloads carried by the supervisor's signals.

Every signal emits exactly one of these frozen dataclasses, so a consumer can
dispatch on the payload type instead of probing loosely-typed dictionaries.
"""

from dataclasses import dataclass, field

from .models import AnnotatedMessage, RewardRedemption


@dataclass(frozen=True)
class ChatEvent:
    """Base payload; ``channel`` is the bare lowercase login."""

    channel: str


@dataclass(frozen=True)
class ChannelConnected(ChatEvent):
    pass


@dataclass(frozen=True)
class ChannelConnectFailed(ChatEvent):
    error: str


@dataclass(frozen=True)
class MessageReceived(ChatEvent):
    message: AnnotatedMessage


@dataclass(frozen=True)
class ChannelHighlighted(ChatEvent):
    message: AnnotatedMessage


@dataclass(frozen=True)
class RewardReceived(ChatEvent):
    reward: RewardRedemption


@dataclass(frozen=True)
class ConnectionLost(ChatEvent):
    error: str


@dataclass(frozen=True)
class LiveStatusChanged(ChatEvent):
    is_live: bool


@dataclass(frozen=True)
class ViewerCountUpdated(ChatEvent):
    viewers: int


@dataclass(frozen=True)
class FocusChanged(ChatEvent):
    pass


@dataclass(frozen=True)
class ActiveChannelLost(ChatEvent):
    pass


@dataclass(frozen=True)
class HistoryReplayed(ChatEvent):
    messages: list[AnnotatedMessage] = field(default_factory=list)


@dataclass(frozen=True)
class ChannelDisconnected(ChatEvent):
    pass


@dataclass(frozen=True)
class ChannelAdded(ChatEvent):
    pass


@dataclass(frozen=True)
class ChannelRemoved(ChatEvent):
    pass


@dataclass(frozen=True)
class AllChannelsDisconnected:
    channels: list[str] = field(default_factory=list)
