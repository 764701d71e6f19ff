"""Data models for the chat core."""

from dataclasses import dataclass, field, replace
from datetime import datetime

DEFAULT_USER_COLOR = "#FFFFFF"


@dataclass
class Message:
    """A single parsed PRIVMSG."""

    username: str
    content: str
    channel: str  # "#login" as sent on the wire
    tags: dict[str, str]
    raw: str
    timestamp: datetime
    color: str = DEFAULT_USER_COLOR

    @property
    def room_id(self) -> str | None:
        """Numeric channel id from the room-id tag, if the server sent one."""
        return self.tags.get("room-id") or None


@dataclass
class RewardRedemption:
    """A channel point redemption carried on a PRIVMSG."""

    reward_id: str
    username: str
    raw: str
    timestamp: datetime
    user_input: str = ""


@dataclass(frozen=True)
class EmotePosition:
    """Rune index range of one emote occurrence. Both ends are inclusive."""

    start: int
    end: int


@dataclass
class EmoteInfo:
    """An emote from any catalog, optionally bound to positions in one message."""

    id: str
    name: str  # Text code (e.g., "KEKW")
    url: str
    provider: str  # "twitch", "7tv", "bttv", "ffz"
    file_path: str | None = None
    image_url: str | None = None
    positions: list[EmotePosition] = field(default_factory=list)

    def at(self, start: int, end: int, name: str | None = None) -> "EmoteInfo":
        """Return a copy placed at a single occurrence."""
        return replace(
            self,
            name=self.name if name is None else name,
            positions=[EmotePosition(start, end)],
        )


@dataclass
class AnnotatedMessage:
    """A message after emote resolution and keyword filtering."""

    message: Message
    emotes: list[EmoteInfo] = field(default_factory=list)
    highlighted: bool = False

    @property
    def channel(self) -> str:
        return self.message.channel
