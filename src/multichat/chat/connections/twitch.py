"""Twitch IRC chat connection over plain TCP."""

import asyncio
import logging
import random
from datetime import datetime

from ...errors import ChannelConnectError
from ..models import DEFAULT_USER_COLOR, Message, RewardRedemption
from .base import DEFAULT_BUFFER_SIZE, BaseChatConnection

logger = logging.getLogger(__name__)

TWITCH_IRC_HOST = "irc.chat.twitch.tv"
TWITCH_IRC_PORT = 6667
CONNECT_TIMEOUT = 10.0  # seconds

# IRC capabilities to request
IRC_CAPS = [
    "twitch.tv/tags",
    "twitch.tv/commands",
]

PING_LINE = "PING :tmi.twitch.tv"
PONG_LINE = "PONG :tmi.twitch.tv"
PRIVMSG_MARKER = " PRIVMSG "
REWARD_MARKER = "custom-reward-id="

# Twitch's fallback palette for users who never picked a color
DEFAULT_COLORS = [
    "#FF0000", "#0000FF", "#00FF00", "#B22222", "#FF7F50",
    "#9ACD32", "#FF4500", "#2E8B57", "#DAA520", "#D2691E",
    "#5F9EA0", "#1E90FF", "#FF69B4", "#8A2BE2", "#00FF7F",
]  # fmt: skip

_INT64_MASK = (1 << 64) - 1
_INT64_SIGN = 1 << 63


def parse_irc_tags(line: str) -> dict[str, str]:
    """Parse the tag block at the start of a raw line.

    The block runs from after the leading '@' to the first space. Each
    ``key=value`` entry is split on the first '='; entries without one are
    dropped.
    """
    tags: dict[str, str] = {}
    if not line.startswith("@"):
        return tags

    end = line.find(" ", 1)
    if end < 0:
        return tags

    for entry in line[1:end].split(";"):
        key, sep, value = entry.partition("=")
        if sep and key:
            tags[key] = value

    return tags


def parse_prefix_nick(line: str) -> str:
    """Return the nick from an IRC ``:nick!user@host`` prefix, or ''."""
    rest = line
    if rest.startswith("@"):
        space = rest.find(" ")
        if space < 0:
            return ""
        rest = rest[space + 1 :]
    if not rest.startswith(":"):
        return ""
    bang = rest.find("!")
    space = rest.find(" ")
    if bang < 0 or (0 <= space < bang):
        return ""
    return rest[1:bang]


def lighten_if_dark(hex_color: str) -> str | None:
    """Blend a dark ``#RRGGBB`` color 40% toward white.

    Returns the color re-encoded as upper-case ``#RRGGBB``, or None if the
    input is not a 6-digit hex color.
    """
    value = hex_color[1:] if hex_color.startswith("#") else hex_color
    if len(value) != 6:
        return None
    try:
        r, g, b = (int(value[i : i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        return None

    if 0.299 * r + 0.587 * g + 0.114 * b < 128:
        r += int((255 - r) * 0.4)
        g += int((255 - g) * 0.4)
        b += int((255 - b) * 0.4)

    return f"#{r:02X}{g:02X}{b:02X}"


def default_color_for(username: str) -> str:
    """Pick a palette color from a hash of the lower-cased username.

    The rolling hash wraps like a signed 64-bit integer.
    """
    h = 0
    for char in username.lower():
        h = ((h << 5) - h + ord(char)) & _INT64_MASK
    if h & _INT64_SIGN:
        h -= 1 << 64
    return DEFAULT_COLORS[abs(h) % len(DEFAULT_COLORS)]


def resolve_user_color(tags: dict[str, str], username: str) -> str:
    """Resolve the display color for a message author.

    - color tag absent: white
    - color tag empty: palette color derived from the username
    - color tag set: the color, lightened if it is too dark to read
    """
    if "color" not in tags:
        return DEFAULT_USER_COLOR
    color = tags["color"]
    if color:
        lightened = lighten_if_dark(color)
        if lightened:
            return lightened
    return default_color_for(username)


def parse_privmsg(line: str, received_at: datetime | None = None) -> Message | None:
    """Parse a raw PRIVMSG line into a Message.

    Returns None for lines that are not well-formed PRIVMSGs.
    """
    privmsg_idx = line.find(PRIVMSG_MARKER)
    if privmsg_idx < 0:
        return None

    channel_start = privmsg_idx + len(PRIVMSG_MARKER)
    channel_end = line.find(" :", channel_start)
    if channel_end < 0:
        return None

    tags = parse_irc_tags(line)
    username = tags.get("display-name", "") or parse_prefix_nick(line)

    return Message(
        username=username,
        content=line[channel_end + 2 :],
        channel=line[channel_start:channel_end],
        tags=tags,
        raw=line,
        timestamp=received_at or datetime.now(),
        color=resolve_user_color(tags, username),
    )


def parse_reward_redemption(
    line: str, received_at: datetime | None = None
) -> RewardRedemption | None:
    """Parse a channel point redemption from a PRIVMSG carrying custom-reward-id.

    Uses the same tag-block rule as parse_privmsg. The user input is the text
    after the first " :" following the PRIVMSG marker and may be empty.
    """
    tags = parse_irc_tags(line)
    reward_id = tags.get("custom-reward-id", "")
    if not reward_id:
        return None

    user_input = ""
    privmsg_idx = line.find(PRIVMSG_MARKER)
    if privmsg_idx >= 0:
        input_idx = line.find(" :", privmsg_idx)
        if input_idx >= 0:
            user_input = line[input_idx + 2 :]

    return RewardRedemption(
        reward_id=reward_id,
        username=tags.get("display-name", ""),
        raw=line,
        timestamp=received_at or datetime.now(),
        user_input=user_input,
    )


class TwitchChatConnection(BaseChatConnection):
    """Anonymous, read-only Twitch IRC connection for one channel."""

    def __init__(
        self,
        channel: str,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        host: str = TWITCH_IRC_HOST,
        port: int = TWITCH_IRC_PORT,
        connect_timeout: float = CONNECT_TIMEOUT,
    ):
        super().__init__(channel, buffer_size)
        self._host = host
        self._port = port
        self._connect_timeout = connect_timeout
        self._nick = ""
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None

    @property
    def nick(self) -> str:
        return self._nick

    async def connect(self) -> None:
        """Dial the IRC server, identify anonymously and join the channel."""
        if self.is_stopped:
            raise ChannelConnectError(self.login, "connection already stopped")

        self._nick = f"justinfan{random.randint(1000, 9998)}"
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self._host, self._port),
                timeout=self._connect_timeout,
            )
            logger.info(f"Twitch IRC: connecting as {self._nick} to {self.channel}")
            await self._send_line(f"NICK {self._nick}")
            await self._send_line(f"JOIN {self.channel}")
            await self._send_line(f"CAP REQ :{' '.join(IRC_CAPS)}")
        except (OSError, asyncio.TimeoutError) as e:
            await self._close_transport()
            raise ChannelConnectError(self.login, str(e) or type(e).__name__) from e

        self._set_connected()

    async def _send_line(self, line: str) -> None:
        if self._writer is None:
            raise ConnectionError("socket is closed")
        self._writer.write(f"{line}\r\n".encode())
        await self._writer.drain()

    async def _read_loop(self) -> None:
        reader = self._reader
        if reader is None:
            return

        while not self._stop_event.is_set():
            try:
                raw = await reader.readline()
            except (OSError, ValueError) as e:
                self._on_read_failure(e)
                return

            if not raw:
                self._on_read_failure(ConnectionError("connection closed by server"))
                return

            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if not line:
                continue
            try:
                await self._handle_line(line)
            except OSError as e:
                self._on_read_failure(e)
                return

    def _on_read_failure(self, error: Exception) -> None:
        if self.is_stopped:
            return
        logger.warning(f"Twitch IRC read failed for {self.channel}: {error}")
        self._deliver_error(error)

    async def _handle_line(self, line: str) -> None:
        """Dispatch one line from the server."""
        if line == PING_LINE:
            logger.debug(f"Got PING, sending PONG for {self.channel}")
            await self._send_line(PONG_LINE)
            return

        if REWARD_MARKER in line:
            reward = parse_reward_redemption(line)
            if reward:
                self._deliver_reward(reward)

        if PRIVMSG_MARKER in line:
            message = parse_privmsg(line)
            if message:
                self._history.add(message)
                self._deliver_message(message)

    async def _close_transport(self) -> None:
        writer = self._writer
        self._writer = None
        if writer is None:
            return
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error closing socket for {self.channel}: {e!r}")
