"""Chat session supervisor.

Owns the channel -> connection map and the focused channel, forwards each
connection's deliveries to Qt signals, and polls stream status.
"""

import asyncio
import logging
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field

from PySide6.QtCore import QObject, Signal

from ..core.locks import ReadWriteLock
from ..core.settings import MonitorSettings, Settings
from ..errors import ChannelConnectError, ConnectAllError, MultichatError, NotConnectedError
from .connections import BaseChatConnection, ChannelClosed, TwitchChatConnection
from .emotes import EmoteEngine
from .events import (
    ActiveChannelLost,
    AllChannelsDisconnected,
    ChannelAdded,
    ChannelConnected,
    ChannelConnectFailed,
    ChannelDisconnected,
    ChannelHighlighted,
    ChannelRemoved,
    ConnectionLost,
    FocusChanged,
    HistoryReplayed,
    LiveStatusChanged,
    MessageReceived,
    RewardReceived,
    ViewerCountUpdated,
)
from .models import AnnotatedMessage, Message, RewardRedemption

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[str, int], BaseChatConnection]


def _login(channel: str) -> str:
    return channel.strip().lstrip("#").lower()


@dataclass
class ConnectAllResult:
    """Outcome of a connect-all fan-out."""

    succeeded: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return bool(self.succeeded) or not self.failures


class _ChannelSession:
    """Supervisor-side state for one connected channel."""

    def __init__(self, channel: str, connection: BaseChatConnection, history_size: int):
        self.channel = channel
        self.connection = connection
        self.history: deque[AnnotatedMessage] = deque(maxlen=history_size)
        self.viewer_count = 0
        self.lock = threading.Lock()
        self.forward_task: asyncio.Task | None = None
        self.viewer_task: asyncio.Task | None = None
        # Set once the handshake has succeeded or failed
        self.handshake_done = asyncio.Event()


class ChatSupervisor(QObject):
    """Coordinates chat connections for a set of channels.

    Every signal carries one payload from ``multichat.chat.events``. All
    coroutines must run on the same event loop; signals are emitted from it.
    """

    channel_connected = Signal(object)  # ChannelConnected
    channel_connect_failed = Signal(object)  # ChannelConnectFailed
    message_received = Signal(object)  # MessageReceived (focused channel only)
    channel_highlighted = Signal(object)  # ChannelHighlighted (unfocused channels)
    reward_received = Signal(object)  # RewardReceived (focused channel only)
    connection_lost = Signal(object)  # ConnectionLost
    live_status_changed = Signal(object)  # LiveStatusChanged
    viewer_count_updated = Signal(object)  # ViewerCountUpdated
    focus_changed = Signal(object)  # FocusChanged
    active_channel_lost = Signal(object)  # ActiveChannelLost
    history_replayed = Signal(object)  # HistoryReplayed
    channel_disconnected = Signal(object)  # ChannelDisconnected
    all_disconnected = Signal(object)  # AllChannelsDisconnected
    channel_added = Signal(object)  # ChannelAdded
    channel_removed = Signal(object)  # ChannelRemoved

    def __init__(
        self,
        settings: Settings,
        emote_engine: EmoteEngine | None = None,
        status_client=None,
        connection_factory: ConnectionFactory | None = None,
        parent: QObject | None = None,
    ):
        super().__init__(parent)
        self._channels: list[str] = []
        for channel in settings.channels:
            login = _login(channel)
            if login and login not in self._channels:
                self._channels.append(login)
        self._filter_keywords = [k.lower() for k in settings.filter_keywords if k]
        self._buffer_size = settings.buffer_size
        self._monitor: MonitorSettings = settings.monitor

        self._emotes = emote_engine
        self._status_client = status_client
        self._connection_factory: ConnectionFactory = connection_factory or (
            lambda channel, buffer_size: TwitchChatConnection(channel, buffer_size)
        )

        # Guards the channel list, the session map, focus and live status.
        # Never held across network or disk I/O.
        self._lock = ReadWriteLock()
        self._sessions: dict[str, _ChannelSession] = {}
        self._focused: str | None = None
        self._live_status: dict[str, bool] = {}
        self._live_task: asyncio.Task | None = None

    # -- Queries --

    @property
    def channels(self) -> list[str]:
        with self._lock.read():
            return list(self._channels)

    @property
    def focused_channel(self) -> str | None:
        with self._lock.read():
            return self._focused

    @property
    def buffer_size(self) -> int:
        return self._buffer_size

    def connected_channels(self) -> list[str]:
        with self._lock.read():
            sessions = list(self._sessions.values())
        return [s.channel for s in sessions if s.connection.is_connected]

    def is_connected(self, channel: str) -> bool:
        session = self._get_session(channel)
        return session is not None and session.connection.is_connected

    def recent_messages(self, channel: str, count: int) -> list[AnnotatedMessage]:
        """The last ``count`` messages seen on a channel, oldest first."""
        session = self._get_session(channel)
        if session is None or count <= 0:
            return []
        with session.lock:
            history = list(session.history)
        return history[-count:]

    def live_status(self, channel: str) -> bool | None:
        """Last observed live state, or None if never observed."""
        with self._lock.read():
            return self._live_status.get(_login(channel))

    def current_viewer_count(self) -> int:
        """Viewer count of the focused channel (0 when nothing is focused)."""
        with self._lock.read():
            session = self._sessions.get(self._focused) if self._focused else None
        if session is None:
            return 0
        with session.lock:
            return session.viewer_count

    def _get_session(self, channel: str) -> _ChannelSession | None:
        with self._lock.read():
            return self._sessions.get(_login(channel))

    # -- Connecting --

    async def connect_all(self) -> ConnectAllResult:
        """Connect every configured channel, staggering the launches.

        Raises:
            ConnectAllError: if channels are configured and none connected.
        """
        channels = self.channels
        result = ConnectAllResult()
        if not channels:
            return result

        tasks: list[asyncio.Task] = []
        for i, channel in enumerate(channels):
            if i:
                await asyncio.sleep(self._monitor.connect_stagger)
            tasks.append(asyncio.create_task(self._try_connect(channel)))

        errors = await asyncio.gather(*tasks)
        for channel, error in zip(channels, errors):
            if error is None:
                result.succeeded.append(channel)
            else:
                result.failures[channel] = error

        if not result.succeeded:
            logger.error(f"Connect-all: every channel failed ({len(result.failures)})")
            raise ConnectAllError(result.failures)

        logger.info(
            f"Connect-all: {len(result.succeeded)} connected, {len(result.failures)} failed"
        )
        return result

    async def _try_connect(self, channel: str) -> str | None:
        try:
            await self.connect_one(channel)
        except MultichatError as e:
            return str(e)
        return None

    async def connect_one(self, channel: str) -> None:
        """Connect a channel, or focus it and replay its history if already connected.

        Raises:
            ChannelConnectError: if the connection could not be established.
        """
        login = _login(channel)
        with self._lock.write():
            session = self._sessions.get(login)
            existing = session is not None
            if not existing:
                connection = self._connection_factory(login, self._buffer_size)
                session = _ChannelSession(login, connection, self._buffer_size)
                # Registered while connecting so a second call does not dial again
                self._sessions[login] = session

        if existing:
            await self._wait_for_handshake(session)
            self._set_focus(login)
            return

        try:
            await self._establish(session)
        finally:
            session.handshake_done.set()

    async def _establish(self, session: _ChannelSession) -> None:
        login = session.channel
        try:
            await session.connection.connect()
        except ChannelConnectError as e:
            with self._lock.write():
                if self._sessions.get(login) is session:
                    del self._sessions[login]
                if self._focused == login:
                    self._focused = None
            logger.error(f"Failed to connect to {login}: {e.reason}")
            self.channel_connect_failed.emit(ChannelConnectFailed(login, str(e)))
            raise

        with self._lock.write():
            still_registered = self._sessions.get(login) is session
        if not still_registered:
            # Disconnected while the handshake was in flight
            await session.connection.stop()
            return

        session.connection.start()
        session.forward_task = asyncio.create_task(
            self._forward(session), name=f"forward:{login}"
        )
        if self._status_client is not None:
            session.viewer_task = asyncio.create_task(
                self._poll_viewer_count(session), name=f"viewers:{login}"
            )

        with self._lock.write():
            take_focus = self._focused is None
            if take_focus:
                self._focused = login

        logger.info(f"Connected to {login}")
        self.channel_connected.emit(ChannelConnected(login))
        if take_focus:
            self.focus_changed.emit(FocusChanged(login))

    async def _wait_for_handshake(self, session: _ChannelSession) -> None:
        """Wait for another caller's in-flight connect to settle.

        Raises:
            ChannelConnectError: if that connect failed or was abandoned.
        """
        await session.handshake_done.wait()
        registered = self._get_session(session.channel) is session
        if not registered or not session.connection.is_connected:
            raise ChannelConnectError(session.channel, "connection attempt failed")

    # -- Forwarding --

    async def _forward(self, session: _ChannelSession) -> None:
        """Drain one connection's messages, rewards and errors in arrival order."""
        conn = session.connection
        sources = (conn.messages, conn.rewards, conn.errors)
        pending: dict[asyncio.Task, int] = {}
        try:
            for idx, source in enumerate(sources):
                pending[asyncio.ensure_future(source.get())] = idx

            while pending:
                done, _ = await asyncio.wait(
                    pending.keys(), return_when=asyncio.FIRST_COMPLETED
                )
                for task in sorted(done, key=lambda t: pending[t]):
                    idx = pending.pop(task)
                    try:
                        item = task.result()
                    except ChannelClosed:
                        # Connection stopped; nothing more will arrive
                        return

                    if idx == 0:
                        self._on_message(session, item)
                    elif idx == 1:
                        self._on_reward(session, item)
                    else:
                        # Messages read before the failure still go out first
                        for message in conn.messages.drain():
                            self._on_message(session, message)
                        await self._on_connection_error(session, item)
                        return

                    pending[asyncio.ensure_future(sources[idx].get())] = idx
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    def _matches_filter(self, content: str) -> bool:
        text = content.lower()
        return any(keyword in text for keyword in self._filter_keywords)

    def _on_message(self, session: _ChannelSession, message: Message) -> None:
        emotes = self._emotes.annotate(message) if self._emotes is not None else []
        annotated = AnnotatedMessage(
            message=message,
            emotes=emotes,
            highlighted=self._matches_filter(message.content),
        )
        with session.lock:
            session.history.append(annotated)

        if self.focused_channel == session.channel:
            self.message_received.emit(MessageReceived(session.channel, annotated))
        elif annotated.highlighted:
            self.channel_highlighted.emit(ChannelHighlighted(session.channel, annotated))

    def _on_reward(self, session: _ChannelSession, reward: RewardRedemption) -> None:
        if self.focused_channel == session.channel:
            self.reward_received.emit(RewardReceived(session.channel, reward))

    async def _on_connection_error(self, session: _ChannelSession, error: Exception) -> None:
        logger.error(f"Connection lost for {session.channel}: {error}")
        self.connection_lost.emit(ConnectionLost(session.channel, str(error)))

        with self._lock.write():
            if self._sessions.get(session.channel) is not session:
                return
            del self._sessions[session.channel]
            was_focused = self._focused == session.channel
            if was_focused:
                self._focused = None

        await self._close_session(session)
        if was_focused:
            self.active_channel_lost.emit(ActiveChannelLost(session.channel))

    # -- Focus --

    async def switch_focus(self, channel: str) -> None:
        """Focus a channel, connecting it first if needed, and replay its history."""
        login = _login(channel)
        existing = self._get_session(login) is not None
        # An existing session is focused (and replayed) by connect_one itself
        await self.connect_one(login)
        if not existing:
            self._set_focus(login)

    def _set_focus(self, login: str) -> None:
        with self._lock.write():
            session = self._sessions.get(login)
            if session is None or not session.connection.is_connected:
                return
            self._focused = login

        with session.lock:
            history = list(session.history)
            viewers = session.viewer_count

        logger.debug(f"Focus switched to {login}, replaying {len(history)} messages")
        self.focus_changed.emit(FocusChanged(login))
        self.history_replayed.emit(HistoryReplayed(login, history))
        self.viewer_count_updated.emit(ViewerCountUpdated(login, viewers))

    # -- Disconnecting --

    async def disconnect_one(self, channel: str) -> None:
        """Stop a channel's connection and forget it.

        Raises:
            NotConnectedError: if the channel has no connection.
        """
        login = _login(channel)
        with self._lock.write():
            session = self._sessions.pop(login, None)
            was_focused = session is not None and self._focused == login
            if was_focused:
                self._focused = None

        if session is None:
            raise NotConnectedError(login)

        await self._close_session(session)
        logger.info(f"Disconnected from {login}")
        self.channel_disconnected.emit(ChannelDisconnected(login))
        if was_focused:
            self.active_channel_lost.emit(ActiveChannelLost(login))

    async def disconnect_all(self) -> None:
        with self._lock.write():
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._focused = None

        if sessions:
            await asyncio.gather(*(self._close_session(s) for s in sessions))
        channels = [s.channel for s in sessions]
        logger.info(f"Disconnected from all channels ({len(channels)})")
        self.all_disconnected.emit(AllChannelsDisconnected(channels))

    async def _close_session(self, session: _ChannelSession) -> None:
        current = asyncio.current_task()
        tasks = [
            t
            for t in (session.forward_task, session.viewer_task)
            if t is not None and t is not current
        ]
        for task in tasks:
            task.cancel()
        await session.connection.stop()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # -- Channel set --

    async def add_channel(self, channel: str) -> bool:
        """Add a channel to the configured set, check its live status and connect it.

        A failed connect is reported through ``channel_connect_failed``.
        Returns False if the channel was already configured.
        """
        login = _login(channel)
        if not login:
            return False
        with self._lock.write():
            if login in self._channels:
                return False
            self._channels.append(login)

        logger.info(f"Added channel {login}")
        self.channel_added.emit(ChannelAdded(login))
        await self._check_live_status(login)
        await self._try_connect(login)
        return True

    async def remove_channel(self, channel: str) -> bool:
        """Remove a channel, disconnecting it if connected."""
        login = _login(channel)
        with self._lock.write():
            if login not in self._channels:
                return False
            self._channels.remove(login)
            self._live_status.pop(login, None)
            connected = login in self._sessions

        if connected:
            try:
                await self.disconnect_one(login)
            except NotConnectedError:
                # Lost its connection in the meantime
                pass

        logger.info(f"Removed channel {login}")
        self.channel_removed.emit(ChannelRemoved(login))
        return True

    # -- Status polling --

    def start_monitoring(self) -> None:
        """Start the periodic live-status check for all configured channels."""
        if self._status_client is None:
            return
        if self._live_task is None or self._live_task.done():
            self._live_task = asyncio.create_task(
                self._live_status_loop(), name="live-status"
            )

    async def stop_monitoring(self) -> None:
        task, self._live_task = self._live_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _live_status_loop(self) -> None:
        while True:
            await self.check_live_status()
            await asyncio.sleep(self._monitor.live_status_interval)

    async def check_live_status(self) -> None:
        """Run one live-status round over every configured channel."""
        for i, channel in enumerate(self.channels):
            if i:
                await asyncio.sleep(self._monitor.status_spacing)
            await self._check_live_status(channel)

    async def _check_live_status(self, login: str) -> None:
        if self._status_client is None:
            return
        status = await self._status_client.get_stream_status(login)
        if status is None:
            return

        with self._lock.write():
            if login not in self._channels:
                return
            previous = self._live_status.get(login)
            self._live_status[login] = status.live

        if previous is None or previous != status.live:
            logger.info(f"{login} is now {'live' if status.live else 'offline'}")
            self.live_status_changed.emit(LiveStatusChanged(login, status.live))

    async def _poll_viewer_count(self, session: _ChannelSession) -> None:
        while True:
            status = await self._status_client.get_stream_status(session.channel)
            if status is not None:
                with session.lock:
                    session.viewer_count = status.viewers
                if self.focused_channel == session.channel:
                    self.viewer_count_updated.emit(
                        ViewerCountUpdated(session.channel, status.viewers)
                    )
            await asyncio.sleep(self._monitor.viewer_count_interval)

    async def shutdown(self) -> None:
        """Stop polling and disconnect every channel."""
        await self.stop_monitoring()
        await self.disconnect_all()
