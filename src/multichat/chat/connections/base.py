"""Base chat connection: lifecycle state and bounded delivery channels."""

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from enum import Enum
from typing import Generic, TypeVar

from ..models import Message, RewardRedemption
from ..ring_buffer import RingBuffer

logger = logging.getLogger(__name__)

T = TypeVar("T")

DELIVERY_CHANNEL_SIZE = 10
STOP_GRACE_PERIOD = 0.01  # seconds the read loop gets to notice a stop
DEFAULT_BUFFER_SIZE = 256


class ChannelClosed(Exception):
    """Raised by DeliveryChannel.get() once the channel is closed and drained."""


class DeliveryChannel(Generic[T]):
    """Bounded single-consumer queue with drop-on-full producers.

    ``offer`` never blocks: when the consumer is behind, the new item is
    discarded. ``close`` is one-shot; items already queued can still be read.
    """

    def __init__(self, maxsize: int = DELIVERY_CHANNEL_SIZE):
        self._items: deque[T] = deque()
        self._maxsize = maxsize
        self._closed = False
        self._ready = asyncio.Event()
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._items)

    def offer(self, item: T) -> bool:
        """Queue an item if there is room. Returns False if it was dropped."""
        if self._closed:
            return False
        if len(self._items) >= self._maxsize:
            self.dropped += 1
            return False
        self._items.append(item)
        self._ready.set()
        return True

    def close(self) -> bool:
        """Close the channel. Returns False if it was already closed."""
        if self._closed:
            return False
        self._closed = True
        self._ready.set()
        return True

    async def get(self) -> T:
        while not self._items:
            if self._closed:
                raise ChannelClosed()
            self._ready.clear()
            await self._ready.wait()
        return self._items.popleft()

    def drain(self) -> list[T]:
        """Remove and return every queued item without waiting."""
        items = list(self._items)
        self._items.clear()
        return items


class ConnectionState(str, Enum):
    """Connection lifecycle. STOPPED is terminal."""

    IDLE = "idle"
    CONNECTED = "connected"
    STOPPED = "stopped"


class BaseChatConnection(ABC):
    """One network session for one channel.

    Subclasses implement the dial/handshake and the read loop; this class owns
    the delivery channels, the message history and the idempotent stop.
    """

    def __init__(self, channel: str, buffer_size: int = DEFAULT_BUFFER_SIZE):
        login = channel.lstrip("#").lower()
        self._channel = f"#{login}"
        self._history = RingBuffer(buffer_size)
        self.messages: DeliveryChannel[Message] = DeliveryChannel()
        self.rewards: DeliveryChannel[RewardRedemption] = DeliveryChannel()
        self.errors: DeliveryChannel[Exception] = DeliveryChannel()
        self._lock = threading.Lock()
        self._connected = False
        self._stopped = False
        self._stop_event = asyncio.Event()
        self._read_task: asyncio.Task | None = None

    @property
    def channel(self) -> str:
        """Wire channel name ("#login")."""
        return self._channel

    @property
    def login(self) -> str:
        return self._channel[1:]

    @property
    def is_connected(self) -> bool:
        with self._lock:
            return self._connected

    @property
    def is_stopped(self) -> bool:
        with self._lock:
            return self._stopped

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            if self._stopped:
                return ConnectionState.STOPPED
            if self._connected:
                return ConnectionState.CONNECTED
        if self._read_task is not None and self._read_task.done():
            return ConnectionState.STOPPED
        return ConnectionState.IDLE

    @abstractmethod
    async def connect(self) -> None:
        """Dial the server and send the handshake.

        Raises:
            ChannelConnectError: if the server cannot be reached.
        """

    @abstractmethod
    async def _read_loop(self) -> None:
        """Read and dispatch lines until the socket fails or a stop is requested."""

    @abstractmethod
    async def _close_transport(self) -> None:
        """Close the network socket. Must be safe to call more than once."""

    def start(self) -> None:
        """Spawn the read loop as an independent task."""
        if self._read_task is not None:
            return
        self._read_task = asyncio.create_task(
            self._run_read_loop(), name=f"read-loop:{self._channel}"
        )

    async def _run_read_loop(self) -> None:
        try:
            await self._read_loop()
        finally:
            with self._lock:
                self._connected = False
            await self._close_transport()
            logger.debug(f"Read loop for {self._channel} exited")

    async def stop(self) -> None:
        """Stop the session. Safe to call repeatedly or concurrently."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            self._connected = False

        # Closing the socket first unblocks a pending read
        await self._close_transport()
        self._stop_event.set()
        await asyncio.sleep(STOP_GRACE_PERIOD)

        task = self._read_task
        if task is not None and not task.done():
            task.cancel()

        self.messages.close()
        self.rewards.close()
        self.errors.close()
        logger.info(f"Stopped connection for {self._channel}")

    def get_messages(self, n: int) -> list[Message]:
        """The last ``n`` buffered messages, oldest first."""
        return self._history.get_last(n)

    def get_all_messages(self) -> list[Message]:
        return self._history.get_all()

    def _set_connected(self) -> None:
        with self._lock:
            self._connected = True

    def _deliver_message(self, message: Message) -> bool:
        if self.is_stopped:
            return False
        if not self.messages.offer(message):
            logger.debug(f"Message queue full for {self._channel}, dropping message")
            return False
        return True

    def _deliver_reward(self, reward: RewardRedemption) -> bool:
        if self.is_stopped:
            return False
        return self.rewards.offer(reward)

    def _deliver_error(self, error: Exception) -> bool:
        if self.is_stopped:
            return False
        return self.errors.offer(error)
