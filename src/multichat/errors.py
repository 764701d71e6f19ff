"""Exceptions raised by the chat core."""


class MultichatError(Exception):
    """Base class for all multichat errors."""


class ChannelConnectError(MultichatError):
    """Dialing or handshaking a channel's chat connection failed."""

    def __init__(self, channel: str, reason: str):
        super().__init__(f"failed to connect to {channel}: {reason}")
        self.channel = channel
        self.reason = reason


class NotConnectedError(MultichatError):
    """An operation referenced a channel with no live connection."""

    def __init__(self, channel: str):
        super().__init__(f"not connected to channel: {channel}")
        self.channel = channel


class ConnectAllError(MultichatError):
    """Every configured channel failed to connect."""

    def __init__(self, failures: dict[str, str]):
        details = "; ".join(f"{ch}: {reason}" for ch, reason in failures.items())
        super().__init__(f"all connections failed: {details}")
        self.failures = failures
