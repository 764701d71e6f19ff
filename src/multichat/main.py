"""Entry point for the headless multichat runner."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .api import TwitchStatusClient
from .chat.emotes import EmoteEngine
from .chat.manager import ChatSupervisor
from .core.settings import Settings
from .errors import ConnectAllError

logger = logging.getLogger(__name__)


def setup_logging(level: int = logging.INFO) -> None:
    """Set up logging configuration."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    # Suppress noisy third-party loggers
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="multichat", description="Follow several Twitch chats at once."
    )
    parser.add_argument("channels", nargs="*", help="extra channels to join")
    parser.add_argument("--settings", type=Path, help="path to settings.json")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    return parser.parse_args(argv)


def _wire_logging(supervisor: ChatSupervisor) -> None:
    """Log the supervisor's signals in place of a rendering layer."""

    def on_message(event):
        msg = event.message.message
        marker = "*" if event.message.highlighted else ""
        logger.info(f"[{event.channel}]{marker} {msg.username}: {msg.content}")

    def on_highlight(event):
        logger.info(f"[{event.channel}] highlight: {event.message.message.content}")

    def on_reward(event):
        reward = event.reward
        logger.info(f"[{event.channel}] {reward.username} redeemed {reward.reward_id}")

    def on_live(event):
        logger.info(f"[{event.channel}] {'live' if event.is_live else 'offline'}")

    def on_viewers(event):
        logger.info(f"[{event.channel}] {event.viewers} viewers")

    def on_lost(event):
        logger.warning(f"[{event.channel}] connection lost: {event.error}")

    supervisor.message_received.connect(on_message)
    supervisor.channel_highlighted.connect(on_highlight)
    supervisor.reward_received.connect(on_reward)
    supervisor.live_status_changed.connect(on_live)
    supervisor.viewer_count_updated.connect(on_viewers)
    supervisor.connection_lost.connect(on_lost)


async def run(settings: Settings) -> int:
    engine = EmoteEngine.from_settings(settings.emotes)
    status_client = TwitchStatusClient()
    supervisor = ChatSupervisor(settings, engine, status_client)
    _wire_logging(supervisor)

    try:
        await engine.load_global_emotes()
        try:
            result = await supervisor.connect_all()
        except ConnectAllError as e:
            logger.error(str(e))
            return 1
        for channel, reason in result.failures.items():
            logger.warning(f"Skipping {channel}: {reason}")

        supervisor.start_monitoring()
        # Run until every connection is gone or we are interrupted
        while supervisor.connected_channels():
            await asyncio.sleep(1)
        return 0
    finally:
        await supervisor.shutdown()
        await engine.close()
        await status_client.close()


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.debug else logging.INFO)

    settings = Settings.load(args.settings)
    for channel in args.channels:
        login = channel.lstrip("#").lower()
        if login and login not in settings.channels:
            settings.channels.append(login)

    if not settings.channels:
        logger.error("No channels configured")
        return 1

    try:
        return asyncio.run(run(settings))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
