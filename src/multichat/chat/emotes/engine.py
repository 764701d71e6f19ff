"""Emote engine: catalogs, lazy channel loading and message annotation."""

import asyncio
import logging
from pathlib import Path

from ..models import EmoteInfo, Message
from .cache import DEFAULT_PROVIDERS, BaseEmoteCatalog, EmoteCatalog, channel_key
from .downloader import MAX_EMOTE_HEIGHT, EmoteDownloader
from .matcher import parse_emotes
from .provider import BaseEmoteProvider, create_providers

logger = logging.getLogger(__name__)


class EmoteEngine:
    """Resolves emotes in chat messages across native and third-party providers.

    Global catalogs are loaded once with ``load_global_emotes``. A channel's
    catalogs are fetched the first time a message carrying its room id is
    annotated. Emotes found in messages are downloaded to ``cache_dir`` in
    the background when a downloader is configured.
    """

    def __init__(
        self,
        catalog: BaseEmoteCatalog | None = None,
        providers: list[BaseEmoteProvider] | None = None,
        cache_dir: Path | None = None,
        max_height: int = MAX_EMOTE_HEIGHT,
        downloader: EmoteDownloader | None = None,
    ):
        if providers is None:
            providers = create_providers(DEFAULT_PROVIDERS)
        self._providers = providers
        if catalog is None:
            catalog = EmoteCatalog([p.name for p in providers])
        self.catalog = catalog

        if downloader is None and cache_dir is not None:
            downloader = EmoteDownloader(self.catalog, cache_dir, max_height)
        self._downloader = downloader

        self._channel_tasks: dict[str, asyncio.Task] = {}

    @classmethod
    def from_settings(cls, settings) -> "EmoteEngine":
        """Build an engine from EmoteSettings."""
        providers = create_providers(settings.providers)
        return cls(
            catalog=EmoteCatalog([p.name for p in providers]),
            providers=providers,
            cache_dir=settings.resolved_cache_dir(),
            max_height=settings.max_height,
        )

    @property
    def providers(self) -> list[BaseEmoteProvider]:
        return list(self._providers)

    @property
    def downloader(self) -> EmoteDownloader | None:
        return self._downloader

    async def load_global_emotes(self) -> int:
        """Fetch every provider's global catalog. Returns the total loaded."""
        results = await asyncio.gather(*(p.get_global_emotes() for p in self._providers))
        total = 0
        for provider, emotes in zip(self._providers, results):
            count = self.catalog.populate(provider.name, emotes)
            logger.info(f"Loaded {count} global {provider.name} emotes")
            total += count
        return total

    async def load_channel_emotes(self, channel: str, room_id: str) -> int:
        """Fetch every provider's catalog for one channel."""
        results = await asyncio.gather(
            *(p.get_channel_emotes(room_id) for p in self._providers)
        )
        total = 0
        for provider, emotes in zip(self._providers, results):
            total += self.catalog.populate(provider.name, emotes, scope=channel)
        logger.info(f"Loaded {total} channel emotes for {channel_key(channel)} ({room_id})")
        return total

    def ensure_channel_emotes(self, message: Message) -> asyncio.Task | None:
        """Start the one-time channel catalog fetch for a message's channel."""
        room_id = message.room_id
        key = channel_key(message.channel)
        if not room_id or key in self._channel_tasks:
            return None

        task = asyncio.get_running_loop().create_task(
            self._load_channel_safe(key, room_id), name=f"channel-emotes:{key}"
        )
        self._channel_tasks[key] = task
        return task

    async def _load_channel_safe(self, channel: str, room_id: str) -> None:
        try:
            await self.load_channel_emotes(channel, room_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Failed to load channel emotes for {channel}: {e}")

    def parse_emotes(self, message: Message) -> list[EmoteInfo]:
        """Resolve emotes without side effects."""
        return parse_emotes(message, self.catalog)

    def annotate(self, message: Message) -> list[EmoteInfo]:
        """Resolve emotes in a message and queue downloads for new ones.

        Must run inside an event loop when channel loading or downloads
        are needed.
        """
        self.ensure_channel_emotes(message)
        emotes = parse_emotes(message, self.catalog)

        if self._downloader is not None:
            for emote in emotes:
                if emote.file_path:
                    continue
                self._downloader.schedule(emote, self._download_scope(message, emote))
        return emotes

    def _download_scope(self, message: Message, emote: EmoteInfo) -> str | None:
        if emote.provider == "twitch":
            return message.channel
        scoped = self.catalog.lookup(message.channel, emote.provider, emote.name)
        if scoped is not None and scoped.id == emote.id:
            return message.channel
        return None

    def file_path_for(self, emote_id: str) -> str | None:
        return self.catalog.file_path_for(emote_id)

    def cached_emotes(self) -> dict[str, EmoteInfo]:
        return self.catalog.cached_emotes()

    async def wait_idle(self) -> None:
        """Wait for pending channel loads and downloads."""
        pending = [t for t in self._channel_tasks.values() if not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if self._downloader is not None:
            await self._downloader.wait_idle()

    async def close(self) -> None:
        for task in self._channel_tasks.values():
            if not task.done():
                task.cancel()
        pending = [t for t in self._channel_tasks.values() if not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if self._downloader is not None:
            await self._downloader.close()
