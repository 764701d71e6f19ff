"""Background emote downloads into the on-disk cache."""

import asyncio
import logging
from pathlib import Path

import aiohttp

from ..models import EmoteInfo
from .cache import BaseEmoteCatalog, emote_file_path

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = 15
MAX_EMOTE_HEIGHT = 32


def _is_nonempty_file(path: Path) -> bool:
    """Return True if a file exists and has non-zero size."""
    try:
        return path.exists() and path.stat().st_size > 0
    except OSError:
        return False


def _normalize(data: bytes, max_height: int) -> bytes | None:
    # Qt GUI imports are deferred so the rest of the package loads without them
    from .image import normalize_emote_image

    return normalize_emote_image(data, max_height)


def _write_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(".tmp")
    tmp_path.write_bytes(data)
    tmp_path.replace(path)


class EmoteDownloader:
    """Downloads emote images, normalizes them and records them in a catalog.

    At most one download per provider and emote id runs at a time; a second
    request for the same emote shares the running task.
    """

    def __init__(
        self,
        catalog: BaseEmoteCatalog,
        cache_dir: Path,
        max_height: int = MAX_EMOTE_HEIGHT,
    ):
        self._catalog = catalog
        self._cache_dir = Path(cache_dir)
        self._max_height = max_height
        self._session: aiohttp.ClientSession | None = None
        self._in_flight: dict[str, asyncio.Task] = {}

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    @property
    def pending(self) -> int:
        return len(self._in_flight)

    def schedule(self, emote: EmoteInfo, channel: str | None = None) -> asyncio.Task:
        """Start (or join) the download of an emote. Must run inside an event loop."""
        key = f"{emote.provider}:{emote.id}"
        task = self._in_flight.get(key)
        if task is not None:
            return task

        task = asyncio.get_running_loop().create_task(
            self._run(emote, channel), name=f"emote-download:{key}"
        )
        self._in_flight[key] = task
        task.add_done_callback(lambda _t: self._in_flight.pop(key, None))
        return task

    async def wait_idle(self) -> None:
        """Wait for every download scheduled so far."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)

    async def _run(self, emote: EmoteInfo, channel: str | None) -> str | None:
        try:
            return await self.download(emote, channel)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Emote download failed for {emote.name} ({emote.id}): {e}")
            return None

    async def download(self, emote: EmoteInfo, channel: str | None = None) -> str | None:
        """Fetch and store one emote. Returns the file path, or None on failure."""
        path = emote_file_path(self._cache_dir, channel, emote)
        if _is_nonempty_file(path):
            self._catalog.set_file_path(emote, str(path))
            return str(path)

        data = await self._fetch(emote.image_url or emote.url)
        if data is None:
            return None

        png = await asyncio.to_thread(_normalize, data, self._max_height)
        if png is None:
            logger.debug(f"Could not decode emote image {emote.name} ({emote.id})")
            return None

        await asyncio.to_thread(_write_file, path, png)
        self._catalog.set_file_path(emote, str(path))
        logger.debug(f"Cached emote {emote.provider}:{emote.name} -> {path}")
        return str(path)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=DOWNLOAD_TIMEOUT)
            )
        return self._session

    async def _fetch(self, url: str) -> bytes | None:
        session = await self._get_session()
        try:
            async with session.get(url) as resp:
                if resp.status != 200:
                    logger.debug(f"Emote fetch {url} failed: {resp.status}")
                    return None
                return await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"Emote fetch {url} error: {e}")
            return None

    async def close(self) -> None:
        for task in list(self._in_flight.values()):
            task.cancel()
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
