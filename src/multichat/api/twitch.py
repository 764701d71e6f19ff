"""Twitch stream status via the public GraphQL endpoint."""

import asyncio
import logging
from dataclasses import dataclass

import aiohttp

from .base import BaseApiClient, safe_json

logger = logging.getLogger(__name__)

GQL_URL = "https://gql.twitch.tv/gql"
# Public web client id; no user auth needed
GQL_CLIENT_ID = "kimne78kx3ncx6brgo4mv6wki5h1ko"

STREAM_QUERY = """
query GetStream($login: String!) {
    user(login: $login) {
        id
        login
        stream {
            id
            title
            viewersCount
            game {
                name
            }
        }
    }
}
"""


@dataclass(frozen=True)
class StreamStatus:
    """Live state of one channel at a point in time."""

    live: bool
    viewers: int = 0
    title: str | None = None
    game: str | None = None


def parse_stream_status(data: dict | None) -> StreamStatus | None:
    """Turn a GQL ``user`` object into a StreamStatus.

    Returns None when the user does not exist.
    """
    if not data:
        return None
    stream = data.get("stream")
    if not stream:
        return StreamStatus(live=False)
    game = stream.get("game") or {}
    return StreamStatus(
        live=True,
        viewers=int(stream.get("viewersCount") or 0),
        title=stream.get("title"),
        game=game.get("name"),
    )


class TwitchStatusClient(BaseApiClient):
    """Answers "is this channel live, and how many viewers?"."""

    def _get_headers(self) -> dict[str, str]:
        return {"Client-ID": GQL_CLIENT_ID, "Content-Type": "application/json"}

    async def get_stream_status(self, login: str) -> StreamStatus | None:
        """Get the live state for a channel login.

        Returns None if the request fails or the channel is unknown, so
        callers keep their last known state.
        """
        login = login.lstrip("#").lower()
        try:
            async with self.session.post(
                GQL_URL,
                headers=self._get_headers(),
                json={"query": STREAM_QUERY, "variables": {"login": login}},
            ) as resp:
                if resp.status != 200:
                    logger.warning(f"Stream status query for {login} failed: {resp.status}")
                    return None
                data = await safe_json(resp)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Stream status query for {login} error: {e}")
            return None

        if not isinstance(data, dict):
            return None
        user = (data.get("data") or {}).get("user")
        status = parse_stream_status(user)
        if status is None:
            logger.debug(f"Stream status: no such channel {login}")
        return status
