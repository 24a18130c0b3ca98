import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import List, Sequence

import aiohttp

from web.server.exceptions import MissingQuery, SearchUpstreamError
from web.utils.http_client import fetch_json
from web.utils.magnet import build_magnet_link

logger = logging.getLogger("search")


@dataclass(frozen=True)
class SearchResult:
    name: str
    size: str
    magnet: str
    thumbnail: str

    def to_dict(self):
        return asdict(self)


class CatalogSearch:
    """
    Proxy to a YTS-style movie API: one SearchResult per movie and
    torrent variant, in the order the API returns them.
    """

    def __init__(self, session: aiohttp.ClientSession, api_url: str, limit: int, trackers: Sequence[str]):
        self.session = session
        self.api_url = api_url
        self.limit = limit
        self.trackers = list(trackers)

    async def search(self, query: str) -> List[SearchResult]:
        if not query:
            raise MissingQuery()

        try:
            payload = await fetch_json(
                self.session,
                self.api_url,
                params={"query_term": query, "limit": str(self.limit)},
            )
            movies = payload["data"].get("movies") or []

            results = []
            for movie in movies:
                for torrent in movie["torrents"]:
                    results.append(
                        SearchResult(
                            name=f"{movie['title']} [{torrent['quality']}]",
                            size=torrent["size"],
                            magnet=build_magnet_link(torrent["hash"], movie["title"], self.trackers),
                            thumbnail=movie.get("medium_cover_image"),
                        )
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Search error: {e!r}")
            raise SearchUpstreamError()

        logger.info(f"Search {query!r} returned {len(results)} results")
        return results
