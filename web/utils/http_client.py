import aiohttp
import asyncio
import logging

logger = logging.getLogger("http_client")


async def fetch_json(session: aiohttp.ClientSession, url, params=None, headers=None):
    """
    GET a JSON document. Raises aiohttp.ClientError (including non-2xx
    statuses), asyncio.TimeoutError or ValueError on a bad body; no retries.
    """
    try:
        async with session.get(url, params=params, headers=headers) as resp:
            resp.raise_for_status()
            return await resp.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        logger.warning(f"HTTP fetch of {url} failed: {e!r}")
        raise
