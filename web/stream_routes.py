import logging
import posixpath
import time
from urllib.parse import quote

from aiohttp import web

from web.server import gate_key, registry_key, search_key
from web.server.exceptions import (
    MissingMagnet,
    RangeNotSatisfiable,
    StreamError,
    StreamerError,
)
from web.server.handle import FetchHandle, TorrentFile
from web.utils import StartTime, __version__
from web.utils.auth import require_auth
from web.utils.magnet import parse_info_hash
from web.utils.ranges import parse_range
from utils import get_readable_time, get_size

routes = web.RouteTableDef()

# ----------------------------
# Logger
# ----------------------------
logger = logging.getLogger("stream_routes")
handler = logging.StreamHandler()
handler.setFormatter(
    logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
)
logger.addHandler(handler)
logger.setLevel(logging.INFO)
logger.propagate = False

VIDEO_CONTENT_TYPE = "video/mp4"


# ----------------------------------------------------------
# Root status route
# ----------------------------------------------------------
@routes.get("/", allow_head=True)
async def root_route_handler(request: web.Request):
    registry = request.app[registry_key]
    return web.json_response(
        {
            "server_status": "running",
            "uptime": get_readable_time(time.time() - StartTime),
            "torrents": len(registry),
            "streams": sum(h.active_readers for h in registry.handles.values()),
            "version": __version__,
        }
    )


# ----------------------------------------------------------
# Catalog search
# ----------------------------------------------------------
@routes.get("/search")
@require_auth
async def search_handler(request: web.Request):
    try:
        results = await request.app[search_key].search(request.query.get("query", ""))
        return web.json_response([r.to_dict() for r in results])

    except StreamerError as e:
        return web.Response(status=e.status, text=e.message)

    except Exception as e:
        logger.error(f"Error in search_handler: {e!r}")
        return web.Response(status=500, text="Internal Server Error")


# ----------------------------------------------------------
# Media streamer route (serves bytes with Range support)
# ----------------------------------------------------------
@routes.get("/stream")
async def stream_handler(request: web.Request):
    try:
        handle = resolve_handle(request)
        file = await request.app[gate_key].open(handle)
        return await media_streamer(request, handle, file)

    except RangeNotSatisfiable as e:
        return web.Response(
            status=e.status,
            text=e.message,
            headers={"Content-Range": f"bytes */{e.total_size}"},
        )

    except StreamerError as e:
        return web.Response(status=e.status, text=e.message)

    except ConnectionResetError:
        logger.info(f"Client {request.remote} disconnected")
        raise

    except Exception as e:
        logger.error(f"Error in stream_handler: {e!r}")
        return web.Response(status=500, text="Internal Server Error")


# ----------------------------------------------------------
# Full-file download as attachment
# ----------------------------------------------------------
@routes.get("/download")
async def download_handler(request: web.Request):
    try:
        handle = resolve_handle(request)
        gate = request.app[gate_key]
        await gate.wait_for_metadata(handle)
        file = gate.playable_file(handle)

        headers = {
            "Content-Disposition": f'attachment; filename="{quote(posixpath.basename(file.name))}"',
            "Content-Type": "application/octet-stream",
            "Content-Length": str(file.length),
        }
        logger.info(f"Downloading {file.name} ({get_size(file.length)})")
        return await send_bytes(request, handle, file, 0, file.length - 1, 200, headers)

    except StreamerError as e:
        return web.Response(status=e.status, text=e.message)

    except ConnectionResetError:
        logger.info(f"Client {request.remote} disconnected")
        raise

    except Exception as e:
        logger.error(f"Error in download_handler: {e!r}")
        return web.Response(status=500, text="Internal Server Error")


# ----------------------------------------------------------
# Core streaming logic
# ----------------------------------------------------------

def resolve_handle(request: web.Request) -> FetchHandle:
    magnet = request.query.get("magnet")
    if not magnet:
        raise MissingMagnet()

    try:
        info_hash = parse_info_hash(magnet)
    except StreamerError:
        logger.error(f"Invalid magnet link format: {magnet[:80]}")
        raise

    return request.app[registry_key].resolve(info_hash, magnet)


async def media_streamer(request: web.Request, handle: FetchHandle, file: TorrentFile):
    """
    Core logic to stream a torrent file with support for Range headers.
    """
    range_header = request.headers.get("Range", None)
    total_size = file.length

    start, end = parse_range(range_header, total_size)
    req_length = end - start + 1

    headers = {
        "Content-Type": VIDEO_CONTENT_TYPE,
        "Accept-Ranges": "bytes",
        "Content-Length": str(req_length),
    }

    if range_header:
        headers["Content-Range"] = f"bytes {start}-{end}/{total_size}"
        logger.info(f"Streaming bytes {start}-{end} ({req_length} bytes) of {file.name}")
        return await send_bytes(request, handle, file, start, end, 206, headers)

    logger.warning(f"Missing Range header, sending full file {file.name}")
    return await send_bytes(request, handle, file, start, end, 200, headers)


async def send_bytes(request, handle, file, start, end, status, headers):
    """
    Pipe [start, end] of ``file`` to the client.

    The first chunk is fetched before headers go out so an early fetch
    failure can still become a 500. Once headers are sent the only way to
    signal failure is to drop the connection.
    """
    resp = web.StreamResponse(status=status, headers=headers)

    if end < start:
        await resp.prepare(request)
        await resp.write_eof()
        return resp

    chunks = handle.read(file, start, end)
    handle.active_readers += 1
    try:
        try:
            first = await chunks.__anext__()
        except StopAsyncIteration:
            first = b""
        except StreamError as e:
            logger.error(f"Stream error: {e.message}")
            return web.Response(status=500, text=StreamError.message)

        await resp.prepare(request)
        await resp.write(first)

        try:
            async for chunk in chunks:
                await resp.write(chunk)
        except StreamError as e:
            logger.error(f"Stream error after headers were sent: {e.message}")
            resp.force_close()
            if request.transport is not None:
                request.transport.close()
            return resp

        await resp.write_eof()
        return resp

    finally:
        handle.active_readers -= 1
        await chunks.aclose()
