import logging

from aiohttp import web

import info
from web import web_server
from web.server.engine import TorrentEngine, default_settings

logging.basicConfig(
    level=info.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
logger = logging.getLogger("app")


def main():
    engine = TorrentEngine(info.DOWNLOAD_DIR, default_settings(info.TORRENT_LISTEN))
    app = web_server(engine)

    async def torrent_engine(_):
        engine.start()
        yield
        await engine.close()

    app.cleanup_ctx.append(torrent_engine)

    logger.info(f"Server listening on port {info.PORT}")
    web.run_app(app, host=info.BIND_ADDRESS, port=info.PORT)


if __name__ == "__main__":
    main()
