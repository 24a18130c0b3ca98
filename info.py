from os import environ


def is_enabled(value, default):
    if value.lower() in ["true", "yes", "1", "enable", "y"]:
        return True
    elif value.lower() in ["false", "no", "0", "disable", "n"]:
        return False
    else:
        return default


def parse_users(value):
    users = {}
    for pair in value.split(","):
        name, sep, password = pair.strip().partition(":")
        if name and sep:
            users[name] = password
    return users


# ----------------- SERVER -----------------
PORT = int(environ.get("PORT", "4000"))
BIND_ADDRESS = environ.get("BIND_ADDRESS", "0.0.0.0")
LOG_LEVEL = environ.get("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]

# username:password pairs, comma separated
AUTH_USERS = parse_users(environ.get("AUTH_USERS", "admin:secret123"))

# ----------------- TORRENT -----------------
DOWNLOAD_DIR = environ.get("DOWNLOAD_DIR", "./downloads")
TORRENT_LISTEN = environ.get("TORRENT_LISTEN", "0.0.0.0:6881")
VIDEO_EXTENSIONS = tuple(
    ext.strip().lower()
    for ext in environ.get("VIDEO_EXTENSIONS", ".mp4,.mkv,.webm").split(",")
    if ext.strip()
)

# Readiness: poll budget for metadata and health (10 x 1s by default)
READY_RETRIES = int(environ.get("READY_RETRIES", "10"))
READY_INTERVAL = float(environ.get("READY_INTERVAL", "1"))
READY_EVENT_DRIVEN = is_enabled(environ.get("READY_EVENT_DRIVEN", "false"), False)
_health = environ.get("HEALTH_RETRIES", "10").strip().lower()
HEALTH_RETRIES = None if _health in ("", "none", "off") else int(_health)

# 0 keeps torrents for the process lifetime
HANDLE_IDLE_TIMEOUT = int(environ.get("HANDLE_IDLE_TIMEOUT", "0"))
HANDLE_CLEANUP_INTERVAL = int(environ.get("HANDLE_CLEANUP_INTERVAL", "60"))

# ----------------- SEARCH -----------------
SEARCH_API_URL = environ.get("SEARCH_API_URL", "https://yts.mx/api/v2/list_movies.json")
SEARCH_LIMIT = int(environ.get("SEARCH_LIMIT", "10"))
SEARCH_TIMEOUT = int(environ.get("SEARCH_TIMEOUT", "15"))
TRACKERS = [
    "udp://tracker.openbittorrent.com:80/announce",
    "udp://tracker.opentrackr.org:1337/announce",
]
