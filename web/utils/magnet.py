import re
from typing import Iterable
from urllib.parse import quote

from web.server.exceptions import InvalidMagnetFormat

BTIH_PATTERN = re.compile(r"urn:btih:([^&\s]*)", re.IGNORECASE)
INFO_HASH_PATTERN = re.compile(r"^[0-9a-fA-F]{40}$")


def parse_info_hash(magnet: str) -> str:
    """Extract the lower-cased hex info-hash from a magnet URI."""
    match = BTIH_PATTERN.search(magnet or "")
    if not match or not INFO_HASH_PATTERN.match(match.group(1)):
        raise InvalidMagnetFormat()
    return match.group(1).lower()


def build_magnet_link(info_hash: str, name: str, trackers: Iterable[str]) -> str:
    magnet = f"magnet:?xt=urn:btih:{info_hash}&dn={quote(name, safe='')}"
    for tracker in trackers:
        magnet += f"&tr={tracker}"
    return magnet
