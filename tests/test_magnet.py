import pytest

from web.server.exceptions import InvalidMagnetFormat
from web.utils.magnet import build_magnet_link, parse_info_hash

HASH = "C9E15763F722F23E98A29DECDFAE341B98D53056"


def test_parse_returns_lowercase_hash():
    magnet = f"magnet:?xt=urn:btih:{HASH}&dn=Cosmos+Laundromat&tr=udp%3A%2F%2Fexplodie.org%3A6969"
    assert parse_info_hash(magnet) == HASH.lower()


def test_parse_is_case_insensitive_on_prefix():
    assert parse_info_hash(f"magnet:?xt=URN:BTIH:{HASH}") == HASH.lower()


def test_same_content_different_trackers_same_hash():
    a = f"magnet:?xt=urn:btih:{HASH}&tr=udp://a.example:80"
    b = f"magnet:?dn=Other+Name&xt=urn:btih:{HASH.lower()}"
    assert parse_info_hash(a) == parse_info_hash(b)


@pytest.mark.parametrize(
    "magnet",
    [
        "",
        "magnet:?dn=no+hash+here",
        "magnet:?xt=urn:btih:",
        "magnet:?xt=urn:btih:1234abcd",
        f"magnet:?xt=urn:btih:{HASH}FF",
        "magnet:?xt=urn:btih:" + "z" * 40,
        "https://example.com/movie.torrent",
    ],
)
def test_parse_rejects_malformed(magnet):
    with pytest.raises(InvalidMagnetFormat):
        parse_info_hash(magnet)


def test_build_magnet_link_includes_name_and_trackers():
    magnet = build_magnet_link(
        HASH.lower(),
        "Sintel & Friends",
        ["udp://tracker.openbittorrent.com:80/announce", "udp://tracker.opentrackr.org:1337/announce"],
    )
    assert magnet.startswith(f"magnet:?xt=urn:btih:{HASH.lower()}&dn=Sintel%20%26%20Friends")
    assert "&tr=udp://tracker.openbittorrent.com:80/announce" in magnet
    assert "&tr=udp://tracker.opentrackr.org:1337/announce" in magnet
    assert parse_info_hash(magnet) == HASH.lower()
