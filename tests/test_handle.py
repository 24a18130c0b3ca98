import pytest

from conftest import INFO_HASH, FakeHandle
from web.server.handle import FetchHandle, HandleState, TorrentFile, piece_slices


def test_states_move_forward_only():
    handle = FakeHandle(INFO_HASH, {"a.mp4": b"abc"})
    assert handle.state is HandleState.METADATA_PENDING

    handle.resolve()
    assert handle.state is HandleState.METADATA_READY
    assert handle.files == [TorrentFile("a.mp4", 3, index=0)]

    with pytest.raises(ValueError):
        handle.resolve()


def test_error_after_metadata_keeps_ready_state():
    handle = FakeHandle(INFO_HASH, {"a.mp4": b"abc"})
    handle.resolve()
    handle.set_failed("disk full")

    assert handle.ready
    assert handle.error == "disk full"


def test_error_before_metadata_is_terminal():
    handle = FakeHandle(INFO_HASH)
    handle.set_failed("bad magnet")

    assert handle.state is HandleState.FAILED
    with pytest.raises(ValueError):
        handle.resolve()


def test_piece_slices_single_piece():
    assert piece_slices(offset=0, start=100, end=199, piece_length=1024) == [(0, 100, 200)]


def test_piece_slices_span_pieces_with_file_offset():
    # file starts 1000 bytes into the torrent, pieces are 512 bytes
    slices = piece_slices(offset=1000, start=0, end=999, piece_length=512)

    assert slices == [(1, 488, 512), (2, 0, 512), (3, 0, 464)]
    assert sum(last - first for _, first, last in slices) == 1000


def test_base_handle_cannot_be_instantiated():
    with pytest.raises(TypeError):
        FetchHandle(INFO_HASH)
