import abc
import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Sequence, Tuple

from web.server.exceptions import FetchError

logger = logging.getLogger("handle")


class HandleState(enum.Enum):
    CREATED = "created"
    METADATA_PENDING = "metadata_pending"
    METADATA_READY = "metadata_ready"
    FAILED = "failed"


_TRANSITIONS = {
    HandleState.CREATED: {HandleState.METADATA_PENDING, HandleState.FAILED},
    HandleState.METADATA_PENDING: {HandleState.METADATA_READY, HandleState.FAILED},
    HandleState.METADATA_READY: set(),
    HandleState.FAILED: set(),
}


@dataclass(frozen=True)
class TorrentFile:
    name: str
    length: int
    index: int = 0
    offset: int = 0


def piece_slices(
    offset: int, start: int, end: int, piece_length: int
) -> List[Tuple[int, int, int]]:
    """
    Map the inclusive byte range [start, end] of a file that begins at
    ``offset`` inside the torrent onto pieces.

    Returns (piece, first_cut, last_cut) tuples where ``data[first_cut:last_cut]``
    is the part of the piece that belongs to the range.
    """
    absolute_start = offset + start
    absolute_end = offset + end
    first_piece = absolute_start // piece_length
    last_piece = absolute_end // piece_length

    slices = []
    for piece in range(first_piece, last_piece + 1):
        piece_start = piece * piece_length
        first_cut = max(absolute_start - piece_start, 0)
        last_cut = min(absolute_end - piece_start, piece_length - 1) + 1
        slices.append((piece, first_cut, last_cut))
    return slices


class FetchHandle(abc.ABC):
    """
    One active or completed fetch of a torrent.

    Subclasses supply ``num_peers`` and ``read``; the readiness state machine
    lives here so every backend moves through the same states.
    """

    def __init__(self, info_hash: str):
        self.info_hash = info_hash
        self.files: List[TorrentFile] = []
        self.state = HandleState.CREATED
        self.error: Optional[str] = None
        self.active_readers = 0
        self._settled = asyncio.Event()

    def __repr__(self):
        return f"<{type(self).__name__} {self.info_hash} {self.state.value}>"

    @property
    def ready(self) -> bool:
        return self.state is HandleState.METADATA_READY

    @property
    def failed(self) -> bool:
        return self.state is HandleState.FAILED

    @property
    def num_peers(self) -> int:
        return 0

    def _transition(self, new_state: HandleState):
        if new_state not in _TRANSITIONS[self.state]:
            raise ValueError(f"{self.state.value} -> {new_state.value} is not allowed")
        logger.debug(f"{self.info_hash}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def mark_pending(self):
        if self.state is HandleState.CREATED:
            self._transition(HandleState.METADATA_PENDING)

    def set_ready(self, files: Sequence[TorrentFile]):
        if self.state is not HandleState.METADATA_PENDING:
            self.mark_pending()
        self._transition(HandleState.METADATA_READY)
        self.files = list(files)
        self._settled.set()

    def set_failed(self, reason: str):
        if self.state in (HandleState.METADATA_READY, HandleState.FAILED):
            # metadata already delivered; later errors surface on reads
            self.error = reason
            return
        self.error = reason
        self._transition(HandleState.FAILED)
        self._settled.set()

    async def wait_ready(self):
        """Block until metadata is resolved; raise FetchError if the fetch fails first."""
        await self._settled.wait()
        if self.failed:
            raise FetchError()

    def playable_file(self, extensions: Sequence[str]) -> Optional[TorrentFile]:
        for f in self.files:
            if f.name.lower().endswith(tuple(extensions)):
                return f
        return None

    @abc.abstractmethod
    def read(self, file: TorrentFile, start: int, end: int) -> AsyncIterator[bytes]:
        """Yield the bytes of ``file`` in the inclusive range [start, end]."""
