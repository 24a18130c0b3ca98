from typing import Optional, Tuple

from web.server.exceptions import RangeNotSatisfiable


def parse_range(range_header: Optional[str], total_size: int) -> Tuple[int, int]:
    """
    Turn a ``Range: bytes=start-end`` header into inclusive offsets.

    A missing end means "to the end of the file". Suffix and multi-part
    ranges are not supported and, like out-of-bounds ranges, raise
    RangeNotSatisfiable.
    """
    if not range_header:
        return 0, total_size - 1

    try:
        hdr = range_header.strip().replace("bytes=", "")
        from_bytes, until_bytes = hdr.split("-")
        start = int(from_bytes)
        end = int(until_bytes) if until_bytes.strip() else total_size - 1
    except ValueError:
        raise RangeNotSatisfiable(total_size)

    if start < 0 or end >= total_size or end < start:
        raise RangeNotSatisfiable(total_size)

    return start, end
