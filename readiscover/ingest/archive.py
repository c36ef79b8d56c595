"""
archive.py
----------
Minimal reader for 512-byte-block tar archives (the layout arXiv serves as
`/src/<id>` once gunzipped). Only the fields the pipeline needs are decoded:
name, size and type flag. Everything else in the header is ignored.
"""
from __future__ import annotations

import logging
from typing import Iterator, List

from ..errors import ArchiveTruncatedError
from ..models import ArchiveEntry, EntryKind

logger = logging.getLogger(__name__)

BLOCK_SIZE = 512

NAME_FIELD = slice(0, 100)
SIZE_FIELD = slice(124, 136)
TYPEFLAG_OFFSET = 156
DIRECTORY_FLAG = ord("5")


def _parse_size(field: bytes) -> int:
    """Octal ASCII size; empty or garbage means zero."""
    text = field.replace(b"\0", b" ").decode("ascii", errors="replace").strip()
    if not text:
        return 0
    try:
        return max(0, int(text, 8))
    except ValueError:
        return 0


def _padded(size: int) -> int:
    return -(-size // BLOCK_SIZE) * BLOCK_SIZE


def iter_entries(data: bytes) -> Iterator[ArchiveEntry]:
    """
    Yield archive entries in stored order.

    Stops at the first header whose name field is empty (the end-of-archive
    marker) or when the buffer is exhausted. Raises ArchiveTruncatedError when
    an entry's declared size runs past the end of the buffer.
    """
    offset = 0
    total = len(data)
    while offset < total:
        header = data[offset:offset + BLOCK_SIZE]
        if len(header) < BLOCK_SIZE:
            if header.strip(b"\0"):
                raise ArchiveTruncatedError(f"Archive ends inside a header at byte {offset}")
            break

        name = header[NAME_FIELD].replace(b"\0", b"").decode("utf-8", errors="replace").strip()
        if not name:
            break

        size = _parse_size(header[SIZE_FIELD])
        is_dir = header[TYPEFLAG_OFFSET] == DIRECTORY_FLAG
        offset += BLOCK_SIZE

        if is_dir:
            yield ArchiveEntry(path=name, size_bytes=0, kind=EntryKind.DIRECTORY)
            continue

        end = offset + size
        if end > total:
            raise ArchiveTruncatedError(
                f"Archive entry '{name}' declares {size} bytes but only {total - offset} remain"
            )
        yield ArchiveEntry(path=name, size_bytes=size, kind=EntryKind.REGULAR, raw_content=data[offset:end])
        offset += _padded(size)


def extract_entries(data: bytes) -> List[ArchiveEntry]:
    entries = list(iter_entries(data))
    logger.debug("Extracted %d archive entries", len(entries))
    return entries
