# src/tokentree/core/classifier.py
import codecs
import logging
import os
from pathlib import Path

from tokentree.config import MAX_FILE_SIZE, SNIFF_BYTES, STDIN_LABEL
from tokentree.models import FileEntry, FileKind

logger = logging.getLogger(__name__)


def looks_like_utf8(prefix: bytes, complete: bool) -> bool:
    """
    True if ``prefix`` decodes as UTF-8.

    When the prefix is only the head of a longer file (``complete`` False), a
    multi-byte sequence cut off at the very end is accepted: the sniff buffer
    simply ended mid-character.
    """
    decoder = codecs.getincrementaldecoder("utf-8")()
    try:
        decoder.decode(prefix, final=complete)
    except UnicodeDecodeError:
        return False
    return True


def classify_bytes(data: bytes) -> FileKind:
    if len(data) > MAX_FILE_SIZE:
        return FileKind.TOO_LARGE
    return FileKind.TEXT if looks_like_utf8(data[:SNIFF_BYTES], len(data) <= SNIFF_BYTES) else FileKind.BINARY


def classify_file(path: Path, rel_path: str) -> FileEntry:
    """
    Decides Text / Binary / TooLarge / Unreadable for one file.
    Reads at most SNIFF_BYTES; oversized files are never opened.
    """
    try:
        size = os.stat(path).st_size
    except OSError as e:
        logger.warning("%s: %s", rel_path, e.strerror or e)
        return FileEntry(path, rel_path, 0, FileKind.UNREADABLE, reason=e.strerror or str(e))

    if size > MAX_FILE_SIZE:
        return FileEntry(path, rel_path, size, FileKind.TOO_LARGE, reason="too large")

    try:
        with path.open("rb") as f:
            prefix = f.read(SNIFF_BYTES)
    except OSError as e:
        logger.warning("%s: %s", rel_path, e.strerror or e)
        return FileEntry(path, rel_path, size, FileKind.UNREADABLE, reason=e.strerror or str(e))

    kind = FileKind.TEXT if looks_like_utf8(prefix, len(prefix) >= size) else FileKind.BINARY
    return FileEntry(path, rel_path, size, kind)


def classify_stdin(data: bytes) -> FileEntry:
    kind = classify_bytes(data)
    reason = "too large" if kind is FileKind.TOO_LARGE else None
    return FileEntry(Path(STDIN_LABEL), STDIN_LABEL, len(data), kind, reason=reason, data=data)
