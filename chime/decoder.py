"""
Text recovery from attributedBody blobs.

Newer macOS versions often leave message.text NULL and store the text only
inside attributedBody, an NSArchiver typedstream of an NSAttributedString.
We do not implement the typedstream format. Instead we scan for the
embedded NSString objects and read their length-prefixed payloads.

Layout around each string, as observed in chat.db:

    b"NSString" | 5 header bytes | length | payload
    length = one byte, or 0x81 followed by a little-endian u16

The format is undocumented and changes between releases, so decoding never
raises: anything unexpected ends the scan and whatever was recovered so far
is returned.
"""

import logging
from enum import Enum
from typing import List, Optional

logger = logging.getLogger(__name__)

NSSTRING_MARKER = b"NSString"
HEADER_SIZE = 5
LONG_LENGTH_SENTINEL = 0x81


class _State(Enum):
    SEEK_MARKER = "seek_marker"
    READ_HEADER = "read_header"
    READ_LENGTH = "read_length"
    READ_PAYLOAD = "read_payload"
    DONE = "done"


def _accept(payload: bytes) -> Optional[str]:
    """Return the trimmed fragment if the payload is usable text."""
    if b"\x00" in payload:
        return None
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError:
        return None
    text = text.strip()
    return text or None


def scan_fragments(data: Optional[bytes]) -> List[str]:
    """
    Extract every readable NSString payload from an attributedBody blob.

    Args:
        data: Raw attributedBody bytes (may be None or empty).

    Returns:
        Accepted text fragments in buffer order.
    """
    if not data:
        return []

    buf = bytes(data)
    size = len(buf)
    fragments: List[str] = []

    state = _State.SEEK_MARKER
    pos = 0
    length = 0

    while state is not _State.DONE:
        if state is _State.SEEK_MARKER:
            idx = buf.find(NSSTRING_MARKER, pos)
            if idx == -1:
                state = _State.DONE
            else:
                pos = idx + len(NSSTRING_MARKER)
                state = _State.READ_HEADER

        elif state is _State.READ_HEADER:
            # at least one byte must follow the header
            if pos + HEADER_SIZE >= size:
                state = _State.DONE
            else:
                pos += HEADER_SIZE
                state = _State.READ_LENGTH

        elif state is _State.READ_LENGTH:
            if buf[pos] == LONG_LENGTH_SENTINEL:
                if pos + 3 > size:
                    state = _State.DONE
                    continue
                length = buf[pos + 1] | (buf[pos + 2] << 8)
                pos += 3
            else:
                length = buf[pos]
                pos += 1
            state = _State.READ_PAYLOAD

        elif state is _State.READ_PAYLOAD:
            end = pos + length
            if end > size:
                state = _State.DONE
                continue
            fragment = _accept(buf[pos:end])
            if fragment is not None:
                fragments.append(fragment)
            pos = end
            state = _State.SEEK_MARKER

    return fragments


def decode_attributed_body(data: Optional[bytes]) -> str:
    """
    Recover message text from an attributedBody blob.

    Returns:
        Fragments joined with single spaces, or "" if nothing was recovered.
    """
    try:
        return " ".join(scan_fragments(data))
    except Exception:
        logger.debug("attributedBody scan failed", exc_info=True)
        return ""
