from __future__ import annotations

import codecs
import logging
import re
from typing import Callable, List, Optional

# C0/C1 controls except TAB/LF/CR, DEL, and U+FFFD left behind by undecodable bytes.
_NON_PRINTABLE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufffd]")


def strip_non_printable(text: str) -> str:
    """Drop control characters and decode-replacement marks (boot noise)."""
    return _NON_PRINTABLE.sub("", text)


class LineFramer:
    """
    Splits a byte stream into newline-delimited text frames.

    Decoding is incremental UTF-8 with replacement: a multi-byte character cut
    by a chunk boundary is completed by the next chunk, invalid sequences never
    raise. Blank lines are dropped.
    """

    def __init__(
        self,
        *,
        on_raw: Optional[Callable[[str], None]] = None,
        encoding: str = "utf-8",
        logger: Optional[logging.Logger] = None,
    ):
        self.on_raw = on_raw
        self._encoding = encoding
        self._decoder = codecs.getincrementaldecoder(encoding)("replace")
        self._buffer = ""
        self._log = logger or logging.getLogger(__name__)

    @property
    def pending(self) -> str:
        """Buffered text of the incomplete trailing frame."""
        return self._buffer

    def reset(self) -> None:
        self._decoder = codecs.getincrementaldecoder(self._encoding)("replace")
        self._buffer = ""

    def feed(self, data: bytes) -> List[str]:
        """Feed raw bytes; return the frames completed by this chunk."""
        text = self._decoder.decode(bytes(data))
        if not text:
            return []

        clean = strip_non_printable(text)
        if clean and self.on_raw is not None:
            self.on_raw(clean)

        self._buffer += text
        if "\n" not in self._buffer:
            return []

        *lines, self._buffer = self._buffer.split("\n")
        frames = [ln.strip() for ln in lines]
        frames = [f for f in frames if f]
        if frames:
            self._log.debug("FRAMES_COMPLETED count=%d pending_len=%d", len(frames), len(self._buffer))
        return frames
