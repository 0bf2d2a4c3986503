"""WEBVTT caption track parsing and loading.

WHY: Narrated texts ship with a WEBVTT caption track whose cues follow the
audio. Playback highlighting needs those cues as ordered (start, end, text)
entries. Caption files in the wild are imperfect, so one bad cue must not
cost the whole track.

HOW: parse_vtt() reads the file line by line. It skips everything up to
the WEBVTT header, then collects blank-line-delimited blocks. Lines before
a block's time range are cue identifiers or sequence numbers and are
ignored. The time range sets the cue's bounds, and the remaining lines are
its text. load_caption_track() fetches a track through the reader client
and parses it.

RULES:
- Header: a line reading "WEBVTT", optionally followed by a space and a title
- Time range: HH:MM:SS.mmm --> HH:MM:SS.mmm; cue settings after it are ignored
- Times are converted to whole seconds (sub-second precision is dropped)
- Blocks without a valid time range or without text are dropped silently
- Entries keep source order; monotonicity is not re-validated
- Cue text lines are joined with "\\n"
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, List, Optional

from guided_reader.core.ir import CaptionEntry

if TYPE_CHECKING:
    from guided_reader.api.client import ReaderClient

logger = logging.getLogger(__name__)

_HEADER_RE = re.compile(r"^WEBVTT(?:[ \t].*)?$")
_TIME_RANGE_RE = re.compile(r"(\d{2}:\d{2}:\d{2}\.\d{3}) --> (\d{2}:\d{2}:\d{2}\.\d{3})")
_TIME_RE = re.compile(r"^(\d{2}):(\d{2}):(\d{2})\.(\d{3})$")


def parse_time(value: str) -> Optional[int]:
    """Convert ``HH:MM:SS.mmm`` to whole seconds, or None if malformed."""
    match = _TIME_RE.match(value.strip())
    if not match:
        return None
    hours, minutes, seconds = (int(part) for part in match.groups()[:3])
    if minutes > 59 or seconds > 59:
        return None
    return hours * 3600 + minutes * 60 + seconds


class _Block:
    """Accumulator for the cue currently being read."""

    __slots__ = ("start", "end", "lines", "invalid")

    def __init__(self) -> None:
        self.start: Optional[int] = None
        self.end: Optional[int] = None
        self.lines: List[str] = []
        self.invalid = False

    @property
    def has_timing(self) -> bool:
        return self.start is not None and self.end is not None

    def to_entry(self) -> Optional[CaptionEntry]:
        if self.invalid or not self.has_timing or not self.lines:
            return None
        return CaptionEntry(start=self.start, end=self.end, text="\n".join(self.lines))


def parse_vtt(content: str) -> List[CaptionEntry]:
    """Parse WEBVTT content into ordered caption entries.

    Args:
        content: Full text of a WEBVTT file.

    Returns:
        CaptionEntry list in source order. Empty if the header is missing.
    """
    entries: List[CaptionEntry] = []
    header_seen = False
    block = _Block()
    dropped = 0

    def _flush() -> None:
        nonlocal block, dropped
        entry = block.to_entry()
        if entry is not None:
            entries.append(entry)
        elif block.has_timing or block.invalid:
            dropped += 1
        block = _Block()

    for line in content.splitlines():
        if not header_seen:
            if _HEADER_RE.match(line.lstrip("\ufeff").strip()):
                header_seen = True
            continue

        stripped = line.strip()
        if not stripped:
            _flush()
            continue

        if block.invalid:
            continue

        if "-->" in stripped:
            if block.has_timing:
                # A second time range without a blank line starts a new cue
                _flush()
            match = _TIME_RANGE_RE.search(stripped)
            start = parse_time(match.group(1)) if match else None
            end = parse_time(match.group(2)) if match else None
            if start is None or end is None:
                block.invalid = True
                continue
            block.start, block.end = start, end
        elif block.has_timing:
            block.lines.append(stripped)
        # Lines before the time range are cue identifiers / sequence numbers

    _flush()

    if not header_seen:
        logger.warning("Caption track has no WEBVTT header; no entries parsed")
    elif dropped:
        logger.debug("Dropped %d malformed caption block(s)", dropped)
    return entries


async def load_caption_track(client: ReaderClient, url: str) -> List[CaptionEntry]:
    """Fetch a caption resource and parse it.

    RULES:
    - Network errors propagate to the caller (the session decides policy)
    """
    content = await client.fetch_caption_track(url)
    entries = parse_vtt(content)
    logger.info("Loaded %d caption entries from %s", len(entries), url)
    return entries
