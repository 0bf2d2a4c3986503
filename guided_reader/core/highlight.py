"""Playback highlight synchronizer: keeps the spoken caption highlighted.

WHY: While narration plays, the sentence being read should light up in the
text. Caption cues change every few seconds, the rendered tree already
carries annotated wrappers that must never be lost, and the reader may be
selecting text at the same time. The highlight layer therefore has to be
applied incrementally on top of the rendered tree without disturbing
anything that is not a highlight.

HOW: tick() looks up the active caption entry for the playback time. Only
when the entry's identity changes does it touch the tree:
  1. Collect the blocks: the nearest ancestor of each text node that is
     not one of our own wrapper spans. Each block is processed once.
  2. Flatten each block, innermost first, into atoms: text (from bare
     strings, plain wrappers and highlight spans) and opaque nodes
     (annotated wrappers, highlight spans holding one, inline and
     structural children, comments) with their text positions.
  3. Search the block's text for the caption (case-insensitive, padded
     with the surrounding whitespace) and rebuild the block from the
     atoms, wrapping matched text in highlight spans.
Blocks with no match only get their stale highlight spans unwrapped.

RULES:
- Never recompute while paused; never recompute for the same entry twice
- Annotated wrappers are re-inserted as the same objects, untouched
- An annotated wrapper wholly inside a match nests inside the highlight;
  a wrapper straddling a match boundary stays outside it
- A stale highlight span that contains an annotated descendant is kept
- Highlights never nest: an opaque node swallowed by a match loses the
  highlight spans it already held
- Flattened plain wrappers are not restored: the highlight layer owns the
  block's text nodes from then on
"""

from __future__ import annotations

import itertools
import logging
import re
from typing import Iterator, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup
from bs4.element import NavigableString, PageElement, PreformattedString, Tag

from guided_reader.config import HIGHLIGHT_CLASS
from guided_reader.core.context import ReaderContext
from guided_reader.core.ir import CaptionEntry
from guided_reader.core.text import (
    closest,
    is_annotated_wrapper,
    is_highlight_wrapper,
    is_plain_wrapper,
    is_run_wrapper,
    is_text_node,
    iter_text_nodes,
    normalize_text,
    parse_fragment,
    plain_text,
    text_length,
)

logger = logging.getLogger(__name__)

_TEXT = "text"
_NODE = "node"

# (kind, payload, length): payload is a str for text atoms, a node otherwise
_Atom = Tuple[str, object, int]


def active_entry(entries: Sequence[CaptionEntry], time: float) -> Optional[CaptionEntry]:
    """First entry whose [start, end] range contains time, inclusive."""
    index = _active_index(entries, time)
    return entries[index] if index is not None else None


def _active_index(entries: Sequence[CaptionEntry], time: float) -> Optional[int]:
    for index, entry in enumerate(entries):
        if entry.start <= time <= entry.end:
            return index
    return None


def caption_pattern(caption_text: str) -> Optional[re.Pattern]:
    """Compile the block search pattern for one caption, or None if empty.

    The caption is normalized first, and each space in it matches any
    whitespace run, so cues that wrap across lines still find their text.
    """
    needle = normalize_text(caption_text)
    if not needle:
        return None
    body = r"\s+".join(re.escape(word) for word in needle.split(" "))
    return re.compile(r"\s*" + body + r"\s*", re.IGNORECASE)


class HighlightSynchronizer:
    """Applies the active caption's highlight to the context's container.

    RULES:
    - Entry identity is its index in the entry list, so two cues with the
      same text and times still count as different entries
    - invalidate() must be called after the container is replaced
    """

    def __init__(self, context: ReaderContext, entries: Sequence[CaptionEntry] = ()) -> None:
        self._context = context
        self._entries: List[CaptionEntry] = list(entries)
        self._active: Optional[int] = None

    @property
    def entries(self) -> List[CaptionEntry]:
        return list(self._entries)

    @property
    def current(self) -> Optional[CaptionEntry]:
        """The caption entry currently highlighted, if any."""
        if self._active is None:
            return None
        return self._entries[self._active]

    def set_entries(self, entries: Sequence[CaptionEntry]) -> None:
        """Replace the caption track. Existing highlights are removed."""
        self._entries = list(entries)
        self._active = None
        container = self._context.container
        if container is not None:
            clear_highlights(container)

    def invalidate(self) -> None:
        """Forget the active entry so the next playing tick re-applies it."""
        self._active = None

    def tick(self, time: float, playing: bool) -> bool:
        """Advance to the playback time.

        Args:
            time: Playback position in seconds.
            playing: False while paused; paused ticks never recompute.

        Returns:
            True if the highlight layer was recomputed.
        """
        if not playing:
            return False

        index = _active_index(self._entries, time)
        if index == self._active:
            return False
        self._active = index

        container = self._context.container
        if container is None:
            return False

        if index is None:
            logger.debug("No caption active at %.2fs, clearing highlights", time)
            clear_highlights(container)
            return True

        entry = self._entries[index]
        logger.debug("Caption %d active at %.2fs: %r", index, time, entry.text)
        apply_highlight(container, entry.text)
        return True


# ---------------------------------------------------------------------------
# Tree mutation
# ---------------------------------------------------------------------------


def apply_highlight(container: Tag, caption_text: str) -> int:
    """Highlight every occurrence of caption_text under container.

    Returns:
        Number of highlighted matches.
    """
    pattern = caption_pattern(caption_text)
    if pattern is None:
        clear_highlights(container)
        return 0

    total = 0
    # innermost first, so an enclosing block sees finished inline elements
    for block in sorted(_blocks(container), key=_depth, reverse=True):
        text = plain_text(block)
        matches = [(m.start(), m.end()) for m in pattern.finditer(text) if m.end() > m.start()]
        if matches:
            _rebuild_block(block, matches)
            total += len(matches)
        else:
            _drop_stale(block)
    return total


def clear_highlights(container: Tag) -> None:
    """Unwrap every highlight span that holds no annotated wrapper."""
    for span in container.find_all(_is_dissolvable_highlight):
        parent = span.parent
        span.unwrap()
        parent.smooth()


def _blocks(container: Tag) -> List[Tag]:
    blocks: List[Tag] = []
    seen = set()
    for node in iter_text_nodes(container):
        block = closest(node, lambda element: not is_run_wrapper(element))
        if block is None or id(block) in seen:
            continue
        seen.add(id(block))
        blocks.append(block)
    return blocks


def _depth(node: PageElement) -> int:
    return sum(1 for _ in node.parents)


def _drop_stale(block: Tag) -> None:
    changed = False
    for child in list(block.contents):
        if _is_dissolvable_highlight(child):
            child.unwrap()
            changed = True
    if changed:
        block.smooth()


def _atoms(parent: Tag) -> Iterator[_Atom]:
    for child in parent.contents:
        if is_text_node(child):
            yield _TEXT, str(child), len(child)
        elif is_plain_wrapper(child) or _is_dissolvable_highlight(child):
            yield from _atoms(child)
        elif isinstance(child, PreformattedString):
            yield _NODE, child, 0
        elif isinstance(child, Tag):
            yield _NODE, child, text_length(child)


def _is_dissolvable_highlight(element: PageElement) -> bool:
    return is_highlight_wrapper(element) and element.find(is_annotated_wrapper) is None


def _rebuild_block(block: Tag, matches: Sequence[Tuple[int, int]]) -> None:
    atoms = list(_atoms(block))
    for child in list(block.contents):
        child.extract()

    pieces: List[Tuple[Optional[int], str, object]] = []
    position = 0
    for kind, payload, length in atoms:
        start, end = position, position + length
        if kind == _TEXT:
            for piece_start, piece_end in _cut(start, end, matches):
                label = _match_label(piece_start, piece_end, matches)
                pieces.append((label, _TEXT, payload[piece_start - start:piece_end - start]))
        else:
            label = _match_label(start, end, matches) if length else None
            if label is None:
                pieces.append((label, _NODE, payload))
            else:
                pieces.extend((label, _NODE, node) for node in _inside_match(payload))
        position = end

    soup = _soup_for(block)
    for label, group in itertools.groupby(pieces, key=lambda piece: piece[0]):
        target = block
        if label is not None:
            target = soup.new_tag("span", attrs={"class": [HIGHLIGHT_CLASS]})
            block.append(target)
        _append_pieces(target, group)
    block.smooth()


def _inside_match(node: PageElement) -> List[PageElement]:
    """Nodes to place inside a new highlight span in place of node."""
    if not isinstance(node, Tag):
        return [node]
    for span in node.find_all(is_highlight_wrapper):
        span.unwrap()
    if is_highlight_wrapper(node):
        return [child.extract() for child in list(node.contents)]
    return [node]


def _cut(start: int, end: int, matches: Sequence[Tuple[int, int]]) -> List[Tuple[int, int]]:
    points = {start, end}
    for match_start, match_end in matches:
        for point in (match_start, match_end):
            if start < point < end:
                points.add(point)
    ordered = sorted(points)
    return [(a, b) for a, b in zip(ordered, ordered[1:])]


def _match_label(start: int, end: int, matches: Sequence[Tuple[int, int]]) -> Optional[int]:
    for index, (match_start, match_end) in enumerate(matches):
        if match_start <= start and end <= match_end:
            return index
    return None


def _append_pieces(target: Tag, pieces) -> None:
    buffer: List[str] = []
    for _label, kind, payload in pieces:
        if kind == _TEXT:
            buffer.append(payload)
            continue
        if buffer:
            target.append(NavigableString("".join(buffer)))
            buffer = []
        target.append(payload)
    if buffer:
        target.append(NavigableString("".join(buffer)))


def _soup_for(node: PageElement) -> BeautifulSoup:
    top = node
    while top.parent is not None:
        top = top.parent
    if isinstance(top, BeautifulSoup):
        return top
    return parse_fragment("")
