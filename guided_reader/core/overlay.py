"""Overlay renderer: wraps annotated character ranges in rendered markup.

WHY: Texts arrive as lightly structured HTML (paragraphs, emphasis,
line breaks) while annotations are stored as plain-text character offsets.
To show an annotation the renderer must find which pieces of which text
nodes fall inside each interval, without disturbing the structure around
them and without changing a single character of the text.

HOW: The text is normalized and parsed into a tree. A pure recursive walk
threads one absolute-offset cursor through the tree depth-first. Each call
returns (new_nodes, runs, next_cursor), so offsets stay continuous across
element boundaries with no shared mutable state. Each text node is split
against the sorted intervals left-to-right into plain and annotated spans.
Elements are re-emitted with their original tag and attributes. Run ids are
numbered in one pass after the walk.

RULES:
- Half-open overlap test: node_start < interval.end and node_end > interval.start
- Intervals are consumed left-to-right; a later interval is clipped to the
  part not already annotated, so the text is never duplicated
- <br> elements are stripped from the output (they carry no text)
- Stripping all wrapper spans from the output gives back the normalized input
- Run ids are "plain-text-N" / "annotated-text-N", numbered across the whole
  render in document order
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

from bs4 import BeautifulSoup
from bs4.element import PageElement, PreformattedString, Tag

from guided_reader.config import ANNOTATED_CLASS, ANNOTATED_ID_PREFIX, PLAIN_ID_PREFIX
from guided_reader.core.intervals import resolve_intervals
from guided_reader.core.ir import (
    RUN_ANNOTATED,
    RUN_PLAIN,
    AnnotationInterval,
    OverlayRun,
    RenderedOverlay,
)
from guided_reader.core.text import is_text_node, normalize_text, parse_fragment

# Elements dropped from the rendered output.
_STRIPPED_TAGS = frozenset({"br"})


@dataclass
class _PendingRun:
    """A run whose span exists but has not been numbered yet."""

    kind: str
    text: str
    start: int
    end: int
    element: Tag


def render_annotated_text(
    text: str,
    intervals: Iterable[AnnotationInterval],
) -> RenderedOverlay:
    """Render a text with its annotation intervals as annotated markup.

    WHY: This is the single entry point the reader uses whenever the text
    or its interval set changes. The whole markup is regenerated, never
    patched.

    HOW: Normalize, parse, resolve intervals, walk the tree, then number
    the runs and serialize.

    Args:
        text: Sanitized text, possibly containing inline HTML.
        intervals: Annotation intervals in any order, duplicates allowed.

    Returns:
        RenderedOverlay with the markup and its ordered runs.
    """
    source = parse_fragment(normalize_text(text))
    resolved = resolve_intervals(intervals)

    nodes: List[PageElement] = []
    pending: List[_PendingRun] = []
    cursor = 0
    for child in source.contents:
        child_nodes, child_runs, cursor = _render_node(child, resolved, cursor, source)
        nodes.extend(child_nodes)
        pending.extend(child_runs)

    runs = _number_runs(pending)
    # str() of a bare Comment drops its delimiters; serialize through a parent
    holder = source.new_tag("div")
    for node in nodes:
        holder.append(node)
    return RenderedOverlay(markup=holder.decode_contents(), runs=runs)


def _render_node(
    node: PageElement,
    intervals: Sequence[AnnotationInterval],
    cursor: int,
    factory: BeautifulSoup,
) -> Tuple[List[PageElement], List[_PendingRun], int]:
    """Render one node, returning its replacement nodes and the next cursor."""
    if is_text_node(node):
        return _render_text(str(node), intervals, cursor, factory)

    if isinstance(node, Tag):
        if node.name in _STRIPPED_TAGS:
            return [], [], cursor

        element = factory.new_tag(node.name, attrs=_copy_attrs(node))
        runs: List[_PendingRun] = []
        for child in node.contents:
            child_nodes, child_runs, cursor = _render_node(child, intervals, cursor, factory)
            for child_node in child_nodes:
                element.append(child_node)
            runs.extend(child_runs)
        return [element], runs, cursor

    if isinstance(node, PreformattedString):
        # Comments and friends are re-emitted as-is and do not advance offsets
        return [type(node)(str(node))], [], cursor

    return [], [], cursor


def _render_text(
    text: str,
    intervals: Sequence[AnnotationInterval],
    node_start: int,
    factory: BeautifulSoup,
) -> Tuple[List[PageElement], List[_PendingRun], int]:
    """Split one text node into plain and annotated spans."""
    nodes: List[PageElement] = []
    runs: List[_PendingRun] = []
    for kind, start, end in split_text_node(len(text), node_start, intervals):
        piece = text[start - node_start:end - node_start]
        if kind == RUN_ANNOTATED:
            span = factory.new_tag("span", attrs={"class": [ANNOTATED_CLASS]})
        else:
            span = factory.new_tag("span")
        span.string = piece
        nodes.append(span)
        runs.append(_PendingRun(kind=kind, text=piece, start=start, end=end, element=span))
    return nodes, runs, node_start + len(text)


def split_text_node(
    length: int,
    node_start: int,
    intervals: Sequence[AnnotationInterval],
) -> List[Tuple[str, int, int]]:
    """Split the absolute range [node_start, node_start + length) into runs.

    RULES:
    - intervals must be sorted by start (resolve_intervals output)
    - Returns (kind, start, end) triples that tile the range exactly
    - Overlap with an earlier interval is clipped away, never repeated
    """
    node_end = node_start + length
    pieces: List[Tuple[str, int, int]] = []
    consumed = node_start

    for interval in intervals:
        if interval.start >= node_end:
            break
        if not (node_start < interval.end and node_end > interval.start):
            continue
        overlap_start = max(interval.start, consumed)
        overlap_end = min(interval.end, node_end)
        if overlap_end <= overlap_start:
            continue
        if overlap_start > consumed:
            pieces.append((RUN_PLAIN, consumed, overlap_start))
        pieces.append((RUN_ANNOTATED, overlap_start, overlap_end))
        consumed = overlap_end

    if consumed < node_end:
        pieces.append((RUN_PLAIN, consumed, node_end))
    return pieces


def _number_runs(pending: List[_PendingRun]) -> List[OverlayRun]:
    """Assign render-local ids in document order and build the public runs."""
    counters = {RUN_PLAIN: 0, RUN_ANNOTATED: 0}
    prefixes = {RUN_PLAIN: PLAIN_ID_PREFIX, RUN_ANNOTATED: ANNOTATED_ID_PREFIX}
    runs: List[OverlayRun] = []
    for item in pending:
        run_id = "{}{}".format(prefixes[item.kind], counters[item.kind])
        counters[item.kind] += 1
        item.element["id"] = run_id
        runs.append(OverlayRun(
            kind=item.kind,
            run_id=run_id,
            text=item.text,
            start=item.start,
            end=item.end,
        ))
    return runs


def _copy_attrs(element: Tag) -> dict:
    return {
        name: list(value) if isinstance(value, list) else value
        for name, value in element.attrs.items()
    }
