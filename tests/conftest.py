"""Shared test fixtures for the guided_reader test suite.

WHY: Selection, highlight and session tests all need a rendered text
mounted in a content container, plus a way to express a user selection
by absolute offsets instead of hand-picking tree nodes.

HOW: Fixtures build ReaderContext instances from a text and intervals, and
a selection factory turns (start, end) offsets into a Selection the way a
browser reports one: the start boundary sits at the beginning of the node
that follows it, the end boundary at the end of the node that precedes it.

RULES:
- Sample texts and captions match the worked examples of the engine docs
- Every fixture returns fresh objects (no shared mutable state)
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import pytest

from guided_reader.core.context import ReaderContext
from guided_reader.core.ir import (
    AnnotationInterval,
    CaptionEntry,
    Rect,
    Selection,
    SelectionBoundary,
)
from guided_reader.core.offsets import locate_offset
from guided_reader.core.overlay import render_annotated_text
from guided_reader.core.text import iter_text_nodes

SAMPLE_VTT = """WEBVTT

1
00:00:00.000 --> 00:00:02.500
The quick

2
00:00:03.000 --> 00:00:05.000 align:start
fox jumps.
Second line

bad
00:00:xx.000 --> 00:00:06.000
dropped

00:00:07.000 --> 00:00:08.000
No identifier
"""


def mount_text(
    text: str,
    intervals: Sequence[AnnotationInterval] = (),
    text_id: int = 7,
) -> ReaderContext:
    """Render text with intervals into a fresh context."""
    context = ReaderContext()
    context.switch_text(text_id, text)
    context.intervals = list(intervals)
    context.mount(render_annotated_text(text, context.intervals))
    return context


def _start_boundary(container, offset: int) -> SelectionBoundary:
    position = 0
    for node in iter_text_nodes(container):
        if offset < position + len(node):
            return SelectionBoundary(node=node, offset=offset - position)
        position += len(node)
    node, intra = locate_offset(container, offset)
    return SelectionBoundary(node=node, offset=intra)


def _end_boundary(container, offset: int) -> SelectionBoundary:
    node, intra = locate_offset(container, offset)
    return SelectionBoundary(node=node, offset=intra)


def make_selection(
    context: ReaderContext,
    start: int,
    end: int,
    rect: Optional[Rect] = None,
    scroll_x: float = 0.0,
    scroll_y: float = 0.0,
) -> Selection:
    """Build a Selection over [start, end) of the context's container."""
    container = context.container
    return Selection(
        start=_start_boundary(container, start),
        end=_end_boundary(container, end),
        rect=rect or Rect(left=100.0, top=200.0, width=50.0, height=20.0),
        scroll_x=scroll_x,
        scroll_y=scroll_y,
    )


@pytest.fixture
def mounted():
    """Factory fixture: mounted(text, intervals) -> ReaderContext."""
    return mount_text


@pytest.fixture
def select():
    """Factory fixture: select(context, start, end, ...) -> Selection."""
    return make_selection


@pytest.fixture
def fox_context() -> ReaderContext:
    """'The quick fox jumps.' with 'fox jumps' annotated."""
    return mount_text("The quick fox jumps.", [AnnotationInterval(id=1, start=10, end=19)])


@pytest.fixture
def fox_captions() -> List[CaptionEntry]:
    return [
        CaptionEntry(start=0, end=2, text="The quick"),
        CaptionEntry(start=3, end=5, text="fox jumps"),
    ]


@pytest.fixture
def sample_vtt() -> str:
    return SAMPLE_VTT
