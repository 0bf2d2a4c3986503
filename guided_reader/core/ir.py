"""Intermediate representation dataclasses for the overlay engine.

WHY: Annotations come from a database, captions from a subtitle file and
selections from pointer events. Each arrives in its own shape. The
renderer, the selection controller and the highlight synchronizer need
one well-typed vocabulary so they can be tested without a live page.

HOW: Plain dataclasses, one per concept:
  AnnotationInterval — persisted character range [start, end) on a text
  CaptionEntry       — one time-coded cue from a caption track
  OverlayRun         — one plain or annotated run of rendered text
  RenderedOverlay    — the full render result: markup plus its runs
  SelectionCandidate — a tentative, unpersisted annotation range
  Rect / Position    — selection geometry and the affordance anchor
  SelectionBoundary  — a (node, offset) point in the rendered tree
  Selection          — start and end boundaries plus geometry
  SelectionResult    — what the controller hands back for a candidate

RULES:
- All offsets are absolute and count normalized plain-text characters
- Intervals are half-open: end is exclusive
- CaptionEntry is frozen; entries never change after parsing
- OverlayRun.run_id is render-local and must never be persisted
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from bs4.element import PageElement

RUN_PLAIN = "plain"
RUN_ANNOTATED = "annotated"


@dataclass
class AnnotationInterval:
    """A persisted annotation range on one text.

    WHY: Annotations are stored as character offsets so they survive
    re-rendering, restyling and markup changes.

    RULES:
    - 0 <= start < end <= len(text) for well-formed data
    - Several intervals may share (start, end): one per discussion thread
    - The core treats these as read-only
    """

    id: int
    start: int
    end: int
    text_id: int = -1

    @classmethod
    def from_dict(cls, data: dict, text_id: Optional[int] = None) -> AnnotationInterval:
        """Parse an interval from a text API / request payload dict."""
        return cls(
            id=int(data.get("id", -1)),
            start=int(data["start"]),
            end=int(data["end"]),
            text_id=int(data.get("text_id", text_id if text_id is not None else -1)),
        )


@dataclass(frozen=True)
class CaptionEntry:
    """A single caption cue parsed from a WEBVTT track.

    WHY: Playback highlighting only needs to know which cue is active at
    a given time and which words it contains.

    RULES:
    - start/end are whole seconds since the start of the audio
    - text keeps the cue's lines joined with newlines
    """

    start: int
    end: int
    text: str


@dataclass
class OverlayRun:
    """One run of rendered text, either plain or inside an annotation."""

    kind: str  # RUN_PLAIN or RUN_ANNOTATED
    run_id: str
    text: str
    start: int
    end: int


@dataclass
class RenderedOverlay:
    """Result of rendering a text with its annotation intervals.

    RULES:
    - markup reproduces the source structure with runs wrapped in spans
    - runs are ordered by start offset and tile the whole text
    """

    markup: str
    runs: list[OverlayRun] = field(default_factory=list)


@dataclass
class SelectionCandidate:
    """A selected run that may be promoted to a new annotation."""

    text_id: int
    text: str
    start: int
    end: int

    def key(self) -> tuple:
        """Identity used for toggle-off detection."""
        return (self.text, self.start, self.end)


@dataclass
class Position:
    """Page coordinates of the floating annotate button."""

    x: float
    y: float


@dataclass
class Rect:
    """Bounding client rectangle of a selection."""

    left: float = 0.0
    top: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass
class SelectionBoundary:
    """A point in the rendered tree.

    RULES:
    - For a text node, offset is a character index into that node
    - For an element, offset is a child index (DOM range semantics)
    """

    node: PageElement
    offset: int


@dataclass
class Selection:
    """A user selection: two boundaries plus bounding geometry."""

    start: SelectionBoundary
    end: SelectionBoundary
    rect: Rect = field(default_factory=Rect)
    scroll_x: float = 0.0
    scroll_y: float = 0.0


@dataclass
class SelectionResult:
    """A validated candidate and where to show its affordance."""

    candidate: SelectionCandidate
    anchor_position: Position
