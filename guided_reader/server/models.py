"""Pydantic request/response models for the HTTP API.

WHY: The FastAPI endpoints need typed schemas for request validation,
response serialization and automatic OpenAPI documentation. Pydantic
models enforce field types at runtime and generate JSON Schema that
appears in the /docs UI.

HOW: Each endpoint pair (request + response) has its own model. Core
dataclasses are converted at the edge by small from_* helpers so the core
never imports pydantic.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Offsets are absolute plain-text character offsets; ends are exclusive
- Tree positions are child-index paths from the content container
- Python 3.9+ compatible (no PEP 604 unions, use Optional from typing)
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from guided_reader.core.ir import (
    AnnotationInterval,
    CaptionEntry,
    OverlayRun,
    Position,
    SelectionCandidate,
)


# ---------------------------------------------------------------------------
# Shared building blocks
# ---------------------------------------------------------------------------


class IntervalModel(BaseModel):
    """One persisted annotation interval."""

    id: int = Field(default=-1, description="Annotation id.")
    start: int = Field(description="Start offset (inclusive).")
    end: int = Field(description="End offset (exclusive).")

    def to_interval(self, text_id: int = -1) -> AnnotationInterval:
        return AnnotationInterval(id=self.id, start=self.start, end=self.end, text_id=text_id)


class RunModel(BaseModel):
    """One rendered run of plain or annotated text."""

    kind: str = Field(description="'plain' or 'annotated'.")
    run_id: str = Field(description="Render-local element id, e.g. 'annotated-text-0'.")
    text: str = Field(description="Text covered by the run.")
    start: int = Field(description="Start offset (inclusive).")
    end: int = Field(description="End offset (exclusive).")

    @classmethod
    def from_run(cls, run: OverlayRun) -> RunModel:
        return cls(kind=run.kind, run_id=run.run_id, text=run.text, start=run.start, end=run.end)


class CaptionEntryModel(BaseModel):
    """One caption cue with whole-second bounds."""

    start: int = Field(description="Cue start in whole seconds.")
    end: int = Field(description="Cue end in whole seconds.")
    text: str = Field(description="Cue text; lines joined with newlines.")

    @classmethod
    def from_entry(cls, entry: CaptionEntry) -> CaptionEntryModel:
        return cls(start=entry.start, end=entry.end, text=entry.text)

    def to_entry(self) -> CaptionEntry:
        return CaptionEntry(start=self.start, end=self.end, text=self.text)


class CandidateModel(BaseModel):
    """A validated, not yet persisted annotation range."""

    text_id: int = Field(description="Id of the text the selection belongs to.")
    text: str = Field(description="Selected text with trailing whitespace trimmed.")
    start: int = Field(description="Start offset (inclusive).")
    end: int = Field(description="End offset (exclusive).")

    @classmethod
    def from_candidate(cls, candidate: SelectionCandidate) -> CandidateModel:
        return cls(
            text_id=candidate.text_id,
            text=candidate.text,
            start=candidate.start,
            end=candidate.end,
        )


class PositionModel(BaseModel):
    """Page coordinates of the annotate button."""

    x: float = Field(description="Horizontal page coordinate.")
    y: float = Field(description="Vertical page coordinate.")

    @classmethod
    def from_position(cls, position: Position) -> PositionModel:
        return cls(x=position.x, y=position.y)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RenderRequest(BaseModel):
    """Text plus annotation intervals to render."""

    text: str = Field(description="Sanitized text, may contain inline HTML.")
    annotations: List[IntervalModel] = Field(
        default_factory=list,
        description="Annotation intervals in any order; duplicates are collapsed.",
    )


class CaptionParseRequest(BaseModel):
    """Raw WEBVTT content to parse."""

    content: str = Field(description="Full text of a WEBVTT file.")


class SessionCreateRequest(BaseModel):
    """Open a text in a new reader session.

    RULES:
    - captions takes precedence over vtt when both are given
    """

    text_id: int = Field(default=-1, description="Id of the text being opened.")
    text: str = Field(description="Sanitized text, may contain inline HTML.")
    annotations: List[IntervalModel] = Field(
        default_factory=list,
        description="Persisted annotation intervals.",
    )
    captions: Optional[List[CaptionEntryModel]] = Field(
        default=None,
        description="Pre-parsed caption entries for playback highlighting.",
    )
    vtt: Optional[str] = Field(
        default=None,
        description="Raw WEBVTT content, parsed server-side.",
    )


class AnnotationsUpdateRequest(BaseModel):
    """Replace the interval set of a session's text."""

    annotations: List[IntervalModel] = Field(description="The full new interval set.")


class CaptionsUpdateRequest(BaseModel):
    """Replace a session's caption track."""

    captions: Optional[List[CaptionEntryModel]] = Field(
        default=None,
        description="Pre-parsed caption entries.",
    )
    vtt: Optional[str] = Field(default=None, description="Raw WEBVTT content.")


class BoundaryModel(BaseModel):
    """A selection boundary addressed by tree path."""

    path: List[int] = Field(
        description="Child-index path from the content container to the boundary node.",
    )
    offset: int = Field(
        description="Character offset in a text node, or child index in an element.",
    )


class RectModel(BaseModel):
    """Bounding rectangle of the selection, in viewport coordinates."""

    left: float = Field(default=0.0, description="Left edge.")
    top: float = Field(default=0.0, description="Top edge.")
    width: float = Field(default=0.0, description="Width.")
    height: float = Field(default=0.0, description="Height.")


class SelectionRequest(BaseModel):
    """A pointer release, with the selection it left behind.

    RULES:
    - Omitting start or end means the selection is empty
    """

    start: Optional[BoundaryModel] = Field(default=None, description="Anchor boundary.")
    end: Optional[BoundaryModel] = Field(default=None, description="Focus boundary.")
    rect: RectModel = Field(default_factory=RectModel, description="Selection bounding box.")
    scroll_x: float = Field(default=0.0, description="Horizontal page scroll.")
    scroll_y: float = Field(default=0.0, description="Vertical page scroll.")
    target_id: Optional[str] = Field(
        default=None,
        description="id of the element the release happened on.",
    )


class TickRequest(BaseModel):
    """One playback time update."""

    time: float = Field(description="Playback position in seconds.")
    playing: bool = Field(default=True, description="False while playback is paused.")


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class RenderResponse(BaseModel):
    """Rendered markup and its runs."""

    markup: str = Field(description="Rendered HTML markup.")
    runs: List[RunModel] = Field(description="Plain and annotated runs in document order.")

    model_config = {"json_schema_extra": {
        "examples": [
            {
                "markup": (
                    '<span id="plain-text-0">The </span>'
                    '<span class="annotated_text" id="annotated-text-0">quick</span>'
                    '<span id="plain-text-1"> fox</span>'
                ),
                "runs": [
                    {"kind": "plain", "run_id": "plain-text-0", "text": "The ", "start": 0, "end": 4},
                    {"kind": "annotated", "run_id": "annotated-text-0", "text": "quick", "start": 4, "end": 9},
                    {"kind": "plain", "run_id": "plain-text-1", "text": " fox", "start": 9, "end": 13},
                ],
            }
        ]
    }}


class CaptionParseResponse(BaseModel):
    """Parsed caption entries."""

    entries: List[CaptionEntryModel] = Field(description="Entries in source order.")


class SessionResponse(BaseModel):
    """Current state of a reader session."""

    id: str = Field(description="Unique session identifier.")
    text_id: int = Field(description="Id of the open text.")
    text: str = Field(description="Plain text of the container; offsets count over it.")
    markup: str = Field(description="Current container markup, highlights included.")
    runs: List[RunModel] = Field(description="Runs of the last full render.")
    selection_state: str = Field(description="'idle', 'candidate' or 'committed'.")
    candidate: Optional[CandidateModel] = Field(
        default=None,
        description="The current selection candidate, if any.",
    )
    caption_count: int = Field(description="Number of loaded caption entries.")
    active_caption: Optional[CaptionEntryModel] = Field(
        default=None,
        description="The caption entry currently highlighted, if any.",
    )
    created_at: float = Field(description="Session creation timestamp (Unix epoch seconds).")


class SelectionResponse(BaseModel):
    """Outcome of a pointer release."""

    state: str = Field(description="Selection state after the release.")
    candidate: Optional[CandidateModel] = Field(
        default=None,
        description="The candidate, when the release produced one.",
    )
    anchor_position: Optional[PositionModel] = Field(
        default=None,
        description="Where to show the annotate button.",
    )


class TickResponse(BaseModel):
    """Outcome of a playback tick."""

    changed: bool = Field(description="True if the highlight layer was recomputed.")
    active_caption: Optional[CaptionEntryModel] = Field(
        default=None,
        description="The caption entry currently highlighted, if any.",
    )
    markup: str = Field(description="Current container markup.")


class ErrorResponse(BaseModel):
    """Standard error response body.

    RULES:
    - detail is always a human-readable error message
    """

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
    sessions: int = Field(description="Number of live reader sessions.")
