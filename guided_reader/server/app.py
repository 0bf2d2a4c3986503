"""FastAPI application exposing the overlay engine over HTTP.

WHY: The reading interface and other tools (previews, batch checks,
tests against a running service) need the engine without embedding
Python. FastAPI provides automatic OpenAPI documentation and request
validation.

HOW: Stateless endpoints render a text or parse a caption track in one
call. Stateful endpoints create a ReaderSession and then feed it the same
events the page produces: annotation updates, pointer releases and
playback ticks. Selection boundaries are sent as child-index paths from
the content container, since HTTP clients cannot hold node references.

RULES:
- All endpoints have OpenAPI descriptions on every parameter and response
- Error responses use a consistent ErrorResponse schema
- Unknown sessions are 404; promoting with no candidate is 409
- Endpoints never await while a session is being mutated
- The session store is a singleton created at import time
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import Response

from guided_reader import __version__
from guided_reader.core.captions import parse_vtt
from guided_reader.core.ir import CaptionEntry, Rect, Selection, SelectionBoundary
from guided_reader.core.offsets import node_at_path
from guided_reader.core.overlay import render_annotated_text
from guided_reader.server.models import (
    AnnotationsUpdateRequest,
    CandidateModel,
    CaptionEntryModel,
    CaptionParseRequest,
    CaptionParseResponse,
    CaptionsUpdateRequest,
    ErrorResponse,
    HealthResponse,
    PositionModel,
    RenderRequest,
    RenderResponse,
    RunModel,
    SelectionRequest,
    SelectionResponse,
    SessionCreateRequest,
    SessionResponse,
    TickRequest,
    TickResponse,
)
from guided_reader.server.sessions import SessionRecord, SessionStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App and store setup
# ---------------------------------------------------------------------------

session_store = SessionStore()


async def _periodic_cleanup() -> None:
    """Run session cleanup every 5 minutes."""
    while True:
        await asyncio.sleep(300)
        session_store.cleanup_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start periodic cleanup on startup, cancel on shutdown."""
    task = asyncio.create_task(_periodic_cleanup())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    lifespan=lifespan,
    title="Guided Reader Overlay API",
    description=(
        "Renders annotated texts, parses caption tracks and runs reader "
        "sessions that validate selections and keep the narrated caption "
        "highlighted."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_record(session_id: str) -> SessionRecord:
    record = session_store.get_session(session_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Session not found: {}".format(session_id))
    return record


def _caption_entries(
    captions: Optional[List[CaptionEntryModel]],
    vtt: Optional[str],
) -> Optional[List[CaptionEntry]]:
    if captions is not None:
        return [item.to_entry() for item in captions]
    if vtt is not None:
        return parse_vtt(vtt)
    return None


def _session_to_response(record: SessionRecord) -> SessionResponse:
    session = record.session
    overlay = session.context.overlay
    candidate = session.selection.candidate
    active = session.highlights.current
    return SessionResponse(
        id=record.id,
        text_id=session.context.text_id,
        text=session.context.content_text(),
        markup=session.markup,
        runs=[RunModel.from_run(run) for run in overlay.runs] if overlay else [],
        selection_state=session.selection.state.value,
        candidate=CandidateModel.from_candidate(candidate) if candidate else None,
        caption_count=len(session.highlights.entries),
        active_caption=CaptionEntryModel.from_entry(active) if active else None,
        created_at=record.created_at,
    )


def _resolve_selection(record: SessionRecord, request: SelectionRequest) -> Optional[Selection]:
    """Turn path-addressed boundaries into a Selection on the live tree."""
    container = record.session.context.container
    if container is None or request.start is None or request.end is None:
        return None
    start_node = node_at_path(container, request.start.path)
    end_node = node_at_path(container, request.end.path)
    if start_node is None or end_node is None:
        logger.debug("Selection path does not resolve in session %s", record.id)
        return None
    return Selection(
        start=SelectionBoundary(node=start_node, offset=request.start.offset),
        end=SelectionBoundary(node=end_node, offset=request.end.offset),
        rect=Rect(
            left=request.rect.left,
            top=request.rect.top,
            width=request.rect.width,
            height=request.rect.height,
        ),
        scroll_x=request.scroll_x,
        scroll_y=request.scroll_y,
    )


# ---------------------------------------------------------------------------
# Endpoints: Stateless
# ---------------------------------------------------------------------------


@app.post(
    "/render",
    response_model=RenderResponse,
    tags=["render"],
    summary="Render a text with its annotations",
    description=(
        "Wraps every annotated character range in an annotated span and the "
        "rest in plain spans, preserving the text's inline structure."
    ),
)
async def render(request: RenderRequest) -> RenderResponse:
    overlay = render_annotated_text(
        request.text, [item.to_interval() for item in request.annotations]
    )
    return RenderResponse(
        markup=overlay.markup,
        runs=[RunModel.from_run(run) for run in overlay.runs],
    )


@app.post(
    "/captions/parse",
    response_model=CaptionParseResponse,
    tags=["captions"],
    summary="Parse a WEBVTT caption track",
    description="Malformed cues are dropped; times are whole seconds.",
)
async def parse_captions(request: CaptionParseRequest) -> CaptionParseResponse:
    entries = parse_vtt(request.content)
    return CaptionParseResponse(entries=[CaptionEntryModel.from_entry(e) for e in entries])


# ---------------------------------------------------------------------------
# Endpoints: Sessions
# ---------------------------------------------------------------------------


@app.post(
    "/sessions",
    response_model=SessionResponse,
    status_code=201,
    tags=["sessions"],
    summary="Open a text in a new reader session",
    responses={
        429: {"model": ErrorResponse, "description": "Too many live sessions"},
    },
)
async def create_session(request: SessionCreateRequest) -> SessionResponse:
    try:
        record = session_store.create_session()
    except ValueError as exc:
        raise HTTPException(status_code=429, detail=str(exc))

    session = record.session
    session.load_text(
        request.text_id,
        request.text,
        [item.to_interval(request.text_id) for item in request.annotations],
    )
    entries = _caption_entries(request.captions, request.vtt)
    if entries is not None:
        session.set_captions(entries)
    return _session_to_response(record)


@app.get(
    "/sessions",
    response_model=List[SessionResponse],
    tags=["sessions"],
    summary="List live reader sessions",
    description="Sessions in creation order. Listing does not refresh their idle timers.",
)
async def list_sessions() -> List[SessionResponse]:
    return [_session_to_response(record) for record in session_store.list_sessions()]


@app.get(
    "/sessions/{session_id}",
    response_model=SessionResponse,
    tags=["sessions"],
    summary="Get reader session state",
    responses={
        404: {"model": ErrorResponse, "description": "Session not found"},
    },
)
async def get_session(session_id: str) -> SessionResponse:
    return _session_to_response(_get_record(session_id))


@app.put(
    "/sessions/{session_id}/annotations",
    response_model=SessionResponse,
    tags=["sessions"],
    summary="Replace the annotation intervals and re-render",
    description="The text is re-rendered and the active caption highlight re-applied.",
    responses={
        404: {"model": ErrorResponse, "description": "Session not found"},
    },
)
async def update_annotations(session_id: str, request: AnnotationsUpdateRequest) -> SessionResponse:
    record = _get_record(session_id)
    text_id = record.session.context.text_id
    record.session.set_annotations([item.to_interval(text_id) for item in request.annotations])
    return _session_to_response(record)


@app.put(
    "/sessions/{session_id}/captions",
    response_model=SessionResponse,
    tags=["sessions"],
    summary="Replace the caption track",
    responses={
        404: {"model": ErrorResponse, "description": "Session not found"},
        422: {"model": ErrorResponse, "description": "Neither captions nor vtt given"},
    },
)
async def update_captions(session_id: str, request: CaptionsUpdateRequest) -> SessionResponse:
    record = _get_record(session_id)
    entries = _caption_entries(request.captions, request.vtt)
    if entries is None:
        raise HTTPException(status_code=422, detail="Provide either 'captions' or 'vtt'.")
    record.session.set_captions(entries)
    return _session_to_response(record)


@app.post(
    "/sessions/{session_id}/selection",
    response_model=SelectionResponse,
    tags=["sessions"],
    summary="Report a pointer release",
    description=(
        "Validates the selection into an annotation candidate. Invalid "
        "selections silently reset the session to idle."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Session not found"},
    },
)
async def release_selection(session_id: str, request: SelectionRequest) -> SelectionResponse:
    record = _get_record(session_id)
    selection = _resolve_selection(record, request)
    result = record.session.on_release(selection, target_id=request.target_id)
    return SelectionResponse(
        state=record.session.selection.state.value,
        candidate=CandidateModel.from_candidate(result.candidate) if result else None,
        anchor_position=PositionModel.from_position(result.anchor_position) if result else None,
    )


@app.post(
    "/sessions/{session_id}/promote",
    response_model=CandidateModel,
    tags=["sessions"],
    summary="Promote the current candidate to annotation authoring",
    responses={
        404: {"model": ErrorResponse, "description": "Session not found"},
        409: {"model": ErrorResponse, "description": "No selection candidate"},
    },
)
async def promote_selection(session_id: str) -> CandidateModel:
    record = _get_record(session_id)
    candidate = record.session.promote()
    if candidate is None:
        raise HTTPException(status_code=409, detail="Session has no selection candidate.")
    return CandidateModel.from_candidate(candidate)


@app.post(
    "/sessions/{session_id}/tick",
    response_model=TickResponse,
    tags=["sessions"],
    summary="Report the playback position",
    responses={
        404: {"model": ErrorResponse, "description": "Session not found"},
    },
)
async def playback_tick(session_id: str, request: TickRequest) -> TickResponse:
    record = _get_record(session_id)
    changed = record.session.on_tick(request.time, request.playing)
    active = record.session.highlights.current
    return TickResponse(
        changed=changed,
        active_caption=CaptionEntryModel.from_entry(active) if active else None,
        markup=record.session.markup,
    )


@app.delete(
    "/sessions/{session_id}",
    status_code=204,
    tags=["sessions"],
    summary="Close a reader session",
    responses={
        404: {"model": ErrorResponse, "description": "Session not found"},
    },
)
async def delete_session(session_id: str) -> Response:
    if not session_store.delete_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found: {}".format(session_id))
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Endpoints: Health
# ---------------------------------------------------------------------------


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
    description="Liveness and readiness check for load balancers and orchestrators.",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__, sessions=len(session_store))


def run_api(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Entry point for the guided-reader-api console script."""
    import uvicorn
    uvicorn.run(app, host=host, port=port)
