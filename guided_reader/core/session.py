"""Reader session: one open text with its overlay, selection and highlights.

WHY: The renderer, the selection controller and the highlight synchronizer
each handle one marking system, but they share a single rendered tree and
their events interleave. Something has to own the order of operations:
a re-render replaces the tree, so the highlight layer must be reapplied,
and a text switch must silence loaders still working for the old text.

HOW: ReaderSession owns a ReaderContext plus one SelectionController and
one HighlightSynchronizer bound to it. Synchronous entry points
(load_text, set_annotations, set_captions, on_release, on_tick, promote)
are what the page or HTTP layer calls for each event. Async loaders
(open_text, reload_annotations, load_captions) fetch through a
ReaderClient, record the context generation before awaiting and discard
their result if the generation has moved on.

RULES:
- Every re-render invalidates the synchronizer, then replays the last tick
- Fetch failures are logged and degrade to "nothing rendered"; they never raise
- A loader result for a text that is no longer open is discarded
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

import httpx

from guided_reader.api.client import ReaderAPIError, ReaderClient
from guided_reader.config import AFFORDANCE_OFFSET_PX, SELECTION_LIMIT
from guided_reader.core.captions import load_caption_track
from guided_reader.core.context import ReaderContext
from guided_reader.core.highlight import HighlightSynchronizer
from guided_reader.core.ir import (
    AnnotationInterval,
    CaptionEntry,
    RenderedOverlay,
    Selection,
    SelectionCandidate,
    SelectionResult,
)
from guided_reader.core.overlay import render_annotated_text
from guided_reader.core.selection import SelectionController

logger = logging.getLogger(__name__)


class ReaderSession:
    """Coordinates rendering, selection and highlighting for one reader."""

    def __init__(
        self,
        selection_limit: int = SELECTION_LIMIT,
        affordance_offset: float = AFFORDANCE_OFFSET_PX,
    ) -> None:
        self.context = ReaderContext()
        self.selection = SelectionController(
            self.context, limit=selection_limit, affordance_offset=affordance_offset
        )
        self.highlights = HighlightSynchronizer(self.context)
        self._last_tick: Optional[Tuple[float, bool]] = None

    # ------------------------------------------------------------------
    # Synchronous entry points
    # ------------------------------------------------------------------

    def load_text(
        self,
        text_id: int,
        text: str,
        intervals: Iterable[AnnotationInterval] = (),
    ) -> RenderedOverlay:
        """Open a text directly, cancelling any in-flight loaders."""
        self.context.begin_navigation()
        return self._install(text_id, text, intervals)

    def _install(
        self,
        text_id: int,
        text: str,
        intervals: Iterable[AnnotationInterval],
        text_object_id: int = -1,
        language: str = "",
    ) -> RenderedOverlay:
        self.context.install(text_id, text, text_object_id=text_object_id, language=language)
        self.selection.clear()
        self.highlights.set_entries([])
        self._last_tick = None
        return self.set_annotations(intervals)

    def set_annotations(self, intervals: Iterable[AnnotationInterval]) -> RenderedOverlay:
        """Re-render the open text with a new interval set.

        RULES:
        - The container is replaced wholesale
        - Highlights are re-applied for the last playing tick
        """
        self.context.intervals = list(intervals)
        overlay = render_annotated_text(self.context.text, self.context.intervals)
        self.context.mount(overlay)
        self.highlights.invalidate()
        self._replay_tick()
        logger.debug("Rendered text %d: %d runs, %d intervals",
                     self.context.text_id, len(overlay.runs), len(self.context.intervals))
        return overlay

    def set_captions(self, entries: Sequence[CaptionEntry]) -> None:
        self.highlights.set_entries(entries)
        self._replay_tick()

    def on_release(
        self,
        selection: Optional[Selection],
        target_id: Optional[str] = None,
    ) -> Optional[SelectionResult]:
        return self.selection.handle_release(selection, target_id)

    def promote(self) -> Optional[SelectionCandidate]:
        return self.selection.promote()

    def on_tick(self, time: float, playing: bool) -> bool:
        """Feed one playback tick. Returns True if highlights changed."""
        self._last_tick = (time, playing)
        return self.highlights.tick(time, playing)

    def _replay_tick(self) -> None:
        if self._last_tick is not None:
            self.highlights.tick(*self._last_tick)

    @property
    def markup(self) -> str:
        return self.context.markup()

    # ------------------------------------------------------------------
    # Async loaders
    # ------------------------------------------------------------------

    async def open_text(
        self,
        client: ReaderClient,
        text_object_id: int,
        language: str,
    ) -> Optional[RenderedOverlay]:
        """Fetch a text and render it, then load its caption track.

        Returns:
            The rendered overlay, or None if the fetch failed or the reader
            navigated elsewhere while it was in flight.
        """
        generation = self.context.begin_navigation()
        try:
            payload = await client.fetch_text(text_object_id, language)
        except (ReaderAPIError, httpx.HTTPError) as exc:
            logger.warning("Could not load text %d (%s): %s", text_object_id, language, exc)
            return None

        if not self.context.is_current(generation):
            logger.info("Discarding text %d: reader has moved on", payload.id)
            return None

        overlay = self._install(
            payload.id,
            payload.text,
            payload.annotations,
            text_object_id=payload.text_object_id,
            language=payload.language,
        )
        if payload.audio is not None and payload.audio.vtt_file:
            await self.load_captions(client, payload.audio.vtt_file)
        return overlay

    async def reload_annotations(self, client: ReaderClient) -> Optional[RenderedOverlay]:
        """Refetch the open text's annotations and re-render."""
        if self.context.text_object_id < 0:
            return None
        generation = self.context.generation
        try:
            intervals = await client.fetch_annotations(
                self.context.text_object_id, self.context.language, text_id=self.context.text_id
            )
        except (ReaderAPIError, httpx.HTTPError) as exc:
            logger.warning("Could not refresh annotations for text %d: %s", self.context.text_id, exc)
            return None

        if not self.context.is_current(generation):
            logger.info("Discarding annotations for a text that is no longer open")
            return None
        return self.set_annotations(intervals)

    async def load_captions(self, client: ReaderClient, url: str) -> List[CaptionEntry]:
        """Fetch and install a caption track for the open text."""
        generation = self.context.generation
        try:
            entries = await load_caption_track(client, url)
        except (ReaderAPIError, httpx.HTTPError) as exc:
            logger.warning("Could not load caption track %s: %s", url, exc)
            return []

        if not self.context.is_current(generation):
            logger.info("Discarding caption track %s: reader has moved on", url)
            return []
        self.set_captions(entries)
        return entries
