"""Selection lifecycle: turning a pointer release into an annotation candidate.

WHY: Readers create annotations by selecting a run of text. Most releases
are not meant as annotations: clicks, drags across the page, or selections
that touch an existing annotation. The controller decides, with no error
dialogs, whether a release yields a candidate. If it does, the controller
also decides where to show the annotate button.

HOW: A three-state machine, IDLE → CANDIDATE → {IDLE | COMMITTED}. Each
release is mapped to absolute offsets with core.offsets and checked
against a chain of guards. If every guard passes, the release becomes a
candidate. Reselecting the current candidate toggles it off. promote()
hands the candidate to the authoring surface.

RULES:
- Stripped length must be 1..SELECTION_LIMIT characters
- Trailing whitespace is trimmed from the end boundary before mapping
- Selections touching an annotated run or the annotation surface are refused
- Both boundaries must sit directly in the content container
- Selecting the entire text is refused
- Every refusal silently resets to IDLE; nothing is raised
- A release on the annotate button itself changes nothing
"""

from __future__ import annotations

import enum
import logging
from typing import Optional, Tuple

from bs4.element import PageElement, Tag

from guided_reader.config import (
    AFFORDANCE_ID,
    AFFORDANCE_OFFSET_PX,
    ANNOTATION_SURFACE_ID,
    BLOCK_CONTAINER_TAGS,
    SELECTION_LIMIT,
)
from guided_reader.core.context import ReaderContext
from guided_reader.core.ir import (
    Position,
    Rect,
    Selection,
    SelectionCandidate,
    SelectionResult,
)
from guided_reader.core.offsets import character_offset, element_span, locate_offset
from guided_reader.core.text import closest, is_annotated_wrapper, is_descendant, plain_text

logger = logging.getLogger(__name__)


class SelectionState(str, enum.Enum):
    """States of the selection lifecycle."""

    IDLE = "idle"
    CANDIDATE = "candidate"
    COMMITTED = "committed"


class SelectionController:
    """Validates releases into candidates and tracks the current one.

    WHY: The reader needs exactly one tentative selection at a time, and
    it must disappear the moment it stops being valid.

    HOW: handle_release() evaluates the selection against the context's
    container. On success it stores the candidate and its affordance
    position; on any failure it resets to IDLE.

    RULES:
    - state, candidate and anchor_position always change together
    - The last accepted (text, start, end) is remembered for toggle-off
    """

    def __init__(
        self,
        context: ReaderContext,
        limit: int = SELECTION_LIMIT,
        affordance_offset: float = AFFORDANCE_OFFSET_PX,
    ) -> None:
        self._context = context
        self._limit = limit
        self._affordance_offset = affordance_offset
        self._last_key: Optional[tuple] = None
        self.state = SelectionState.IDLE
        self.candidate: Optional[SelectionCandidate] = None
        self.anchor_position: Optional[Position] = None

    def handle_release(
        self,
        selection: Optional[Selection],
        target_id: Optional[str] = None,
    ) -> Optional[SelectionResult]:
        """Process a pointer/touch release.

        Args:
            selection: The page selection at release time, or None.
            target_id: id of the element the release happened on.

        Returns:
            The candidate and its affordance position, or None.
        """
        if target_id == AFFORDANCE_ID:
            # Let the annotate button receive its click
            return self.current_result()

        candidate = self._evaluate(selection)
        if candidate is None:
            self.clear()
            return None

        if candidate.key() == self._last_key:
            logger.debug("Reselected %r at [%d, %d), toggling off",
                         candidate.text, candidate.start, candidate.end)
            self.clear()
            return None

        self.state = SelectionState.CANDIDATE
        self.candidate = candidate
        self.anchor_position = self._anchor_position(selection.rect, selection.scroll_x, selection.scroll_y)
        self._last_key = candidate.key()
        return SelectionResult(candidate=candidate, anchor_position=self.anchor_position)

    def promote(self) -> Optional[SelectionCandidate]:
        """Hand the current candidate over for authoring.

        RULES:
        - Returns None (and changes nothing) unless a candidate is active
        - Afterwards the controller holds no candidate and is COMMITTED
        """
        if self.state is not SelectionState.CANDIDATE or self.candidate is None:
            return None
        candidate = self.candidate
        self.candidate = None
        self.anchor_position = None
        self._last_key = None
        self.state = SelectionState.COMMITTED
        logger.info("Promoted selection [%d, %d) on text %d",
                    candidate.start, candidate.end, candidate.text_id)
        return candidate

    def clear(self) -> None:
        self.state = SelectionState.IDLE
        self.candidate = None
        self.anchor_position = None
        self._last_key = None

    def current_result(self) -> Optional[SelectionResult]:
        if self.candidate is None or self.anchor_position is None:
            return None
        return SelectionResult(candidate=self.candidate, anchor_position=self.anchor_position)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _evaluate(self, selection: Optional[Selection]) -> Optional[SelectionCandidate]:
        container = self._context.container
        if container is None or selection is None:
            return None

        start_node, end_node = selection.start.node, selection.end.node
        if not (is_descendant(start_node, container) and is_descendant(end_node, container)):
            logger.debug("Selection outside the content container")
            return None

        bounds = self._absolute_bounds(container, selection)
        if bounds is None:
            return None
        start, end = bounds

        full_text = plain_text(container)
        selected = full_text[start:end]
        stripped = selected.strip()
        if not stripped or len(stripped) > self._limit:
            logger.debug("Selection length %d outside 1..%d", len(stripped), self._limit)
            return None

        text = selected.rstrip()
        end = start + len(text)
        if text.strip() == full_text.strip():
            logger.debug("Selection covers the entire text")
            return None

        trimmed_end = locate_offset(container, end)
        if trimmed_end is not None:
            end_node = trimmed_end[0]

        if self._touches_annotation(container, start_node, end_node, start, end):
            logger.debug("Selection intersects an existing annotation")
            return None

        if not self._in_content_block(container, start_node, end_node):
            logger.debug("Selection spans more than the content container")
            return None

        return SelectionCandidate(
            text_id=self._context.text_id,
            text=text,
            start=start,
            end=end,
        )

    @staticmethod
    def _absolute_bounds(container: Tag, selection: Selection) -> Optional[Tuple[int, int]]:
        start = character_offset(container, selection.start.node, selection.start.offset)
        end = character_offset(container, selection.end.node, selection.end.offset)
        if start is None or end is None:
            return None
        # A backwards drag reports its boundaries reversed
        return (start, end) if start <= end else (end, start)

    @staticmethod
    def _touches_annotation(
        container: Tag,
        start_node: PageElement,
        end_node: PageElement,
        start: int,
        end: int,
    ) -> bool:
        if closest(start_node, lambda el: el.get("id") == ANNOTATION_SURFACE_ID) is not None:
            return True
        if closest(start_node, is_annotated_wrapper) or closest(end_node, is_annotated_wrapper):
            return True
        for wrapper in container.find_all(is_annotated_wrapper):
            span = element_span(container, wrapper)
            if span is not None and span[0] < end and span[1] > start:
                return True
        return False

    @staticmethod
    def _in_content_block(container: Tag, start_node: PageElement, end_node: PageElement) -> bool:
        def is_block(element: Tag) -> bool:
            return element is container or element.name in BLOCK_CONTAINER_TAGS

        return closest(start_node, is_block) is container and closest(end_node, is_block) is container

    def _anchor_position(self, rect: Rect, scroll_x: float, scroll_y: float) -> Position:
        return Position(
            x=rect.left + rect.width / 2 + scroll_x,
            y=rect.top + scroll_y - self._affordance_offset,
        )
