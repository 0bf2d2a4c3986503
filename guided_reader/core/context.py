"""Explicit reader context shared by the selection and highlight components.

WHY: Every component needs to know which text is open, which container
holds its rendered markup and which annotation intervals are applied.
Passing that as one explicit object lets each component run against an
in-memory tree in tests, and lets async loaders recognise results that
belong to a text the user has already left.

HOW: ReaderContext is a plain dataclass. mount() installs a freshly
rendered container. begin_navigation() bumps a generation counter that acts
as the request identity: a loader records the generation when it starts and
checks is_current() before applying its result. install() swaps in the new
text without touching the generation, so a fetch can navigate first and
install later.

RULES:
- container is replaced wholesale on every re-render, never patched here
- generation only ever increases
- A result whose generation is not current must be discarded
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from bs4.element import Tag

from guided_reader.core.ir import AnnotationInterval, RenderedOverlay
from guided_reader.core.text import build_container, plain_text


@dataclass
class ReaderContext:
    """State of the currently open text.

    RULES:
    - text_id is -1 while no text is open
    - overlay mirrors the markup currently mounted in container
    """

    text_id: int = -1
    text: str = ""
    text_object_id: int = -1
    language: str = ""
    intervals: List[AnnotationInterval] = field(default_factory=list)
    container: Optional[Tag] = None
    overlay: Optional[RenderedOverlay] = None
    generation: int = 0

    def begin_navigation(self) -> int:
        """Invalidate every in-flight request and return the new generation."""
        self.generation += 1
        return self.generation

    def install(
        self,
        text_id: int,
        text: str,
        text_object_id: int = -1,
        language: str = "",
    ) -> None:
        """Make text the open text. The container stays empty until mount()."""
        self.text_id = text_id
        self.text = text
        self.text_object_id = text_object_id
        self.language = language
        self.intervals = []
        self.container = None
        self.overlay = None

    def switch_text(self, text_id: int, text: str) -> int:
        """Open a different text and invalidate every in-flight request."""
        generation = self.begin_navigation()
        self.install(text_id, text)
        return generation

    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    def mount(self, overlay: RenderedOverlay) -> Tag:
        """Replace the container with one holding the overlay markup."""
        self.overlay = overlay
        self.container = build_container(overlay.markup)
        return self.container

    def markup(self) -> str:
        """Inner markup of the container as it currently stands."""
        if self.container is None:
            return ""
        return self.container.decode_contents()

    def content_text(self) -> str:
        if self.container is None:
            return ""
        return plain_text(self.container)
