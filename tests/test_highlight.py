"""Tests for the playback highlight synchronizer.

WHY: The highlight layer rewrites parts of the rendered tree while the
narration plays. It must light up the right words, never lose or alter an
annotated wrapper, and do no work on ticks that do not change the active
caption.

HOW: Mount a text, attach a HighlightSynchronizer with caption entries and
drive it with tick(). Assertions look at the highlight spans, the
annotated wrappers (by identity) and the container's plain text.

RULES:
- plain_text(container) never changes
- Annotated wrappers keep identity, attributes and text
- Paused ticks and same-entry ticks do nothing
"""

from __future__ import annotations

from guided_reader.core.highlight import HighlightSynchronizer, active_entry, apply_highlight
from guided_reader.core.ir import AnnotationInterval, CaptionEntry
from guided_reader.core.overlay import render_annotated_text
from guided_reader.core.text import is_highlight_wrapper, plain_text


def _highlights(context):
    return [span.get_text() for span in context.container.find_all(is_highlight_wrapper)]


class TestActiveEntry:

    def test_inclusive_bounds(self, fox_captions):
        assert active_entry(fox_captions, 0) == fox_captions[0]
        assert active_entry(fox_captions, 2) == fox_captions[0]
        assert active_entry(fox_captions, 3) == fox_captions[1]

    def test_gap(self, fox_captions):
        assert active_entry(fox_captions, 2.5) is None
        assert active_entry(fox_captions, 99) is None

    def test_first_match_wins(self):
        entries = [CaptionEntry(0, 5, "a"), CaptionEntry(3, 8, "b")]
        assert active_entry(entries, 4).text == "a"


class TestWorkedExample:
    """'The quick fox jumps.' with 'fox jumps' annotated."""

    def test_highlights_caption_with_trailing_space(self, fox_context, fox_captions):
        sync = HighlightSynchronizer(fox_context, fox_captions)
        assert sync.tick(1.0, playing=True) is True
        assert _highlights(fox_context) == ["The quick "]

    def test_annotated_wrapper_untouched(self, fox_context, fox_captions):
        wrapper = fox_context.container.find(id="annotated-text-0")
        sync = HighlightSynchronizer(fox_context, fox_captions)
        sync.tick(1.0, playing=True)

        after = fox_context.container.find(id="annotated-text-0")
        assert after is wrapper
        assert after.get_text() == "fox jumps"
        assert after["class"] == ["annotated_text"]
        assert after.parent is fox_context.container

    def test_plain_text_preserved(self, fox_context, fox_captions):
        sync = HighlightSynchronizer(fox_context, fox_captions)
        sync.tick(1.0, playing=True)
        assert plain_text(fox_context.container) == "The quick fox jumps."
        sync.tick(4.0, playing=True)
        assert plain_text(fox_context.container) == "The quick fox jumps."

    def test_annotation_inside_match_is_nested(self, fox_context, fox_captions):
        sync = HighlightSynchronizer(fox_context, fox_captions)
        sync.tick(1.0, playing=True)
        sync.tick(4.0, playing=True)

        assert _highlights(fox_context) == [" fox jumps"]
        wrapper = fox_context.container.find(id="annotated-text-0")
        assert is_highlight_wrapper(wrapper.parent)


class TestRecomputation:
    """Only a change of active entry touches the tree."""

    def test_same_entry_is_noop(self, fox_context, fox_captions):
        sync = HighlightSynchronizer(fox_context, fox_captions)
        sync.tick(1.0, playing=True)
        assert sync.tick(1.5, playing=True) is False

    def test_paused_is_noop(self, fox_context, fox_captions):
        sync = HighlightSynchronizer(fox_context, fox_captions)
        sync.tick(1.0, playing=True)
        assert sync.tick(4.0, playing=False) is False
        assert _highlights(fox_context) == ["The quick "]
        assert sync.current == fox_captions[0]

    def test_paused_from_start(self, fox_context, fox_captions):
        sync = HighlightSynchronizer(fox_context, fox_captions)
        assert sync.tick(1.0, playing=False) is False
        assert _highlights(fox_context) == []

    def test_repeated_text_is_a_new_entry(self, fox_context):
        entries = [CaptionEntry(0, 2, "The quick"), CaptionEntry(3, 5, "The quick")]
        sync = HighlightSynchronizer(fox_context, entries)
        assert sync.tick(1.0, playing=True) is True
        assert sync.tick(4.0, playing=True) is True
        assert _highlights(fox_context) == ["The quick "]

    def test_invalidate_reapplies_after_rerender(self, fox_context, fox_captions):
        sync = HighlightSynchronizer(fox_context, fox_captions)
        sync.tick(1.0, playing=True)

        fox_context.mount(render_annotated_text(fox_context.text, fox_context.intervals))
        assert _highlights(fox_context) == []
        sync.invalidate()
        assert sync.tick(1.2, playing=True) is True
        assert _highlights(fox_context) == ["The quick "]

    def test_no_container(self, fox_context, fox_captions):
        fox_context.container = None
        sync = HighlightSynchronizer(fox_context, fox_captions)
        assert sync.tick(1.0, playing=True) is False


class TestLeavingHighlight:

    def test_idle_unwraps_highlight(self, mounted):
        context = mounted("Hello there world")
        sync = HighlightSynchronizer(context, [CaptionEntry(0, 2, "there")])
        sync.tick(1.0, playing=True)
        assert _highlights(context) == [" there "]

        assert sync.tick(5.0, playing=True) is True
        assert _highlights(context) == []
        assert context.markup() == "Hello there world"
        assert sync.current is None

    def test_highlight_holding_annotation_is_kept(self, fox_context, fox_captions):
        sync = HighlightSynchronizer(fox_context, fox_captions)
        sync.tick(4.0, playing=True)
        sync.tick(10.0, playing=True)
        assert _highlights(fox_context) == [" fox jumps"]
        assert fox_context.container.find(id="annotated-text-0") is not None

    def test_highlight_holding_annotation_survives_next_entry(self, fox_context):
        entries = [CaptionEntry(0, 2, "fox jumps"), CaptionEntry(3, 5, "The quick")]
        sync = HighlightSynchronizer(fox_context, entries)
        sync.tick(1.0, playing=True)
        wrapper = fox_context.container.find(id="annotated-text-0")

        assert sync.tick(4.0, playing=True) is True
        assert _highlights(fox_context) == ["The quick", " fox jumps"]
        assert fox_context.container.find(id="annotated-text-0") is wrapper
        assert is_highlight_wrapper(wrapper.parent)
        assert plain_text(fox_context.container) == "The quick fox jumps."

    def test_next_entry_replaces_previous(self, mounted):
        context = mounted("One two three four")
        entries = [CaptionEntry(0, 1, "One two"), CaptionEntry(2, 3, "three four")]
        sync = HighlightSynchronizer(context, entries)
        sync.tick(0.5, playing=True)
        sync.tick(2.5, playing=True)
        assert _highlights(context) == [" three four"]

    def test_set_entries_clears(self, mounted):
        context = mounted("Hello there world")
        sync = HighlightSynchronizer(context, [CaptionEntry(0, 2, "there")])
        sync.tick(1.0, playing=True)
        sync.set_entries([])
        assert _highlights(context) == []
        assert sync.entries == []


class TestMatching:

    def test_case_insensitive(self, fox_context):
        sync = HighlightSynchronizer(fox_context, [CaptionEntry(0, 2, "THE QUICK")])
        sync.tick(1.0, playing=True)
        assert _highlights(fox_context) == ["The quick "]

    def test_multiline_caption(self, fox_context):
        sync = HighlightSynchronizer(fox_context, [CaptionEntry(0, 2, "The\nquick")])
        sync.tick(1.0, playing=True)
        assert _highlights(fox_context) == ["The quick "]

    def test_caption_absent_from_text(self, fox_context):
        sync = HighlightSynchronizer(fox_context, [CaptionEntry(0, 2, "not in the text")])
        assert sync.tick(1.0, playing=True) is True
        assert _highlights(fox_context) == []
        assert plain_text(fox_context.container) == "The quick fox jumps."

    def test_every_block_processed(self, mounted):
        context = mounted("<p>One line here</p><p>Another line here</p>")
        sync = HighlightSynchronizer(context, [CaptionEntry(0, 2, "line here")])
        sync.tick(1.0, playing=True)

        spans = context.container.find_all(is_highlight_wrapper)
        assert [span.get_text() for span in spans] == [" line here", " line here"]
        assert all(span.parent.name == "p" for span in spans)

    def test_straddling_annotation_stays_outside(self, mounted):
        context = mounted("The quick fox jumps.", [AnnotationInterval(id=1, start=4, end=13)])
        sync = HighlightSynchronizer(context, [CaptionEntry(0, 2, "fox jumps")])
        sync.tick(1.0, playing=True)

        wrapper = context.container.find(id="annotated-text-0")
        assert wrapper.get_text() == "quick fox"
        assert wrapper.parent is context.container
        assert _highlights(context) == [" jumps"]

    def test_apply_twice_does_not_nest(self, fox_context):
        apply_highlight(fox_context.container, "The quick")
        apply_highlight(fox_context.container, "The quick")
        assert _highlights(fox_context) == ["The quick "]

    def test_empty_caption(self, fox_context):
        assert apply_highlight(fox_context.container, "   ") == 0
        assert _highlights(fox_context) == []


class TestInlineElements:
    """Text inside inline elements is matched without nesting highlights."""

    def _nested(self, context):
        return [
            span for span in context.container.find_all(is_highlight_wrapper)
            if span.find(is_highlight_wrapper) is not None
        ]

    def test_inline_element_at_block_start(self, mounted):
        context = mounted("<p><em>quick</em> brown fox</p>")
        sync = HighlightSynchronizer(context, [CaptionEntry(0, 2, "quick")])
        sync.tick(1.0, playing=True)

        assert self._nested(context) == []
        assert _highlights(context) == ["quick "]
        assert context.container.find("em").parent is context.container.find(is_highlight_wrapper)
        assert plain_text(context.container) == "quick brown fox"

    def test_inline_element_after_text(self, mounted):
        context = mounted("<p>The <em>quick</em> fox</p>")
        sync = HighlightSynchronizer(context, [CaptionEntry(0, 2, "quick")])
        sync.tick(1.0, playing=True)

        assert self._nested(context) == []
        assert _highlights(context) == [" quick "]

    def test_inline_element_straddling_match(self, mounted):
        context = mounted("<p>The <em>very quick</em> fox</p>")
        sync = HighlightSynchronizer(context, [CaptionEntry(0, 2, "quick")])
        sync.tick(1.0, playing=True)

        # the em straddles the outer match, so it keeps its own highlight
        assert _highlights(context) == [" quick", " "]
        assert context.container.find(is_highlight_wrapper).parent.name == "em"
        assert self._nested(context) == []
        assert plain_text(context.container) == "The very quick fox"
