"""Text normalization and tree traversal helpers shared by every component.

WHY: Stored annotation offsets are only meaningful if the renderer, the
offset mapper and the highlight synchronizer all count the same characters
in the same order. Centralising normalization and traversal here makes
that agreement structural instead of accidental.

HOW: normalize_text() collapses whitespace the way the stored offsets were
computed. iter_text_nodes() walks a BeautifulSoup tree depth-first in
pre-order, yielding only text-bearing nodes. Small predicates classify the
wrapper spans the engine itself produces.

RULES:
- Text-bearing nodes are NavigableStrings that are not comments, CDATA,
  doctypes, declarations or processing instructions
- Traversal order is document order (depth-first, pre-order)
- Wrapper spans are recognised by id prefix (plain/annotated) or class
  (highlight), never by position
"""

from __future__ import annotations

import re
from typing import Callable, Iterator, Optional

from bs4 import BeautifulSoup
from bs4.element import NavigableString, PageElement, PreformattedString, Tag

from guided_reader.config import (
    ANNOTATED_ID_PREFIX,
    CONTENT_CONTAINER_ID,
    HIGHLIGHT_CLASS,
    PLAIN_ID_PREFIX,
)

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(raw_text: str) -> str:
    """Collapse whitespace so offsets match the stored coordinate space.

    HOW: Non-breaking spaces become regular spaces, every whitespace run
    becomes one space, and both ends are stripped.
    """
    text = raw_text.replace("\u00a0", " ")
    return _WHITESPACE_RE.sub(" ", text).strip()


def parse_fragment(markup: str) -> BeautifulSoup:
    """Parse an HTML fragment with the stdlib-backed html.parser."""
    return BeautifulSoup(markup, "html.parser")


def build_container(markup: str, container_id: str = CONTENT_CONTAINER_ID) -> Tag:
    """Wrap rendered markup in the content container element.

    WHY: Selections and highlights are resolved relative to one root
    element, the way the page mounts rendered markup inside a single div.
    """
    soup = parse_fragment("")
    container = soup.new_tag("div", id=container_id)
    soup.append(container)
    for child in list(parse_fragment(markup).contents):
        container.append(child.extract())
    return container


def is_text_node(node: PageElement) -> bool:
    """True for character-data nodes that count towards offsets."""
    return isinstance(node, NavigableString) and not isinstance(node, PreformattedString)


def iter_text_nodes(root: PageElement) -> Iterator[NavigableString]:
    """Yield every text-bearing node under root in document order."""
    if is_text_node(root):
        yield root
        return
    if isinstance(root, Tag):
        for child in root.contents:
            yield from iter_text_nodes(child)


def plain_text(root: PageElement) -> str:
    """Concatenate all text-bearing nodes under root."""
    return "".join(str(node) for node in iter_text_nodes(root))


def text_length(root: PageElement) -> int:
    return sum(len(node) for node in iter_text_nodes(root))


def closest(node: Optional[PageElement], predicate: Callable[[Tag], bool]) -> Optional[Tag]:
    """Return the nearest element at or above node matching predicate.

    Text nodes start the search at their parent, like Element.closest()
    called on a text node's parentElement.
    """
    current = node if isinstance(node, Tag) else (node.parent if node is not None else None)
    while current is not None:
        if isinstance(current, Tag) and predicate(current):
            return current
        current = current.parent
    return None


def is_descendant(node: Optional[PageElement], ancestor: Tag) -> bool:
    current = node
    while current is not None:
        if current is ancestor:
            return True
        current = current.parent
    return False


# ---------------------------------------------------------------------------
# Wrapper classification
# ---------------------------------------------------------------------------


def _id_startswith(element: Tag, prefix: str) -> bool:
    element_id = element.get("id")
    return isinstance(element_id, str) and element_id.startswith(prefix)


def is_annotated_wrapper(element: PageElement) -> bool:
    return isinstance(element, Tag) and element.name == "span" and _id_startswith(
        element, ANNOTATED_ID_PREFIX
    )


def is_plain_wrapper(element: PageElement) -> bool:
    return isinstance(element, Tag) and element.name == "span" and _id_startswith(
        element, PLAIN_ID_PREFIX
    )


def has_class(element: Tag, class_name: str) -> bool:
    classes = element.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    return class_name in classes


def is_highlight_wrapper(element: PageElement) -> bool:
    return isinstance(element, Tag) and element.name == "span" and has_class(element, HIGHLIGHT_CLASS)


def is_run_wrapper(element: PageElement) -> bool:
    """True for any span the engine itself generated."""
    return is_plain_wrapper(element) or is_annotated_wrapper(element) or is_highlight_wrapper(element)
