"""Selection-to-offset mapping between tree positions and text offsets.

WHY: The page reports a selection as a node plus an offset inside it, but
annotations are stored as absolute character offsets. New annotations are
only correct if this mapping counts exactly the characters the overlay
renderer counted when it placed the existing ones.

HOW: character_offset() walks the tree depth-first in pre-order (the same
traversal as core.text.iter_text_nodes), summing text lengths until it
reaches the target node, then adds the intra-node offset. locate_offset()
does the inverse walk. node_path()/node_at_path() turn nodes into
child-index paths for callers that cannot hold node references.

RULES:
- Text node target: offset is a character index into the node
- Element target: offset is a child index; preceding children's text counts
- A target outside root maps to None (callers treat it as "no selection")
- Offsets past a node's length are clamped to its length
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from bs4.element import NavigableString, PageElement, Tag

from guided_reader.core.text import is_text_node, iter_text_nodes, text_length


def character_offset(root: PageElement, node: PageElement, offset: int) -> Optional[int]:
    """Return the absolute offset of (node, offset) within root.

    Args:
        root: Container whose text defines the coordinate space.
        node: Boundary node (text node or element) under root.
        offset: Character index (text node) or child index (element).

    Returns:
        Absolute character offset, or None when node is not under root.
    """
    count = 0
    found, count = _accumulate(root, node, max(offset, 0), count)
    return count if found else None


def _accumulate(current: PageElement, target: PageElement, offset: int, count: int) -> Tuple[bool, int]:
    if current is target:
        if is_text_node(current):
            return True, count + min(offset, len(current))
        if isinstance(current, Tag):
            for child in current.contents[:offset]:
                count += text_length(child)
        return True, count

    if is_text_node(current):
        return False, count + len(current)

    if isinstance(current, Tag):
        for child in current.contents:
            found, count = _accumulate(child, target, offset, count)
            if found:
                return True, count
    return False, count


def locate_offset(root: PageElement, offset: int) -> Optional[Tuple[NavigableString, int]]:
    """Find the text node and intra-node offset for an absolute offset.

    RULES:
    - Offsets on a node boundary resolve to the end of the earlier node,
      except offset 0 which resolves to the start of the first node
    - Returns None for offsets outside [0, len(text)] or an empty tree
    """
    if offset < 0:
        return None
    position = 0
    last = None
    for node in iter_text_nodes(root):
        if last is None and offset == 0:
            return node, 0
        if offset <= position + len(node):
            return node, offset - position
        position += len(node)
        last = node
    return None


def element_span(root: PageElement, element: Tag) -> Optional[Tuple[int, int]]:
    """Absolute [start, end) range covered by an element's text."""
    start = character_offset(root, element, 0)
    if start is None:
        return None
    return start, start + text_length(element)


def node_path(root: PageElement, node: PageElement) -> Optional[List[int]]:
    """Child-index path from root down to node, or None if not under root."""
    path: List[int] = []
    current = node
    while current is not root:
        parent = current.parent
        if parent is None:
            return None
        path.append(_index_in_parent(parent, current))
        current = parent
    path.reverse()
    return path


def node_at_path(root: PageElement, path: Sequence[int]) -> Optional[PageElement]:
    """Resolve a child-index path produced by node_path()."""
    current = root
    for index in path:
        if not isinstance(current, Tag) or not 0 <= index < len(current.contents):
            return None
        current = current.contents[index]
    return current


def _index_in_parent(parent: Tag, child: PageElement) -> int:
    # identity, not equality: equal strings in one parent compare equal
    for index, candidate in enumerate(parent.contents):
        if candidate is child:
            return index
    raise ValueError("node is not a child of its parent")
