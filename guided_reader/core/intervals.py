"""Annotation interval resolution: duplicate collapsing and ordering.

WHY: Several annotations can sit on exactly the same span of text (one per
discussion thread). The renderer only needs one wrapper per span, and it
walks intervals left-to-right, so it needs them sorted.

HOW: Intervals are keyed by (start, end); the first interval seen for a
key wins. The survivors are sorted by start with a stable sort, so equal
starts keep their input order.

RULES:
- Exact-range duplicates collapse to the first occurrence
- Partial overlaps are NOT resolved here (the renderer clips them)
- Degenerate intervals (end <= start, negative start) are dropped
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Tuple

from guided_reader.core.ir import AnnotationInterval

logger = logging.getLogger(__name__)


def resolve_intervals(intervals: Iterable[AnnotationInterval]) -> List[AnnotationInterval]:
    """Collapse duplicate ranges and sort the rest by start offset.

    Args:
        intervals: Raw annotation intervals, possibly with duplicates.

    Returns:
        One representative per distinct (start, end), ascending by start.
    """
    by_range: Dict[Tuple[int, int], AnnotationInterval] = {}
    for interval in intervals:
        if interval.start < 0 or interval.end <= interval.start:
            logger.debug(
                "Dropping degenerate interval %s [%d, %d)",
                interval.id, interval.start, interval.end,
            )
            continue
        key = (interval.start, interval.end)
        if key not in by_range:
            by_range[key] = interval

    return sorted(by_range.values(), key=lambda iv: iv.start)
