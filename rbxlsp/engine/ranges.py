"""Visible-range coalescing.

The backend only computes inline hints for the region reported through
``$/didChangeVisibleRanges``. Each editor range is widened by a few lines
so hints appear before the user scrolls onto them, then overlapping or
touching ranges are merged so the backend never processes a line twice.
"""
from __future__ import annotations

from collections.abc import Iterable

from .models import VisibleRange

PADDING_LINES = 3


def pad_range(
    visible: VisibleRange,
    line_count: int,
    padding: int = PADDING_LINES,
) -> VisibleRange:
    """Widen *visible* by *padding* lines, clamped to the document."""
    last_line = max(line_count - 1, 0)
    return VisibleRange(
        start_line=min(max(visible.start_line - padding, 0), last_line),
        start_character=visible.start_character,
        end_line=min(visible.end_line + padding, last_line),
        end_character=visible.end_character,
    )


def _touches(before: VisibleRange, current: VisibleRange) -> bool:
    if current.start_line < before.end_line:
        return True
    return (
        current.start_line == before.end_line
        and current.start_character <= before.end_character
    )


def _end_key(visible: VisibleRange) -> tuple[int, int]:
    return (visible.end_line, visible.end_character)


def merge_ranges(ranges: Iterable[VisibleRange]) -> list[VisibleRange]:
    """Merge overlapping or touching ranges into an ordered disjoint list.

    Idempotent: merging an already merged list returns it unchanged.
    """
    ordered = sorted(ranges, key=lambda r: (r.start_line, r.start_character))
    merged: list[VisibleRange] = []
    for current in ordered:
        if merged and _touches(merged[-1], current):
            before = merged[-1]
            if _end_key(current) > _end_key(before):
                merged[-1] = VisibleRange(
                    before.start_line,
                    before.start_character,
                    current.end_line,
                    current.end_character,
                )
            continue
        merged.append(current)
    return merged


def coalesce_ranges(
    ranges: Iterable[VisibleRange],
    line_count: int,
    padding: int = PADDING_LINES,
) -> list[VisibleRange]:
    """Pad every range, then merge the result.

    ``coalesce_ranges([(10, 20), (18, 30)], line_count=40)`` yields the
    single range ``(7, 33)``.
    """
    return merge_ranges(pad_range(r, line_count, padding) for r in ranges)
