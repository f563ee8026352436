# backend/bookflow/services/slots/calculator.py
"""
Slot math: pure conversions from open/close windows to candidate slot starts.

Minutes are counted from local midnight of the target date. A window may
extend past 1440 (24:00) to represent an overnight span; slot starts past
24:00 belong to the next calendar day but are labelled in wall-clock time.

No database access here.
"""

from math import ceil

from .config import MINUTES_PER_DAY, time_str_to_minutes

Window = tuple[int, int]


def normalize_window(open_min: int, close_min: int) -> Window:
    """
    Normalize an (open, close) pair to a forward window.

    close <= open means the window runs overnight, so close moves to the
    next day (open 18:00, close 02:00 -> 1080..1560; equal values -> 24h).
    If the pair is still not forward after that (malformed config),
    the window runs until the end of the day.
    """
    if close_min <= open_min:
        close_min += MINUTES_PER_DAY
    if close_min <= open_min:
        close_min = max(MINUTES_PER_DAY, open_min + 1)
    return open_min, close_min


def parse_window(open_time: str, close_time: str) -> Window:
    """Parse "HH:MM"/12h open and close strings into a normalized window."""
    return normalize_window(time_str_to_minutes(open_time), time_str_to_minutes(close_time))


def generate_slot_starts(open_min: int, close_min: int, step: int) -> list[int]:
    """
    Slot starts on the step grid: first = ceil(open/step)*step, then
    first, first+step, ... while < close.

    Deterministic and pure: the same (open, close, step) always yields
    the same ordered list.
    """
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")

    open_min, close_min = normalize_window(open_min, close_min)

    first = ceil(open_min / step) * step
    return list(range(first, close_min, step))


def intersect_windows(blocks: list[Window], window: Window) -> list[Window]:
    """
    Intersect (start, end) blocks with a window, dropping empty results.

    Output is sorted and overlapping/touching blocks are merged.
    """
    w_start, w_end = window
    clipped = []
    for start, end in blocks:
        start, end = max(start, w_start), min(end, w_end)
        if start < end:
            clipped.append((start, end))
    return merge_windows(clipped)


def merge_windows(blocks: list[Window]) -> list[Window]:
    """Sort blocks and merge overlapping or touching ones."""
    merged: list[Window] = []
    for start, end in sorted(blocks):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def generate_slots_for_windows(windows: list[Window], step: int) -> list[int]:
    """Union of generate_slot_starts over several windows, sorted, no duplicates."""
    starts: set[int] = set()
    for start, end in windows:
        starts.update(generate_slot_starts(start, end, step))
    return sorted(starts)
