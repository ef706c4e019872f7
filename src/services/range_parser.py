from __future__ import annotations

import re
from typing import Iterable

_NUMBER = re.compile(r"\d+")


def _to_page_number(token: str) -> int | None:
    token = token.strip()
    if not _NUMBER.fullmatch(token):
        return None
    return int(token)


def parse_page_ranges(text: str | None, page_count: int) -> set[int]:
    """Parse ``"1-3, 5"`` style input into zero-based page indices.

    Page numbers are 1-based and ranges inclusive. Tokens that are not a
    plain page number or a single ``start-end`` pair are skipped, as are pages
    outside ``1..page_count``. A range whose start is after its end selects
    nothing. Never raises on user input.
    """
    pages: set[int] = set()
    if not text:
        return pages

    for raw_token in text.split(","):
        token = raw_token.strip()
        if not token:
            continue

        if "-" in token:
            parts = token.split("-")
            if len(parts) != 2:
                continue
            start = _to_page_number(parts[0])
            end = _to_page_number(parts[1])
            if start is None or end is None:
                continue
            first = max(start, 1)
            last = min(end, page_count)
            pages.update(number - 1 for number in range(first, last + 1))
            continue

        number = _to_page_number(token)
        if number is not None and 1 <= number <= page_count:
            pages.add(number - 1)

    return pages


def format_page_ranges(page_indices: Iterable[int]) -> str:
    """Render zero-based indices as compact 1-based ranges, e.g. ``"1-3,5"``."""
    ordered = sorted(set(page_indices))
    if not ordered:
        return ""

    chunks: list[str] = []
    run_start = ordered[0]
    run_end = ordered[0]
    for index in ordered[1:]:
        if index == run_end + 1:
            run_end = index
            continue
        chunks.append(_format_run(run_start, run_end))
        run_start = index
        run_end = index
    chunks.append(_format_run(run_start, run_end))
    return ",".join(chunks)


def _format_run(start: int, end: int) -> str:
    if start == end:
        return str(start + 1)
    return f"{start + 1}-{end + 1}"
