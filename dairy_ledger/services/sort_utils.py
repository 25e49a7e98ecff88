from __future__ import annotations


def normalize_sort_text(value: str | None) -> str:
    return (value or '').strip().casefold()


def name_sort_key(value: str | None) -> tuple[str, str]:
    # Case-insensitive first, raw text breaks ties so the order is total.
    return (normalize_sort_text(value), value or '')
