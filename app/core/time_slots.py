from __future__ import annotations

from typing import Iterable


TIME_SLOTS: tuple[str, ...] = (
    '09:00-10:30',
    '10:30-12:00',
    '12:00-13:30',
    '14:00-15:30',
    '15:30-17:00',
)


def is_standard_slot(value: str | None) -> bool:
    return (value or '').strip() in TIME_SLOTS


def normalize_slot(value: str | None) -> str:
    slot = (value or '').strip()
    if slot not in TIME_SLOTS:
        raise ValueError(f"Invalid time slot '{slot}'. Expected one of: {', '.join(TIME_SLOTS)}")
    return slot


def slot_universe(observed: Iterable[str | None]) -> list[str]:
    # Legacy rows may carry slot labels outside the fixed taxonomy.
    extra = {str(value) for value in observed if value}
    return sorted(set(TIME_SLOTS) | extra)
