from __future__ import annotations

import re
from dataclasses import dataclass, field


CONFIDENCE_HIGH = "high"
CONFIDENCE_LOW = "low"
CONFIDENCE_NONE = "none"

CONFIDENCE_RANK = {CONFIDENCE_NONE: 0, CONFIDENCE_LOW: 1, CONFIDENCE_HIGH: 2}

DAY_MARKER_KEYWORDS = ("day", "daily", "johan")

# Markers start at a word boundary, so "Sunday 5" is not a marker.
_HIGH_RE = re.compile(
    r"\b(?:" + "|".join(DAY_MARKER_KEYWORDS) + r")\s*#?\s*(\d+)",
    flags=re.I,
)
_LOW_RE = re.compile(r"\b(\d+)\b")


@dataclass(slots=True)
class Classification:
    days: list[int] = field(default_factory=list)
    confidence: str = CONFIDENCE_NONE

    @property
    def empty(self) -> bool:
        return not self.days


def classify(text: str | None) -> Classification:
    """
    Extract candidate day numbers from free text.

    Numbers right after a day marker ("Day 42", "daily #7") are high
    confidence. Only when none are found do bare numbers count, at low
    confidence.
    """
    content = text or ""

    high = [int(m.group(1)) for m in _HIGH_RE.finditer(content)]
    if high:
        return Classification(days=high, confidence=CONFIDENCE_HIGH)

    low = [int(m.group(1)) for m in _LOW_RE.finditer(content)]
    if low:
        return Classification(days=low, confidence=CONFIDENCE_LOW)

    return Classification()


def merge_confidence(current: str, incoming: str) -> str:
    # Only ever upgrades to high; a later low/none never lowers the session.
    if incoming == CONFIDENCE_HIGH:
        return CONFIDENCE_HIGH
    if CONFIDENCE_RANK.get(current, 0) >= CONFIDENCE_RANK.get(incoming, 0):
        return current
    return incoming
