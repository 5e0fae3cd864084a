"""Confidence scoring utilities.

Models report confidence as free-form numbers (sometimes strings, sometimes
percentages, sometimes missing).  Everything downstream of the response
parser works with floats in [0.0, 1.0]; this module owns the coercion and
the few aggregate operations applied to those scores.

Merging duplicate items across chunks always keeps the MAXIMUM confidence.
``max`` is commutative and associative, so the merged value does not depend
on the order in which chunk results arrive.
"""

from __future__ import annotations

import math
from typing import Any

DEFAULT_CONFIDENCE = 0.5


def clamp_confidence(value: Any, default: float = DEFAULT_CONFIDENCE) -> float:
    """Coerce an arbitrary model-supplied value into [0.0, 1.0].

    Out-of-range numbers are clamped.  Anything that is not a finite number
    falls back to *default*.
    """
    if isinstance(value, bool):
        return default
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(score):
        return default
    return max(0.0, min(1.0, score))


def merge_confidence(*scores: float) -> float:
    """Merge duplicate-item confidences (maximum)."""
    return max(scores) if scores else 0.0


def mean_confidence(scores: list[float]) -> float:
    """Arithmetic mean of *scores*, ``0.0`` for an empty list."""
    if not scores:
        return 0.0
    return sum(scores) / len(scores)


def keyword_confidence(frequency: int) -> float:
    """Confidence assigned to an entity derived from a keyword.

    Keywords carry a frequency rather than a confidence: a single mention
    scores 0.5 and each further mention adds 0.1, capped at 1.0.
    """
    return min(1.0, 0.5 + 0.1 * max(frequency - 1, 0))
