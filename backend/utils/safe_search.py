"""Content-safety likelihood mapping."""

from __future__ import annotations

from typing import Mapping, Optional

from models import SafeSearch

LIKELIHOOD_LABELS = {
    "UNKNOWN": "Unknown",
    "VERY_UNLIKELY": "Very Unlikely",
    "UNLIKELY": "Unlikely",
    "POSSIBLE": "Possible",
    "LIKELY": "Likely",
    "VERY_LIKELY": "Very Likely",
}
SAFE_SEARCH_CATEGORIES = ("adult", "spoof", "medical", "violence", "racy")


def map_likelihood(raw: object) -> str:
    """Map a raw likelihood name to its readable label, `Unknown` otherwise."""
    if raw is None:
        return "Unknown"
    return LIKELIHOOD_LABELS.get(str(raw).strip().upper(), "Unknown")


def build_safe_search(raw: Optional[Mapping[str, object]]) -> Optional[SafeSearch]:
    if raw is None:
        return None
    return SafeSearch(**{category: map_likelihood(raw.get(category)) for category in SAFE_SEARCH_CATEGORIES})
