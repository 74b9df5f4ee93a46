"""Split detected labels into scene and object views."""

from __future__ import annotations

import math
from typing import Dict, Iterable, List

from models import LabelWithScore

SCENE_CONFIDENCE_THRESHOLD = 0.8

# Scene and primary-subject vocabulary, matched as lowercase substrings.
SCENE_KEYWORDS = (
    "selfie", "portrait", "landscape", "indoor", "outdoor", "nature",
    "city", "urban", "sky", "sunset", "sunrise", "night", "daytime",
    "architecture", "street", "beach", "mountain", "forest", "desert",
    "water", "ocean", "lake", "river", "building", "room", "home",
    "garden", "park", "countryside", "wilderness", "scenery", "vista",
    "bird", "animal", "wildlife", "pet", "insect", "fish", "mammal",
    "plant", "flower", "tree", "vegetation",
)


def to_percent(score: float) -> float:
    """Rescale a 0-1 confidence to a percentage rounded half-up to 0.1."""
    return math.floor(score * 1000 + 0.5) / 10


def is_scene_label(description: str) -> bool:
    lowered = description.lower()
    return any(keyword in lowered for keyword in SCENE_KEYWORDS)


def categorize_labels(detected: Iterable[object]) -> Dict[str, List[LabelWithScore]]:
    """Return `labels`, `scenes` and `objects` views of provider labels.

    Input order matters: the first label matching the scene vocabulary with
    confidence above the threshold becomes the only scene entry, and every
    other label lands in `objects`.
    """
    labels: List[LabelWithScore] = []
    scenes: List[LabelWithScore] = []
    objects: List[LabelWithScore] = []

    for item in detected:
        description = getattr(item, "description", "") or ""
        score = float(getattr(item, "score", 0.0) or 0.0)
        entry = LabelWithScore(description=description, score=to_percent(score))
        labels.append(entry)

        if not scenes and score > SCENE_CONFIDENCE_THRESHOLD and is_scene_label(description):
            scenes.append(entry)
        else:
            objects.append(entry)

    return {"labels": labels, "scenes": scenes, "objects": objects}
