"""Per-image analysis: metadata extraction plus label detection."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from models import DominantColor, ImageLabels, ImageMeta, ImageRecord, ImageStatus, RGBColor
from utils.image_metadata import read_image_metadata
from utils.label_categories import categorize_labels
from utils.safe_search import build_safe_search

logger = logging.getLogger(__name__)

MAX_DOMINANT_COLORS = 10


def build_dominant_colors(colors: List[Any]) -> List[DominantColor]:
    """Keep the provider's first `MAX_DOMINANT_COLORS` colors, in order."""
    return [
        DominantColor(
            color=RGBColor(red=color.red, green=color.green, blue=color.blue),
            score=color.score,
            pixel_fraction=color.pixel_fraction,
        )
        for color in colors[:MAX_DOMINANT_COLORS]
    ]


def build_error_record(
    image_id: str,
    storage_ref: str,
    reason: str,
    metadata: Optional[ImageMeta] = None,
) -> ImageRecord:
    return ImageRecord(
        image_id=image_id,
        storage_ref=storage_ref,
        status=ImageStatus.ERROR,
        metadata=metadata,
        labels=ImageLabels(),
        error=reason,
    )


class ImageProcessor:
    """Turns one stored image into a settled `ImageRecord`.

    `process` never raises: read and detection failures become records with
    `status = error`. The processor has no access to the job store.
    """

    def __init__(self, storage: Any, detector: Any) -> None:
        self.storage = storage
        self.detector = detector

    def process(self, image_id: str, storage_ref: str) -> ImageRecord:
        try:
            raw_bytes = self.storage.read(storage_ref)
            metadata = read_image_metadata(raw_bytes)
        except Exception as exc:
            logger.exception("Image read failed image_id=%s ref=%s: %s", image_id, storage_ref, exc)
            return build_error_record(image_id, storage_ref, f"image_read_failed: {exc}")

        try:
            result = self.detector.annotate(raw_bytes)
            categorized = categorize_labels(result.labels)
            labels = ImageLabels(
                objects=categorized["objects"],
                scenes=categorized["scenes"],
                labels=categorized["labels"],
                dominant_colors=build_dominant_colors(result.colors),
                safe_search=build_safe_search(result.safe_search),
            )
        except Exception as exc:
            logger.exception("Label detection failed image_id=%s ref=%s: %s", image_id, storage_ref, exc)
            return build_error_record(image_id, storage_ref, f"detection_failed: {exc}", metadata=metadata)

        logger.info(
            "Processed image_id=%s ref=%s labels=%d scenes=%d",
            image_id,
            storage_ref,
            len(labels.labels),
            len(labels.scenes),
        )
        return ImageRecord(
            image_id=image_id,
            storage_ref=storage_ref,
            status=ImageStatus.DONE,
            metadata=metadata,
            labels=labels,
        )
