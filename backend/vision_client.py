"""Google Cloud Vision wrapper for label, color and safe-search detection."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Dict, List, Optional

from google.api_core.exceptions import GoogleAPIError
from google.cloud import vision

from config import read_int_env

logger = logging.getLogger(__name__)

SAFE_SEARCH_FIELDS = ("adult", "spoof", "medical", "violence", "racy")


class DetectionProviderError(RuntimeError):
    """Raised when the detection call fails or returns an API-level error."""


@dataclass
class DetectedLabel:
    description: str
    score: float


@dataclass
class DetectedColor:
    red: float
    green: float
    blue: float
    score: float
    pixel_fraction: float


@dataclass
class DetectionResult:
    """Provider output, in provider order."""

    labels: List[DetectedLabel] = field(default_factory=list)
    colors: List[DetectedColor] = field(default_factory=list)
    safe_search: Optional[Dict[str, str]] = None


class VisionService:
    """Thin wrapper around `ImageAnnotatorClient.annotate_image`."""

    def __init__(self, client: Optional[Any] = None) -> None:
        self.timeout_seconds = read_int_env("VISION_TIMEOUT_SECONDS", default=30, min_value=1, max_value=300)
        self.max_results = read_int_env("VISION_MAX_RESULTS", default=50, min_value=1, max_value=200)
        self._client = client
        self._client_lock = Lock()

    @property
    def client(self) -> Any:
        # Created on first use.
        with self._client_lock:
            if self._client is None:
                self._client = vision.ImageAnnotatorClient()
            return self._client

    def build_request(self, content: bytes) -> vision.AnnotateImageRequest:
        return vision.AnnotateImageRequest(
            image=vision.Image(content=content),
            features=[
                vision.Feature(type_=vision.Feature.Type.LABEL_DETECTION, max_results=self.max_results),
                vision.Feature(type_=vision.Feature.Type.IMAGE_PROPERTIES),
                vision.Feature(type_=vision.Feature.Type.SAFE_SEARCH_DETECTION),
            ],
        )

    def annotate(self, content: bytes) -> DetectionResult:
        """Run label, image-properties and safe-search detection on raw bytes."""
        try:
            response = self.client.annotate_image(self.build_request(content), timeout=self.timeout_seconds)
        except GoogleAPIError as exc:
            raise DetectionProviderError(f"Vision request failed: {exc}") from exc

        if response.error.message:
            raise DetectionProviderError(f"Vision returned an error: {response.error.message}")

        return parse_response(response)

    def health_snapshot(self) -> Dict[str, Any]:
        return {
            "provider": "google-cloud-vision",
            "timeout_seconds": self.timeout_seconds,
            "max_results": self.max_results,
            "client_initialized": self._client is not None,
        }


def _likelihood_name(value: Any) -> str:
    name = getattr(value, "name", None)
    if name:
        return name
    try:
        return vision.Likelihood(value).name
    except ValueError:
        return "UNKNOWN"


def parse_response(response: vision.AnnotateImageResponse) -> DetectionResult:
    """Convert an `AnnotateImageResponse` into a `DetectionResult`."""
    labels = [
        DetectedLabel(description=annotation.description or "", score=float(annotation.score or 0.0))
        for annotation in response.label_annotations
    ]

    colors: List[DetectedColor] = []
    for info in response.image_properties_annotation.dominant_colors.colors:
        if "color" not in info:
            continue
        colors.append(
            DetectedColor(
                red=float(info.color.red or 0.0),
                green=float(info.color.green or 0.0),
                blue=float(info.color.blue or 0.0),
                score=float(info.score or 0.0),
                pixel_fraction=float(info.pixel_fraction or 0.0),
            )
        )

    safe_search = None
    if "safe_search_annotation" in response:
        annotation = response.safe_search_annotation
        safe_search = {name: _likelihood_name(getattr(annotation, name)) for name in SAFE_SEARCH_FIELDS}

    return DetectionResult(labels=labels, colors=colors, safe_search=safe_search)
