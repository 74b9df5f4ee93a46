from __future__ import annotations

import threading
import uuid
from io import BytesIO
from typing import Callable, Dict, List, Optional

import pytest
from PIL import Image

from image_processor import ImageProcessor
from job_store import JobStore
from orchestrator import JobOrchestrator
from storage_client import StorageError
from vision_client import DetectedColor, DetectedLabel, DetectionResult


def make_png(width: int = 4, height: int = 3, color=(200, 10, 10)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


class MemoryStorage:
    """Dict-backed stand-in for the storage backends."""

    def __init__(self, fail_on_save: Optional[int] = None) -> None:
        self.objects: Dict[str, bytes] = {}
        self.fail_on_save = fail_on_save
        self.saves = 0
        self._lock = threading.Lock()

    def save(self, original_name: str, data: bytes) -> str:
        storage_ref = uuid.uuid4().hex
        with self._lock:
            self.saves += 1
            if self.saves == self.fail_on_save:
                raise StorageError("disk full")
            self.objects[storage_ref] = data
        return storage_ref

    def read(self, storage_ref: str) -> bytes:
        with self._lock:
            if storage_ref not in self.objects:
                raise StorageError(f"missing {storage_ref}")
            return self.objects[storage_ref]

    def delete(self, storage_ref: str) -> None:
        with self._lock:
            self.objects.pop(storage_ref, None)

    def health_snapshot(self) -> dict:
        return {"backend": "memory", "objects": len(self.objects)}


def sample_result() -> DetectionResult:
    return DetectionResult(
        labels=[
            DetectedLabel("Dog", 0.97),
            DetectedLabel("Outdoor", 0.91),
            DetectedLabel("Sky", 0.88),
            DetectedLabel("Grass", 0.456),
        ],
        colors=[DetectedColor(red=10 * i, green=20, blue=30, score=0.5, pixel_fraction=0.05) for i in range(12)],
        safe_search={
            "adult": "VERY_UNLIKELY",
            "spoof": "UNLIKELY",
            "medical": "POSSIBLE",
            "violence": "LIKELY",
            "racy": "NOT_A_LEVEL",
        },
    )


class FakeDetector:
    """Returns `sample_result()` unless the payload is listed in `failing`."""

    def __init__(self, failing: Optional[List[bytes]] = None, hook: Optional[Callable[[bytes], None]] = None) -> None:
        self.failing = list(failing or [])
        self.hook = hook
        self.calls: List[bytes] = []
        self._lock = threading.Lock()

    def annotate(self, content: bytes) -> DetectionResult:
        with self._lock:
            self.calls.append(content)
        if self.hook is not None:
            self.hook(content)
        if content in self.failing:
            raise RuntimeError("vision unavailable")
        return sample_result()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def detector() -> FakeDetector:
    return FakeDetector()


@pytest.fixture
def store() -> JobStore:
    return JobStore()


@pytest.fixture
def orchestrator(store, storage, detector):
    orchestrator = JobOrchestrator(store, ImageProcessor(storage, detector), job_workers=2, image_workers=8)
    yield orchestrator
    orchestrator.shutdown(wait=True)
