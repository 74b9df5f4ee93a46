"""Job orchestration: accept a batch, fan out image processing, commit results."""

from __future__ import annotations

import logging
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from typing import Dict, List, Optional, Sequence, Tuple

from image_processor import ImageProcessor, build_error_record
from job_store import JobStore
from models import ImageRecord, ImageStatus, Job, JobStatus

logger = logging.getLogger(__name__)

# (original_name, storage_ref) per uploaded file, in upload order.
UploadRef = Tuple[str, str]


class EmptyBatchError(ValueError):
    """Raised when a batch contains no files."""


class JobOrchestrator:
    """Creates jobs synchronously and settles them in the background.

    Results of a batch are only ever delivered by writing the job back to
    the store; `submit` hands out the pending snapshot and nothing else.
    """

    def __init__(
        self,
        store: JobStore,
        processor: ImageProcessor,
        job_workers: int = 4,
        image_workers: int = 16,
    ) -> None:
        self.store = store
        self.processor = processor
        self.job_workers = job_workers
        self.image_workers = image_workers
        # Batch runners block on image futures; the two must not share a pool.
        self.job_executor = ThreadPoolExecutor(max_workers=job_workers, thread_name_prefix="job")
        self.image_executor = ThreadPoolExecutor(max_workers=image_workers, thread_name_prefix="image")
        self._batches: Dict[str, Future] = {}
        self._batches_lock = Lock()

    def submit(self, uploads: Sequence[UploadRef]) -> Job:
        """Store a pending job for `uploads` and schedule its processing."""
        if not uploads:
            raise EmptyBatchError("A job needs at least one image.")

        job = Job(
            job_id=str(uuid.uuid4()),
            status=JobStatus.PENDING,
            images=[
                ImageRecord(
                    image_id=str(uuid.uuid4()),
                    storage_ref=storage_ref,
                    original_name=original_name,
                    status=ImageStatus.UPLOADED,
                )
                for original_name, storage_ref in uploads
            ],
        )
        job.updated_at = job.created_at
        self.store.put(job)
        snapshot = job.model_copy(deep=True)
        logger.info("Created job_id=%s images=%d", job.job_id, len(job.images))

        future = self.job_executor.submit(self.run_job, job.job_id)
        with self._batches_lock:
            self._batches[job.job_id] = future
        future.add_done_callback(lambda _: self._forget(job.job_id))

        return snapshot

    def _forget(self, job_id: str) -> None:
        with self._batches_lock:
            self._batches.pop(job_id, None)

    def run_job(self, job_id: str) -> None:
        """Process every image of a job concurrently and commit the batch."""
        started_at = time.perf_counter()
        try:
            submitted = self.store.get(job_id)
            futures = [
                self.image_executor.submit(self._process_image, job_id, image.image_id, image.storage_ref)
                for image in submitted.images
            ]

            results: List[ImageRecord] = []
            for image, future in zip(submitted.images, futures):
                try:
                    results.append(future.result())
                except Exception as exc:
                    logger.exception("Image task crashed job_id=%s image_id=%s", job_id, image.image_id)
                    results.append(build_error_record(image.image_id, image.storage_ref, f"processing_crashed: {exc}"))

            committed = self.store.update(job_id, lambda job: self._commit(job, submitted.images, results))
        except Exception:
            logger.exception("Batch run failed job_id=%s", job_id)
            raise

        failed = sum(1 for image in committed.images if image.status == ImageStatus.ERROR)
        logger.info(
            "Settled job_id=%s images=%d failed=%d duration_ms=%.2f",
            job_id,
            len(committed.images),
            failed,
            (time.perf_counter() - started_at) * 1000,
        )

    def _process_image(self, job_id: str, image_id: str, storage_ref: str) -> ImageRecord:
        self.store.update(job_id, lambda job: self._mark_processing(job, image_id))
        return self.processor.process(image_id, storage_ref)

    @staticmethod
    def _mark_processing(job: Job, image_id: str) -> None:
        for image in job.images:
            if image.image_id == image_id and image.status == ImageStatus.UPLOADED:
                image.status = ImageStatus.PROCESSING
                job.touch()
                return

    @staticmethod
    def _commit(job: Job, submitted: List[ImageRecord], results: List[ImageRecord]) -> None:
        images = []
        for original, result in zip(submitted, results):
            # The processor never sees the client-supplied name.
            result.original_name = original.original_name
            result.storage_ref = original.storage_ref
            images.append(result)
        job.images = images
        job.status = JobStatus.DONE
        job.touch()

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Job:
        """Block until the job's batch has been committed, then return it."""
        with self._batches_lock:
            future = self._batches.get(job_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.store.get(job_id)

    def fetch_one(self, job_id: str) -> Job:
        return self.store.get(job_id)

    def fetch_all(self) -> List[Job]:
        """All jobs, newest `created_at` first; ties ordered by job id."""
        return sorted(self.store.list_all(), key=lambda job: (job.created_at, job.job_id), reverse=True)

    def pending_batches(self) -> int:
        with self._batches_lock:
            return len(self._batches)

    def shutdown(self, wait: bool = True) -> None:
        self.job_executor.shutdown(wait=wait)
        self.image_executor.shutdown(wait=wait)
