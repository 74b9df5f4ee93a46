"""In-memory job store with per-job write serialization."""

from __future__ import annotations

from threading import Lock
from typing import Callable, Dict, List

from models import Job

JobMutator = Callable[[Job], None]


class JobNotFoundError(KeyError):
    """Raised when a job id was never stored."""

    def __init__(self, job_id: str) -> None:
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self) -> str:
        return f"Job not found: {self.job_id}"


class JobStore:
    """Process-lifetime mapping of job id to job.

    Reads hand out deep copies. Writers of the same job are serialized
    through a lock keyed by job id.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}
        self._jobs_lock = Lock()
        self._job_locks: Dict[str, Lock] = {}

    def _lock_for(self, job_id: str) -> Lock:
        with self._jobs_lock:
            lock = self._job_locks.get(job_id)
            if lock is None:
                lock = Lock()
                self._job_locks[job_id] = lock
            return lock

    def put(self, job: Job) -> None:
        """Insert or overwrite the job at `job.job_id`."""
        with self._lock_for(job.job_id):
            with self._jobs_lock:
                self._jobs[job.job_id] = job.model_copy(deep=True)

    def get(self, job_id: str) -> Job:
        with self._jobs_lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job.model_copy(deep=True)

    def list_all(self) -> List[Job]:
        with self._jobs_lock:
            return [job.model_copy(deep=True) for job in self._jobs.values()]

    def update(self, job_id: str, mutator: JobMutator) -> Job:
        """Apply `mutator` to a copy of the job and write it back atomically."""
        with self._lock_for(job_id):
            job = self.get(job_id)
            mutator(job)
            with self._jobs_lock:
                self._jobs[job_id] = job.model_copy(deep=True)
            return job

    def clear(self) -> None:
        with self._jobs_lock:
            self._jobs.clear()
            self._job_locks.clear()

    def __len__(self) -> int:
        with self._jobs_lock:
            return len(self._jobs)
