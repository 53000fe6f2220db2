import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Optional

from .context import ReportRequest

logger = logging.getLogger(__name__)

ReportBuilder = Callable[[str, ReportRequest], Path]


@dataclass
class ReportJob:
    id: str
    request: ReportRequest
    status: str = "submitted"
    result_path: Optional[str] = None
    error: Optional[str] = None
    future: Optional[Future] = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self.status in ("completed", "failed")


class ReportQueue:
    """
    Threaded queue so reports can be generated without blocking the builder page.
    Every job builds its own ``Report`` and therefore its own workspace.
    """

    def __init__(self, max_workers: int = 2):
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="report")
        self.jobs: Dict[str, ReportJob] = {}
        self.lock = threading.Lock()

    def submit(self, request: ReportRequest, builder: ReportBuilder) -> str:
        job_id = uuid.uuid4().hex[:12]
        job = ReportJob(id=job_id, request=request, status="queued")
        with self.lock:
            self.jobs[job_id] = job
        job.future = self.executor.submit(self._run_job, job_id, builder)
        logger.info("Queued report job %s for dashboard %r", job_id, request.dashboard)
        return job_id

    def _run_job(self, job_id: str, builder: ReportBuilder) -> None:
        with self.lock:
            job = self.jobs[job_id]
            job.status = "running"
        try:
            path = builder(job_id, job.request)
        except Exception as exc:  # recorded on the job, surfaced by get()
            logger.exception("Report job %s failed", job_id)
            with self.lock:
                job.status = "failed"
                job.error = str(exc)
            return
        with self.lock:
            job.status = "completed"
            job.result_path = str(path)
        logger.info("Report job %s completed: %s", job_id, path)

    def get(self, job_id: str) -> Optional[ReportJob]:
        with self.lock:
            return self.jobs.get(job_id)

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[ReportJob]:
        job = self.get(job_id)
        if job is not None and job.future is not None:
            job.future.result(timeout=timeout)
        return job

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
