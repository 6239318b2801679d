"""
Batch runner for sequential, cancellable processing of many records
"""
import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Dict, Any, List, Optional, Callable, Awaitable, Set
from loguru import logger

from ..config import settings
from ..models.schemas import JobStatus, BatchSummary, Record

TERMINAL_STATUSES = ["completed", "failed", "cancelled"]


def _serialize(result: Any) -> Any:
    if hasattr(result, "model_dump"):
        return result.model_dump(mode="json")
    return result


class BatchRunner:
    """Tracks batch jobs and runs one record at a time with a delay between records"""

    def __init__(self, cleanup_retention_hours: int = 2):
        self.jobs: Dict[str, JobStatus] = {}
        self.cleanup_retention_hours = cleanup_retention_hours
        # running job tasks, released when they finish
        self.tasks: Set[asyncio.Task] = set()

    def create_job(self, operation: str, total: int) -> str:
        self.cleanup_old_jobs()
        job_id = str(uuid.uuid4())
        self.jobs[job_id] = JobStatus(
            job_id=job_id,
            operation=operation,
            status="pending",
            total=total,
            message="Job created, waiting to start processing"
        )
        logger.info(f"📋 Created {operation} job {job_id} for {total} records")
        return job_id

    def get_job(self, job_id: str) -> Optional[JobStatus]:
        return self.jobs.get(job_id)

    def update_job_status(self, job_id: str, status: str, **kwargs):
        """Update job status and progress"""
        if job_id not in self.jobs:
            logger.warning(f"Job {job_id} not found")
            return

        job = self.jobs[job_id]
        job.status = status
        for field in ("processed", "succeeded", "failed", "progress", "message", "result", "error"):
            if field in kwargs:
                setattr(job, field, kwargs[field])

        if status == "processing" and not job.started_at:
            job.started_at = datetime.now()
        elif status in TERMINAL_STATUSES and not job.completed_at:
            job.completed_at = datetime.now()

        logger.info(f"📊 Job {job_id} status: {status} - {job.message}")

    def request_cancel(self, job_id: str) -> bool:
        """Flag a job for cancellation; it stops before its next record"""
        job = self.jobs.get(job_id)
        if not job or job.status in TERMINAL_STATUSES:
            return False
        job.cancel_requested = True
        logger.info(f"🛑 Cancellation requested for job {job_id}")
        return True

    async def run(self, job_id: str, records: List[Record], worker: Callable[[Record], Awaitable[Any]],
                  delay: Optional[float] = None) -> BatchSummary:
        """Process ``records`` sequentially; one failure never aborts the batch"""
        delay = settings.rate_limit_delay if delay is None else delay
        job = self.jobs[job_id]
        summary = BatchSummary(total=len(records))
        self.update_job_status(job_id, "processing", message=f"Processing {len(records)} records")

        for index, record in enumerate(records):
            if job.cancel_requested:
                summary.cancelled = True
                break

            try:
                summary.results[record.key] = _serialize(await worker(record))
                summary.succeeded += 1
            except Exception as e:
                logger.error(f"❌ Job {job_id}: {record.key} failed: {str(e)}")
                summary.errors[record.key] = str(e)
                summary.failed += 1

            processed = index + 1
            self.update_job_status(
                job_id, "processing",
                processed=processed,
                succeeded=summary.succeeded,
                failed=summary.failed,
                progress=int(processed * 100 / len(records)),
                message=f"Processed {processed}/{len(records)} records",
            )

            if delay > 0 and processed < len(records):
                await asyncio.sleep(delay)

        final_status = "cancelled" if summary.cancelled else "completed"
        self.update_job_status(
            job_id, final_status,
            result=summary.model_dump(mode="json"),
            message=f"{summary.succeeded} succeeded, {summary.failed} failed" + (" (cancelled)" if summary.cancelled else ""),
        )
        return summary

    async def run_in_background(self, job_id: str, records: List[Record],
                                worker: Callable[[Record], Awaitable[Any]], delay: Optional[float] = None):
        """Entry point for background tasks: never lets an exception escape"""
        try:
            await self.run(job_id, records, worker, delay)
        except Exception as e:
            logger.error(f"❌ Job {job_id} crashed: {str(e)}")
            self.update_job_status(job_id, "failed", error=str(e), message="Job failed")

    def start(self, job_id: str, records: List[Record], worker: Callable[[Record], Awaitable[Any]],
              delay: Optional[float] = None) -> asyncio.Task:
        """Schedule a job on the running loop and hold on to its task until it finishes"""
        task = asyncio.create_task(self.run_in_background(job_id, records, worker, delay))
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)
        return task

    def cleanup_old_jobs(self) -> int:
        cutoff_time = datetime.now() - timedelta(hours=self.cleanup_retention_hours)
        stale = [job_id for job_id, job in self.jobs.items()
                 if job.status in TERMINAL_STATUSES and job.completed_at and job.completed_at < cutoff_time]
        for job_id in stale:
            self.jobs.pop(job_id, None)
        if stale:
            logger.info(f"🧹 Cleaned up {len(stale)} old jobs")
        return len(stale)

    def get_job_count(self) -> int:
        return len(self.jobs)

    def get_active_job_count(self) -> int:
        return len([j for j in self.jobs.values() if j.status in ["pending", "processing"]])


# Global batch runner instance
batch_runner = BatchRunner()
