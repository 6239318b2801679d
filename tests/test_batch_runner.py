"""Tests for sequential batch processing."""

import asyncio
from datetime import datetime, timedelta

from reconciler.models.schemas import EnrichmentPatch, SourceName
from reconciler.services.batch_runner import BatchRunner


def test_batch_continues_after_failures(make_record) -> None:
    records = [make_record("A"), make_record("B"), make_record("C")]

    async def worker(record):
        if record.key == "B":
            raise RuntimeError("source unavailable")
        return EnrichmentPatch(source=SourceName.CROSSREF, fields={"volume": "1"})

    runner = BatchRunner()
    job_id = runner.create_job("enrich", len(records))
    summary = asyncio.run(runner.run(job_id, records, worker, delay=0))

    assert summary.total == 3
    assert summary.succeeded == 2
    assert summary.failed == 1
    assert summary.errors == {"B": "source unavailable"}
    assert summary.results["A"]["fields"] == {"volume": "1"}

    job = runner.get_job(job_id)
    assert job.status == "completed"
    assert job.progress == 100
    assert job.processed == 3
    assert job.completed_at is not None


def test_cancellation_stops_before_next_record(make_record) -> None:
    records = [make_record("A"), make_record("B"), make_record("C")]
    runner = BatchRunner()
    job_id = runner.create_job("verify", len(records))
    processed = []

    async def worker(record):
        processed.append(record.key)
        if record.key == "A":
            runner.request_cancel(job_id)
        return None

    summary = asyncio.run(runner.run(job_id, records, worker, delay=0))

    assert processed == ["A"]
    assert summary.cancelled
    assert runner.get_job(job_id).status == "cancelled"
    assert not runner.request_cancel(job_id)


def test_delay_is_applied_between_records_only(make_record, monkeypatch) -> None:
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)

    async def worker(record):
        return None

    runner = BatchRunner()
    records = [make_record("A"), make_record("B"), make_record("C")]
    job_id = runner.create_job("verify", len(records))
    asyncio.run(runner.run(job_id, records, worker, delay=1.5))

    assert sleeps == [1.5, 1.5]


def test_unknown_job_cannot_be_cancelled() -> None:
    assert not BatchRunner().request_cancel("missing")


def test_finished_jobs_expire_when_new_jobs_are_created() -> None:
    runner = BatchRunner(cleanup_retention_hours=2)
    old_id = runner.create_job("verify", 1)
    runner.update_job_status(old_id, "completed")
    runner.jobs[old_id].completed_at = datetime.now() - timedelta(hours=3)
    running_id = runner.create_job("verify", 1)
    runner.update_job_status(running_id, "processing")

    new_id = runner.create_job("enrich", 2)

    assert runner.get_job(old_id) is None
    assert runner.get_job(running_id) is not None
    assert runner.get_job_count() == 2
    assert runner.get_active_job_count() == 2
    assert runner.get_job(new_id).status == "pending"


def test_started_job_is_held_until_done(make_record) -> None:
    runner = BatchRunner()
    records = [make_record("A"), make_record("B")]

    async def worker(record):
        return {"key": record.key}

    async def scenario():
        job_id = runner.create_job("verify", len(records))
        task = runner.start(job_id, records, worker, delay=0)
        assert task in runner.tasks
        await task
        await asyncio.sleep(0)
        return job_id

    job_id = asyncio.run(scenario())

    assert runner.tasks == set()
    assert runner.get_job(job_id).status == "completed"
    assert runner.get_job(job_id).result["succeeded"] == 2
