"""
Tests for the background job manager.

Run tests:
    pytest tests/test_jobs.py -v
"""

import asyncio
import threading
import time
from datetime import datetime, timedelta

import pytest

from api.jobs import JobStatus, JobType
from realtime import MessageType, ws_manager


def _wait(manager, job):
    manager.get_future(job.id).result(timeout=10)
    return job


class TestJobLifecycle:
    def test_completed_job_stores_result(self, fresh_job_manager):
        job = fresh_job_manager.create_job(JobType.TRADEOFF, {"samples": 10})
        assert job.status == JobStatus.PENDING
        assert job.id.startswith("tradeoff_")

        fresh_job_manager.submit_job(job, lambda j, progress: {"answer": 42})
        _wait(fresh_job_manager, job)

        assert job.status == JobStatus.COMPLETED
        assert job.result == {"answer": 42}
        assert job.progress == 100.0
        assert job.to_dict()["duration_seconds"] is not None

    def test_non_dict_results_are_wrapped(self, fresh_job_manager):
        job = fresh_job_manager.create_job(JobType.TRADEOFF, {})
        fresh_job_manager.submit_job(job, lambda j, progress: [1, 2])
        _wait(fresh_job_manager, job)
        assert job.result == {"result": [1, 2]}

    def test_failed_job_keeps_error_and_traceback(self, fresh_job_manager):
        def task(job, progress):
            raise ValueError("boom")

        job = fresh_job_manager.create_job(JobType.TRAINING, {})
        fresh_job_manager.submit_job(job, task)
        _wait(fresh_job_manager, job)

        assert job.status == JobStatus.FAILED
        assert job.error == "boom"
        assert "ValueError" in job.error_traceback

    def test_progress_is_clamped(self, fresh_job_manager):
        seen = []

        def task(job, progress):
            progress(150.0, "too far")
            seen.append(job.progress)
            return {}

        job = fresh_job_manager.create_job(JobType.TRADEOFF, {})
        fresh_job_manager.submit_job(job, task)
        _wait(fresh_job_manager, job)
        assert seen == [100.0]

    def test_submit_after_shutdown_raises(self, fresh_job_manager):
        fresh_job_manager.shutdown()
        job = fresh_job_manager.create_job(JobType.TRADEOFF, {})
        with pytest.raises(RuntimeError):
            fresh_job_manager.submit_job(job, lambda j, progress: {})


class TestCancellation:
    def test_cancel_pending_job(self, fresh_job_manager):
        job = fresh_job_manager.create_job(JobType.TRADEOFF, {})
        assert fresh_job_manager.cancel_job(job.id) is True
        assert job.status == JobStatus.CANCELLED
        assert fresh_job_manager.cancel_job(job.id) is False

    def test_cancel_running_job_stops_at_next_report(self, fresh_job_manager):
        started = threading.Event()

        def task(job, progress):
            started.set()
            while progress(10.0, "working"):
                time.sleep(0.01)
            return {"stopped": True}

        job = fresh_job_manager.create_job(JobType.TRAINING, {})
        fresh_job_manager.submit_job(job, task)
        assert started.wait(timeout=5)

        assert fresh_job_manager.cancel_job(job.id) is True
        _wait(fresh_job_manager, job)
        assert job.status == JobStatus.CANCELLED
        assert job.result is None

    def test_cancel_unknown_job(self, fresh_job_manager):
        assert fresh_job_manager.cancel_job("missing") is False


class TestBookkeeping:
    def test_metrics_history(self, fresh_job_manager):
        job = fresh_job_manager.create_job(JobType.TRAINING, {})
        assert fresh_job_manager.update_job_metrics(job.id, {"epoch": 1, "val_loss": 0.7})
        assert fresh_job_manager.update_job_metrics(job.id, {"epoch": 2, "val_loss": 0.6})

        assert job.metrics == {"epoch": 2, "val_loss": 0.6}
        history = job.to_dict(include_history=True)["history"]
        assert [h["epoch"] for h in history] == [1, 2]
        assert fresh_job_manager.update_job_metrics("missing", {}) is False

    def test_callbacks_receive_updates(self, fresh_job_manager):
        statuses = []
        job = fresh_job_manager.create_job(JobType.TRADEOFF, {})
        fresh_job_manager.register_callback(job.id, lambda j: statuses.append(j.status))

        fresh_job_manager.submit_job(job, lambda j, progress: {})
        _wait(fresh_job_manager, job)

        assert statuses[0] == JobStatus.RUNNING
        assert statuses[-1] == JobStatus.COMPLETED

    def test_list_jobs_filters(self, fresh_job_manager):
        fresh_job_manager.create_job(JobType.TRADEOFF, {})
        training = fresh_job_manager.create_job(JobType.TRAINING, {})

        assert [j.id for j in fresh_job_manager.list_jobs(job_type=JobType.TRAINING)] == [training.id]
        assert len(fresh_job_manager.list_jobs(status=JobStatus.PENDING)) == 2
        assert len(fresh_job_manager.list_jobs(limit=1)) == 1

    def test_cleanup_old_jobs(self, fresh_job_manager):
        old = fresh_job_manager.create_job(JobType.TRADEOFF, {})
        fresh_job_manager.cancel_job(old.id)
        old.completed_at = datetime.now() - timedelta(hours=2)
        fresh = fresh_job_manager.create_job(JobType.TRADEOFF, {})

        assert fresh_job_manager.cleanup_old_jobs(max_age_hours=1) == 1
        assert fresh_job_manager.get_job(old.id) is None
        assert fresh_job_manager.get_job(fresh.id) is fresh

    def test_metrics_updates_reach_the_job_channel(self, fresh_job_manager, monkeypatch):
        sent = []

        async def record(channel, message):
            sent.append((channel, message))
            return 1

        monkeypatch.setattr(ws_manager, "broadcast_to_channel", record)
        job = fresh_job_manager.create_job(JobType.TRAINING, {})

        async def run():
            fresh_job_manager.bind_loop(asyncio.get_running_loop())
            fresh_job_manager.update_job_metrics(job.id, {"epoch": 1})
            for _ in range(20):
                if sent:
                    break
                await asyncio.sleep(0.01)

        asyncio.run(run())

        assert len(sent) == 1
        channel, message = sent[0]
        assert channel == f"job:{job.id}"
        assert message.type == MessageType.JOB_METRICS
        assert message.data == {"job_id": job.id, "metrics": {"epoch": 1}}
