import threading

import pytest

from engine.errors import EncodingFailed, RunCancelled
from engine.export.artifact import EncodedArtifact
from engine.export.service import ExportBusy, ExportService
from engine.progress import ProgressEvent


def _artifact() -> EncodedArtifact:
    return EncodedArtifact(b"GIF89a;", "image/gif", "mockup-2026-01-01.gif")


@pytest.mark.smoke
def test_job_completes_with_artifact_and_progress():
    def work(cancel, on_progress):
        for p in (10, 50, 90):
            on_progress(ProgressEvent(p, f"step {p}"))
        return _artifact()

    with ExportService(workers=1, queue_size=2) as svc:
        job = svc.submit(work)
        pr = svc.wait(job, timeout=5)
    assert pr.state == "completed"
    assert pr.percent == 100
    assert pr.artifact is not None and pr.artifact.data == b"GIF89a;"
    assert pr.error is None


def test_failed_job_records_error():
    def work(cancel, on_progress):
        raise EncodingFailed("gif", message="quantize blew up")

    with ExportService(workers=1) as svc:
        pr = svc.wait(svc.submit(work), timeout=5)
    assert pr.state == "failed"
    assert "quantize blew up" in (pr.error or "")
    assert pr.artifact is None


def test_unexpected_exception_is_failure():
    def work(cancel, on_progress):
        raise KeyError("boom")

    with ExportService(workers=1) as svc:
        pr = svc.wait(svc.submit(work), timeout=5)
    assert pr.state == "failed"
    assert "KeyError" in (pr.error or "")


def test_cancel_running_job():
    started = threading.Event()

    def work(cancel, on_progress):
        started.set()
        assert cancel.wait(5)
        raise RunCancelled("capture", 3)

    with ExportService(workers=1) as svc:
        job = svc.submit(work)
        assert started.wait(5)
        svc.cancel(job)
        assert svc.progress(job).state in ("cancelling", "cancelled")
        pr = svc.wait(job, timeout=5)
    assert pr.state == "cancelled"


def test_full_queue_raises_busy_and_pending_job_can_be_cancelled():
    gate = threading.Event()
    started = threading.Event()

    def blocking(cancel, on_progress):
        started.set()
        gate.wait(5)
        return _artifact()

    ran: list[str] = []

    def pending(cancel, on_progress):
        ran.append("pending")
        return _artifact()

    svc = ExportService(workers=1, queue_size=1)
    try:
        first = svc.submit(blocking)
        assert started.wait(5)
        second = svc.submit(pending)
        with pytest.raises(ExportBusy):
            svc.submit(pending)
        svc.cancel(second)
        gate.set()
        assert svc.wait(first, timeout=5).state == "completed"
        assert svc.wait(second, timeout=5).state == "cancelled"
        assert ran == []
    finally:
        gate.set()
        svc.close()


def test_unknown_job_and_forget():
    with ExportService(workers=1) as svc:
        assert svc.progress("nope").state == "failed"
        job = svc.submit(lambda cancel, on_progress: _artifact())
        svc.wait(job, timeout=5)
        svc.forget(job)
        assert svc.progress(job).error == "unknown job"


def test_closed_service_rejects_submit():
    svc = ExportService(workers=1)
    svc.close()
    with pytest.raises(RuntimeError):
        svc.submit(lambda cancel, on_progress: _artifact())
