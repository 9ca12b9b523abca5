"""
どこで: `engine.export.service`。
何を: エクスポートランを非ブロッキングで実行するワーカースレッド群＋ジョブ管理。
なぜ: ホストアプリの応答性を保ったまま、キャプチャ/エンコード（重い処理）をバックグラウンドに逃がすため。

- 投入は有界キュー。満杯なら `ExportBusy`（上位は「実行中」を表示）。
- 各ジョブは専用の `cancel_event` を持ち、`cancel()` で協調キャンセルする。
- 進捗は `progress(job_id)` でスナップショットとして取得する。
"""

from __future__ import annotations

import itertools
import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Literal, Optional

from common import settings as _settings
from engine.errors import ExportError, RunCancelled
from engine.progress import ProgressCallback, ProgressEvent

from .artifact import EncodedArtifact

logger = logging.getLogger(__name__)

JobState = Literal[
    "pending",
    "running",
    "cancelling",
    "completed",
    "failed",
    "cancelled",
]

# (cancel_event, on_progress) -> EncodedArtifact
ExportWork = Callable[[threading.Event, ProgressCallback], EncodedArtifact]


class ExportBusy(RuntimeError):
    """ジョブキューが満杯で投入できない。"""


@dataclass(frozen=True)
class JobProgress:
    state: JobState
    percent: float
    status: str
    artifact: Optional[EncodedArtifact]
    error: Optional[str]


@dataclass
class _Job:
    job_id: str
    work: ExportWork
    state: JobState = "pending"
    percent: float = 0.0
    status: str = "Queued"
    error: Optional[str] = None
    artifact: Optional[EncodedArtifact] = None
    cancel_event: threading.Event = field(default_factory=threading.Event)
    done: threading.Event = field(default_factory=threading.Event)


_STOP = object()


class ExportService:
    """エクスポートジョブ用のワーカースレッド群＋ジョブ管理。

    Parameters
    ----------
    workers : int | None
        ワーカースレッド数。None で `MRL_EXPORT_WORKERS`。
    queue_size : int | None
        保留できるジョブ数。None で `MRL_EXPORT_QUEUE_SIZE`。
    """

    def __init__(self, *, workers: int | None = None, queue_size: int | None = None) -> None:
        cfg = _settings.get()
        n_workers = max(1, int(workers if workers is not None else cfg.EXPORT_WORKERS))
        size = max(1, int(queue_size if queue_size is not None else cfg.EXPORT_QUEUE_SIZE))
        self._q: "queue.Queue[object]" = queue.Queue(maxsize=size)
        self._lock = threading.Lock()
        self._jobs: dict[str, _Job] = {}
        self._closed = False
        self._threads = [
            threading.Thread(target=self._worker, name=f"ExportWorker-{i}", daemon=True)
            for i in range(n_workers)
        ]
        for th in self._threads:
            th.start()

    # --- public API ---
    def submit(self, work: ExportWork) -> str:
        """ジョブを投入し、`job_id` を返す。キューが満杯なら `ExportBusy`。"""
        if self._closed:
            raise RuntimeError("ExportService は既に閉じられています")
        job = _Job(job_id=_new_job_id(), work=work)
        with self._lock:
            self._jobs[job.job_id] = job
        try:
            self._q.put_nowait(job)
        except queue.Full as e:
            with self._lock:
                self._jobs.pop(job.job_id, None)
            raise ExportBusy("エクスポートは実行中です（キューが満杯）") from e
        logger.debug("export job %s queued", job.job_id)
        return job.job_id

    def cancel(self, job_id: str) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.state in ("completed", "failed", "cancelled"):
                return
            if job.state == "running":
                job.state = "cancelling"
            job.cancel_event.set()

    def progress(self, job_id: str) -> JobProgress:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return JobProgress("failed", 0.0, "", None, "unknown job")
            return JobProgress(job.state, job.percent, job.status, job.artifact, job.error)

    def wait(self, job_id: str, timeout: float | None = None) -> JobProgress:
        """ジョブの終了（完了/失敗/キャンセル）を待ってスナップショットを返す。"""
        with self._lock:
            job = self._jobs.get(job_id)
        if job is not None:
            job.done.wait(timeout)
        return self.progress(job_id)

    def forget(self, job_id: str) -> None:
        """終了済みジョブの記録（成果物を含む）を破棄する。"""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is not None and job.done.is_set():
                del self._jobs[job_id]

    def close(self, wait: bool = True) -> None:
        """保留中のジョブをキャンセルし、ワーカーを止める。"""
        if self._closed:
            return
        self._closed = True
        with self._lock:
            for job in self._jobs.values():
                if not job.done.is_set():
                    job.cancel_event.set()
        for _ in self._threads:
            self._q.put(_STOP)
        if wait:
            for th in self._threads:
                th.join()

    def __enter__(self) -> "ExportService":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # --- worker loop ---
    def _worker(self) -> None:
        while True:
            item = self._q.get()
            try:
                if item is _STOP:
                    return
                assert isinstance(item, _Job)
                self._run_job(item)
            finally:
                self._q.task_done()

    def _run_job(self, job: _Job) -> None:
        with self._lock:
            if job.cancel_event.is_set():
                job.state = "cancelled"
                job.status = "Cancelled"
                job.done.set()
                return
            job.state = "running"

        def _on_progress(ev: ProgressEvent) -> None:
            with self._lock:
                job.percent = max(job.percent, float(ev.percent))
                job.status = ev.status

        started = time.monotonic()
        try:
            artifact = job.work(job.cancel_event, _on_progress)
        except RunCancelled:
            with self._lock:
                job.state = "cancelled"
                job.status = "Cancelled"
            logger.info("export job %s cancelled", job.job_id)
        except ExportError as e:
            with self._lock:
                job.state = "failed"
                job.error = str(e)
                job.status = "Failed"
            logger.error("export job %s failed: %s", job.job_id, e)
        except Exception as e:  # 予期せぬ失敗もジョブの失敗として記録する
            with self._lock:
                job.state = "failed"
                job.error = f"{type(e).__name__}: {e}"
                job.status = "Failed"
            logger.exception("export job %s crashed", job.job_id)
        else:
            with self._lock:
                job.state = "completed"
                job.artifact = artifact
                job.percent = 100.0
                job.status = "Complete!"
            logger.info(
                "export job %s completed in %.2fs (%d bytes)",
                job.job_id,
                time.monotonic() - started,
                len(artifact.data),
            )
        finally:
            job.done.set()


_job_counter = itertools.count(1)


def _new_job_id() -> str:
    # タイムスタンプ + 連番
    return f"job_{int(time.time() * 1000)}_{next(_job_counter)}"


__all__ = ["ExportService", "ExportBusy", "JobProgress", "JobState", "ExportWork"]
