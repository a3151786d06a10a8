"""Drives collection jobs from creation to a terminal state.

Each job runs as its own asyncio task on the application's event loop, so job
store writes for every job happen on that single thread. Reconciliation is
blocking database work and runs in a worker thread.
"""
import asyncio
import logging
from contextlib import aclosing
from pathlib import Path
from typing import Callable

from app.config import Settings, get_settings
from app.database import utcnow
from app.models.scrape_job import ScrapeJob
from app.schemas.job import JobParams, ScrapeRequest
from app.services.job_store import JobStore
from collector.progress import ProgressEvent, parse_line
from collector.workers import OutputLine, ProcessExited, Worker, WorkerConfig, WorkerSpawnError

logger = logging.getLogger(__name__)

SPAWN_FORBIDDEN_MESSAGE = (
    "The Playwright collector cannot run in a serverless environment. "
    "Start the job from a long-running host."
)
SNAPSHOT_NOT_FOUND_MESSAGE = "Snapshot not found: the collector exited cleanly without reporting an output file"

# (job_id, snapshot path) -> object with .status and .message
SyncCallable = Callable[[str, Path], object]


class CollectorSupervisor:
    def __init__(
        self,
        store: JobStore,
        worker: Worker,
        sync: SyncCallable | None = None,
        settings: Settings | None = None,
    ):
        self.store = store
        self.worker = worker
        self.sync = sync
        self.settings = settings or get_settings()
        self._tasks: dict[str, asyncio.Task] = {}

    async def start_job(self, request: ScrapeRequest, triggered_by: str) -> ScrapeJob:
        """Create a job and launch its worker; returns without waiting for the run."""
        params = JobParams(**request.model_dump(exclude={"triggered_by"}), triggered_by=triggered_by)
        job = self.store.create(params.model_dump(mode="json"))

        if self.settings.workers_forbidden:
            logger.warning(f"Refusing to spawn collector for job {job.id}: restricted runtime")
            self.store.append_log(job.id, SPAWN_FORBIDDEN_MESSAGE + "\n")
            return self.store.update(
                job.id,
                status="error",
                finished_at=utcnow(),
                error_message=SPAWN_FORBIDDEN_MESSAGE,
            )

        task = asyncio.create_task(self._drive(job.id, job.params), name=f"collector-job-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda _task, job_id=job.id: self._tasks.pop(job_id, None))
        return job

    def task_for(self, job_id: str) -> asyncio.Task | None:
        return self._tasks.get(job_id)

    async def wait(self, job_id: str) -> ScrapeJob | None:
        """Wait until the job (and its snapshot sync) has finished."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return self.store.get(job_id)

    async def _drive(self, job_id: str, params: dict) -> None:
        config = WorkerConfig.from_params(
            job_id,
            params,
            output_dir=self.settings.snapshot_dir.resolve(),
            argv=self.settings.collector_argv,
        )

        try:
            events = await self.worker.start(config)
        except WorkerSpawnError as e:
            logger.error(f"Job {job_id}: {e}")
            self.store.append_log(job_id, f"Process error: {e}\n")
            self._fail(job_id, str(e))
            return

        self.store.update(
            job_id,
            status="running",
            started_at=utcnow(),
            progress={"phase": "starting", "message": "Collector started"},
        )

        output_path = None
        exit_code = None
        try:
            async with aclosing(events):
                async for event in events:
                    if isinstance(event, ProcessExited):
                        exit_code = event.code
                        break
                    output_path = self._handle_line(job_id, event) or output_path
        except Exception as e:
            logger.exception(f"Job {job_id}: lost the collector output stream")
            self.store.append_log(job_id, f"Process error: {e}\n")
            self._fail(job_id, str(e))
            return

        if exit_code is None:
            self._fail(job_id, "Collector output ended without an exit status")
            return
        if exit_code != 0:
            logger.error(f"Job {job_id}: collector exited with code {exit_code}")
            self._fail(job_id, f"Collector process exited with code {exit_code}")
            return
        if not output_path:
            logger.error(f"Job {job_id}: clean exit without a snapshot location")
            self._fail(job_id, SNAPSHOT_NOT_FOUND_MESSAGE)
            return

        self.store.update(job_id, status="success", finished_at=utcnow(), output_path=output_path)
        logger.info(f"Job {job_id} finished; snapshot at {output_path}")

        if self.sync is not None:
            await self._sync(job_id, Path(output_path))

    def _handle_line(self, job_id: str, event: OutputLine) -> str | None:
        """Route one output line; returns the snapshot path if the line reported one."""
        if event.stream == "stdout":
            parsed = parse_line(event.text)
            if isinstance(parsed, ProgressEvent):
                patch = {"progress": parsed.as_progress()}
                if parsed.output_path:
                    patch["output_path"] = parsed.output_path
                self.store.update(job_id, **patch)
                return parsed.output_path
            text = parsed.text
        else:
            text = event.text
        self.store.append_log(job_id, text + "\n")
        return None

    def _fail(self, job_id: str, message: str) -> None:
        self.store.update(job_id, status="error", finished_at=utcnow(), error_message=message)

    async def _sync(self, job_id: str, snapshot_path: Path) -> None:
        self.store.update(job_id, sync_status="pending", sync_message=None)
        try:
            result = await asyncio.to_thread(self.sync, job_id, snapshot_path)
        except Exception as e:
            logger.exception(f"Job {job_id}: snapshot sync failed")
            self.store.update(job_id, sync_status="error", sync_message=str(e))
            return
        self.store.update(job_id, sync_status=result.status, sync_message=result.message)
