"""Interface between the supervisor and the external collection process."""
import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncGenerator

logger = logging.getLogger(__name__)

# Worker lines can carry large JSON payloads
STREAM_LIMIT = 4 * 1024 * 1024


class WorkerSpawnError(Exception):
    """The worker process could not be started."""


@dataclass(frozen=True)
class OutputLine:
    stream: str  # "stdout" or "stderr"
    text: str


@dataclass(frozen=True)
class ProcessExited:
    code: int


WorkerEvent = OutputLine | ProcessExited


@dataclass
class WorkerConfig:
    """Everything a worker needs to start one collection run."""
    job_id: str
    category_urls: list[str]
    page_limit: int
    listing_limit: int
    delay_ms: int
    detail_delay_ms: int
    category_delay_ms: int
    headless: bool
    output_dir: Path
    user_agent: str | None = None
    argv: list[str] = field(default_factory=list)
    cwd: Path | None = None

    @classmethod
    def from_params(cls, job_id: str, params: dict, output_dir: Path, argv: list[str], cwd: Path | None = None):
        category_delay = params.get("category_delay_ms")
        return cls(
            job_id=job_id,
            category_urls=list(params["category_urls"]),
            page_limit=params["page_limit"],
            listing_limit=params["listing_limit"],
            delay_ms=params["delay_ms"],
            detail_delay_ms=params["detail_delay_ms"],
            category_delay_ms=params["delay_ms"] if category_delay is None else category_delay,
            headless=params.get("headless", True),
            user_agent=params.get("user_agent"),
            output_dir=output_dir,
            argv=argv,
            cwd=cwd,
        )


def build_worker_env(config: WorkerConfig, base: dict[str, str] | None = None) -> dict[str, str]:
    """Environment handed to the worker process."""
    env = dict(os.environ if base is None else base)
    env.update({
        "SCRAPE_CATEGORY_URLS": ",".join(config.category_urls),
        "SCRAPE_MAX_PAGES": str(config.page_limit),
        "SCRAPE_MAX_LISTINGS": str(config.listing_limit),
        "SCRAPE_DELAY_MS": str(config.delay_ms),
        "SCRAPE_DETAIL_DELAY_MS": str(config.detail_delay_ms),
        "SCRAPE_CATEGORY_DELAY_MS": str(config.category_delay_ms),
        "SCRAPE_HEADLESS": "true" if config.headless else "false",
        "SCRAPE_JOB_ID": config.job_id,
        "SCRAPE_OUTPUT_DIR": str(config.output_dir),
        # Keep worker stdout line-buffered so progress arrives as it happens
        "PYTHONUNBUFFERED": "1",
    })
    if config.user_agent:
        env["SCRAPE_USER_AGENT"] = config.user_agent
    else:
        env.pop("SCRAPE_USER_AGENT", None)
    return env


class Worker(ABC):
    """Starts a collection run and yields its output lines, then its exit."""

    @abstractmethod
    async def start(self, config: WorkerConfig) -> AsyncGenerator[WorkerEvent, None]:
        """Spawn the run and return its event stream.

        The stream yields OutputLine events and ends with a single ProcessExited.
        Closing the stream early (`aclose`) stops the run.
        Raises WorkerSpawnError when the process cannot be started.
        """


class SubprocessWorker(Worker):
    """Runs the collection program as a child process."""

    async def start(self, config: WorkerConfig) -> AsyncGenerator[WorkerEvent, None]:
        if not config.argv:
            raise WorkerSpawnError("No collector command configured")

        try:
            process = await asyncio.create_subprocess_exec(
                *config.argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=build_worker_env(config),
                cwd=str(config.cwd) if config.cwd else None,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            raise WorkerSpawnError(f"Failed to start {config.argv[0]}: {e}") from e

        logger.info(f"Started collector pid={process.pid} for job {config.job_id}")
        return self._events(process)

    async def _events(self, process: asyncio.subprocess.Process) -> AsyncGenerator[WorkerEvent, None]:
        queue: asyncio.Queue = asyncio.Queue()
        pumps = [
            asyncio.create_task(self._pump(process.stdout, "stdout", queue)),
            asyncio.create_task(self._pump(process.stderr, "stderr", queue)),
        ]

        try:
            open_streams = len(pumps)
            while open_streams:
                item = await queue.get()
                if item is None:
                    open_streams -= 1
                    continue
                yield item

            await asyncio.gather(*pumps)
            code = await process.wait()
            logger.info(f"Collector pid={process.pid} exited with code {code}")
            yield ProcessExited(code)
        finally:
            # Reached early when the consumer closes the stream before the exit
            for pump in pumps:
                pump.cancel()
            await asyncio.gather(*pumps, return_exceptions=True)
            if process.returncode is None:
                logger.warning(f"Killing collector pid={process.pid}: its output is no longer read")
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()

    @staticmethod
    async def _pump(stream: asyncio.StreamReader, name: str, queue: asyncio.Queue) -> None:
        # readline() returns the final unterminated chunk before EOF
        try:
            while True:
                try:
                    raw = await stream.readline()
                except ValueError:
                    # The oversized line has already been discarded by the reader
                    logger.warning(f"Dropped {name} line longer than {STREAM_LIMIT} bytes")
                    continue
                if not raw:
                    break
                await queue.put(OutputLine(name, raw.decode("utf-8", errors="replace").rstrip("\r\n")))
        finally:
            await queue.put(None)
