"""
Job lifecycle: scrape -> validate -> generate workbook, one asyncio task per job.

    starting -> scraping -> validating -> generating -> complete
                 (any step) -> error

Jobs live in an in-memory dict that is only touched from the event loop, so
no locking is needed. A reaper drops jobs older than the retention window
whatever their status; a pipeline whose job has been reaped keeps running and
its updates are ignored.
"""

import asyncio
import concurrent.futures
import logging
import re
import threading
import time
import uuid
from pathlib import Path
from typing import Callable, Mapping

from .config import JOB_RETENTION_SECONDS, OUTPUT_DIR, Timings
from .driver import launch_playwright_driver
from .errors import NotFoundError, NotReadyError
from .excel import generate_excel
from .models import ExtractionQuery, Job, JobStatus, ProgressChannel, ProgressEvent
from .scraper import extract
from .validator import validate_and_clean

logger = logging.getLogger(__name__)

# Progress bands: collection 5-30, enrichment 30-90
COLLECT_FLOOR, COLLECT_SPAN = 5, 25
EXTRACT_FLOOR, EXTRACT_SPAN = 30, 60
VALIDATING_PROGRESS = 90
GENERATING_PROGRESS = 95


class JobManager:
    """Owns every job record and the pipeline task that drives it."""

    def __init__(self, scrape_fn: Callable = extract, report_fn: Callable = generate_excel,
                 driver_factory: Callable = launch_playwright_driver, output_dir: Path | str = OUTPUT_DIR,
                 retention_seconds: float = JOB_RETENTION_SECONDS, timings: Timings | None = None,
                 clock: Callable[[], float] = time.time):
        self.scrape_fn = scrape_fn
        self.report_fn = report_fn
        self.driver_factory = driver_factory
        self.output_dir = Path(output_dir)
        self.retention_seconds = retention_seconds
        self.timings = timings
        self.clock = clock
        self.jobs: dict[str, Job] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._reaper: asyncio.Task | None = None

    @property
    def sweep_interval(self) -> float:
        return self.retention_seconds / 2

    # -- Public API --
    def create_job(self, query: ExtractionQuery | Mapping) -> str:
        """Register a job and start its pipeline. Must run on the event loop."""
        if not isinstance(query, ExtractionQuery):
            query = ExtractionQuery.from_mapping(query)
        loop = asyncio.get_running_loop()

        job_id = str(uuid.uuid4())
        job = Job(id=job_id, query=query, created_at=self.clock())
        job.log(f"Job created: {query.search_text} (up to {query.max_records} leads)")
        self.jobs[job_id] = job

        task = loop.create_task(self._run(job_id, query))
        self._tasks[job_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job_id, None))
        logger.info('Job %s started: %s', job_id, query.search_text)
        return job_id

    def get_job(self, job_id: str) -> Job:
        job = self.jobs.get(job_id)
        if job is None:
            raise NotFoundError('Job not found')
        return job

    def get_status(self, job_id: str) -> dict:
        return self.get_job(job_id).snapshot()

    def get_artifact(self, job_id: str) -> Path:
        job = self.get_job(job_id)
        if job.status != JobStatus.COMPLETE or job.artifact_path is None:
            raise NotReadyError('File not ready yet')
        return job.artifact_path

    def download_name(self, job_id: str) -> str:
        query = self.get_job(job_id).query
        category = re.sub(r'\s+', '_', query.category)
        region = re.sub(r'\s+', '_', query.region)
        return f'leads_{category}_{region}.xlsx'

    async def wait(self, job_id: str) -> dict:
        """Wait for the job's pipeline to finish and return its final snapshot."""
        task = self._tasks.get(job_id)
        if task is None and job_id not in self.jobs:
            raise NotFoundError('Job not found')
        if task is not None:
            await task
        return self.get_status(job_id)

    # -- Reaping --
    def reap(self, now: float | None = None) -> int:
        """Drop jobs created more than retention_seconds ago. Returns how many went."""
        now = self.clock() if now is None else now
        expired = [job_id for job_id, job in self.jobs.items()
                   if now - job.created_at > self.retention_seconds]
        for job_id in expired:
            self._discard_artifact(self.jobs.pop(job_id).artifact_path)
        if expired:
            logger.info('Reaped %d expired job(s)', len(expired))
        return len(expired)

    def _discard_artifact(self, path: Path | None):
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning('Could not remove %s: %s', path, e)

    async def run_reaper(self):
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.reap()

    def start_reaper(self) -> asyncio.Task:
        if self._reaper is None or self._reaper.done():
            self._reaper = asyncio.get_running_loop().create_task(self.run_reaper())
        return self._reaper

    # -- Pipeline --
    def _update(self, job_id: str, **changes) -> Job | None:
        job = self.jobs.get(job_id)
        if job is None:
            return None
        if job.status.is_terminal:
            logger.debug('Ignoring update to finished job %s: %s', job_id, changes)
            return job
        if 'progress' in changes:
            changes['progress'] = max(job.progress, changes['progress'])
        for key, value in changes.items():
            setattr(job, key, value)
        if 'message' in changes:
            job.log(changes['message'])
        return job

    def _on_progress(self, job_id: str, query: ExtractionQuery, event: ProgressEvent):
        changes = {'message': event.message}
        if event.current and event.total:
            changes['progress'] = EXTRACT_FLOOR + round(EXTRACT_SPAN * min(event.current, event.total) / event.total)
        elif event.count:
            found = min(event.count, query.max_records)
            changes['progress'] = COLLECT_FLOOR + round(COLLECT_SPAN * found / query.max_records)
        if event.count:
            changes['result_count'] = event.count
        self._update(job_id, **changes)

    async def _scrape(self, job_id: str, query: ExtractionQuery) -> list:
        channel = ProgressChannel()
        kwargs = {'channel': channel}
        if self.timings is not None:
            kwargs['timings'] = self.timings
        scrape = asyncio.ensure_future(self.scrape_fn(query, self.driver_factory, **kwargs))
        scrape.add_done_callback(lambda _: channel.close())
        try:
            async for event in channel:
                self._on_progress(job_id, query, event)
            return await scrape
        finally:
            if not scrape.done():
                scrape.cancel()

    async def _run(self, job_id: str, query: ExtractionQuery):
        try:
            self._update(job_id, status=JobStatus.SCRAPING, message='Starting Google Maps scraper...')
            raw = await self._scrape(job_id, query)

            self._update(job_id, status=JobStatus.VALIDATING, progress=VALIDATING_PROGRESS,
                         message='Validating and cleaning data...')
            cleaned = validate_and_clean(raw)
            self._update(job_id, results=cleaned, result_count=len(cleaned))

            self._update(job_id, status=JobStatus.GENERATING, progress=GENERATING_PROGRESS,
                         message='Generating Excel file...')
            path = await asyncio.to_thread(self.report_fn, cleaned, self.output_dir / f'{job_id}.xlsx')
            if job_id not in self.jobs:
                # Reaped while the workbook was being written
                self._discard_artifact(Path(path))
                return

            self._update(job_id, artifact_path=Path(path), status=JobStatus.COMPLETE, progress=100,
                         message=f'Successfully scraped {len(cleaned)} businesses!')
            logger.info('Job %s complete: %d results', job_id, len(cleaned))
        except Exception as e:
            logger.exception('Job %s failed', job_id)
            self._update(job_id, status=JobStatus.ERROR, error=str(e), message=f'Error: {e}')


# =============================================================================
#  BACKGROUND LOOP (for synchronous hosts such as Flask)
# =============================================================================

class BackgroundLoop:
    """A single event loop running in a daemon thread.

    Request threads hand work to it with call(), so job state is only ever
    read and written from the loop thread.
    """

    def __init__(self):
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name='lead-scraper-loop', daemon=True)

    def _run(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def start(self) -> 'BackgroundLoop':
        if not self._thread.is_alive():
            self._thread.start()
        return self

    def call(self, fn: Callable, *args, timeout: float = 10):
        """Run fn(*args) on the loop thread and return its result (or raise its exception)."""
        future = concurrent.futures.Future()

        def runner():
            try:
                future.set_result(fn(*args))
            except Exception as e:
                future.set_exception(e)

        self.loop.call_soon_threadsafe(runner)
        return future.result(timeout)

    def stop(self, timeout: float = 5):
        if self._thread.is_alive():
            self.loop.call_soon_threadsafe(self.loop.stop)
            self._thread.join(timeout)
