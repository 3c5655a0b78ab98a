"""Batch orchestrator: drives the analyzer over ISM controls as a job.

Controls are processed in fixed-size windows. Every item in a window runs
concurrently and the whole window settles before the next one starts, so
progress counters only move forward and are consistent at every
observation point.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol

from rich.console import Console

from ..catalog.store import ControlCatalogStore
from ..models.control import ISMControl, NISTControl
from ..models.mapping import (
    AnalysisResult,
    JobStatus,
    MappingEntry,
    ProcessingJob,
    ResultsQueueItem,
)
from ..utils.sanitize import sanitize_error
from .errors import EmptyBatchError, NotInitializedError, NotReadyError
from .mapping_store import MappingStore, entry_from_analysis

console = Console()

ProgressCallback = Callable[[int, int, Optional[MappingEntry]], None]


class Analyzer(Protocol):
    async def analyze(
        self, control: ISMControl, nist_controls: list[NISTControl]
    ) -> AnalysisResult: ...


@dataclass
class ProcessingSettings:
    concurrency: int = 1
    item_delay_seconds: float = 0.05
    window_delay_seconds: float = 0.2

    @classmethod
    def from_config(cls, config: dict) -> "ProcessingSettings":
        processing = config.get("processing", {})
        return cls(
            concurrency=max(1, int(processing.get("concurrency", 1))),
            item_delay_seconds=float(processing.get("item_delay_seconds", 0.05)),
            window_delay_seconds=float(processing.get("window_delay_seconds", 0.2)),
        )


def _generate_job_id() -> str:
    return f"job_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class BatchOrchestrator:
    def __init__(
        self,
        catalog: ControlCatalogStore,
        store: MappingStore,
        analyzer: Optional[Analyzer] = None,
        settings: Optional[ProcessingSettings] = None,
    ):
        self.catalog = catalog
        self.store = store
        self.analyzer = analyzer
        self.settings = settings or ProcessingSettings()
        self._jobs: dict[str, ProcessingJob] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._queue: list[ResultsQueueItem] = []

    def initialize(self, analyzer: Analyzer) -> None:
        self.analyzer = analyzer
        console.print("  [green]OK[/green] Mapping engine initialized")

    async def start(
        self,
        control_ids: Optional[list[str]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        """Validate preconditions, create a job, and schedule it. Returns the job id."""
        if self.analyzer is None:
            raise NotInitializedError("Text generation service not initialized")

        if not self.catalog.is_ready():
            raise NotReadyError("Control catalogs not ready. Please load controls first.")

        if control_ids is not None:
            found = (self.catalog.find_a_by_id(cid) for cid in control_ids)
            ism_controls = [c for c in found if c is not None]
        else:
            ism_controls = self.catalog.get_a()

        if not ism_controls:
            raise EmptyBatchError("No ISM controls found to process")

        nist_controls = self.catalog.get_b()
        if not nist_controls:
            raise NotReadyError("No NIST controls loaded for mapping reference")

        job = ProcessingJob(id=_generate_job_id(), total_controls=len(ism_controls))
        self._jobs[job.id] = job
        console.print(
            f"  [cyan]Started job {job.id} with {len(ism_controls)} ISM controls[/cyan]"
        )

        self._tasks[job.id] = asyncio.create_task(
            self._run(job, ism_controls, nist_controls, on_progress)
        )
        return job.id

    async def wait(self, job_id: str) -> Optional[ProcessingJob]:
        """Wait for a job's background task to finish, then return its status."""
        task = self._tasks.get(job_id)
        if task is not None:
            # returns instead of raising when the job was cancelled by reset
            await asyncio.wait({task})
        return self.get_job_status(job_id)

    async def _analyze_one(
        self, control: ISMControl, nist_controls: list[NISTControl]
    ) -> AnalysisResult:
        if self.analyzer is None:
            raise NotInitializedError("Text generation service not available")
        return await self.analyzer.analyze(control, nist_controls)

    async def _run(
        self,
        job: ProcessingJob,
        ism_controls: list[ISMControl],
        nist_controls: list[NISTControl],
        on_progress: Optional[ProgressCallback],
    ) -> None:
        job.status = JobStatus.PROCESSING
        total = len(ism_controls)
        width = max(1, self.settings.concurrency)

        try:
            if self.analyzer is None:
                raise NotInitializedError("Text generation service not available")

            for start in range(0, total, width):
                window = ism_controls[start:start + width]
                outcomes = await asyncio.gather(
                    *(self._analyze_one(c, nist_controls) for c in window),
                    return_exceptions=True,
                )

                for control, outcome in zip(window, outcomes):
                    entry: Optional[MappingEntry] = None
                    job.processed_controls += 1
                    job.progress = round(job.processed_controls / total * 100)

                    if isinstance(outcome, BaseException):
                        if isinstance(outcome, asyncio.CancelledError):
                            raise outcome
                        job.failed_controls += 1
                        console.print(
                            f"  [red]FAILED[/red] {job.processed_controls}/{total} "
                            f"{control.id}: {sanitize_error(str(outcome))}"
                        )
                    else:
                        entry = entry_from_analysis(control.id, outcome)
                        self.store.upsert(entry)
                        self._queue.append(ResultsQueueItem(job_id=job.id, result=entry))
                        console.print(
                            f"  [green]OK[/green] {job.processed_controls}/{total} "
                            f"{control.id}: {len(entry.nist_mappings)} mappings "
                            f"in {round(outcome.elapsed_ms / 1000, 1)}s"
                        )

                    if on_progress:
                        on_progress(job.processed_controls, total, entry)

                    if self.settings.item_delay_seconds > 0:
                        await asyncio.sleep(self.settings.item_delay_seconds)

                if start + width < total and self.settings.window_delay_seconds > 0:
                    await asyncio.sleep(self.settings.window_delay_seconds)

            job.status = JobStatus.COMPLETED
            job.progress = 100
            job.end_time = datetime.now()
            console.print(
                f"  [green]OK[/green] Job {job.id} completed: "
                f"{total - job.failed_controls}/{total} controls mapped"
            )
        except asyncio.CancelledError:
            job.status = JobStatus.FAILED
            job.error = "Job cancelled"
            job.end_time = datetime.now()
            console.print(f"  [yellow]WARN[/yellow] Job {job.id} cancelled")
            raise
        except Exception as e:
            job.status = JobStatus.FAILED
            job.error = sanitize_error(str(e)) or type(e).__name__
            job.end_time = datetime.now()
            console.print(f"  [red]ERROR[/red] Job {job.id} failed: {job.error}")

    def get_job_status(self, job_id: str) -> Optional[ProcessingJob]:
        job = self._jobs.get(job_id)
        return job.model_copy() if job else None

    def has_new_results(self, job_id: Optional[str] = None) -> bool:
        if job_id:
            return any(item.job_id == job_id for item in self._queue)
        return bool(self._queue)

    def poll_new_results(self, job_id: Optional[str] = None) -> list[ResultsQueueItem]:
        """Drain queued results for one job, or the whole queue."""
        if job_id:
            taken = [item for item in self._queue if item.job_id == job_id]
            self._queue = [item for item in self._queue if item.job_id != job_id]
            return taken

        taken = self._queue
        self._queue = []
        return taken

    def processing_stats(self) -> dict:
        jobs = list(self._jobs.values())
        return {
            "total_jobs": len(jobs),
            "active_jobs": sum(
                1 for j in jobs if j.status in (JobStatus.QUEUED, JobStatus.PROCESSING)
            ),
            "completed_jobs": sum(1 for j in jobs if j.status == JobStatus.COMPLETED),
            "failed_jobs": sum(1 for j in jobs if j.status == JobStatus.FAILED),
            "total_mappings": len(self.store),
        }

    def reset(self) -> None:
        """Cancel running jobs and forget all jobs and queued results."""
        for task in self._tasks.values():
            if not task.done():
                task.cancel()
        self._jobs.clear()
        self._tasks.clear()
        self._queue.clear()
