"""Mapping engine: the single composition root for catalog, mapping state and jobs.

One ``MappingEngine`` is built per process and handed to whatever needs it
(CLI pipeline, tests). All state is in memory.
"""

from __future__ import annotations

from typing import Optional

import httpx

from ..catalog.loader import CatalogLoader
from ..catalog.store import ControlCatalogStore
from ..models.mapping import MappingEntry, ProcessingJob, ResultsQueueItem
from ..models.stats import StatsSummary
from ..providers.base import TextGenerator, get_generation_options
from .analyzer import DEFAULT_MAX_CANDIDATES, DEFAULT_SAMPLE_SIZE, ControlAnalyzer
from .mapping_store import MappingStore
from .orchestrator import Analyzer, BatchOrchestrator, ProcessingSettings, ProgressCallback
from .statistics import HIGH_CONFIDENCE_THRESHOLD, compute_stats


class MappingEngine:
    def __init__(
        self,
        catalog: ControlCatalogStore,
        analyzer: Optional[Analyzer] = None,
        settings: Optional[ProcessingSettings] = None,
        high_confidence_threshold: int = HIGH_CONFIDENCE_THRESHOLD,
    ):
        self.catalog = catalog
        self.mappings = MappingStore(catalog)
        self.orchestrator = BatchOrchestrator(catalog, self.mappings, analyzer, settings)
        self.high_confidence_threshold = high_confidence_threshold

    def initialize(self, analyzer: Analyzer) -> None:
        self.orchestrator.initialize(analyzer)

    # Orchestrator surface

    async def start(
        self,
        control_ids: Optional[list[str]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        return await self.orchestrator.start(control_ids, on_progress)

    async def wait(self, job_id: str) -> Optional[ProcessingJob]:
        return await self.orchestrator.wait(job_id)

    def get_job_status(self, job_id: str) -> Optional[ProcessingJob]:
        return self.orchestrator.get_job_status(job_id)

    def poll_new_results(self, job_id: Optional[str] = None) -> list[ResultsQueueItem]:
        return self.orchestrator.poll_new_results(job_id)

    # Mapping surface

    def list_mappings(self) -> list[MappingEntry]:
        return self.mappings.get_all()

    def get_mapping(self, ism_control_id: str) -> Optional[MappingEntry]:
        return self.mappings.get(ism_control_id)

    def apply_override(
        self,
        ism_control_id: str,
        nist_control_id: str,
        confidence: int,
        reasoning: str,
    ) -> MappingEntry:
        return self.mappings.apply_override(
            ism_control_id, nist_control_id, confidence, reasoning
        )

    def remove_override(self, ism_control_id: str, nist_control_id: str) -> bool:
        return self.mappings.remove_override(ism_control_id, nist_control_id)

    def reset(self) -> None:
        """Clear all mapping entries, jobs and queued results."""
        self.orchestrator.reset()
        self.mappings.reset()

    # Statistics surface

    def _resolve_family(self, nist_control_id: str) -> Optional[str]:
        control = self.catalog.find_b_by_id(nist_control_id)
        return control.family if control else None

    def compute_stats(self) -> StatsSummary:
        return compute_stats(
            self.mappings.raw_entries(),
            len(self.catalog.get_a()),
            resolve_family=self._resolve_family,
            high_confidence_threshold=self.high_confidence_threshold,
        )


def build_engine(
    config: dict,
    generator: Optional[TextGenerator] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> MappingEngine:
    """Wire an engine from effective config. Without a generator it is uninitialized."""
    processing = config.get("processing", {})
    catalog = ControlCatalogStore(CatalogLoader(config, transport=transport))

    analyzer = None
    if generator is not None:
        analyzer = ControlAnalyzer(
            generator,
            get_generation_options(config),
            sample_size=int(processing.get("sample_size", DEFAULT_SAMPLE_SIZE)),
            max_candidates=int(processing.get("max_candidates", DEFAULT_MAX_CANDIDATES)),
        )

    return MappingEngine(
        catalog,
        analyzer=analyzer,
        settings=ProcessingSettings.from_config(config),
        high_confidence_threshold=int(
            processing.get("high_confidence_threshold", HIGH_CONFIDENCE_THRESHOLD)
        ),
    )
