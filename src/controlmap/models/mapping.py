"""Mapping state data models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

MANUAL_OVERRIDE_MODEL = "manual-override"


class CorrespondenceCandidate(BaseModel):
    """One proposed ISM -> NIST link, as parsed from model output."""

    nist_control_id: str
    confidence: int = Field(ge=0, le=100)
    reasoning: str


class NistMapping(BaseModel):
    """A correspondence held in mapping state.

    ``nist_title`` and ``nist_description`` are filled in at read time from
    the current NIST catalog and are ``None`` in stored entries.
    """

    nist_control_id: str
    confidence: int
    reasoning: str
    is_manual_override: bool = False
    nist_title: Optional[str] = None
    nist_description: Optional[str] = None


class MappingEntry(BaseModel):
    ism_control_id: str
    nist_mappings: list[NistMapping] = []
    processing_timestamp: datetime = Field(default_factory=datetime.now)
    ai_model: str = MANUAL_OVERRIDE_MODEL
    processing_time_ms: float = 0


class AnalysisResult(BaseModel):
    candidates: list[CorrespondenceCandidate] = []
    elapsed_ms: float = 0
    model: str = ""
    completed_at: datetime = Field(default_factory=datetime.now)
    parse_ok: bool = True


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ProcessingJob(BaseModel):
    id: str
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    total_controls: int = 0
    processed_controls: int = 0
    failed_controls: int = 0
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    error: Optional[str] = None


class ResultsQueueItem(BaseModel):
    job_id: str
    result: MappingEntry
    timestamp: datetime = Field(default_factory=datetime.now)
