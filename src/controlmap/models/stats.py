"""Summary statistics model."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class StatsSummary(BaseModel):
    total_source_controls: int = 0
    mapped_controls: int = 0
    total_mappings: int = 0
    average_confidence: float = 0.0
    high_confidence_count: int = 0
    unmapped_count: int = 0
    confidence_distribution: dict[str, int] = {}
    family_distribution: dict[str, int] = {}
    manual_override_count: int = 0
    average_processing_time_ms: float = 0.0
    total_processing_time_ms: float = 0.0
    processing_start: Optional[datetime] = None
    processing_end: Optional[datetime] = None
