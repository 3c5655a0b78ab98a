"""Tests for core/statistics.py."""

from __future__ import annotations

from datetime import datetime

import pytest

from controlmap.core.statistics import CONFIDENCE_BANDS, compute_stats, confidence_band
from controlmap.models.mapping import MappingEntry, NistMapping


def _entry(ism_id: str, confidences: list[int], ms: float = 1000, override: bool = False,
           at: datetime | None = None) -> MappingEntry:
    return MappingEntry(
        ism_control_id=ism_id,
        nist_mappings=[
            NistMapping(nist_control_id=f"AC-{i + 1}", confidence=c, reasoning="r", is_manual_override=override)
            for i, c in enumerate(confidences)
        ],
        processing_timestamp=at or datetime(2025, 1, 1),
        ai_model="llama3.1",
        processing_time_ms=ms,
    )


class TestConfidenceBand:
    @pytest.mark.parametrize("confidence,band", [
        (100, "95-100"), (95, "95-100"), (94, "85-94"), (85, "85-94"),
        (80, "75-84"), (70, "65-74"), (55, "55-64"), (54, "0-54"), (0, "0-54"),
    ])
    def test_bands(self, confidence, band):
        assert confidence_band(confidence) == band


class TestComputeStats:
    def test_empty(self):
        stats = compute_stats([], 10)
        assert stats.total_source_controls == 10
        assert stats.mapped_controls == 0
        assert stats.total_mappings == 0
        assert stats.average_confidence == 0
        assert stats.average_processing_time_ms == 0
        assert stats.unmapped_count == 10
        assert stats.processing_start is None
        assert list(stats.confidence_distribution) == [label for label, _ in CONFIDENCE_BANDS]
        assert sum(stats.confidence_distribution.values()) == 0

    def test_counts_and_averages(self):
        entries = [
            _entry("ISM-1", [90, 60], ms=1000),
            _entry("ISM-2", [70], ms=3000),
        ]
        stats = compute_stats(entries, 5)
        assert stats.mapped_controls == 2
        assert stats.total_mappings == 3
        assert stats.average_confidence == pytest.approx(220 / 3)
        assert stats.high_confidence_count == 2
        assert stats.unmapped_count == 3
        assert stats.total_processing_time_ms == 4000
        assert stats.average_processing_time_ms == 2000
        assert stats.confidence_distribution["85-94"] == 1
        assert stats.confidence_distribution["65-74"] == 1
        assert stats.confidence_distribution["55-64"] == 1

    def test_distribution_sums_to_mapping_count(self):
        entries = [_entry("ISM-1", [99, 12, 77]), _entry("ISM-2", [56, 66])]
        stats = compute_stats(entries, 2)
        assert sum(stats.confidence_distribution.values()) == stats.total_mappings == 5

    def test_custom_high_threshold(self):
        stats = compute_stats([_entry("ISM-1", [70, 80])], 1, high_confidence_threshold=80)
        assert stats.high_confidence_count == 1

    def test_manual_overrides_counted(self):
        entries = [_entry("ISM-1", [95], ms=0, override=True), _entry("ISM-2", [60])]
        assert compute_stats(entries, 2).manual_override_count == 1

    def test_family_distribution(self):
        families = {"AC-1": "Access Control", "AC-2": "Access Control"}
        entries = [_entry("ISM-1", [90, 80, 70])]
        stats = compute_stats(entries, 1, resolve_family=families.get)
        # AC-3 is unresolved and left out
        assert stats.family_distribution == {"Access Control": 2}

    def test_family_distribution_sorted_by_count(self):
        families = {"AC-1": "Zeta", "AC-2": "Alpha"}
        entries = [_entry("ISM-1", [90, 80]), _entry("ISM-2", [90, 80]), _entry("ISM-3", [90])]
        stats = compute_stats(entries, 3, resolve_family=families.get)
        assert list(stats.family_distribution.items()) == [("Zeta", 3), ("Alpha", 2)]

    def test_processing_window(self):
        entries = [
            _entry("ISM-1", [90], at=datetime(2025, 1, 2)),
            _entry("ISM-2", [90], at=datetime(2025, 1, 1)),
        ]
        stats = compute_stats(entries, 2)
        assert stats.processing_start == datetime(2025, 1, 1)
        assert stats.processing_end == datetime(2025, 1, 2)

    def test_orphans_can_make_unmapped_negative(self):
        entries = [_entry("ISM-1", [90]), _entry("ISM-2", [90])]
        assert compute_stats(entries, 1).unmapped_count == -1
