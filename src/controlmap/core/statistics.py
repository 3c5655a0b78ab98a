"""Summary statistics over mapping state."""

from __future__ import annotations

from typing import Callable, Iterable, Optional

from ..models.mapping import MappingEntry
from ..models.stats import StatsSummary

HIGH_CONFIDENCE_THRESHOLD = 70

# (label, lower bound inclusive), checked top-down
CONFIDENCE_BANDS: tuple[tuple[str, int], ...] = (
    ("95-100", 95),
    ("85-94", 85),
    ("75-84", 75),
    ("65-74", 65),
    ("55-64", 55),
    ("0-54", 0),
)


def confidence_band(confidence: float) -> str:
    for label, lower in CONFIDENCE_BANDS:
        if confidence >= lower:
            return label
    return CONFIDENCE_BANDS[-1][0]


def compute_stats(
    entries: Iterable[MappingEntry],
    total_source_controls: int,
    resolve_family: Optional[Callable[[str], Optional[str]]] = None,
    high_confidence_threshold: int = HIGH_CONFIDENCE_THRESHOLD,
) -> StatsSummary:
    """Compute summary numbers from scratch.

    ``resolve_family`` maps a NIST control id to its family label; targets
    it cannot resolve are left out of the family breakdown.
    """
    entries = list(entries)

    distribution = {label: 0 for label, _ in CONFIDENCE_BANDS}
    families: dict[str, int] = {}
    total_confidence = 0.0
    mapping_count = 0
    high_count = 0
    overrides = 0
    total_time = 0.0

    for entry in entries:
        total_time += entry.processing_time_ms
        for mapping in entry.nist_mappings:
            mapping_count += 1
            total_confidence += mapping.confidence
            distribution[confidence_band(mapping.confidence)] += 1
            if mapping.confidence >= high_confidence_threshold:
                high_count += 1
            if mapping.is_manual_override:
                overrides += 1
            if resolve_family:
                family = resolve_family(mapping.nist_control_id)
                if family:
                    families[family] = families.get(family, 0) + 1

    timestamps = [e.processing_timestamp for e in entries]

    return StatsSummary(
        total_source_controls=total_source_controls,
        mapped_controls=len(entries),
        total_mappings=mapping_count,
        average_confidence=total_confidence / mapping_count if mapping_count else 0.0,
        high_confidence_count=high_count,
        unmapped_count=total_source_controls - len(entries),
        confidence_distribution=distribution,
        family_distribution=dict(sorted(families.items(), key=lambda kv: (-kv[1], kv[0]))),
        manual_override_count=overrides,
        average_processing_time_ms=total_time / len(entries) if entries else 0.0,
        total_processing_time_ms=total_time,
        processing_start=min(timestamps) if timestamps else None,
        processing_end=max(timestamps) if timestamps else None,
    )
