"""Mapping report export (JSON and CSV)."""

from __future__ import annotations

import csv
import io
import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..models.control import ISMControl, NISTControl
from ..models.mapping import MappingEntry
from ..models.stats import StatsSummary

REPORT_TITLE = "ISM to NIST 800-53 Control Mappings"

CSV_HEADERS = [
    "ISM Control ID",
    "ISM Control Title",
    "ISM Control Family",
    "NIST Control ID",
    "NIST Control Title",
    "NIST Control Family",
    "Confidence Score",
    "Manual Override",
    "Processing Time",
    "AI Model",
]


def format_processing_time(ms: float) -> str:
    if ms < 1000:
        return f"{round(ms)}ms"
    if ms < 60000:
        return f"{ms / 1000:.1f}s"
    return f"{ms / 60000:.1f}m"


def apply_filters(
    entries: list[MappingEntry],
    ism_controls: list[ISMControl],
    confidence_threshold: Optional[int] = None,
    families: Optional[list[str]] = None,
) -> list[MappingEntry]:
    """Keep entries with any mapping at/above the threshold and in the given ISM families."""
    result = list(entries)

    if confidence_threshold is not None:
        result = [
            e for e in result
            if any(m.confidence >= confidence_threshold for m in e.nist_mappings)
        ]

    if families:
        family_of = {c.id: c.family for c in ism_controls}
        result = [e for e in result if family_of.get(e.ism_control_id) in families]

    return result


def build_json_report(
    entries: list[MappingEntry],
    stats: StatsSummary,
    ism_controls: list[ISMControl],
    nist_controls: list[NISTControl],
    include_reasoning: bool = True,
    confidence_threshold: Optional[int] = None,
    families: Optional[list[str]] = None,
) -> dict:
    ism_by_id = {c.id: c for c in ism_controls}
    nist_by_id = {c.id.lower(): c for c in nist_controls}
    filtered = apply_filters(entries, ism_controls, confidence_threshold, families)

    mappings = []
    for entry in filtered:
        ism = ism_by_id.get(entry.ism_control_id)
        nist_mappings = []
        for m in entry.nist_mappings:
            nist = nist_by_id.get(m.nist_control_id.lower())
            item = {
                "nistControlId": m.nist_control_id,
                "nistTitle": nist.title if nist else "Unknown",
                "confidence": m.confidence,
                "isManualOverride": m.is_manual_override,
            }
            if include_reasoning:
                item["reasoning"] = m.reasoning
            nist_mappings.append(item)

        mappings.append({
            "ismControl": {
                "id": entry.ism_control_id,
                "title": ism.title if ism else "Unknown",
                "family": ism.family if ism else "Unknown",
            },
            "nistMappings": nist_mappings,
            "processingInfo": {
                "timestamp": entry.processing_timestamp.isoformat(),
                "aiModel": entry.ai_model,
                "processingTimeMs": round(entry.processing_time_ms, 1),
            },
        })

    return {
        "metadata": {
            "title": REPORT_TITLE,
            "generatedAt": datetime.now().isoformat(),
            "totalMappings": len(filtered),
            "averageConfidence": round(stats.average_confidence, 1),
            "filters": {
                "confidenceThreshold": confidence_threshold,
                "controlFamilies": families or [],
            },
        },
        "summary": stats.model_dump(mode="json"),
        "mappings": mappings,
    }


def build_csv_report(
    entries: list[MappingEntry],
    ism_controls: list[ISMControl],
    nist_controls: list[NISTControl],
    include_reasoning: bool = True,
    confidence_threshold: Optional[int] = None,
    families: Optional[list[str]] = None,
) -> str:
    """One row per correspondence."""
    ism_by_id = {c.id: c for c in ism_controls}
    nist_by_id = {c.id.lower(): c for c in nist_controls}
    filtered = apply_filters(entries, ism_controls, confidence_threshold, families)

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    headers = CSV_HEADERS + (["Reasoning"] if include_reasoning else [])
    writer.writerow(headers)

    for entry in filtered:
        ism = ism_by_id.get(entry.ism_control_id)
        for m in entry.nist_mappings:
            nist = nist_by_id.get(m.nist_control_id.lower())
            row = [
                entry.ism_control_id,
                ism.title if ism else "Unknown",
                ism.family if ism else "Unknown",
                m.nist_control_id,
                nist.title if nist else "Unknown",
                nist.family if nist else "Unknown",
                m.confidence,
                "Yes" if m.is_manual_override else "No",
                format_processing_time(entry.processing_time_ms),
                entry.ai_model,
            ]
            if include_reasoning:
                row.append(m.reasoning)
            writer.writerow(row)

    return buffer.getvalue()


def export_report(
    output_path: Path,
    entries: list[MappingEntry],
    stats: StatsSummary,
    ism_controls: list[ISMControl],
    nist_controls: list[NISTControl],
    output_format: str = "json",
    include_reasoning: bool = True,
    confidence_threshold: Optional[int] = None,
    families: Optional[list[str]] = None,
) -> dict:
    """Write a JSON or CSV report.

    Returns:
        Dict with: path, format, entries (after filtering).
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if output_format == "json":
        report = build_json_report(
            entries, stats, ism_controls, nist_controls,
            include_reasoning, confidence_threshold, families,
        )
        output_path.write_text(json.dumps(report, indent=2), encoding="utf-8")
        count = len(report["mappings"])
    elif output_format == "csv":
        content = build_csv_report(
            entries, ism_controls, nist_controls,
            include_reasoning, confidence_threshold, families,
        )
        output_path.write_text(content, encoding="utf-8")
        count = len(apply_filters(entries, ism_controls, confidence_threshold, families))
    else:
        raise ValueError(f"Unknown export format: {output_format}")

    return {"path": str(output_path), "format": output_format, "entries": count}
