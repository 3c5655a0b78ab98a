"""Reviewer override files.

Human-reviewed correspondences are kept in a YAML file and re-applied on
top of each processing run:

    overrides:
      - ism_control_id: ISM-0714
        nist_control_id: AC-2
        confidence: 90
        reasoning: Both govern account provisioning.
        reviewed_at: "2025-01-31"
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import yaml
from rich.console import Console

from .mapping_store import MappingStore

console = Console()

REQUIRED_FIELDS = ("ism_control_id", "nist_control_id", "confidence")


def load_overrides(path: Path) -> list[dict]:
    """Load override entries. A missing file means no overrides."""
    if not path.exists():
        return []
    data = yaml.safe_load(path.read_text(encoding="utf-8-sig")) or {}
    entries = data.get("overrides") if isinstance(data, dict) else None
    return [e for e in (entries or []) if isinstance(e, dict)]


def save_overrides(path: Path, entries: list[dict]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    content = yaml.dump(
        {"overrides": entries},
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
        width=120,
    )
    path.write_text(content, encoding="utf-8")
    return path


def validate_confidence(value: object) -> int:
    """Boundary check for reviewer input: an integer in 0-100."""
    if isinstance(value, bool):
        raise ValueError("confidence must be a number")
    try:
        confidence = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ValueError(f"confidence must be a number, got {value!r}") from None
    if not 0 <= confidence <= 100:
        raise ValueError(f"confidence must be between 0 and 100, got {confidence}")
    return confidence


def add_override_entry(
    path: Path,
    ism_control_id: str,
    nist_control_id: str,
    confidence: int,
    reasoning: str,
) -> dict:
    """Add or replace the override for one (ISM, NIST) pair."""
    entries = load_overrides(path)
    nist_id = nist_control_id.strip().upper()

    entry = {
        "ism_control_id": ism_control_id,
        "nist_control_id": nist_id,
        "confidence": validate_confidence(confidence),
        "reasoning": reasoning,
        "reviewed_at": datetime.now().strftime("%Y-%m-%d"),
    }

    entries = [
        e for e in entries
        if not (e.get("ism_control_id") == ism_control_id and e.get("nist_control_id") == nist_id)
    ]
    entries.append(entry)
    save_overrides(path, entries)
    return entry


def remove_override_entry(path: Path, ism_control_id: str, nist_control_id: str) -> bool:
    entries = load_overrides(path)
    nist_id = nist_control_id.strip().upper()
    kept = [
        e for e in entries
        if not (e.get("ism_control_id") == ism_control_id and e.get("nist_control_id") == nist_id)
    ]
    if len(kept) == len(entries):
        return False
    save_overrides(path, kept)
    return True


def apply_overrides(store: MappingStore, entries: list[dict]) -> int:
    """Apply override entries to mapping state. Invalid rows are skipped."""
    applied = 0
    for i, entry in enumerate(entries):
        missing = [f for f in REQUIRED_FIELDS if entry.get(f) in (None, "")]
        if missing:
            console.print(
                f"  [yellow]WARN[/yellow] Override #{i + 1} skipped: missing {', '.join(missing)}"
            )
            continue
        try:
            confidence = validate_confidence(entry["confidence"])
        except ValueError as e:
            console.print(f"  [yellow]WARN[/yellow] Override #{i + 1} skipped: {e}")
            continue

        store.apply_override(
            str(entry["ism_control_id"]),
            str(entry["nist_control_id"]).strip().upper(),
            confidence,
            str(entry.get("reasoning") or "Manual review"),
        )
        applied += 1
    return applied
