"""Mapping state: ISM control id -> current list of NIST correspondences.

Holds both AI-generated and reviewer-written (override) correspondences.
NIST titles and descriptions are resolved against the catalog when entries
are read, so a catalog reload refreshes display text without rewriting
mapping history.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from rich.console import Console

from ..catalog.store import ControlCatalogStore
from ..models.mapping import (
    MANUAL_OVERRIDE_MODEL,
    AnalysisResult,
    MappingEntry,
    NistMapping,
)

console = Console()

UNKNOWN_TITLE = "Unknown"
UNKNOWN_DESCRIPTION = "Description not available"


def entry_from_analysis(ism_control_id: str, analysis: AnalysisResult) -> MappingEntry:
    """Fold analyzer candidates into a mapping entry, one per target id."""
    mappings: list[NistMapping] = []
    seen: dict[str, int] = {}
    for candidate in analysis.candidates:
        mapping = NistMapping(
            nist_control_id=candidate.nist_control_id,
            confidence=candidate.confidence,
            reasoning=candidate.reasoning,
        )
        # Later duplicates replace earlier ones in place
        if candidate.nist_control_id in seen:
            mappings[seen[candidate.nist_control_id]] = mapping
        else:
            seen[candidate.nist_control_id] = len(mappings)
            mappings.append(mapping)

    return MappingEntry(
        ism_control_id=ism_control_id,
        nist_mappings=mappings,
        processing_timestamp=analysis.completed_at,
        ai_model=analysis.model,
        processing_time_ms=analysis.elapsed_ms,
    )


class MappingStore:
    def __init__(self, catalog: ControlCatalogStore):
        self.catalog = catalog
        self._entries: dict[str, MappingEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, ism_control_id: str) -> bool:
        return ism_control_id in self._entries

    def upsert(self, entry: MappingEntry) -> None:
        """Insert or fully replace the entry for ``entry.ism_control_id``."""
        self._entries[entry.ism_control_id] = entry

    def _enrich(self, entry: MappingEntry) -> MappingEntry:
        enriched = entry.model_copy(deep=True)
        for mapping in enriched.nist_mappings:
            nist = self.catalog.find_b_by_id(mapping.nist_control_id)
            mapping.nist_title = nist.title if nist else UNKNOWN_TITLE
            mapping.nist_description = (
                nist.description if nist and nist.description else UNKNOWN_DESCRIPTION
            )
        return enriched

    def get(self, ism_control_id: str) -> Optional[MappingEntry]:
        entry = self._entries.get(ism_control_id)
        return self._enrich(entry) if entry else None

    def get_all(self) -> list[MappingEntry]:
        return [self._enrich(e) for e in self._entries.values()]

    def raw_entries(self) -> list[MappingEntry]:
        """Stored entries without enrichment, for statistics."""
        return list(self._entries.values())

    def apply_override(
        self,
        ism_control_id: str,
        nist_control_id: str,
        confidence: int,
        reasoning: str,
    ) -> MappingEntry:
        """Record a reviewer correspondence, updating an existing one in place.

        Confidence is stored as given; callers validate the 0-100 range.
        """
        entry = self._entries.get(ism_control_id)

        if entry is None:
            entry = MappingEntry(
                ism_control_id=ism_control_id,
                nist_mappings=[NistMapping(
                    nist_control_id=nist_control_id,
                    confidence=confidence,
                    reasoning=reasoning,
                    is_manual_override=True,
                )],
                processing_timestamp=datetime.now(),
                ai_model=MANUAL_OVERRIDE_MODEL,
                processing_time_ms=0,
            )
            self._entries[ism_control_id] = entry
        else:
            existing = next(
                (m for m in entry.nist_mappings if m.nist_control_id == nist_control_id),
                None,
            )
            if existing:
                existing.confidence = confidence
                existing.reasoning = reasoning
                existing.is_manual_override = True
            else:
                entry.nist_mappings.append(NistMapping(
                    nist_control_id=nist_control_id,
                    confidence=confidence,
                    reasoning=reasoning,
                    is_manual_override=True,
                ))

        console.print(
            f"  [dim]Override applied: {ism_control_id} -> {nist_control_id} ({confidence}%)[/dim]"
        )
        return self._enrich(entry)

    def remove_override(self, ism_control_id: str, nist_control_id: str) -> bool:
        """Drop a reviewer correspondence. AI correspondences are never removed here.

        Returns True if something was removed.
        """
        entry = self._entries.get(ism_control_id)
        if entry is None:
            return False

        before = len(entry.nist_mappings)
        entry.nist_mappings = [
            m for m in entry.nist_mappings
            if not (m.nist_control_id == nist_control_id and m.is_manual_override)
        ]
        removed = len(entry.nist_mappings) < before
        if removed:
            console.print(f"  [dim]Override removed: {ism_control_id} -> {nist_control_id}[/dim]")
        return removed

    def orphaned_ids(self) -> list[str]:
        """Entries whose ISM control is no longer in the loaded catalog."""
        return sorted(
            cid for cid in self._entries if self.catalog.find_a_by_id(cid) is None
        )

    def reset(self) -> None:
        self._entries.clear()
