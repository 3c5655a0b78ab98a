"""OSCAL catalog loading and flattening.

Fetches the ISM and NIST 800-53 OSCAL catalogs (from a local file or URL)
and flattens their group trees into lists of typed controls.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import httpx
from rich.console import Console

from ..core.errors import LoadError
from ..models.control import ISMControl, NISTControl, RiskLevel

console = Console()

USER_AGENT = "controlmap/1.0"

DESCRIPTION_PARTS = ("statement", "description", "overview")
GUIDANCE_PARTS = ("guidance", "implementation", "implementation-guidance")
RISK_PROPS = ("risk-level", "priority", "criticality")
CLASS_PROPS = ("class", "control-class")


def extract_description(parts: Optional[list[dict]]) -> str:
    """Prose of the statement part, else every part's prose joined."""
    if not parts:
        return ""

    for part in parts:
        if part.get("name") in DESCRIPTION_PARTS and part.get("prose"):
            return part["prose"]

    return " ".join(p["prose"] for p in parts if p.get("prose"))


def extract_guidance(parts: Optional[list[dict]]) -> str:
    if not parts:
        return ""
    for part in parts:
        if part.get("name") in GUIDANCE_PARTS:
            return part.get("prose") or ""
    return ""


def extract_risk_level(props: Optional[list[dict]]) -> RiskLevel:
    """Map an ISM priority-style property onto the three risk tiers."""
    if not props:
        return RiskLevel.MEDIUM

    prop = next((p for p in props if p.get("name") in RISK_PROPS), None)
    if prop:
        value = str(prop.get("value", "")).upper()
        if "HIGH" in value or "CRITICAL" in value:
            return RiskLevel.HIGH
        if "LOW" in value or "BASIC" in value:
            return RiskLevel.LOW

    return RiskLevel.MEDIUM


def extract_control_class(props: Optional[list[dict]]) -> str:
    if not props:
        return "operational"
    prop = next((p for p in props if p.get("name") in CLASS_PROPS), None)
    return (prop or {}).get("value") or "operational"


def _to_ism_control(control: dict, family: Optional[str] = None) -> ISMControl:
    parts = control.get("parts")
    return ISMControl(
        id=control["id"],
        title=control.get("title") or "Untitled Control",
        description=extract_description(parts) or "No description available",
        implementation_guidance=(
            extract_guidance(parts) or "No implementation guidance available"
        ),
        family=family or "Unknown",
        risk_level=extract_risk_level(control.get("props")),
    )


def _walk_ism_groups(
    groups: list[dict],
    controls: list[ISMControl],
    parent_title: Optional[str] = None,
) -> None:
    for group in groups:
        group_title = group.get("title") or group.get("id", "")
        full_title = f"{parent_title} - {group_title}" if parent_title else group_title

        for control in group.get("controls") or []:
            controls.append(_to_ism_control(control, full_title))

        nested = group.get("groups")
        if nested:
            _walk_ism_groups(nested, controls, full_title)


def validate_oscal_catalog(document: object) -> bool:
    """Check the minimal OSCAL catalog shape."""
    if not isinstance(document, dict):
        return False
    catalog = document.get("catalog")
    if not isinstance(catalog, dict) or not catalog.get("metadata"):
        return False
    return bool(catalog.get("controls") or catalog.get("groups"))


def parse_ism_catalog(document: dict) -> list[ISMControl]:
    """Flatten an ISM OSCAL catalog, including arbitrarily nested groups."""
    catalog = document.get("catalog")
    if not isinstance(catalog, dict):
        raise LoadError("Invalid OSCAL catalog structure - missing catalog property", source="ISM")

    controls: list[ISMControl] = []
    for control in catalog.get("controls") or []:
        controls.append(_to_ism_control(control))

    _walk_ism_groups(catalog.get("groups") or [], controls)
    return controls


def parse_nist_catalog(document: dict) -> list[NISTControl]:
    """Flatten a NIST 800-53 OSCAL catalog (top-level groups are families)."""
    catalog = document.get("catalog")
    if not isinstance(catalog, dict):
        raise LoadError("Invalid OSCAL catalog structure - missing catalog property", source="NIST")

    controls: list[NISTControl] = []

    for control in catalog.get("controls") or []:
        controls.append(NISTControl(
            id=control["id"],
            title=control.get("title", ""),
            description=extract_description(control.get("parts")),
            control_class=extract_control_class(control.get("props")),
        ))

    for group in catalog.get("groups") or []:
        for control in group.get("controls") or []:
            controls.append(NISTControl(
                id=control["id"],
                title=control.get("title", ""),
                description=extract_description(control.get("parts")),
                family=group.get("title") or "Unknown",
                control_class=extract_control_class(control.get("props")),
            ))

    return controls


class CatalogLoader:
    """Fetches both catalogs according to the ``catalogs`` config section."""

    def __init__(
        self,
        config: dict,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        catalogs = config.get("catalogs", {})
        self.ism = catalogs.get("ism", {})
        self.nist = catalogs.get("nist", {})
        self.timeout = catalogs.get("timeout_seconds", 30)
        self.transport = transport

    async def _fetch(self, source: str, settings: dict) -> dict:
        path = settings.get("path")
        if path:
            try:
                return json.loads(Path(path).read_text(encoding="utf-8-sig"))
            except (OSError, ValueError) as e:
                raise LoadError(f"Failed to read {source} catalog {path}: {e}", source=source) from e

        url = settings.get("url")
        if not url:
            raise LoadError(f"No path or url configured for the {source} catalog", source=source)

        console.print(f"  [dim]Fetching {source} catalog from {url}[/dim]")
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self.transport,
                headers={"Accept": "application/json", "User-Agent": USER_AGENT},
                follow_redirects=True,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise LoadError(f"Failed to load {source} controls: {e}", source=source) from e

    async def load_source_a(self) -> list[ISMControl]:
        document = await self._fetch("ISM", self.ism)
        try:
            return parse_ism_catalog(document)
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise LoadError(f"Failed to parse ISM controls from OSCAL format: {e}", source="ISM") from e

    async def load_source_b(self) -> list[NISTControl]:
        document = await self._fetch("NIST", self.nist)
        try:
            return parse_nist_catalog(document)
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise LoadError(f"Failed to parse NIST controls from OSCAL format: {e}", source="NIST") from e
