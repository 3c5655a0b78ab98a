"""Control catalog store: the two flat control lists plus loading state."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from rich.console import Console

from ..core.errors import AlreadyLoadingError, LoadError
from ..models.control import ControlLoadingStatus, ISMControl, NISTControl

console = Console()


class CatalogSource(Protocol):
    async def load_source_a(self) -> list[ISMControl]: ...

    async def load_source_b(self) -> list[NISTControl]: ...


def _matches(query: str, *fields: str) -> bool:
    return any(query in (f or "").lower() for f in fields)


class ControlCatalogStore:
    """Holds ISM (source A) and NIST (source B) controls.

    Lists are replaced wholesale on load and handed out as copies.
    """

    def __init__(self, loader: Optional[CatalogSource] = None):
        self.loader = loader
        self._ism: list[ISMControl] = []
        self._nist: list[NISTControl] = []
        self._nist_index: dict[str, NISTControl] = {}
        self._status = ControlLoadingStatus()

    # Loading

    async def load_a(self) -> None:
        try:
            if self.loader is None:
                raise LoadError("No catalog loader configured", source="ISM")
            controls = await self.loader.load_source_a()
        except Exception as e:
            self._status.ism_loaded = False
            self._status.ism_count = 0
            if isinstance(e, LoadError):
                raise
            raise LoadError(f"Failed to load ISM controls: {e}", source="ISM") from e

        self._ism = list(controls)
        self._status.ism_loaded = True
        self._status.ism_count = len(self._ism)
        console.print(f"  [green]OK[/green] Loaded {len(self._ism)} ISM controls")

    async def load_b(self) -> None:
        try:
            if self.loader is None:
                raise LoadError("No catalog loader configured", source="NIST")
            controls = await self.loader.load_source_b()
        except Exception as e:
            self._status.nist_loaded = False
            self._status.nist_count = 0
            if isinstance(e, LoadError):
                raise
            raise LoadError(f"Failed to load NIST controls: {e}", source="NIST") from e

        self.set_b(controls)
        self._status.nist_loaded = True
        self._status.nist_count = len(self._nist)
        console.print(f"  [green]OK[/green] Loaded {len(self._nist)} NIST controls")

    async def load_all(self) -> None:
        if self._status.is_loading:
            raise AlreadyLoadingError("Controls are already being loaded")

        self._status.is_loading = True
        self._status.error = None

        try:
            await self.load_a()
            await self.load_b()
            self._status.last_load_time = datetime.now()
        except LoadError as e:
            self._status.error = e.message
            console.print(f"  [red]ERROR[/red] Failed to load controls: {e.message}")
            raise
        finally:
            self._status.is_loading = False

    def set_a(self, controls: list[ISMControl]) -> None:
        """Replace the ISM list directly (pre-parsed controls)."""
        self._ism = list(controls)
        self._status.ism_loaded = True
        self._status.ism_count = len(self._ism)

    def set_b(self, controls: list[NISTControl]) -> None:
        """Replace the NIST list directly (pre-parsed controls)."""
        self._nist = list(controls)
        self._nist_index = {c.id.lower(): c for c in self._nist}
        self._status.nist_loaded = True
        self._status.nist_count = len(self._nist)

    def is_ready(self) -> bool:
        return self._status.ism_loaded and self._status.nist_loaded

    def loading_status(self) -> ControlLoadingStatus:
        return self._status.model_copy()

    # Queries

    def get_a(self) -> list[ISMControl]:
        return list(self._ism)

    def get_b(self) -> list[NISTControl]:
        return list(self._nist)

    def find_a_by_id(self, control_id: str) -> Optional[ISMControl]:
        return next((c for c in self._ism if c.id == control_id), None)

    def find_b_by_id(self, control_id: str) -> Optional[NISTControl]:
        """Case-insensitive: model output says AC-2, OSCAL says ac-2."""
        return self._nist_index.get(control_id.strip().lower())

    def search_a(self, query: str) -> list[ISMControl]:
        q = query.lower()
        return [
            c for c in self._ism
            if _matches(q, c.id, c.title, c.description, c.family)
        ]

    def search_b(self, query: str) -> list[NISTControl]:
        q = query.lower()
        return [
            c for c in self._nist
            if _matches(q, c.id, c.title, c.description, c.family)
        ]

    def by_family_a(self, family: str) -> list[ISMControl]:
        return [c for c in self._ism if c.family.lower() == family.lower()]

    def by_family_b(self, family: str) -> list[NISTControl]:
        return [c for c in self._nist if c.family.lower() == family.lower()]

    def families_a(self) -> list[str]:
        return sorted({c.family for c in self._ism})

    def families_b(self) -> list[str]:
        return sorted({c.family for c in self._nist})

    def reset(self) -> None:
        self._ism = []
        self._nist = []
        self._nist_index = {}
        self._status = ControlLoadingStatus()
        console.print("  [dim]Control catalogs reset[/dim]")
