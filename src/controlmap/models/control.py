"""Control catalog data models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class ISMControl(BaseModel):
    """A control from the Australian Information Security Manual."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str = ""
    implementation_guidance: str = ""
    family: str = "Unknown"
    risk_level: RiskLevel = RiskLevel.MEDIUM
    source: str = "ISM"


class NISTControl(BaseModel):
    """A control from NIST SP 800-53."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str = ""
    family: str = "Unknown"
    control_class: str = "operational"
    source: str = "NIST-800-53"

    @property
    def family_code(self) -> str:
        """Two-letter family prefix, e.g. ``ac-2.1`` -> ``AC``."""
        return self.id.split("-")[0].upper()


class ControlLoadingStatus(BaseModel):
    is_loading: bool = False
    ism_loaded: bool = False
    nist_loaded: bool = False
    ism_count: int = 0
    nist_count: int = 0
    last_load_time: Optional[datetime] = None
    error: Optional[str] = None
