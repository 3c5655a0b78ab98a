"""Shared fixtures for controlmap tests."""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

import pytest

from controlmap.catalog.store import ControlCatalogStore
from controlmap.core.orchestrator import ProcessingSettings
from controlmap.models.control import ISMControl, NISTControl, RiskLevel
from controlmap.models.mapping import AnalysisResult, CorrespondenceCandidate
from controlmap.models.provider import CompletionResult, GenerationOptions


class StubGenerator:
    """Text generator that replays canned completions."""

    name = "stub"

    def __init__(self, responses: Optional[list[CompletionResult]] = None, model: str = "stub-model"):
        self.model = model
        self.endpoint = "http://stub"
        self.responses = list(responses or [])
        self.prompts: list[str] = []

    async def complete(self, prompt: str, options: GenerationOptions) -> CompletionResult:
        self.prompts.append(prompt)
        if self.responses:
            return self.responses.pop(0)
        return CompletionResult(success=True, content='{"mappings": []}', model=self.model)

    async def complete_with_retry(self, prompt: str, options: GenerationOptions) -> CompletionResult:
        return await self.complete(prompt, options)

    async def list_models(self) -> list[str]:
        return [self.model]

    async def test_connectivity(self) -> bool:
        return True


class StubAnalyzer:
    """Analyzer that answers per ISM id: a candidate list, or an exception to raise."""

    def __init__(self, answers: Optional[dict] = None, default: Optional[list] = None, delay: float = 0.0):
        self.answers = answers or {}
        self.delay = delay
        self.default = default if default is not None else [
            CorrespondenceCandidate(nist_control_id="AC-2", confidence=85, reasoning="Account management")
        ]
        self.calls: list[str] = []

    async def analyze(self, control, nist_controls) -> AnalysisResult:
        self.calls.append(control.id)
        if self.delay:
            await asyncio.sleep(self.delay)
        answer = self.answers.get(control.id, self.default)
        if isinstance(answer, Exception):
            raise answer
        return AnalysisResult(candidates=answer, elapsed_ms=120.0, model="stub-model")


@pytest.fixture
def ism_controls() -> list[ISMControl]:
    return [
        ISMControl(
            id="ISM-0714",
            title="User account provisioning",
            description="Access to systems is granted through a documented account management process.",
            implementation_guidance="Accounts are approved before access is provisioned.",
            family="Guidelines for Personnel Security - Access to systems",
            risk_level=RiskLevel.HIGH,
        ),
        ISMControl(
            id="ISM-0580",
            title="Event logging policy",
            description="An event logging policy is developed and implemented.",
            implementation_guidance="Logging covers security-relevant events.",
            family="Guidelines for System Monitoring - Event logging",
        ),
        ISMControl(
            id="ISM-1139",
            title="Data in transit",
            description="Encryption protects data communicated over public networks.",
            implementation_guidance="Use approved cryptographic protocols.",
            family="Guidelines for Cryptography - Transport",
            risk_level=RiskLevel.LOW,
        ),
    ]


@pytest.fixture
def nist_controls() -> list[NISTControl]:
    """OSCAL-style lower-case ids."""
    return [
        NISTControl(id="ac-1", title="Policy and Procedures", description="Access control policy.", family="Access Control"),
        NISTControl(id="ac-2", title="Account Management", description="Manage system accounts.", family="Access Control"),
        NISTControl(id="au-2", title="Event Logging", description="Identify loggable events.", family="Audit and Accountability"),
        NISTControl(id="cm-2", title="Baseline Configuration", description="", family="Configuration Management"),
        NISTControl(id="sc-8", title="Transmission Confidentiality and Integrity", description="Protect transmitted information.", family="System and Communications Protection"),
    ]


@pytest.fixture
def loaded_catalog(ism_controls, nist_controls) -> ControlCatalogStore:
    """Catalog store populated without a loader."""
    catalog = ControlCatalogStore()
    catalog.set_a(ism_controls)
    catalog.set_b(nist_controls)
    return catalog


@pytest.fixture
def fast_settings() -> ProcessingSettings:
    return ProcessingSettings(concurrency=1, item_delay_seconds=0, window_delay_seconds=0)


@pytest.fixture
def stub_generator_factory() -> Callable[..., StubGenerator]:
    return StubGenerator


@pytest.fixture
def stub_analyzer_factory() -> Callable[..., StubAnalyzer]:
    return StubAnalyzer


@pytest.fixture
def ism_catalog_document() -> dict:
    """Minimal ISM OSCAL catalog with nested groups."""
    return {
        "catalog": {
            "uuid": "ism-test",
            "metadata": {"title": "ISM", "version": "2025.09"},
            "groups": [
                {
                    "id": "personnel",
                    "title": "Guidelines for Personnel Security",
                    "groups": [
                        {
                            "id": "access",
                            "title": "Access to systems",
                            "controls": [
                                {
                                    "id": "ISM-0714",
                                    "title": "User account provisioning",
                                    "props": [{"name": "priority", "value": "Critical"}],
                                    "parts": [
                                        {"name": "statement", "prose": "Access is granted through account management."},
                                        {"name": "guidance", "prose": "Approve accounts first."},
                                    ],
                                }
                            ],
                        }
                    ],
                },
                {
                    "id": "monitoring",
                    "title": "Guidelines for System Monitoring",
                    "controls": [
                        {
                            "id": "ISM-0580",
                            "props": [{"name": "risk-level", "value": "basic"}],
                            "parts": [{"name": "other", "prose": "Logging policy."}],
                        }
                    ],
                },
            ],
        }
    }


@pytest.fixture
def nist_catalog_document() -> dict:
    """Minimal NIST 800-53 OSCAL catalog."""
    return {
        "catalog": {
            "uuid": "nist-test",
            "metadata": {"title": "SP 800-53 Rev 5"},
            "groups": [
                {
                    "id": "ac",
                    "title": "Access Control",
                    "controls": [
                        {
                            "id": "ac-1",
                            "title": "Policy and Procedures",
                            "props": [{"name": "label", "value": "AC-1"}],
                            "parts": [{"name": "statement", "prose": "Develop access control policy."}],
                        },
                        {
                            "id": "ac-2",
                            "title": "Account Management",
                            "props": [{"name": "class", "value": "technical"}],
                        },
                    ],
                },
                {
                    "id": "au",
                    "title": "Audit and Accountability",
                    "controls": [{"id": "au-2", "title": "Event Logging"}],
                },
            ],
        }
    }
