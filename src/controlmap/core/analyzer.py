"""Correspondence analyzer: one ISM control in, ranked NIST candidates out.

Builds a deterministic prompt, calls the text generator, and coerces the
free-text reply into typed candidates. Unparseable replies degrade to a
single low-confidence fallback candidate instead of failing the item.
"""

from __future__ import annotations

import json
import math
import time
from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from rich.console import Console

from ..models.control import ISMControl, NISTControl
from ..models.mapping import AnalysisResult, CorrespondenceCandidate
from ..models.provider import GenerationOptions
from ..providers.base import TextGenerator
from ..utils.sanitize import preview
from .errors import GenerationError, ParseError

console = Console()

DEFAULT_SAMPLE_SIZE = 15
DEFAULT_MAX_CANDIDATES = 3

FALLBACK_TARGET_ID = "AC-1"
FALLBACK_CONFIDENCE = 50
FALLBACK_REASONING = "Automated mapping failed, manual review required."

KEYWORD_FAMILIES: dict[str, tuple[str, ...]] = {
    "access": ("AC", "IA"),
    "authentication": ("IA", "AC"),
    "authorization": ("AC", "IA"),
    "audit": ("AU", "SI"),
    "logging": ("AU", "SI"),
    "monitoring": ("AU", "SI", "IR"),
    "incident": ("IR", "AU"),
    "backup": ("CP", "SC"),
    "recovery": ("CP", "IR"),
    "encryption": ("SC", "MP"),
    "cryptographic": ("SC", "MP"),
    "network": ("SC", "AC"),
    "firewall": ("SC", "AC"),
    "personnel": ("PS", "AT"),
    "training": ("AT", "PS"),
    "awareness": ("AT", "PS"),
    "physical": ("PE", "MP"),
    "media": ("MP", "PE"),
    "configuration": ("CM", "SI"),
    "vulnerability": ("SI", "RA"),
    "assessment": ("CA", "RA"),
    "risk": ("RA", "PM"),
    "planning": ("PL", "PM"),
    "policy": ("PL", "PM"),
    "procedure": ("PL", "PM"),
}

SCORING_BANDS = (
    "- 95-100: Functionally identical; either control satisfies the same audit requirement",
    "- 85-94: Strong alignment; differences are in wording or emphasis only",
    "- 75-84: Good mapping; same intent with some implementation differences",
    "- 65-74: Reasonable correlation; related objectives with notable gaps",
    "- 55-64: Weak relationship; partial overlap, significant differences",
    "- Below 55: Poor mapping; different objectives or scope",
)


def relevant_families(control: ISMControl) -> set[str]:
    """NIST family codes suggested by keywords in the control's text."""
    text = (
        f"{control.title} {control.description} {control.implementation_guidance}"
    ).lower()
    families: set[str] = set()
    for keyword, codes in KEYWORD_FAMILIES.items():
        if keyword in text:
            families.update(codes)
    return families


def prioritize_nist_controls(
    control: ISMControl, nist_controls: list[NISTControl]
) -> list[NISTControl]:
    """Controls in keyword-relevant families first, then by id."""
    families = relevant_families(control)
    return sorted(
        nist_controls,
        key=lambda c: (c.family_code not in families, c.id),
    )


def build_mapping_prompt(
    control: ISMControl,
    nist_controls: list[NISTControl],
    sample_size: int = DEFAULT_SAMPLE_SIZE,
    max_candidates: int = DEFAULT_MAX_CANDIDATES,
) -> str:
    sample = prioritize_nist_controls(control, nist_controls)[:sample_size]
    nist_lines = "\n".join(f"{c.id}: {c.title}" for c in sample)

    parts = [
        "You are a senior cybersecurity compliance auditor with deep, hands-on "
        "experience of both the Australian Information Security Manual (ISM) and "
        "NIST SP 800-53. You must be able to defend every mapping you propose "
        "to a regulator.",
        "",
        "ANALYSIS FRAMEWORK:",
        "When mapping an ISM control to NIST controls, weigh:",
        "1. FUNCTIONAL EQUIVALENCE: Do they achieve the same security outcome?",
        "2. IMPLEMENTATION SIMILARITY: Are the technical and procedural requirements comparable?",
        "3. SCOPE ALIGNMENT: Do they protect the same assets against similar threats?",
        "4. COMPLIANCE INTENT: Would they satisfy similar audit requirements?",
        "5. RISK MITIGATION: Do they address equivalent risk scenarios?",
        "",
        "ISM Control to Analyze:",
        f"ID: {control.id}",
        f"Title: {control.title}",
        f"Description: {control.description}",
        f"Implementation Guidance: {control.implementation_guidance}",
        f"Control Family: {control.family}",
        f"Risk Level: {control.risk_level.value}",
        "",
        "Available NIST 800-53 Controls (sample):",
        nist_lines,
        "",
        "CONFIDENCE SCORING:",
        *SCORING_BANDS,
        "",
        "Account for the difference between the Australian government context "
        "(PROTECTED/SECRET classifications, Privacy Act) and the US federal context "
        "(Low/Moderate/High impact baselines).",
        "",
        f"Provide up to {max_candidates} of the most relevant NIST 800-53 control mappings.",
        "",
        "Respond with JSON only, in exactly this format:",
        "{",
        '  "mappings": [',
        "    {",
        '      "nistControlId": "AC-1",',
        '      "confidence": 85,',
        '      "reasoning": "Why the controls align, where they differ, and what an auditor would accept."',
        "    }",
        "  ]",
        "}",
        "",
        'If no appropriate mapping exists, return {"mappings": []}.',
    ]
    return "\n".join(parts)


def extract_json_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` substring, or None.

    Braces inside JSON string literals are ignored.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        start = text.find("{", start + 1)
    return None


def clamp_confidence(value: float) -> int:
    # Compare before converting; ints too large for float still order correctly
    if value >= 100:
        return 100
    if value <= 0:
        return 0
    return int(round(value))


def normalize_control_id(control_id: str) -> str:
    return control_id.strip().upper()


def parse_mapping_response(
    text: str, max_candidates: int = DEFAULT_MAX_CANDIDATES
) -> list[CorrespondenceCandidate]:
    """Strictly parse a model reply. Any malformed element rejects the whole reply."""
    raw = extract_json_object(text or "")
    if raw is None:
        raise ParseError("No JSON object found in response")

    try:
        data = json.loads(raw)
    except (ValueError, RecursionError) as e:
        # also covers oversized integer literals and deep nesting
        raise ParseError(f"Invalid JSON in response: {e}") from e

    mappings = data.get("mappings") if isinstance(data, dict) else None
    if not isinstance(mappings, list):
        raise ParseError("Invalid response format: missing mappings array")

    candidates: list[CorrespondenceCandidate] = []
    for index, item in enumerate(mappings):
        if not isinstance(item, dict):
            raise ParseError(f"Invalid mapping at index {index}: not an object")

        control_id = item.get("nistControlId")
        confidence = item.get("confidence")
        reasoning = item.get("reasoning")

        if not isinstance(control_id, str) or not control_id.strip():
            raise ParseError(f"Invalid mapping at index {index}: missing nistControlId")
        # bool is an int subclass; reject it explicitly
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            raise ParseError(f"Invalid mapping at index {index}: missing numeric confidence")
        if isinstance(confidence, float) and math.isnan(confidence):
            raise ParseError(f"Invalid mapping at index {index}: confidence is NaN")
        if not isinstance(reasoning, str):
            raise ParseError(f"Invalid mapping at index {index}: missing reasoning")

        candidates.append(CorrespondenceCandidate(
            nist_control_id=normalize_control_id(control_id),
            confidence=clamp_confidence(confidence),
            reasoning=reasoning,
        ))

    return candidates[:max_candidates]


def fallback_candidate() -> CorrespondenceCandidate:
    return CorrespondenceCandidate(
        nist_control_id=FALLBACK_TARGET_ID,
        confidence=FALLBACK_CONFIDENCE,
        reasoning=FALLBACK_REASONING,
    )


class ParseOutcome(BaseModel):
    """Tagged parse result: real candidates, or the fallback plus why."""

    ok: bool
    candidates: list[CorrespondenceCandidate]
    reason: Optional[str] = None


def coerce_mapping_response(
    text: str, max_candidates: int = DEFAULT_MAX_CANDIDATES
) -> ParseOutcome:
    """Never raises. Parse failures become the fallback candidate."""
    try:
        return ParseOutcome(ok=True, candidates=parse_mapping_response(text, max_candidates))
    except ParseError as e:
        return ParseOutcome(ok=False, candidates=[fallback_candidate()], reason=e.message)


class ControlAnalyzer:
    """Runs one ISM control through the text generator."""

    def __init__(
        self,
        generator: TextGenerator,
        options: Optional[GenerationOptions] = None,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
        max_candidates: int = DEFAULT_MAX_CANDIDATES,
    ):
        self.generator = generator
        self.options = options or GenerationOptions()
        self.sample_size = sample_size
        self.max_candidates = max_candidates

    @property
    def model(self) -> str:
        return self.generator.model

    async def analyze(
        self, control: ISMControl, nist_controls: list[NISTControl]
    ) -> AnalysisResult:
        start = time.monotonic()
        prompt = build_mapping_prompt(
            control, nist_controls, self.sample_size, self.max_candidates
        )

        result = await self.generator.complete_with_retry(prompt, self.options)
        elapsed_ms = (time.monotonic() - start) * 1000

        if not result.success:
            raise GenerationError(
                f"Analysis failed for {control.id}: {result.error or 'unknown error'}",
                control_id=control.id,
            )
        if not result.content:
            raise GenerationError(
                f"Analysis failed for {control.id}: empty response from model",
                control_id=control.id,
            )

        outcome = coerce_mapping_response(result.content, self.max_candidates)
        if not outcome.ok:
            console.print(
                f"  [yellow]WARN[/yellow] {control.id}: {outcome.reason}; "
                f"using fallback mapping. Raw: {preview(result.content)}"
            )

        return AnalysisResult(
            candidates=outcome.candidates,
            elapsed_ms=elapsed_ms,
            model=result.model or self.model,
            completed_at=datetime.now(),
            parse_ok=outcome.ok,
        )
