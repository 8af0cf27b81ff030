"""Shared test fixtures: scripted oracles, fake surface, sessions."""

import os

# Force demo API keys for all tests; no real LLM calls.
os.environ["ANTHROPIC_API_KEY"] = "for-demo-purposes-only"
os.environ["OPENAI_API_KEY"] = "for-demo-purposes-only"

import json
from collections.abc import Sequence
from pathlib import Path

import pytest

from varsmith.config import Settings
from varsmith.constants import AssessmentClass, DefectSeverity
from varsmith.refinement.index import StaticIdentifierIndex
from varsmith.refinement.schemas import (
    Artifact,
    AssessmentVerdict,
    Defect,
    IndexEntry,
)
from varsmith.refinement.session import Session

PAGE_IDENTIFIERS: tuple[str, ...] = (
    ".cta-button",
    ".hero h1",
    "#signup-form",
    ".price-tag",
    ".nav a",
    ".banner",
)

CURRENT_BEHAVIOR = """\
const buttons = document.querySelectorAll('.cta-button');
buttons.forEach((btn) => {
  if (btn.dataset.varApplied) return;
  btn.dataset.varApplied = '1';
  btn.textContent = 'Start free trial';
});
"""

CURRENT_APPEARANCE = ".cta-button { background: #0a7; color: #fff; }"


def classification_json(
    intent: str = "REFINEMENT",
    confidence: int = 90,
    interpretations: Sequence[str] = (),
) -> str:
    """Classifier response wrapped in prose, as real oracles answer."""
    payload = {
        "intent": intent,
        "confidence": confidence,
        "rationale": "test",
        "candidate_interpretations": list(interpretations),
        "referenced_identifiers": [".cta-button"],
    }
    return f"Here is my analysis:\n```json\n{json.dumps(payload)}\n```"


def candidate_json(
    behavior: str = CURRENT_BEHAVIOR,
    appearance: str = CURRENT_APPEARANCE,
) -> str:
    return json.dumps(
        {"appearance_rules": appearance, "behavior_instructions": behavior}
    )


def guarded_behavior(selector: str, body: str = "el.style.color = 'red';") -> str:
    return (
        f"document.querySelectorAll('{selector}').forEach((el) => {{\n"
        "  if (el.dataset.varApplied) return;\n"
        "  el.dataset.varApplied = '1';\n"
        f"  {body}\n"
        "});\n"
    )


def verdict(
    classification: AssessmentClass = AssessmentClass.PASS,
    descriptions: Sequence[str] = (),
    should_continue: bool = True,
) -> AssessmentVerdict:
    return AssessmentVerdict(
        classification=classification,
        defects=[
            Defect(
                severity=DefectSeverity.MAJOR,
                type="visual",
                description=d,
            )
            for d in descriptions
        ],
        should_continue=should_continue,
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        log_dir=tmp_path / "logs",
        trace_enabled=False,
        oracle_timeout_seconds=2.0,
    )


@pytest.fixture
def index() -> StaticIdentifierIndex:
    return StaticIdentifierIndex(
        IndexEntry(identifier=ident, confidence=0.9)
        for ident in PAGE_IDENTIFIERS
    )


@pytest.fixture
def current_artifact() -> Artifact:
    return Artifact(
        appearance_rules=CURRENT_APPEARANCE,
        behavior_instructions=CURRENT_BEHAVIOR,
        version=1,
    )


@pytest.fixture
def session(
    settings: Settings,
    index: StaticIdentifierIndex,
    current_artifact: Artifact,
) -> Session:
    return Session.create(
        Artifact.empty(), index, settings, current=current_artifact
    )
