"""Tests for the consolidated oracle prompts module."""

from varsmith.constants import DefectSeverity, Strategy
from varsmith.prompts import (
    ASSESSMENT_PROMPT,
    CALIBRATION_EXAMPLES,
    CLASSIFIER_PROMPT,
    DEFAULT_FIX,
    GENERATION_PROMPT,
    GENERIC_FIXES,
    STRATEGY_GUIDANCE,
    build_assessment_prompt,
    build_classifier_prompt,
    build_corrective_request,
    build_generation_prompt,
    generic_fix_for,
)
from varsmith.refinement.schemas import (
    Artifact,
    ChangeRequest,
    Defect,
    GenerationPlan,
    IndexEntry,
    SurfaceSnapshot,
)


def test_system_prompts_request_json() -> None:
    for prompt in (CLASSIFIER_PROMPT, GENERATION_PROMPT, ASSESSMENT_PROMPT):
        assert "JSON" in prompt


def test_classifier_prompt_lists_every_intent() -> None:
    for intent in ("REFINEMENT", "NEW_FEATURE", "COURSE_REVERSAL", "AMBIGUOUS"):
        assert intent in CLASSIFIER_PROMPT


def test_every_generating_strategy_has_guidance() -> None:
    for strategy in Strategy:
        if strategy is Strategy.ASK_USER:
            continue
        assert STRATEGY_GUIDANCE[strategy]


def test_calibration_covers_duplication_and_pass() -> None:
    verdicts = {ex["verdict"] for ex in CALIBRATION_EXAMPLES}
    assert {"CRITICAL_DEFECT", "PASS"} <= verdicts


def test_classifier_prompt_windows_history() -> None:
    history = [f"USER: turn {i}" for i in range(5)]
    prompt = build_classifier_prompt(
        ChangeRequest(text="make it red", attached_target_descriptor="#hero"),
        [".cta-button"],
        history,
        window=2,
    )
    assert "turn 4" in prompt and "turn 3" in prompt
    assert "turn 2" not in prompt
    assert ".cta-button" in prompt
    assert "ELEMENT ATTACHED: #hero" in prompt


def test_classifier_prompt_without_history() -> None:
    prompt = build_classifier_prompt(ChangeRequest(text="x"), [], [], 3)
    assert "RECENT CONVERSATION:\n(none)" in prompt
    assert "SELECTORS: (none)" in prompt


def test_generation_prompt_carries_feedback_and_candidates() -> None:
    plan = GenerationPlan(
        strategy=Strategy.SEARCH_INDEX,
        base_artifact=Artifact(appearance_rules=".a { color: red; }"),
        reference_artifact=Artifact(),
        preserved_identifiers=[".a"],
        fresh_candidates=[
            IndexEntry(identifier=".banner", confidence=0.8, description="top")
        ],
    )
    prompt = build_generation_prompt(
        plan, ChangeRequest(text="add a banner"), ["Selector '.x' missing"]
    )
    assert "STRATEGY: SEARCH_INDEX" in prompt
    assert ".a { color: red; }" in prompt
    assert "CURRENT JAVASCRIPT:\n(empty)" in prompt
    assert "SELECTORS TO KEEP: .a" in prompt
    assert "- .banner (confidence 0.80) top" in prompt
    assert "PREVIOUS ATTEMPTS FAILED VALIDATION" in prompt
    assert "- Selector '.x' missing" in prompt


def test_first_attempt_has_no_feedback_block() -> None:
    plan = GenerationPlan(
        strategy=Strategy.FULL_REWRITE,
        base_artifact=Artifact(),
        reference_artifact=Artifact(),
    )
    prompt = build_generation_prompt(plan, ChangeRequest(text="redo"), [])
    assert "PREVIOUS ATTEMPTS" not in prompt


def test_generic_fix_matches_keywords() -> None:
    dup = Defect(
        severity=DefectSeverity.CRITICAL,
        type="element-duplicated",
        description="six buttons",
    )
    odd = Defect(
        severity=DefectSeverity.MAJOR, type="other", description="hmm"
    )
    assert generic_fix_for(dup) == GENERIC_FIXES["duplicat"]
    assert generic_fix_for(odd) == DEFAULT_FIX


def test_corrective_request_prefers_suggested_fix() -> None:
    original = ChangeRequest(text="add a badge", attached_target_descriptor="#buy")
    defects = [
        Defect(
            severity=DefectSeverity.MAJOR,
            type="overlap",
            description="Badge covers the price",
            suggested_fix="move it left",
        ),
        Defect(
            severity=DefectSeverity.CRITICAL,
            type="element-duplicated",
            description="Badge rendered twice",
        ),
    ]
    corrective = build_corrective_request(original, defects)
    assert '"add a badge"' in corrective.text
    assert "[major] Badge covers the price FIX: move it left" in corrective.text
    assert GENERIC_FIXES["duplicat"] in corrective.text
    assert corrective.attached_target_descriptor == "#buy"
    assert corrective.origin_text == "add a badge"
    assert corrective.intent_text == "add a badge"

    again = build_corrective_request(corrective, defects)
    assert again.origin_text == "add a badge"
    assert again.text.count("The previous change") == 1
    assert '"add a badge" has visual' in again.text


def test_assessment_prompt_lists_entity_counts() -> None:
    prompt = build_assessment_prompt(
        "add a badge",
        SurfaceSnapshot(entity_counts={"button": 2}),
        SurfaceSnapshot(entity_counts={"button": 2, "badge": 2}),
        {"examples": CALIBRATION_EXAMPLES},
    )
    assert "- badge: before=0 after=2" in prompt
    assert "- button: before=2 after=2" in prompt
    assert "-> CRITICAL_DEFECT" in prompt
