"""Tests for the visual assessment loop and its pre-check."""

from __future__ import annotations

from typing import Any

import pytest

from varsmith.config import Settings
from varsmith.constants import AssessmentClass, AssessmentOutcome, DefectSeverity
from varsmith.oracle.fakes import (
    FakeSurface,
    ScriptedAssessmentOracle,
    ScriptedGenerativeOracle,
)
from varsmith.refinement.assessment import (
    AssessmentLoop,
    extract_keywords,
    is_repeat,
    precheck,
    same_defect,
    uniterated_node_lists,
)
from varsmith.refinement.generation import GenerationLoop
from varsmith.refinement.rollback import RollbackManager
from varsmith.refinement.schemas import (
    Artifact,
    ChangeRequest,
    Defect,
    SurfaceSnapshot,
)
from varsmith.refinement.session import Session
from varsmith.refinement.validator import Validator
from varsmith.resilience.errors import AssessmentError
from tests.conftest import candidate_json, guarded_behavior, verdict

UNGUARDED = (
    "document.querySelectorAll('.cta-button').forEach((b) => {\n"
    "  b.insertAdjacentHTML('afterend', '<span>Secure checkout</span>');\n"
    "});\n"
)
GUARDED = guarded_behavior(
    ".cta-button",
    "el.insertAdjacentHTML('afterend', '<span>Secure checkout</span>');",
)
REQUEST = ChangeRequest(text="show a secure checkout note under the buttons")


def _defect(description: str) -> Defect:
    return Defect(
        severity=DefectSeverity.MAJOR, type="visual", description=description
    )


def _snap(image: bytes | None = b"x", **counts: int) -> SurfaceSnapshot:
    return SurfaceSnapshot(image=image, entity_counts=counts)


def _duplicating_surface() -> FakeSurface:
    """Unguarded code re-runs and triples the button count."""

    def effects(artifact: Artifact) -> dict[str, int]:
        if "dataset.varApplied" in artifact.behavior_instructions:
            return {"button": 2}
        return {"button": 6}

    return FakeSurface({"button": 2}, effects)


def _loop(
    session: Session,
    settings: Settings,
    assessor: Any,
    surface: Any,
    generator: ScriptedGenerativeOracle,
) -> AssessmentLoop:
    rollback = RollbackManager()
    generation = GenerationLoop(
        generator, Validator(session.index, settings), rollback, settings
    )
    return AssessmentLoop(assessor, surface, generation, rollback, settings)


def _commit(session: Session, behavior: str) -> Artifact:
    return RollbackManager().commit(
        session, Artifact(behavior_instructions=behavior)
    )


class TestKeywords:
    def test_extract_keywords(self) -> None:
        assert extract_keywords("The button is duplicated, three times!") == {
            "button",
            "duplicated",
            "three",
            "times",
        }

    def test_same_defect_exact_text(self) -> None:
        assert same_defect(_defect("Bad"), _defect("bad "), 0.6)

    def test_same_defect_by_overlap_of_either_set(self) -> None:
        a = _defect("button duplicated")
        b = _defect("button duplicated below header again twice")
        assert same_defect(a, b, 0.6)

    def test_different_defects(self) -> None:
        assert not same_defect(
            _defect("heading contrast weak"),
            _defect("footer spacing uneven"),
            0.6,
        )

    def test_is_repeat_fraction(self) -> None:
        previous = [_defect("button duplicated below header")]
        current = [
            _defect("button duplicated below header"),
            _defect("footer spacing uneven"),
        ]
        assert is_repeat(previous, current, 0.6, 0.5)
        assert not is_repeat(previous, current, 0.6, 0.7)
        assert not is_repeat([], current, 0.6, 0.7)


class TestPrecheck:
    def test_count_tripled_is_critical(self) -> None:
        defects = precheck(
            _snap(b"a", button=2), _snap(b"b", button=6), "make it green", 2.0
        )
        [defect] = defects
        assert defect.severity is DefectSeverity.CRITICAL
        assert defect.type == "element-duplicated"
        assert "2 to 6" in defect.description
        assert defect.suggested_fix

    def test_requested_growth_allowed(self) -> None:
        assert precheck(
            _snap(b"a", button=2),
            _snap(b"b", button=6),
            "add more buttons",
            2.0,
        ) == []

    def test_new_kind_from_zero_not_flagged(self) -> None:
        assert precheck(
            _snap(b"a"), _snap(b"b", badge=3), "show badges", 2.0
        ) == []

    def test_identical_capture_is_goal_not_met(self) -> None:
        [defect] = precheck(
            _snap(b"same", button=2),
            _snap(b"same", button=2),
            "make it green",
            2.0,
        )
        assert defect.type == "change-not-visible"

    def test_missing_images_never_identical(self) -> None:
        assert precheck(
            _snap(None, button=2), _snap(None, button=2), "x", 2.0
        ) == []

    def test_uniterated_node_list_is_major(self) -> None:
        behavior = (
            "const notes = document.querySelectorAll('.price-tag');\n"
            "notes.style.color = 'red';\n"
        )
        [defect] = precheck(
            _snap(b"a", button=2), _snap(b"b", button=2), "x", 2.0, behavior
        )
        assert defect.severity is DefectSeverity.MAJOR
        assert defect.type == "selector-not-iterated"
        assert "'.price-tag'" in defect.description
        assert "forEach" in defect.suggested_fix


class TestUniteratedNodeLists:
    @pytest.mark.parametrize(
        "behavior",
        [
            GUARDED,
            "document.querySelectorAll('.a')[0].remove();",
            "const n = document.querySelectorAll('.a'); if (n.length) {}",
            "for (const el of document.querySelectorAll('.a')) {}",
            "[...document.querySelectorAll('.a')].map((el) => el.id);",
            "Array.from(document.querySelectorAll('.a'));",
        ],
    )
    def test_iterated_usage_not_flagged(self, behavior: str) -> None:
        assert uniterated_node_lists(behavior) == []

    def test_one_defect_per_selector(self) -> None:
        behavior = (
            "document.querySelectorAll('.a').hidden = true;\n"
            "document.querySelectorAll('.a').title = 'x';\n"
        )
        assert len(uniterated_node_lists(behavior)) == 1


class TestAssessmentLoop:
    async def test_pass_on_first_iteration(
        self, session: Session, settings: Settings
    ) -> None:
        candidate = _commit(session, GUARDED)
        assessor = ScriptedAssessmentOracle([verdict(AssessmentClass.PASS)])
        surface = _duplicating_surface()
        generator = ScriptedGenerativeOracle(["unused"])

        report = await _loop(
            session, settings, assessor, surface, generator
        ).run(session, REQUEST, candidate)

        assert report.outcome is AssessmentOutcome.PASS
        assert report.iterations == 1
        assert report.artifact == candidate
        assert report.warnings == []
        assert assessor.call_count == 1
        assert surface.reset_count == 1
        assert surface.apply_count == 1
        assert generator.calls == []

    async def test_precheck_defect_corrected_then_pass(
        self, session: Session, settings: Settings
    ) -> None:
        candidate = _commit(session, UNGUARDED)
        assessor = ScriptedAssessmentOracle([verdict(AssessmentClass.PASS)])
        generator = ScriptedGenerativeOracle([candidate_json(GUARDED, "")])

        report = await _loop(
            session, settings, assessor, _duplicating_surface(), generator
        ).run(session, REQUEST, candidate)

        assert report.outcome is AssessmentOutcome.PASS
        assert report.iterations == 2
        # iteration 1 was decided by the pre-check alone
        assert assessor.call_count == 1
        assert report.oracle_calls == 1
        assert report.records[0].defects[0].type == "element-duplicated"
        assert report.generation_attempts == 1
        assert "dataset.varApplied" in report.artifact.behavior_instructions
        assert session.artifact == report.artifact
        assert session.artifact.version == candidate.version + 1

        corrective_prompt = generator.calls[0][0]
        assert "idempotency guard" in corrective_prompt

    async def test_repeated_defect_stops_by_third_iteration(
        self, session: Session, settings: Settings
    ) -> None:
        candidate = _commit(session, GUARDED)
        assessor = ScriptedAssessmentOracle(
            [
                verdict(
                    AssessmentClass.MAJOR_DEFECT,
                    ["Checkout note overlaps the button label"],
                )
            ]
        )
        generator = ScriptedGenerativeOracle([candidate_json(GUARDED, "")])

        report = await _loop(
            session, settings, assessor, _duplicating_surface(), generator
        ).run(session, REQUEST, candidate)

        assert report.outcome is AssessmentOutcome.STOPPED_REPEATED_DEFECT
        assert report.iterations == 3
        assert assessor.call_count == 3
        assert len(report.warnings) == 1
        assert "STOPPED_REPEATED_DEFECT" in report.warnings[0]

    async def test_max_iterations(
        self, session: Session, settings: Settings
    ) -> None:
        candidate = _commit(session, GUARDED)
        descriptions = [
            "Heading contrast weak",
            "Footer spacing uneven",
            "Logo misaligned vertically",
            "Price label clipped",
            "Modal shadow harsh",
        ]
        assessor = ScriptedAssessmentOracle(
            [verdict(AssessmentClass.MAJOR_DEFECT, [d]) for d in descriptions]
        )
        generator = ScriptedGenerativeOracle([candidate_json(GUARDED, "")])

        report = await _loop(
            session, settings, assessor, _duplicating_surface(), generator
        ).run(session, REQUEST, candidate)

        assert report.outcome is AssessmentOutcome.STOPPED_MAX_ITERATIONS
        assert report.iterations == settings.max_assessment_iterations == 5
        assert assessor.call_count == 5
        # no correction after the final iteration
        assert len(generator.calls) == 4

    async def test_oracle_gives_up(
        self, session: Session, settings: Settings
    ) -> None:
        candidate = _commit(session, GUARDED)
        assessor = ScriptedAssessmentOracle(
            [
                verdict(
                    AssessmentClass.CRITICAL_DEFECT,
                    ["Layout broken"],
                    should_continue=False,
                )
            ]
        )
        report = await _loop(
            session,
            settings,
            assessor,
            _duplicating_surface(),
            ScriptedGenerativeOracle(["unused"]),
        ).run(session, REQUEST, candidate)

        assert report.outcome is AssessmentOutcome.STOPPED_CRITICAL_UNRESOLVED
        assert report.iterations == 1
        assert report.artifact == candidate

    async def test_corrective_exhaustion_keeps_last_valid(
        self, session: Session, settings: Settings
    ) -> None:
        candidate = _commit(session, GUARDED)
        assessor = ScriptedAssessmentOracle(
            [verdict(AssessmentClass.GOAL_NOT_MET, ["Note not visible"])]
        )
        generator = ScriptedGenerativeOracle(["not json"])

        report = await _loop(
            session, settings, assessor, _duplicating_surface(), generator
        ).run(session, REQUEST, candidate)

        assert report.outcome is AssessmentOutcome.STOPPED_CRITICAL_UNRESOLVED
        assert report.generation_attempts == 3
        assert report.artifact == candidate
        assert session.artifact == candidate

    async def test_defect_wording_does_not_license_removal(
        self, session: Session, settings: Settings
    ) -> None:
        """'Drop shadow' in a defect is not a request to delete behavior."""
        candidate = _commit(session, GUARDED)
        assessor = ScriptedAssessmentOracle(
            [
                verdict(
                    AssessmentClass.MAJOR_DEFECT,
                    ["Drop shadow on the button looks harsh"],
                ),
                verdict(AssessmentClass.PASS),
            ]
        )
        no_shadow = ".cta-button { box-shadow: none; }"
        generator = ScriptedGenerativeOracle(
            [candidate_json("", no_shadow), candidate_json(GUARDED, no_shadow)]
        )

        report = await _loop(
            session, settings, assessor, _duplicating_surface(), generator
        ).run(session, REQUEST, candidate)

        assert report.outcome is AssessmentOutcome.PASS
        assert report.generation_attempts == 2
        assert report.artifact.behavior_instructions == GUARDED
        assert session.artifact == report.artifact
        assert "Unintended removal" in generator.calls[1][0]

    async def test_unknown_verdict_without_defects_synthesizes_one(
        self, session: Session, settings: Settings
    ) -> None:
        candidate = _commit(session, GUARDED)
        assessor = ScriptedAssessmentOracle(
            [
                verdict(AssessmentClass.UNKNOWN, should_continue=False),
            ]
        )
        report = await _loop(
            session,
            settings,
            assessor,
            _duplicating_surface(),
            ScriptedGenerativeOracle(["unused"]),
        ).run(session, REQUEST, candidate)

        [defect] = report.records[0].defects
        assert defect.type == "unknown"
        assert defect.severity is DefectSeverity.MAJOR


class TestAssessmentErrors:
    async def test_surface_failure_raises_assessment_error(
        self, session: Session, settings: Settings
    ) -> None:
        class BrokenSurface(FakeSurface):
            async def apply(self, artifact: Artifact) -> None:
                raise RuntimeError("browser crashed")

        candidate = _commit(session, GUARDED)
        loop = _loop(
            session,
            settings,
            ScriptedAssessmentOracle([verdict()]),
            BrokenSurface(),
            ScriptedGenerativeOracle(["unused"]),
        )
        with pytest.raises(AssessmentError, match="apply failed"):
            await loop.run(session, REQUEST, candidate)

    async def test_oracle_failure_raises_assessment_error(
        self, session: Session, settings: Settings
    ) -> None:
        candidate = _commit(session, GUARDED)
        loop = _loop(
            session,
            settings,
            ScriptedAssessmentOracle([ConnectionError("503")]),
            _duplicating_surface(),
            ScriptedGenerativeOracle(["unused"]),
        )
        with pytest.raises(AssessmentError, match="assess failed"):
            await loop.run(session, REQUEST, candidate)
