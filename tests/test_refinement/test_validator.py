"""Tests for the four-check structural validator."""

from __future__ import annotations

from varsmith.constants import CheckCategory, DefectSeverity, Strategy
from varsmith.prompts import build_corrective_request
from varsmith.refinement.index import StaticIdentifierIndex
from varsmith.refinement.schemas import (
    Artifact,
    ChangeRequest,
    Defect,
    GenerationPlan,
)
from varsmith.refinement.validator import (
    ValidationContext,
    Validator,
    requests_deletion,
)
from tests.conftest import CURRENT_BEHAVIOR, guarded_behavior


def _ctx(
    reference: Artifact | None = None,
    strategy: Strategy = Strategy.PRESERVE_IDENTIFIERS,
    request_text: str = "make it bigger",
    fresh: frozenset[str] = frozenset(),
) -> ValidationContext:
    return ValidationContext(
        strategy=strategy,
        request_text=request_text,
        reference_artifact=reference or Artifact(),
        fresh_identifiers=fresh,
    )


def _js(behavior: str) -> Artifact:
    return Artifact(behavior_instructions=behavior)


class TestIdentifierCheck:
    def test_known_identifiers_pass(
        self, index: StaticIdentifierIndex, current_artifact: Artifact
    ) -> None:
        result = Validator(index).validate(current_artifact, _ctx())
        assert result.passed
        assert result.errors == []
        assert result.confidence == 100

    def test_missing_identifier_with_suggestion(
        self, index: StaticIdentifierIndex
    ) -> None:
        result = Validator(index).validate(
            _js(guarded_behavior(".cta-buton")), _ctx()
        )
        assert not result.passed
        [error] = result.errors
        assert error.code == "missing_identifier"
        assert error.identifier == ".cta-buton"
        assert error.suggestion == "did you mean '.cta-button'?"
        assert result.confidence == 70

    def test_no_index_is_a_warning(self) -> None:
        result = Validator(None).validate(
            _js(guarded_behavior(".anything")), _ctx()
        )
        assert result.passed
        assert [w.code for w in result.warnings] == ["index_unavailable"]
        assert result.confidence == 95

    def test_created_elements_exempt(
        self, index: StaticIdentifierIndex
    ) -> None:
        js = (
            "const badge = document.createElement('span');\n"
            "badge.className = 'promo-badge';\n"
            "document.querySelector('.hero h1').appendChild(badge);\n"
            "document.querySelector('.promo-badge').title = 'New';\n"
        )
        result = Validator(index).validate(_js(js), _ctx())
        assert result.passed

    def test_search_index_requires_fresh_candidates(
        self, index: StaticIdentifierIndex, current_artifact: Artifact
    ) -> None:
        behavior = CURRENT_BEHAVIOR + guarded_behavior(".nav a")
        ctx = _ctx(
            current_artifact,
            Strategy.SEARCH_INDEX,
            fresh=frozenset({".banner"}),
        )
        result = Validator(index).validate(_js(behavior), ctx)
        assert not result.passed
        [error] = result.errors
        assert error.identifier == ".nav a"
        assert "fresh index candidates" in error.message

        ctx_ok = _ctx(
            current_artifact,
            Strategy.SEARCH_INDEX,
            fresh=frozenset({".nav a"}),
        )
        assert Validator(index).validate(_js(behavior), ctx_ok).passed


class TestSyntaxCheck:
    def test_javascript_error_located(
        self, index: StaticIdentifierIndex
    ) -> None:
        result = Validator(index).validate(
            _js("const x = ;"), _ctx()
        )
        assert not result.passed
        [error] = result.errors
        assert error.category is CheckCategory.SYNTAX
        assert error.code == "javascript_syntax"
        assert error.line == 1
        assert result.confidence == 60

    def test_css_error(self, index: StaticIdentifierIndex) -> None:
        result = Validator(index).validate(
            Artifact(appearance_rules=".a { color: red; } }"), _ctx()
        )
        assert [e.code for e in result.errors] == ["css_syntax"]


class TestRegressionCheck:
    def test_silent_removal_rejected(
        self, index: StaticIdentifierIndex, current_artifact: Artifact
    ) -> None:
        result = Validator(index).validate(
            _js("console.log('hi');"), _ctx(current_artifact)
        )
        assert [e.code for e in result.errors] == ["unintended_removal"]

    def test_empty_behavior_rejected(
        self, index: StaticIdentifierIndex, current_artifact: Artifact
    ) -> None:
        result = Validator(index).validate(
            Artifact(appearance_rules=".a { color: red; }"),
            _ctx(current_artifact),
        )
        assert [e.code for e in result.errors] == ["unintended_removal"]

    def test_requested_removal_allowed(
        self, index: StaticIdentifierIndex, current_artifact: Artifact
    ) -> None:
        result = Validator(index).validate(
            _js("console.log('hi');"),
            _ctx(current_artifact, request_text="Remove the new button text"),
        )
        assert result.passed

    def test_fix_request_checked_against_user_words(
        self, index: StaticIdentifierIndex, current_artifact: Artifact
    ) -> None:
        fix = build_corrective_request(
            ChangeRequest(text="make the buttons red"),
            [
                Defect(
                    severity=DefectSeverity.MAJOR,
                    type="visual",
                    description="Drop shadow looks harsh, strip it",
                )
            ],
        )
        assert requests_deletion(fix.text)
        plan = GenerationPlan(
            strategy=Strategy.PRESERVE_IDENTIFIERS,
            base_artifact=current_artifact,
            reference_artifact=current_artifact,
        )
        context = ValidationContext.from_plan(plan, fix)
        assert context.request_text == "make the buttons red"

        result = Validator(index).validate(
            Artifact(appearance_rules=".cta-button { box-shadow: none; }"),
            context,
        )
        assert [e.code for e in result.errors] == ["unintended_removal"]

    def test_small_reference_not_checked(
        self, index: StaticIdentifierIndex
    ) -> None:
        reference = _js("console.log('a');")
        assert Validator(index).validate(Artifact(), _ctx(reference)).passed

    def test_deletion_vocabulary(self) -> None:
        assert requests_deletion("please get rid of the banner")
        assert requests_deletion("Undo that")
        assert not requests_deletion("make the banner green")


class TestDuplicationCheck:
    def test_unguarded_repeat_flagged(
        self, index: StaticIdentifierIndex
    ) -> None:
        js = (
            "document.querySelector('.banner').textContent = 'Sale';\n"
            "document.querySelector('.banner').style.color = 'red';\n"
        )
        result = Validator(index).validate(_js(js), _ctx())
        [error] = result.errors
        assert error.code == "duplication_risk"
        assert error.identifier == ".banner"
        assert result.confidence == 80

    def test_marker_guard_accepted(
        self, index: StaticIdentifierIndex
    ) -> None:
        js = (
            "const b = document.querySelector('.banner');\n"
            "if (!b.dataset.varApplied) { b.dataset.varApplied = '1'; }\n"
            "document.querySelector('.banner').style.color = 'red';\n"
        )
        assert Validator(index).validate(_js(js), _ctx()).passed

    def test_if_condition_guard_accepted(
        self, index: StaticIdentifierIndex
    ) -> None:
        js = (
            "if (!document.querySelector('.banner').title) {\n"
            "  document.querySelector('.banner').title = 'Sale';\n"
            "}\n"
        )
        assert Validator(index).validate(_js(js), _ctx()).passed


class TestAggregation:
    def test_all_errors_reported_together(
        self, index: StaticIdentifierIndex
    ) -> None:
        result = Validator(index).validate(
            _js("document.querySelector('.nope').x = ;"), _ctx()
        )
        assert result.failed_categories == {
            CheckCategory.IDENTIFIER,
            CheckCategory.SYNTAX,
        }
        assert result.confidence == 30
        summary = result.error_summary()
        assert len(summary) == 2
        assert any("[identifier_existence]" in line for line in summary)

    def test_shared_identifier_warning(
        self, index: StaticIdentifierIndex, current_artifact: Artifact
    ) -> None:
        ctx = _ctx(
            current_artifact,
            Strategy.SEARCH_INDEX,
            fresh=frozenset({".cta-button"}),
        )
        result = Validator(index).validate(current_artifact, ctx)
        assert result.passed
        assert [w.code for w in result.warnings] == ["shared_identifiers"]
        assert result.confidence == 95
