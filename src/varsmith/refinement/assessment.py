"""Bounded visual assessment loop with repeated-defect termination.

Runs only for candidates that already passed structural validation and
were committed. Each iteration resets the surface, applies the current
candidate, and compares before/after captures: first with a cheap
entity-count pre-check, then (if that finds nothing) with the
qualitative oracle. Defects feed a corrective generation run; the loop
stops on PASS, on repeated defects, when the oracle gives up, or when
the iteration budget runs out. The last committed candidate always
stands; this loop never rolls back past it.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from varsmith.config import Settings
from varsmith.constants import (
    AssessmentClass,
    AssessmentOutcome,
    DefectSeverity,
    Strategy,
)
from varsmith.observability.dispatcher import TraceDispatcher
from varsmith.observability.emitters import emit_assessment_iteration
from varsmith.oracle.protocols import AssessmentOracle, ObservableSurface
from varsmith.prompts import (
    CALIBRATION_EXAMPLES,
    GENERIC_FIXES,
    build_corrective_request,
)
from varsmith.refinement.generation import GenerationLoop
from varsmith.refinement.identifiers import artifact_identifiers
from varsmith.refinement.rollback import RollbackManager
from varsmith.refinement.schemas import (
    Artifact,
    AssessmentVerdict,
    ChangeRequest,
    Defect,
    GenerationPlan,
    IterationRecord,
    SurfaceSnapshot,
)
from varsmith.refinement.session import Session
from varsmith.resilience.errors import (
    AssessmentError,
    GenerationExhaustedError,
    classify_error,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_STOPWORDS = frozenset(
    {
        "the", "and", "are", "not", "but", "for", "with", "this", "that",
        "from", "they", "been", "have", "their", "said", "each", "which",
        "will", "there", "could", "other", "should", "than", "into",
    }
)
_NON_LETTERS = re.compile(r"[^a-z\s]")
_ADD_VERBS = re.compile(
    r"\b(add|adds|adding|insert|create|append|duplicate|another|more|"
    r"extra|new|copies|repeat)\b"
)
_NODE_LIST = re.compile(r"querySelectorAll\s*\(([^)]*)\)")
_NODE_LIST_USE = re.compile(r"forEach|\[\d+\]|\.length")
_ITERATED_BEFORE = re.compile(
    r"(?:\bof\s+|\.\.\.\s*|\bArray\.from\(\s*)[\w$.]*$"
)
NODE_LIST_WINDOW = 100


def extract_keywords(description: str) -> set[str]:
    """Lowercase letters-only words longer than 3 chars, minus stopwords."""
    words = _NON_LETTERS.sub("", description.lower()).split()
    return {w for w in words if len(w) > 3 and w not in _STOPWORDS}


def same_defect(a: Defect, b: Defect, overlap: float) -> bool:
    """Shared keywords cover at least ``overlap`` of either keyword set."""
    if a.description.strip().lower() == b.description.strip().lower():
        return True
    ka = extract_keywords(a.description)
    kb = extract_keywords(b.description)
    if not ka or not kb:
        return False
    shared = len(ka & kb)
    return shared / len(ka) >= overlap or shared / len(kb) >= overlap


def is_repeat(
    previous: Sequence[Defect],
    current: Sequence[Defect],
    overlap: float,
    fraction: float,
) -> bool:
    """True when at least ``fraction`` of current defects were seen before."""
    if not previous or not current:
        return False
    matched = sum(
        1
        for defect in current
        if any(same_defect(defect, prior, overlap) for prior in previous)
    )
    return matched / len(current) >= fraction


def _expects_growth(request_text: str, kind: str) -> bool:
    text = request_text.lower()
    stem = kind.lower().rstrip("s")
    return bool(_ADD_VERBS.search(text)) and stem in text


def uniterated_node_lists(behavior: str) -> list[Defect]:
    """querySelectorAll calls whose results are never iterated or indexed."""
    defects: list[Defect] = []
    seen: set[str] = set()
    for match in _NODE_LIST.finditer(behavior):
        window = behavior[match.end() : match.end() + NODE_LIST_WINDOW]
        if _NODE_LIST_USE.search(window):
            continue
        if _ITERATED_BEFORE.search(behavior[: match.start()]):
            continue
        selector = match.group(1).strip()
        if selector in seen:
            continue
        seen.add(selector)
        defects.append(
            Defect(
                severity=DefectSeverity.MAJOR,
                type="selector-not-iterated",
                description=(
                    f"querySelectorAll({selector}) results are never "
                    "iterated, so no element is changed"
                ),
                suggested_fix=GENERIC_FIXES["iterat"],
            )
        )
    return defects


def precheck(
    before: SurfaceSnapshot,
    after: SurfaceSnapshot,
    request_text: str,
    multiple: float,
    behavior: str = "",
) -> list[Defect]:
    """Cheap structural comparison run before any qualitative call."""
    defects: list[Defect] = []
    for kind, after_count in sorted(after.entity_counts.items()):
        before_count = before.entity_counts.get(kind, 0)
        if before_count <= 0 or after_count <= before_count * multiple:
            continue
        if _expects_growth(request_text, kind):
            continue
        defects.append(
            Defect(
                severity=DefectSeverity.CRITICAL,
                type="element-duplicated",
                description=(
                    f"{kind} count grew from {before_count} to "
                    f"{after_count} although the request did not ask "
                    f"for more {kind} elements"
                ),
                suggested_fix=GENERIC_FIXES["duplicat"],
            )
        )
    if not defects and before.looks_identical(after):
        defects.append(
            Defect(
                severity=DefectSeverity.CRITICAL,
                type="change-not-visible",
                description="No visible change was applied to the page",
                suggested_fix=GENERIC_FIXES["missing"],
            )
        )
    defects.extend(uniterated_node_lists(behavior))
    return defects


def _precheck_class(defects: Sequence[Defect]) -> AssessmentClass:
    if defects[0].type == "change-not-visible":
        return AssessmentClass.GOAL_NOT_MET
    if any(d.severity is DefectSeverity.CRITICAL for d in defects):
        return AssessmentClass.CRITICAL_DEFECT
    return AssessmentClass.MAJOR_DEFECT


@dataclass
class AssessmentReport:
    """Result of the visual loop; ``artifact`` is always committed."""

    outcome: AssessmentOutcome
    artifact: Artifact
    iterations: int
    generation_attempts: int = 0
    records: list[IterationRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    oracle_calls: int = 0


class AssessmentLoop:
    """Visual assessment of committed candidates with corrective rounds."""

    def __init__(
        self,
        oracle: AssessmentOracle,
        surface: ObservableSurface,
        generation: GenerationLoop,
        rollback: RollbackManager,
        settings: Settings | None = None,
        dispatcher: TraceDispatcher | None = None,
    ) -> None:
        self._oracle = oracle
        self._surface = surface
        self._generation = generation
        self._rollback = rollback
        self._settings = settings or Settings()
        self._dispatcher = dispatcher or TraceDispatcher()

    async def _call(self, step: str, awaitable: Awaitable[T]) -> T:
        """Await a collaborator call; any failure becomes AssessmentError."""
        try:
            return await asyncio.wait_for(
                awaitable, timeout=self._settings.oracle_timeout_seconds
            )
        except AssessmentError:
            raise
        except Exception as exc:
            logger.warning(
                "event=assessment_step_failed step=%s error_class=%s",
                step,
                classify_error(exc).value,
            )
            detail = str(exc) or type(exc).__name__
            raise AssessmentError(f"{step} failed: {detail}") from exc

    async def _observe(
        self, candidate: Artifact, target: str | None
    ) -> tuple[SurfaceSnapshot, SurfaceSnapshot]:
        await self._call("reset", self._surface.reset())
        before = await self._call("capture", self._surface.capture(target))
        await self._call("apply", self._surface.apply(candidate))
        after = await self._call("capture", self._surface.capture(target))
        return before, after

    async def run(
        self,
        session: Session,
        request: ChangeRequest,
        candidate: Artifact,
        trace_id: str = "",
    ) -> AssessmentReport:
        settings = self._settings
        report = AssessmentReport(
            outcome=AssessmentOutcome.STOPPED_MAX_ITERATIONS,
            artifact=candidate,
            iterations=0,
        )
        previous: list[Defect] = []
        consecutive_repeats = 0

        for iteration in range(1, settings.max_assessment_iterations + 1):
            report.iterations = iteration
            before, after = await self._observe(
                report.artifact, request.attached_target_descriptor
            )

            defects = precheck(
                before,
                after,
                request.text,
                settings.entity_growth_multiple,
                report.artifact.behavior_instructions,
            )
            if defects:
                verdict = AssessmentVerdict(
                    classification=_precheck_class(defects),
                    defects=defects,
                    should_continue=True,
                    reasoning="structural pre-check",
                )
            else:
                calibration: dict[str, Any] = {
                    "examples": CALIBRATION_EXAMPLES,
                    "expected_structure": dict(before.entity_counts),
                }
                verdict = await self._call(
                    "assess",
                    self._oracle.assess(
                        request.text, before, after, calibration
                    ),
                )
                report.oracle_calls += 1
                defects = list(verdict.defects)

            passed = verdict.classification is AssessmentClass.PASS
            if not passed and not defects:
                defects = [
                    Defect(
                        severity=DefectSeverity.MAJOR,
                        type=str(verdict.classification).lower(),
                        description=(
                            verdict.reasoning
                            or f"assessment returned {verdict.classification}"
                        ),
                    )
                ]

            repeated = not passed and is_repeat(
                previous,
                defects,
                settings.defect_keyword_overlap,
                settings.repeat_match_fraction,
            )
            consecutive_repeats = consecutive_repeats + 1 if repeated else 0
            report.records.append(
                IterationRecord(
                    attempt_number=iteration,
                    candidate_artifact=report.artifact,
                    defects=defects,
                )
            )
            await emit_assessment_iteration(
                self._dispatcher,
                trace_id,
                iteration,
                str(verdict.classification),
                len(defects),
                repeated,
            )
            logger.info(
                "event=assessment_iteration iteration=%d classification=%s "
                "defects=%d repeated=%s",
                iteration,
                verdict.classification,
                len(defects),
                repeated,
            )

            if passed:
                report.outcome = AssessmentOutcome.PASS
                return report
            if consecutive_repeats >= settings.repeat_limit:
                return self._stop(
                    report,
                    AssessmentOutcome.STOPPED_REPEATED_DEFECT,
                    "the same visual defects kept recurring",
                )
            if not verdict.should_continue:
                return self._stop(
                    report,
                    AssessmentOutcome.STOPPED_CRITICAL_UNRESOLVED,
                    "the assessment gave up on the remaining defects",
                )
            if iteration == settings.max_assessment_iterations:
                break

            corrected = await self._correct(
                session, request, report, defects, trace_id
            )
            if corrected is None:
                return self._stop(
                    report,
                    AssessmentOutcome.STOPPED_CRITICAL_UNRESOLVED,
                    "corrective generation could not fix the defects",
                )
            report.artifact = corrected
            previous = defects

        return self._stop(
            report,
            AssessmentOutcome.STOPPED_MAX_ITERATIONS,
            "visual assessment budget exhausted",
        )

    async def _correct(
        self,
        session: Session,
        request: ChangeRequest,
        report: AssessmentReport,
        defects: list[Defect],
        trace_id: str,
    ) -> Artifact | None:
        """Regenerate from the defect list; commit and return the fix."""
        current = report.artifact
        plan = GenerationPlan(
            strategy=Strategy.PRESERVE_IDENTIFIERS,
            base_artifact=current,
            reference_artifact=current,
            preserved_identifiers=artifact_identifiers(current),
        )
        corrective = build_corrective_request(request, defects)
        try:
            outcome = await self._generation.run(
                session, plan, corrective, trace_id
            )
        except GenerationExhaustedError as exc:
            report.generation_attempts += exc.attempts
            logger.warning(
                "event=corrective_generation_exhausted attempts=%d",
                exc.attempts,
            )
            return None

        report.generation_attempts += outcome.attempts
        return self._rollback.commit(
            session,
            outcome.candidate,
            artifact_identifiers(outcome.candidate),
        )

    def _stop(
        self,
        report: AssessmentReport,
        outcome: AssessmentOutcome,
        reason: str,
    ) -> AssessmentReport:
        report.outcome = outcome
        report.warnings.append(
            f"Visual assessment stopped ({outcome}): {reason}; "
            "returning the last structurally valid version"
        )
        logger.warning(
            "event=assessment_stopped outcome=%s iterations=%d",
            outcome,
            report.iterations,
        )
        return report
