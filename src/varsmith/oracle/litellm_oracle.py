"""litellm-backed generative and assessment oracles.

Both walk their model chain in order (primary first, fallbacks after),
skipping models whose circuit breaker is open.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, cast

from circuitbreaker import CircuitBreakerError

from varsmith.config import Settings
from varsmith.constants import AssessmentClass, DefectSeverity
from varsmith.oracle._llm_call import guarded_llm_call
from varsmith.oracle.extraction import extract_json_object
from varsmith.prompts import ASSESSMENT_PROMPT, build_assessment_prompt
from varsmith.refinement.schemas import (
    AssessmentVerdict,
    Defect,
    SurfaceSnapshot,
)
from varsmith.resilience.errors import (
    AssessmentError,
    OracleParseError,
    RefinementError,
)

logger = logging.getLogger(__name__)


class OracleUnavailableError(RefinementError):
    """Every model in the chain failed or had its circuit open."""


async def _complete_with_chain(
    chain: list[str],
    messages: list[dict[str, Any]],
    timeout: int,
    component: str,
) -> str:
    for model in chain:
        try:
            result = await guarded_llm_call(model, messages, timeout)
            return result.content
        except CircuitBreakerError:
            logger.warning(
                "event=circuit_open model=%s component=%s",
                model,
                component,
            )
            continue
        except Exception:
            logger.warning(
                "event=oracle_call_failed model=%s component=%s",
                model,
                component,
                exc_info=True,
            )
            continue

    raise OracleUnavailableError(
        f"all {len(chain)} model(s) failed for {component}"
    )


class LiteLLMGenerativeOracle:
    """Text-in, text-out oracle over ``settings.litellm_model_chain``."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()

    async def generate(self, prompt: str, context: dict[str, Any]) -> str:
        messages: list[dict[str, Any]] = []
        system = context.get("system")
        if system:
            messages.append({"role": "system", "content": str(system)})
        messages.append({"role": "user", "content": prompt})
        return await _complete_with_chain(
            self._settings.litellm_model_chain,
            messages,
            self._settings.llm_timeout_seconds,
            str(context.get("task", "generate")),
        )


def _image_part(label: str, snapshot: SurfaceSnapshot) -> list[dict[str, Any]]:
    if snapshot.image is None:
        return [{"type": "text", "text": f"{label}: (no screenshot)"}]
    encoded = base64.b64encode(snapshot.image).decode("ascii")
    return [
        {"type": "text", "text": f"{label}:"},
        {
            "type": "image_url",
            "image_url": {"url": f"data:image/png;base64,{encoded}"},
        },
    ]


def map_classification(raw: object) -> AssessmentClass:
    key = str(raw or "").strip().upper().replace("-", "_").replace(" ", "_")
    if key in AssessmentClass.__members__:
        return AssessmentClass[key]
    logger.warning("event=assessment_unknown_classification value=%r", raw)
    return AssessmentClass.UNKNOWN


def _parse_defects(raw: object) -> list[Defect]:
    if not isinstance(raw, list):
        return []
    defects: list[Defect] = []
    for raw_item in cast(list[Any], raw):
        if not isinstance(raw_item, dict):
            continue
        item = cast(dict[str, Any], raw_item)
        severity = str(item.get("severity", "")).strip().lower()
        defects.append(
            Defect(
                severity=(
                    DefectSeverity.CRITICAL
                    if severity == DefectSeverity.CRITICAL
                    else DefectSeverity.MAJOR
                ),
                type=str(item.get("type", "visual-defect")),
                description=str(item.get("description", "")),
                suggested_fix=str(
                    item.get("suggested_fix", item.get("suggestedFix", ""))
                    or ""
                ),
            )
        )
    return defects


_TRUE_WORDS = frozenset({"true", "yes", "y", "1", "continue"})
_FALSE_WORDS = frozenset({"false", "no", "n", "0", "stop"})


def parse_flag(raw: object, default: bool) -> bool:
    """Lenient boolean: real bools, numbers and yes/no style strings."""
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        return raw != 0
    if isinstance(raw, str):
        word = raw.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    return default


def parse_verdict(raw: str) -> AssessmentVerdict:
    """Leniently map an assessment response onto a verdict.

    Raises AssessmentError when no structured region can be found.
    """
    try:
        data = extract_json_object(raw).unwrap(raw)
    except OracleParseError as exc:
        raise AssessmentError(
            f"unparseable assessment response: {exc}"
        ) from exc
    classification = map_classification(
        data.get("classification", data.get("status"))
    )
    should_continue = parse_flag(
        data.get("continue", data.get("shouldContinue")),
        default=classification is not AssessmentClass.PASS,
    )
    return AssessmentVerdict(
        classification=classification,
        defects=_parse_defects(data.get("defects")),
        should_continue=should_continue,
        reasoning=str(data.get("reasoning", "") or ""),
    )


class LiteLLMAssessmentOracle:
    """Vision oracle comparing before/after screenshots."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()

    async def assess(
        self,
        request: str,
        before: SurfaceSnapshot,
        after: SurfaceSnapshot,
        calibration: dict[str, Any],
    ) -> AssessmentVerdict:
        content: list[dict[str, Any]] = [
            {
                "type": "text",
                "text": build_assessment_prompt(
                    request, before, after, calibration
                ),
            },
            *_image_part("BEFORE", before),
            *_image_part("AFTER", after),
        ]
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": ASSESSMENT_PROMPT},
            {"role": "user", "content": content},
        ]
        raw = await _complete_with_chain(
            self._settings.litellm_vision_chain,
            messages,
            self._settings.llm_timeout_seconds,
            "assessment",
        )
        return parse_verdict(raw)
