"""Oracle-backed intent classifier for change requests.

The raw oracle text is never trusted: only the first balanced ``{...}``
region is parsed. One stricter retry follows a parse failure; after
that, and on any oracle error, the request is classified AMBIGUOUS so
the caller is asked instead of guessed at.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Sequence
from typing import Any

from varsmith.config import Settings
from varsmith.constants import Confidence, IntentType
from varsmith.oracle.extraction import extract_json_object
from varsmith.oracle.protocols import GenerativeOracle
from varsmith.prompts import (
    CLASSIFIER_PROMPT,
    STRICT_JSON_SUFFIX,
    build_classifier_prompt,
)
from varsmith.refinement.identifiers import artifact_identifiers
from varsmith.refinement.schemas import (
    Artifact,
    ChangeRequest,
    IntentClassification,
)
from varsmith.resilience.errors import classify_error

logger = logging.getLogger(__name__)

GENERIC_INTERPRETATIONS: tuple[str, str] = (
    "Modify the elements already changed by the current variation",
    "Work with a different element on the page",
)

# Spellings oracles use for the closed intent set
_INTENT_ALIASES: dict[str, IntentType] = {
    "INCREMENTAL": IntentType.REFINEMENT,
    "REFINE": IntentType.REFINEMENT,
    "NEW": IntentType.NEW_FEATURE,
    "FEATURE": IntentType.NEW_FEATURE,
    "FULL_REWRITE": IntentType.COURSE_REVERSAL,
    "REWRITE": IntentType.COURSE_REVERSAL,
    "REVERSAL": IntentType.COURSE_REVERSAL,
    "UNCLEAR": IntentType.AMBIGUOUS,
}

UNPARSEABLE_RATIONALE = "unparseable classifier response"
UNAVAILABLE_RATIONALE = "classifier unavailable"


def map_intent(raw: object) -> IntentType | None:
    """Map an oracle string onto IntentType; None when unrecognised."""
    key = str(raw or "").strip().upper().replace("-", "_").replace(" ", "_")
    if key in IntentType.__members__:
        return IntentType[key]
    return _INTENT_ALIASES.get(key)


def _parse_confidence(raw: object) -> int:
    if raw is None:
        return Confidence.CLARIFY_BELOW
    try:
        value = float(str(raw).strip().rstrip("%"))
    except ValueError:
        return Confidence.FLOOR
    if not math.isfinite(value):
        return Confidence.FLOOR
    if 0 < value <= 1 and not isinstance(raw, int):
        value *= 100
    return int(max(Confidence.FLOOR, min(Confidence.CEILING, round(value))))


def _string_list(raw: object) -> list[str]:
    if not isinstance(raw, list):
        return []
    items: list[str] = []
    for item in raw:
        if isinstance(item, dict):
            text = item.get("description") or item.get("text") or ""
        else:
            text = item
        text = str(text).strip()
        if text:
            items.append(text)
    return items


def _with_generic_options(interpretations: list[str]) -> list[str]:
    options = list(interpretations)
    for generic in GENERIC_INTERPRETATIONS:
        if len(options) >= 2:
            break
        if generic not in options:
            options.append(generic)
    return options


def ambiguous(rationale: str, confidence: int = 0) -> IntentClassification:
    return IntentClassification(
        intent=IntentType.AMBIGUOUS,
        confidence=confidence,
        rationale=rationale,
        candidate_interpretations=list(GENERIC_INTERPRETATIONS),
    )


class IntentClassifier:
    """Classifies a change request against the current artifact."""

    def __init__(
        self, oracle: GenerativeOracle, settings: Settings | None = None
    ) -> None:
        self._oracle = oracle
        self._settings = settings or Settings()

    async def classify(
        self,
        request: ChangeRequest,
        artifact: Artifact,
        history: Sequence[str] = (),
    ) -> IntentClassification:
        prompt = build_classifier_prompt(
            request,
            artifact_identifiers(artifact),
            history,
            self._settings.history_window,
        )
        context: dict[str, Any] = {
            "system": CLASSIFIER_PROMPT,
            "task": "classify_intent",
        }

        for strict in (False, True):
            text = prompt + STRICT_JSON_SUFFIX if strict else prompt
            try:
                raw = await asyncio.wait_for(
                    self._oracle.generate(text, context),
                    timeout=self._settings.oracle_timeout_seconds,
                )
            except Exception as exc:
                logger.warning(
                    "event=classifier_oracle_failed error_class=%s "
                    "strict=%s error=%s",
                    classify_error(exc).value,
                    strict,
                    exc,
                )
                return ambiguous(UNAVAILABLE_RATIONALE)

            extraction = extract_json_object(raw)
            if extraction.ok and extraction.value is not None:
                return self._from_payload(extraction.value)
            logger.warning(
                "event=classifier_parse_failed strict=%s reason=%s "
                "response_len=%d",
                strict,
                extraction.error,
                len(raw or ""),
            )

        return ambiguous(UNPARSEABLE_RATIONALE)

    def _from_payload(self, data: dict[str, Any]) -> IntentClassification:
        raw_intent = data.get("intent", data.get("type"))
        intent = map_intent(raw_intent)
        confidence = _parse_confidence(data.get("confidence"))
        rationale = str(data.get("rationale") or data.get("reasoning") or "")
        interpretations = _string_list(
            data.get("candidate_interpretations", data.get("interpretations"))
        )
        identifiers = _string_list(
            data.get("referenced_identifiers", data.get("targetElements"))
        )

        if intent is None:
            logger.warning(
                "event=classifier_unknown_intent value=%r", raw_intent
            )
            intent = IntentType.AMBIGUOUS
            rationale = f"unrecognised intent {raw_intent!r}. {rationale}"
        elif (
            intent is not IntentType.AMBIGUOUS
            and confidence < Confidence.CLARIFY_BELOW
        ):
            logger.info(
                "event=classifier_low_confidence intent=%s confidence=%d",
                intent,
                confidence,
            )
            rationale = (
                f"low confidence ({confidence}) for {intent}. {rationale}"
            )
            intent = IntentType.AMBIGUOUS

        if intent is IntentType.AMBIGUOUS:
            interpretations = _with_generic_options(interpretations)

        return IntentClassification(
            intent=intent,
            confidence=confidence,
            rationale=rationale.strip(),
            candidate_interpretations=interpretations,
            referenced_identifiers=identifiers,
        )
