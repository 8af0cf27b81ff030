"""Identifier continuity: which selectors a change request may touch."""

from __future__ import annotations

import logging

from varsmith.constants import IntentType, Strategy
from varsmith.oracle.protocols import IdentifierIndex
from varsmith.refinement.identifiers import artifact_identifiers
from varsmith.refinement.schemas import (
    Artifact,
    ChangeRequest,
    Clarification,
    GenerationPlan,
    IntentClassification,
)
from varsmith.resilience.errors import ClarificationInvariantError

logger = logging.getLogger(__name__)

_STRATEGY_BY_INTENT: dict[IntentType, Strategy] = {
    IntentType.REFINEMENT: Strategy.PRESERVE_IDENTIFIERS,
    IntentType.NEW_FEATURE: Strategy.SEARCH_INDEX,
    IntentType.COURSE_REVERSAL: Strategy.FULL_REWRITE,
    IntentType.AMBIGUOUS: Strategy.ASK_USER,
}


def resolve(classification: IntentClassification) -> Strategy:
    return _STRATEGY_BY_INTENT[classification.intent]


def build_clarification(
    classification: IntentClassification,
) -> Clarification:
    """Question plus enumerated options for an AMBIGUOUS request."""
    options = classification.candidate_interpretations
    if len(options) < 2:
        raise ClarificationInvariantError(
            "cannot ask for clarification with fewer than two options"
        )
    return Clarification(
        question=(
            "This request can be read more than one way. "
            "Which did you mean?"
        ),
        options=list(options),
    )


def plan_generation(
    strategy: Strategy,
    request: ChangeRequest,
    current: Artifact,
    baseline: Artifact,
    index: IdentifierIndex | None,
) -> GenerationPlan:
    """Turn a strategy into the inputs of the generation loop."""
    if strategy is Strategy.ASK_USER:
        raise ValueError("ASK_USER halts before generation")

    if strategy is Strategy.FULL_REWRITE:
        return GenerationPlan(
            strategy=strategy,
            base_artifact=baseline,
            reference_artifact=baseline,
        )

    preserved = artifact_identifiers(current)
    if strategy is Strategy.PRESERVE_IDENTIFIERS:
        return GenerationPlan(
            strategy=strategy,
            base_artifact=current,
            reference_artifact=current,
            preserved_identifiers=preserved,
        )

    descriptor = request.attached_target_descriptor or request.text
    fresh = index.query(descriptor) if index is not None else []
    logger.info(
        "event=index_search descriptor_len=%d candidates=%d",
        len(descriptor),
        len(fresh),
    )
    return GenerationPlan(
        strategy=strategy,
        base_artifact=current,
        reference_artifact=current,
        preserved_identifiers=preserved,
        fresh_candidates=fresh,
    )
