"""Consolidated oracle instructions for varsmith.

All prompt text lives here. Wording is not a contract: every response
is parsed leniently, so these only have to ask for structured output.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from varsmith.constants import HISTORY_SNIPPET_CHARS, PROMPT_IDENTIFIER_LIMIT
from varsmith.refinement.schemas import (
    ChangeRequest,
    Defect,
    GenerationPlan,
    SurfaceSnapshot,
)

# ── Intent classification ─────────────────────────────────────────

CLASSIFIER_PROMPT = """\
You classify change requests against an existing page variation. The \
variation is CSS (appearance rules) plus JavaScript (behavior \
instructions) that targets elements through selectors.

Pick exactly one intent:
- REFINEMENT: adjust what the current code already targets ("make it \
bigger", "change the color", "use a different wording").
- NEW_FEATURE: add something aimed at elements the current code does not \
touch yet ("also add a banner above the form").
- COURSE_REVERSAL: throw the current approach away ("start over", \
"completely redo this", "forget that and instead...").
- AMBIGUOUS: two or more readings are plausible and choosing wrong would \
change different elements.

Respond with JSON only:
{
  "intent": "REFINEMENT" | "NEW_FEATURE" | "COURSE_REVERSAL" | "AMBIGUOUS",
  "confidence": 0-100,
  "rationale": "one sentence",
  "candidate_interpretations": ["reading 1", "reading 2"],
  "referenced_identifiers": ["selectors the request is about"]
}
candidate_interpretations is required (two or more) when intent is \
AMBIGUOUS.
"""

STRICT_JSON_SUFFIX = """\

Your previous answer could not be parsed. Reply with ONE JSON object and \
nothing else: no prose, no markdown fences, no comments.
"""

# ── Generation ────────────────────────────────────────────────────

GENERATION_PROMPT = """\
You write page variations as a CSS fragment and a JavaScript fragment.

Rules:
- Target elements only through the selectors you are allowed to use.
- Guard every DOM modification so running the code twice changes \
nothing the second time (check and set a data attribute such as \
element.dataset.varApplied).
- Keep existing behavior unless the request asks to remove it.
- Both fragments must parse.

Respond with JSON only:
{"appearance_rules": "<css>", "behavior_instructions": "<javascript>"}
"""

STRATEGY_GUIDANCE: dict[str, str] = {
    "PRESERVE_IDENTIFIERS": (
        "Modify the current code in place. Reuse exactly the selectors "
        "it already uses; do not introduce new ones."
    ),
    "SEARCH_INDEX": (
        "Keep the current code and extend it. New selectors must come "
        "from the candidate list below."
    ),
    "FULL_REWRITE": (
        "Discard the current approach and write the variation from the "
        "original page. Any known selector may be used."
    ),
}

# ── Visual assessment ─────────────────────────────────────────────

ASSESSMENT_PROMPT = """\
You review a page variation by comparing a BEFORE and an AFTER screenshot.

Count the elements of each kind in both images and compare the counts \
with the expected structure. Unexpected extra copies of an element are a \
critical defect.

Respond with JSON only:
{
  "classification": "PASS" | "GOAL_NOT_MET" | "CRITICAL_DEFECT" | "MAJOR_DEFECT",
  "defects": [
    {"severity": "critical" | "major", "type": "short-kebab-type",
     "description": "what is wrong and where",
     "suggested_fix": "concrete code-level fix"}
  ],
  "continue": true | false,
  "reasoning": "one sentence"
}
"""

CALIBRATION_EXAMPLES: list[dict[str, str]] = [
    {
        "situation": (
            "BEFORE has 2 'Buy Now' buttons, AFTER has 6 identical "
            "buttons stacked vertically."
        ),
        "verdict": "CRITICAL_DEFECT",
        "defect": (
            "element-duplicated: code ran repeatedly without an "
            "idempotency guard"
        ),
    },
    {
        "situation": (
            "Request asked for a lock icon on both buttons; AFTER shows "
            "both buttons with the icon and no extra elements."
        ),
        "verdict": "PASS",
        "defect": "",
    },
    {
        "situation": (
            "Request asked for a green headline; AFTER looks identical "
            "to BEFORE."
        ),
        "verdict": "GOAL_NOT_MET",
        "defect": "change-not-visible: the selector likely matched nothing",
    },
]

# Keyword -> generic corrective instruction when a defect has no fix
GENERIC_FIXES: dict[str, str] = {
    "duplicat": (
        "Add an idempotency guard: return early when "
        "element.dataset.varApplied is set, and set it after modifying."
    ),
    "contrast": "Increase text/background contrast to at least 4.5:1.",
    "readab": "Increase font size and contrast so the text is legible.",
    "overlap": "Fix positioning so elements no longer overlap.",
    "layout": "Restore the original layout flow; avoid absolute positioning.",
    "missing": "Check the selector matches an existing element.",
    "visible": "Check the selector matches an existing element.",
    "iterat": (
        "Iterate querySelectorAll results with .forEach(), or use "
        "querySelector for a single element."
    ),
}
DEFAULT_FIX = "Revise the code so the requested change renders correctly."


def _format_history(history: Sequence[str], window: int) -> str:
    recent = list(history)[-window:] if window > 0 else []
    if not recent:
        return "(none)"
    return "\n".join(
        f"- {turn[:HISTORY_SNIPPET_CHARS]}" for turn in recent
    )


def build_classifier_prompt(
    request: ChangeRequest,
    current_identifiers: Sequence[str],
    history: Sequence[str],
    window: int,
) -> str:
    """Assemble the user prompt for intent classification."""
    selectors = ", ".join(current_identifiers[:PROMPT_IDENTIFIER_LIMIT])
    prompt = (
        f"CURRENT CODE USES THESE SELECTORS: {selectors or '(none)'}\n\n"
        f"RECENT CONVERSATION:\n{_format_history(history, window)}\n\n"
        f'NEW REQUEST: "{request.text}"\n'
    )
    if request.attached_target_descriptor:
        prompt += (
            f"ELEMENT ATTACHED: {request.attached_target_descriptor}\n"
        )
    return prompt


def build_generation_prompt(
    plan: GenerationPlan,
    request: ChangeRequest,
    feedback: Sequence[str],
) -> str:
    """Assemble the generation request for one attempt."""
    base = plan.base_artifact
    parts = [
        f"STRATEGY: {plan.strategy}",
        STRATEGY_GUIDANCE.get(plan.strategy, ""),
        "",
        "CURRENT CSS:",
        base.appearance_rules or "(empty)",
        "",
        "CURRENT JAVASCRIPT:",
        base.behavior_instructions or "(empty)",
        "",
    ]
    if plan.preserved_identifiers:
        parts.append(
            "SELECTORS TO KEEP: "
            + ", ".join(plan.preserved_identifiers[:PROMPT_IDENTIFIER_LIMIT])
        )
    if plan.fresh_candidates:
        parts.append("CANDIDATE SELECTORS:")
        parts.extend(
            f"- {c.identifier} (confidence {c.confidence:.2f})"
            + (f" {c.description}" if c.description else "")
            for c in plan.fresh_candidates[:PROMPT_IDENTIFIER_LIMIT]
        )
    parts.append(f'\nREQUEST: "{request.text}"')
    if request.attached_target_descriptor:
        parts.append(
            f"ELEMENT ATTACHED: {request.attached_target_descriptor}"
        )
    if feedback:
        parts.append(
            "\nPREVIOUS ATTEMPTS FAILED VALIDATION. Fix every issue:"
        )
        parts.extend(f"- {line}" for line in feedback)
    return "\n".join(parts)


def generic_fix_for(defect: Defect) -> str:
    """Pick a keyword-matched corrective instruction for a defect."""
    haystack = f"{defect.type} {defect.description}".lower()
    for keyword, fix in GENERIC_FIXES.items():
        if keyword in haystack:
            return fix
    return DEFAULT_FIX


def build_corrective_request(
    original: ChangeRequest, defects: Sequence[Defect]
) -> ChangeRequest:
    """Turn assessment defects into a follow-up change request."""
    lines = [
        f'The previous change for "{original.intent_text}" has visual '
        "defects. Fix them while keeping the intended change:"
    ]
    for defect in defects:
        fix = defect.suggested_fix or generic_fix_for(defect)
        lines.append(
            f"- [{defect.severity}] {defect.description} FIX: {fix}"
        )
    return ChangeRequest(
        text="\n".join(lines),
        attached_target_descriptor=original.attached_target_descriptor,
        origin_text=original.intent_text,
    )


def build_assessment_prompt(
    request: str,
    before: SurfaceSnapshot,
    after: SurfaceSnapshot,
    calibration: dict[str, Any],
) -> str:
    """Assemble the text half of the assessment request."""
    kinds = sorted(set(before.entity_counts) | set(after.entity_counts))
    structure = "\n".join(
        f"- {kind}: before={before.entity_counts.get(kind, 0)} "
        f"after={after.entity_counts.get(kind, 0)}"
        for kind in kinds
    )
    examples = calibration.get("examples", [])
    example_text = "\n".join(
        f"- {ex['situation']} -> {ex['verdict']}"
        for ex in examples
    )
    return (
        f'REQUEST: "{request}"\n\n'
        f"EXPECTED STRUCTURE (entity counts):\n{structure or '(unknown)'}\n\n"
        f"CALIBRATION:\n{example_text or '(none)'}"
    )
