"""Selector extraction from behavior instructions and appearance rules."""

from __future__ import annotations

import re
from dataclasses import dataclass

from varsmith.refinement.schemas import Artifact

# querySelector('x'), el.closest("x"), waitForElement(`x`), ...
_SELECTOR_CALL = re.compile(
    r"\b(querySelectorAll|querySelector|closest|matches|waitForElement)"
    r"\s*\(\s*(['\"`])((?:\\.|(?!\2).)*)\2",
    re.DOTALL,
)
_ID_CALL = re.compile(
    r"\bgetElementById\s*\(\s*(['\"`])((?:\\.|(?!\1).)*)\1",
    re.DOTALL,
)

_CSS_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_CSS_PRELUDE = re.compile(r"([^{}]+)\{")
_KEYFRAME_STEP = re.compile(r"^(from|to|\d+(\.\d+)?%)$")


@dataclass(frozen=True)
class SelectorReference:
    """One selector mention in behavior instructions."""

    identifier: str
    call: str
    offset: int


def find_selector_references(behavior: str) -> list[SelectorReference]:
    """Every selector referenced by DOM lookups, in source order."""
    refs: list[SelectorReference] = []
    for match in _SELECTOR_CALL.finditer(behavior):
        selector = match.group(3).strip()
        if selector:
            refs.append(
                SelectorReference(selector, match.group(1), match.start())
            )
    for match in _ID_CALL.finditer(behavior):
        element_id = match.group(2).strip()
        if element_id:
            refs.append(
                SelectorReference(
                    f"#{element_id}", "getElementById", match.start()
                )
            )
    refs.sort(key=lambda r: r.offset)
    return refs


def behavior_identifiers(behavior: str) -> list[str]:
    """Distinct selectors referenced by behavior instructions, in order."""
    seen: dict[str, None] = {}
    for ref in find_selector_references(behavior):
        seen.setdefault(ref.identifier, None)
    return list(seen)


def appearance_identifiers(rules: str) -> list[str]:
    """Distinct selectors of the style rules, skipping at-rule preludes."""
    seen: dict[str, None] = {}
    for match in _CSS_PRELUDE.finditer(_CSS_COMMENT.sub("", rules)):
        prelude = match.group(1).rsplit(";", 1)[-1].strip()
        if not prelude or prelude.startswith("@"):
            continue
        for part in prelude.split(","):
            selector = " ".join(part.split())
            if selector and not _KEYFRAME_STEP.match(selector):
                seen.setdefault(selector, None)
    return list(seen)


def artifact_identifiers(artifact: Artifact) -> list[str]:
    """Distinct selectors used anywhere in the artifact."""
    seen: dict[str, None] = {}
    for ident in behavior_identifiers(artifact.behavior_instructions):
        seen.setdefault(ident, None)
    for ident in appearance_identifiers(artifact.appearance_rules):
        seen.setdefault(ident, None)
    return list(seen)


_CREATE_ELEMENT = re.compile(
    r"(?:const|let|var)\s+(\w+)\s*=\s*document\.createElement\b"
)
_CLASS_ASSIGN = re.compile(r"(\w+)\.className\s*=\s*['\"`]([^'\"`]+)['\"`]")
_CLASS_ADD = re.compile(r"(\w+)\.classList\.add\s*\(([^)]*)\)")
_ID_ASSIGN = re.compile(r"(\w+)\.id\s*=\s*['\"`]([^'\"`]+)['\"`]")
_HTML_ATTR = re.compile(r"(?<![.\w])(class|id)\s*=\s*\\?['\"]([^'\"\\]+)\\?['\"]")
_QUOTED = re.compile(r"['\"`]([^'\"`]+)['\"`]")
_SIMPLE_TOKEN = re.compile(r"[.#][\w-]+")


def created_identifiers(behavior: str) -> set[str]:
    """Class and id selectors for elements the code creates itself.

    Such selectors can not exist in an index of the original surface,
    so they are exempt from existence checks.
    """
    created_vars = set(_CREATE_ELEMENT.findall(behavior))
    tokens: set[str] = set()

    for var, classes in _CLASS_ASSIGN.findall(behavior):
        if var in created_vars:
            tokens.update(f".{c}" for c in classes.split())
    for var, args in _CLASS_ADD.findall(behavior):
        if var in created_vars:
            tokens.update(f".{c}" for c in _QUOTED.findall(args))
    for var, element_id in _ID_ASSIGN.findall(behavior):
        if var in created_vars:
            tokens.add(f"#{element_id.strip()}")
    # markup injected through innerHTML / insertAdjacentHTML
    for attr, value in _HTML_ATTR.findall(behavior):
        prefix = "." if attr == "class" else "#"
        tokens.update(f"{prefix}{v}" for v in value.split())
    return tokens


def is_created_identifier(identifier: str, created: set[str]) -> bool:
    """True when the selector targets a class or id the code creates."""
    return any(tok in created for tok in _SIMPLE_TOKEN.findall(identifier))
