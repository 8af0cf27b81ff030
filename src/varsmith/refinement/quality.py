"""Quality metrics and degradation tracking for accepted artifacts.

Advisory only: nothing here blocks acceptance. ``compute_metrics`` is a
pure function; ``QualityMonitor`` keeps a bounded history of accepted
versions and flags metrics that grew sharply since the previous one.
"""

from __future__ import annotations

import logging
import re
from collections import Counter, deque

from varsmith.constants import (
    DEGRADATION_RATIOS,
    QUALITY_COMPLEXITY_LIMIT,
    QUALITY_DUPLICATION_LIMIT,
    QUALITY_IDENTIFIER_LIMIT,
    QUALITY_NESTING_LIMIT,
    QUALITY_SIZE_LIMIT,
    SHINGLE_WIDTH,
    Severity,
)
from varsmith.refinement.identifiers import artifact_identifiers
from varsmith.refinement.schemas import (
    Artifact,
    QualityIssue,
    QualityMetrics,
    QualityReport,
)

logger = logging.getLogger(__name__)

_BRANCH = re.compile(
    r"\b(?:if|else|for|while|case)\b|&&|\|\||\?(?![.?])"
)

_DEGRADATION_LABELS: dict[str, str] = {
    "size": "Code size",
    "duplication_ratio": "Duplication",
    "complexity_score": "Complexity",
    "nesting_depth": "Nesting depth",
}

_STATUS_BANDS: tuple[tuple[int, str], ...] = (
    (80, "Excellent"),
    (60, "Good"),
    (40, "Fair"),
)


def strip_strings_and_comments(source: str) -> str:
    """Blank out string literals and comments, keeping code structure."""
    out: list[str] = []
    i = 0
    n = len(source)
    while i < n:
        ch = source[i]
        nxt = source[i + 1] if i + 1 < n else ""
        if ch == "/" and nxt == "/":
            end = source.find("\n", i)
            i = n if end == -1 else end
            continue
        if ch == "/" and nxt == "*":
            end = source.find("*/", i + 2)
            i = n if end == -1 else end + 2
            out.append(" ")
            continue
        if ch in "'\"`":
            i += 1
            while i < n and source[i] != ch:
                i += 2 if source[i] == "\\" else 1
            i += 1
            out.append('""')
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def duplication_ratio(text: str, width: int = SHINGLE_WIDTH) -> float:
    """Share of word shingles that repeat an earlier shingle."""
    words = text.split()
    if len(words) < width:
        return 0.0
    shingles = Counter(
        tuple(words[i : i + width]) for i in range(len(words) - width + 1)
    )
    total = sum(shingles.values())
    return (total - len(shingles)) / total


def complexity_score(behavior: str) -> int:
    return 1 + len(_BRANCH.findall(strip_strings_and_comments(behavior)))


def nesting_depth(source: str) -> int:
    depth = deepest = 0
    for ch in strip_strings_and_comments(source):
        if ch == "{":
            depth += 1
            deepest = max(deepest, depth)
        elif ch == "}":
            depth = max(0, depth - 1)
    return deepest


def _capped(value: float, cap: float) -> float:
    return min(cap, max(0.0, value))


def _penalties(m: dict[str, float]) -> dict[str, float]:
    """Per-metric penalty, each individually capped."""
    return {
        "size": _capped((m["size"] - QUALITY_SIZE_LIMIT) / 200, 20),
        "duplication_ratio": _capped(
            (m["duplication_ratio"] - QUALITY_DUPLICATION_LIMIT) * 50, 20
        ),
        "complexity_score": _capped(
            (m["complexity_score"] - QUALITY_COMPLEXITY_LIMIT) / 5, 20
        ),
        "nesting_depth": _capped(
            (m["nesting_depth"] - QUALITY_NESTING_LIMIT) * 10, 20
        ),
        "identifier_count": _capped(
            m["identifier_count"] - QUALITY_IDENTIFIER_LIMIT, 10
        ),
    }


def compute_metrics(artifact: Artifact) -> QualityMetrics:
    """Measure one artifact. Pure."""
    css = artifact.appearance_rules
    js = artifact.behavior_instructions
    raw: dict[str, float] = {
        "size": len(css) + len(js),
        "duplication_ratio": duplication_ratio(f"{css}\n{js}"),
        "complexity_score": complexity_score(js),
        "nesting_depth": max(nesting_depth(css), nesting_depth(js)),
        "identifier_count": len(artifact_identifiers(artifact)),
    }
    penalty = sum(_penalties(raw).values())
    return QualityMetrics(
        size=int(raw["size"]),
        duplication_ratio=round(raw["duplication_ratio"], 4),
        complexity_score=int(raw["complexity_score"]),
        nesting_depth=int(raw["nesting_depth"]),
        identifier_count=int(raw["identifier_count"]),
        overall_score=max(0, round(100 - penalty)),
    )


def status_label(score: int) -> str:
    for floor, label in _STATUS_BANDS:
        if score >= floor:
            return label
    return "Poor"


def detect_issues(metrics: QualityMetrics) -> list[QualityIssue]:
    """Threshold breaches of a single version."""
    issues: list[QualityIssue] = []
    if metrics.size > QUALITY_SIZE_LIMIT:
        issues.append(
            QualityIssue(
                metric="size",
                severity=Severity.WARNING,
                message=(
                    f"Code is long ({metrics.size} characters); "
                    "consider simplifying"
                ),
            )
        )
    if metrics.duplication_ratio > QUALITY_DUPLICATION_LIMIT:
        issues.append(
            QualityIssue(
                metric="duplication_ratio",
                severity=Severity.MAJOR,
                message=(
                    f"{metrics.duplication_ratio:.0%} of the code repeats "
                    "itself; likely accumulated duplicate edits"
                ),
            )
        )
    if metrics.complexity_score > QUALITY_COMPLEXITY_LIMIT:
        issues.append(
            QualityIssue(
                metric="complexity_score",
                severity=Severity.WARNING,
                message=f"High complexity ({metrics.complexity_score})",
            )
        )
    if metrics.nesting_depth > QUALITY_NESTING_LIMIT:
        issues.append(
            QualityIssue(
                metric="nesting_depth",
                severity=Severity.MINOR,
                message=f"Deep nesting ({metrics.nesting_depth} levels)",
            )
        )
    if metrics.identifier_count > QUALITY_IDENTIFIER_LIMIT:
        issues.append(
            QualityIssue(
                metric="identifier_count",
                severity=Severity.MINOR,
                message=(
                    f"Touches {metrics.identifier_count} selectors; "
                    "the variation may be doing too much"
                ),
            )
        )
    return issues


def detect_degradation(
    previous: QualityMetrics, current: QualityMetrics
) -> list[str]:
    """Metrics that grew beyond their ratio since the previous version."""
    flags: list[str] = []
    for metric, ratio in DEGRADATION_RATIOS.items():
        before = float(getattr(previous, metric))
        after = float(getattr(current, metric))
        if before > 0 and after > before * ratio:
            growth = (after - before) / before
            flags.append(
                f"{_DEGRADATION_LABELS[metric]} increased significantly "
                f"(+{growth:.0%})"
            )
    return flags


class QualityMonitor:
    """Bounded history of accepted-version metrics."""

    def __init__(self, history_size: int = 10) -> None:
        self._history: deque[QualityMetrics] = deque(maxlen=history_size)

    @property
    def history(self) -> list[QualityMetrics]:
        return list(self._history)

    @property
    def latest(self) -> QualityMetrics | None:
        return self._history[-1] if self._history else None

    def record(self, artifact: Artifact) -> QualityReport:
        """Measure an accepted artifact and compare with the previous one."""
        metrics = compute_metrics(artifact)
        previous = self.latest
        degradations = (
            detect_degradation(previous, metrics) if previous else []
        )
        self._history.append(metrics)

        issues = detect_issues(metrics)
        issues.extend(
            QualityIssue(
                metric="degradation", severity=Severity.WARNING, message=flag
            )
            for flag in degradations
        )
        if degradations:
            logger.info(
                "event=quality_degraded version=%d flags=%d score=%d",
                artifact.version,
                len(degradations),
                metrics.overall_score,
            )
        return QualityReport(
            metrics=metrics,
            status=status_label(metrics.overall_score),
            issues=issues,
            degradations=degradations,
        )

    def reset(self) -> None:
        self._history.clear()
