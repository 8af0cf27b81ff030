"""CLI entry point: ``varsmith refine``, ``varsmith quality`` and ``varsmith serve``."""

from __future__ import annotations

# Phase 1: singleton logging, before any transitive litellm imports
from varsmith.logging_config import setup_logging

setup_logging()

import argparse  # noqa: E402
import asyncio  # noqa: E402
import json  # noqa: E402
import sys  # noqa: E402
from pathlib import Path  # noqa: E402
from typing import Any, NoReturn  # noqa: E402

from varsmith import __version__  # noqa: E402
from varsmith.config import Settings  # noqa: E402
from varsmith.logging_config import (  # noqa: E402
    cleanup_third_party_handlers,
)
from varsmith.refinement.index import StaticIdentifierIndex  # noqa: E402
from varsmith.refinement.schemas import (  # noqa: E402
    Artifact,
    IndexEntry,
    RefinementResult,
)

# Phase 2: Clear litellm's duplicate handlers after all imports
cleanup_third_party_handlers()


def main() -> None:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args()

    if args.version:
        print(f"varsmith {__version__}")
        return

    if args.command == "refine":
        _run_refine(args)
    elif args.command == "quality":
        _run_quality(args)
    elif args.command == "serve":
        _run_serve(args)
    else:
        parser.print_help()


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="varsmith",
        description=(
            "Iterative refinement and validation engine "
            "for page variations."
        ),
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )

    sub = parser.add_subparsers(dest="command")

    refine = sub.add_parser(
        "refine",
        help="Apply one change request to an artifact",
    )
    refine.add_argument(
        "artifact",
        type=str,
        help="JSON file with appearance_rules and behavior_instructions",
    )
    refine.add_argument(
        "request",
        type=str,
        help="Natural-language change request",
    )
    refine.add_argument(
        "--index",
        "-i",
        default=None,
        help="JSON file listing page identifiers (default: none)",
    )
    refine.add_argument(
        "--descriptor",
        "-d",
        default=None,
        help="Descriptor of the element the request is about",
    )
    refine.add_argument(
        "--output",
        "-o",
        default=None,
        help="Write the accepted artifact to this JSON file",
    )
    refine.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Print notes and warnings",
    )

    quality = sub.add_parser(
        "quality",
        help="Print quality metrics for an artifact",
    )
    quality.add_argument(
        "artifact",
        type=str,
        help="JSON file with appearance_rules and behavior_instructions",
    )

    serve = sub.add_parser(
        "serve",
        help="Start the HTTP API",
    )
    serve.add_argument(
        "--host",
        default=None,
        help="Bind address (default: from settings)",
    )
    serve.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port (default: from settings)",
    )

    return parser


def _fail(message: str) -> NoReturn:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def _read_json(path: Path) -> Any:
    if not path.exists():
        _fail(f"{path} does not exist")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        _fail(f"{path} is not valid JSON: {exc}")


def _load_artifact(path: Path) -> Artifact:
    """Read an artifact file; accepts snake_case or css/js keys."""
    data = _read_json(path)
    if not isinstance(data, dict):
        _fail(f"{path} must contain a JSON object")
    return Artifact(
        appearance_rules=str(
            data.get("appearance_rules", data.get("css", "")) or ""
        ),
        behavior_instructions=str(
            data.get("behavior_instructions", data.get("js", "")) or ""
        ),
        version=int(data.get("version", 0) or 0),
    )


def _load_index(path: Path) -> StaticIdentifierIndex:
    """Read an index file: a list of identifiers or entry objects."""
    data = _read_json(path)
    if isinstance(data, dict):
        data = data.get("entries", [])
    if not isinstance(data, list):
        _fail(f"{path} must contain a JSON list of identifiers")
    entries = [
        IndexEntry(identifier=item)
        if isinstance(item, str)
        else IndexEntry.model_validate(item)
        for item in data
    ]
    return StaticIdentifierIndex(entries)


def _write_result(result: RefinementResult, output: Path) -> None:
    """Write the accepted artifact as JSON."""
    if result.artifact is None:
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(
        json.dumps(
            {
                "appearance_rules": result.artifact.appearance_rules,
                "behavior_instructions": (
                    result.artifact.behavior_instructions
                ),
                "version": result.artifact.version,
            },
            indent=2,
        ),
        encoding="utf-8",
    )


def _print_result(result: RefinementResult, verbose: bool) -> None:
    print(f"Status: {result.status}")
    if result.intent:
        print(f"Intent: {result.intent} (strategy {result.strategy})")
    if result.question:
        print(f"\n{result.question}")
        for i, option in enumerate(result.options, 1):
            print(f"  {i}. {option}")
    if result.errors:
        print("\nErrors:")
        for error in result.errors:
            print(f"  - {error}")
    if result.artifact is not None:
        print(
            f"\nVersion {result.artifact.version} "
            f"(confidence {result.confidence})"
        )
        print("\n/* appearance rules */")
        print(result.artifact.appearance_rules or "(empty)")
        print("\n// behavior instructions")
        print(result.artifact.behavior_instructions or "(empty)")
    if result.quality_report is not None:
        report = result.quality_report
        print(
            f"\nQuality: {report.status} "
            f"({report.metrics.overall_score}/100)"
        )
    if verbose:
        for note in result.notes:
            print(f"  note: {note}")
        for warning in result.warnings:
            print(f"  warning: {warning}")


def _run_refine(args: argparse.Namespace) -> None:
    """Execute the refine command against the configured model chain."""
    from varsmith.logger import RefinementLogger
    from varsmith.observability import initialize_tracing
    from varsmith.oracle.litellm_oracle import LiteLLMGenerativeOracle
    from varsmith.refinement.engine import RefinementEngine
    from varsmith.refinement.session import Session

    artifact = _load_artifact(Path(args.artifact))
    index = _load_index(Path(args.index)) if args.index else None

    settings = Settings()
    engine = RefinementEngine(
        LiteLLMGenerativeOracle(settings),
        settings=settings,
        dispatcher=initialize_tracing(settings),
        audit=RefinementLogger(
            log_dir=settings.log_dir, level=settings.log_level
        ),
    )
    # The input file is the current state on top of an empty baseline
    session = Session.create(
        Artifact.empty(), index, settings, current=artifact
    )

    result = asyncio.run(
        engine.submit_change_request(session, args.request, args.descriptor)
    )
    _print_result(result, args.verbose)
    if args.output:
        _write_result(result, Path(args.output))
        if result.artifact is not None:
            print(f"\nOutput: {args.output}")


def _run_quality(args: argparse.Namespace) -> None:
    """Print the quality report for one artifact."""
    from varsmith.refinement.quality import QualityMonitor

    artifact = _load_artifact(Path(args.artifact))
    report = QualityMonitor().record(artifact)
    print(json.dumps(report.model_dump(), indent=2))


def _run_serve(args: argparse.Namespace) -> None:
    """Start the HTTP API with uvicorn."""
    import uvicorn

    settings = Settings()
    uvicorn.run(
        "varsmith.main:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
