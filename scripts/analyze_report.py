#!/usr/bin/env python
"""Analyze a credit report file from the command line.

Runs the same pipeline as the API (cache, extraction, analysis, fallback) and
prints the result. Exit status is 0 for a genuine analysis, 1 when a
placeholder result was produced, and 2 for configuration or input errors.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import mimetypes
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.core.config import get_settings  # noqa: E402
from app.core.errors import ConfigurationError, InputValidationError  # noqa: E402
from app.core.logging import configure_logging  # noqa: E402
from app.dependencies.clients import get_orchestrator  # noqa: E402
from app.schemas.analysis import AnalysisRequest, CreditAnalysis  # noqa: E402
from app.services.orchestrator import AnalysisOutcome  # noqa: E402

EXIT_OK = 0
EXIT_FALLBACK = 1
EXIT_INPUT_ERROR = 2


def _guess_media_type(path: Path) -> str:
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "application/octet-stream"


def build_request(path: Path, user_id: str, media_type: str | None) -> AnalysisRequest:
    resolved_type = media_type or _guess_media_type(path)
    if resolved_type == "text/plain":
        return AnalysisRequest(
            user_id=user_id,
            media_type=resolved_type,
            text=path.read_text(encoding="utf-8"),
            file_name=path.name,
        )
    return AnalysisRequest(
        user_id=user_id,
        media_type=resolved_type,
        content=path.read_bytes(),
        file_name=path.name,
    )


def _print_list(title: str, items: list[str]) -> None:
    if not items:
        return
    print(f"{title}:")
    for item in items:
        print(f"  - {item}")


def render_summary(outcome: AnalysisOutcome) -> None:
    analysis: CreditAnalysis = outcome.result
    overview = analysis.overview
    if analysis.fallback:
        print(f"PLACEHOLDER RESULT ({analysis.fallback_reason})")
        if outcome.error_message:
            print(f"Reason: {outcome.error_message}")
    score = overview.score if overview.score is not None else "unknown"
    print(f"Credit score: {score}")
    print(overview.summary)
    print()
    _print_list("Positive factors", overview.positive_factors)
    _print_list("Negative factors", overview.negative_factors)
    _print_list(
        "Disputes",
        [
            f"{item.bureau}: {item.account_name} ({item.issue_type})"
            for item in analysis.disputes.items
        ],
    )
    _print_list(
        "Credit hacks",
        [
            f"{hack.title} [impact: {hack.impact}]"
            for hack in analysis.credit_hacks.recommendations
        ],
    )
    _print_list(
        "Side hustles",
        [
            f"{hustle.title} ({hustle.potential_earnings})"
            for hustle in analysis.side_hustles.recommendations
        ],
    )
    if outcome.needs_review:
        _print_list("Flagged for review", outcome.review_reasons)
    print(
        f"\nanalysis {outcome.analysis_id} finished in "
        f"{outcome.metrics.processing_time_ms}ms (cache_hit={outcome.metrics.cache_hit})"
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Run the credit report analysis pipeline on a local file."
    )
    parser.add_argument("path", type=Path, help="PDF, image, or text credit report.")
    parser.add_argument("--user-id", required=True, help="Owner of the analysis.")
    parser.add_argument(
        "--media-type",
        default=None,
        help="Override the media type guessed from the file extension.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the analysis payload as JSON instead of a summary.",
    )
    args = parser.parse_args(argv)

    configure_logging(get_settings().log_level)
    if not args.path.is_file():
        print(f"File {args.path} does not exist.", file=sys.stderr)
        return EXIT_INPUT_ERROR

    try:
        request = build_request(args.path, args.user_id, args.media_type)
        outcome = asyncio.run(get_orchestrator().run(request))
    except (ConfigurationError, InputValidationError) as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return EXIT_INPUT_ERROR
    except UnicodeDecodeError:
        print("Text reports must be UTF-8 encoded.", file=sys.stderr)
        return EXIT_INPUT_ERROR

    if args.json:
        print(json.dumps(outcome.result.to_payload(), indent=2))
    else:
        render_summary(outcome)
    return EXIT_FALLBACK if outcome.fallback else EXIT_OK


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
