"""Pre-flight check for the credit analysis service configuration.

Run before starting the API or the queue worker. It verifies that:

1. ``AppSettings`` loads from the ``.env`` file and the selected reasoning
   provider has an API key.
2. The configured analysis prompt version exists.
3. The SQLite database and queue locations are writable.
4. Optionally, the ``.env`` file still matches a recorded sha256 baseline, so
   unexpected edits are caught before a restart.

Example usages::

    # Validate and record the expected checksum.
    python -m scripts.check_env record --env-file /srv/credit-analysis/.env \
        --hash-file /srv/credit-analysis/.env.sha256

    # Later (cron/systemd), validate and alert on drift.
    python -m scripts.check_env verify --env-file /srv/credit-analysis/.env \
        --hash-file /srv/credit-analysis/.env.sha256

    # Validate only and print the effective pipeline settings.
    python -m scripts.check_env check
"""

from __future__ import annotations

import argparse
import hashlib
import os
import sys
from pathlib import Path

from pydantic import ValidationError

from app.clients.reasoning import ensure_reasoning_credentials
from app.core.config import AppSettings, _load_env_file
from app.core.errors import ConfigurationError
from app.services.credit_analysis import get_prompt

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5


def _sha256(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def _ensure_writable(label: str, db_path: str) -> None:
    directory = Path(db_path).expanduser().resolve().parent
    directory.mkdir(parents=True, exist_ok=True)
    if not os.access(directory, os.W_OK):
        raise ConfigurationError(f"{label} directory {directory} is not writable.")


def load_and_validate(env_file: Path) -> AppSettings:
    """Load settings from ``env_file`` and run every configuration check."""
    if not env_file.exists():
        raise FileNotFoundError(
            f"Environment file {env_file} does not exist. "
            "Ensure the path is correct or create it before running this tool."
        )
    _load_env_file(str(env_file))
    settings = AppSettings()
    ensure_reasoning_credentials(settings)
    get_prompt(settings.pipeline.prompt_version)
    _ensure_writable("Database", settings.database_path)
    _ensure_writable("Queue", settings.queue_path)
    return settings


def describe(settings: AppSettings) -> str:
    pipeline = settings.pipeline
    model = (
        settings.openai.model_name
        if settings.reasoning_provider == "openai"
        else settings.gemini.model_name
    )
    return "\n".join(
        [
            f"environment:        {settings.environment}",
            f"reasoning provider: {settings.reasoning_provider} ({model})",
            f"prompt version:     {pipeline.prompt_version}",
            f"analysis budget:    {pipeline.analysis_timeout_seconds:g}s "
            f"(margin {pipeline.timeout_safety_margin_seconds:g}s)",
            f"chat budget:        {pipeline.chat_timeout_seconds:g}s",
            f"retries:            {pipeline.max_retries} "
            f"(backoff {pipeline.retry_backoff_seconds:g}s)",
            f"cache:              {pipeline.cache_capacity} entries, "
            f"ttl {pipeline.cache_ttl_seconds}s",
            f"database:           {settings.database_path}",
            f"queue:              {settings.queue_path}",
        ]
    )


def record_checksum(env_file: Path, hash_file: Path) -> int:
    checksum = _sha256(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum to {hash_file} ({checksum})")
    return EXIT_OK


def verify_checksum(env_file: Path, hash_file: Path) -> int:
    if not hash_file.exists():
        print(
            f"Expected checksum file {hash_file} is missing. "
            "Re-run with the 'record' command to establish a baseline.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _sha256(env_file)
    if expected == actual:
        print("Environment checksum OK.")
        return EXIT_OK
    print(
        "Environment checksum mismatch!\n"
        f"  expected: {expected}\n"
        f"  actual:   {actual}\n"
        "Investigate recent changes before restarting services.",
        file=sys.stderr,
    )
    return EXIT_CHECKSUM_ERROR


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate service configuration and detect .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    for name, help_text, needs_hash in (
        ("record", "Validate settings and store the checksum baseline.", True),
        ("verify", "Validate settings and compare against the baseline.", True),
        ("check", "Validate settings and print the effective configuration.", False),
    ):
        subparser = subparsers.add_parser(name, help=help_text)
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env in the repo root).",
        )
        if needs_hash:
            subparser.add_argument(
                "--hash-file",
                required=True,
                type=Path,
                help="Location of the checksum baseline.",
            )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    env_file: Path = args.env_file

    try:
        settings = load_and_validate(env_file)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR
    except ConfigurationError as exc:
        print(f"Configuration check failed: {exc.message}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR
    except OSError as exc:
        print(f"Unexpected error during validation: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    if args.command == "record":
        return record_checksum(env_file, args.hash_file)
    if args.command == "verify":
        return verify_checksum(env_file, args.hash_file)
    print(describe(settings))
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
