"""Verify that the gateway's environment configuration is complete and unchanged.

The gateway refuses to start without its OAuth client credentials, session
secret and database URL. This tool surfaces those problems before a deploy:

1. It instantiates ``AppSettings`` from the provided ``.env`` file and reports
   missing or malformed entries.
2. It records and verifies a checksum of the ``.env`` file so unexpected edits
   are noticed before a restart picks them up.
3. It prints the effective configuration with secrets masked.

Example usages::

    python -m scripts.check_env record --env-file /srv/gateway/.env \
        --hash-file /srv/gateway/.env.sha256

    python -m scripts.check_env verify --env-file /srv/gateway/.env \
        --hash-file /srv/gateway/.env.sha256

    python -m scripts.check_env show --env-file /srv/gateway/.env
"""

from __future__ import annotations

import argparse
import hashlib
import json
import sys
from pathlib import Path
from typing import Any, Callable

from pydantic import ValidationError

from session_gateway.core.config import AppSettings, _load_env_file

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5

_SECRET_FIELDS = {
    "client_secret",
    "secret",
    "token_encryption_secret",
    "previous_token_encryption_secrets",
}


def _compute_hash(env_file: Path) -> str:
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _load_settings(env_file: Path) -> AppSettings:
    """Load settings from ``env_file``; raises ``ValidationError`` when incomplete."""
    _load_env_file(str(env_file))
    return AppSettings(_env_file=env_file)  # type: ignore[call-arg]


def _mask(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: ("***" if key in _SECRET_FIELDS and item else _mask(item))
            for key, item in value.items()
        }
    return value


def _record_checksum(env_file: Path, hash_file: Path) -> int:
    checksum = _compute_hash(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum to {hash_file} ({checksum})")
    return EXIT_OK


def _verify_checksum(env_file: Path, hash_file: Path) -> int:
    if not hash_file.exists():
        print(
            f"Expected checksum file {hash_file} is missing. "
            "Re-run with the 'record' command to establish a baseline.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _compute_hash(env_file)
    if expected == actual:
        print("Environment checksum OK.")
        return EXIT_OK

    print(
        "Environment checksum mismatch!\n"
        f"  expected: {expected}\n"
        f"  actual:   {actual}\n"
        "Investigate recent changes before restarting the gateway.",
        file=sys.stderr,
    )
    return EXIT_CHECKSUM_ERROR


def _show_settings(settings: AppSettings) -> int:
    print(json.dumps(_mask(settings.model_dump(mode="json")), indent=2, sort_keys=True))
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate gateway settings and detect .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_env_file(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env in the repo root).",
        )

    def add_hash_file(subparser: argparse.ArgumentParser, help_text: str) -> None:
        subparser.add_argument("--hash-file", required=True, type=Path, help=help_text)

    record_parser = subparsers.add_parser(
        "record", help="Validate settings and store the checksum baseline."
    )
    add_env_file(record_parser)
    add_hash_file(record_parser, "Location to write the checksum baseline.")

    verify_parser = subparsers.add_parser(
        "verify", help="Validate settings and compare the checksum with the baseline."
    )
    add_env_file(verify_parser)
    add_hash_file(verify_parser, "Location of the previously recorded checksum baseline.")

    check_parser = subparsers.add_parser(
        "check", help="Validate settings without touching any checksum files."
    )
    add_env_file(check_parser)

    show_parser = subparsers.add_parser(
        "show", help="Validate settings and print them with secrets masked."
    )
    add_env_file(show_parser)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    env_file: Path = args.env_file
    if not env_file.exists():
        print(
            f"Environment file {env_file} does not exist. "
            "Ensure the path is correct or create it before running this tool.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    try:
        settings = _load_settings(env_file)
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Unexpected error during validation: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    handlers: dict[str, Callable[[], int]] = {
        "record": lambda: _record_checksum(env_file, args.hash_file),
        "verify": lambda: _verify_checksum(env_file, args.hash_file),
        "check": lambda: EXIT_OK,
        "show": lambda: _show_settings(settings),
    }
    return handlers[args.command]()


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
