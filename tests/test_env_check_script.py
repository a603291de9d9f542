"""Tests for the environment validation and drift detection script."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from scripts import check_env

REQUIRED_ENV_KEYS = [
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "GOOGLE_REDIRECT_URI",
    "SESSION_SECRET",
    "DATABASE_URL",
]

_COMPLETE_ENV = {
    "GOOGLE_CLIENT_ID": "abc",
    "GOOGLE_CLIENT_SECRET": "secret",
    "GOOGLE_REDIRECT_URI": "https://example.com/auth/callback",
    "SESSION_SECRET": "a-long-session-secret",
    "DATABASE_URL": "sqlite:///./data/identities.db",
}


def _write_env(env_path: Path, **values: str) -> None:
    contents = "\n".join(f"{key}={value}" for key, value in values.items())
    env_path.write_text(contents + "\n", encoding="utf-8")


def _clear_required_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in REQUIRED_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.mark.parametrize("command", ["record", "verify", "check", "show"])
def test_main_requires_existing_env_file(tmp_path: Path, command: str) -> None:
    env_file = tmp_path / ".missing-env"
    hash_file = tmp_path / ".env.sha256"

    argv = [command, "--env-file", str(env_file)]
    if command in ("record", "verify"):
        argv.extend(["--hash-file", str(hash_file)])

    assert check_env.main(argv) == check_env.EXIT_RUNTIME_ERROR


def test_record_and_verify_detects_mismatched_checksum(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"
    hash_file = tmp_path / ".env.sha256"

    _clear_required_env(monkeypatch)
    _write_env(env_file, **_COMPLETE_ENV)

    argv = ["--env-file", str(env_file), "--hash-file", str(hash_file)]
    assert check_env.main(["record", *argv]) == check_env.EXIT_OK
    assert hash_file.read_text(encoding="utf-8").strip()

    _clear_required_env(monkeypatch)
    assert check_env.main(["verify", *argv]) == check_env.EXIT_OK

    _write_env(env_file, **{**_COMPLETE_ENV, "GOOGLE_CLIENT_SECRET": "different"})
    _clear_required_env(monkeypatch)
    assert check_env.main(["verify", *argv]) == check_env.EXIT_CHECKSUM_ERROR


def test_validation_failure_for_missing_session_secret(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / ".env"
    hash_file = tmp_path / ".env.sha256"

    _clear_required_env(monkeypatch)
    incomplete = {k: v for k, v in _COMPLETE_ENV.items() if k != "SESSION_SECRET"}
    _write_env(env_file, **incomplete)

    exit_code = check_env.main(
        ["record", "--env-file", str(env_file), "--hash-file", str(hash_file)]
    )
    assert exit_code == check_env.EXIT_VALIDATION_ERROR
    assert not hash_file.exists()


def test_show_masks_secrets(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    env_file = tmp_path / ".env"

    _clear_required_env(monkeypatch)
    _write_env(env_file, **_COMPLETE_ENV)

    assert check_env.main(["show", "--env-file", str(env_file)]) == check_env.EXIT_OK

    output = json.loads(capsys.readouterr().out)
    assert output["google"]["client_id"] == "abc"
    assert output["google"]["client_secret"] == "***"
    assert output["session"]["secret"] == "***"
    assert output["storage"]["database_url"] == "sqlite:///./data/identities.db"
