"""HMAC-signed payloads used for OAuth state and session cookies."""

from __future__ import annotations

import base64
import binascii
import hmac
import json
from datetime import datetime, timedelta, timezone
from hashlib import sha256
from typing import Any, Dict, Optional

_SIGNATURE_SIZE = 32


class InvalidSignatureError(Exception):
    """Raised when a signed payload is malformed, tampered with or too old."""


class SignedPayloadEncoder:
    """Encode and decode JSON payloads to guard against tampering.

    The encoded form is ``urlsafe_b64(signature || json)``. A ``salt`` keeps
    tokens minted for one purpose (OAuth state) from being replayed for
    another (session cookies) under the same secret.
    """

    def __init__(self, secret_key: str, *, salt: str = "") -> None:
        self._secret_key = f"{salt}:{secret_key}".encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        body = dict(payload)
        body.setdefault("issued_at", datetime.now(timezone.utc).isoformat())
        serialized = json.dumps(body, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str, *, max_age: Optional[timedelta] = None) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise InvalidSignatureError("Signed payload is not valid base64.") from exc

        signature, serialized = decoded[:_SIGNATURE_SIZE], decoded[_SIGNATURE_SIZE:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise InvalidSignatureError("Invalid payload signature.")

        payload = json.loads(serialized)
        if max_age is not None:
            issued_at = _parse_issued_at(payload.get("issued_at"))
            if datetime.now(timezone.utc) - issued_at > max_age:
                raise InvalidSignatureError("Signed payload has expired.")
        return payload


def _parse_issued_at(raw: Any) -> datetime:
    if not raw:
        raise InvalidSignatureError("Missing issued_at in signed payload.")
    try:
        issued_at = datetime.fromisoformat(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidSignatureError("Invalid issued_at in signed payload.") from exc
    if issued_at.tzinfo is None:
        issued_at = issued_at.replace(tzinfo=timezone.utc)
    return issued_at


__all__ = ["InvalidSignatureError", "SignedPayloadEncoder"]
