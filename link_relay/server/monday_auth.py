"""monday.com credentials and webhook signature checks."""

from __future__ import annotations

import base64
import hashlib
import hmac
import os
from dataclasses import dataclass
from typing import Mapping


@dataclass(frozen=True)
class MondayAuth:
    token: str | None
    signing_secret: str | None = None

    def redacted(self) -> dict[str, str]:
        return {
            "token": _redact_token(self.token),
            "signing_secret": _redact_token(self.signing_secret),
        }

    def require_token(self) -> str:
        if not self.token:
            raise ValueError("MONDAY_TOKEN environment variable is required")
        return self.token


def load_monday_auth_from_env(env: Mapping[str, str] | None = None) -> MondayAuth:
    env_map = os.environ if env is None else env
    return MondayAuth(
        token=_clean(env_map.get("MONDAY_TOKEN")),
        signing_secret=_clean(env_map.get("WEBHOOK_SIGNING_SECRET")),
    )


def compute_signature(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(secret: str | None, body: bytes, signature: str | None) -> bool:
    """HMAC-SHA256 (base64) over the raw body; no secret means no check."""
    if not secret:
        return True
    if not signature:
        return False
    return hmac.compare_digest(compute_signature(secret, body), signature.strip())


def _clean(token: str | None) -> str | None:
    if token is None:
        return None
    value = token.strip()
    return value or None


def _redact_token(token: str | None) -> str:
    if token is None:
        return "unset"
    if len(token) <= 8:
        return "***"
    return f"{token[:4]}...{token[-4:]}"
