"""Runtime settings for the link relay: boards, columns, retry policy, modes."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping


DEFAULT_API_URL = "https://api.monday.com/v2"
DEFAULT_API_VERSION = "2024-10"

TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class BoardIds:
    """Boards taking part in the propagation rule."""

    subitem: int
    feature: int
    main: int


@dataclass(frozen=True)
class ColumnIds:
    subitem_to_main: str
    main_to_feature: str


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_s: float = 1.0
    max_delay_s: float = 10.0
    jitter_s: float = 0.5


@dataclass(frozen=True)
class RelaySettings:
    """Process-wide read-only configuration, built once at startup.

    Passed explicitly into the normalizer, reconciler and client so tests can
    construct alternate board/column ids without touching the environment.
    """

    boards: BoardIds
    columns: ColumnIds
    retry: RetryPolicy
    api_url: str = DEFAULT_API_URL
    api_version: str = DEFAULT_API_VERSION
    timeout_s: float = 15.0
    dry_run: bool = False
    port: int = 3001
    log_level: str = "INFO"
    client_kind: str = "api"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "RelaySettings":
        source = os.environ if env is None else env
        boards = BoardIds(
            subitem=_int(source, "LINK_RELAY_SUBITEM_BOARD_ID", 18041802160),
            feature=_int(source, "LINK_RELAY_FEATURE_BOARD_ID", 18041801957),
            main=_int(source, "LINK_RELAY_MAIN_BOARD_ID", 18012438587),
        )
        columns = ColumnIds(
            subitem_to_main=_str(
                source, "LINK_RELAY_SUBITEM_TO_MAIN_COLUMN", "board_relation_mkw4vrjt"
            ),
            main_to_feature=_str(
                source, "LINK_RELAY_MAIN_TO_FEATURE_COLUMN", "board_relation_mkw8vvdh"
            ),
        )
        max_attempts = _int(source, "LINK_RELAY_RETRY_MAX_ATTEMPTS", 3)
        if max_attempts < 1:
            raise ValueError("LINK_RELAY_RETRY_MAX_ATTEMPTS must be >= 1")
        retry = RetryPolicy(
            max_attempts=max_attempts,
            base_delay_s=_int(source, "LINK_RELAY_RETRY_BASE_DELAY_MS", 1000) / 1000,
            max_delay_s=_int(source, "LINK_RELAY_RETRY_MAX_DELAY_MS", 10000) / 1000,
        )
        return cls(
            boards=boards,
            columns=columns,
            retry=retry,
            api_url=_str(source, "MONDAY_API_URL", DEFAULT_API_URL),
            api_version=_str(source, "MONDAY_API_VERSION", DEFAULT_API_VERSION),
            timeout_s=float(_int(source, "MONDAY_TIMEOUT_S", 15)),
            dry_run=_str(source, "DRY_RUN", "false").lower() in TRUTHY,
            port=_int(source, "PORT", 3001),
            log_level=_str(source, "LOG_LEVEL", "INFO").upper(),
            client_kind=_str(source, "LINK_RELAY_MONDAY_CLIENT", "api").lower(),
        )

    def describe(self) -> dict[str, object]:
        return {
            "boards": {
                "subitem": self.boards.subitem,
                "feature": self.boards.feature,
                "main": self.boards.main,
            },
            "columns": {
                "subitem_to_main": self.columns.subitem_to_main,
                "main_to_feature": self.columns.main_to_feature,
            },
            "retry": {
                "max_attempts": self.retry.max_attempts,
                "base_delay_s": self.retry.base_delay_s,
                "max_delay_s": self.retry.max_delay_s,
            },
            "api_url": self.api_url,
            "api_version": self.api_version,
            "dry_run": self.dry_run,
            "port": self.port,
            "client": self.client_kind,
        }


def get_relay_settings(env: Mapping[str, str] | None = None) -> RelaySettings:
    """Build relay settings from environment variables."""

    return RelaySettings.from_env(env)


def _str(source: Mapping[str, str], key: str, default: str) -> str:
    value = (source.get(key) or "").strip()
    return value or default


def _int(source: Mapping[str, str], key: str, default: int) -> int:
    raw = (source.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from exc
