"""monday.com client contracts, error types, and factory helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from link_relay.server.monday_auth import MondayAuth, load_monday_auth_from_env
from link_relay.shared.settings import RelaySettings


class MondayAPIError(RuntimeError):
    """Terminal failure of one logical read or write."""

    def __init__(self, message: str, reason_code: str, attempts: int = 1) -> None:
        super().__init__(message)
        self.reason_code = reason_code
        self.attempts = attempts


class RetryableMondayError(MondayAPIError):
    """A single attempt failed in a way that may succeed on retry."""


@dataclass(frozen=True)
class ParentRef:
    item_id: int
    board_id: int


@dataclass(frozen=True)
class SubitemRecord:
    item_id: int
    name: str
    parent: ParentRef | None
    linked_main_item_ids: tuple[int, ...] = ()


@dataclass(frozen=True)
class WebhookRecord:
    webhook_id: str
    event: str
    board_id: str

    def as_dict(self) -> dict[str, str]:
        return {"id": self.webhook_id, "event": self.event, "board_id": self.board_id}


class MondayClient(Protocol):
    """Client contract shared by the API and in-memory implementations."""

    def fetch_subitem_with_parent(
        self, item_id: int, request_id: str = ""
    ) -> SubitemRecord | None: ...

    def fetch_main_item_linked_ids(self, item_id: int, request_id: str = "") -> list[int]: ...

    def update_main_item_links(
        self,
        board_id: int,
        item_id: int,
        linked_ids: list[int],
        request_id: str = "",
    ) -> dict[str, Any]: ...

    def create_webhook(self, board_id: int, url: str, event: str) -> WebhookRecord: ...

    def list_webhooks(self, board_id: int) -> list[WebhookRecord]: ...

    def delete_webhook(self, webhook_id: str) -> str: ...


def build_client_from_env(
    settings: RelaySettings,
    env: Mapping[str, str] | None = None,
    auth: MondayAuth | None = None,
) -> MondayClient:
    if settings.client_kind == "in_memory":
        from link_relay.server.monday_client_inmemory import InMemoryMondayClient

        return InMemoryMondayClient(settings=settings)

    from link_relay.server.monday_client import MondayAPIClient

    resolved = auth or load_monday_auth_from_env(env)
    return MondayAPIClient(settings=settings, auth=resolved)


__all__ = [
    "MondayAPIError",
    "MondayClient",
    "ParentRef",
    "RetryableMondayError",
    "SubitemRecord",
    "WebhookRecord",
    "build_client_from_env",
]
