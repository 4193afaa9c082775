"""In-memory monday.com client for deterministic tests and local runs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from link_relay.server.monday_connector import (
    MondayAPIError,
    ParentRef,
    SubitemRecord,
    WebhookRecord,
)
from link_relay.shared.settings import RelaySettings


@dataclass(frozen=True)
class LinkWrite:
    board_id: int
    item_id: int
    column_id: str
    linked_ids: tuple[int, ...]


class InMemoryMondayClient:
    """Holds subitems and main-item relation sets in dictionaries."""

    def __init__(self, settings: RelaySettings) -> None:
        self.settings = settings
        self.subitems: dict[int, SubitemRecord] = {}
        self.main_links: dict[int, list[int]] = {}
        self.executed_writes: list[LinkWrite] = []
        self.reads: list[tuple[str, int]] = []
        self.failing_reads: set[int] = set()
        self.failing_writes: set[int] = set()
        self.failing_subitems: set[int] = set()
        self.webhooks: dict[str, WebhookRecord] = {}
        self._next_webhook_id = 1

    def add_subitem(
        self,
        item_id: int,
        parent_id: int | None = None,
        parent_board_id: int | None = None,
        name: str = "",
        linked_main_item_ids: tuple[int, ...] = (),
    ) -> SubitemRecord:
        parent = None
        if parent_id is not None:
            parent = ParentRef(
                item_id=parent_id,
                board_id=(
                    parent_board_id if parent_board_id is not None else self.settings.boards.feature
                ),
            )
        record = SubitemRecord(
            item_id=item_id,
            name=name or f"Subitem {item_id}",
            parent=parent,
            linked_main_item_ids=tuple(linked_main_item_ids),
        )
        self.subitems[item_id] = record
        return record

    def fetch_subitem_with_parent(
        self, item_id: int, request_id: str = ""
    ) -> SubitemRecord | None:
        self.reads.append(("subitem", item_id))
        if item_id in self.failing_subitems:
            raise MondayAPIError(
                f"Simulated failure reading subitem {item_id}", reason_code="transient_failure"
            )
        return self.subitems.get(item_id)

    def fetch_main_item_linked_ids(self, item_id: int, request_id: str = "") -> list[int]:
        self.reads.append(("main_item", item_id))
        if item_id in self.failing_reads:
            raise MondayAPIError(
                f"Simulated failure reading main item {item_id}", reason_code="transient_failure"
            )
        return list(self.main_links.get(item_id, []))

    def update_main_item_links(
        self,
        board_id: int,
        item_id: int,
        linked_ids: list[int],
        request_id: str = "",
    ) -> dict[str, Any]:
        if item_id in self.failing_writes:
            raise MondayAPIError(
                f"Simulated failure writing main item {item_id}", reason_code="transient_failure"
            )
        write = LinkWrite(
            board_id=board_id,
            item_id=item_id,
            column_id=self.settings.columns.main_to_feature,
            linked_ids=tuple(linked_ids),
        )
        self.executed_writes.append(write)
        self.main_links[item_id] = list(linked_ids)
        return {"id": str(item_id)}

    def create_webhook(self, board_id: int, url: str, event: str) -> WebhookRecord:
        webhook = WebhookRecord(
            webhook_id=str(self._next_webhook_id), event=event, board_id=str(board_id)
        )
        self._next_webhook_id += 1
        self.webhooks[webhook.webhook_id] = webhook
        return webhook

    def list_webhooks(self, board_id: int) -> list[WebhookRecord]:
        return [hook for hook in self.webhooks.values() if hook.board_id == str(board_id)]

    def delete_webhook(self, webhook_id: str) -> str:
        if webhook_id not in self.webhooks:
            raise MondayAPIError(f"Unknown webhook {webhook_id}", reason_code="monday_not_found")
        del self.webhooks[webhook_id]
        return webhook_id
