"""monday.com GraphQL API client with bounded retry."""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable

import requests

from link_relay.monday.relation_value import encode_linked_item_ids, parse_linked_item_ids
from link_relay.server.monday_auth import MondayAuth
from link_relay.server.monday_connector import (
    MondayAPIError,
    ParentRef,
    RetryableMondayError,
    SubitemRecord,
    WebhookRecord,
)
from link_relay.shared.settings import RelaySettings, RetryPolicy

logger = logging.getLogger(__name__)

SUBITEM_WITH_PARENT_QUERY = """
query GetSubitemWithParent($itemId: [ID!]!, $columnIds: [String!]) {
  items(ids: $itemId) {
    id
    name
    parent_item {
      id
      board {
        id
      }
    }
    column_values(ids: $columnIds) {
      id
      value
      type
    }
  }
}
"""

MAIN_ITEM_LINKS_QUERY = """
query GetMainItemLinks($itemId: [ID!]!, $columnIds: [String!]) {
  items(ids: $itemId) {
    id
    name
    column_values(ids: $columnIds) {
      id
      value
      type
    }
  }
}
"""

UPDATE_MAIN_ITEM_LINKS_MUTATION = """
mutation UpdateMainItemLinks($boardId: ID!, $itemId: ID!, $columnId: String!, $value: JSON!) {
  change_column_value(board_id: $boardId, item_id: $itemId, column_id: $columnId, value: $value) {
    id
  }
}
"""

CREATE_WEBHOOK_MUTATION = """
mutation CreateWebhook($boardId: ID!, $url: String!, $event: WebhookEventType!) {
  create_webhook(board_id: $boardId, url: $url, event: $event) {
    id
    board_id
  }
}
"""

LIST_WEBHOOKS_QUERY = """
query ListWebhooks($boardId: [ID!]!) {
  boards(ids: $boardId) {
    webhooks {
      id
      event
      board_id
    }
  }
}
"""

DELETE_WEBHOOK_MUTATION = """
mutation DeleteWebhook($webhookId: ID!) {
  delete_webhook(id: $webhookId) {
    id
  }
}
"""


def compute_backoff_delay(
    attempt: int, policy: RetryPolicy, rng: random.Random | None = None
) -> float:
    """Exponential delay before attempt ``attempt + 1``, jittered and capped."""
    source = rng or random
    delay = policy.base_delay_s * (2 ** (attempt - 1)) + source.uniform(0, policy.jitter_s)
    return min(delay, policy.max_delay_s)


class MondayAPIClient:
    def __init__(
        self,
        settings: RelaySettings,
        auth: MondayAuth,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = settings
        self.auth = auth
        self.session = session or requests.Session()
        self.retry = settings.retry
        self._sleep = sleep
        self._rng = rng or random.Random()

    def execute(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
        request_id: str = "",
    ) -> dict[str, Any]:
        """Run one query or mutation, retrying until it succeeds or the budget runs out.

        Every failure counts: transport errors, non-2xx statuses, a non-empty
        ``errors`` list and a response without ``data``. The error from the
        last attempt is raised.
        """
        max_attempts = self.retry.max_attempts
        last_error: MondayAPIError | None = None
        for attempt in range(1, max_attempts + 1):
            try:
                return self._post(query, variables or {})
            except MondayAPIError as exc:
                last_error = exc
                last_error.attempts = attempt
                logger.warning(
                    f"Monday API call failed (attempt {attempt}/{max_attempts})",
                    extra={
                        "request_id": request_id,
                        "error": str(exc),
                        "reason_code": exc.reason_code,
                    },
                )
                if attempt < max_attempts:
                    self._sleep(compute_backoff_delay(attempt, self.retry, self._rng))

        if last_error is None:  # pragma: no cover - max_attempts is validated >= 1
            raise MondayAPIError("Unknown error during API call", reason_code="monday_unknown")
        raise last_error

    def fetch_subitem_with_parent(
        self, item_id: int, request_id: str = ""
    ) -> SubitemRecord | None:
        column_id = self.settings.columns.subitem_to_main
        data = self.execute(
            SUBITEM_WITH_PARENT_QUERY,
            {"itemId": [str(item_id)], "columnIds": [column_id]},
            request_id=request_id,
        )
        item = _first_item(data)
        if item is None:
            return None

        parent: ParentRef | None = None
        parent_row = item.get("parent_item")
        if isinstance(parent_row, dict) and parent_row.get("id"):
            board = parent_row.get("board") or {}
            parent = ParentRef(item_id=int(parent_row["id"]), board_id=int(board.get("id", 0)))

        raw_value = _column_value(item, column_id)
        linked = parse_linked_item_ids(raw_value, request_id=request_id, item_id=item_id)
        return SubitemRecord(
            item_id=int(item.get("id", item_id)),
            name=str(item.get("name", "")),
            parent=parent,
            linked_main_item_ids=tuple(linked),
        )

    def fetch_main_item_linked_ids(self, item_id: int, request_id: str = "") -> list[int]:
        column_id = self.settings.columns.main_to_feature
        data = self.execute(
            MAIN_ITEM_LINKS_QUERY,
            {"itemId": [str(item_id)], "columnIds": [column_id]},
            request_id=request_id,
        )
        item = _first_item(data)
        if item is None:
            return []
        return parse_linked_item_ids(
            _column_value(item, column_id), request_id=request_id, main_item_id=item_id
        )

    def update_main_item_links(
        self,
        board_id: int,
        item_id: int,
        linked_ids: list[int],
        request_id: str = "",
    ) -> dict[str, Any]:
        data = self.execute(
            UPDATE_MAIN_ITEM_LINKS_MUTATION,
            {
                "boardId": str(board_id),
                "itemId": str(item_id),
                "columnId": self.settings.columns.main_to_feature,
                "value": encode_linked_item_ids(linked_ids),
            },
            request_id=request_id,
        )
        return data.get("change_column_value") or {}

    def create_webhook(self, board_id: int, url: str, event: str) -> WebhookRecord:
        data = self.execute(
            CREATE_WEBHOOK_MUTATION,
            {"boardId": str(board_id), "url": url, "event": event},
        )
        created = data.get("create_webhook")
        if not isinstance(created, dict):
            raise MondayAPIError("create_webhook returned no webhook", reason_code="monday_no_data")
        return WebhookRecord(
            webhook_id=str(created.get("id", "")),
            event=event,
            board_id=str(created.get("board_id", board_id)),
        )

    def list_webhooks(self, board_id: int) -> list[WebhookRecord]:
        data = self.execute(LIST_WEBHOOKS_QUERY, {"boardId": [str(board_id)]})
        boards = data.get("boards") or []
        if not boards or not isinstance(boards[0], dict):
            return []
        return [
            WebhookRecord(
                webhook_id=str(row.get("id", "")),
                event=str(row.get("event", "")),
                board_id=str(row.get("board_id", board_id)),
            )
            for row in boards[0].get("webhooks") or []
            if isinstance(row, dict)
        ]

    def delete_webhook(self, webhook_id: str) -> str:
        data = self.execute(DELETE_WEBHOOK_MUTATION, {"webhookId": str(webhook_id)})
        deleted = data.get("delete_webhook") or {}
        return str(deleted.get("id", webhook_id))

    def _post(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        headers = {
            "Content-Type": "application/json",
            "API-Version": self.settings.api_version,
        }
        if self.auth.token:
            headers["Authorization"] = self.auth.token

        try:
            response = self.session.request(
                method="POST",
                url=self.settings.api_url,
                headers=headers,
                json={"query": query, "variables": variables},
                timeout=self.settings.timeout_s,
            )
        except requests.RequestException as exc:
            raise RetryableMondayError(
                f"Transport error: {exc}", reason_code="monday_transport_error"
            ) from exc

        if not 200 <= response.status_code < 300:
            raise RetryableMondayError(
                f"HTTP {response.status_code}",
                reason_code=f"monday_{response.status_code}",
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise RetryableMondayError(
                "Response body is not JSON", reason_code="monday_invalid_json"
            ) from exc
        if not isinstance(payload, dict):
            raise RetryableMondayError(
                "Response body is not a JSON object", reason_code="monday_invalid_json"
            )

        errors = payload.get("errors")
        if errors:
            if not isinstance(errors, list):
                errors = [errors]
            messages = ", ".join(
                str(error.get("message", error)) if isinstance(error, dict) else str(error)
                for error in errors
            )
            raise RetryableMondayError(
                f"GraphQL errors: {messages}", reason_code="monday_graphql_errors"
            )

        data = payload.get("data")
        if not isinstance(data, dict):
            raise RetryableMondayError("No data in response", reason_code="monday_no_data")
        return data


def _first_item(data: dict[str, Any]) -> dict[str, Any] | None:
    items = data.get("items")
    if not isinstance(items, list) or not items:
        return None
    first = items[0]
    return first if isinstance(first, dict) else None


def _column_value(item: dict[str, Any], column_id: str) -> str | None:
    columns = item.get("column_values")
    if not isinstance(columns, list):
        return None
    for column in columns:
        if isinstance(column, dict) and column.get("id") == column_id:
            return column.get("value")
    return None
