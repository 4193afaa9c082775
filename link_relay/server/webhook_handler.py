"""Process one monday.com webhook delivery end to end."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Sequence

from link_relay.monday.events import is_challenge
from link_relay.monday.relation_value import dedupe_ids
from link_relay.server.monday_connector import MondayAPIError, MondayClient, SubitemRecord
from link_relay.server.normalizer import (
    NON_TARGET_COLUMN,
    NOTHING_TO_DO,
    NormalizedEvent,
    Rejection,
    normalize_event,
)
from link_relay.server.reconciler import LinkReconciler
from link_relay.shared.settings import RelaySettings

logger = logging.getLogger(__name__)

SUBITEM_FETCH_FAILED = "subitem_fetch_failed"
SUBITEM_NOT_FOUND = "subitem_not_found"
MISSING_PARENT = "missing_parent"
PARENT_NOT_FROM_EXPECTED_BOARD = "parent_not_from_expected_board"


@dataclass(frozen=True)
class EventOutcome:
    status: str
    success: bool
    message: str = ""
    reason_code: str = ""
    request_id: str = ""
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    dry_run: bool = False
    challenge: Any = None
    subitem_id: int | None = None
    parent_id: int | None = None

    def as_dict(self) -> dict[str, Any]:
        if self.status == "challenge":
            return {"challenge": self.challenge}
        return {key: value for key, value in asdict(self).items() if key != "challenge"}


def resolve_parent(
    normalized: NormalizedEvent, subitem: SubitemRecord | None
) -> tuple[int, int] | None:
    """Directly-queried parent first, then whatever the event itself carried."""
    if subitem is not None and subitem.parent is not None:
        return subitem.parent.item_id, subitem.parent.board_id
    if normalized.parent_id is not None and normalized.parent_board_id is not None:
        return normalized.parent_id, normalized.parent_board_id
    return None


class WebhookHandler:
    def __init__(self, client: MondayClient, settings: RelaySettings) -> None:
        self.client = client
        self.settings = settings
        self.reconciler = LinkReconciler(client=client, settings=settings)

    def handle(self, payload: Any, request_id: str = "") -> EventOutcome:
        if is_challenge(payload):
            logger.info("Responding to webhook challenge", extra={"request_id": request_id})
            return EventOutcome(
                status="challenge",
                success=True,
                request_id=request_id,
                challenge=payload["challenge"],
            )

        normalized = normalize_event(payload, self.settings)
        if isinstance(normalized, Rejection):
            return self._rejected(normalized, request_id)

        logger.info(
            "Processing subitem link change",
            extra={
                "request_id": request_id,
                "subitem_id": normalized.subitem_id,
                "board_id": normalized.board_id,
                "main_item_ids": list(normalized.linked_main_item_ids),
            },
        )

        subitem = self._fetch_subitem(normalized.subitem_id, request_id)
        if isinstance(subitem, EventOutcome):
            return subitem

        if subitem is None and normalized.parent_id is None:
            logger.error(
                "Subitem not found",
                extra={"request_id": request_id, "subitem_id": normalized.subitem_id},
            )
            return self._failed(
                SUBITEM_NOT_FOUND, "Failed to fetch subitem", request_id, normalized.subitem_id
            )

        return self._link_parent(
            normalized.subitem_id,
            resolve_parent(normalized, subitem),
            normalized.linked_main_item_ids,
            request_id,
        )

    def sync_subitem(self, subitem_id: int, request_id: str = "") -> EventOutcome:
        """Reconcile one subitem by id, using the links stored on the subitem itself."""
        logger.info(
            "Syncing subitem links", extra={"request_id": request_id, "subitem_id": subitem_id}
        )
        subitem = self._fetch_subitem(subitem_id, request_id)
        if isinstance(subitem, EventOutcome):
            return subitem
        if subitem is None:
            logger.error(
                "Subitem not found", extra={"request_id": request_id, "subitem_id": subitem_id}
            )
            return self._failed(
                SUBITEM_NOT_FOUND, "Failed to fetch subitem", request_id, subitem_id
            )

        parent = None
        if subitem.parent is not None:
            parent = (subitem.parent.item_id, subitem.parent.board_id)
        linked = tuple(dedupe_ids(subitem.linked_main_item_ids))
        if parent is not None and not linked:
            logger.info(
                "No linked items to process",
                extra={"request_id": request_id, "subitem_id": subitem_id},
            )
            return EventOutcome(
                status="skipped",
                success=True,
                message="No linked items to process",
                reason_code=NOTHING_TO_DO,
                request_id=request_id,
                dry_run=self.settings.dry_run,
                subitem_id=subitem_id,
                parent_id=parent[0],
            )
        return self._link_parent(subitem_id, parent, linked, request_id)

    def _fetch_subitem(
        self, subitem_id: int, request_id: str
    ) -> SubitemRecord | EventOutcome | None:
        try:
            return self.client.fetch_subitem_with_parent(subitem_id, request_id=request_id)
        except MondayAPIError as exc:
            logger.error(
                "Failed to fetch subitem",
                extra={"request_id": request_id, "subitem_id": subitem_id, "error": str(exc)},
            )
            return self._failed(
                SUBITEM_FETCH_FAILED, "Failed to fetch subitem", request_id, subitem_id
            )

    def _link_parent(
        self,
        subitem_id: int,
        parent: tuple[int, int] | None,
        main_item_ids: Sequence[int],
        request_id: str,
    ) -> EventOutcome:
        if parent is None:
            logger.warning(
                "Subitem has no parent item",
                extra={"request_id": request_id, "subitem_id": subitem_id},
            )
            return self._failed(
                MISSING_PARENT, "Subitem has no parent item", request_id, subitem_id
            )

        parent_id, parent_board_id = parent
        if parent_board_id != self.settings.boards.feature:
            logger.warning(
                "Parent item is not from Feature board, ignoring",
                extra={
                    "request_id": request_id,
                    "subitem_id": subitem_id,
                    "parent_id": parent_id,
                    "expected_board": self.settings.boards.feature,
                    "actual_board": parent_board_id,
                },
            )
            return self._failed(
                PARENT_NOT_FROM_EXPECTED_BOARD,
                "Parent item not from expected Feature board",
                request_id,
                subitem_id,
                parent_id=parent_id,
            )

        logger.info(
            "Found parent item",
            extra={
                "request_id": request_id,
                "subitem_id": subitem_id,
                "parent_id": parent_id,
                "parent_board_id": parent_board_id,
            },
        )

        report = self.reconciler.reconcile(parent_id, main_item_ids, request_id=request_id)
        message = f"Updated {report.updated} main items, skipped {report.skipped}"
        if report.failed:
            message = f"{message}, failed {report.failed}"

        logger.info(
            "Finished processing webhook event",
            extra={
                "request_id": request_id,
                "subitem_id": subitem_id,
                "parent_id": parent_id,
                "main_item_ids": list(main_item_ids),
                "updated_count": report.updated,
                "skipped_count": report.skipped,
                "failed_count": report.failed,
                "dry_run": self.settings.dry_run,
            },
        )
        return EventOutcome(
            status="success",
            success=True,
            message=message,
            request_id=request_id,
            updated=report.updated,
            skipped=report.skipped,
            failed=report.failed,
            dry_run=self.settings.dry_run,
            subitem_id=subitem_id,
            parent_id=parent_id,
        )

    def _rejected(self, rejection: Rejection, request_id: str) -> EventOutcome:
        context = {
            "request_id": request_id,
            "reason_code": rejection.reason_code,
            "board_id": rejection.board_id,
            "column_id": rejection.column_id,
            "subitem_id": rejection.subitem_id,
        }
        if not rejection.is_scope_rejection:
            logger.warning("Rejecting malformed webhook event", extra=context)
            return EventOutcome(
                status="failed",
                success=False,
                message=rejection.message,
                reason_code=rejection.reason_code,
                request_id=request_id,
                dry_run=self.settings.dry_run,
            )

        if rejection.reason_code == NON_TARGET_COLUMN:
            logger.debug("Ignoring event for non-target column", extra=context)
        else:
            logger.info(rejection.message, extra=context)
        return EventOutcome(
            status="skipped",
            success=True,
            message=rejection.message,
            reason_code=rejection.reason_code,
            request_id=request_id,
            dry_run=self.settings.dry_run,
            subitem_id=rejection.subitem_id,
        )

    def _failed(
        self,
        reason_code: str,
        message: str,
        request_id: str,
        subitem_id: int | None,
        parent_id: int | None = None,
    ) -> EventOutcome:
        return EventOutcome(
            status="failed",
            success=False,
            message=message,
            reason_code=reason_code,
            request_id=request_id,
            dry_run=self.settings.dry_run,
            subitem_id=subitem_id,
            parent_id=parent_id,
        )
