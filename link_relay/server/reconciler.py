"""Ensure every linked main item points back at the subitem's parent."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from link_relay.monday.relation_value import dedupe_ids
from link_relay.server.monday_connector import MondayAPIError, MondayClient
from link_relay.shared.settings import RelaySettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemResult:
    main_item_id: int
    status: str
    linked_ids: tuple[int, ...] = ()
    error: str = ""


@dataclass
class ReconcileReport:
    parent_id: int
    dry_run: bool = False
    items: list[ItemResult] = field(default_factory=list)

    @property
    def updated(self) -> int:
        return sum(1 for item in self.items if item.status in {"updated", "dry_run"})

    @property
    def skipped(self) -> int:
        return sum(1 for item in self.items if item.status == "skipped")

    @property
    def failed(self) -> int:
        return sum(1 for item in self.items if item.status == "failed")


def merge_linked_ids(existing: Iterable[int], parent_id: int) -> list[int]:
    """Set union of ``existing`` and ``parent_id``; first-seen order is kept."""
    return dedupe_ids([*existing, parent_id])


class LinkReconciler:
    def __init__(self, client: MondayClient, settings: RelaySettings) -> None:
        self.client = client
        self.settings = settings

    def reconcile(
        self,
        parent_id: int,
        main_item_ids: Iterable[int],
        request_id: str = "",
    ) -> ReconcileReport:
        """Link ``parent_id`` into each main item's feature relation.

        Items are independent: any error on one main item is logged and
        recorded as ``failed`` while the remaining items are still processed.
        """
        report = ReconcileReport(parent_id=parent_id, dry_run=self.settings.dry_run)
        for main_item_id in main_item_ids:
            try:
                report.items.append(self._reconcile_one(parent_id, main_item_id, request_id))
            except MondayAPIError as exc:
                logger.error(
                    "Failed to update main item",
                    extra={
                        "request_id": request_id,
                        "main_item_id": main_item_id,
                        "parent_id": parent_id,
                        "error": str(exc),
                        "reason_code": exc.reason_code,
                    },
                )
                report.items.append(
                    ItemResult(main_item_id=main_item_id, status="failed", error=str(exc))
                )
            except Exception as exc:
                logger.exception(
                    "Unexpected error updating main item",
                    extra={
                        "request_id": request_id,
                        "main_item_id": main_item_id,
                        "parent_id": parent_id,
                        "error": str(exc),
                    },
                )
                report.items.append(
                    ItemResult(main_item_id=main_item_id, status="failed", error=str(exc))
                )
        return report

    def _reconcile_one(self, parent_id: int, main_item_id: int, request_id: str) -> ItemResult:
        existing = self.client.fetch_main_item_linked_ids(main_item_id, request_id=request_id)
        logger.debug(
            "Existing links on main item",
            extra={
                "request_id": request_id,
                "main_item_id": main_item_id,
                "existing_linked_ids": existing,
            },
        )

        if parent_id in existing:
            logger.info(
                "Parent already linked to main item, skipping",
                extra={
                    "request_id": request_id,
                    "main_item_id": main_item_id,
                    "parent_id": parent_id,
                },
            )
            return ItemResult(
                main_item_id=main_item_id, status="skipped", linked_ids=tuple(dedupe_ids(existing))
            )

        merged = merge_linked_ids(existing, parent_id)
        logger.info(
            "Updating main item with parent link",
            extra={
                "request_id": request_id,
                "main_item_id": main_item_id,
                "parent_id": parent_id,
                "existing_count": len(existing),
                "new_count": len(merged),
                "dry_run": self.settings.dry_run,
            },
        )

        if self.settings.dry_run:
            logger.info(
                "[DRY-RUN] Would update main item links",
                extra={
                    "request_id": request_id,
                    "main_item_id": main_item_id,
                    "merged_linked_ids": merged,
                },
            )
            return ItemResult(main_item_id=main_item_id, status="dry_run", linked_ids=tuple(merged))

        self.client.update_main_item_links(
            self.settings.boards.main, main_item_id, merged, request_id=request_id
        )
        return ItemResult(main_item_id=main_item_id, status="updated", linked_ids=tuple(merged))
