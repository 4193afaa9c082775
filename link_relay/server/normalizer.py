"""Map inbound webhook payloads onto one canonical event tuple."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from link_relay.monday.events import (
    DirectEvent,
    MondayWebhookEvent,
    SubitemChangeEvent,
    WebhookEnvelope,
)
from link_relay.monday.relation_value import dedupe_ids, linked_ids_from_payload
from link_relay.shared.settings import RelaySettings

UNEXPECTED_BOARD = "unexpected_board"
NON_TARGET_COLUMN = "non_target_column"
NOTHING_TO_DO = "nothing_to_do"
INVALID_EVENT_PAYLOAD = "invalid_event_payload"

SCOPE_REJECTIONS = {UNEXPECTED_BOARD, NON_TARGET_COLUMN, NOTHING_TO_DO}


@dataclass(frozen=True)
class NormalizedEvent:
    subitem_id: int
    parent_id: int | None
    parent_board_id: int | None
    board_id: int
    column_id: str
    linked_main_item_ids: tuple[int, ...]


@dataclass(frozen=True)
class Rejection:
    reason_code: str
    message: str
    board_id: int | None = None
    column_id: str = ""
    subitem_id: int | None = None

    @property
    def is_scope_rejection(self) -> bool:
        return self.reason_code in SCOPE_REJECTIONS


def parse_event(payload: Any) -> MondayWebhookEvent | None:
    if not isinstance(payload, dict):
        return None
    try:
        return WebhookEnvelope.model_validate(payload).event
    except ValidationError:
        return None


def classify_event(
    event: MondayWebhookEvent, settings: RelaySettings
) -> DirectEvent | SubitemChangeEvent:
    if event.has_nested_fields() or event.board_id == settings.boards.feature:
        return SubitemChangeEvent(
            pulse_id=event.pulse_id,
            board_id=event.board_id,
            column_id=event.column_id,
            value=event.value,
            subitem_id=event.subitem_id,
            parent_item_id=event.parent_item_id,
            parent_item_board_id=event.parent_item_board_id,
        )
    return DirectEvent(
        subitem_id=event.pulse_id,
        board_id=event.board_id,
        column_id=event.column_id,
        value=event.value,
    )


def canonical_identity(
    variant: DirectEvent | SubitemChangeEvent,
) -> tuple[int, int | None, int | None]:
    """Return ``(subitem_id, provisional_parent_id, provisional_parent_board_id)``."""
    if isinstance(variant, DirectEvent):
        return variant.subitem_id, None, None
    subitem_id = variant.subitem_id if variant.subitem_id is not None else variant.pulse_id
    if variant.parent_item_id is not None:
        parent_board_id = (
            variant.parent_item_board_id
            if variant.parent_item_board_id is not None
            else variant.board_id
        )
        return subitem_id, variant.parent_item_id, parent_board_id
    # Shape B reports the parent as the event subject.
    return subitem_id, variant.pulse_id, variant.board_id


def normalize_event(payload: Any, settings: RelaySettings) -> NormalizedEvent | Rejection:
    event = parse_event(payload)
    if event is None:
        return Rejection(
            reason_code=INVALID_EVENT_PAYLOAD,
            message="Event payload is missing required fields",
        )

    variant = classify_event(event, settings)
    subitem_id, parent_id, parent_board_id = canonical_identity(variant)

    if variant.board_id not in {settings.boards.subitem, settings.boards.feature}:
        return Rejection(
            reason_code=UNEXPECTED_BOARD,
            message="Event from unexpected board",
            board_id=variant.board_id,
            column_id=variant.column_id,
            subitem_id=subitem_id,
        )

    if variant.column_id != settings.columns.subitem_to_main:
        return Rejection(
            reason_code=NON_TARGET_COLUMN,
            message="Event for non-target column",
            board_id=variant.board_id,
            column_id=variant.column_id,
            subitem_id=subitem_id,
        )

    linked = dedupe_ids(linked_ids_from_payload(variant.value))
    if not linked:
        return Rejection(
            reason_code=NOTHING_TO_DO,
            message="No linked items to process",
            board_id=variant.board_id,
            column_id=variant.column_id,
            subitem_id=subitem_id,
        )

    return NormalizedEvent(
        subitem_id=subitem_id,
        parent_id=parent_id,
        parent_board_id=parent_board_id,
        board_id=variant.board_id,
        column_id=variant.column_id,
        linked_main_item_ids=tuple(linked),
    )
