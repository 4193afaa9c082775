from __future__ import annotations

from typing import Any

from link_relay.monday.events import DirectEvent, SubitemChangeEvent
from link_relay.server.normalizer import (
    INVALID_EVENT_PAYLOAD,
    NON_TARGET_COLUMN,
    NOTHING_TO_DO,
    UNEXPECTED_BOARD,
    NormalizedEvent,
    Rejection,
    classify_event,
    normalize_event,
    parse_event,
)
from link_relay.shared.settings import BoardIds, ColumnIds, RelaySettings, RetryPolicy

SETTINGS = RelaySettings(
    boards=BoardIds(subitem=100, feature=200, main=300),
    columns=ColumnIds(subitem_to_main="rel_task", main_to_feature="rel_epic"),
    retry=RetryPolicy(),
)


def _linked(*ids: int) -> dict[str, Any]:
    return {"linkedPulseIds": [{"linkedPulseId": item_id} for item_id in ids]}


def _event(**fields: Any) -> dict[str, Any]:
    event = {
        "boardId": 100,
        "pulseId": 7,
        "pulseName": "Subitem",
        "columnId": "rel_task",
        "columnType": "board_relation",
        "columnTitle": "Related Task",
        "value": _linked(901, 902),
    }
    event.update(fields)
    return {"event": event}


def test_direct_event_normalizes_subitem_without_provisional_parent() -> None:
    result = normalize_event(_event(), SETTINGS)

    assert result == NormalizedEvent(
        subitem_id=7,
        parent_id=None,
        parent_board_id=None,
        board_id=100,
        column_id="rel_task",
        linked_main_item_ids=(901, 902),
    )


def test_nested_event_uses_explicit_subitem_and_parent_fields() -> None:
    payload = _event(
        boardId=200,
        pulseId=50,
        subitemId=7,
        parentItemId=51,
        parentItemBoardId=200,
    )
    result = normalize_event(payload, SETTINGS)

    assert isinstance(result, NormalizedEvent)
    assert result.subitem_id == 7
    assert (result.parent_id, result.parent_board_id) == (51, 200)


def test_nested_event_without_parent_fields_aliases_subject_as_parent() -> None:
    payload = _event(boardId="200", pulseId="50", subitemId="7")
    result = normalize_event(payload, SETTINGS)

    assert isinstance(result, NormalizedEvent)
    assert result.subitem_id == 7
    assert (result.parent_id, result.parent_board_id) == (50, 200)


def test_feature_board_event_without_subitem_id_falls_back_to_pulse_id() -> None:
    result = normalize_event(_event(boardId=200, pulseId=50), SETTINGS)

    assert isinstance(result, NormalizedEvent)
    assert result.subitem_id == 50
    assert result.parent_id == 50


def test_classify_event_variants() -> None:
    direct = classify_event(parse_event(_event()), SETTINGS)
    nested = classify_event(parse_event(_event(parentItemId=51)), SETTINGS)

    assert isinstance(direct, DirectEvent)
    assert isinstance(nested, SubitemChangeEvent)
    assert nested.parent_item_id == 51


def test_unexpected_board_is_rejected() -> None:
    result = normalize_event(_event(boardId=999), SETTINGS)

    assert isinstance(result, Rejection)
    assert result.reason_code == UNEXPECTED_BOARD
    assert result.is_scope_rejection is True


def test_non_target_column_is_rejected() -> None:
    result = normalize_event(_event(columnId="status", value={"label": "Done"}), SETTINGS)

    assert isinstance(result, Rejection)
    assert result.reason_code == NON_TARGET_COLUMN
    assert result.column_id == "status"


def test_empty_linked_list_means_nothing_to_do() -> None:
    for value in (_linked(), None, {"linkedPulseIds": None}):
        result = normalize_event(_event(value=value), SETTINGS)
        assert isinstance(result, Rejection)
        assert result.reason_code == NOTHING_TO_DO


def test_linked_main_items_are_deduplicated() -> None:
    result = normalize_event(_event(value=_linked(5, 6, 5, 6, 7)), SETTINGS)

    assert isinstance(result, NormalizedEvent)
    assert result.linked_main_item_ids == (5, 6, 7)


def test_malformed_payloads_are_invalid() -> None:
    for payload in ({}, {"event": {"pulseId": 7}}, {"event": "nope"}, ["event"], None):
        result = normalize_event(payload, SETTINGS)
        assert isinstance(result, Rejection)
        assert result.reason_code == INVALID_EVENT_PAYLOAD
        assert result.is_scope_rejection is False
