from __future__ import annotations

import json
import logging

import pytest

from link_relay.monday.relation_value import (
    dedupe_ids,
    encode_linked_item_ids,
    linked_ids_from_payload,
    parse_linked_item_ids,
)


def test_parse_wrapped_relation_value_from_string() -> None:
    raw = json.dumps({"linkedPulseIds": [{"linkedPulseId": 5}, {"linkedPulseId": "7"}]})
    assert parse_linked_item_ids(raw) == [5, 7]


def test_parse_accepts_decoded_dict_and_empty_inputs() -> None:
    assert parse_linked_item_ids({"linkedPulseIds": [{"linkedPulseId": 9}]}) == [9]
    assert parse_linked_item_ids(None) == []
    assert parse_linked_item_ids("") == []
    assert parse_linked_item_ids('{"changed_at": "2024-01-01"}') == []


def test_unparseable_value_reads_as_empty_set_with_warning(
    caplog: pytest.LogCaptureFixture,
) -> None:
    with caplog.at_level(logging.WARNING, logger="link_relay"):
        assert parse_linked_item_ids("{not json", main_item_id=44) == []

    record = next(r for r in caplog.records if r.message == "Failed to parse relation column value")
    assert record.main_item_id == 44
    assert record.value == "{not json"


def test_payload_extraction_skips_malformed_entries() -> None:
    value = {
        "linkedPulseIds": [
            {"linkedPulseId": 1},
            "garbage",
            {"linkedPulseId": None},
            {"linkedPulseId": True},
            {"other": 3},
            {"linkedPulseId": 2},
        ]
    }
    assert linked_ids_from_payload(value) == [1, 2]
    assert linked_ids_from_payload({"linkedPulseIds": "nope"}) == []
    assert linked_ids_from_payload(["not", "a", "dict"]) == []


def test_encode_uses_plain_write_form() -> None:
    assert json.loads(encode_linked_item_ids([3, 1, 2])) == {"item_ids": [3, 1, 2]}


def test_dedupe_keeps_first_occurrence() -> None:
    assert dedupe_ids([4, 2, 4, 1, 2]) == [4, 2, 1]
