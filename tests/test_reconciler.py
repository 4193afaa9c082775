from __future__ import annotations

import logging
from dataclasses import replace

import pytest

from link_relay.server.monday_client_inmemory import InMemoryMondayClient, LinkWrite
from link_relay.server.reconciler import LinkReconciler, merge_linked_ids
from link_relay.shared.settings import BoardIds, ColumnIds, RelaySettings, RetryPolicy

SETTINGS = RelaySettings(
    boards=BoardIds(subitem=100, feature=200, main=300),
    columns=ColumnIds(subitem_to_main="rel_task", main_to_feature="rel_epic"),
    retry=RetryPolicy(),
)


def test_merge_is_a_set_union_regardless_of_order_or_duplicates() -> None:
    assert set(merge_linked_ids([1, 2], 3)) == {1, 2, 3}
    assert set(merge_linked_ids([2, 1, 2, 1], 3)) == {1, 2, 3}
    assert len(merge_linked_ids([2, 1, 2, 1], 3)) == 3
    assert merge_linked_ids([], 3) == [3]


def test_missing_parent_link_is_written_to_main_board() -> None:
    client = InMemoryMondayClient(settings=SETTINGS)
    client.main_links[901] = [11, 12, 11]

    report = LinkReconciler(client=client, settings=SETTINGS).reconcile(50, [901])

    assert (report.updated, report.skipped, report.failed) == (1, 0, 0)
    assert client.executed_writes == [
        LinkWrite(board_id=300, item_id=901, column_id="rel_epic", linked_ids=(11, 12, 50))
    ]


def test_already_linked_parent_is_skipped_without_write() -> None:
    client = InMemoryMondayClient(settings=SETTINGS)
    client.main_links[901] = [50, 11]
    reconciler = LinkReconciler(client=client, settings=SETTINGS)

    for _ in range(3):
        report = reconciler.reconcile(50, [901])
        assert (report.updated, report.skipped) == (0, 1)

    assert client.executed_writes == []


def test_second_delivery_is_idempotent_after_first_write() -> None:
    client = InMemoryMondayClient(settings=SETTINGS)
    reconciler = LinkReconciler(client=client, settings=SETTINGS)

    first = reconciler.reconcile(50, [901, 902])
    second = reconciler.reconcile(50, [901, 902])

    assert (first.updated, first.skipped) == (2, 0)
    assert (second.updated, second.skipped) == (0, 2)
    assert len(client.executed_writes) == 2


def test_dry_run_records_intended_write_without_sending() -> None:
    settings = replace(SETTINGS, dry_run=True)
    client = InMemoryMondayClient(settings=settings)
    client.main_links[901] = [11]

    report = LinkReconciler(client=client, settings=settings).reconcile(50, [901])

    assert report.dry_run is True
    assert report.updated == 1
    assert report.items[0].status == "dry_run"
    assert report.items[0].linked_ids == (11, 50)
    assert client.executed_writes == []
    assert client.main_links[901] == [11]


def test_one_failing_item_does_not_abort_the_batch(caplog: pytest.LogCaptureFixture) -> None:
    client = InMemoryMondayClient(settings=SETTINGS)
    client.failing_reads.add(901)
    client.failing_writes.add(903)

    with caplog.at_level(logging.ERROR, logger="link_relay"):
        report = LinkReconciler(client=client, settings=SETTINGS).reconcile(
            50, [901, 902, 903], request_id="req_1"
        )

    assert (report.updated, report.skipped, report.failed) == (1, 0, 2)
    assert [item.status for item in report.items] == ["failed", "updated", "failed"]
    assert [write.item_id for write in client.executed_writes] == [902]

    failures = [r for r in caplog.records if r.message == "Failed to update main item"]
    assert [(r.main_item_id, r.parent_id, r.request_id) for r in failures] == [
        (901, 50, "req_1"),
        (903, 50, "req_1"),
    ]


class BrokenReadClient(InMemoryMondayClient):
    def fetch_main_item_linked_ids(self, item_id: int, request_id: str = "") -> list[int]:
        if item_id == 901:
            raise TypeError("'int' object is not iterable")
        return super().fetch_main_item_linked_ids(item_id, request_id=request_id)


def test_unexpected_error_on_one_item_is_isolated(caplog: pytest.LogCaptureFixture) -> None:
    client = BrokenReadClient(settings=SETTINGS)

    with caplog.at_level(logging.ERROR, logger="link_relay"):
        report = LinkReconciler(client=client, settings=SETTINGS).reconcile(
            50, [901, 902], request_id="req_2"
        )

    assert (report.updated, report.failed) == (1, 1)
    assert report.items[0].error == "'int' object is not iterable"
    assert client.main_links == {902: [50]}

    [record] = [r for r in caplog.records if r.message == "Unexpected error updating main item"]
    assert (record.main_item_id, record.parent_id, record.request_id) == (901, 50, "req_2")
    assert record.exc_info is not None
