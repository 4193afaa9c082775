"""Codec for board_relation column values.

monday.com reads relation values in a wrapped form::

    {"linkedPulseIds": [{"linkedPulseId": 123}, {"linkedPulseId": 456}]}

and accepts writes in a plain form::

    {"item_ids": [123, 456]}
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable

logger = logging.getLogger(__name__)


def linked_ids_from_payload(value: Any) -> list[int]:
    """Extract linked ids from an already-decoded wrapped relation value."""
    if not isinstance(value, dict):
        return []
    wrapped = value.get("linkedPulseIds")
    if not isinstance(wrapped, list):
        return []
    ids: list[int] = []
    for entry in wrapped:
        if not isinstance(entry, dict):
            continue
        linked = _coerce_id(entry.get("linkedPulseId"))
        if linked is not None:
            ids.append(linked)
    return ids


def parse_linked_item_ids(raw: str | dict[str, Any] | None, **context: Any) -> list[int]:
    """Decode a raw column value; unparseable JSON reads as an empty set."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, dict):
        return linked_ids_from_payload(raw)
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(
            "Failed to parse relation column value",
            extra={**context, "value": raw},
        )
        return []
    return linked_ids_from_payload(decoded)


def encode_linked_item_ids(ids: Iterable[int]) -> str:
    return json.dumps({"item_ids": [int(item_id) for item_id in ids]})


def dedupe_ids(ids: Iterable[int]) -> list[int]:
    seen: set[int] = set()
    ordered: list[int] = []
    for item_id in ids:
        if item_id in seen:
            continue
        seen.add(item_id)
        ordered.append(item_id)
    return ordered


def _coerce_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None
