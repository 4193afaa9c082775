"""Pydantic contracts for inbound monday.com webhook payloads."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class WebhookChallenge(BaseModel):
    model_config = ConfigDict(extra="allow")

    challenge: str


class MondayWebhookEvent(BaseModel):
    """The ``event`` object of a column-change webhook.

    Ids arrive as numbers or numeric strings; both coerce to ``int``.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    board_id: int = Field(alias="boardId")
    pulse_id: int = Field(alias="pulseId")
    column_id: str = Field(default="", alias="columnId")
    column_type: str = Field(default="", alias="columnType")
    column_title: str = Field(default="", alias="columnTitle")
    pulse_name: str = Field(default="", alias="pulseName")
    value: Any = None
    previous_value: Any = Field(default=None, alias="previousValue")
    subitem_id: int | None = Field(default=None, alias="subitemId")
    parent_item_id: int | None = Field(default=None, alias="parentItemId")
    parent_item_board_id: int | None = Field(default=None, alias="parentItemBoardId")
    trigger_uuid: str | None = Field(default=None, alias="triggerUuid")

    def has_nested_fields(self) -> bool:
        return any(
            field is not None
            for field in (self.subitem_id, self.parent_item_id, self.parent_item_board_id)
        )


class WebhookEnvelope(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: MondayWebhookEvent


@dataclass(frozen=True)
class DirectEvent:
    """Shape A: the event subject is the subitem itself."""

    subitem_id: int
    board_id: int
    column_id: str
    value: Any


@dataclass(frozen=True)
class SubitemChangeEvent:
    """Shape B: the event subject is the parent; subitem data is nested."""

    pulse_id: int
    board_id: int
    column_id: str
    value: Any
    subitem_id: int | None = None
    parent_item_id: int | None = None
    parent_item_board_id: int | None = None


def is_challenge(payload: Any) -> bool:
    return isinstance(payload, dict) and "challenge" in payload
