from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator


class ItemKind(str, Enum):
    """Kind of an authorization item."""

    ROLE = "role"
    PERMISSION = "permission"


class Item(BaseModel):
    """A permission or role. Names are unique across both kinds."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    name: str
    kind: ItemKind
    description: Optional[str] = None
    rule_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("item name must not be empty")
        return value

    @property
    def is_role(self) -> bool:
        return self.kind is ItemKind.ROLE

    @property
    def is_permission(self) -> bool:
        return self.kind is ItemKind.PERMISSION


class Assignment(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    identity: str
    item_name: str
    created_at: Optional[datetime] = None

    @field_validator("identity", mode="before")
    @classmethod
    def _identity_as_str(cls, value):
        return str(value)


ItemRef = Union[str, Item]


def item_name(ref: ItemRef) -> str:
    """Accept either an item or its name."""
    if isinstance(ref, Item):
        return ref.name
    return ref
