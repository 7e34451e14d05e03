from __future__ import annotations

from typing import List, Optional, Set, Union

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import DuplicateAssignmentError, NotFoundError
from .items import ItemStore
from .models import AuthAssignment, AuthItem
from .schemas import Assignment, Item, ItemRef, item_name

Identity = Union[str, int]


def _to_assignment(row: AuthAssignment) -> Assignment:
    return Assignment(
        identity=row.user_id, item_name=row.item_name, created_at=row.created_at
    )


class AssignmentStore:
    """Direct grants of items to identities (user ids)."""

    def __init__(self, session: Session, items: Optional[ItemStore] = None):
        self.session = session
        self.items = items or ItemStore(session)

    def get_assignment(self, identity: Identity, ref: ItemRef) -> Optional[Assignment]:
        row = self.session.get(AuthAssignment, (item_name(ref), str(identity)))
        return _to_assignment(row) if row is not None else None

    def assign(self, identity: Identity, ref: ItemRef) -> Assignment:
        item = self.items.get(ref)
        user_id = str(identity)
        if self.get_assignment(user_id, item) is not None:
            raise DuplicateAssignmentError(user_id, item.name)

        row = AuthAssignment(item_name=item.name, user_id=user_id)
        self.session.add(row)
        try:
            self.session.flush()
        except IntegrityError as e:
            raise DuplicateAssignmentError(user_id, item.name) from e

        logger.info(f"Assigned {item.kind.value} '{item.name}' to '{user_id}'")
        return _to_assignment(row)

    def revoke(self, identity: Identity, ref: ItemRef) -> None:
        name = item_name(ref)
        result = self.session.execute(
            delete(AuthAssignment).where(
                AuthAssignment.user_id == str(identity),
                AuthAssignment.item_name == name,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError(f"'{name}' is not assigned to '{identity}'")
        logger.info(f"Revoked '{name}' from '{identity}'")

    def revoke_all(self, identity: Identity) -> int:
        result = self.session.execute(
            delete(AuthAssignment).where(AuthAssignment.user_id == str(identity))
        )
        logger.info(f"Revoked {result.rowcount} assignment(s) from '{identity}'")
        return result.rowcount

    def assignments(self, identity: Identity) -> List[Assignment]:
        stmt = (
            select(AuthAssignment)
            .where(AuthAssignment.user_id == str(identity))
            .order_by(AuthAssignment.item_name)
        )
        return [_to_assignment(row) for row in self.session.scalars(stmt)]

    def assigned_items(self, identity: Identity) -> Set[Item]:
        stmt = (
            select(AuthItem)
            .join(AuthAssignment, AuthAssignment.item_name == AuthItem.name)
            .where(AuthAssignment.user_id == str(identity))
        )
        return {row.to_item() for row in self.session.scalars(stmt)}

    def user_ids_by_item(self, ref: ItemRef) -> List[str]:
        stmt = (
            select(AuthAssignment.user_id)
            .where(AuthAssignment.item_name == item_name(ref))
            .order_by(AuthAssignment.user_id)
        )
        return list(self.session.scalars(stmt))
