from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from loguru import logger
from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import DuplicateNameError, InvalidHierarchyError, NotFoundError
from .models import AuthAssignment, AuthItem, AuthItemChild
from .schemas import Item, ItemKind, ItemRef, item_name


class ItemStore:
    """Permissions and roles sharing one namespace.

    Every method works inside the caller's session; committing or rolling
    back is left to whoever owns the session.
    """

    def __init__(self, session: Session):
        self.session = session

    # -------------------------
    # LOOKUP
    # -------------------------
    def _row(self, name: str) -> Optional[AuthItem]:
        return self.session.get(AuthItem, name)

    def _require_row(self, name: str) -> AuthItem:
        row = self._row(name)
        if row is None:
            raise NotFoundError(f"Item '{name}' not found")
        return row

    def exists(self, ref: ItemRef) -> bool:
        return self._row(item_name(ref)) is not None

    def get(self, ref: ItemRef) -> Item:
        return self._require_row(item_name(ref)).to_item()

    def get_permission(self, ref: ItemRef) -> Item:
        return self._get_kind(item_name(ref), ItemKind.PERMISSION)

    def get_role(self, ref: ItemRef) -> Item:
        return self._get_kind(item_name(ref), ItemKind.ROLE)

    def _get_kind(self, name: str, kind: ItemKind) -> Item:
        row = self._row(name)
        if row is None or row.kind != kind.value:
            raise NotFoundError(f"{kind.value.capitalize()} '{name}' not found")
        return row.to_item()

    def list(self, kind: Optional[ItemKind] = None) -> List[Item]:
        stmt = select(AuthItem).order_by(AuthItem.name)
        if kind is not None:
            stmt = stmt.where(AuthItem.kind == ItemKind(kind).value)
        return [row.to_item() for row in self.session.scalars(stmt)]

    # -------------------------
    # MUTATION
    # -------------------------
    def create_permission(
        self,
        name: str,
        description: Optional[str] = None,
        rule_name: Optional[str] = None,
    ) -> Item:
        return self._create(ItemKind.PERMISSION, name, description, rule_name)

    def create_role(
        self,
        name: str,
        description: Optional[str] = None,
        rule_name: Optional[str] = None,
    ) -> Item:
        return self._create(ItemKind.ROLE, name, description, rule_name)

    def _create(
        self,
        kind: ItemKind,
        name: str,
        description: Optional[str],
        rule_name: Optional[str],
    ) -> Item:
        item = Item(name=name, kind=kind, description=description, rule_name=rule_name)
        if self._row(item.name) is not None:
            raise DuplicateNameError(item.name)

        row = AuthItem(
            name=item.name,
            kind=kind.value,
            description=item.description,
            rule_name=item.rule_name,
        )
        self.session.add(row)
        try:
            self.session.flush()
        except IntegrityError as e:
            raise DuplicateNameError(item.name) from e

        logger.info(f"Created {kind.value} '{item.name}'")
        return row.to_item()

    def update(self, old_name: str, new_item: Item) -> Item:
        """Replace name, description and rule of `old_name` with `new_item`'s.

        Renaming rewrites every edge and assignment that references the old
        name. The kind of an item cannot change.
        """
        row = self._require_row(old_name)
        if new_item.kind.value != row.kind:
            raise InvalidHierarchyError(
                f"Cannot change '{old_name}' from {row.kind} to {new_item.kind.value}"
            )

        if new_item.name != old_name:
            if self._row(new_item.name) is not None:
                raise DuplicateNameError(new_item.name)
            row = self._rename(row, new_item.name)

        row.description = new_item.description
        row.rule_name = new_item.rule_name
        row.updated_at = datetime.utcnow()
        self.session.flush()

        logger.info(f"Updated {row.kind} '{old_name}'")
        return row.to_item()

    def _rename(self, row: AuthItem, new_name: str) -> AuthItem:
        old_name = row.name
        renamed = AuthItem(
            name=new_name,
            kind=row.kind,
            description=row.description,
            rule_name=row.rule_name,
            created_at=row.created_at,
        )
        self.session.add(renamed)
        try:
            self.session.flush()
        except IntegrityError as e:
            raise DuplicateNameError(new_name) from e

        # references move to the new row before the old one goes away
        self.session.execute(
            update(AuthItemChild)
            .where(AuthItemChild.parent == old_name)
            .values(parent=new_name)
        )
        self.session.execute(
            update(AuthItemChild)
            .where(AuthItemChild.child == old_name)
            .values(child=new_name)
        )
        self.session.execute(
            update(AuthAssignment)
            .where(AuthAssignment.item_name == old_name)
            .values(item_name=new_name)
        )
        self.session.delete(row)
        self.session.flush()

        logger.info(f"Renamed {row.kind} '{old_name}' to '{new_name}'")
        return renamed

    def remove(self, ref: ItemRef) -> Dict[str, int]:
        """Delete an item with all edges and assignments that reference it.

        Returns how many edges and assignments were removed alongside.
        """
        name = item_name(ref)
        row = self._require_row(name)

        edges = self.session.execute(
            delete(AuthItemChild).where(
                or_(AuthItemChild.parent == name, AuthItemChild.child == name)
            )
        ).rowcount
        assignments = self.session.execute(
            delete(AuthAssignment).where(AuthAssignment.item_name == name)
        ).rowcount
        self.session.delete(row)
        self.session.flush()

        logger.info(
            f"Removed {row.kind} '{name}' "
            f"({edges} edge(s), {assignments} assignment(s))"
        )
        return {"edges": edges, "assignments": assignments}

    def clear(self) -> None:
        """Remove every item, edge and assignment."""
        self.session.execute(delete(AuthAssignment))
        self.session.execute(delete(AuthItemChild))
        self.session.execute(delete(AuthItem))
        self.session.flush()
        logger.warning("All RBAC items, edges and assignments removed")
