"""Parent/child edges between items.

The graph is kept acyclic at write time: `add_edge` refuses any edge whose
child already reaches the parent. Readers may therefore assume a DAG, but the
access check still guards against loops that were written around this API.
"""
from __future__ import annotations

from collections import deque
from typing import List, Optional, Set

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import CycleError, DuplicateEdgeError, InvalidHierarchyError
from .items import ItemStore
from .models import AuthItem, AuthItemChild
from .schemas import Item, ItemRef, item_name


class HierarchyGraph:
    def __init__(self, session: Session, items: Optional[ItemStore] = None):
        self.session = session
        self.items = items or ItemStore(session)

    # -------------------------
    # READS
    # -------------------------
    def child_names(self, ref: ItemRef) -> List[str]:
        stmt = (
            select(AuthItemChild.child)
            .where(AuthItemChild.parent == item_name(ref))
            .order_by(AuthItemChild.child)
        )
        return list(self.session.scalars(stmt))

    def parent_names(self, ref: ItemRef) -> List[str]:
        stmt = (
            select(AuthItemChild.parent)
            .where(AuthItemChild.child == item_name(ref))
            .order_by(AuthItemChild.parent)
        )
        return list(self.session.scalars(stmt))

    def children(self, ref: ItemRef) -> Set[Item]:
        stmt = (
            select(AuthItem)
            .join(AuthItemChild, AuthItemChild.child == AuthItem.name)
            .where(AuthItemChild.parent == item_name(ref))
        )
        return {row.to_item() for row in self.session.scalars(stmt)}

    def parents(self, ref: ItemRef) -> Set[Item]:
        stmt = (
            select(AuthItem)
            .join(AuthItemChild, AuthItemChild.parent == AuthItem.name)
            .where(AuthItemChild.child == item_name(ref))
        )
        return {row.to_item() for row in self.session.scalars(stmt)}

    def has_child(self, parent: ItemRef, child: ItemRef) -> bool:
        stmt = select(AuthItemChild.parent).where(
            AuthItemChild.parent == item_name(parent),
            AuthItemChild.child == item_name(child),
        )
        return self.session.execute(stmt).first() is not None

    def descendants(self, ref: ItemRef) -> Set[str]:
        """Names of every item reachable from `ref`, excluding `ref` itself."""
        start = item_name(ref)
        seen: Set[str] = set()
        queue = deque([start])
        while queue:
            for child in self.child_names(queue.popleft()):
                if child not in seen:
                    seen.add(child)
                    queue.append(child)
        seen.discard(start)
        return seen

    # -------------------------
    # WRITES
    # -------------------------
    def _validate_edge(self, parent: Item, child: Item) -> None:
        if parent.is_permission and child.is_role:
            raise InvalidHierarchyError(
                f"Permission '{parent.name}' cannot have role '{child.name}' as a child"
            )
        if self.has_child(parent, child):
            raise DuplicateEdgeError(parent.name, child.name)
        if parent.name == child.name or parent.name in self.descendants(child):
            raise CycleError(parent.name, child.name)

    def can_add_edge(self, parent: ItemRef, child: ItemRef) -> bool:
        """Whether `add_edge` would succeed. Unknown items raise NotFoundError."""
        try:
            self._validate_edge(self.items.get(parent), self.items.get(child))
        except (InvalidHierarchyError, DuplicateEdgeError, CycleError):
            return False
        return True

    def add_edge(self, parent: ItemRef, child: ItemRef) -> None:
        parent_item = self.items.get(parent)
        child_item = self.items.get(child)
        self._validate_edge(parent_item, child_item)

        self.session.add(AuthItemChild(parent=parent_item.name, child=child_item.name))
        try:
            self.session.flush()
        except IntegrityError as e:
            raise DuplicateEdgeError(parent_item.name, child_item.name) from e

        logger.info(f"Added child '{child_item.name}' to '{parent_item.name}'")

    def remove_edge(self, parent: ItemRef, child: ItemRef) -> bool:
        """Delete the edge if present. Returns False when there was nothing to delete."""
        result = self.session.execute(
            delete(AuthItemChild).where(
                AuthItemChild.parent == item_name(parent),
                AuthItemChild.child == item_name(child),
            )
        )
        removed = result.rowcount > 0
        if removed:
            logger.info(f"Removed child '{item_name(child)}' from '{item_name(parent)}'")
        else:
            logger.debug(
                f"No edge '{item_name(parent)}' -> '{item_name(child)}' to remove"
            )
        return removed

    def remove_children(self, ref: ItemRef) -> int:
        result = self.session.execute(
            delete(AuthItemChild).where(AuthItemChild.parent == item_name(ref))
        )
        logger.info(f"Removed {result.rowcount} child(ren) from '{item_name(ref)}'")
        return result.rowcount
