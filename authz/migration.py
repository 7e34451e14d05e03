"""Shortcut methods for provisioning scripts that build and reshape the RBAC tree.

Every step is logged as ``> action ...`` followed by its duration, so a
provisioning run reads as a list of what was done::

    migration = RbacMigration(manager)
    migration.init_rbac_structure()
    migration.create_permission("createPost", "Create a post")
    migration.create_role("author")
    migration.add_child("author", "createPost")
"""
from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator, Optional, Union

from loguru import logger

from .engine import AuthManager
from .errors import UnknownRuleError
from .rules import RuleFunc
from .schemas import Assignment, Item, ItemKind, ItemRef, item_name


class _Unchanged:
    def __repr__(self):
        return "UNCHANGED"


UNCHANGED = _Unchanged()

MaybeStr = Union[Optional[str], _Unchanged]


class RbacMigration:
    def __init__(self, auth_manager: AuthManager):
        self._auth_manager = auth_manager

    @property
    def auth_manager(self) -> AuthManager:
        return self._auth_manager

    @contextmanager
    def _step(self, action: str) -> Iterator[None]:
        logger.info(f"    > {action} ...")
        started = time.perf_counter()
        yield
        logger.info(f"    > {action} done (time: {time.perf_counter() - started:.3f}s)")

    # -------------------------
    # SCHEMA
    # -------------------------
    def init_rbac_structure(self) -> None:
        """Create the RBAC tables if they do not exist yet."""
        with self._step("init rbac structure"):
            self.auth_manager.db.create_tables()

    def rollback_rbac_structure(self) -> None:
        """Drop the RBAC tables along with everything stored in them."""
        with self._step("rollback rbac structure"):
            self.auth_manager.db.drop_tables()

    # -------------------------
    # ITEMS
    # -------------------------
    def create_permission(
        self,
        name: str,
        description: Optional[str] = None,
        rule_name: Optional[str] = None,
    ) -> Item:
        with self._step(f"create permission {name}"):
            return self.auth_manager.create_permission(name, description, rule_name)

    def create_role(self, name: str, description: Optional[str] = None) -> Item:
        with self._step(f"create role {name}"):
            return self.auth_manager.create_role(name, description)

    def update_permission(
        self,
        old_name: str,
        new_name: str,
        description: MaybeStr = UNCHANGED,
        rule_name: MaybeStr = UNCHANGED,
    ) -> Item:
        """Rename and/or re-describe a permission.

        Pass ``UNCHANGED`` (the default) to keep the current description or
        rule, ``None`` to clear it.
        """
        with self._step(f"update permission {old_name}"):
            return self._update(ItemKind.PERMISSION, old_name, new_name, description, rule_name)

    def update_role(
        self,
        old_name: str,
        new_name: str,
        description: MaybeStr = UNCHANGED,
    ) -> Item:
        with self._step(f"update role {old_name}"):
            return self._update(ItemKind.ROLE, old_name, new_name, description, UNCHANGED)

    def _update(
        self,
        kind: ItemKind,
        old_name: str,
        new_name: str,
        description: MaybeStr,
        rule_name: MaybeStr,
    ) -> Item:
        with self.auth_manager.transaction() as tx:
            if kind is ItemKind.PERMISSION:
                item = tx.items.get_permission(old_name)
            else:
                item = tx.items.get_role(old_name)

            changes = {"name": new_name}
            if description is not UNCHANGED:
                changes["description"] = description
            if rule_name is not UNCHANGED:
                changes["rule_name"] = rule_name
            new_item = Item.model_validate({**item.model_dump(), **changes})
            return tx.items.update(old_name, new_item)

    def remove_permission(self, name: str) -> None:
        with self._step(f"remove permission {name}"):
            with self.auth_manager.transaction() as tx:
                tx.items.remove(tx.items.get_permission(name))

    def remove_role(self, name: str) -> None:
        with self._step(f"remove role {name}"):
            with self.auth_manager.transaction() as tx:
                tx.items.remove(tx.items.get_role(name))

    # -------------------------
    # RULES
    # -------------------------
    def add_rule(self, name: str, fn: RuleFunc) -> None:
        with self._step(f"adding rule {name}"):
            self.auth_manager.register_rule(name, fn)

    def remove_rule(self, name: str) -> None:
        """Unregister a rule. Items still naming it will deny until it returns."""
        with self._step(f"removing rule {name}"):
            if not self.auth_manager.rules.unregister(name):
                raise UnknownRuleError(name)

    # -------------------------
    # HIERARCHY & ASSIGNMENTS
    # -------------------------
    def add_child(self, parent: ItemRef, child: ItemRef) -> None:
        with self._step(f"add child {item_name(child)} to {item_name(parent)}"):
            self.auth_manager.add_child(parent, child)

    def remove_child(self, parent: ItemRef, child: ItemRef) -> None:
        with self._step(f"remove child {item_name(child)} from {item_name(parent)}"):
            self.auth_manager.remove_child(parent, child)

    def assign(self, identity, ref: ItemRef) -> Assignment:
        with self._step(f"assign {item_name(ref)} to {identity}"):
            return self.auth_manager.assign(identity, ref)

    def revoke(self, identity, ref: ItemRef) -> None:
        with self._step(f"revoke {item_name(ref)} from {identity}"):
            self.auth_manager.revoke(identity, ref)
