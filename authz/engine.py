"""Role-based access control: administration and access checks."""
from __future__ import annotations

from contextlib import contextmanager
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
)

from loguru import logger
from sqlalchemy.orm import Session

from .assignments import AssignmentStore, Identity
from .errors import AccessDeniedError, CorruptHierarchyError, UnknownRuleError
from .hierarchy import HierarchyGraph
from .items import ItemStore
from .models import DatabaseManager
from .rules import RuleFunc, RuleRegistry
from .schemas import Assignment, Item, ItemKind, ItemRef, item_name


class Transaction:
    """The three stores bound to one session, committed or rolled back together."""

    def __init__(self, session: Session):
        self.session = session
        self.items = ItemStore(session)
        self.hierarchy = HierarchyGraph(session, self.items)
        self.assignments = AssignmentStore(session, self.items)


class _AccessWalker:
    """Depth-first search from assigned items down to one target item.

    A node passes when its rule (if any) evaluates true and either it is the
    target or one of its children passes. Results are memoized per node, so
    the answer does not depend on the order children are visited in. The
    walk keeps its own stack, so hierarchy depth is not bound by the
    interpreter's recursion limit.
    """

    def __init__(
        self,
        tx: Transaction,
        rules: RuleRegistry,
        identity: str,
        target: str,
        params: Dict[str, Any],
    ):
        self.tx = tx
        self.rules = rules
        self.identity = identity
        self.target = target
        self.params = params
        self._memo: Dict[str, bool] = {}
        self._stack: List[Tuple[str, Iterator[str]]] = []
        self._on_path: Set[str] = set()

    def reaches(self, root: str) -> bool:
        result = self._visit(root)
        if result is not None:
            return result

        while self._stack:
            name, children = self._stack[-1]
            child = next(children, None)
            if child is None:
                self._pop(False)
                continue
            result = self._visit(child)
            if result:
                # every node still on the stack leads to the target
                while self._stack:
                    self._pop(True)
                return True
        return False

    def _visit(self, name: str) -> Optional[bool]:
        """Settle `name` right away, or push it and return None."""
        if name in self._on_path:
            path = [frame[0] for frame in self._stack]
            loop = path[path.index(name):] + [name]
            logger.error(f"Corrupt hierarchy while checking '{self.target}': {loop}")
            raise CorruptHierarchyError(loop)
        if name in self._memo:
            return self._memo[name]

        if not self._rule_allows(self.tx.items.get(name)):
            self._memo[name] = False
            return False
        if name == self.target:
            self._memo[name] = True
            return True

        self._stack.append((name, iter(self.tx.hierarchy.child_names(name))))
        self._on_path.add(name)
        return None

    def _pop(self, result: bool) -> None:
        name, _ = self._stack.pop()
        self._on_path.discard(name)
        self._memo[name] = result

    def _rule_allows(self, item: Item) -> bool:
        if not item.rule_name:
            return True
        try:
            allowed = self.rules.evaluate(
                item.rule_name, self.identity, item, self.params
            )
        except UnknownRuleError:
            logger.warning(
                f"Rule '{item.rule_name}' of '{item.name}' is not registered; denying"
            )
            return False
        if not allowed:
            logger.debug(f"Rule '{item.rule_name}' denied '{self.identity}' at '{item.name}'")
        return allowed


class AuthManager:
    """Administrative API over the RBAC tables plus `check`.

    Each administrative call runs in its own transaction. Use `transaction()`
    to group several calls into one atomic unit.
    """

    def __init__(
        self,
        db: DatabaseManager,
        rules: Optional[RuleRegistry] = None,
        default_roles: Iterable[str] = (),
    ):
        self.db = db
        self.rules = rules if rules is not None else RuleRegistry()
        # roles every identity holds without an assignment row
        self.default_roles = tuple(default_roles)

    @classmethod
    def from_settings(
        cls,
        settings=None,
        rules: Optional[RuleRegistry] = None,
        create_tables: bool = True,
    ):
        from .config import get_settings
        from .models import get_db_manager

        settings = settings or get_settings()
        db = get_db_manager(
            settings.database_url,
            create_tables=create_tables,
            echo=settings.sql_echo,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
        )
        return cls(db, rules=rules, default_roles=settings.default_roles)

    @contextmanager
    def transaction(self, write: bool = True) -> Iterator[Transaction]:
        """Group store calls into one transaction.

        Write transactions are serialized against each other, so checks such
        as cycle detection see every committed edge before inserting.
        """
        with self.db.get_session_context(write=write) as session:
            yield Transaction(session)

    # -------------------------
    # ITEMS
    # -------------------------
    def create_permission(
        self,
        name: str,
        description: Optional[str] = None,
        rule_name: Optional[str] = None,
    ) -> Item:
        with self.transaction() as tx:
            return tx.items.create_permission(name, description, rule_name)

    def create_role(
        self,
        name: str,
        description: Optional[str] = None,
        rule_name: Optional[str] = None,
    ) -> Item:
        with self.transaction() as tx:
            return tx.items.create_role(name, description, rule_name)

    def get_item(self, ref: ItemRef) -> Item:
        with self.transaction(write=False) as tx:
            return tx.items.get(ref)

    def get_permission(self, ref: ItemRef) -> Item:
        with self.transaction(write=False) as tx:
            return tx.items.get_permission(ref)

    def get_role(self, ref: ItemRef) -> Item:
        with self.transaction(write=False) as tx:
            return tx.items.get_role(ref)

    def list_items(self, kind: Optional[ItemKind] = None) -> List[Item]:
        with self.transaction(write=False) as tx:
            return tx.items.list(kind)

    def update_item(self, old_name: str, new_item: Item) -> Item:
        with self.transaction() as tx:
            return tx.items.update(old_name, new_item)

    def remove_item(self, ref: ItemRef) -> Dict[str, int]:
        with self.transaction() as tx:
            return tx.items.remove(ref)

    def remove_all(self) -> None:
        with self.transaction() as tx:
            tx.items.clear()

    # -------------------------
    # HIERARCHY
    # -------------------------
    def add_child(self, parent: ItemRef, child: ItemRef) -> None:
        with self.transaction() as tx:
            tx.hierarchy.add_edge(parent, child)

    def remove_child(self, parent: ItemRef, child: ItemRef) -> bool:
        with self.transaction() as tx:
            return tx.hierarchy.remove_edge(parent, child)

    def can_add_child(self, parent: ItemRef, child: ItemRef) -> bool:
        with self.transaction(write=False) as tx:
            return tx.hierarchy.can_add_edge(parent, child)

    def children(self, ref: ItemRef) -> Set[Item]:
        with self.transaction(write=False) as tx:
            return tx.hierarchy.children(ref)

    def parents(self, ref: ItemRef) -> Set[Item]:
        with self.transaction(write=False) as tx:
            return tx.hierarchy.parents(ref)

    # -------------------------
    # ASSIGNMENTS
    # -------------------------
    def assign(self, identity: Identity, ref: ItemRef) -> Assignment:
        with self.transaction() as tx:
            return tx.assignments.assign(identity, ref)

    def revoke(self, identity: Identity, ref: ItemRef) -> None:
        with self.transaction() as tx:
            tx.assignments.revoke(identity, ref)

    def revoke_all(self, identity: Identity) -> int:
        with self.transaction() as tx:
            return tx.assignments.revoke_all(identity)

    def assigned_items(self, identity: Identity) -> Set[Item]:
        with self.transaction(write=False) as tx:
            return tx.assignments.assigned_items(identity)

    # -------------------------
    # RULES
    # -------------------------
    def register_rule(self, name: str, fn: RuleFunc) -> None:
        self.rules.register(name, fn)

    # -------------------------
    # ACCESS CHECK
    # -------------------------
    def check(
        self,
        identity: Identity,
        permission_name: ItemRef,
        params: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Return True if `identity` holds `permission_name`.

        Access is granted when some item assigned to `identity` (or a default
        role) reaches the target through child edges and every item on that
        path whose rule is set passes it with `params`. Unregistered rules
        deny. Raises CorruptHierarchyError if stored edges form a loop.
        """
        user_id = str(identity)
        target = item_name(permission_name)

        with self.transaction(write=False) as tx:
            if not tx.items.exists(target):
                logger.debug(f"Check '{user_id}' -> '{target}': no such item")
                return False

            roots = {item.name for item in tx.assignments.assigned_items(user_id)}
            roots.update(name for name in self.default_roles if tx.items.exists(name))

            walker = _AccessWalker(tx, self.rules, user_id, target, dict(params or {}))
            for root in sorted(roots):
                if walker.reaches(root):
                    logger.debug(f"Check '{user_id}' -> '{target}': granted via '{root}'")
                    return True

        logger.debug(f"Check '{user_id}' -> '{target}': denied")
        return False

    def require(
        self,
        identity: Identity,
        permission: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Callable:
        def wrapper(fn: Callable) -> Callable:
            def inner(*args, **kwargs):
                if not self.check(identity, permission, params):
                    raise AccessDeniedError(str(identity), permission)
                return fn(*args, **kwargs)

            return inner

        return wrapper
