# authz/__init__.py
from .engine import AuthManager, Transaction
from .errors import (
    AccessDeniedError,
    AuthzError,
    CorruptHierarchyError,
    CycleError,
    DuplicateAssignmentError,
    DuplicateEdgeError,
    DuplicateNameError,
    InvalidHierarchyError,
    NotFoundError,
    UnknownRuleError,
)
from .migration import UNCHANGED, RbacMigration
from .models import DatabaseManager, get_db_manager
from .rules import RuleRegistry
from .schemas import Assignment, Item, ItemKind

__all__ = [
    "AccessDeniedError",
    "Assignment",
    "AuthManager",
    "AuthzError",
    "CorruptHierarchyError",
    "CycleError",
    "DatabaseManager",
    "DuplicateAssignmentError",
    "DuplicateEdgeError",
    "DuplicateNameError",
    "InvalidHierarchyError",
    "Item",
    "ItemKind",
    "NotFoundError",
    "RbacMigration",
    "RuleRegistry",
    "Transaction",
    "UNCHANGED",
    "UnknownRuleError",
    "get_db_manager",
]
