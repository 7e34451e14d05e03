"""Exceptions raised by the authorization stores and engine."""
from __future__ import annotations

from typing import Iterable


class AuthzError(Exception):
    """Base class for every error raised by authz."""


class DuplicateNameError(AuthzError):
    def __init__(self, name: str):
        self.item_name = name
        super().__init__(f"Item '{name}' already exists")


class DuplicateEdgeError(AuthzError):
    def __init__(self, parent: str, child: str):
        self.parent = parent
        self.child = child
        super().__init__(f"'{child}' is already a child of '{parent}'")


class DuplicateAssignmentError(AuthzError):
    def __init__(self, identity: str, item_name: str):
        self.identity = identity
        self.item_name = item_name
        super().__init__(f"'{item_name}' is already assigned to '{identity}'")


class CycleError(AuthzError):
    def __init__(self, parent: str, child: str):
        self.parent = parent
        self.child = child
        super().__init__(
            f"Cannot add '{child}' as a child of '{parent}': "
            "a loop would be created in the hierarchy"
        )


class InvalidHierarchyError(AuthzError):
    """Raised when an edge or update would break the item kind rules."""


class NotFoundError(AuthzError, LookupError):
    """Raised when an item or assignment does not exist."""


class UnknownRuleError(AuthzError, LookupError):
    def __init__(self, rule_name: str):
        self.rule_name = rule_name
        super().__init__(f"Rule '{rule_name}' is not registered")


class CorruptHierarchyError(AuthzError):
    """A loop was found in stored data while walking the hierarchy.

    The graph API never creates loops, so this means the tables were edited
    behind its back. It is never recovered from automatically.
    """

    def __init__(self, path: Iterable[str]):
        self.path = list(path)
        super().__init__("Hierarchy loop detected: " + " -> ".join(self.path))


class AccessDeniedError(AuthzError, PermissionError):
    def __init__(self, identity: str, permission: str):
        self.identity = identity
        self.permission = permission
        super().__init__(f"Access denied: '{identity}' lacks '{permission}'")
