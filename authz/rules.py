"""Named rule functions attached to items and evaluated at check time.

A rule is any callable ``fn(identity, item, params) -> bool``. Items only
store the rule's name, so a rule can be registered after the items that
reference it; the name is resolved when an access check reaches the item.
Rules must not perform I/O or mutate their arguments.
"""
from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Mapping, Optional

from loguru import logger

from .errors import UnknownRuleError
from .schemas import Item

RuleFunc = Callable[[str, Item, Dict[str, Any]], bool]


class RuleRegistry:
    def __init__(self, rules: Optional[Mapping[str, RuleFunc]] = None):
        self._rules: Dict[str, RuleFunc] = {}
        self._lock = threading.Lock()
        for name, fn in (rules or {}).items():
            self.register(name, fn)

    def register(self, name: str, fn: RuleFunc) -> None:
        """Register `fn` under `name`, replacing any previous rule of that name."""
        if not name or not name.strip():
            raise ValueError("rule name must not be empty")
        if not callable(fn):
            raise TypeError(f"rule '{name}' must be callable")

        with self._lock:
            replaced = name in self._rules
            self._rules[name] = fn

        if replaced:
            logger.debug(f"Rule '{name}' replaced")
        else:
            logger.debug(f"Rule '{name}' registered")

    def rule(self, name: str) -> Callable[[RuleFunc], RuleFunc]:
        def wrapper(fn: RuleFunc) -> RuleFunc:
            self.register(name, fn)
            return fn

        return wrapper

    def unregister(self, name: str) -> bool:
        with self._lock:
            return self._rules.pop(name, None) is not None

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self._rules

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._rules)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._rules)

    def evaluate(
        self,
        name: str,
        identity: str,
        item: Item,
        params: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Run rule `name`. Raises UnknownRuleError if it is not registered."""
        with self._lock:
            fn = self._rules.get(name)
        if fn is None:
            raise UnknownRuleError(name)
        # rules receive a copy of params
        return bool(fn(identity, item, dict(params or {})))
