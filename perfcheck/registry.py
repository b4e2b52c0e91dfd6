"""
Active-context registry: finalized contexts grouped by owning test class.

The host owns one registry and passes it to the report publisher, so report
generators receive every evaluated method of a class in one batch.

Lifecycle per class key:
- start_run(): clears whatever a previous run of the same class left behind
- register(): adds one context (exactly once)
- contexts(): mapping test_id -> context handed to report generators
"""
from __future__ import annotations

import threading
from typing import Dict, List

from perfcheck.context import EvaluationContext
from perfcheck.exceptions import PerfCheckStateError


class ActiveContextRegistry:
    """Thread-safe mapping of class key -> {test_id: EvaluationContext}."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_class: Dict[str, Dict[str, EvaluationContext]] = {}

    def start_run(self, class_key: str) -> None:
        """Begin a fresh run for class_key, dropping contexts of earlier runs."""
        with self._lock:
            self._by_class[class_key] = {}

    def register(self, class_key: str, context: EvaluationContext) -> None:
        """
        Add a context under its owning class.

        Raises:
            PerfCheckStateError: If a context with the same test_id is
                already registered for this run of the class.
        """
        with self._lock:
            contexts = self._by_class.setdefault(class_key, {})
            if context.test_id in contexts:
                raise PerfCheckStateError(
                    f"Context for {context.test_id} is already registered",
                    code="context_already_registered",
                    details={"class_key": class_key, "test_id": context.test_id},
                )
            contexts[context.test_id] = context

    def contexts(self, class_key: str) -> Dict[str, EvaluationContext]:
        with self._lock:
            return dict(self._by_class.get(class_key, {}))

    def pop(self, class_key: str) -> Dict[str, EvaluationContext]:
        """Remove and return the contexts of class_key."""
        with self._lock:
            return self._by_class.pop(class_key, {})

    def class_keys(self) -> List[str]:
        with self._lock:
            return list(self._by_class)

    def clear(self) -> None:
        with self._lock:
            self._by_class.clear()

    def __len__(self) -> int:
        with self._lock:
            return sum(len(c) for c in self._by_class.values())
