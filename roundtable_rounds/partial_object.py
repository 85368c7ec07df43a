# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Incremental merge of partially streamed structured objects.

Structured streams deliver a growing object one partial parse at a time.
The reducer folds each partial into the accumulated value without caring
how the transport parsed it: nested objects merge key by key, while
strings, numbers and lists from a later partial replace earlier ones. A
``None`` value means "not streamed yet" and never erases a known field.
"""

import copy
from typing import Any, Dict, Optional


def merge_partial(current: Any, delta: Any) -> Any:
    """Merge one partial object into the accumulated value.

    Returns:
        A new merged value; neither input is mutated
    """
    if delta is None:
        return copy.deepcopy(current)
    if isinstance(delta, dict) and isinstance(current, dict):
        merged = copy.deepcopy(current)
        for key, value in delta.items():
            if value is None:
                continue
            merged[key] = merge_partial(current.get(key), value)
        return merged
    if isinstance(delta, dict):
        return {k: copy.deepcopy(v) for k, v in delta.items() if v is not None}
    return copy.deepcopy(delta)


class PartialObjectReducer:
    """Accumulates partial objects of one structured stream."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._value: Dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self.updates = 0

    @property
    def value(self) -> Dict[str, Any]:
        return copy.deepcopy(self._value)

    def apply(self, delta: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if delta:
            self._value = merge_partial(self._value, delta)
            self.updates += 1
        return self.value

    def reset(self) -> None:
        self._value = {}
        self.updates = 0
