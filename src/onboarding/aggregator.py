"""
Step Data Aggregator.

The combined record of everything the onboarding steps produced. It is the
only place the final step (and anything downstream) reads step output from.
Steps validate their own data before it gets here; the aggregator stores
what it is given.
"""

import copy
from collections.abc import Iterator
from enum import Enum
from typing import Any


class StepDataAggregator:
    """Payloads keyed by step. Recording a step again replaces its payload."""

    def __init__(self) -> None:
        self._data: dict[Enum, Any] = {}

    def record(self, step: Enum, payload: Any) -> None:
        # Later edits by the step must not reach the stored payload.
        self._data[step] = copy.deepcopy(payload)

    def get(self, step: Enum, default: Any = None) -> Any:
        if step not in self._data:
            return default
        return copy.deepcopy(self._data[step])

    def has(self, step: Enum) -> bool:
        return step in self._data

    def steps(self) -> list[Enum]:
        """Recorded steps in the order their enum declares them."""
        return sorted(self._data, key=lambda step: list(type(step)).index(step))

    def combined(self) -> dict[str, Any]:
        """Combined record keyed by step id."""
        return {step.value: copy.deepcopy(self._data[step]) for step in self.steps()}

    def __contains__(self, step: object) -> bool:
        return step in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[Enum]:
        return iter(self.steps())
