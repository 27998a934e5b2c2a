"""
Engine State (Data Model)
=========================
This module defines the data structures that describe a running calculation.

Why is this file needed?
------------------------
1. State Management: EngineState holds the operand being edited, the pending
   operator and the memory register in one immutable value. The engine swaps
   in a new value on every transition.
2. Undo: Because EngineState is frozen, a snapshot taken for the undo history
   can never be changed by later input.
3. Persistence: CalculationLogEntry is what gets serialized alongside the
   memory register.

Classes:
    Operator: The binary operator tokens.
    Topic: Change bus topics published by the engine.
    EngineState: The authoritative snapshot of the calculation.
    CalculationLogEntry: One completed calculation.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict, replace
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Dict, Optional


class Operator(StrEnum):
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    MODULO = "%"


class Topic(StrEnum):
    VALUE_CHANGED = "value-changed"
    MEMORY_CHANGED = "memory-changed"
    HISTORY_UPDATED = "history-updated"
    STATE_RESET = "state-reset"


# Sentinel for "no left operand"
EMPTY = ""


@dataclass(frozen=True)
class EngineState:
    """
    Snapshot of the calculation.

    Logic:
    1. 'operator' is set only while 'previous_value' holds a left operand.
    2. 'awaiting_operand' is True right after an operator or a result; the
       next digit then starts a new operand instead of extending this one.
    """
    current_value: str = "0"
    previous_value: str = EMPTY
    operator: Optional[Operator] = None
    awaiting_operand: bool = False
    history_label: str = ""
    memory_value: float = 0.0

    @property
    def has_pending_operation(self) -> bool:
        return self.previous_value != EMPTY and self.operator is not None

    def evolve(self, **changes: Any) -> EngineState:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def cleared(self) -> EngineState:
        """The reset state. Memory survives a reset."""
        return EngineState(memory_value=self.memory_value)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["operator"] = self.operator.value if self.operator else None
        return data


@dataclass(frozen=True)
class CalculationLogEntry:
    id: int
    expression: str
    result: str
    timestamp: str

    @staticmethod
    def create(entry_id: int, expression: str, result: str) -> CalculationLogEntry:
        return CalculationLogEntry(
            id=entry_id,
            expression=expression,
            result=result,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> CalculationLogEntry:
        """
        Build an entry from its serialized form.

        Raises:
            ValueError: If a field is missing or has the wrong type.
        """
        try:
            return CalculationLogEntry(
                id=int(data["id"]),
                expression=str(data["expression"]),
                result=str(data["result"]),
                timestamp=str(data.get("timestamp", "")),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed calculation log entry: {data!r}") from e
