"""
Command History (Undo)
======================
Records reversible engine actions so they can be rolled back.

A Command is one generic record: the forward action plus the hooks to take
and re-apply a state snapshot. The snapshot is captured by the command itself
immediately before the action runs. History is linear and undo-only.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Callable, Generic, List, Optional, Tuple, TypeVar
import logging

from calculatorcore.config import UNDO_LIMIT

logger = logging.getLogger(__name__)

S = TypeVar("S")


class CommandKind(StrEnum):
    INPUT_DIGIT = "input_digit"
    INPUT_DECIMAL = "input_decimal_point"
    INPUT_OPERATOR = "input_operator"
    EVALUATE = "evaluate"
    EVALUATE_SCIENTIFIC = "evaluate_scientific"
    DELETE_LAST = "delete_last_digit"
    RESET = "reset"
    MEMORY = "memory"
    LOAD_FROM_LOG = "load_from_log"


@dataclass
class Command(Generic[S]):
    kind: CommandKind
    action: Callable[[], Any]
    capture: Callable[[], S]
    restore: Callable[[S], None]
    description: str = ""
    snapshot: Optional[S] = field(default=None, init=False)

    def execute(self) -> Any:
        self.snapshot = self.capture()
        return self.action()

    def undo(self) -> None:
        if self.snapshot is not None:
            self.restore(self.snapshot)


class CommandHistory:
    """
    Bounded list of executed commands with a cursor.

    Invariant: -1 <= current_index < len(commands).
    """

    def __init__(self, limit: int = UNDO_LIMIT) -> None:
        if limit < 1:
            raise ValueError("History limit must be at least 1")
        self.limit = limit
        self._commands: List[Command] = []
        self._index = -1

    def __len__(self) -> int:
        return len(self._commands)

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def commands(self) -> Tuple[Command, ...]:
        return tuple(self._commands)

    def execute(self, command: Command) -> Any:
        """
        Run command and record it.

        If the command raises, the error propagates and nothing is recorded.
        """
        result = command.execute()

        # Anything after the cursor is an undone future; drop it
        del self._commands[self._index + 1:]
        self._commands.append(command)
        self._index += 1

        if len(self._commands) > self.limit:
            self._commands.pop(0)
            self._index -= 1

        logger.debug(f"Executed {command.kind} {command.description}".rstrip())
        return result

    def undo(self) -> bool:
        if self._index < 0:
            return False
        command = self._commands[self._index]
        command.undo()
        self._index -= 1
        logger.debug(f"Undid {command.kind}")
        return True

    def can_undo(self) -> bool:
        return self._index >= 0

    def clear(self) -> None:
        self._commands.clear()
        self._index = -1
