"""
Calculation Engine
==================
The state machine behind the keypad.

Why is this file needed?
------------------------
1. State: It owns the EngineState, the memory register and the bounded
   calculation log. Nothing outside may mutate them.
2. Orchestration: Each public operation computes through the
   OperationRegistry, commits a new EngineState, persists durable fields
   through the PersistenceGateway and then announces the change on the
   ChangeBus.
3. Undo: Every state-changing operation runs as a Command, so the state
   before it can be restored.

Transitions are all-or-nothing: a new EngineState is built first and only
committed when every step succeeded. A failing operation raises a
CalculatorError and leaves the engine exactly as it was.
"""
from __future__ import annotations

from collections import deque
from typing import Any, Callable, Deque, Dict, Optional, Tuple, Union
import logging
import math

from calculatorcore.config import CALCULATION_LOG_LIMIT, MAX_INPUT_LENGTH
from calculatorcore.controller.bus import ChangeBus, Handler
from calculatorcore.controller.history import Command, CommandHistory, CommandKind
from calculatorcore.model.errors import (
    CalculatorError,
    InputRejected,
    InvalidNumber,
    UnknownOperation,
)
from calculatorcore.model.io import InMemoryRepository, PersistenceGateway, Snapshot
from calculatorcore.model.operations import OperationRegistry, Strategy
from calculatorcore.model.state import (
    EMPTY,
    CalculationLogEntry,
    EngineState,
    Operator,
    Topic,
)
from calculatorcore.utils import Number, format_number, number_to_string, parse_operand

logger = logging.getLogger(__name__)

DIGITS = frozenset("0123456789")


class CalculationEngine:
    def __init__(
        self,
        gateway: Optional[PersistenceGateway] = None,
        bus: Optional[ChangeBus] = None,
        registry: Optional[OperationRegistry] = None,
        history: Optional[CommandHistory] = None,
        log_limit: int = CALCULATION_LOG_LIMIT,
    ) -> None:
        if log_limit < 1:
            raise ValueError("Calculation log limit must be at least 1")

        self._gateway = gateway if gateway is not None else InMemoryRepository()
        self._bus = bus if bus is not None else ChangeBus()
        self._registry = registry if registry is not None else OperationRegistry()
        self._history = history if history is not None else CommandHistory()

        self._state = EngineState()
        self._log: Deque[CalculationLogEntry] = deque(maxlen=log_limit)
        self._load_persisted()
        self._next_id = max((entry.id for entry in self._log), default=0) + 1

    # ---- ACCESSORS ----

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def current_value(self) -> str:
        return self._state.current_value

    @property
    def previous_value(self) -> str:
        return self._state.previous_value

    @property
    def operator(self) -> Optional[Operator]:
        return self._state.operator

    @property
    def awaiting_operand(self) -> bool:
        return self._state.awaiting_operand

    @property
    def history_label(self) -> str:
        return self._state.history_label

    @property
    def memory_value(self) -> float:
        return self._state.memory_value

    @property
    def calculation_log(self) -> Tuple[CalculationLogEntry, ...]:
        """Newest first."""
        return tuple(self._log)

    @property
    def constants(self) -> Dict[str, float]:
        return self._registry.constants

    @property
    def bus(self) -> ChangeBus:
        return self._bus

    @property
    def history(self) -> CommandHistory:
        return self._history

    def subscribe(self, topic: str, handler: Handler) -> None:
        self._bus.subscribe(topic, handler)

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        self._bus.unsubscribe(topic, handler)

    # ---- DIGIT ENTRY ----

    def input_digit(self, digit: str) -> str:
        """
        Type one digit into the current operand.

        Raises:
            InputRejected: If digit is not 0-9 or the operand would exceed
                the length cap.
        """
        return self._record(CommandKind.INPUT_DIGIT, lambda: self._input_digit(digit), str(digit))

    def _input_digit(self, digit: str) -> str:
        if not isinstance(digit, str) or digit not in DIGITS:
            raise InputRejected(f"Not a digit: {digit!r}", value=str(digit))

        state = self._state
        if state.awaiting_operand:
            new_value = digit
        else:
            new_value = digit if state.current_value == "0" else state.current_value + digit
            if len(new_value) > MAX_INPUT_LENGTH:
                raise InputRejected("Maximum digits reached", value=new_value)

        self._commit(state.evolve(current_value=new_value, awaiting_operand=False))
        return new_value

    def input_decimal_point(self) -> str:
        state = self._state
        if not state.awaiting_operand and "." in state.current_value:
            return state.current_value
        return self._record(CommandKind.INPUT_DECIMAL, self._input_decimal_point)

    def _input_decimal_point(self) -> str:
        state = self._state
        if state.awaiting_operand:
            new_state = state.evolve(current_value="0.", awaiting_operand=False)
        else:
            new_state = state.evolve(current_value=state.current_value + ".")
        self._commit(new_state)
        return new_state.current_value

    def delete_last_digit(self) -> str:
        """
        Remove the last character of the operand.

        A displayed result is edited in its canonical form ('1000', not
        '1,000'), and whatever remains must still parse as a number.
        """
        current = self._state.current_value
        text = current
        if self._state.awaiting_operand:
            text = number_to_string(parse_operand(current))

        new_value = "0"
        if len(text) > 1 and text != "0":
            new_value = text[:-1].rstrip("e+-")
            try:
                parse_operand(new_value)
            except InvalidNumber:
                new_value = "0"

        if new_value == current:
            return current
        return self._record(CommandKind.DELETE_LAST, lambda: self._replace_current(new_value))

    # ---- OPERATORS ----

    def input_operator(self, op: Union[str, Operator]) -> None:
        """
        Queue a binary operator, first evaluating whatever is pending.

        Evaluation is strictly left to right: 2 + 3 * 4 gives 20.

        Raises:
            UnknownOperation: If op is not a basic operator.
            DivisionByZero, InvalidNumber: From the chained evaluation.
        """
        operator = self._coerce_operator(op)
        self._record(CommandKind.INPUT_OPERATOR, lambda: self._input_operator(operator), str(operator))

    def _input_operator(self, operator: Operator) -> None:
        state = self._state
        current = parse_operand(state.current_value)
        current_value = state.current_value
        previous = state.previous_value

        if previous == EMPTY:
            previous = number_to_string(current)
        elif state.operator is not None and not state.awaiting_operand:
            result = self._registry.apply(Strategy.BASIC, state.operator, parse_operand(previous), current)
            current_value = format_number(result)
            previous = number_to_string(result)

        self._commit(state.evolve(
            current_value=current_value,
            previous_value=previous,
            operator=operator,
            awaiting_operand=True,
            history_label=f"{previous} {operator}",
        ))

    def evaluate(self) -> Optional[str]:
        """
        Complete the pending operation and log it.

        Returns the formatted result, or None if nothing was pending.
        """
        if not self._state.has_pending_operation:
            return None
        return self._record(CommandKind.EVALUATE, self._evaluate)

    def _evaluate(self) -> str:
        state = self._state
        current = parse_operand(state.current_value)
        previous = parse_operand(state.previous_value)

        result = self._registry.apply(Strategy.BASIC, state.operator, previous, current)
        formatted = format_number(result)
        expression = f"{state.previous_value} {state.operator} {number_to_string(current)}"

        self._commit(
            state.evolve(
                current_value=formatted,
                previous_value=EMPTY,
                operator=None,
                awaiting_operand=True,
                history_label=f"{expression} =",
            ),
            log_entry=self._new_log_entry(expression, formatted),
        )
        logger.info(f"Evaluated: {expression} = {formatted}")
        return formatted

    def evaluate_scientific(self, fn: str) -> str:
        """
        Apply a scientific function to the current value, or enter a constant.

        The logged expression shows the operand before evaluation, e.g.
        'sqrt(9)' with result '3'. A pending binary operation is kept, so
        '5 + sqrt(9) =' gives 8.
        """
        return self._record(CommandKind.EVALUATE_SCIENTIFIC, lambda: self._evaluate_scientific(fn), str(fn))

    def _evaluate_scientific(self, fn: str) -> str:
        state = self._state
        constants = self._registry.constants
        if fn in constants:
            result = constants[fn]
            expression = fn
        else:
            operand = parse_operand(state.current_value)
            result = self._registry.apply(Strategy.SCIENTIFIC, fn, operand)
            expression = f"{fn}({number_to_string(operand)})"

        formatted = format_number(result)
        self._commit(
            state.evolve(current_value=formatted, awaiting_operand=True),
            log_entry=self._new_log_entry(expression, formatted),
        )
        logger.info(f"Scientific: {expression} = {formatted}")
        return formatted

    def reset(self) -> None:
        """Back to '0' with nothing pending. Memory and the log survive."""
        self._record(CommandKind.RESET, self._reset)

    def _reset(self) -> None:
        prior = self._commit(self._state.cleared())
        self._bus.publish(Topic.STATE_RESET, prior)
        logger.info(f"Calculator reset (was {prior.to_dict()})")

    # ---- MEMORY ----

    def memory_store(self, value: Optional[Union[str, Number]] = None) -> None:
        number = self._operand_or_current(value)
        self._record(CommandKind.MEMORY, lambda: self._set_memory(number), f"store {number}")

    def memory_add(self, value: Optional[Union[str, Number]] = None) -> None:
        number = self._operand_or_current(value)
        self._record(
            CommandKind.MEMORY,
            lambda: self._set_memory(self._state.memory_value + number),
            f"add {number}",
        )

    def memory_subtract(self, value: Optional[Union[str, Number]] = None) -> None:
        number = self._operand_or_current(value)
        self._record(
            CommandKind.MEMORY,
            lambda: self._set_memory(self._state.memory_value - number),
            f"subtract {number}",
        )

    def memory_clear(self) -> None:
        self._record(CommandKind.MEMORY, lambda: self._set_memory(0.0), "clear")

    def memory_recall(self) -> str:
        """Put the memory value into the display and return it."""
        return self._record(CommandKind.MEMORY, self._memory_recall, "recall")

    def _memory_recall(self) -> str:
        text = number_to_string(self._state.memory_value)
        self._commit(self._state.evolve(current_value=text, awaiting_operand=True))
        logger.info(f"Memory recalled: {text}")
        return text

    def _set_memory(self, value: float) -> None:
        if not math.isfinite(value):
            raise InvalidNumber("Memory value out of range")
        self._commit(self._state.evolve(memory_value=float(value)), memory_touched=True)
        logger.info(f"Memory set: {self._state.memory_value}")

    # ---- CALCULATION LOG ----

    def clear_log(self) -> None:
        self._log.clear()
        self._commit(self._state, log_touched=True)
        logger.info("History cleared")

    def load_from_log(self, item: Union[CalculationLogEntry, str, Number]) -> str:
        """Recall a previous result (a log entry or its value) into the display."""
        text = item.result if isinstance(item, CalculationLogEntry) else str(item)
        parse_operand(text)
        return self._record(
            CommandKind.LOAD_FROM_LOG,
            lambda: self._replace_current(text, awaiting_operand=True),
            text,
        )

    # ---- DIRECT COMPUTATION ----

    def calculate(self, op: Union[str, Operator], a: Number, b: Number) -> float:
        try:
            result = self._registry.apply(Strategy.BASIC, str(op), a, b)
        except CalculatorError as e:
            logger.error(f"Calculation error: {a} {op} {b}: {e}")
            raise
        logger.info(f"Calculation: {a} {op} {b} = {result}")
        return result

    def scientific_calculate(self, fn: str, value: Number) -> float:
        try:
            result = self._registry.apply(Strategy.SCIENTIFIC, fn, value)
        except CalculatorError as e:
            logger.error(f"Scientific calculation error: {fn}({value}): {e}")
            raise
        logger.info(f"Scientific calculation: {fn}({value}) = {result}")
        return result

    @staticmethod
    def format_number(value: Number) -> str:
        return format_number(value)

    # ---- UNDO ----

    def undo(self) -> bool:
        if self._history.undo():
            logger.info("Undone")
            return True
        logger.info("Nothing to undo")
        return False

    def can_undo(self) -> bool:
        return self._history.can_undo()

    # ---- INTERNALS ----

    def _record(self, kind: CommandKind, action: Callable[[], Any], description: str = "") -> Any:
        command = Command(
            kind=kind,
            action=action,
            capture=lambda: self._state,
            restore=self._restore,
            description=description,
        )
        try:
            return self._history.execute(command)
        except CalculatorError as e:
            logger.warning(f"{kind} rejected: {e}")
            raise

    def _restore(self, state: EngineState) -> None:
        self._commit(state)

    def _replace_current(self, text: str, **changes: Any) -> str:
        self._commit(self._state.evolve(current_value=text, **changes))
        return text

    def _commit(
        self,
        new_state: EngineState,
        log_entry: Optional[CalculationLogEntry] = None,
        memory_touched: bool = False,
        log_touched: bool = False,
    ) -> EngineState:
        """
        Swap in new_state, persist, then publish. Returns the prior state.

        Nothing here may raise before self._state is assigned.
        """
        prior = self._state
        self._state = new_state

        if log_entry is not None:
            self._log.appendleft(log_entry)
            log_touched = True

        memory_changed = memory_touched or new_state.memory_value != prior.memory_value
        if memory_changed or log_touched:
            self._persist()

        if (new_state.current_value != prior.current_value
                or new_state.history_label != prior.history_label):
            self._bus.publish(Topic.VALUE_CHANGED, new_state.current_value)
        if memory_changed:
            self._bus.publish(Topic.MEMORY_CHANGED, new_state.memory_value)
        if log_touched:
            self._bus.publish(Topic.HISTORY_UPDATED, self.calculation_log)

        return prior

    def _persist(self) -> None:
        snapshot = Snapshot(memory_value=self._state.memory_value, calculation_log=tuple(self._log))
        try:
            saved = self._gateway.save(snapshot)
        except Exception:
            logger.exception("Persistence gateway raised on save")
            saved = False
        if not saved:
            logger.warning("State not persisted, continuing in memory only.")

    def _load_persisted(self) -> None:
        try:
            snapshot = self._gateway.load()
        except Exception:
            logger.exception("Persistence gateway raised on load")
            snapshot = None

        if snapshot is None:
            logger.info("No saved state, starting with defaults.")
            return

        self._state = EngineState(memory_value=snapshot.memory_value)
        # Stored newest first; keep the newest entries when over the limit
        self._log.extend(snapshot.calculation_log[:self._log.maxlen])
        logger.info(f"Restored memory {snapshot.memory_value} and {len(self._log)} log entries.")

    def _new_log_entry(self, expression: str, result: str) -> CalculationLogEntry:
        entry = CalculationLogEntry.create(self._next_id, expression, result)
        self._next_id += 1
        return entry

    def _operand_or_current(self, value: Optional[Union[str, Number]]) -> float:
        return parse_operand(self._state.current_value if value is None else value)

    @staticmethod
    def _coerce_operator(op: Union[str, Operator]) -> Operator:
        try:
            return Operator(str(op))
        except ValueError as e:
            raise UnknownOperation(f"Unknown operation: {op}") from e
