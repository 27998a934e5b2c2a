"""
Operation Registry (Strategy Tables)
====================================
Pure numeric functions grouped into named strategies.

Why is this file needed?
------------------------
1. Dispatch: The engine only knows operator tokens and function names. This
   module maps them onto the arithmetic, so adding an operation never touches
   the engine.
2. Validation: Every call checks the strategy, the operation, the operand
   count and the operand values before computing, and maps domain problems
   onto the error taxonomy.

Strategies:
    basic: binary  + - * / %
    scientific: unary  sin cos tan log ln sqrt power factorial  (+ pi, e)
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Callable, Dict, Tuple
import logging
import math

import numpy as np

from calculatorcore.config import FACTORIAL_LIMIT
from calculatorcore.model.errors import (
    ArityError,
    DivisionByZero,
    DomainError,
    InvalidNumber,
    UnknownOperation,
    UnknownStrategy,
)

logger = logging.getLogger(__name__)


class Strategy(StrEnum):
    BASIC = "basic"
    SCIENTIFIC = "scientific"


@dataclass(frozen=True)
class OperationSpec:
    name: str
    arity: int
    func: Callable[..., float]


_DEFAULT_TABLES: Dict[Strategy, Dict[str, OperationSpec]] = {
    Strategy.BASIC: {},
    Strategy.SCIENTIFIC: {},
}

CONSTANTS: Dict[str, float] = {
    "pi": float(np.pi),
    "e": float(np.e),
}


def operation(strategy: Strategy, name: str, arity: int) -> Callable[[Callable[..., float]], Callable[..., float]]:
    """Decorator to register a function in a default strategy table."""
    def decorator(func: Callable[..., float]) -> Callable[..., float]:
        _DEFAULT_TABLES[strategy][name] = OperationSpec(name=name, arity=arity, func=func)
        return func
    return decorator


# --- BASIC ---

@operation(Strategy.BASIC, "+", arity=2)
def _add(a: float, b: float) -> float:
    return a + b


@operation(Strategy.BASIC, "-", arity=2)
def _subtract(a: float, b: float) -> float:
    return a - b


@operation(Strategy.BASIC, "*", arity=2)
def _multiply(a: float, b: float) -> float:
    return a * b


@operation(Strategy.BASIC, "/", arity=2)
def _divide(a: float, b: float) -> float:
    if b == 0:
        raise DivisionByZero("Division by zero")
    return a / b


@operation(Strategy.BASIC, "%", arity=2)
def _modulo(a: float, b: float) -> float:
    # Remainder keeps the sign of the dividend
    if b == 0:
        raise DivisionByZero("Modulo by zero")
    return float(np.fmod(a, b))


# --- SCIENTIFIC ---
# Trigonometric input is in degrees.

@operation(Strategy.SCIENTIFIC, "sin", arity=1)
def _sin(x: float) -> float:
    return float(np.sin(np.deg2rad(x)))


@operation(Strategy.SCIENTIFIC, "cos", arity=1)
def _cos(x: float) -> float:
    return float(np.cos(np.deg2rad(x)))


@operation(Strategy.SCIENTIFIC, "tan", arity=1)
def _tan(x: float) -> float:
    return float(np.tan(np.deg2rad(x)))


@operation(Strategy.SCIENTIFIC, "log", arity=1)
def _log10(x: float) -> float:
    if x <= 0:
        raise DomainError("Invalid logarithm input")
    return float(np.log10(x))


@operation(Strategy.SCIENTIFIC, "ln", arity=1)
def _ln(x: float) -> float:
    if x <= 0:
        raise DomainError("Invalid natural logarithm input")
    return float(np.log(x))


@operation(Strategy.SCIENTIFIC, "sqrt", arity=1)
def _sqrt(x: float) -> float:
    if x < 0:
        raise DomainError("Invalid square root input")
    return float(np.sqrt(x))


@operation(Strategy.SCIENTIFIC, "power", arity=1)
def _square(x: float) -> float:
    return float(np.square(x))


@operation(Strategy.SCIENTIFIC, "factorial", arity=1)
def _factorial(x: float) -> float:
    if x < 0 or not float(x).is_integer() or x > FACTORIAL_LIMIT:
        raise DomainError("Invalid factorial input")
    return float(math.factorial(int(x)))


class OperationRegistry:
    """
    Lookup and validated dispatch over the strategy tables.

    Each instance starts from a copy of the default tables, so operations
    added with register() stay local to that instance.
    """

    def __init__(self) -> None:
        self._tables: Dict[str, Dict[str, OperationSpec]] = {
            str(strategy): dict(table) for strategy, table in _DEFAULT_TABLES.items()
        }
        self._constants: Dict[str, float] = dict(CONSTANTS)

    def strategies(self) -> list[str]:
        return list(self._tables.keys())

    def operations(self, strategy: str) -> list[str]:
        return list(self._table(strategy).keys())

    def has_operation(self, strategy: str, op_name: str) -> bool:
        try:
            return op_name in self._table(strategy)
        except UnknownStrategy:
            return False

    def register(self, strategy: str, name: str, func: Callable[..., float], arity: int) -> None:
        """Add or replace an operation; unknown strategies are created."""
        if arity < 1:
            raise ValueError(f"Operation '{name}' must take at least one operand")
        self._tables.setdefault(str(strategy), {})[name] = OperationSpec(name=name, arity=arity, func=func)
        logger.debug(f"Registered operation '{name}' in strategy '{strategy}'")

    def constant(self, name: str) -> float:
        if name not in self._constants:
            raise UnknownOperation(f"Unknown constant: {name}")
        return self._constants[name]

    @property
    def constants(self) -> Dict[str, float]:
        return dict(self._constants)

    def apply(self, strategy: str, op_name: str, *operands: float) -> float:
        """
        Compute op_name over the operands using the given strategy.

        Raises:
            UnknownStrategy: If the strategy is not registered.
            UnknownOperation: If the strategy has no such operation.
            ArityError: If the operand count does not match.
            InvalidNumber: If an operand is not a finite number.
            DivisionByZero, DomainError: From the operation itself.
        """
        spec = self._table(strategy).get(op_name)
        if spec is None:
            raise UnknownOperation(f"Unknown operation: {op_name}")

        if len(operands) != spec.arity:
            raise ArityError(
                f"Operation '{op_name}' expects {spec.arity} operand(s), got {len(operands)}"
            )

        values: Tuple[float, ...] = tuple(self._validate_operand(v) for v in operands)

        # Overflow surfaces as inf and is rejected by the formatter
        with np.errstate(all="ignore"):
            result = spec.func(*values)

        logger.debug(f"{strategy}: {op_name}{values} = {result}")
        return result

    def _table(self, strategy: str) -> Dict[str, OperationSpec]:
        table = self._tables.get(str(strategy))
        if table is None:
            raise UnknownStrategy(f"Unknown strategy: {strategy}")
        return table

    @staticmethod
    def _validate_operand(value: float) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float, np.number)):
            raise InvalidNumber(f"Operand is not a number: {value!r}")
        try:
            value = float(value)
        except OverflowError as e:
            raise InvalidNumber(f"Operand is too large: {value!r}") from e
        if not math.isfinite(value):
            raise InvalidNumber(f"Operand is not finite: {value!r}")
        return value
