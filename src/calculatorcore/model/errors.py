"""
Error Taxonomy
==============
Every failure the engine can surface to its caller.

All of them derive from CalculatorError so a view can catch one type, and
each also derives from the closest built-in so plain ``except ValueError``
style handlers keep working. None of these leave the engine in a partially
updated state.
"""


class CalculatorError(Exception):
    """Base class for recoverable calculation failures."""


class DivisionByZero(CalculatorError, ZeroDivisionError):
    """Raised for '/' or '%' with a zero right-hand side."""


class DomainError(CalculatorError, ValueError):
    """Raised when a scientific function is outside its domain."""


class InvalidNumber(CalculatorError, ValueError):
    """Raised for NaN, infinite or unparseable numbers."""


class InputRejected(CalculatorError, ValueError):
    """Raised when digit entry is refused (length cap or bad character)."""

    def __init__(self, message: str, value: str = "") -> None:
        super().__init__(message)
        self.value = value


class UnknownOperation(CalculatorError, LookupError):
    """Raised when an operation name is not in the strategy table."""


class UnknownStrategy(CalculatorError, LookupError):
    """Raised when a strategy name is not registered."""


class ArityError(CalculatorError, TypeError):
    """Raised when an operation receives the wrong number of operands."""
