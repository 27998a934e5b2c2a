"""
Pytest configuration and fixtures.
"""
import pytest
import sys
import os

# Add src/ to the path so the package imports without installation
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src"))

from calculatorcore.controller.bus import ChangeBus
from calculatorcore.controller.engine import CalculationEngine
from calculatorcore.model.io import InMemoryRepository


@pytest.fixture
def bus():
    return ChangeBus()


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def engine(repository, bus):
    return CalculationEngine(gateway=repository, bus=bus)


@pytest.fixture
def events(bus):
    """Record every engine topic as (topic, payload) tuples."""
    from calculatorcore.model.state import Topic

    recorded = []
    for topic in Topic:
        bus.subscribe(topic, lambda payload, t=topic: recorded.append((t, payload)))
    return recorded


@pytest.fixture
def keypad(engine):
    """Type a number through the digit and decimal point operations."""
    def type_number(text):
        for char in text:
            if char == ".":
                engine.input_decimal_point()
            else:
                engine.input_digit(char)
    return type_number
