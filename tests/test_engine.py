"""
Tests for the calculation engine.
"""
import logging

import pytest

from calculatorcore.controller.engine import CalculationEngine
from calculatorcore.controller.history import CommandHistory
from calculatorcore.model.errors import (
    DivisionByZero,
    DomainError,
    InputRejected,
    InvalidNumber,
    UnknownOperation,
)
from calculatorcore.model.io import InMemoryRepository, PersistenceGateway, Snapshot
from calculatorcore.model.state import CalculationLogEntry, EngineState, Operator, Topic


class FailingRepository(PersistenceGateway):
    """Gateway that breaks every contract by raising."""

    def load(self):
        raise OSError("disk gone")

    def save(self, snapshot):
        raise OSError("disk gone")

    def clear(self):
        raise OSError("disk gone")


class TestInitialState:

    def test_defaults(self, engine):
        assert engine.current_value == "0"
        assert engine.previous_value == ""
        assert engine.operator is None
        assert engine.awaiting_operand is False
        assert engine.history_label == ""
        assert engine.memory_value == 0.0
        assert engine.calculation_log == ()
        assert not engine.can_undo()

    def test_restores_persisted_state(self):
        entries = [
            {"id": 7, "expression": "1 + 1", "result": "2", "timestamp": "t2"},
            {"id": 3, "expression": "2 * 2", "result": "4", "timestamp": "t1"},
        ]
        repo = InMemoryRepository({"memory_value": 12.5, "calculation_log": entries})

        engine = CalculationEngine(gateway=repo)

        assert engine.memory_value == 12.5
        assert [e.id for e in engine.calculation_log] == [7, 3]
        assert engine.current_value == "0"

    def test_new_entries_continue_ids(self):
        repo = InMemoryRepository({
            "memory_value": 0,
            "calculation_log": [{"id": 7, "expression": "1 + 1", "result": "2", "timestamp": "t"}],
        })
        engine = CalculationEngine(gateway=repo)

        engine.evaluate_scientific("pi")

        assert engine.calculation_log[0].id == 8

    def test_restored_log_is_capped_keeping_newest(self):
        entries = [
            {"id": i, "expression": f"{i}", "result": f"{i}", "timestamp": ""}
            for i in range(150, 0, -1)
        ]
        repo = InMemoryRepository({"memory_value": 0, "calculation_log": entries})

        engine = CalculationEngine(gateway=repo)

        assert len(engine.calculation_log) == 100
        assert engine.calculation_log[0].id == 150
        assert engine.calculation_log[-1].id == 51

    def test_failing_load_yields_defaults(self):
        engine = CalculationEngine(gateway=FailingRepository())

        assert engine.state == EngineState()
        assert engine.calculation_log == ()


class TestDigitEntry:

    def test_typing_reproduces_sequence(self, engine, keypad):
        keypad("123456789")

        assert engine.current_value == "123456789"

    def test_leading_zero_is_replaced(self, engine):
        engine.input_digit("0")
        engine.input_digit("7")

        assert engine.current_value == "7"

    def test_length_cap(self, engine, keypad):
        keypad("1" * 15)

        with pytest.raises(InputRejected):
            engine.input_digit("2")

        assert engine.current_value == "1" * 15

    def test_rejected_input_is_not_undoable(self, engine, keypad):
        keypad("1" * 15)
        depth = len(engine.history)

        with pytest.raises(InputRejected):
            engine.input_digit("2")

        assert len(engine.history) == depth

    @pytest.mark.parametrize("bad", ["a", "12", "", ".", 5, None])
    def test_non_digit_rejected(self, engine, bad):
        with pytest.raises(InputRejected):
            engine.input_digit(bad)
        assert engine.state == EngineState()

    def test_digit_after_operator_starts_new_operand(self, engine, keypad):
        keypad("12")
        engine.input_operator("+")
        engine.input_digit("3")

        assert engine.current_value == "3"
        assert engine.awaiting_operand is False

    def test_decimal_point(self, engine, keypad):
        keypad("3.14")

        assert engine.current_value == "3.14"

    def test_second_decimal_point_ignored(self, engine, keypad):
        keypad("3.1")
        depth = len(engine.history)

        assert engine.input_decimal_point() == "3.1"
        assert len(engine.history) == depth

    def test_decimal_point_when_awaiting(self, engine, keypad):
        keypad("5")
        engine.input_operator("*")
        engine.input_decimal_point()

        assert engine.current_value == "0."
        assert engine.awaiting_operand is False

    def test_delete_last_digit(self, engine, keypad):
        keypad("123")
        engine.delete_last_digit()

        assert engine.current_value == "12"

    def test_delete_single_character_resets_to_zero(self, engine):
        engine.input_digit("7")
        engine.delete_last_digit()

        assert engine.current_value == "0"

    def test_delete_on_zero_is_noop(self, engine):
        assert engine.delete_last_digit() == "0"
        assert not engine.can_undo()

    def test_delete_from_exponential_result(self, engine, keypad):
        keypad("1234567")
        engine.input_operator("*")
        keypad("1234567")
        assert engine.evaluate() == "1.52416e+12"

        engine.delete_last_digit()
        engine.delete_last_digit()

        assert engine.current_value == "15241556774"
        engine.input_operator("+")
        engine.memory_store()
        assert engine.memory_value == 15241556774.0

    def test_delete_from_grouped_result(self, engine, keypad):
        keypad("999")
        engine.input_operator("+")
        keypad("1")
        assert engine.evaluate() == "1,000"

        engine.delete_last_digit()

        assert engine.current_value == "100"

    def test_every_delete_leaves_a_number(self, engine):
        engine.load_from_log("1e+21")

        assert engine.delete_last_digit() == "1e+2"
        assert engine.delete_last_digit() == "10"
        engine.input_operator("+")
        assert engine.previous_value == "10"

    def test_delete_leaving_minus_sign(self, engine):
        engine.load_from_log("-5")
        engine.delete_last_digit()

        assert engine.current_value == "0"


class TestArithmetic:

    def test_simple_evaluation(self, engine, keypad):
        keypad("2")
        engine.input_operator("+")
        keypad("3")

        assert engine.evaluate() == "5"
        assert engine.current_value == "5"
        assert engine.previous_value == ""
        assert engine.operator is None
        assert engine.awaiting_operand is True
        assert engine.history_label == "2 + 3 ="

    def test_operator_sets_label_and_pending(self, engine, keypad):
        keypad("5")
        engine.input_operator("+")

        assert engine.previous_value == "5"
        assert engine.operator == Operator.ADD
        assert engine.awaiting_operand is True
        assert engine.history_label == "5 +"

    def test_left_to_right_chaining(self, engine, keypad):
        keypad("2")
        engine.input_operator("+")
        keypad("3")
        engine.input_operator("*")

        assert engine.current_value == "5"
        assert engine.previous_value == "5"
        assert engine.history_label == "5 *"

        keypad("4")
        assert engine.evaluate() == "20"

    def test_replacing_operator_does_not_evaluate(self, engine, keypad):
        keypad("6")
        engine.input_operator("+")
        engine.input_operator("-")
        keypad("2")

        assert engine.operator == Operator.SUBTRACT
        assert engine.evaluate() == "4"

    def test_evaluate_without_pending_is_noop(self, engine, keypad):
        keypad("9")

        assert engine.evaluate() is None
        assert engine.current_value == "9"
        assert engine.calculation_log == ()

    def test_evaluate_is_idempotent(self, engine, keypad):
        keypad("2")
        engine.input_operator("*")
        keypad("4")
        engine.evaluate()
        state = engine.state
        log = engine.calculation_log

        assert engine.evaluate() is None
        assert engine.state == state
        assert engine.calculation_log == log

    def test_evaluate_uses_left_operand_when_awaiting(self, engine, keypad):
        keypad("5")
        engine.input_operator("+")

        assert engine.evaluate() == "10"

    def test_result_is_grouped(self, engine, keypad):
        keypad("500")
        engine.input_operator("*")
        keypad("2")

        assert engine.evaluate() == "1,000"

    def test_grouped_result_can_be_reused(self, engine, keypad):
        keypad("500")
        engine.input_operator("*")
        keypad("4")
        engine.evaluate()
        engine.input_operator("+")
        keypad("1")

        assert engine.evaluate() == "2,001"

    def test_division_by_zero_leaves_state_unchanged(self, engine, keypad):
        keypad("5")
        engine.input_operator("/")
        keypad("0")
        before = engine.state

        with pytest.raises(DivisionByZero):
            engine.evaluate()

        assert engine.state == before
        assert engine.calculation_log == ()

    def test_chained_division_by_zero(self, engine, keypad):
        keypad("5")
        engine.input_operator("/")
        keypad("0")
        before = engine.state

        with pytest.raises(DivisionByZero):
            engine.input_operator("+")

        assert engine.state == before

    def test_unknown_operator(self, engine, keypad):
        keypad("5")

        with pytest.raises(UnknownOperation):
            engine.input_operator("^")
        assert engine.operator is None

    def test_overflow_is_invalid_number(self, engine):
        engine.load_from_log("1e200")
        engine.input_operator("*")
        engine.load_from_log("1e200")
        before = engine.state

        with pytest.raises(InvalidNumber):
            engine.evaluate()
        assert engine.state == before

    def test_log_entry(self, engine, keypad):
        keypad("7")
        engine.input_operator("-")
        keypad("2.5")
        engine.evaluate()

        entry = engine.calculation_log[0]
        assert entry.expression == "7 - 2.5"
        assert entry.result == "4.5"
        assert entry.timestamp

    def test_trailing_decimal_point_in_expression(self, engine, keypad):
        keypad("4")
        engine.input_operator("+")
        keypad("1.")
        engine.evaluate()

        assert engine.calculation_log[0].expression == "4 + 1"


class TestScientific:

    def test_function(self, engine, keypad):
        keypad("9")

        assert engine.evaluate_scientific("sqrt") == "3"
        assert engine.current_value == "3"
        assert engine.awaiting_operand is True

    def test_log_uses_operand_before_evaluation(self, engine, keypad):
        keypad("9")
        engine.evaluate_scientific("sqrt")

        entry = engine.calculation_log[0]
        assert entry.expression == "sqrt(9)"
        assert entry.result == "3"

    def test_constant(self, engine):
        engine.evaluate_scientific("pi")

        assert engine.current_value == "3.14159e+00"
        assert engine.calculation_log[0].expression == "pi"

    def test_pending_operation_is_kept(self, engine, keypad):
        keypad("5")
        engine.input_operator("+")
        keypad("9")
        engine.evaluate_scientific("sqrt")

        assert engine.evaluate() == "8"

    def test_domain_error_leaves_state_unchanged(self, engine, keypad):
        keypad("171")
        before = engine.state

        with pytest.raises(DomainError):
            engine.evaluate_scientific("factorial")

        assert engine.state == before
        assert engine.calculation_log == ()

    def test_unknown_function(self, engine):
        with pytest.raises(UnknownOperation):
            engine.evaluate_scientific("cosh")

    def test_constants_accessor(self, engine):
        assert set(engine.constants) == {"pi", "e"}


class TestDirectCalculation:

    def test_calculate(self, engine):
        assert engine.calculate("+", 2, 3) == 5

    def test_calculate_division_by_zero(self, engine):
        with pytest.raises(DivisionByZero):
            engine.calculate("/", 5, 0)

    def test_scientific_calculate(self, engine):
        assert engine.scientific_calculate("factorial", 5) == 120

    def test_scientific_calculate_domain_error(self, engine):
        with pytest.raises(DomainError):
            engine.scientific_calculate("factorial", 171)

    def test_format_number(self, engine):
        assert engine.format_number(1000) == "1,000"
        assert engine.format_number(1234567890123) == "1.23457e+12"

    def test_direct_calculation_does_not_touch_state(self, engine):
        engine.calculate("*", 6, 7)

        assert engine.state == EngineState()
        assert not engine.can_undo()


class TestReset:

    def test_reset(self, engine, keypad):
        engine.memory_store(3)
        keypad("5")
        engine.input_operator("+")
        keypad("2")
        engine.evaluate()

        engine.reset()

        assert engine.current_value == "0"
        assert engine.previous_value == ""
        assert engine.operator is None
        assert engine.history_label == ""
        assert engine.awaiting_operand is False
        assert engine.memory_value == 3.0
        assert len(engine.calculation_log) == 1

    def test_reset_logs_prior_state(self, engine, keypad, caplog):
        keypad("6")
        engine.input_operator("*")

        with caplog.at_level(logging.INFO, logger="calculatorcore"):
            engine.reset()

        assert "'current_value': '6'" in caplog.text
        assert "'operator': '*'" in caplog.text

    def test_state_to_dict_is_plain(self):
        state = EngineState(current_value="6", previous_value="6", operator=Operator.MULTIPLY)

        assert state.to_dict() == {
            "current_value": "6",
            "previous_value": "6",
            "operator": "*",
            "awaiting_operand": False,
            "history_label": "",
            "memory_value": 0.0,
        }

    def test_reset_publishes_prior_state(self, engine, keypad, events):
        keypad("42")
        prior = engine.state

        engine.reset()

        assert events[-2:] == [(Topic.VALUE_CHANGED, "0"), (Topic.STATE_RESET, prior)]


class TestMemory:

    def test_store_and_recall(self, engine):
        engine.memory_store(42)

        assert engine.memory_recall() == "42"
        assert engine.current_value == "42"
        assert engine.awaiting_operand is True

    def test_store_defaults_to_current_value(self, engine, keypad):
        keypad("12.5")
        engine.memory_store()

        assert engine.memory_value == 12.5

    def test_add_and_subtract(self, engine):
        engine.memory_store("1,000")
        engine.memory_add(5)
        engine.memory_subtract("2.5")

        assert engine.memory_value == 1002.5

    def test_clear(self, engine):
        engine.memory_store(8)
        engine.memory_clear()

        assert engine.memory_value == 0
        assert engine.memory_recall() == "0"

    def test_invalid_value(self, engine):
        with pytest.raises(InvalidNumber):
            engine.memory_store("abc")
        assert engine.memory_value == 0

    def test_memory_persisted(self, engine, repository):
        engine.memory_store(7)

        assert repository.data["memory_value"] == 7.0

    def test_memory_event_after_persist(self, engine, repository, bus):
        seen = []
        bus.subscribe(Topic.MEMORY_CHANGED, lambda v: seen.append((v, repository.data["memory_value"])))

        engine.memory_add(4)

        assert seen == [(4.0, 4.0)]

    def test_clear_publishes_even_when_zero(self, engine, events):
        engine.memory_clear()

        assert (Topic.MEMORY_CHANGED, 0.0) in events

    def test_overflow_rejected(self, engine):
        engine.memory_store(1.7e308)

        with pytest.raises(InvalidNumber):
            engine.memory_add(1.7e308)
        assert engine.memory_value == 1.7e308


class TestCalculationLog:

    def test_newest_first_and_capped(self, engine):
        for i in range(150):
            engine.load_from_log(str(i))
            engine.evaluate_scientific("power")

        log = engine.calculation_log
        assert len(log) == 100
        assert log[0].expression == "power(149)"
        assert log[-1].expression == "power(50)"

    def test_log_is_immutable_copy(self, engine):
        engine.evaluate_scientific("e")
        log = engine.calculation_log

        assert isinstance(log, tuple)
        engine.clear_log()
        assert len(log) == 1

    def test_log_persisted(self, engine, repository):
        engine.evaluate_scientific("pi")

        stored = repository.data["calculation_log"]
        assert len(stored) == 1
        assert stored[0]["expression"] == "pi"

    def test_clear_log(self, engine, repository, events):
        engine.evaluate_scientific("pi")
        engine.clear_log()

        assert engine.calculation_log == ()
        assert repository.data["calculation_log"] == []
        assert events[-1] == (Topic.HISTORY_UPDATED, ())

    def test_load_from_log(self, engine):
        engine.evaluate_scientific("e")
        entry = engine.calculation_log[0]
        engine.reset()

        assert engine.load_from_log(entry) == entry.result
        assert engine.current_value == entry.result
        assert engine.awaiting_operand is True

    def test_load_from_log_rejects_garbage(self, engine):
        with pytest.raises(InvalidNumber):
            engine.load_from_log("oops")

    def test_ids_are_monotonic(self, engine):
        for fn in ("pi", "e", "pi"):
            engine.evaluate_scientific(fn)

        ids = [entry.id for entry in engine.calculation_log]
        assert ids == sorted(ids, reverse=True)
        assert len(set(ids)) == 3


class TestEvents:

    def test_value_changed_on_digit(self, engine, events):
        engine.input_digit("4")

        assert events == [(Topic.VALUE_CHANGED, "4")]

    def test_evaluate_publishes_value_then_history(self, engine, keypad, events):
        keypad("1")
        engine.input_operator("+")
        keypad("1")
        events.clear()

        engine.evaluate()

        topics = [topic for topic, _ in events]
        assert topics == [Topic.VALUE_CHANGED, Topic.HISTORY_UPDATED]
        log_payload = events[1][1]
        assert isinstance(log_payload, tuple)
        assert isinstance(log_payload[0], CalculationLogEntry)

    def test_failed_operation_publishes_nothing(self, engine, keypad, events):
        keypad("5")
        engine.input_operator("/")
        keypad("0")
        events.clear()

        with pytest.raises(DivisionByZero):
            engine.evaluate()

        assert events == []

    def test_broken_subscriber_does_not_break_engine(self, engine, bus):
        def broken(_):
            raise RuntimeError("render failed")

        bus.subscribe(Topic.VALUE_CHANGED, broken)
        engine.input_digit("3")

        assert engine.current_value == "3"

    def test_engine_subscribe_shortcut(self, engine):
        seen = []
        engine.subscribe(Topic.VALUE_CHANGED, seen.append)
        engine.input_digit("1")
        engine.unsubscribe(Topic.VALUE_CHANGED, seen.append)
        engine.input_digit("2")

        assert seen == ["1"]


class TestUndo:

    def test_undo_digit(self, engine, keypad):
        keypad("12")

        assert engine.undo() is True
        assert engine.current_value == "1"

    def test_undo_evaluate_restores_pending(self, engine, keypad):
        keypad("2")
        engine.input_operator("+")
        keypad("3")
        before = engine.state
        engine.evaluate()

        engine.undo()

        assert engine.state == before
        # The log is not rolled back
        assert len(engine.calculation_log) == 1

    def test_undo_reset(self, engine, keypad):
        keypad("77")
        engine.reset()
        engine.undo()

        assert engine.current_value == "77"

    def test_undo_memory_restores_and_persists(self, engine, repository, events):
        engine.memory_store(5)
        events.clear()

        engine.undo()

        assert engine.memory_value == 0.0
        assert repository.data["memory_value"] == 0.0
        assert (Topic.MEMORY_CHANGED, 0.0) in events

    def test_undo_empty(self, engine):
        assert engine.undo() is False

    def test_undo_depth_cap(self, engine):
        for i in range(60):
            engine.load_from_log(str(i))

        restorations = sum(engine.undo() for _ in range(60))

        assert restorations == 50
        assert engine.undo() is False
        assert engine.current_value == "9"

    def test_custom_history_limit(self):
        engine = CalculationEngine(history=CommandHistory(limit=2))
        for digit in "123":
            engine.input_digit(digit)

        assert engine.undo() and engine.undo()
        assert not engine.undo()
        assert engine.current_value == "1"

    def test_snapshots_do_not_alias_live_state(self, engine, keypad):
        keypad("1")
        snapshot = engine.history.commands[-1].snapshot
        keypad("23")

        assert snapshot == EngineState()


class TestPersistenceFailures:

    def test_failing_save_does_not_raise(self):
        engine = CalculationEngine(gateway=FailingRepository())

        engine.memory_store(3)
        engine.evaluate_scientific("pi")

        assert engine.memory_value == 3.0
        assert len(engine.calculation_log) == 1

    def test_save_returning_false(self):
        class ReadOnly(InMemoryRepository):
            def save(self, snapshot):
                return False

        engine = CalculationEngine(gateway=ReadOnly())
        engine.memory_store(2)

        assert engine.memory_value == 2.0

    def test_state_survives_new_engine(self, repository):
        first = CalculationEngine(gateway=repository)
        first.memory_store(11)
        first.evaluate_scientific("e")

        second = CalculationEngine(gateway=repository)

        assert second.memory_value == 11.0
        assert second.calculation_log == first.calculation_log

    def test_snapshot_loaded_once(self):
        class Counting(InMemoryRepository):
            loads = 0

            def load(self):
                Counting.loads += 1
                return Snapshot(memory_value=1.0)

        engine = CalculationEngine(gateway=Counting())
        engine.memory_add(1)
        engine.undo()

        assert Counting.loads == 1
