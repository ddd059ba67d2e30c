"""Tests for the propagation engine."""

import math

import pytest

from wirecalc._engine import CLONE_OFFSET, Workspace
from wirecalc._errors import (
    InvalidPortError,
    InvalidValueError,
    NoSuchModuleError,
    NotASourceError,
    PortAlreadyDrivenError,
    WouldCreateCycleError,
)
from wirecalc._results import ComputeErrorKind, ErrorValue, format_result
from wirecalc._store import PortDirection, PortRef, Position

DIVISION_BY_ZERO = ErrorValue(ComputeErrorKind.DIVISION_BY_ZERO)


@pytest.fixture
def sum_workspace() -> Workspace:
    """Two number inputs (15.5, 25.3) feeding an adder shown on a display.

    Ids: inputs 1 and 2, adder 3, display 4.
    """
    ws = Workspace()
    a = ws.add_module("number-input")
    b = ws.add_module("number-input")
    adder = ws.add_module("addition")
    display = ws.add_module("display")
    ws.connect(a.id, 0, adder.id, 0)
    ws.connect(b.id, 0, adder.id, 1)
    ws.connect(adder.id, 0, display.id, 0)
    ws.set_setting(a.id, 15.5)
    ws.set_setting(b.id, 25.3)
    return ws


def _results(ws: Workspace) -> dict[int, tuple[object, ...]]:
    return {module.id: (module.output_values, module.display) for module in ws}


class TestWorkedScenario:
    def test_sum_is_displayed(self, sum_workspace: Workspace) -> None:
        assert sum_workspace.get(3).output_values == (pytest.approx(40.8),)
        assert format_result(sum_workspace.get(4).display) == "40.800"

    def test_edit_propagates_without_recalculation(self, sum_workspace: Workspace) -> None:
        changed = sum_workspace.set_setting(1, -5.5)
        assert changed == frozenset({1, 3, 4})
        assert format_result(sum_workspace.get(4).display) == "19.800"

    def test_load_example_builds_the_same_graph(self) -> None:
        ws = Workspace()
        changed = ws.load_example()
        assert changed == frozenset({1, 2, 3, 4})
        assert ws.stats().modules == 4
        assert ws.stats().connections == 3
        assert format_result(ws.get(4).display) == "40.800"
        assert ws.get(1).position == Position(50, 50)


class TestAddModule:
    def test_new_module_is_computed(self) -> None:
        ws = Workspace()
        slider = ws.add_module("slider-input")
        assert slider.output_values == (50.0,)

    def test_new_module_is_reported(self) -> None:
        ws = Workspace()
        module = ws.add_module("addition")
        assert ws.last_changes == frozenset({module.id})

    def test_unrelated_modules_untouched(self, sum_workspace: Workspace) -> None:
        before = _results(sum_workspace)
        sum_workspace.add_module("multiplication")
        after = _results(sum_workspace)
        assert {k: after[k] for k in before} == before


class TestLocalInputs:
    def test_unwired_port_uses_local_value(self) -> None:
        ws = Workspace()
        adder = ws.add_module("addition")
        ws.set_local_input(adder.id, 0, 2)
        ws.set_local_input(adder.id, 1, 3)
        assert ws.get(adder.id).output_values == (5.0,)

    def test_wired_port_ignores_local_value(self, sum_workspace: Workspace) -> None:
        changed = sum_workspace.set_local_input(3, 0, 1000)
        assert changed == frozenset()
        assert sum_workspace.get(3).output_values == (pytest.approx(40.8),)

    def test_local_value_used_after_disconnect(self, sum_workspace: Workspace) -> None:
        sum_workspace.set_local_input(3, 0, 1.0)
        changed = sum_workspace.disconnect(1, 0, 3, 0)
        assert changed == frozenset({3, 4})
        assert sum_workspace.get(3).output_values == (pytest.approx(26.3),)

    def test_resolve_inputs(self, sum_workspace: Workspace) -> None:
        assert sum_workspace.resolve_inputs(3) == (15.5, 25.3)


class TestErrorPropagation:
    """Errors flow downstream as values instead of being raised."""

    @pytest.fixture
    def division(self) -> Workspace:
        # number(1) / number(2) -> addition(3) <- number(4); addition -> display(5)
        ws = Workspace()
        ws.add_module("number-input")
        ws.add_module("number-input")
        ws.add_module("division")
        ws.add_module("addition")
        ws.add_module("display")
        ws.connect(1, 0, 3, 0)
        ws.connect(2, 0, 3, 1)
        ws.connect(3, 0, 4, 0)
        ws.connect(4, 0, 5, 0)
        ws.set_setting(1, 10)
        return ws

    def test_zero_divisor_reaches_display(self, division: Workspace) -> None:
        assert division.get(3).output_values == (DIVISION_BY_ZERO,)
        assert division.get(4).output_values == (DIVISION_BY_ZERO,)
        assert division.get(5).display == DIVISION_BY_ZERO
        assert format_result(division.get(5).display) == "Error: DivisionByZero"

    def test_error_clears_when_divisor_changes(self, division: Workspace) -> None:
        division.set_setting(2, 4)
        assert division.get(5).display == pytest.approx(2.5)

    def test_unreachable_modules_unaffected(self, division: Workspace) -> None:
        other = division.add_module("number-input")
        assert division.get(other.id).output_values == (0.0,)

    def test_square_root_of_negative(self) -> None:
        ws = Workspace()
        source = ws.add_module("number-input")
        root = ws.add_module("square-root")
        ws.connect(source.id, 0, root.id, 0)
        ws.set_setting(source.id, -4)
        assert ws.get(root.id).output_values == (ErrorValue(ComputeErrorKind.INVALID_DOMAIN),)


class TestPropagationOrder:
    def test_diamond_computes_each_module_once(self, caplog: pytest.LogCaptureFixture) -> None:
        # 1 -> 2, 1 -> 3, 2 -> 4, 3 -> 4
        ws = Workspace()
        ws.add_module("number-input")
        ws.add_module("square-root")
        ws.add_module("square-root")
        ws.add_module("addition")
        ws.connect(1, 0, 2, 0)
        ws.connect(1, 0, 3, 0)
        ws.connect(2, 0, 4, 0)
        ws.connect(3, 0, 4, 1)

        with caplog.at_level("DEBUG", logger="wirecalc._engine"):
            ws.set_setting(1, 9)

        computed = [record.args[0] for record in caplog.records if record.msg == "Module %d (%s) = %s"]
        assert sorted(computed) == [1, 2, 3, 4]
        assert computed[-1] == 4
        assert ws.get(4).output_values == (6.0,)

    def test_confluence(self, sum_workspace: Workspace) -> None:
        """Interleaved edits leave the same results as a full recompute."""
        sum_workspace.add_module("multiplication")
        sum_workspace.connect(3, 0, 5, 0)
        sum_workspace.connect(2, 0, 5, 1)
        sum_workspace.set_setting(2, -1.25)
        sum_workspace.set_local_input(5, 1, 8)
        sum_workspace.disconnect(2, 0, 5, 1)
        sum_workspace.set_setting(1, 3)

        incremental = _results(sum_workspace)
        assert sum_workspace.recompute_all() == frozenset()
        assert _results(sum_workspace) == incremental

    def test_recompute_unknown_module(self) -> None:
        with pytest.raises(NoSuchModuleError):
            Workspace().recompute(1)

    def test_recompute_reports_nothing_when_up_to_date(self, sum_workspace: Workspace) -> None:
        assert sum_workspace.recompute(1) == frozenset()


class TestStructuralErrors:
    def test_cycle_rejected(self) -> None:
        ws = Workspace()
        ws.add_module("addition")
        ws.add_module("addition")
        ws.connect(1, 0, 2, 0)
        with pytest.raises(WouldCreateCycleError):
            ws.connect(2, 0, 1, 0)
        assert len(ws.connections) == 1

    def test_second_producer_rejected(self, sum_workspace: Workspace) -> None:
        extra = sum_workspace.add_module("number-input")
        sum_workspace.set_setting(extra.id, 100)
        with pytest.raises(PortAlreadyDrivenError):
            sum_workspace.connect(extra.id, 0, 3, 0)
        assert sum_workspace.resolve_inputs(3) == (15.5, 25.3)

    def test_failed_edit_is_not_recorded(self, sum_workspace: Workspace) -> None:
        depth = len(sum_workspace.history)
        with pytest.raises(InvalidPortError):
            sum_workspace.set_local_input(3, 7, 1.0)
        assert len(sum_workspace.history) == depth

    def test_set_setting_on_operator(self, sum_workspace: Workspace) -> None:
        with pytest.raises(NotASourceError):
            sum_workspace.set_setting(3, 1)


class TestRemoveModule:
    def test_dependents_fall_back_to_local_values(self, sum_workspace: Workspace) -> None:
        changed = sum_workspace.remove_module(1)
        assert changed == frozenset({3, 4})
        assert sum_workspace.get(3).output_values == (pytest.approx(25.3),)
        assert all(not conn.touches(1) for conn in sum_workspace.connections)

    def test_remove_sink(self, sum_workspace: Workspace) -> None:
        assert sum_workspace.remove_module(4) == frozenset()
        assert 4 not in sum_workspace


class TestPortAddressing:
    def test_connect_ports(self) -> None:
        ws = Workspace()
        ws.add_module("number-input")
        ws.add_module("display")
        ws.connect_ports(PortRef(1, PortDirection.OUTPUT, 0), PortRef(2, PortDirection.INPUT, 0))
        assert ws.connection_into(2, 0) is not None
        ws.disconnect_ports(PortRef(1, PortDirection.OUTPUT, 0), PortRef(2, PortDirection.INPUT, 0))
        assert ws.connections == ()

    def test_wrong_direction(self) -> None:
        ws = Workspace()
        ws.add_module("number-input")
        ws.add_module("display")
        with pytest.raises(InvalidPortError, match="output port to an input port"):
            ws.connect_ports(PortRef(2, PortDirection.INPUT, 0), PortRef(1, PortDirection.OUTPUT, 0))


class TestListeners:
    def test_listener_receives_changes(self, sum_workspace: Workspace) -> None:
        received: list[frozenset[int]] = []
        sum_workspace.subscribe(received.append)
        sum_workspace.set_setting(2, 0)
        assert received == [frozenset({2, 3, 4})]

    def test_listener_sees_final_state(self, sum_workspace: Workspace) -> None:
        shown: list[object] = []
        sum_workspace.subscribe(lambda _changes: shown.append(sum_workspace.get(4).display))
        sum_workspace.set_setting(1, 0)
        assert shown == [pytest.approx(25.3)]

    def test_unsubscribe(self, sum_workspace: Workspace) -> None:
        received: list[frozenset[int]] = []
        unsubscribe = sum_workspace.subscribe(received.append)
        unsubscribe()
        sum_workspace.set_setting(1, 1)
        assert received == []


class TestSupplementaryOperations:
    def test_clone(self, sum_workspace: Workspace) -> None:
        sum_workspace.rename_module(1, "Price")
        clone = sum_workspace.clone_module(1)
        original = sum_workspace.get(1)
        assert clone.id == 5
        assert clone.name == "Price (copy)"
        assert clone.setting == 15.5
        assert clone.output_values == (15.5,)
        assert clone.position == original.position.offset(CLONE_OFFSET, CLONE_OFFSET)
        assert sum_workspace.connections_from(clone.id) == ()

    def test_clone_copies_local_inputs(self) -> None:
        ws = Workspace()
        adder = ws.add_module("addition")
        ws.set_local_input(adder.id, 1, 2.5)
        clone = ws.clone_module(adder.id)
        assert clone.input_values == (0.0, 2.5)
        assert clone.output_values == (2.5,)

    def test_rename_and_move_do_not_recompute(self, sum_workspace: Workspace) -> None:
        sum_workspace.rename_module(3, "Total")
        sum_workspace.move_module(3, Position(1, 2))
        assert sum_workspace.last_changes == frozenset()
        assert sum_workspace.get(3).name == "Total"

    def test_clear(self, sum_workspace: Workspace) -> None:
        assert sum_workspace.clear() == frozenset({1, 2, 3, 4})
        assert len(sum_workspace) == 0
        assert sum_workspace.add_module("display").id == 5

    def test_stats(self, sum_workspace: Workspace) -> None:
        stats = sum_workspace.stats()
        assert (stats.modules, stats.connections) == (4, 3)


class TestUndoRedo:
    def test_undo_restores_previous_results(self, sum_workspace: Workspace) -> None:
        sum_workspace.set_setting(1, -5.5)
        changed = sum_workspace.undo()
        assert changed == frozenset({1, 3, 4})
        assert sum_workspace.get(4).display == pytest.approx(40.8)

    def test_redo(self, sum_workspace: Workspace) -> None:
        sum_workspace.set_setting(1, -5.5)
        sum_workspace.undo()
        sum_workspace.redo()
        assert sum_workspace.get(4).display == pytest.approx(19.8)

    def test_undo_remove_restores_connections(self, sum_workspace: Workspace) -> None:
        sum_workspace.remove_module(3)
        changed = sum_workspace.undo()
        assert changed is not None
        assert 3 in changed
        assert len(sum_workspace.connections) == 3

    def test_new_edit_drops_redo(self, sum_workspace: Workspace) -> None:
        sum_workspace.set_setting(1, 1)
        sum_workspace.undo()
        sum_workspace.set_setting(2, 2)
        assert sum_workspace.redo() is None

    def test_nothing_to_undo(self) -> None:
        assert Workspace().undo() is None

    def test_labels(self) -> None:
        ws = Workspace()
        ws.add_module("number-input")
        ws.add_module("display")
        ws.connect(1, 0, 2, 0)
        assert ws.history.labels() == ["Add module", "Add module", "Connect"]

    def test_history_limit(self) -> None:
        ws = Workspace(history_limit=2)
        for _ in range(5):
            ws.add_module("number-input")
        assert len(ws.history) == 2

    def test_unchanged_graph_is_not_recorded(self, sum_workspace: Workspace) -> None:
        depth = len(sum_workspace.history)
        sum_workspace.connect(1, 0, 3, 0)
        sum_workspace.disconnect(2, 0, 4, 0)
        sum_workspace.set_setting(1, 15.5)
        assert len(sum_workspace.history) == depth

    def test_missing_disconnect_keeps_redo(self, sum_workspace: Workspace) -> None:
        sum_workspace.set_setting(1, -5.5)
        sum_workspace.undo()
        sum_workspace.disconnect(1, 0, 4, 0)
        assert sum_workspace.redo() is not None
        assert sum_workspace.get(4).display == pytest.approx(19.8)

    def test_non_finite_value_is_not_recorded(self, sum_workspace: Workspace) -> None:
        depth = len(sum_workspace.history)
        with pytest.raises(InvalidValueError):
            sum_workspace.set_setting(1, math.inf)
        assert len(sum_workspace.history) == depth
        assert sum_workspace.get(4).display == pytest.approx(40.8)
