"""Propagation engine.

:class:`Workspace` is the entry point for every edit. It applies the edit to
its :class:`~wirecalc._store.GraphStore`, recomputes the affected modules in
dependency order and reports which modules' results changed.

Recomputing a module:

1. resolve each input port (the wired source output if connected, the local
   value otherwise);
2. if a resolved input is an error value, the result is that error;
   otherwise the registry's compute function runs;
3. a sink stores whatever it resolves, errors included, for display;
4. dependents are recomputed after the module, each exactly once.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeAlias

from ._errors import InvalidPortError
from ._history import DEFAULT_HISTORY_LIMIT, History
from ._registry import ModuleType
from ._results import ErrorValue, Result
from ._store import GraphStore, PortDirection, Position

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

    from ._store import Connection, GraphSnapshot, Module, PortRef

    ChangeListener: TypeAlias = Callable[[frozenset[int]], None]

logger = logging.getLogger(__name__)

CLONE_OFFSET = 30.0


@dataclass(frozen=True, slots=True)
class WorkspaceStats:
    """Size of the graph."""

    modules: int
    connections: int


class Workspace:
    """A dataflow graph that keeps every module's results up to date.

    Mutating methods run to completion, including the full propagation
    cascade, before returning. After each of them the set of module ids whose
    results changed is passed to every subscribed listener and kept in
    :attr:`last_changes`.

    Example:
        >>> ws = Workspace()
        >>> a = ws.add_module("number-input")
        >>> total = ws.add_module("addition")
        >>> _ = ws.connect(a.id, 0, total.id, 0)
        >>> sorted(ws.set_setting(a.id, 2.5))
        [1, 2]
        >>> ws.get(total.id).output_values
        (2.5,)

    """

    def __init__(self, store: GraphStore | None = None, *, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._store = store if store is not None else GraphStore()
        self._listeners: list[ChangeListener] = []
        self.history = History(limit=history_limit)
        self.last_changes: frozenset[int] = frozenset()

    # -- read access ----------------------------------------------------------

    def get(self, module_id: int) -> Module:
        return self._store.get(module_id)

    @property
    def modules(self) -> tuple[Module, ...]:
        return self._store.modules

    @property
    def connections(self) -> tuple[Connection, ...]:
        return self._store.connections

    @property
    def next_id(self) -> int:
        return self._store.next_id

    def connection_into(self, module_id: int, port_index: int) -> Connection | None:
        return self._store.connection_into(module_id, port_index)

    def connections_from(self, module_id: int) -> tuple[Connection, ...]:
        return self._store.connections_from(module_id)

    def stats(self) -> WorkspaceStats:
        return WorkspaceStats(modules=len(self._store), connections=len(self._store.connections))

    def __iter__(self) -> Iterator[Module]:
        return iter(self._store)

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, module_id: object) -> bool:
        return module_id in self._store

    # -- change notification --------------------------------------------------

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a callable receiving the ids changed by each operation.

        Returns:
            A function that removes the listener again.

        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, changed: Iterable[int]) -> frozenset[int]:
        changes = frozenset(changed)
        self.last_changes = changes
        for listener in list(self._listeners):
            listener(changes)
        return changes

    @contextmanager
    def _action(self, label: str) -> Iterator[None]:
        # The snapshot is only recorded if the body completes and changed something
        before = self._store.snapshot()
        yield
        if self._store.snapshot() != before:
            self.history.record(label, before)

    # -- propagation ----------------------------------------------------------

    def resolve_inputs(self, module_id: int) -> tuple[Result, ...]:
        """The effective value of each input port of a module.

        A wired port reads its source's current output (errors included); an
        unwired port reads the module's local value.

        Raises:
            NoSuchModuleError: If no such module exists.

        """
        module = self._store.get(module_id)
        resolved: list[Result] = []
        for index, local in enumerate(module.input_values):
            conn = self._store.connection_into(module_id, index)
            if conn is None:
                resolved.append(local)
            else:
                source = self._store.get(conn.source_module_id)
                resolved.append(source.output_values[conn.source_port_index])
        return tuple(resolved)

    def _compute(self, module_id: int) -> bool:
        """Recompute one module without cascading. Returns True if it changed."""
        module = self._store.get(module_id)
        definition = module.definition
        inputs = self.resolve_inputs(module_id)

        if definition.is_sink:
            shown = definition.evaluate(inputs)
            logger.debug("Module %d (%s) shows %s", module_id, module.type, shown)
            return self._store.record_result(module_id, (), display=shown)

        error = next((value for value in inputs if isinstance(value, ErrorValue)), None)
        result = error if error is not None else definition.evaluate(inputs, module.setting)
        logger.debug("Module %d (%s) = %s", module_id, module.type, result)
        return self._store.record_result(module_id, (result,) * definition.output_arity)

    def _recompute_from(self, module_ids: Iterable[int]) -> set[int]:
        order = self._store.dependency_graph().update_order(module_ids)
        logger.debug("Recompute order: %s", order)
        return {module_id for module_id in order if self._compute(module_id)}

    def recompute(self, module_id: int) -> frozenset[int]:
        """Recompute a module and everything downstream of it.

        Each affected module is computed exactly once, after all of its
        sources.

        Returns:
            Ids of modules whose results changed.

        Raises:
            NoSuchModuleError: If no such module exists. Callers must only
                pass ids obtained from this workspace.

        """
        self._store.get(module_id)
        return self._notify(self._recompute_from([module_id]))

    def recompute_all(self) -> frozenset[int]:
        """Recompute every module in dependency order.

        Used for a manual "recalculate everything" and after loading a graph.
        """
        order = self._store.dependency_graph().topological_order()
        logger.debug("Recomputing all %d modules", len(order))
        return self._notify({module_id for module_id in order if self._compute(module_id)})

    # -- module edits ---------------------------------------------------------

    def add_module(
        self,
        module_type: str,
        position: Position | None = None,
        name: str | None = None,
    ) -> Module:
        """Add a module and compute it with its default values.

        Raises:
            UnknownModuleTypeError: If the type is not registered.

        """
        with self._action("Add module"):
            module = self._store.add_module(module_type, position, name)
            self._compute(module.id)
        # A new module always needs rendering, even if its outputs stay at zero
        self._notify({module.id})
        return self._store.get(module.id)

    def remove_module(self, module_id: int) -> frozenset[int]:
        """Delete a module with its connections and update former dependents.

        Raises:
            NoSuchModuleError: If no such module exists.

        """
        with self._action("Remove module"):
            removed = self._store.remove_module(module_id)
            changed = self._recompute_from(
                conn.target_module_id for conn in removed if conn.target_module_id != module_id
            )
        return self._notify(changed)

    def clone_module(self, module_id: int) -> Module:
        """Duplicate a module's type, values and setting next to the original.

        Raises:
            NoSuchModuleError: If no such module exists.

        """
        original = self._store.get(module_id)
        with self._action("Clone module"):
            clone = self._store.add_module(
                original.type,
                original.position.offset(CLONE_OFFSET, CLONE_OFFSET),
                f"{original.name} (copy)",
            )
            for index, value in enumerate(original.input_values):
                self._store.set_local_input(clone.id, index, value)
            if original.setting is not None:
                self._store.set_setting(clone.id, original.setting)
            self._compute(clone.id)
        self._notify({clone.id})
        return self._store.get(clone.id)

    def rename_module(self, module_id: int, name: str) -> None:
        with self._action("Rename module"):
            self._store.rename_module(module_id, name)
        self._notify(())

    def move_module(self, module_id: int, position: Position) -> None:
        with self._action("Move module"):
            self._store.move_module(module_id, position)
        self._notify(())

    def set_local_input(self, module_id: int, port_index: int, value: float) -> frozenset[int]:
        """Set the value an unwired input port falls back to.

        Wired ports keep reading their source; the new value takes effect
        once the port is disconnected.

        Raises:
            NoSuchModuleError: If no such module exists.
            InvalidPortError: If the port index is out of range.
            InvalidValueError: If the value is not finite.

        """
        with self._action("Set input value"):
            self._store.set_local_input(module_id, port_index, value)
            changed = self._recompute_from([module_id])
        return self._notify(changed)

    def set_setting(self, module_id: int, value: float) -> frozenset[int]:
        """Set the value of a source module (number, slider or toggle).

        Raises:
            NoSuchModuleError: If no such module exists.
            NotASourceError: If the module is not a source.
            InvalidValueError: If the value is not finite.

        """
        with self._action("Set source value"):
            self._store.set_setting(module_id, value)
            changed = self._recompute_from([module_id])
        return self._notify(changed)

    # -- connection edits -----------------------------------------------------

    def connect(
        self,
        source_module_id: int,
        source_port_index: int,
        target_module_id: int,
        target_port_index: int,
    ) -> frozenset[int]:
        """Connect an output port to an input port and update the target.

        Connecting an existing edge again changes nothing.

        Raises:
            NoSuchModuleError: If either module does not exist.
            InvalidPortError: If a port index is out of range.
            PortAlreadyDrivenError: If the input port already has a producer.
            WouldCreateCycleError: If the connection would close a cycle.

        """
        with self._action("Connect"):
            self._store.connect(source_module_id, source_port_index, target_module_id, target_port_index)
            changed = self._recompute_from([target_module_id])
        return self._notify(changed)

    def disconnect(
        self,
        source_module_id: int,
        source_port_index: int,
        target_module_id: int,
        target_port_index: int,
    ) -> frozenset[int]:
        """Remove a connection and update its former target. No-op if absent."""
        with self._action("Disconnect"):
            removed = self._store.disconnect(source_module_id, source_port_index, target_module_id, target_port_index)
            changed = self._recompute_from([target_module_id]) if removed is not None else set()
        return self._notify(changed)

    def connect_ports(self, output: PortRef, input: PortRef) -> frozenset[int]:  # noqa: A002
        """Connect two ports addressed as ``(module_id, direction, index)``.

        Raises:
            InvalidPortError: If the directions are not output then input.

        """
        self._check_directions(output, input)
        return self.connect(output.module_id, output.index, input.module_id, input.index)

    def disconnect_ports(self, output: PortRef, input: PortRef) -> frozenset[int]:  # noqa: A002
        self._check_directions(output, input)
        return self.disconnect(output.module_id, output.index, input.module_id, input.index)

    @staticmethod
    def _check_directions(output: PortRef, input: PortRef) -> None:  # noqa: A002
        if output.direction != PortDirection.OUTPUT or input.direction != PortDirection.INPUT:
            msg = f"A connection must run from an output port to an input port, got {output} -> {input}"
            raise InvalidPortError(msg)

    # -- whole-graph edits ----------------------------------------------------

    def clear(self) -> frozenset[int]:
        """Remove every module and connection.

        Returns:
            Ids of the removed modules.

        """
        removed = [module.id for module in self._store]
        with self._action("Clear workspace"):
            self._store.clear()
        return self._notify(removed)

    def load_example(self) -> frozenset[int]:
        """Replace the graph with a small worked example.

        Two number inputs (15.5 and 25.3) feed an adder whose result is shown
        on a display.
        """
        removed = [module.id for module in self._store]
        with self._action("Load example"):
            self._store.clear()
            first = self._store.add_module(ModuleType.NUMBER_INPUT, Position(50, 50))
            second = self._store.add_module(ModuleType.NUMBER_INPUT, Position(50, 200))
            adder = self._store.add_module(ModuleType.ADDITION, Position(250, 125))
            display = self._store.add_module(ModuleType.DISPLAY, Position(450, 125))
            self._store.set_setting(first.id, 15.5)
            self._store.set_setting(second.id, 25.3)
            self._store.connect(first.id, 0, adder.id, 0)
            self._store.connect(second.id, 0, adder.id, 1)
            self._store.connect(adder.id, 0, display.id, 0)
            for module_id in self._store.dependency_graph().topological_order():
                self._compute(module_id)
        return self._notify({*removed, *(module.id for module in self._store)})

    def replace_graph(self, store: GraphStore, label: str = "Load graph") -> frozenset[int]:
        """Swap in a fully built store, e.g. one produced by a document import.

        The new graph is recomputed before it becomes visible.

        Returns:
            Ids of modules that were removed, added or changed.

        """
        scratch = Workspace(store)
        scratch.recompute_all()
        before = self._store.snapshot()
        with self._action(label):
            self._store.restore(store.snapshot())
        return self._notify(_diff(before, self._store.snapshot()))

    # -- history --------------------------------------------------------------

    def undo(self) -> frozenset[int] | None:
        """Restore the state before the last action.

        Returns:
            Ids of modules that were removed, added or changed, or None if
            there was nothing to undo.

        """
        current = self._store.snapshot()
        entry = self.history.undo(current)
        if entry is None:
            return None
        logger.debug("Undo: %s", entry.label)
        self._store.restore(entry.snapshot)
        return self._notify(_diff(current, entry.snapshot))

    def redo(self) -> frozenset[int] | None:
        """Re-apply the last undone action. None if there is nothing to redo."""
        current = self._store.snapshot()
        entry = self.history.redo(current)
        if entry is None:
            return None
        logger.debug("Redo: %s", entry.label)
        self._store.restore(entry.snapshot)
        return self._notify(_diff(current, entry.snapshot))

    def snapshot(self) -> GraphSnapshot:
        return self._store.snapshot()


def _diff(before: GraphSnapshot, after: GraphSnapshot) -> set[int]:
    """Ids of modules that differ in results or existence between snapshots."""
    old = {module.id: module for module in before.modules}
    new = {module.id: module for module in after.modules}
    changed = set(old.keys() ^ new.keys())
    for module_id in old.keys() & new.keys():
        a, b = old[module_id], new[module_id]
        if a.output_values != b.output_values or a.display != b.display:
            changed.add(module_id)
    return changed
