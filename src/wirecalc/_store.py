"""Graph store: the single owner of modules and connections.

All structural invariants are enforced here, before anything is mutated:

- connections join an existing output port to an existing input port;
- an input port has at most one incoming connection;
- the graph stays acyclic.

Modules and connections are frozen dataclasses, and every accessor returns
tuples, so callers can only change the graph through the store's methods.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import TYPE_CHECKING

from ._errors import (
    InvalidPortError,
    InvalidValueError,
    NoSuchModuleError,
    NotASourceError,
    PortAlreadyDrivenError,
    WouldCreateCycleError,
)
from ._graph import DependencyGraph
from ._registry import ModuleDefinition, ModuleType, lookup

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from ._results import Result

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Position:
    """Canvas coordinate of a module. Opaque to the engine."""

    x: float = 0.0
    y: float = 0.0

    def offset(self, dx: float, dy: float) -> Position:
        return Position(self.x + dx, self.y + dy)


class PortDirection(StrEnum):
    """Direction of a port relative to its module."""

    INPUT = "input"
    OUTPUT = "output"


@dataclass(frozen=True, slots=True)
class PortRef:
    """Address of a single port: ``(module_id, direction, index)``."""

    module_id: int
    direction: PortDirection
    index: int

    def __str__(self) -> str:
        return f"{self.module_id}.{self.direction}[{self.index}]"


@dataclass(frozen=True, slots=True)
class Connection:
    """A directed edge from an output port to an input port."""

    source_module_id: int
    source_port_index: int
    target_module_id: int
    target_port_index: int

    @property
    def source(self) -> PortRef:
        return PortRef(self.source_module_id, PortDirection.OUTPUT, self.source_port_index)

    @property
    def target(self) -> PortRef:
        return PortRef(self.target_module_id, PortDirection.INPUT, self.target_port_index)

    def touches(self, module_id: int) -> bool:
        """Check if either endpoint belongs to the given module."""
        return module_id in (self.source_module_id, self.target_module_id)

    def __str__(self) -> str:
        return f"{self.source} -> {self.target}"


@dataclass(frozen=True, slots=True)
class Module:
    """One computational node.

    Attributes:
        id: Unique id assigned by the store.
        type: Registry tag; never changes.
        name: Human-readable label.
        position: Canvas coordinate, persisted but otherwise unused.
        input_values: Local value per input port, used while it is unwired.
        output_values: Last computed result per output port.
        setting: Value held by a source module; None for other types.
        display: Value last surfaced by a sink; None for other types.

    """

    id: int
    type: ModuleType
    name: str
    position: Position
    input_values: tuple[float, ...]
    output_values: tuple[Result, ...]
    setting: float | None = None
    display: Result | None = None

    @property
    def definition(self) -> ModuleDefinition:
        return lookup(self.type)


@dataclass(frozen=True, slots=True)
class GraphSnapshot:
    """Immutable copy of the whole store state."""

    modules: tuple[Module, ...]
    connections: tuple[Connection, ...]
    next_id: int


class GraphStore:
    """Mutable collection of modules and connections with validated updates."""

    def __init__(self) -> None:
        self._modules: dict[int, Module] = {}
        self._connections: list[Connection] = []
        self._next_id = 1

    # -- queries ------------------------------------------------------------

    def get(self, module_id: int) -> Module:
        """Get a module by id.

        Raises:
            NoSuchModuleError: If no such module exists.

        """
        try:
            return self._modules[module_id]
        except KeyError:
            msg = f"Module {module_id} not found"
            raise NoSuchModuleError(msg) from None

    @property
    def modules(self) -> tuple[Module, ...]:
        """All modules, in insertion order."""
        return tuple(self._modules.values())

    @property
    def connections(self) -> tuple[Connection, ...]:
        """All connections, in insertion order."""
        return tuple(self._connections)

    @property
    def next_id(self) -> int:
        """The id the next added module will receive."""
        return self._next_id

    def connection_into(self, module_id: int, port_index: int) -> Connection | None:
        """The connection driving an input port, if any."""
        for conn in self._connections:
            if conn.target_module_id == module_id and conn.target_port_index == port_index:
                return conn
        return None

    def connections_from(self, module_id: int) -> tuple[Connection, ...]:
        """Connections whose source is the given module."""
        return tuple(conn for conn in self._connections if conn.source_module_id == module_id)

    def connections_touching(self, module_id: int) -> tuple[Connection, ...]:
        """Connections with the given module at either end."""
        return tuple(conn for conn in self._connections if conn.touches(module_id))

    def dependency_graph(self) -> DependencyGraph[int]:
        """Module-level dependency graph of the current wiring."""
        return DependencyGraph.from_edges(
            self._modules,
            ((conn.source_module_id, conn.target_module_id) for conn in self._connections),
        )

    def __iter__(self) -> Iterator[Module]:
        return iter(self.modules)

    def __len__(self) -> int:
        return len(self._modules)

    def __contains__(self, module_id: object) -> bool:
        return module_id in self._modules

    # -- module operations --------------------------------------------------

    def add_module(
        self,
        module_type: str,
        position: Position | None = None,
        name: str | None = None,
        *,
        module_id: int | None = None,
    ) -> Module:
        """Create a module with default values.

        Args:
            module_type: Registry tag of the new module.
            position: Canvas coordinate; defaults to the origin.
            name: Label; defaults to the definition's label.
            module_id: Explicit id, used when restoring a saved graph. The
                id counter continues after the largest id seen.

        Returns:
            The new module. Its outputs hold zeros until it is computed.

        Raises:
            UnknownModuleTypeError: If the type is not registered.
            ValueError: If ``module_id`` is not positive or already in use.
            InvalidValueError: If a coordinate is not finite.

        """
        definition = lookup(module_type)
        if position is not None:
            _check_position(position)

        if module_id is None:
            module_id = self._next_id
        elif module_id < 1 or module_id in self._modules:
            msg = f"Module id {module_id} is invalid or already in use"
            raise ValueError(msg)
        self._next_id = max(self._next_id, module_id + 1)

        module = Module(
            id=module_id,
            type=definition.type,
            name=name if name is not None else definition.label,
            position=position if position is not None else Position(),
            input_values=(0.0,) * definition.input_arity,
            output_values=(0.0,) * definition.output_arity,
            setting=definition.setting.default if definition.setting is not None else None,
            display=0.0 if definition.is_sink else None,
        )
        self._modules[module_id] = module
        logger.debug("Added module %d (%s)", module_id, definition.type)
        return module

    def remove_module(self, module_id: int) -> tuple[Connection, ...]:
        """Delete a module and every connection touching it.

        Returns:
            The connections that were removed with the module.

        Raises:
            NoSuchModuleError: If no such module exists.

        """
        self.get(module_id)
        removed = self.connections_touching(module_id)
        self._connections = [conn for conn in self._connections if not conn.touches(module_id)]
        del self._modules[module_id]
        logger.debug("Removed module %d and %d connection(s)", module_id, len(removed))
        return removed

    def set_local_input(self, module_id: int, port_index: int, value: float) -> Module:
        """Set the fallback value of an input port.

        The value is stored even when the port is wired, but it is only read
        once the port is no longer connected.

        Raises:
            NoSuchModuleError: If no such module exists.
            InvalidPortError: If the port index is out of range.
            InvalidValueError: If the value is not finite.

        """
        module = self.get(module_id)
        self._check_port(module, PortDirection.INPUT, port_index)
        _check_finite(value, f"Input {module_id}.input[{port_index}]")
        values = list(module.input_values)
        values[port_index] = float(value)
        return self._replace(module, input_values=tuple(values))

    def set_setting(self, module_id: int, value: float) -> Module:
        """Set the value held by a source module.

        The value is normalized by the type's setting description (sliders
        are clamped, toggles become 1.0 or 0.0).

        Raises:
            NoSuchModuleError: If no such module exists.
            NotASourceError: If the module type holds no setting.
            InvalidValueError: If the value is not finite.

        """
        module = self.get(module_id)
        spec = module.definition.setting
        if spec is None:
            msg = f"Module {module_id} ({module.type}) has no setting"
            raise NotASourceError(msg)
        _check_finite(value, f"Setting of module {module_id}")
        return self._replace(module, setting=spec.coerce(value))

    def rename_module(self, module_id: int, name: str) -> Module:
        return self._replace(self.get(module_id), name=name)

    def move_module(self, module_id: int, position: Position) -> Module:
        module = self.get(module_id)
        _check_position(position)
        return self._replace(module, position=position)

    def record_result(
        self,
        module_id: int,
        output_values: Sequence[Result],
        display: Result | None = None,
    ) -> bool:
        """Store freshly computed results on a module.

        Returns:
            True if the stored outputs or display value changed.

        """
        module = self.get(module_id)
        outputs = tuple(output_values)
        if outputs == module.output_values and display == module.display:
            return False
        self._replace(module, output_values=outputs, display=display)
        return True

    # -- connection operations ----------------------------------------------

    def connect(
        self,
        source_module_id: int,
        source_port_index: int,
        target_module_id: int,
        target_port_index: int,
    ) -> Connection:
        """Add a connection from an output port to an input port.

        Adding a connection identical to an existing one is a no-op that
        returns the existing connection.

        Raises:
            NoSuchModuleError: If either module does not exist.
            InvalidPortError: If a port index is out of range.
            PortAlreadyDrivenError: If the input port already has a producer.
            WouldCreateCycleError: If the connection would close a cycle.

        """
        source = self.get(source_module_id)
        target = self.get(target_module_id)
        self._check_port(source, PortDirection.OUTPUT, source_port_index)
        self._check_port(target, PortDirection.INPUT, target_port_index)

        connection = Connection(source_module_id, source_port_index, target_module_id, target_port_index)
        if connection in self._connections:
            logger.debug("Connection %s already exists", connection)
            return connection

        existing = self.connection_into(target_module_id, target_port_index)
        if existing is not None:
            msg = f"Input port {connection.target} is already driven by {existing.source}"
            raise PortAlreadyDrivenError(msg)

        if self.dependency_graph().would_create_cycle(source_module_id, target_module_id):
            msg = f"Connection {connection} would create a cycle"
            raise WouldCreateCycleError(msg)

        self._connections.append(connection)
        logger.debug("Connected %s", connection)
        return connection

    def disconnect(
        self,
        source_module_id: int,
        source_port_index: int,
        target_module_id: int,
        target_port_index: int,
    ) -> Connection | None:
        """Remove a connection. Returns it, or None if it did not exist."""
        connection = Connection(source_module_id, source_port_index, target_module_id, target_port_index)
        if connection not in self._connections:
            return None
        self._connections.remove(connection)
        logger.debug("Disconnected %s", connection)
        return connection

    # -- whole-store operations ---------------------------------------------

    def clear(self) -> None:
        """Remove all modules and connections. The id counter is kept."""
        self._modules.clear()
        self._connections.clear()

    def snapshot(self) -> GraphSnapshot:
        return GraphSnapshot(
            modules=self.modules,
            connections=self.connections,
            next_id=self._next_id,
        )

    def restore(self, snapshot: GraphSnapshot) -> None:
        """Replace the whole state with a snapshot."""
        self._modules = {module.id: module for module in snapshot.modules}
        self._connections = list(snapshot.connections)
        self._next_id = snapshot.next_id

    # -- helpers ------------------------------------------------------------

    def _replace(self, module: Module, **changes: object) -> Module:
        updated = replace(module, **changes)  # type: ignore[arg-type]
        self._modules[module.id] = updated
        return updated

    @staticmethod
    def _check_port(module: Module, direction: PortDirection, index: int) -> None:
        definition = module.definition
        arity = definition.input_arity if direction == PortDirection.INPUT else definition.output_arity
        if not isinstance(index, int) or not 0 <= index < arity:
            msg = f"Module {module.id} ({module.type}) has no {direction} port {index} (it has {arity})"
            raise InvalidPortError(msg)


def _check_finite(value: float, what: str) -> None:
    """Reject inf and nan."""
    if not math.isfinite(value):
        msg = f"{what} must be a finite number, got {value}"
        raise InvalidValueError(msg)


def _check_position(position: Position) -> None:
    _check_finite(position.x, "Position x")
    _check_finite(position.y, "Position y")
