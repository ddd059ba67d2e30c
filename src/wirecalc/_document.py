"""Serialized graph documents (JSON export files and saved projects).

The document is described by pydantic models so that parsing, validation
and JSON generation share one schema. Field names are camelCase on the wire:

.. code-block:: json

    {
      "version": "1.2",
      "exportedAt": "2026-01-01T00:00:00Z",
      "modules": [{"id": 1, "type": "number-input", "name": "Number Input",
                   "position": {"x": 50, "y": 50}, "inputValues": [],
                   "outputValues": [15.5], "setting": 15.5}],
      "connections": [{"sourceModuleId": 1, "sourcePortIndex": 0,
                       "targetModuleId": 3, "targetPortIndex": 0}]
    }

Imports are atomic: the document is built into a scratch store, recomputed,
and only then swapped into the live workspace.
"""

from __future__ import annotations

import logging
import math
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ._engine import Workspace
from ._errors import ImportParseError, WirecalcError
from ._registry import lookup
from ._results import ComputeErrorKind, ErrorValue, Result
from ._store import GraphStore, Position

if TYPE_CHECKING:
    from ._store import Connection, Module

logger = logging.getLogger(__name__)

DOCUMENT_VERSION = "1.2"

_LEGACY_ID_PREFIX = "module-"


def _parse_module_id(value: Any) -> Any:
    """Accept ids written as ``"module-N"`` by older exports."""
    if isinstance(value, str) and value.startswith(_LEGACY_ID_PREFIX):
        return value.removeprefix(_LEGACY_ID_PREFIX)
    return value


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, allow_inf_nan=False)


class PositionRecord(_Record):
    x: float = 0.0
    y: float = 0.0


class ErrorRecord(_Record):
    """An error result, written as ``{"error": "DivisionByZero"}``."""

    error: ComputeErrorKind


class ModuleRecord(_Record):
    """One entry of the ``modules`` list."""

    id: int | None = None
    type: str
    name: str | None = None
    position: PositionRecord = Field(default_factory=PositionRecord)
    input_values: list[float] = Field(default_factory=list)
    output_values: list[float | ErrorRecord] = Field(default_factory=list)
    setting: float | None = None

    @model_validator(mode="before")
    @classmethod
    def _lift_legacy_position(cls, data: Any) -> Any:
        # Older exports stored the coordinate as top-level x/y
        if isinstance(data, dict) and "position" not in data and ("x" in data or "y" in data):
            data = {**data, "position": {"x": data.get("x", 0.0), "y": data.get("y", 0.0)}}
        return data

    @field_validator("id", mode="before")
    @classmethod
    def _legacy_id(cls, value: Any) -> Any:
        return _parse_module_id(value)

    @field_validator("output_values", mode="before")
    @classmethod
    def _drop_unreadable_outputs(cls, value: Any) -> Any:
        # Outputs are recomputed on import; unreadable legacy entries
        # (e.g. free-text error messages) are replaced by zero.
        if not isinstance(value, list):
            return value
        cleaned: list[Any] = []
        for item in value:
            if isinstance(item, str):
                try:
                    item = float(item)  # noqa: PLW2901
                except ValueError:
                    item = 0.0  # noqa: PLW2901
                if not math.isfinite(item):
                    item = 0.0  # noqa: PLW2901
            cleaned.append(item)
        return cleaned


class ConnectionRecord(_Record):
    """One entry of the ``connections`` list.

    Besides the canonical names, the field names used by earlier versions
    (``sourceModule``/``sourcePort``/``sourceOutput`` and
    ``targetModule``/``targetPort``/``targetInput``) are accepted on input.
    """

    # An explicit validation alias disables the generated camelCase name,
    # so the serialized names are given here as well
    source_module_id: int = Field(
        serialization_alias="sourceModuleId",
        validation_alias=AliasChoices("sourceModuleId", "source_module_id", "sourceModule"),
    )
    source_port_index: int = Field(
        serialization_alias="sourcePortIndex",
        validation_alias=AliasChoices("sourcePortIndex", "source_port_index", "sourcePort", "sourceOutput"),
    )
    target_module_id: int = Field(
        serialization_alias="targetModuleId",
        validation_alias=AliasChoices("targetModuleId", "target_module_id", "targetModule"),
    )
    target_port_index: int = Field(
        serialization_alias="targetPortIndex",
        validation_alias=AliasChoices("targetPortIndex", "target_port_index", "targetPort", "targetInput"),
    )

    @field_validator("source_module_id", "target_module_id", mode="before")
    @classmethod
    def _legacy_id(cls, value: Any) -> Any:
        return _parse_module_id(value)


class GraphDocument(_Record):
    """The whole persisted graph."""

    version: str = DOCUMENT_VERSION
    exported_at: datetime | None = None
    saved_at: datetime | None = None
    modules: list[ModuleRecord] = Field(default_factory=list)
    connections: list[ConnectionRecord] = Field(default_factory=list)


# =============================================================================
# Workspace -> document
# =============================================================================


def _result_to_record(value: Result) -> float | ErrorRecord:
    if isinstance(value, ErrorValue):
        return ErrorRecord(error=value.kind)
    return value


def _record_to_result(value: float | ErrorRecord) -> Result:
    if isinstance(value, ErrorRecord):
        return ErrorValue(value.error)
    return value


def _module_to_record(module: Module) -> ModuleRecord:
    return ModuleRecord(
        id=module.id,
        type=str(module.type),
        name=module.name,
        position=PositionRecord(x=module.position.x, y=module.position.y),
        input_values=list(module.input_values),
        output_values=[_result_to_record(value) for value in module.output_values],
        setting=module.setting,
    )


def _connection_to_record(connection: Connection) -> ConnectionRecord:
    return ConnectionRecord(
        source_module_id=connection.source_module_id,
        source_port_index=connection.source_port_index,
        target_module_id=connection.target_module_id,
        target_port_index=connection.target_port_index,
    )


def to_document(workspace: Workspace, *, saved: bool = False) -> GraphDocument:
    """Describe the workspace as a document.

    Args:
        workspace: The graph to describe.
        saved: Stamp ``savedAt`` instead of ``exportedAt``.

    """
    now = datetime.now(UTC)
    return GraphDocument(
        exported_at=None if saved else now,
        saved_at=now if saved else None,
        modules=[_module_to_record(module) for module in workspace.modules],
        connections=[_connection_to_record(conn) for conn in workspace.connections],
    )


def export_document(workspace: Workspace, *, indent: int | None = 2, saved: bool = False) -> str:
    """Serialize the workspace to a JSON document string."""
    document = to_document(workspace, saved=saved)
    return document.model_dump_json(by_alias=True, exclude_none=True, indent=indent)


# =============================================================================
# document -> store
# =============================================================================


def parse_document(text: str | bytes) -> GraphDocument:
    """Parse and validate a JSON document.

    Raises:
        ImportParseError: If the text is not valid JSON or does not match
            the document schema.

    """
    try:
        return GraphDocument.model_validate_json(text)
    except ValidationError as e:
        msg = f"Invalid graph document: {e}"
        raise ImportParseError(msg) from e


def _input_values(record: ModuleRecord, arity: int, index: int) -> list[float]:
    values = list(record.input_values)
    if len(values) > arity:
        msg = f"Module #{index} ({record.type}) has {len(values)} input values but only {arity} input ports"
        raise ImportParseError(msg)
    # Older exports may omit trailing values
    return values + [0.0] * (arity - len(values))


def build_store(document: GraphDocument) -> GraphStore:
    """Build a fresh store from a document without touching any workspace.

    Module ids are taken from the document; entries without an id get their
    1-based position in the list. Stored outputs are restored as-is and
    should be refreshed with :meth:`Workspace.recompute_all`.

    Raises:
        UnknownModuleTypeError: If a module type is not registered.
        ImportParseError: If ids clash or a connection is invalid.

    """
    store = GraphStore()

    for index, record in enumerate(document.modules):
        definition = lookup(record.type)
        module_id = record.id if record.id is not None else index + 1
        position = Position(record.position.x, record.position.y)
        try:
            module = store.add_module(definition.type, position, record.name, module_id=module_id)
        except ValueError as e:
            msg = f"Module #{index} ({record.type}): {e}"
            raise ImportParseError(msg) from e

        for port, value in enumerate(_input_values(record, definition.input_arity, index)):
            store.set_local_input(module.id, port, value)

        if definition.setting is not None:
            setting = record.setting
            if setting is None and record.output_values and not isinstance(record.output_values[0], ErrorRecord):
                # Documents without a setting carry the source value as its output
                setting = record.output_values[0]
            if setting is not None:
                store.set_setting(module.id, setting)

        if len(record.output_values) == definition.output_arity:
            store.record_result(
                module.id,
                [_record_to_result(value) for value in record.output_values],
                display=module.display,
            )

    for index, conn in enumerate(document.connections):
        try:
            store.connect(conn.source_module_id, conn.source_port_index, conn.target_module_id, conn.target_port_index)
        except WirecalcError as e:
            msg = f"Connection #{index} is invalid: {e}"
            raise ImportParseError(msg) from e

    logger.debug("Built store with %d modules and %d connections", len(store), len(store.connections))
    return store


def import_document(workspace: Workspace, text: str | bytes) -> frozenset[int]:
    """Replace the workspace's graph with the one described by ``text``.

    The import is all-or-nothing: on any error the workspace is unchanged.

    Returns:
        Ids of modules that were removed, added or changed.

    Raises:
        ImportParseError: If the document is malformed or inconsistent.
        UnknownModuleTypeError: If a module type is not registered.

    """
    store = build_store(parse_document(text))
    return workspace.replace_graph(store, "Import")


def save_document(workspace: Workspace, path: Path | str) -> None:
    """Write the workspace to a JSON file, stamped with ``savedAt``."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(export_document(workspace, saved=True) + "\n", encoding="utf-8")
    logger.debug("Saved graph to %s", path)


def load_document(path: Path | str, workspace: Workspace | None = None) -> Workspace:
    """Load a JSON file into ``workspace`` (or a new one) and recompute it.

    Raises:
        OSError: If the file cannot be read.
        ImportParseError: If the document is malformed or inconsistent.
        UnknownModuleTypeError: If a module type is not registered.

    """
    path = Path(path)
    if workspace is None:
        workspace = Workspace()
    import_document(workspace, path.read_bytes())
    logger.debug("Loaded graph from %s", path)
    return workspace
