"""Dataflow engine for wiring numeric modules into live-updating graphs."""

__all__ = [
    "DISPLAY_PRECISION",
    "ComputeErrorKind",
    "Connection",
    "DependencyGraph",
    "ErrorValue",
    "GraphDocument",
    "GraphSnapshot",
    "GraphStore",
    "History",
    "ImportParseError",
    "InvalidPortError",
    "InvalidValueError",
    "Module",
    "ModuleCategory",
    "ModuleDefinition",
    "ModuleType",
    "NoSuchModuleError",
    "NotASourceError",
    "PortAlreadyDrivenError",
    "PortDirection",
    "PortRef",
    "Position",
    "Result",
    "SettingSpec",
    "UnknownModuleTypeError",
    "WirecalcError",
    "Workspace",
    "WorkspaceStats",
    "WouldCreateCycleError",
    "build_store",
    "definitions",
    "export_document",
    "export_results_to_toml",
    "format_result",
    "import_document",
    "is_error",
    "load_document",
    "lookup",
    "parse_document",
    "results_to_dict",
    "save_document",
    "to_document",
]

from ._document import (
    GraphDocument,
    build_store,
    export_document,
    import_document,
    load_document,
    parse_document,
    save_document,
    to_document,
)
from ._engine import Workspace, WorkspaceStats
from ._errors import (
    ImportParseError,
    InvalidPortError,
    InvalidValueError,
    NoSuchModuleError,
    NotASourceError,
    PortAlreadyDrivenError,
    UnknownModuleTypeError,
    WirecalcError,
    WouldCreateCycleError,
)
from ._graph import DependencyGraph
from ._history import History
from ._io import export_results_to_toml, results_to_dict
from ._registry import ModuleCategory, ModuleDefinition, ModuleType, SettingSpec, definitions, lookup
from ._results import DISPLAY_PRECISION, ComputeErrorKind, ErrorValue, Result, format_result, is_error
from ._store import Connection, GraphSnapshot, GraphStore, Module, PortDirection, PortRef, Position
