from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import tomli_w

from ._results import ErrorValue, Result, format_result

if TYPE_CHECKING:
    from ._engine import Workspace
    from ._store import Module

logger = logging.getLogger(__name__)


def _serialize_result(value: Result) -> Any:
    """Convert a result to a TOML-compatible value.

    Errors become their kind string (e.g. ``"DivisionByZero"``); numbers are
    kept at full precision.
    """
    if isinstance(value, ErrorValue):
        return str(value.kind)
    return value


def _module_to_dict(module: Module) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "type": str(module.type),
        "name": module.name,
    }
    if module.setting is not None:
        entry["setting"] = module.setting
    if module.input_values:
        entry["inputs"] = list(module.input_values)
    if module.output_values:
        entry["outputs"] = [_serialize_result(value) for value in module.output_values]
        entry["formatted"] = [format_result(value) for value in module.output_values]
    if module.display is not None:
        entry["display"] = _serialize_result(module.display)
        entry["formatted"] = [format_result(module.display)]
    return entry


def results_to_dict(workspace: Workspace) -> dict[str, Any]:
    """Convert the workspace's current results to a nested dictionary.

    This is a pure function producing a structure suitable for TOML export:

    .. code-block:: python

        {
            "modules": {
                "1": {"type": "number-input", "name": "...", "setting": 15.5,
                      "outputs": [15.5], "formatted": ["15.500"]},
                "4": {"type": "display", "name": "...", "inputs": [0.0],
                      "display": 40.8, "formatted": ["40.800"]},
            },
            "connections": [
                {"source": 1, "source_port": 0, "target": 3, "target_port": 0},
            ],
        }

    """
    return {
        "modules": {str(module.id): _module_to_dict(module) for module in workspace.modules},
        "connections": [
            {
                "source": conn.source_module_id,
                "source_port": conn.source_port_index,
                "target": conn.target_module_id,
                "target_port": conn.target_port_index,
            }
            for conn in workspace.connections
        ],
    }


def export_results_to_toml(workspace: Workspace, output_path: Path | str) -> None:
    """Write the workspace's current results to a TOML file."""
    toml_data = results_to_dict(workspace)

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("wb") as f:
        tomli_w.dump(toml_data, f)

    logger.debug(f"Exported results to {output_path}")
