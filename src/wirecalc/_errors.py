"""Structural errors raised by the graph store and the document importer.

Computational errors (division by zero, invalid domain) are not exceptions;
see :mod:`wirecalc._results`.
"""

from typing import ClassVar


class WirecalcError(Exception):
    """Base class for errors raised by wirecalc operations.

    Every subclass carries a stable ``kind`` string so that callers (and the
    CLI) can report the failure without matching on class names.
    """

    kind: ClassVar[str] = "Error"


class UnknownModuleTypeError(WirecalcError):
    """The requested module type tag is not in the registry."""

    kind = "UnknownModuleType"


class NoSuchModuleError(WirecalcError, KeyError):
    """No module with the given id exists in the graph."""

    kind = "ModuleNotFound"

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable
        return str(self.args[0]) if self.args else ""


class InvalidPortError(WirecalcError):
    """A port index is out of range or has the wrong direction."""

    kind = "InvalidPort"


class PortAlreadyDrivenError(WirecalcError):
    """The target input port already has an incoming connection."""

    kind = "PortAlreadyDriven"


class WouldCreateCycleError(WirecalcError):
    """Adding the connection would make the graph cyclic."""

    kind = "WouldCreateCycle"


class ImportParseError(WirecalcError):
    """A serialized document could not be parsed or applied."""

    kind = "ImportParseError"


class NotASourceError(WirecalcError):
    """A setting was given to a module type that holds no setting."""

    kind = "NotASource"


class InvalidValueError(WirecalcError):
    """A stored number (input value, setting or coordinate) is not finite."""

    kind = "InvalidValue"
