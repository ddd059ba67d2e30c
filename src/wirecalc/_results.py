"""Result values produced by module compute functions.

A result is either a plain ``float`` or an :class:`ErrorValue`. Error values
are ordinary data: they are stored in module outputs, travel along
connections and are rendered by the display sink, instead of being raised.
"""

import math
from dataclasses import dataclass
from enum import StrEnum
from typing import TypeAlias

DISPLAY_PRECISION = 3
"""Number of decimals used when rendering a numeric result."""


class ComputeErrorKind(StrEnum):
    """The kind of computational error carried by an :class:`ErrorValue`."""

    DIVISION_BY_ZERO = "DivisionByZero"
    INVALID_DOMAIN = "InvalidDomain"  # e.g. square root of a negative number
    OVERFLOW = "Overflow"  # result is not a finite float


@dataclass(frozen=True, slots=True)
class ErrorValue:
    """A computational error flowing through the graph as a value.

    Attributes:
        kind: What went wrong.

    """

    kind: ComputeErrorKind

    def __str__(self) -> str:
        return f"Error: {self.kind}"


Result: TypeAlias = float | ErrorValue


def is_error(value: Result) -> bool:
    """Check if a result is an error value."""
    return isinstance(value, ErrorValue)


def finite_or_overflow(value: float) -> Result:
    """Return ``value`` if it is finite, otherwise an ``Overflow`` error."""
    if math.isfinite(value):
        return value
    return ErrorValue(ComputeErrorKind.OVERFLOW)


def format_result(value: Result) -> str:
    """Render a result for display.

    Numbers are rendered with :data:`DISPLAY_PRECISION` decimals; the stored
    value itself is never rounded.

    Example:
        >>> format_result(40.8)
        '40.800'
        >>> format_result(ErrorValue(ComputeErrorKind.DIVISION_BY_ZERO))
        'Error: DivisionByZero'

    """
    if isinstance(value, ErrorValue):
        return str(value)
    # Avoid rendering "-0.000" for tiny negative values
    rounded = round(value, DISPLAY_PRECISION)
    if rounded == 0:
        rounded = 0.0
    return f"{rounded:.{DISPLAY_PRECISION}f}"
