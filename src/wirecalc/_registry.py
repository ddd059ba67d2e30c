"""Module definition registry.

The registry is a closed catalogue: every module type is a member of
:class:`ModuleType` and maps to exactly one :class:`ModuleDefinition`
carrying its port arity and a pure compute function. New module types are
added by extending the enum and the definition table below.
"""

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum, auto
from typing import TypeAlias

from ._errors import UnknownModuleTypeError
from ._results import ComputeErrorKind, ErrorValue, Result, finite_or_overflow

ComputeFn: TypeAlias = Callable[[Sequence[Result], float | None], Result]


class ModuleType(StrEnum):
    """Tag identifying the kind of a module."""

    NUMBER_INPUT = "number-input"
    SLIDER_INPUT = "slider-input"
    TOGGLE_INPUT = "toggle-input"
    ADDITION = "addition"
    SUBTRACTION = "subtraction"
    MULTIPLICATION = "multiplication"
    DIVISION = "division"
    PERCENTAGE = "percentage"
    AVERAGE = "average"
    POWER = "power"
    SQUARE_ROOT = "square-root"
    DISPLAY = "display"


class ModuleCategory(StrEnum):
    """Role a module type plays in the graph."""

    SOURCE = auto()  # No inputs, value held in the module's setting
    OPERATOR = auto()  # Pure function of its inputs
    SINK = auto()  # No outputs, surfaces its input for display


@dataclass(frozen=True, slots=True)
class SettingSpec:
    """Describes the value held by a source module.

    Attributes:
        default: Initial setting of a new module.
        minimum: Lower bound; values below are clamped.
        maximum: Upper bound; values above are clamped.
        boolean: If True the setting is an on/off switch stored as 1.0 / 0.0.

    """

    default: float
    minimum: float | None = None
    maximum: float | None = None
    boolean: bool = False

    def coerce(self, value: float) -> float:
        """Normalize a user-supplied value to a valid setting."""
        if self.boolean:
            return 1.0 if value else 0.0
        value = float(value)
        if self.minimum is not None:
            value = max(self.minimum, value)
        if self.maximum is not None:
            value = min(self.maximum, value)
        return value


@dataclass(frozen=True, slots=True)
class ModuleDefinition:
    """Static description of a module type, shared by all its instances.

    Attributes:
        type: The type tag this definition belongs to.
        label: Default display name for new modules.
        category: Whether the type is a source, an operator or a sink.
        input_arity: Number of input ports.
        output_arity: Number of output ports (0 or 1).
        compute: Pure function from resolved inputs (and setting) to a result.
        setting: Setting description for source types, None otherwise.

    """

    type: ModuleType
    label: str
    category: ModuleCategory
    input_arity: int
    output_arity: int
    compute: ComputeFn
    setting: SettingSpec | None = None

    @property
    def is_source(self) -> bool:
        return self.category == ModuleCategory.SOURCE

    @property
    def is_sink(self) -> bool:
        return self.category == ModuleCategory.SINK

    def evaluate(self, inputs: Sequence[Result], setting: float | None = None) -> Result:
        """Run the compute function on resolved inputs.

        Args:
            inputs: One resolved value per input port.
            setting: The module's setting (source types only).

        Returns:
            The computed result. Non-finite numbers become ``Overflow`` errors.

        Raises:
            ValueError: If the number of inputs does not match the arity.

        """
        if len(inputs) != self.input_arity:
            msg = f"{self.type} expects {self.input_arity} inputs, got {len(inputs)}"
            raise ValueError(msg)
        result = self.compute(inputs, setting)
        if isinstance(result, ErrorValue):
            return result
        return finite_or_overflow(float(result))


def _source(_inputs: Sequence[Result], setting: float | None) -> Result:
    return 0.0 if setting is None else setting


def _add(inputs: Sequence[Result], _setting: float | None) -> Result:
    a, b = inputs
    return a + b


def _subtract(inputs: Sequence[Result], _setting: float | None) -> Result:
    a, b = inputs
    return a - b


def _multiply(inputs: Sequence[Result], _setting: float | None) -> Result:
    a, b = inputs
    return a * b


def _divide(inputs: Sequence[Result], _setting: float | None) -> Result:
    dividend, divisor = inputs
    if divisor == 0:
        return ErrorValue(ComputeErrorKind.DIVISION_BY_ZERO)
    return dividend / divisor


def _percentage(inputs: Sequence[Result], _setting: float | None) -> Result:
    value, percent = inputs
    result = value * percent / 100
    if math.isfinite(result):
        return result
    # The product overflowed; scaling first keeps finite results finite
    return value / 100 * percent


def _average(inputs: Sequence[Result], _setting: float | None) -> Result:
    result = sum(inputs) / 3
    if math.isfinite(result):
        return result
    return sum(value / 3 for value in inputs)


def _power(inputs: Sequence[Result], _setting: float | None) -> Result:
    base, exponent = inputs
    if base == 0 and exponent < 0:
        return ErrorValue(ComputeErrorKind.DIVISION_BY_ZERO)
    if base < 0 and not float(exponent).is_integer():
        return ErrorValue(ComputeErrorKind.INVALID_DOMAIN)
    try:
        return math.pow(base, exponent)
    except OverflowError:
        return ErrorValue(ComputeErrorKind.OVERFLOW)


def _square_root(inputs: Sequence[Result], _setting: float | None) -> Result:
    (value,) = inputs
    if value < 0:
        return ErrorValue(ComputeErrorKind.INVALID_DOMAIN)
    return math.sqrt(value)


def _display(inputs: Sequence[Result], _setting: float | None) -> Result:
    # The sink surfaces whatever it receives, errors included
    (value,) = inputs
    return value


def _operator(module_type: ModuleType, label: str, input_arity: int, compute: ComputeFn) -> ModuleDefinition:
    return ModuleDefinition(
        type=module_type,
        label=label,
        category=ModuleCategory.OPERATOR,
        input_arity=input_arity,
        output_arity=1,
        compute=compute,
    )


def _source_definition(module_type: ModuleType, label: str, setting: SettingSpec) -> ModuleDefinition:
    return ModuleDefinition(
        type=module_type,
        label=label,
        category=ModuleCategory.SOURCE,
        input_arity=0,
        output_arity=1,
        compute=_source,
        setting=setting,
    )


_DEFINITIONS: dict[ModuleType, ModuleDefinition] = {
    definition.type: definition
    for definition in (
        _source_definition(ModuleType.NUMBER_INPUT, "Number Input", SettingSpec(default=0.0)),
        _source_definition(
            ModuleType.SLIDER_INPUT,
            "Slider Input",
            SettingSpec(default=50.0, minimum=0.0, maximum=100.0),
        ),
        _source_definition(ModuleType.TOGGLE_INPUT, "Toggle Input", SettingSpec(default=1.0, boolean=True)),
        _operator(ModuleType.ADDITION, "Adder", 2, _add),
        _operator(ModuleType.SUBTRACTION, "Subtractor", 2, _subtract),
        _operator(ModuleType.MULTIPLICATION, "Multiplier", 2, _multiply),
        _operator(ModuleType.DIVISION, "Divider", 2, _divide),
        _operator(ModuleType.PERCENTAGE, "Percentage", 2, _percentage),
        _operator(ModuleType.AVERAGE, "Average", 3, _average),
        _operator(ModuleType.POWER, "Power", 2, _power),
        _operator(ModuleType.SQUARE_ROOT, "Square Root", 1, _square_root),
        ModuleDefinition(
            type=ModuleType.DISPLAY,
            label="Display",
            category=ModuleCategory.SINK,
            input_arity=1,
            output_arity=0,
            compute=_display,
        ),
    )
}


def lookup(module_type: str) -> ModuleDefinition:
    """Get the definition of a module type.

    Args:
        module_type: A :class:`ModuleType` member or its string tag
            (e.g. ``"addition"``).

    Returns:
        The registered ModuleDefinition.

    Raises:
        UnknownModuleTypeError: If the tag is not registered.

    """
    try:
        key = ModuleType(module_type)
    except ValueError:
        msg = f"Unknown module type: {module_type!r}"
        raise UnknownModuleTypeError(msg) from None
    return _DEFINITIONS[key]


def definitions() -> tuple[ModuleDefinition, ...]:
    """All registered definitions, in catalogue order."""
    return tuple(_DEFINITIONS.values())
