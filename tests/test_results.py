"""Tests for result values and their formatting."""

import math

from wirecalc._results import ComputeErrorKind, ErrorValue, finite_or_overflow, format_result, is_error


class TestErrorValue:
    def test_str(self) -> None:
        assert str(ErrorValue(ComputeErrorKind.INVALID_DOMAIN)) == "Error: InvalidDomain"

    def test_equality_by_kind(self) -> None:
        assert ErrorValue(ComputeErrorKind.DIVISION_BY_ZERO) == ErrorValue(ComputeErrorKind.DIVISION_BY_ZERO)
        assert ErrorValue(ComputeErrorKind.DIVISION_BY_ZERO) != ErrorValue(ComputeErrorKind.OVERFLOW)

    def test_is_error(self) -> None:
        assert is_error(ErrorValue(ComputeErrorKind.OVERFLOW)) is True
        assert is_error(0.0) is False


class TestFiniteOrOverflow:
    def test_finite_passes_through(self) -> None:
        assert finite_or_overflow(1.5) == 1.5

    def test_infinity_and_nan(self) -> None:
        assert finite_or_overflow(math.inf) == ErrorValue(ComputeErrorKind.OVERFLOW)
        assert finite_or_overflow(math.nan) == ErrorValue(ComputeErrorKind.OVERFLOW)


class TestFormatResult:
    """Numbers render with three decimals; errors render their kind."""

    def test_three_decimals(self) -> None:
        assert format_result(40.8) == "40.800"
        assert format_result(19.8) == "19.800"

    def test_rounding(self) -> None:
        assert format_result(1 / 3) == "0.333"

    def test_no_negative_zero(self) -> None:
        assert format_result(-0.0001) == "0.000"

    def test_error(self) -> None:
        assert format_result(ErrorValue(ComputeErrorKind.DIVISION_BY_ZERO)) == "Error: DivisionByZero"
