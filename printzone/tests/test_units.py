import pytest

from printzone.core.errors import UnsupportedUnitKind
from printzone.core.units import (
    PT_PER_MM,
    PX_PER_MM,
    PX_PER_PT,
    LengthUnit,
    convert,
    convert_point,
    mm_to_points,
    parse_unit,
    points_to_mm,
)


def test_convert_between_physical_units():
    assert convert(25.4, "mm", "pt") == pytest.approx(72.0)
    assert convert(1, "in", "mm") == pytest.approx(25.4)
    assert convert(72, LengthUnit.pt, LengthUnit.inch) == pytest.approx(1.0)
    assert convert(210, "mm", "mm") == 210.0


def test_pixels_need_reference_dpi():
    assert convert(1, "in", "px") == pytest.approx(96.0)
    assert convert(72, "pt", "px") == pytest.approx(96.0)
    assert convert(300, "px", "in", dpi=300) == pytest.approx(1.0)


def test_derived_constants():
    assert PT_PER_MM == pytest.approx(2.83, abs=0.01)
    assert PX_PER_PT == pytest.approx(1.33, abs=0.01)
    assert PX_PER_MM == pytest.approx(3.78, abs=0.01)


def test_convert_point_converts_both_axes():
    assert convert_point(72, 144, "pt", "in") == pytest.approx((1.0, 2.0))


@pytest.mark.parametrize("unit", ["cm", "em", "", None, 42])
def test_unsupported_unit(unit):
    with pytest.raises(UnsupportedUnitKind):
        convert(1, unit, "mm")
    with pytest.raises(ValueError):
        parse_unit(unit)


def test_parse_unit_is_case_insensitive():
    assert parse_unit(" MM ") is LengthUnit.mm
    assert parse_unit("in") is LengthUnit.inch


def test_points_mm_helpers_round_to_two_decimals():
    assert points_to_mm(595) == 209.9
    assert points_to_mm(842) == 297.04
    assert mm_to_points(210) == 595.28
