import pytest

from printzone.core.dimensions import (
    BleedSettings,
    PhysicalSize,
    format_dimensions,
    format_dimensions_display,
    parse_dimensions,
    try_parse_dimensions,
)
from printzone.core.errors import UnparsableDimensions
from printzone.core.units import LengthUnit


def test_parse_compact_dimensions():
    size = parse_dimensions("210x297mm")
    assert (size.width, size.height, size.unit) == (210.0, 297.0, LengthUnit.mm)

    size = parse_dimensions("8.5x11in")
    assert (size.width, size.height, size.unit) == (8.5, 11.0, LengthUnit.inch)


@pytest.mark.parametrize("raw", ["210 x 297 mm", "210x297", "A4", "210x297cm", "210X297mm", "x297mm", "0x297mm", "", None])
def test_parse_rejects_anything_else(raw):
    with pytest.raises(UnparsableDimensions):
        parse_dimensions(raw)
    assert try_parse_dimensions(raw) is None


def test_format_dimensions():
    assert format_dimensions(PhysicalSize(width=210, height=297)) == "210x297mm"
    assert format_dimensions(PhysicalSize(width=8.5, height=11, unit="in")) == "8.5x11in"


def test_format_points_for_display_in_mm():
    assert format_dimensions_display(595, 842) == "209.9 × 297.04 mm"
    assert format_dimensions_display(800, 600, "px") == "800 × 600 px"


def test_to_unit_and_aspect():
    size = PhysicalSize(width=1, height=2, unit="in")
    assert size.to_unit("pt") == pytest.approx((72.0, 144.0))
    assert size.aspect_ratio == 0.5


def test_bleed_defaults():
    bleed = BleedSettings.from_stored(None)
    assert (bleed.top, bleed.right, bleed.bottom, bleed.left) == (3.0, 3.0, 3.0, 3.0)
    assert bleed.units is LengthUnit.mm


def test_bleed_non_numeric_edges_fall_back():
    bleed = BleedSettings.from_stored({"top": "abc", "left": 5, "right": None, "bottom": True, "units": "in"}, default=2)
    assert bleed.top == 2
    assert bleed.left == 5
    assert bleed.right == 2
    assert bleed.bottom == 2
    assert bleed.units is LengthUnit.inch


def test_bleed_unknown_unit_is_mm():
    bleed = BleedSettings.from_stored({"top": 1, "units": "furlong"})
    assert bleed.units is LengthUnit.mm
    assert bleed.to_stored() == {"top": 1.0, "right": 3.0, "bottom": 3.0, "left": 3.0, "units": "mm"}
