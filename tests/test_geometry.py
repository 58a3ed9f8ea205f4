import itertools
import math

from collage.domain.geometry import MIN_EXTENT, box_to_pixels, normalize_box, to_number
from collage.domain.models import NormalizedBox

WEIRD_VALUES = [-5, -0.1, 0, 0.02, 0.5, 0.96, 0.97, 1, 2, "0.4", "abc", None, float("nan"), float("inf"), True]


def test_box_invariant_holds_for_any_input():
    for x, w in itertools.product(WEIRD_VALUES, repeat=2):
        for y, h in [(x, w), (w, x)]:
            box = normalize_box({"x": x, "y": y, "w": w, "h": h})
            for origin, extent in [(box.x, box.w), (box.y, box.h)]:
                assert 0 <= origin <= 1
                assert extent >= MIN_EXTENT
                assert origin + extent <= 0.98 + 1e-9
                assert math.isfinite(origin) and math.isfinite(extent)


def test_normalize_box_is_idempotent():
    for x, w in itertools.product(WEIRD_VALUES, repeat=2):
        once = normalize_box({"x": x, "y": w, "w": w, "h": x})
        assert normalize_box(once.model_dump()) == once
        assert normalize_box(once) == once


def test_missing_keys_use_default_box():
    assert normalize_box({}) == NormalizedBox(x=0, y=0, w=0.3, h=0.3)
    assert normalize_box(None) == NormalizedBox(x=0, y=0, w=0.3, h=0.3)


def test_numeric_strings_are_coerced():
    box = normalize_box({"x": "0.25", "y": " 0.5 ", "w": "0.1", "h": "0.2"})
    assert box == NormalizedBox(x=0.25, y=0.5, w=0.1, h=0.2)


def test_width_is_bounded_by_origin():
    box = normalize_box({"x": 0.9, "y": 0.1, "w": 0.5, "h": 0.5})
    assert math.isclose(box.w, 0.08)
    assert box.h == 0.5


def test_to_number_rejects_booleans_and_non_finite():
    assert to_number(True) is None
    assert to_number(float("nan")) is None
    assert to_number("inf") is None
    assert to_number([1]) is None
    assert to_number("3") == 3.0


def test_box_to_pixels_rounds():
    box = NormalizedBox(x=0.1, y=0.2, w=0.5, h=0.25)
    assert box_to_pixels(box, 1000, 800) == (100, 160, 500, 200)


def test_box_to_pixels_never_returns_zero_size():
    box = NormalizedBox(x=0, y=0, w=0.02, h=0.02)
    assert box_to_pixels(box, 10, 10)[2:] == (1, 1)
