# collage/domain/geometry.py
import math
from typing import Any, Mapping, Optional, Tuple

from collage.domain.models import NormalizedBox

MIN_EXTENT = 0.02
MAX_EDGE = 0.98
# Largest origin that still leaves room for the minimum extent inside MAX_EDGE.
MAX_ORIGIN = MAX_EDGE - MIN_EXTENT

DEFAULT_BOX = {"x": 0.0, "y": 0.0, "w": 0.3, "h": 0.3}


def to_number(value: Any) -> Optional[float]:
    """Coerce planner JSON values to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def clamp_unit(value: Any) -> float:
    number = to_number(value)
    if number is None:
        return 0.0
    return max(0.0, min(1.0, number))


def _read(raw: Any, key: str) -> Any:
    if isinstance(raw, Mapping):
        value = raw.get(key)
    else:
        value = getattr(raw, key, None)
    return DEFAULT_BOX[key] if value is None else value


def normalize_box(raw: Any) -> NormalizedBox:
    """Clamp a fractional box so that it starts on the canvas and ends before 98% of it.

    x/y are fixed first; w/h are then bounded by the final x/y.
    """
    x = min(MAX_ORIGIN, clamp_unit(_read(raw, "x")))
    y = min(MAX_ORIGIN, clamp_unit(_read(raw, "y")))
    w = clamp_unit(_read(raw, "w"))
    h = clamp_unit(_read(raw, "h"))
    return NormalizedBox(
        x=x,
        y=y,
        w=max(MIN_EXTENT, min(MAX_EDGE - x, w)),
        h=max(MIN_EXTENT, min(MAX_EDGE - y, h)),
    )


def box_to_pixels(box: NormalizedBox, canvas_w: int, canvas_h: int) -> Tuple[int, int, int, int]:
    px = int(round(box.x * canvas_w))
    py = int(round(box.y * canvas_h))
    pw = max(1, int(round(box.w * canvas_w)))
    ph = max(1, int(round(box.h * canvas_h)))
    return px, py, pw, ph
