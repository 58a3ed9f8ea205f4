# collage/infrastructure/cv/text_overlay.py
"""
Text layer rendering.

Text blocks are laid out as SVG <text>/<tspan> markup and rasterised with
cairosvg onto a transparent canvas of the collage size. Wrapping uses a
per-character width estimate so that CJK and Latin text both fit the block.
"""
import io
import math
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional
from xml.sax.saxutils import escape

from PIL import Image

FONT_STACKS = {
    "sans": "Arial, Helvetica, 'Noto Sans CJK SC', sans-serif",
    "serif": "Georgia, 'Times New Roman', 'Noto Serif CJK SC', serif",
}
DEFAULT_COLOR = "#111827"
DEFAULT_FONT_SIZE = 28
MIN_FONT_SIZE = 12
LINE_HEIGHT = 1.25

_CJK = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af\uff00-\uffef]")
_ESCAPE_ATTRS = {'"': "&quot;", "'": "&#39;"}
# anything outside the XML 1.0 Char production makes the SVG unparseable
_XML_ILLEGAL = re.compile("[^\u0009\u000a\u000d\u0020-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")


@dataclass
class TextOverlayItem:
    """One text block in canvas pixels."""
    text: str
    x: int
    y: int
    w: int
    h: int
    align: str = "left"
    font_size: Optional[float] = None
    color: Optional[str] = None
    font_family: str = "sans"
    rotate: float = 0.0
    weight: int = 600


def char_units(ch: str) -> float:
    """Approximate glyph advance in em."""
    if ch == " ":
        return 0.33
    if _CJK.match(ch):
        return 1.0
    if "A" <= ch <= "Z":
        return 0.65
    if ("a" <= ch <= "z") or ("0" <= ch <= "9"):
        return 0.55
    return 0.8


def wrap_text(text: str, max_width_px: float, font_size: float) -> List[str]:
    s = str(text or "").strip()
    if not s:
        return []

    # at least two wide glyphs per line so tiny boxes still make progress
    max_units = max(2.0, max_width_px / max(1.0, font_size))
    lines: List[str] = []
    line, units = "", 0.0
    for ch in s:
        if ch in "\r\n":
            if line.strip():
                lines.append(line.rstrip())
            line, units = "", 0.0
            continue
        u = char_units(ch)
        if line and units + u > max_units:
            lines.append(line.rstrip())
            line, units = "", 0.0
        line += ch
        units += u
    if line.strip():
        lines.append(line.rstrip())
    return lines


def max_lines_for(height_px: float, font_size: float) -> int:
    line_height = round(font_size * LINE_HEIGHT)
    return max(1, int(math.floor(height_px / max(1, line_height))))


def _xml(value: str) -> str:
    return escape(_XML_ILLEGAL.sub("", value), _ESCAPE_ATTRS)


def _fmt(value: float) -> str:
    return f"{value:g}"


def _text_element(item: TextOverlayItem) -> str:
    font_size = max(MIN_FONT_SIZE, int(round(item.font_size or DEFAULT_FONT_SIZE)))
    align = item.align if item.align in ("left", "center", "right") else "left"
    anchor = {"left": "start", "center": "middle", "right": "end"}[align]
    x_anchor = {"left": item.x, "center": item.x + item.w / 2, "right": item.x + item.w}[align]
    family = FONT_STACKS.get(item.font_family, FONT_STACKS["sans"])
    color = item.color or DEFAULT_COLOR

    transform = ""
    if item.rotate:
        cx, cy = item.x + item.w / 2, item.y + item.h / 2
        transform = f' transform="rotate({_fmt(item.rotate)} {_fmt(cx)} {_fmt(cy)})"'

    lines = wrap_text(item.text, item.w, font_size)[: max_lines_for(item.h, font_size)]
    line_height = round(font_size * LINE_HEIGHT)
    tspans = "".join(
        f'<tspan x="{_fmt(x_anchor)}" dy="{0 if idx == 0 else line_height}">{_xml(line)}</tspan>'
        for idx, line in enumerate(lines)
    )
    return (
        f'<text{transform} x="{_fmt(x_anchor)}" y="{item.y + font_size}" text-anchor="{anchor}" '
        f'fill="{_xml(color)}" font-family="{_xml(family)}" '
        f'font-size="{font_size}" font-weight="{int(item.weight)}">{tspans}</text>'
    )


def build_text_svg(width: int, height: int, items: Iterable[TextOverlayItem]) -> str:
    elements = "".join(_text_element(t) for t in items if t and str(t.text or "").strip())
    return f'<svg xmlns="http://www.w3.org/2000/svg" width="{int(width)}" height="{int(height)}">{elements}</svg>'


def render_text_overlay(width: int, height: int, items: Iterable[TextOverlayItem]) -> Image.Image:
    import cairosvg  # needs the cairo system library; loaded only when text is drawn

    svg = build_text_svg(width, height, items)
    png = cairosvg.svg2png(bytestring=svg.encode("utf-8"), output_width=int(width), output_height=int(height))
    return Image.open(io.BytesIO(png)).convert("RGBA")
