# collage/domain/layout.py
"""
Plan-to-layout boundary.

Everything a chat model returns for ``layout`` is untrusted: ``normalize_layout``
turns it into a ``CollageLayout`` whose every field has a legal value, and
falls back to a deterministic layout when the plan has no usable shape.
"""
import datetime
import logging
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from collage.domain.geometry import normalize_box, to_number
from collage.domain.models import (
    CanvasSpec,
    CollageLayout,
    GeneratedAsset,
    PhotoPlacement,
    StickerPlacement,
    TextBlock,
)

logger = logging.getLogger(__name__)

PHOTO_STYLES = {
    "framed": "framed",
    "taped": "taped",
    "plain": "plain",
    # planner vocabulary
    "polaroid": "framed",
    "tape": "taped",
    "clean": "plain",
}
TEXT_KINDS = ("date", "title", "body")
ALIGNMENTS = ("left", "center", "right")
DEFAULT_CORNER_RADIUS = 12.0

FALLBACK_PHOTO_SLOTS = (
    {"x": 0.08, "y": 0.32, "w": 0.56, "h": 0.52, "rotate": -2},
    {"x": 0.68, "y": 0.42, "w": 0.24, "h": 0.22, "rotate": 2},
    {"x": 0.68, "y": 0.67, "w": 0.24, "h": 0.22, "rotate": -1},
)
DEFAULT_STICKER_BOXES = (
    {"x": 0.75, "y": 0.2, "w": 0.16, "h": 0.16, "rotate": 10},
    {"x": 0.57, "y": 0.75, "w": 0.16, "h": 0.16, "rotate": -8},
)


def _get(entry: Any, key: str, default: Any = None) -> Any:
    if isinstance(entry, Mapping):
        return entry.get(key, default)
    return default


def _box_source(entry: Any) -> Any:
    nested = _get(entry, "box")
    return nested if isinstance(nested, Mapping) else entry


def _number(value: Any, default: float) -> float:
    number = to_number(value)
    return default if number is None else number


def _choice(value: Any, allowed: Sequence[str], default: str) -> str:
    return value if isinstance(value, str) and value in allowed else default


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _present(value: Any) -> bool:
    """Planner JSON may pad lists with null, false, 0 or ""; empty objects still count."""
    if value is None or value is False or value == "":
        return False
    if isinstance(value, (int, float)):
        return value == value and value != 0
    return True


def _flag(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in ("", "false", "0", "no", "off")
    return bool(value)


def normalize_photo(entry: Any, index: int, photo_count: int) -> PhotoPlacement:
    source = to_number(_get(entry, "sourceIndex"))
    source_index = int(source) if source is not None else index
    source_index = max(0, min(photo_count - 1, source_index))

    radius = to_number(_get(entry, "cornerRadius"))
    style = _get(entry, "style")
    return PhotoPlacement(
        id=_text(_get(entry, "id")) or f"p{index}",
        source_index=source_index,
        box=normalize_box(_box_source(entry)),
        rotate=_number(_get(entry, "rotate"), 0.0),
        style=PHOTO_STYLES.get(style, "framed") if isinstance(style, str) else "framed",
        corner_radius=radius if radius is not None and radius >= 0 else DEFAULT_CORNER_RADIUS,
        shadow=_flag(_get(entry, "shadow"), True),
    )


def normalize_text(entry: Any, index: int) -> TextBlock:
    font_size = to_number(_get(entry, "fontSize"))
    color = _get(entry, "color")
    return TextBlock(
        id=_text(_get(entry, "id")) or f"t{index}",
        kind=_choice(_get(entry, "kind"), TEXT_KINDS, "body"),
        text=_text(_get(entry, "text")),
        box=normalize_box(_box_source(entry)),
        align=_choice(_get(entry, "align"), ALIGNMENTS, "left"),
        font_size=font_size if font_size is not None and font_size > 0 else None,
        color=color if isinstance(color, str) and color.strip() else None,
        font_family="serif" if _get(entry, "fontFamily") == "serif" else "sans",
        rotate=_number(_get(entry, "rotate"), 0.0),
    )


def normalize_sticker(entry: Any) -> Optional[StickerPlacement]:
    element_id = _text(_get(entry, "elementId")).strip()
    if not element_id:
        return None
    return StickerPlacement(
        element_id=element_id,
        box=normalize_box(_box_source(entry)),
        rotate=_number(_get(entry, "rotate"), 0.0),
    )


def normalize_layout(raw_plan: Any, canvas: CanvasSpec, photo_count: int,
                     fallback: CollageLayout) -> CollageLayout:
    """Repair a planner layout; returns ``fallback`` when photos/texts are not lists."""
    layout = _get(raw_plan, "layout")
    if not isinstance(layout, Mapping) or not isinstance(layout.get("photos"), list) \
            or not isinstance(layout.get("texts"), list):
        logger.warning("Plan layout malformed or missing, using fallback layout.")
        return fallback

    photo_entries = [p for p in layout["photos"] if _present(p)]
    text_entries = [t for t in layout["texts"] if _present(t)]
    photos = [normalize_photo(p, i, photo_count) for i, p in enumerate(photo_entries)]
    texts = [normalize_text(t, i) for i, t in enumerate(text_entries)]

    stickers: List[StickerPlacement] = []
    if isinstance(layout.get("stickers"), list):
        for s in layout["stickers"]:
            if not _present(s):
                continue
            placement = normalize_sticker(s)
            if placement is not None:
                stickers.append(placement)

    background_style = layout.get("backgroundStyle")
    return CollageLayout(
        canvas=CanvasSpec(width=canvas.width, height=canvas.height),
        background_style=background_style if isinstance(background_style, str) and background_style else "paper",
        photos=photos,
        texts=texts,
        stickers=stickers,
    )


def _clean(value: Optional[str]) -> str:
    return value.strip() if isinstance(value, str) else ""


def default_texts(canvas: CanvasSpec, prompt: str = "", date_text: Optional[str] = None,
                  title_text: Optional[str] = None, body_text: Optional[str] = None,
                  today: Optional[datetime.date] = None) -> List[TextBlock]:
    """Date / title / body blocks for the fallback layout; blank blocks are left out."""
    min_side = min(canvas.width, canvas.height)
    title = _clean(title_text)
    date = _clean(date_text) or (today or datetime.date.today()).isoformat()
    body = _clean(body_text) or ("" if title else _clean(prompt))

    blocks = [
        TextBlock(id="t-date", kind="date", text=date,
                  box=normalize_box({"x": 0.08, "y": 0.07, "w": 0.84, "h": 0.07}),
                  font_size=round(min_side * 0.04), color="#1f2937", font_family="sans"),
        TextBlock(id="t-title", kind="title", text=title,
                  box=normalize_box({"x": 0.08, "y": 0.15, "w": 0.84, "h": 0.125}),
                  font_size=round(min_side * 0.075), color="#0f766e", font_family="serif"),
        TextBlock(id="t-body", kind="body", text=body,
                  box=normalize_box({"x": 0.08, "y": 0.27, "w": 0.84, "h": 0.105}),
                  font_size=round(min_side * 0.032), color="#111827", font_family="sans"),
    ]
    return [b for b in blocks if b.text.strip()]


def default_layout(canvas: CanvasSpec, photo_count: int,
                   texts: Optional[Iterable[TextBlock]] = None) -> CollageLayout:
    photos = [
        PhotoPlacement(
            id=f"p{i}",
            source_index=i,
            box=normalize_box(slot),
            rotate=slot["rotate"],
            style="framed",
            corner_radius=DEFAULT_CORNER_RADIUS,
            shadow=True,
        )
        for i, slot in enumerate(FALLBACK_PHOTO_SLOTS[:max(0, photo_count)])
    ]
    return CollageLayout(
        canvas=CanvasSpec(width=canvas.width, height=canvas.height),
        background_style="paper",
        photos=photos,
        texts=list(texts) if texts is not None else default_texts(canvas),
        stickers=[],
    )


def default_sticker_placements(assets: Sequence[GeneratedAsset]) -> List[StickerPlacement]:
    return [
        StickerPlacement(element_id=asset.id, box=normalize_box(box), rotate=box["rotate"])
        for asset, box in zip(assets, DEFAULT_STICKER_BOXES)
    ]
