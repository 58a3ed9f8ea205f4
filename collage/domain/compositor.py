# collage/domain/compositor.py
"""
Deterministic collage assembly.

Layers are stacked background -> photos -> stickers -> text. Every layer is
rendered at its box size, rotated, then cut down to the part that falls on
the canvas before it is merged; layers with nothing visible are skipped.
"""
import logging
from typing import List, Optional, Sequence

from PIL import Image

from collage.domain.errors import ComposeFailed, InvalidUpload
from collage.domain.frame_renderer import render_framed_photo, render_plain_photo
from collage.domain.geometry import box_to_pixels
from collage.domain.layout import default_sticker_placements
from collage.domain.models import CollageLayout, GeneratedAsset, StickerPlacement, TextBlock
from collage.infrastructure.cv import image_process
from collage.infrastructure.cv.image_process import PlacedLayer
from collage.infrastructure.cv.text_overlay import LINE_HEIGHT, TextOverlayItem, render_text_overlay, wrap_text

logger = logging.getLogger(__name__)

TITLE_COLOR = "#0f766e"
TEXT_COLOR = "#111827"


def place_layer(rendered: Image.Image, rotate: float, left: int, top: int,
                canvas_w: int, canvas_h: int) -> Optional[PlacedLayer]:
    rendered = image_process.rotate(rendered, rotate)
    return image_process.crop_to_canvas(rendered, canvas_w, canvas_h, left, top)


def build_photo_layers(layout: CollageLayout, photos: Sequence[Image.Image]) -> List[PlacedLayer]:
    canvas_w, canvas_h = layout.canvas.width, layout.canvas.height
    layers: List[PlacedLayer] = []

    for p in layout.photos:
        if not 0 <= p.source_index < len(photos):
            continue
        src = photos[p.source_index]
        px, py, pw, ph = box_to_pixels(p.box, canvas_w, canvas_h)

        if p.style == "plain":
            rendered = render_plain_photo(src, pw, ph)
        else:
            rendered = render_framed_photo(
                src, pw, ph,
                corner_radius=max(0, round(p.corner_radius)),
                shadow=p.shadow,
                taped=p.style == "taped",
            )

        placed = place_layer(rendered, p.rotate, px, py, canvas_w, canvas_h)
        if placed is None:
            logger.info(f"Photo layer {p.id} is outside the canvas, skipped.")
            continue
        layers.append(placed)
    return layers


def resolve_sticker_placements(layout: CollageLayout, assets: Sequence[GeneratedAsset]) -> List[StickerPlacement]:
    if layout.stickers:
        return list(layout.stickers)
    return default_sticker_placements(assets)


def find_asset(element_id: str, assets: Sequence[GeneratedAsset]) -> Optional[GeneratedAsset]:
    """Exact id match, otherwise the first sticker-kind asset."""
    for asset in assets:
        if asset.id == element_id:
            return asset
    for asset in assets:
        if asset.kind == "sticker":
            return asset
    return None


def build_sticker_layers(layout: CollageLayout, assets: Sequence[GeneratedAsset]) -> List[PlacedLayer]:
    canvas_w, canvas_h = layout.canvas.width, layout.canvas.height
    layers: List[PlacedLayer] = []

    for s in resolve_sticker_placements(layout, assets):
        asset = find_asset(s.element_id, assets)
        if asset is None:
            continue
        try:
            art = image_process.decode_image(asset.image_bytes)
        except InvalidUpload:
            logger.warning(f"Sticker asset {asset.id} could not be decoded, skipped.")
            continue

        px, py, pw, ph = box_to_pixels(s.box, canvas_w, canvas_h)
        rendered = image_process.fit_resize(art, pw, ph, mode="inside")
        placed = place_layer(rendered, s.rotate, px, py, canvas_w, canvas_h)
        if placed is not None:
            layers.append(placed)
    return layers


def text_overlay_items(texts: Sequence[TextBlock], canvas_w: int, canvas_h: int) -> List[TextOverlayItem]:
    min_side = min(canvas_w, canvas_h)
    items: List[TextOverlayItem] = []

    for t in texts:
        px, py, pw, ph = box_to_pixels(t.box, canvas_w, canvas_h)
        is_title = t.kind == "title"
        font_size = t.font_size or (round(min_side * 0.07) if is_title else round(min_side * 0.032))
        font_size = min(font_size, canvas_h)

        if t.kind == "body":
            # let long body copy grow downwards instead of being cut after one line
            lines = max(1, len(wrap_text(t.text, pw, font_size)))
            ph = max(ph, lines * round(font_size * LINE_HEIGHT) + round(font_size * 0.4))

        items.append(TextOverlayItem(
            text=t.text,
            x=px,
            y=py,
            w=pw,
            h=ph,
            align=t.align,
            font_size=font_size,
            color=t.color or (TITLE_COLOR if is_title else TEXT_COLOR),
            font_family=t.font_family,
            rotate=t.rotate,
            weight=700 if is_title else 500,
        ))
    return items


def build_text_layer(layout: CollageLayout) -> Optional[PlacedLayer]:
    canvas_w, canvas_h = layout.canvas.width, layout.canvas.height
    items = [i for i in text_overlay_items(layout.texts, canvas_w, canvas_h) if i.text.strip()]
    if not items:
        return None
    overlay = render_text_overlay(canvas_w, canvas_h, items)
    return image_process.crop_to_canvas(overlay, canvas_w, canvas_h, 0, 0)


def merge_layers(background: Image.Image, layers: Sequence[PlacedLayer], canvas_w: int, canvas_h: int) -> Image.Image:
    canvas = image_process.fit_resize(background, canvas_w, canvas_h, mode="cover")
    for layer in layers:
        canvas.alpha_composite(layer.image.convert("RGBA"), dest=(layer.left, layer.top))
    return canvas


def compose(background: Image.Image, layout: CollageLayout, photos: Sequence[Image.Image],
            assets: Sequence[GeneratedAsset]) -> Image.Image:
    canvas_w, canvas_h = layout.canvas.width, layout.canvas.height

    layers: List[PlacedLayer] = []
    layers.extend(build_photo_layers(layout, photos))
    layers.extend(build_sticker_layers(layout, assets))
    text_layer = build_text_layer(layout)
    if text_layer is not None:
        layers.append(text_layer)

    logger.info(f"Merging {len(layers)} layers onto {canvas_w}x{canvas_h} canvas.")
    return merge_layers(background, layers, canvas_w, canvas_h)


def compose_png(background_bytes: bytes, layout: CollageLayout, photos: Sequence[Image.Image],
                assets: Sequence[GeneratedAsset]) -> bytes:
    try:
        background = image_process.decode_image(background_bytes)
    except InvalidUpload as e:
        raise ComposeFailed("Background image could not be decoded") from e
    return image_process.encode_png(compose(background, layout, photos, assets))
