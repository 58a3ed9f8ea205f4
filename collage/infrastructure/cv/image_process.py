# collage/infrastructure/cv/image_process.py
import io
import math
from typing import NamedTuple, Optional, Tuple, Union

import numpy as np
from PIL import Image, ImageDraw, ImageFilter, ImageOps, UnidentifiedImageError

from collage.domain.errors import InvalidUpload

Color = Union[str, Tuple[int, int, int], Tuple[int, int, int, int]]
TRANSPARENT = (0, 0, 0, 0)


class Rect(NamedTuple):
    left: int
    top: int
    w: int
    h: int


class PlacedLayer(NamedTuple):
    image: Image.Image
    left: int
    top: int


def decode_image(data: Optional[bytes]) -> Image.Image:
    if not data:
        raise InvalidUpload("Invalid upload file buffer")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise InvalidUpload(f"Unable to decode image: {type(e).__name__}") from e
    return img


def canonicalize(data: Optional[bytes]) -> Image.Image:
    """Decode an upload into an upright RGBA image (EXIF orientation applied)."""
    img = decode_image(data)
    img = ImageOps.exif_transpose(img)
    return img.convert("RGBA")


def encode_png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG", optimize=True)
    return buf.getvalue()


def fit_resize(img: Image.Image, target_w: int, target_h: int, mode: str = "cover",
               background: Color = TRANSPARENT) -> Image.Image:
    target_w, target_h = max(1, int(target_w)), max(1, int(target_h))
    source_w, source_h = img.size
    img = img.convert("RGBA")

    if mode == "cover":
        target_ratio = target_w / target_h
        source_ratio = source_w / source_h
        if source_ratio > target_ratio:
            scaled_h = target_h
            scaled_w = max(target_w, int(round(source_w * target_h / source_h)))
        else:
            scaled_w = target_w
            scaled_h = max(target_h, int(round(source_h * target_w / source_w)))
        resized = img.resize((scaled_w, scaled_h), Image.Resampling.LANCZOS)
        crop_x = (scaled_w - target_w) // 2
        crop_y = (scaled_h - target_h) // 2
        return resized.crop((crop_x, crop_y, crop_x + target_w, crop_y + target_h))

    if mode not in ("contain", "inside"):
        raise ValueError(f"Unknown fit mode: {mode}")

    scale = min(target_w / source_w, target_h / source_h)
    fitted_w = max(1, int(round(source_w * scale)))
    fitted_h = max(1, int(round(source_h * scale)))
    fitted = img if (fitted_w, fitted_h) == img.size else img.resize((fitted_w, fitted_h), Image.Resampling.LANCZOS)
    if mode == "inside":
        return fitted

    canvas = Image.new("RGBA", (target_w, target_h), background)
    canvas.alpha_composite(fitted, dest=((target_w - fitted_w) // 2, (target_h - fitted_h) // 2))
    return canvas


def rounded_clip(img: Image.Image, radius: float) -> Image.Image:
    img = img.convert("RGBA")
    radius = max(0, int(round(radius)))
    if radius == 0:
        return img
    w, h = img.size
    mask = Image.new("L", (w, h), 0)
    ImageDraw.Draw(mask).rounded_rectangle((0, 0, w - 1, h - 1), radius=radius, fill=255)
    alpha = np.minimum(np.asarray(img.getchannel("A")), np.asarray(mask))
    clipped = img.copy()
    clipped.putalpha(Image.fromarray(alpha.astype(np.uint8)))
    return clipped


def rotate(img: Image.Image, degrees: float) -> Image.Image:
    """Rotate clockwise about the center, growing the canvas to fit."""
    if not degrees or math.isclose(degrees % 360, 0.0, abs_tol=1e-9):
        return img
    return img.convert("RGBA").rotate(
        -degrees, resample=Image.Resampling.BICUBIC, expand=True, fillcolor=TRANSPARENT
    )


def drop_shadow(img: Image.Image, blur_radius: float = 12, darken: float = 0.2,
                offset: int = 16, margin: int = 24) -> Image.Image:
    img = img.convert("RGBA")
    arr = np.asarray(img).astype(np.float32)
    arr[..., :3] *= max(0.0, min(1.0, darken))
    shadow = Image.fromarray(arr.clip(0, 255).astype(np.uint8))

    w, h = img.size
    canvas = Image.new("RGBA", (w + margin, h + margin), TRANSPARENT)
    canvas.alpha_composite(shadow, dest=(offset, offset))
    canvas = canvas.filter(ImageFilter.GaussianBlur(radius=blur_radius))
    canvas.alpha_composite(img, dest=(0, 0))
    return canvas


def safe_intersect(canvas_w: float, canvas_h: float, left: float, top: float,
                   input_w: float, input_h: float) -> Optional[Rect]:
    """Visible part of a layer placed at (left, top) on a canvas_w x canvas_h canvas."""
    try:
        left, top = math.floor(left), math.floor(top)
        in_w, in_h = math.floor(input_w), math.floor(input_h)
        canvas_w, canvas_h = math.floor(canvas_w), math.floor(canvas_h)
    except (TypeError, ValueError, OverflowError):
        return None
    if in_w <= 0 or in_h <= 0:
        return None

    x0 = max(0, left)
    y0 = max(0, top)
    x1 = min(canvas_w, left + in_w)
    y1 = min(canvas_h, top + in_h)
    w = x1 - x0
    h = y1 - y0
    if w <= 0 or h <= 0:
        return None
    return Rect(x0, y0, w, h)


def crop_to_canvas(img: Image.Image, canvas_w: int, canvas_h: int, left: float, top: float) -> Optional[PlacedLayer]:
    in_w, in_h = img.size
    rect = safe_intersect(canvas_w, canvas_h, left, top, in_w, in_h)
    if rect is None:
        return None

    extract_left = rect.left - math.floor(left)
    extract_top = rect.top - math.floor(top)
    if extract_left == 0 and extract_top == 0 and rect.w == in_w and rect.h == in_h:
        return PlacedLayer(img, rect.left, rect.top)

    cropped = img.crop((extract_left, extract_top, extract_left + rect.w, extract_top + rect.h))
    return PlacedLayer(cropped, rect.left, rect.top)
