# collage/domain/frame_renderer.py
from PIL import Image, ImageDraw

from collage.infrastructure.cv import image_process

PAPER_COLOR = (255, 255, 255, 255)
TAPE_COLOR = (236, 222, 178, 190)
BORDER_RATIO = 0.08
BOTTOM_BORDER_FACTOR = 1.8
SHADOW_MARGIN = 24


def _tape_strip(frame_w: int, pad: int) -> Image.Image:
    tape_w = max(8, int(round(frame_w * 0.38)))
    tape_h = max(6, int(round(pad * 1.4)))
    strip = Image.new("RGBA", (tape_w, tape_h), TAPE_COLOR)
    draw = ImageDraw.Draw(strip)
    # torn ends
    step = max(2, tape_h // 4)
    for y in range(0, tape_h, step * 2):
        draw.rectangle((0, y, 1, y + step - 1), fill=(0, 0, 0, 0))
        draw.rectangle((tape_w - 2, y + step, tape_w - 1, y + 2 * step - 1), fill=(0, 0, 0, 0))
    return image_process.rotate(strip, -4)


def render_framed_photo(photo: Image.Image, width: int, height: int, corner_radius: float = 12,
                        shadow: bool = True, taped: bool = False) -> Image.Image:
    """Photo-paper presentation: white border (deeper at the bottom), rounded photo, optional tape and shadow."""
    width, height = max(1, int(width)), max(1, int(height))
    fitted = image_process.fit_resize(photo, width, height, mode="cover")
    clipped = image_process.rounded_clip(fitted, corner_radius)

    pad = int(round(min(width, height) * BORDER_RATIO))
    bottom_pad = int(round(pad * BOTTOM_BORDER_FACTOR))
    frame = Image.new("RGBA", (width + pad * 2, height + pad + bottom_pad), PAPER_COLOR)
    frame.alpha_composite(clipped, dest=(pad, pad))

    if taped:
        tape = _tape_strip(frame.width, max(pad, 4))
        lift = tape.height // 2
        taped_frame = Image.new("RGBA", (max(frame.width, tape.width), frame.height + lift), (0, 0, 0, 0))
        taped_frame.alpha_composite(frame, dest=(0, lift))
        taped_frame.alpha_composite(tape, dest=((taped_frame.width - tape.width) // 2, 0))
        frame = taped_frame

    if not shadow:
        return frame
    return image_process.drop_shadow(frame, margin=SHADOW_MARGIN)


def render_plain_photo(photo: Image.Image, width: int, height: int) -> Image.Image:
    return image_process.fit_resize(photo, width, height, mode="cover")
