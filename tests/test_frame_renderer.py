from PIL import Image

from collage.domain.frame_renderer import render_framed_photo, render_plain_photo


def _photo():
    return Image.new("RGBA", (300, 200), (20, 120, 220, 255))


def test_framed_photo_adds_paper_border():
    out = render_framed_photo(_photo(), 100, 80, shadow=False)
    # pad = round(80 * 0.08) = 6, bottom = round(6 * 1.8) = 11
    assert out.size == (112, 97)
    assert out.getpixel((0, 0)) == (255, 255, 255, 255)
    assert out.getpixel((56, 90)) == (255, 255, 255, 255)
    assert out.getpixel((56, 40))[:3] == (20, 120, 220)


def test_shadow_extends_the_frame():
    out = render_framed_photo(_photo(), 100, 80, shadow=True)
    assert out.size == (112 + 24, 97 + 24)


def test_taped_frame_is_taller():
    plain = render_framed_photo(_photo(), 100, 80, shadow=False)
    taped = render_framed_photo(_photo(), 100, 80, shadow=False, taped=True)
    assert taped.height > plain.height
    assert taped.width >= plain.width


def test_plain_photo_is_exact_box_size():
    assert render_plain_photo(_photo(), 90, 90).size == (90, 90)
