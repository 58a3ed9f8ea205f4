import xml.etree.ElementTree as ET

from collage.infrastructure.cv.text_overlay import (
    TextOverlayItem,
    build_text_svg,
    max_lines_for,
    render_text_overlay,
    wrap_text,
)


def test_markup_escapes_user_text():
    svg = build_text_svg(400, 300, [TextOverlayItem(text='Tom & "Jerry" <3', x=10, y=10, w=380, h=100)])
    assert "Tom &amp; &quot;Jerry&quot; &lt;3" in svg
    assert "<3" not in svg


def test_control_characters_are_stripped():
    svg = build_text_svg(300, 300, [TextOverlayItem(text="Trip\x01day\x0b", x=0, y=0, w=280, h=60)])
    ET.fromstring(svg)
    assert ">Tripday<" in svg


def test_color_attribute_is_escaped():
    svg = build_text_svg(400, 300, [TextOverlayItem(text="hi", x=0, y=0, w=100, h=50, color='red" onload="x')])
    assert 'fill="red&quot; onload=&quot;x"' in svg


def test_alignment_sets_anchor_and_x():
    center = build_text_svg(400, 300, [TextOverlayItem(text="a", x=100, y=0, w=200, h=50, align="center")])
    assert 'text-anchor="middle"' in center
    assert 'x="200"' in center

    right = build_text_svg(400, 300, [TextOverlayItem(text="a", x=100, y=0, w=200, h=50, align="right")])
    assert 'text-anchor="end"' in right
    assert 'x="300"' in right


def test_rotation_is_about_block_center():
    svg = build_text_svg(400, 300, [TextOverlayItem(text="a", x=100, y=20, w=200, h=60, rotate=5)])
    assert 'transform="rotate(5 200 50)"' in svg


def test_font_size_has_a_floor():
    svg = build_text_svg(400, 300, [TextOverlayItem(text="a", x=0, y=0, w=200, h=60, font_size=4)])
    assert 'font-size="12"' in svg


def test_blank_blocks_are_omitted():
    svg = build_text_svg(400, 300, [TextOverlayItem(text="   ", x=0, y=0, w=200, h=60)])
    assert "<text" not in svg


def test_wrap_cjk_by_width():
    assert wrap_text("一二三四五六", 40, 10) == ["一二三四", "五六"]


def test_wrap_respects_explicit_newlines():
    assert wrap_text("first\nsecond", 1000, 10) == ["first", "second"]
    assert wrap_text("", 100, 10) == []


def test_overflowing_lines_are_truncated_to_box_height():
    assert max_lines_for(30, 20) == 1
    item = TextOverlayItem(text="一二三四五六七八九十", x=0, y=0, w=40, h=30, font_size=20)
    svg = build_text_svg(400, 300, [item])
    assert svg.count("<tspan") == 1


def test_render_overlay_matches_canvas(cairo):
    img = render_text_overlay(320, 200, [TextOverlayItem(text="Hello", x=10, y=10, w=300, h=60, font_size=24)])
    assert img.size == (320, 200)
    assert img.mode == "RGBA"
    assert img.getpixel((319, 199))[3] == 0
