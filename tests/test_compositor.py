import io

import pytest
from PIL import Image

from collage.domain import compositor
from collage.domain.errors import ComposeFailed
from collage.domain.models import (
    CanvasSpec,
    CollageLayout,
    GeneratedAsset,
    NormalizedBox,
    PhotoPlacement,
    StickerPlacement,
    TextBlock,
)


def _layout(**kwargs):
    return CollageLayout(canvas=CanvasSpec(width=300, height=200), **kwargs)


def _plain_photo(source_index=0, x=0.1, y=0.1, w=0.5, h=0.5):
    return PhotoPlacement(id="p", source_index=source_index, box=NormalizedBox(x=x, y=y, w=w, h=h),
                          style="plain", shadow=False)


def test_place_layer_skips_invisible_layer():
    img = Image.new("RGBA", (40, 40), (255, 0, 0, 255))
    assert compositor.place_layer(img, 0, 500, 500, 100, 100) is None
    assert compositor.place_layer(img, 0, 10, 10, 100, 100) is not None


def test_photo_with_unknown_source_is_skipped():
    layout = _layout(photos=[_plain_photo(source_index=3)])
    assert compositor.build_photo_layers(layout, [Image.new("RGBA", (10, 10))]) == []


def test_compose_places_plain_photo_over_background():
    background = Image.new("RGBA", (10, 10), (250, 250, 250, 255))
    photo = Image.new("RGBA", (50, 50), (255, 0, 0, 255))
    out = compositor.compose(background, _layout(photos=[_plain_photo()]), [photo], [])
    assert out.size == (300, 200)
    assert out.getpixel((100, 70))[:3] == (255, 0, 0)
    assert out.getpixel((5, 5))[:3] == (250, 250, 250)


def test_empty_sticker_list_gets_default_placements():
    assets = [GeneratedAsset(id="a", image_bytes=b""), GeneratedAsset(id="b", image_bytes=b"")]
    placements = compositor.resolve_sticker_placements(_layout(), assets)
    assert [p.element_id for p in placements] == ["a", "b"]
    assert [p.rotate for p in placements] == [10, -8]


def test_explicit_sticker_placements_win():
    sticker = StickerPlacement(element_id="a", box=NormalizedBox(x=0, y=0, w=0.1, h=0.1))
    layout = _layout(stickers=[sticker])
    assert compositor.resolve_sticker_placements(layout, []) == [sticker]


def test_find_asset_falls_back_to_any_sticker():
    deco = GeneratedAsset(id="d", kind="decoration", image_bytes=b"")
    sticker = GeneratedAsset(id="s", kind="sticker", image_bytes=b"")
    assert compositor.find_asset("d", [deco, sticker]) is deco
    assert compositor.find_asset("missing", [deco, sticker]) is sticker
    assert compositor.find_asset("missing", [deco]) is None


def test_undecodable_sticker_is_skipped(make_png):
    good = GeneratedAsset(id="good", image_bytes=make_png((32, 32)))
    bad = GeneratedAsset(id="bad", kind="decoration", image_bytes=b"garbage")
    layout = _layout(stickers=[
        StickerPlacement(element_id="bad", box=NormalizedBox(x=0.1, y=0.1, w=0.2, h=0.2)),
        StickerPlacement(element_id="good", box=NormalizedBox(x=0.5, y=0.5, w=0.2, h=0.2)),
    ])
    layers = compositor.build_sticker_layers(layout, [good, bad])
    assert len(layers) == 1
    assert (layers[0].left, layers[0].top) == (150, 100)


def test_text_items_use_role_defaults():
    texts = [
        TextBlock(id="t", kind="title", text="Title", box=NormalizedBox(x=0, y=0, w=0.5, h=0.1)),
        TextBlock(id="b", kind="body", text="word " * 60, box=NormalizedBox(x=0, y=0.5, w=0.5, h=0.05)),
    ]
    title, body = compositor.text_overlay_items(texts, 1000, 1400)
    assert title.font_size == 70
    assert title.color == "#0f766e"
    assert title.weight == 700
    assert body.font_size == 32
    assert body.color == "#111827"
    assert body.weight == 500
    assert body.h > 70


def test_no_text_layer_without_text():
    layout = _layout(texts=[TextBlock(id="t", text="  ", box=NormalizedBox(x=0, y=0, w=0.5, h=0.1))])
    assert compositor.build_text_layer(layout) is None


def test_compose_png_rejects_bad_background():
    with pytest.raises(ComposeFailed):
        compositor.compose_png(b"not an image", _layout(), [], [])


def test_compose_png_with_text(cairo, make_png):
    layout = _layout(texts=[TextBlock(id="t", kind="title", text="Hello", box=NormalizedBox(x=0.1, y=0.1, w=0.8, h=0.3))])
    png = compositor.compose_png(make_png((20, 20), (255, 255, 255, 255)), layout, [], [])
    img = Image.open(io.BytesIO(png))
    assert img.size == (300, 200)


def test_small_sticker_art_fills_its_box(make_png):
    asset = GeneratedAsset(id="s", image_bytes=make_png((32, 32)))
    layout = _layout(stickers=[StickerPlacement(element_id="s", box=NormalizedBox(x=0.1, y=0.1, w=0.2, h=0.3))])
    layer, = compositor.build_sticker_layers(layout, [asset])
    assert layer.image.size == (60, 60)


def test_oversized_font_is_capped_to_canvas_height():
    texts = [TextBlock(id="b", kind="body", text="Sea day", font_size=1.7e308,
                       box=NormalizedBox(x=0.1, y=0.1, w=0.8, h=0.2))]
    body, = compositor.text_overlay_items(texts, 300, 200)
    assert body.font_size == 200
    assert body.h >= 250
