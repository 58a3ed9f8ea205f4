import asyncio
import base64
import json

import pytest

from collage.domain.errors import ConfigurationError, UnsupportedProvider, UpstreamHttpError
from collage.domain.models import CanvasSpec
from collage.infrastructure.providers.base import PlanningContext
from collage.infrastructure.providers.doubao_provider import MIN_IMAGE_PIXELS, DoubaoProvider, normalize_size
from collage.infrastructure.providers.openai_provider import OpenAIProvider, legalize_image_size
from collage.infrastructure.providers.registry import ProviderRegistry, build_registry


def _context(photo_count=1):
    return PlanningContext(prompt="ocean walk", style="minimal", template_id=None, photo_count=photo_count,
                           canvas=CanvasSpec(width=1024, height=1400))


def test_openai_size_legalization():
    assert legalize_image_size("1024x1024", "gpt-image-1") == "1024x1024"
    assert legalize_image_size("1024x1400", "gpt-image-1") == "1024x1536"
    assert legalize_image_size("2000x1000", "gpt-image-1") == "1536x1024"
    assert legalize_image_size("1024x1400", "dall-e-3") == "1024x1792"
    assert legalize_image_size("2000x1000", "dall-e-3") == "1792x1024"
    assert legalize_image_size("garbage", "gpt-image-1") == "1024x1024"


def test_doubao_size_meets_minimum_pixels():
    assert normalize_size("2K") == "1920x1920"
    assert normalize_size("4000x4000") == "4000x4000"
    assert normalize_size("weird") == "weird"

    w, h = (int(v) for v in normalize_size("1024x1400").split("x"))
    assert w * h >= MIN_IMAGE_PIXELS
    assert abs(w / h - 1024 / 1400) < 0.01


def test_doubao_plans_locally_without_layout(test_settings):
    plan = asyncio.run(DoubaoProvider(test_settings).plan_layout(_context(), []))
    assert "layout" not in plan
    assert [e["id"] for e in plan["elements"]] == ["st-1", "st-2"]
    assert [e["kind"] for e in plan["elements"]] == ["sticker", "decoration"]
    assert plan["backgroundPrompt"] == "ocean walk"


def test_missing_api_keys_raise_configuration_error(test_settings):
    with pytest.raises(ConfigurationError):
        asyncio.run(OpenAIProvider(test_settings).generate_image("paper", "1024x1024"))
    with pytest.raises(ConfigurationError):
        asyncio.run(OpenAIProvider(test_settings).plan_layout(_context(), []))
    with pytest.raises(ConfigurationError):
        asyncio.run(DoubaoProvider(test_settings).generate_image("paper", "1024x1024"))


def test_openai_plan_messages_carry_photos(test_settings, make_png):
    messages = OpenAIProvider(test_settings).build_plan_messages(_context(2), [make_png(), make_png()])
    assert messages[0]["role"] == "system"
    content = messages[1]["content"]
    request = json.loads(content[0]["text"])
    assert request["imageCount"] == 2
    assert request["canvas"] == {"width": 1024, "height": 1400}
    assert [c["type"] for c in content[1:]] == ["image_url", "image_url"]
    assert content[1]["image_url"]["url"].startswith("data:image/png;base64,")


def test_openai_extracts_b64_image(test_settings):
    body = json.dumps({"data": [{"b64_json": base64.b64encode(b"png-bytes").decode()}]})
    provider = OpenAIProvider(test_settings)
    assert asyncio.run(provider._extract_image(body, "images")) == b"png-bytes"
    with pytest.raises(UpstreamHttpError):
        asyncio.run(provider._extract_image(json.dumps({"data": []}), "images"))
    with pytest.raises(UpstreamHttpError):
        asyncio.run(provider._extract_image("<html>", "images"))


def test_registry_lookup(fake_provider_cls):
    fake = fake_provider_cls()
    registry = ProviderRegistry([fake], default="FAKE")
    assert registry.get() is fake
    assert registry.get(" Fake ") is fake
    with pytest.raises(UnsupportedProvider) as excinfo:
        registry.get("nope")
    assert excinfo.value.status == 400
    assert excinfo.value.details == {"requested": "nope", "supported": ["fake"]}


def test_build_registry_registers_both_vendors(test_settings):
    registry = build_registry(test_settings)
    assert registry.ids == ["openai", "doubao"]
    assert registry.default == "fake"
