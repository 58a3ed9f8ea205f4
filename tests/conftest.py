import io

import pytest
from PIL import Image

from collage.config.settings import Settings
from collage.infrastructure.providers.base import CollageProvider


def png_bytes(size=(64, 48), color=(200, 40, 40, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


class FakeProvider(CollageProvider):
    """Records calls; answers with a canned plan and solid-colour PNGs."""
    id = "fake"

    def __init__(self, plan=None, plan_error=None, image_error=None):
        self.plan = plan if plan is not None else {}
        self.plan_error = plan_error
        self.image_error = image_error
        self.contexts = []
        self.reference_images = []
        self.image_calls = []

    async def plan_layout(self, context, reference_images):
        self.contexts.append(context)
        self.reference_images = list(reference_images)
        if self.plan_error is not None:
            raise self.plan_error
        return self.plan

    async def generate_image(self, prompt, size, transparent=False):
        self.image_calls.append((prompt, size, transparent))
        if self.image_error is not None:
            raise self.image_error
        if transparent:
            return png_bytes((32, 32), (30, 120, 200, 255))
        return png_bytes((64, 64), (245, 240, 228, 255))


@pytest.fixture
def make_png():
    return png_bytes


@pytest.fixture
def fake_provider_cls():
    return FakeProvider


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        COLLAGE_PROVIDER="fake",
        OPENAI_API_KEY=None,
        DOUBAO_API_KEY=None,
        IMAGE_RETRIES=2,
        IMAGE_RETRY_BASE_DELAY=0.1,
    )


@pytest.fixture
def cairo():
    """Skip text-rasterising tests on machines without the cairo library."""
    try:
        import cairosvg
    except (ImportError, OSError) as e:
        pytest.skip(f"cairo not available: {e}")
    return cairosvg
