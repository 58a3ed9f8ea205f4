# collage/infrastructure/providers/doubao_provider.py
"""
Doubao Seedream (Volcengine Ark) adapter.

Ark has no planner here, so ``plan_layout`` answers locally with a fixed set of
elements and no layout; the pipeline then places everything with its fallback
layout.
"""
import logging
import math
import re
from typing import Any, Dict, Sequence

from collage.config.settings import Settings
from collage.domain.errors import ConfigurationError, UpstreamHttpError
from collage.infrastructure.providers import http
from collage.infrastructure.providers.base import CollageProvider, PlanningContext

logger = logging.getLogger(__name__)

MIN_IMAGE_PIXELS = 3_686_400
SIZE_PATTERN = re.compile(r"^(\d+)x(\d+)$", re.IGNORECASE)

LOCAL_ELEMENTS = (
    {"id": "st-1", "kind": "sticker", "prompt": "small cute doodle sticker, minimal"},
    {"id": "st-2", "kind": "decoration", "prompt": "washi tape strip, paper texture"},
)


def normalize_size(size: str) -> str:
    """Scale a WxH request up to Seedream's minimum pixel count, keeping the aspect ratio."""
    raw = (size or "").strip()
    if raw.upper() == "2K":
        return "1920x1920"
    match = SIZE_PATTERN.match(raw)
    if not match:
        return raw
    w, h = int(match.group(1)), int(match.group(2))
    if w <= 0 or h <= 0:
        return raw
    pixels = w * h
    if pixels >= MIN_IMAGE_PIXELS:
        return f"{w}x{h}"
    scale = math.sqrt(MIN_IMAGE_PIXELS / pixels)
    return f"{math.ceil(w * scale)}x{math.ceil(h * scale)}"


class DoubaoProvider(CollageProvider):
    id = "doubao"

    def __init__(self, settings: Settings):
        self.settings = settings

    async def plan_layout(self, context: PlanningContext, reference_images: Sequence[bytes]) -> Dict[str, Any]:
        logger.info("Doubao has no planner, answering with the local plan.")
        return {
            "style": context.style,
            "palette": [],
            "backgroundPrompt": context.prompt,
            "elements": [dict(e) for e in LOCAL_ELEMENTS],
            "notes": "Plan generated locally (fallback).",
        }

    async def generate_image(self, prompt: str, size: str, transparent: bool = False) -> bytes:
        # Seedream may answer with an opaque JPEG even for stickers; the compositor copes.
        if not self.settings.DOUBAO_API_KEY:
            raise ConfigurationError("Missing DOUBAO_API_KEY in environment variables.")

        normalized = normalize_size(size)
        payload = {
            "model": self.settings.DOUBAO_IMAGE_MODEL,
            "prompt": prompt,
            "size": normalized,
            "watermark": False,
            "n": 1,
        }
        headers = {
            "authorization": f"Bearer {self.settings.DOUBAO_API_KEY}",
            "content-type": "application/json",
        }
        url = f"{self.settings.DOUBAO_BASE_URL.rstrip('/')}/api/v3/images/generations"
        label = f"Doubao images (size={normalized})"

        body = await http.with_retry(
            lambda: http.fetch("POST", url, timeout=self.settings.IMAGES_TIMEOUT_SECONDS, label=label,
                               proxy=self.settings.AI_PROXY, headers=headers, json_body=payload),
            retries=self.settings.IMAGE_RETRIES, base_delay=self.settings.IMAGE_RETRY_BASE_DELAY, label=label,
        )
        text = body.decode("utf-8", errors="replace")
        response = http.parse_json_object(text, label)
        data = response.get("data")
        first = data[0] if isinstance(data, list) and data and isinstance(data[0], dict) else {}

        b64 = first.get("b64_json")
        if isinstance(b64, str) and b64:
            return http.decode_base64(b64)

        image_url = first.get("url")
        if isinstance(image_url, str) and image_url.startswith("http"):
            return await http.fetch("GET", image_url, timeout=self.settings.IMAGES_TIMEOUT_SECONDS,
                                    label=f"{label} download", proxy=self.settings.AI_PROXY)

        raise UpstreamHttpError(f"{label}: empty b64_json (and no url fallback)", body=text)
