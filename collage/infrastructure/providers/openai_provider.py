# collage/infrastructure/providers/openai_provider.py
"""
OpenAI adapter: chat completions (JSON mode, vision input) for planning and
the images API for backgrounds and stickers.
"""
import base64
import json
import logging
import re
from typing import Any, Dict, List, Sequence

from collage.config.settings import Settings
from collage.domain.errors import ConfigurationError, UpstreamHttpError
from collage.infrastructure.providers import http
from collage.infrastructure.providers.base import CollageProvider, PlanningContext

logger = logging.getLogger(__name__)

SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*x\s*(\d+)\s*$", re.IGNORECASE)

PLANNER_SYSTEM_PROMPT = (
    "You are a scrapbook / journal collage layout designer. The result should look like a hand-made "
    "journal page or magazine spread: paper background, photo-paper framed photos, decorative stickers, "
    "a title and body copy. You must output strict JSON; every field must exist and be usable.\n"
    "Hard constraints: all coordinates and sizes in layout are relative numbers between 0 and 1; "
    "photos[].sourceIndex must be within [0, imageCount-1]; texts[].kind is one of date/title/body; "
    "provide 2 to 8 elements; output nothing except the JSON object.\n"
    "Style preferences: generous whitespace, clean, light shadows, tape and sticker accents. Background "
    "and stickers must never contain readable text (all text is rendered from layout.texts)."
)

PLAN_OUTPUT_SCHEMA = {
    "style": "string",
    "palette": ["string"],
    "backgroundPrompt": "string",
    "elements": [{"id": "string", "kind": "sticker|frame|decoration", "prompt": "string"}],
    "layout": {
        "canvas": {"width": "number", "height": "number"},
        "backgroundStyle": "paper|stationery|minimal|poster",
        "photos": [{
            "id": "string", "sourceIndex": "number",
            "x": "0~1", "y": "0~1", "w": "0~1", "h": "0~1",
            "rotate": "number", "style": "polaroid|tape|clean",
            "cornerRadius": "number", "shadow": "boolean",
        }],
        "texts": [{
            "id": "string", "kind": "date|title|body", "text": "string",
            "x": "0~1", "y": "0~1", "w": "0~1", "h": "0~1",
            "align": "left|center|right", "fontSize": "number", "color": "string",
            "fontFamily": "sans|serif", "rotate": "number",
        }],
        "stickers": [{"elementId": "string", "x": "0~1", "y": "0~1", "w": "0~1", "h": "0~1", "rotate": "number"}],
    },
    "notes": "string",
}


def legalize_image_size(size: str, model: str) -> str:
    """Snap a logical WxH request to the nearest size the image model accepts."""
    match = SIZE_PATTERN.match(size or "")
    if not match:
        return "1024x1024"
    w, h = int(match.group(1)), int(match.group(2))
    if w <= 0 or h <= 0:
        return "1024x1024"

    ratio = w / h
    is_square = 0.85 < ratio < 1.18
    is_landscape = ratio >= 1.18
    model = (model or "gpt-image-1").lower()

    if "dall-e" in model or "dalle" in model:
        if is_square:
            return "1024x1024"
        return "1792x1024" if is_landscape else "1024x1792"

    if is_square:
        return "1024x1024"
    return "1536x1024" if is_landscape else "1024x1536"


class OpenAIProvider(CollageProvider):
    id = "openai"

    def __init__(self, settings: Settings):
        self.settings = settings

    def _headers(self) -> Dict[str, str]:
        if not self.settings.OPENAI_API_KEY:
            raise ConfigurationError("Missing OPENAI_API_KEY in environment variables.")
        return {
            "authorization": f"Bearer {self.settings.OPENAI_API_KEY}",
            "content-type": "application/json",
        }

    @property
    def _base_url(self) -> str:
        return self.settings.OPENAI_BASE_URL.rstrip("/")

    def build_plan_messages(self, context: PlanningContext, reference_images: Sequence[bytes]) -> List[Dict[str, Any]]:
        request = {
            "prompt": context.prompt,
            "style": context.style,
            "templateId": context.template_id,
            "imageCount": context.photo_count,
            "canvas": {"width": context.canvas.width, "height": context.canvas.height},
            "example_layout_hint": {
                "top": "date + big title",
                "middle": "1 big photo + 1-2 small photos",
                "decorations": "2-4 stickers around photos",
            },
            "output_schema": PLAN_OUTPUT_SCHEMA,
        }
        content: List[Dict[str, Any]] = [{"type": "text", "text": json.dumps(request, ensure_ascii=False)}]
        for png in reference_images:
            b64 = base64.b64encode(png).decode("utf-8")
            content.append({"type": "image_url", "image_url": {"url": f"data:image/png;base64,{b64}"}})
        return [
            {"role": "system", "content": PLANNER_SYSTEM_PROMPT},
            {"role": "user", "content": content},
        ]

    async def plan_layout(self, context: PlanningContext, reference_images: Sequence[bytes]) -> Dict[str, Any]:
        logger.info(f"OpenAI planning with {len(reference_images)} reference photos (model={self.settings.OPENAI_CHAT_MODEL})")
        payload = {
            "model": self.settings.OPENAI_CHAT_MODEL,
            "temperature": 0.4,
            "response_format": {"type": "json_object"},
            "messages": self.build_plan_messages(context, reference_images),
        }
        body = await http.fetch(
            "POST", f"{self._base_url}/v1/chat/completions",
            timeout=self.settings.CHAT_TIMEOUT_SECONDS, label="OpenAI chat",
            proxy=self.settings.AI_PROXY, headers=self._headers(), json_body=payload,
        )
        text = body.decode("utf-8", errors="replace")
        response = http.parse_json_object(text, "OpenAI chat")
        try:
            content = response["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None
        if not isinstance(content, str) or not content.strip():
            raise UpstreamHttpError("OpenAI chat: empty response", body=text)
        return http.parse_json_object(content, "OpenAI chat: model did not return a valid JSON object")

    async def generate_image(self, prompt: str, size: str, transparent: bool = False) -> bytes:
        model = self.settings.OPENAI_IMAGE_MODEL
        legal_size = legalize_image_size(size, model)
        payload: Dict[str, Any] = {"model": model, "prompt": prompt, "size": legal_size, "n": 1}
        if "dall-e" in model.lower():
            payload["response_format"] = "b64_json"
        else:
            payload["background"] = "transparent" if transparent else "opaque"
        headers = self._headers()
        label = f"OpenAI images (model={model}, size={legal_size})"

        async def call() -> bytes:
            return await http.fetch(
                "POST", f"{self._base_url}/v1/images/generations",
                timeout=self.settings.IMAGES_TIMEOUT_SECONDS, label=label,
                proxy=self.settings.AI_PROXY, headers=headers, json_body=payload,
            )

        body = await http.with_retry(
            call, retries=self.settings.IMAGE_RETRIES,
            base_delay=self.settings.IMAGE_RETRY_BASE_DELAY, label=label,
        )
        return await self._extract_image(body.decode("utf-8", errors="replace"), label)

    async def _extract_image(self, text: str, label: str) -> bytes:
        if not text.strip().startswith("{"):
            raise UpstreamHttpError(f"{label}: expected JSON response but got non-JSON body", body=text)
        response = http.parse_json_object(text, label)
        data = response.get("data") or [{}]
        first = data[0] if isinstance(data, list) and data and isinstance(data[0], dict) else {}

        b64 = first.get("b64_json")
        if isinstance(b64, str) and b64:
            return http.decode_base64(b64)

        url = first.get("url")
        if isinstance(url, str) and url.startswith("http"):
            return await http.with_retry(
                lambda: http.fetch("GET", url, timeout=self.settings.IMAGES_TIMEOUT_SECONDS,
                                   label=f"{label} download", proxy=self.settings.AI_PROXY),
                retries=self.settings.IMAGE_RETRIES, base_delay=self.settings.IMAGE_RETRY_BASE_DELAY,
                label=f"{label} download",
            )
        raise UpstreamHttpError(f"{label}: empty b64_json (and no url fallback)", body=text)
