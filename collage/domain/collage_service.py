# collage/domain/collage_service.py
import asyncio
import logging
import os
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import psutil
from PIL import Image

from collage.config.settings import Settings
from collage.domain.compositor import compose_png
from collage.domain.errors import CollageError, ComposeFailed, UpstreamHttpError
from collage.domain.layout import default_layout, default_texts, normalize_layout
from collage.domain.models import (
    CanvasSpec,
    CollagePlan,
    GeneratedAsset,
    GenerateRequest,
    GenerationResult,
    PlanElement,
    ProgressCallback,
    UploadedImage,
)
from collage.domain.progress import ProgressReporter
from collage.domain.templates import resolve_style
from collage.infrastructure.cv import image_process
from collage.infrastructure.providers.base import CollageProvider, PlanningContext
from collage.infrastructure.providers.registry import ProviderRegistry

ELEMENT_KINDS = ("sticker", "frame", "decoration")
COMPOSE_FAILED_MESSAGE = "Image compose failed"

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False


def _memory_mb() -> Optional[float]:
    try:
        return psutil.Process(os.getpid()).memory_info().rss / 1024 / 1024
    except psutil.Error as e:
        logger.warning(f"Could not get memory info: {e}")
        return None


def _palette_line(palette: Sequence[str]) -> Optional[str]:
    return f"Palette: {', '.join(palette)}" if palette else None


def build_background_prompt(theme: str, style: str, palette: Sequence[str], design: str) -> str:
    lines = [
        "A clean journal scrapbook paper background for a collage layout. Soft paper texture, subtle grain, "
        "gentle vignette, lots of whitespace.",
        f"Theme: {theme}",
        f"Style: {style}",
        _palette_line(palette),
        f"Background design: {design}",
        "Must NOT contain readable text, watermark, logo, or photo-like subjects. Background only.",
    ]
    return "\n".join(line for line in lines if line)


def build_sticker_prompt(element: PlanElement, style: str, palette: Sequence[str]) -> str:
    lines = [
        "A single decorative sticker, isolated, centered, high quality, PNG, transparent background. "
        "Use simple illustration style, like scrapbook stickers.",
        f"Kind: {element.kind}",
        f"Style: {style}",
        _palette_line(palette),
        f"Element: {element.prompt}",
        "No readable text, no watermark, no logo.",
    ]
    return "\n".join(line for line in lines if line)


def parse_elements(raw: Any, limit: int) -> List[PlanElement]:
    """Plan elements with legal kinds; entries without an id get a generated one."""
    if not isinstance(raw, list):
        return []
    elements: List[PlanElement] = []
    for entry in raw:
        if not isinstance(entry, Mapping):
            continue
        element_id = entry.get("id")
        kind = entry.get("kind")
        prompt = entry.get("prompt")
        elements.append(PlanElement(
            id=str(element_id).strip() if element_id not in (None, "") else uuid.uuid4().hex,
            kind=kind if kind in ELEMENT_KINDS else "sticker",
            prompt=prompt.strip() if isinstance(prompt, str) else "",
        ))
    return elements[:max(0, limit)]


def parse_palette(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    return [c.strip() for c in raw if isinstance(c, str) and c.strip()]


def _string(raw: Mapping[str, Any], key: str) -> str:
    value = raw.get(key)
    return value.strip() if isinstance(value, str) else ""


class CollageService:
    def __init__(self, registry: ProviderRegistry, cpu_executor: ThreadPoolExecutor, settings: Settings):
        self.registry = registry
        self.cpu_executor = cpu_executor
        self.settings = settings

    def _canvas(self, request: GenerateRequest) -> CanvasSpec:
        return CanvasSpec(
            width=request.width or self.settings.DEFAULT_CANVAS_WIDTH,
            height=request.height or self.settings.DEFAULT_CANVAS_HEIGHT,
        )

    @staticmethod
    def _prepare_one(data: Optional[bytes]) -> Tuple[Image.Image, bytes]:
        img = image_process.canonicalize(data)
        return img, image_process.encode_png(img)

    async def _prepare_images(self, files: Sequence[UploadedImage]) -> Tuple[List[Image.Image], List[bytes]]:
        loop = asyncio.get_running_loop()
        futures = [loop.run_in_executor(self.cpu_executor, self._prepare_one, f.data)
                   for f in files[:self.settings.MAX_UPLOADS]]
        prepared = await asyncio.gather(*futures)
        return [img for img, _ in prepared], [png for _, png in prepared]

    async def _generate_assets(self, provider: CollageProvider, elements: Sequence[PlanElement],
                               style: str, palette: Sequence[str]) -> List[GeneratedAsset]:
        async def one(element: PlanElement) -> GeneratedAsset:
            prompt = build_sticker_prompt(element, style, palette)
            image_bytes = await provider.generate_image(prompt, "1024x1024", transparent=True)
            return GeneratedAsset(id=element.id, kind=element.kind, image_bytes=image_bytes, prompt=element.prompt)

        return list(await asyncio.gather(*(one(e) for e in elements)))

    async def generate(self, request: GenerateRequest, on_progress: Optional[ProgressCallback] = None) -> GenerationResult:
        run_id = uuid.uuid4().hex[:8]
        report = ProgressReporter(on_progress, run_id)
        logger.info(f"=== START PROCESSING Run ID: {run_id} ===")
        memory_mb = _memory_mb()
        if memory_mb is not None:
            logger.info(f"Memory usage at start: {memory_mb:.1f}MB for Run ID: {run_id}")
        overall_start_time = time.perf_counter()

        try:
            report("init", 0.02, "Processing input")
            provider = self.registry.get(request.provider)
            canvas = self._canvas(request)
            style = resolve_style(request.style, request.template_id)

            report("prepare_images", 0.08, "Reading and converting photos")
            photos, photo_pngs = await self._prepare_images(request.files)
            photo_count = len(photos)
            logger.info(f"Prepared {photo_count} photos for {canvas.size} canvas, Run ID: {run_id}")

            texts = default_texts(canvas, request.prompt, request.date_text, request.title_text, request.body_text)
            fallback = default_layout(canvas, photo_count, texts)

            report("plan", 0.2, "Planning layout")
            stage_start = time.perf_counter()
            context = PlanningContext(prompt=request.prompt, style=style, template_id=request.template_id,
                                      photo_count=photo_count, canvas=canvas)
            raw_plan = await provider.plan_layout(context, photo_pngs)
            if not isinstance(raw_plan, Mapping):
                raise UpstreamHttpError(f"{provider.id} planner returned a non-object plan")
            logger.info(f"Planning done in {time.perf_counter() - stage_start:.2f}s for Run ID: {run_id}")

            layout = normalize_layout(raw_plan, canvas, photo_count, fallback)
            plan_style = _string(raw_plan, "style") or style
            palette = parse_palette(raw_plan.get("palette"))
            design = _string(raw_plan, "backgroundPrompt")
            elements = parse_elements(raw_plan.get("elements"), self.settings.MAX_STICKERS)

            report("background", 0.42, "Generating background")
            stage_start = time.perf_counter()
            background_prompt = build_background_prompt(request.prompt, plan_style, palette, design)
            background_bytes = await provider.generate_image(background_prompt, canvas.size, transparent=False)
            logger.info(f"Background done in {time.perf_counter() - stage_start:.2f}s for Run ID: {run_id}")

            report("stickers", 0.62, "Generating sticker assets")
            stage_start = time.perf_counter()
            assets = await self._generate_assets(provider, elements, plan_style, palette)
            logger.info(f"{len(assets)} stickers done in {time.perf_counter() - stage_start:.2f}s for Run ID: {run_id}")

            report("compose", 0.82, "Composing image")
            loop = asyncio.get_running_loop()
            final_bytes = await loop.run_in_executor(
                self.cpu_executor, compose_png, background_bytes, layout, photos, assets)
            memory_mb = _memory_mb()
            if memory_mb is not None:
                logger.info(f"Memory after compose: {memory_mb:.1f}MB for Run ID: {run_id}")

            report("done", 1.0, "Done")
        except Exception as e:
            failed_stage = report.stage
            if isinstance(e, CollageError):
                report("error", report.percent, str(e) or e.code)
                logger.error(f"Run ID {run_id} failed at {failed_stage}: {e.code}: {e}")
                raise
            # the cause may carry file paths; it stays in the log
            report("error", report.percent, COMPOSE_FAILED_MESSAGE)
            logger.exception(f"Run ID {run_id} failed unexpectedly at {failed_stage}")
            raise ComposeFailed(COMPOSE_FAILED_MESSAGE) from e

        logger.info(f"=== FINISHED Run ID: {run_id} in {time.perf_counter() - overall_start_time:.2f}s ===")
        plan = CollagePlan(
            style=plan_style,
            palette=palette,
            background_prompt=design or background_prompt,
            elements=elements,
            layout=layout,
            notes=_string(raw_plan, "notes"),
        )
        return GenerationResult(
            final_image_bytes=final_bytes,
            background_image_bytes=background_bytes,
            assets=assets,
            layout=layout,
            plan=plan,
            resolved_style_prompt=style,
            background_prompt=background_prompt,
        )
