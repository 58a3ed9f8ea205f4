# collage/delivery/api/collage.py
from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import StreamingResponse
from typing import Any, List, Optional
import asyncio
import json
import logging
import threading
import traceback

from collage.config.settings import settings
from collage.delivery.schemas.body import ComposeJsonBody, ComposeResponse, ProvidersResponse, to_response
from collage.domain.collage_service import CollageService
from collage.domain.errors import CollageError, InvalidUpload, Timeout
from collage.domain.models import GenerateRequest, UploadedImage
from collage.infrastructure.providers import http

router = APIRouter()
logger = logging.getLogger("uvicorn.error")

DIMENSION_MIN = 256
DIMENSION_MAX = 2048


def sse_format(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


def _service(request: Request) -> CollageService:
    service = getattr(request.app.state, "collage_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is not ready. Please try again in a moment.",
        )
    return service


async def _read_uploads(files: Optional[List[UploadFile]]) -> List[UploadedImage]:
    files = files or []
    if len(files) > settings.MAX_UPLOADS:
        raise InvalidUpload(f"At most {settings.MAX_UPLOADS} files are accepted, got {len(files)}")
    return [
        UploadedImage(filename=f.filename, content_type=f.content_type, data=await f.read())
        for f in files
    ]


async def _form_request(prompt: str, style: Optional[str], template_id: Optional[str], provider: Optional[str],
                        width: Optional[int], height: Optional[int], date_text: Optional[str],
                        title_text: Optional[str], body_text: Optional[str],
                        files: Optional[List[UploadFile]]) -> GenerateRequest:
    return GenerateRequest(
        prompt=prompt, style=style, template_id=template_id, provider=provider,
        width=width, height=height, date_text=date_text, title_text=title_text, body_text=body_text,
        files=await _read_uploads(files),
    )


async def _run(service: CollageService, gen_request: GenerateRequest, label: str) -> ComposeResponse:
    logger.info(f"=== ENDPOINT START {label} (threads={threading.active_count()}) ===")
    try:
        result = await asyncio.wait_for(service.generate(gen_request), timeout=settings.ENDPOINT_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.error(f"=== ENDPOINT TIMEOUT {label} after {settings.ENDPOINT_TIMEOUT_SECONDS}s ===")
        raise Timeout(f"Collage generation timed out after {settings.ENDPOINT_TIMEOUT_SECONDS:g}s")
    except (CollageError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"=== ENDPOINT ERROR {label}: {e} ===\n{traceback.format_exc()}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error.",
        )
    logger.info(f"=== ENDPOINT SUCCESS {label} ===")
    return to_response(result)


@router.post("/ai/compose", response_model=ComposeResponse)
async def compose(
    request: Request,
    prompt: str = Form(""),
    style: Optional[str] = Form(None),
    template_id: Optional[str] = Form(None, alias="templateId"),
    provider: Optional[str] = Form(None),
    width: Optional[int] = Form(None, ge=DIMENSION_MIN, le=DIMENSION_MAX),
    height: Optional[int] = Form(None, ge=DIMENSION_MIN, le=DIMENSION_MAX),
    date_text: Optional[str] = Form(None, alias="dateText"),
    title_text: Optional[str] = Form(None, alias="titleText"),
    body_text: Optional[str] = Form(None, alias="bodyText"),
    files: Optional[List[UploadFile]] = File(None),
):
    service = _service(request)
    gen_request = await _form_request(prompt, style, template_id, provider, width, height,
                                      date_text, title_text, body_text, files)
    return await _run(service, gen_request, "compose")


@router.post("/ai/compose/json", response_model=ComposeResponse)
async def compose_json(request: Request, body: ComposeJsonBody):
    service = _service(request)
    loaded = await asyncio.gather(*(
        http.load_image_source(src, timeout=settings.IMAGES_TIMEOUT_SECONDS, proxy=settings.AI_PROXY)
        for src in body.images
    ))
    gen_request = GenerateRequest(
        prompt=body.prompt, style=body.style, template_id=body.template_id, provider=body.provider,
        width=body.width, height=body.height, date_text=body.date_text, title_text=body.title_text,
        body_text=body.body_text,
        files=[UploadedImage(filename=f"image-{i}", data=data) for i, data in enumerate(loaded)],
    )
    return await _run(service, gen_request, "compose/json")


@router.post("/ai/compose/stream")
async def compose_stream(
    request: Request,
    prompt: str = Form(""),
    style: Optional[str] = Form(None),
    template_id: Optional[str] = Form(None, alias="templateId"),
    provider: Optional[str] = Form(None),
    width: Optional[int] = Form(None, ge=DIMENSION_MIN, le=DIMENSION_MAX),
    height: Optional[int] = Form(None, ge=DIMENSION_MIN, le=DIMENSION_MAX),
    date_text: Optional[str] = Form(None, alias="dateText"),
    title_text: Optional[str] = Form(None, alias="titleText"),
    body_text: Optional[str] = Form(None, alias="bodyText"),
    files: Optional[List[UploadFile]] = File(None),
):
    service = _service(request)
    gen_request = await _form_request(prompt, style, template_id, provider, width, height,
                                      date_text, title_text, body_text, files)

    async def event_stream():
        queue: asyncio.Queue = asyncio.Queue()
        yield sse_format("progress", {"stage": "accepted", "percent": 0, "message": "Request accepted"})

        task = asyncio.create_task(service.generate(gen_request, on_progress=queue.put_nowait))

        def finished(t: asyncio.Task) -> None:
            if not t.cancelled():
                t.exception()  # mark retrieved even when the client is gone
            queue.put_nowait(None)

        task.add_done_callback(finished)

        while True:
            event = await queue.get()
            if event is None:
                break
            if await request.is_disconnected():
                logger.warning("Stream client disconnected; generation keeps running.")
                return
            yield sse_format("progress", event.model_dump())

        try:
            result = task.result()
        except CollageError as e:
            yield sse_format("error", e.to_dict())
            return
        except Exception as e:
            logger.error(f"=== STREAM ERROR: {e} ===\n{traceback.format_exc()}")
            yield sse_format("error", {"statusCode": 500, "code": "UNKNOWN", "message": "Internal server error.",
                                       "details": None})
            return
        yield sse_format("done", to_response(result).model_dump())

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/ai/providers", response_model=ProvidersResponse)
async def providers(request: Request):
    registry = getattr(request.app.state, "provider_registry", None)
    if registry is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is not ready. Please try again in a moment.",
        )
    return ProvidersResponse(providers=registry.ids, default=registry.default)
