# collage/main.py
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from concurrent.futures import ThreadPoolExecutor
import threading
import logging
import os

from collage.config.settings import settings
from collage.delivery.api.collage import router
from collage.domain.collage_service import CollageService
from collage.domain.errors import CollageError
from collage.infrastructure.providers.registry import build_registry

logging.getLogger("PIL").setLevel(logging.WARNING)
logger = logging.getLogger("uvicorn.error")

# --- Lazy service bootstrap state ---
_service_lock = threading.Lock()


def _ensure_service(app: FastAPI) -> None:
    with _service_lock:
        if getattr(app.state, "collage_service", None) is not None:
            return
        logger.info("Initialising CollageService and provider registry (lazy-init)...")
        registry = build_registry(settings)
        app.state.provider_registry = registry
        app.state.collage_service = CollageService(
            registry=registry,
            cpu_executor=app.state.executor,
            settings=settings,
        )
        logger.info("Service initialisation finished.")


@asynccontextmanager
async def lifespan(app: FastAPI):
    max_workers = min(4, os.cpu_count() or 1)
    app.state.executor = ThreadPoolExecutor(max_workers=max_workers)
    logger.info(f"Collage Service '{settings.PROJECT_NAME}' started (mode: {settings.ENVIRONMENT}).")
    logger.info(f"Shared ThreadPoolExecutor created with {max_workers} workers.")
    yield
    logger.info("Shutting down ThreadPoolExecutor...")
    app.state.executor.shutdown(wait=True)
    logger.info("Collage Service stopped.")


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Scrapbook collage service: AI planning and asset generation, deterministic compositing",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Lazy-load only for API routes
@app.middleware("http")
async def lazy_boot(request: Request, call_next):
    if request.url.path.startswith(settings.API_V1_STR):
        _ensure_service(request.app)
    return await call_next(request)


@app.exception_handler(CollageError)
async def collage_error_handler(request: Request, exc: CollageError):
    logger.warning(f"{request.method} {request.url.path} failed: {exc.code}: {exc}")
    return JSONResponse(status_code=exc.status, content=exc.to_dict())


app.include_router(router, prefix=settings.API_V1_STR)


@app.get("/")
async def root():
    return {"message": "Collage Service", "version": "1.0.0", "status": "ok"}


@app.get("/health")
async def health_check(request: Request):
    ready = getattr(request.app.state, "collage_service", None) is not None
    return {"status": "ok", "service": settings.PROJECT_NAME, "service_ready": ready}
