# collage/infrastructure/providers/http.py
"""
Outbound HTTP for provider adapters: bounded calls, error classification and
a jittered exponential retry loop for image generation.
"""
import asyncio
import base64
import binascii
import json
import logging
import random
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import aiohttp

from collage.domain.errors import InvalidUpload, NetworkError, Timeout, UpstreamHttpError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})
MAX_RETRIES = 6
JITTER_SECONDS = 0.2


def is_retryable_status(status: Optional[int]) -> bool:
    return status in RETRYABLE_STATUSES


def is_retryable_error(error: Exception) -> bool:
    if isinstance(error, UpstreamHttpError):
        return is_retryable_status(error.http_status)
    return isinstance(error, (NetworkError, Timeout))


def backoff_delay(attempt: int, base_delay: float) -> float:
    return base_delay * (2 ** attempt) + random.uniform(0, JITTER_SECONDS)


async def with_retry(operation: Callable[[], Awaitable[T]], *, retries: int = 3, base_delay: float = 0.5,
                     label: str = "request", sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep) -> T:
    """Run ``operation`` up to ``retries + 1`` times while it fails with a retryable error."""
    retries = max(0, min(MAX_RETRIES, int(retries)))
    base_delay = max(0.1, float(base_delay))
    attempt = 0
    while True:
        try:
            return await operation()
        except (UpstreamHttpError, NetworkError, Timeout) as e:
            if attempt >= retries or not is_retryable_error(e):
                raise
            delay = backoff_delay(attempt, base_delay)
            logger.warning(f"{label} failed ({e.code}: {e}); retry {attempt + 1}/{retries} in {delay:.2f}s")
            await sleep(delay)
            attempt += 1


async def fetch(method: str, url: str, *, timeout: float, label: str, proxy: Optional[str] = None,
                headers: Optional[Dict[str, str]] = None, json_body: Any = None) -> bytes:
    """Perform one request and return the body; non-2xx answers raise UpstreamHttpError."""
    client_timeout = aiohttp.ClientTimeout(total=max(1.0, float(timeout)))
    try:
        async with aiohttp.ClientSession(timeout=client_timeout) as session:
            async with session.request(method, url, headers=headers, json=json_body, proxy=proxy) as response:
                body = await response.read()
                if response.status >= 400:
                    raise UpstreamHttpError(
                        f"{label} error: {response.status} {response.reason or ''}".rstrip(),
                        http_status=response.status,
                        body=body.decode("utf-8", errors="replace"),
                    )
                return body
    except asyncio.TimeoutError as e:
        raise Timeout(f"{label} timeout after {timeout:g}s") from e
    except aiohttp.ClientError as e:
        raise NetworkError(f"{label} network error: {e}") from e


def parse_json_object(text: str, label: str) -> Dict[str, Any]:
    """Parse a JSON object, tolerating a fenced ```json block around it."""
    raw = (text or "").strip()
    if raw.startswith("```"):
        raw = raw.strip("`").strip()
        if raw.lower().startswith("json"):
            raw = raw[4:].strip()
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise UpstreamHttpError(f"{label}: response is not valid JSON", body=text) from e
    if not isinstance(data, dict):
        raise UpstreamHttpError(f"{label}: expected a JSON object", body=text)
    return data


def decode_base64(data: str) -> bytes:
    if data.startswith("data:"):
        _, data = data.split(",", 1)
    try:
        return base64.b64decode(data + "=" * (-len(data) % 4), validate=False)
    except (binascii.Error, ValueError) as e:
        raise InvalidUpload("Image source is not valid base64") from e


async def load_image_source(src: str, *, timeout: float, proxy: Optional[str] = None) -> bytes:
    """Bytes for an http(s) URL, a data URL or a raw base64 string."""
    src = (src or "").strip()
    if not src:
        raise InvalidUpload("Empty image source")
    if src.startswith(("http://", "https://")):
        return await fetch("GET", src, timeout=timeout, label="Image download", proxy=proxy)
    data = decode_base64(src)
    if not data:
        raise InvalidUpload("Image source decoded to no bytes")
    return data
