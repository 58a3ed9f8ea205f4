import asyncio
import base64

import pytest

from collage.domain.errors import InvalidUpload, NetworkError, Timeout, UpstreamHttpError
from collage.infrastructure.providers import http


class Flaky:
    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


def _run_with_retry(operation, retries, base_delay=0.6):
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    async def main():
        return await http.with_retry(operation, retries=retries, base_delay=base_delay, label="test",
                                     sleep=fake_sleep)

    return asyncio.run(main()), delays


def test_retries_transient_statuses_with_backoff():
    op = Flaky([UpstreamHttpError("busy", http_status=503), UpstreamHttpError("slow down", http_status=429)])
    result, delays = _run_with_retry(op, retries=3)
    assert result == "ok"
    assert op.calls == 3
    assert 0.6 <= delays[0] <= 0.8
    assert 1.2 <= delays[1] <= 1.4


def test_network_errors_and_timeouts_are_retried():
    op = Flaky([NetworkError("reset"), Timeout("slow")])
    result, delays = _run_with_retry(op, retries=3)
    assert result == "ok"
    assert len(delays) == 2


def test_client_errors_are_not_retried():
    op = Flaky([UpstreamHttpError("bad request", http_status=400)])
    with pytest.raises(UpstreamHttpError):
        _run_with_retry(op, retries=3)
    assert op.calls == 1


def test_gives_up_after_bounded_attempts():
    op = Flaky([UpstreamHttpError("down", http_status=500)] * 10)
    with pytest.raises(UpstreamHttpError) as excinfo:
        _run_with_retry(op, retries=2)
    assert op.calls == 3
    assert excinfo.value.details["status"] == 500


def test_upstream_error_keeps_truncated_body():
    error = UpstreamHttpError("boom", http_status=502, body="x" * 1000)
    assert error.to_dict()["details"]["bodyHead"] == "x" * 400 + "..."
    assert error.to_dict()["statusCode"] == 502
    assert error.to_dict()["code"] == "UPSTREAM_HTTP_ERROR"


def test_parse_json_object_accepts_fenced_json():
    assert http.parse_json_object('```json\n{"a": 1}\n```', "plan") == {"a": 1}
    assert http.parse_json_object('{"a": 1}', "plan") == {"a": 1}


def test_parse_json_object_rejects_non_objects():
    with pytest.raises(UpstreamHttpError):
        http.parse_json_object("not json", "plan")
    with pytest.raises(UpstreamHttpError):
        http.parse_json_object("[1, 2]", "plan")


def test_decode_base64_variants():
    raw = b"hello!?"
    encoded = base64.b64encode(raw).decode()
    assert http.decode_base64(encoded) == raw
    assert http.decode_base64(encoded.rstrip("=")) == raw
    assert http.decode_base64(f"data:image/png;base64,{encoded}") == raw


def test_load_image_source_rejects_empty():
    with pytest.raises(InvalidUpload):
        asyncio.run(http.load_image_source("  ", timeout=5))
    with pytest.raises(InvalidUpload):
        asyncio.run(http.load_image_source("data:image/png;base64,", timeout=5))
