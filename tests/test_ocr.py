"""
OCR Provider Tests

No real model calls: the Gemini provider is exercised through its
circuit breaker and response parsing only.
"""

import asyncio

import pytest

from patternshield.ocr import NullOCRProvider, OCRProvider, parse_lines
from patternshield.ocr.factory import get_provider
from patternshield.ocr.gemini import CircuitBreaker, CircuitOpenError, GeminiOCRProvider


class ScriptedOCR(OCRProvider):
    name = "scripted"

    def __init__(self, result):
        self.result = result

    async def read_lines(self, image, mime_type="image/png"):
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class TestParseLines:

    def test_json_object(self):
        assert parse_lines('{"lines": ["Total $9.99", "Act now"]}') == ["Total $9.99", "Act now"]

    def test_json_array(self):
        assert parse_lines('["one", "two"]') == ["one", "two"]

    def test_fenced_json(self):
        assert parse_lines('```json\n{"lines": ["fenced"]}\n```') == ["fenced"]

    def test_plain_text(self):
        assert parse_lines("first\n\n  second  \n") == ["first", "second"]

    def test_non_list_rejected(self):
        with pytest.raises(ValueError):
            parse_lines('{"lines": "not a list"}')


class TestExtractLines:

    def test_strips_and_drops_blank(self):
        ocr = ScriptedOCR(["  a  ", "", "b"])
        assert asyncio.run(ocr.extract_lines(b"img")) == ["a", "b"]

    def test_failure_returns_empty(self):
        ocr = ScriptedOCR(RuntimeError("quota exceeded"))
        assert asyncio.run(ocr.extract_lines(b"img")) == []

    def test_empty_image_skips_provider(self):
        ocr = ScriptedOCR(RuntimeError("should not be called"))
        assert asyncio.run(ocr.extract_lines(b"")) == []

    def test_null_provider(self):
        assert asyncio.run(NullOCRProvider().extract_lines(b"img")) == []


class TestCircuitBreaker:

    def test_opens_after_threshold(self):
        cb = CircuitBreaker(failure_threshold=2, recovery_timeout=60)
        cb.record_failure()
        assert cb.state == "closed"
        cb.record_failure()
        assert cb.is_open
        assert cb.failures == 2

    def test_success_resets(self):
        cb = CircuitBreaker(failure_threshold=2, recovery_timeout=60)
        cb.record_failure()
        cb.record_success()
        assert cb.failures == 0
        assert cb.state == "closed"

    def test_half_open_after_timeout(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        assert cb.state == "half-open"

    def test_open_circuit_fails_fast(self):
        provider = GeminiOCRProvider(api_key="test-key")
        for _ in range(provider.circuit_breaker.failure_threshold):
            provider.circuit_breaker.record_failure()
        with pytest.raises(CircuitOpenError):
            asyncio.run(provider.read_lines(b"img"))
        assert asyncio.run(provider.extract_lines(b"img")) == []


class TestFactory:

    def test_none(self):
        assert get_provider("none").name == "none"

    def test_gemini(self):
        assert get_provider("gemini").name == "gemini"

    def test_unknown(self):
        with pytest.raises(ValueError):
            get_provider("tesseract")
