"""
Gemini OCR Provider — reads screenshot text with a Gemini vision model.

Uses the google.genai SDK. Client is lazily initialized, so the app
loads without an API key and only fails on an actual OCR call.

Features:
- Model fallback: primary model -> gemini-2.5-flash on failure
- Circuit breaker: after consecutive failures, fail fast for 60s
- Exponential backoff retry on transient errors
"""

from __future__ import annotations

import asyncio
import time
from typing import Optional

from google import genai
from google.genai import types

from patternshield.config import settings
from patternshield.logging import get_logger
from patternshield.ocr import OCRProvider, parse_lines

logger = get_logger("ocr.gemini")

FALLBACK_MODEL = "gemini-2.5-flash"

# Circuit breaker settings
_CB_FAILURE_THRESHOLD = 3   # Open after this many consecutive failures
_CB_RECOVERY_TIMEOUT = 60   # Seconds before trying again (half-open)

_TRANSIENT_MARKERS = (
    "429", "503", "500", "rate", "quota", "timeout",
    "connection", "unavailable", "overloaded",
)

OCR_PROMPT = """Transcribe every piece of visible text in this screenshot.

Rules:
- One entry per visual line, top to bottom, left to right.
- Keep the text exactly as shown, including prices, symbols and checkmarks (✓).
- Include small print, button labels and checkbox labels.
- Do not describe the image or add commentary.

Return ONLY valid JSON: {"lines": ["...", "..."]}"""


class CircuitBreaker:
    """Simple circuit breaker: closed -> open -> half-open -> closed.

    When open, read_lines() raises CircuitOpenError immediately so the
    scan falls back to empty evidence instead of waiting for the model
    to time out.
    """

    def __init__(
        self,
        failure_threshold: int = _CB_FAILURE_THRESHOLD,
        recovery_timeout: float = _CB_RECOVERY_TIMEOUT,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._failures = 0
        self._last_failure_time: float = 0
        self._state = "closed"  # closed | open | half-open

    @property
    def state(self) -> str:
        if self._state == "open":
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = "half-open"
        return self._state

    @property
    def failures(self) -> int:
        return self._failures

    def record_success(self) -> None:
        self._failures = 0
        self._state = "closed"

    def record_failure(self) -> None:
        self._failures += 1
        self._last_failure_time = time.monotonic()
        if self._failures >= self.failure_threshold:
            self._state = "open"
            logger.warning(
                "Circuit breaker OPEN after %d consecutive OCR failures, "
                "failing fast for %ds",
                self._failures, self.recovery_timeout,
            )

    @property
    def is_open(self) -> bool:
        return self.state == "open"


class CircuitOpenError(Exception):
    """Raised when the circuit breaker is open."""


class GeminiOCRProvider(OCRProvider):
    """Gemini vision OCR with fallback model and circuit breaker."""

    name = "gemini"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self._api_key = api_key or settings.GEMINI_API_KEY
        self._model = model or settings.GEMINI_MODEL
        self._client: Optional[genai.Client] = None
        self.circuit_breaker = CircuitBreaker()

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self._api_key:
                raise RuntimeError(
                    "GEMINI_API_KEY not set. Get one from "
                    "https://aistudio.google.com/apikey"
                )
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    async def _call_model(
        self,
        model: str,
        image: bytes,
        mime_type: str,
        max_retries: int = 3,
    ) -> str:
        """Call a specific model with retry logic."""
        client = self._get_client()
        config = types.GenerateContentConfig(
            temperature=0.0,
            response_mime_type="application/json",
        )
        contents = [
            types.Part.from_bytes(data=image, mime_type=mime_type),
            OCR_PROMPT,
        ]
        last_error = None
        for attempt in range(max_retries):
            try:
                response = await client.aio.models.generate_content(
                    model=model,
                    contents=contents,
                    config=config,
                )
                return response.text or ""
            except Exception as e:
                last_error = e
                error_str = str(e).lower()
                is_transient = any(k in error_str for k in _TRANSIENT_MARKERS)
                if is_transient and attempt < max_retries - 1:
                    await asyncio.sleep(2 ** attempt)
                    continue
                raise

        raise last_error  # type: ignore[misc]

    async def read_lines(self, image: bytes, mime_type: str = "image/png") -> list[str]:
        # Fast-fail when the model is known to be down
        if self.circuit_breaker.is_open:
            raise CircuitOpenError(
                "OCR circuit breaker is open, too many consecutive failures"
            )

        try:
            text = await self._call_model(self._model, image, mime_type, max_retries=2)
        except Exception as primary_err:
            if self._model == FALLBACK_MODEL:
                self.circuit_breaker.record_failure()
                raise
            logger.warning(
                "Primary model %s failed (%s), falling back to %s",
                self._model, primary_err, FALLBACK_MODEL,
            )
            try:
                text = await self._call_model(FALLBACK_MODEL, image, mime_type, max_retries=1)
            except Exception as fallback_err:
                logger.error(
                    "Fallback model %s also failed: %s", FALLBACK_MODEL, fallback_err,
                )
                self.circuit_breaker.record_failure()
                raise fallback_err from primary_err

        self.circuit_breaker.record_success()
        return parse_lines(text)
