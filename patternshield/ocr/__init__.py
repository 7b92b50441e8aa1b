"""
OCR Provider — Abstract Interface

Screenshot text extraction goes through this interface. Swap
providers by changing PATTERNSHIELD_OCR_PROVIDER in env.

Providers implement read_lines(), which may raise. Callers use
extract_lines(), which never does: any failure becomes an empty list
so a scan degrades to "no evidence" instead of failing.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod

from patternshield.logging import get_logger

logger = get_logger("ocr")

MAX_IMAGE_BYTES = 10 * 1024 * 1024
SUPPORTED_MIME_TYPES = ("image/png", "image/jpeg", "image/webp", "image/gif")


class OCRProvider(ABC):
    """Abstract base for OCR providers."""

    name = "base"

    @abstractmethod
    async def read_lines(self, image: bytes, mime_type: str = "image/png") -> list[str]:
        """Extract text lines from an image. May raise."""
        ...

    async def extract_lines(self, image: bytes, mime_type: str = "image/png") -> list[str]:
        """Best-effort wrapper around read_lines(). Returns [] on failure."""
        if not image:
            return []
        try:
            lines = await self.read_lines(image, mime_type)
        except Exception as e:
            logger.warning(
                "OCR extraction failed, continuing with empty evidence",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return []
        return [str(line).strip() for line in lines or [] if str(line).strip()]


class NullOCRProvider(OCRProvider):
    """Provider for deployments without OCR. Always reads nothing."""

    name = "none"

    async def read_lines(self, image: bytes, mime_type: str = "image/png") -> list[str]:
        return []


def parse_lines(text: str) -> list[str]:
    """
    Parse a model response into text lines.

    Accepts a JSON object with a "lines" array, a bare JSON array, or
    plain text (one line per line).
    """
    cleaned = (text or "").strip()
    # Strip markdown fences if the model wraps JSON in ```json blocks
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[-1].rsplit("```", 1)[0].strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        return [line.strip() for line in cleaned.splitlines() if line.strip()]

    if isinstance(data, dict):
        data = data.get("lines", [])
    if not isinstance(data, list):
        raise ValueError(f"OCR response has no line list: {text[:300]}")
    return [str(line) for line in data]
