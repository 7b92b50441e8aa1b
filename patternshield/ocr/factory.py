"""
OCR provider factory.
"""

from patternshield.ocr import NullOCRProvider, OCRProvider


def get_provider(provider_name: str = "gemini") -> OCRProvider:
    """Factory — returns the configured OCR provider."""
    if provider_name == "gemini":
        from patternshield.ocr.gemini import GeminiOCRProvider
        return GeminiOCRProvider()
    elif provider_name == "none":
        return NullOCRProvider()
    else:
        raise ValueError(f"Unknown OCR provider: {provider_name}")
