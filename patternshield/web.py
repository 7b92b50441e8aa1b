"""
Network collaborators: page fetch and company lookup.

Both are best-effort. A page that cannot be loaded raises
TargetUnavailable (the one failure a user ever sees); a company
lookup that fails returns None and the scan carries on without it.
"""

from __future__ import annotations

import time
from typing import Optional

import httpx

from patternshield.config import settings
from patternshield.errors import TargetUnavailable
from patternshield.logging import get_logger

logger = get_logger("web")

USER_AGENT = "Mozilla/5.0 (compatible; PatternShield/0.4)"


async def fetch_page(url: str, timeout: Optional[float] = None) -> str:
    """Download a page's HTML. Raises TargetUnavailable on any failure."""
    start = time.perf_counter()
    try:
        async with httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        ) as client:
            response = await client.get(url, timeout=timeout or settings.FETCH_TIMEOUT)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning(
            "Page fetch failed",
            extra={"source_ref": url, "error": str(e), "error_type": type(e).__name__},
        )
        raise TargetUnavailable(f"Could not load {url}: {type(e).__name__}") from e

    duration_ms = round((time.perf_counter() - start) * 1000, 1)
    if response.status_code >= 400:
        logger.warning(
            "Page fetch returned error status",
            extra={
                "source_ref": url,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        raise TargetUnavailable(f"Could not load {url}: HTTP {response.status_code}")

    logger.info(
        "Page fetched",
        extra={"source_ref": url, "status_code": response.status_code, "duration_ms": duration_ms},
    )
    return response.text


def fallback_company(domain: str) -> dict:
    """Best guess from the domain itself: www.example.co.uk -> example."""
    bare = domain.lower()
    if bare.startswith("www."):
        bare = bare[4:]
    return {"name": bare.split(".")[0], "domain": domain}


async def lookup_company(domain: str, timeout: Optional[float] = None) -> Optional[dict]:
    """
    Company enrichment for a domain.

    Returns the first autocomplete suggestion, the domain-derived
    fallback when there is none, or None if the lookup itself failed.
    """
    if not domain:
        return None
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                settings.COMPANY_LOOKUP_URL,
                params={"query": domain},
                timeout=timeout or settings.FETCH_TIMEOUT,
            )
        if response.status_code != 200:
            logger.warning(
                "Company lookup returned error status",
                extra={"status_code": response.status_code, "source_ref": domain},
            )
            return None
        data = response.json()
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
        logger.warning(
            "Company lookup failed",
            extra={"source_ref": domain, "error": str(e), "error_type": type(e).__name__},
        )
        return None

    if isinstance(data, list) and data and isinstance(data[0], dict):
        company = data[0]
        return {
            "name": company.get("name", ""),
            "domain": company.get("domain", domain),
            "industry": company.get("category"),
            "logo": company.get("logo"),
        }

    return fallback_company(domain)
