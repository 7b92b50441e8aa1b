"""
Detector — Scan Orchestrator

Runs the Extractor -> Matcher -> Scorer pipeline for each input type:
  - markup: a page's HTML, matched against the Rule Registry
  - text:   OCR lines from an uploaded screenshot
  - image:  raw screenshot bytes, read through an OCR provider first
  - url:    a bare URL, matched against the URL rule table
  - page:   URL heuristics plus the fetched page's markup

Each ShieldDetector owns its registry and URL table. Build one per
app (or per test) with create_detector(); there is no module-level
instance. Scans never raise for problems inside matching: those are
returned as diagnostics. Only an unreachable target raises.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Optional

from patternshield import web
from patternshield.errors import ExtractionUnavailable
from patternshield.evidence import (
    extract_from_markup,
    extract_from_ocr_lines,
    extract_from_url,
    find_suspicious,
)
from patternshield.logging import get_logger
from patternshield.matcher import PatternMatcher
from patternshield.models import Detection, EvidenceSet, ScanResult, SuspiciousElement
from patternshield.ocr import OCRProvider
from patternshield.rules import RuleRegistry, default_registry
from patternshield.scorer import (
    build_recommendations,
    calculate_risk_score,
    score_breakdown,
)
from patternshield.url_rules import UrlRuleTable, domain_of

logger = get_logger("detector")

Fetcher = Callable[[str], Awaitable[str]]
CompanyLookup = Callable[[str], Awaitable[Optional[dict]]]


def make_image_ref(image: bytes) -> str:
    """Stable reference for an uploaded screenshot."""
    return f"uploaded-image:{hashlib.sha256(image).hexdigest()[:16]}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ShieldDetector:
    """Scan entry point. Holds only immutable rule tables."""

    def __init__(
        self,
        registry: Optional[RuleRegistry] = None,
        url_rules: Optional[UrlRuleTable] = None,
        fetcher: Optional[Fetcher] = None,
        company_lookup: Optional[CompanyLookup] = None,
    ):
        self.registry = registry or default_registry()
        self.url_rules = url_rules or UrlRuleTable()
        self.matcher = PatternMatcher(self.registry)
        self._fetch = fetcher or web.fetch_page
        self._lookup_company = company_lookup or web.lookup_company

    # ------------------------------------------------------------
    # Synchronous scans
    # ------------------------------------------------------------

    def scan_evidence(
        self,
        evidence: EvidenceSet,
        source_ref: str = "manual",
        scan_mode: Optional[str] = None,
    ) -> ScanResult:
        """Match an already-extracted evidence set against the registry."""
        outcome = self.matcher.match(evidence)
        return self._build_result(
            source_ref=source_ref,
            detections=outcome.detections,
            scan_mode=scan_mode or evidence.source,
            diagnostics=evidence.diagnostics + outcome.diagnostics,
            suspicious=find_suspicious(evidence),
        )

    def scan_markup(self, html: str, url: str = "") -> ScanResult:
        evidence = extract_from_markup(html, self.registry)
        return self.scan_evidence(evidence, source_ref=url or "inline-markup", scan_mode="markup")

    def scan_text_lines(
        self,
        lines: Iterable[str],
        image_ref: Optional[str] = None,
        diagnostics: tuple[str, ...] = (),
    ) -> ScanResult:
        lines = list(lines or [])
        if image_ref is None:
            image_ref = make_image_ref("\n".join(lines).encode("utf-8"))
        evidence = extract_from_ocr_lines(lines, diagnostics=diagnostics)
        return self.scan_evidence(evidence, source_ref=image_ref, scan_mode="ocr")

    def scan_url(self, url: str) -> ScanResult:
        """URL heuristics only. Never touches the network."""
        evidence = extract_from_url(url)
        return self._build_result(
            source_ref=url,
            detections=tuple(self.url_rules.evaluate(evidence)),
            scan_mode="url",
        )

    # ------------------------------------------------------------
    # Scans with network collaborators
    # ------------------------------------------------------------

    async def scan_image(
        self,
        image: bytes,
        ocr: OCRProvider,
        mime_type: str = "image/png",
    ) -> ScanResult:
        """
        OCR a screenshot, then match its lines.

        OCR failure is not a scan failure: the result has no
        detections and an ExtractionUnavailable diagnostic.
        """
        ref = make_image_ref(image or b"")
        diagnostics: tuple[str, ...] = ()
        lines = await ocr.extract_lines(image, mime_type)
        if not lines:
            err = ExtractionUnavailable(f"OCR provider '{ocr.name}' returned no text")
            diagnostics = (f"ExtractionUnavailable: {err}",)
            logger.info("Image scan has no OCR text", extra={"source_ref": ref})
        return self.scan_text_lines(lines, image_ref=ref, diagnostics=diagnostics)

    async def scan_page(self, url: str, fetch: bool = True, enrich: bool = False) -> ScanResult:
        """
        URL heuristics, plus markup matching when fetch=True.

        Raises TargetUnavailable when the page cannot be loaded.
        Company enrichment is best-effort and never blocks a result.
        """
        url_detections = self.url_rules.evaluate(extract_from_url(url))
        detections: list[Detection] = []
        diagnostics: tuple[str, ...] = ()
        suspicious: tuple[SuspiciousElement, ...] = ()
        scan_mode = "url"

        if fetch:
            html = await self._fetch(url)
            evidence = extract_from_markup(html, self.registry)
            outcome = self.matcher.match(evidence)
            detections.extend(outcome.detections)
            diagnostics = evidence.diagnostics + outcome.diagnostics
            suspicious = find_suspicious(evidence)
            scan_mode = "page"

        detections.extend(url_detections)

        company = None
        if enrich:
            company = await self._lookup_company(domain_of(url))

        return self._build_result(
            source_ref=url,
            detections=tuple(detections),
            scan_mode=scan_mode,
            diagnostics=diagnostics,
            company=company,
            suspicious=suspicious,
        )

    # ------------------------------------------------------------
    # Result builder
    # ------------------------------------------------------------

    def _build_result(
        self,
        source_ref: str,
        detections: tuple[Detection, ...],
        scan_mode: str,
        diagnostics: tuple[str, ...] = (),
        company: Optional[dict] = None,
        suspicious: tuple[SuspiciousElement, ...] = (),
    ) -> ScanResult:
        result = ScanResult(
            source_ref=source_ref,
            timestamp=_now(),
            detections=detections,
            risk_score=calculate_risk_score(detections),
            recommendations=tuple(build_recommendations(detections)),
            scan_mode=scan_mode,
            diagnostics=diagnostics,
            company=company,
            score_breakdown=score_breakdown(detections),
            suspicious_elements=suspicious,
        )
        logger.info(
            result.summary,
            extra={
                "source_ref": source_ref,
                "scan_mode": scan_mode,
                "risk_score": result.risk_score,
                "detections_count": result.patterns_found,
                "diagnostics_count": len(diagnostics),
            },
        )
        return result


def create_detector(**kwargs) -> ShieldDetector:
    """Factory for a detector with the default rule tables."""
    return ShieldDetector(**kwargs)
