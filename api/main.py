"""
PatternShield API — Main Application

POST /scan/markup            — Scan page HTML captured by the extension
POST /scan/text              — Scan OCR lines from a screenshot
POST /scan/image             — Scan an uploaded screenshot (OCR first)
POST /scan/url               — URL heuristics, optionally fetching the page
GET  /rules                  — The active rule table
GET  /history                — Recent scans
POST /patterns               — Submit a community report
GET  /patterns               — List / search community reports
GET  /patterns/{id}          — One report
POST /patterns/{id}/vote     — Up/down vote a report
GET  /sites/{domain}/flags   — Current flag-set for a site
GET  /health                 — Health check
"""

from __future__ import annotations

import os
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from patternshield.auth import AUTH_ENABLED, require_api_key
from patternshield.community import CommunityReports, get_community_reports
from patternshield.config import settings
from patternshield.detector import ShieldDetector, create_detector
from patternshield.errors import TargetUnavailable
from patternshield.history import ScanHistory, get_scan_history
from patternshield.logging import get_logger, setup_logging
from patternshield.models import ScanResult
from patternshield.ocr import MAX_IMAGE_BYTES, SUPPORTED_MIME_TYPES, OCRProvider
from patternshield.ocr.factory import get_provider
from patternshield.reporter import ResultReporter
from patternshield.rules import PATTERN_CATEGORIES
from patternshield.schemas.scan import (
    HealthResponse,
    HistoryResponse,
    MarkupScanRequest,
    PatternListResponse,
    PatternReportResponse,
    PatternSubmitRequest,
    RulesResponse,
    ScanResponse,
    SiteFlagsResponse,
    TextScanRequest,
    UrlScanRequest,
    VoteRequest,
    VoteResponse,
)

logger = get_logger("api")


# ============================================================
# STARTUP / SHUTDOWN
# ============================================================

def _build_reporter(history: ScanHistory, community: CommunityReports) -> ResultReporter:
    def report(result: ScanResult) -> None:
        history.record(result)
        community.append_finding(result)

    def notify(result: ScanResult) -> None:
        logger.info(
            "Advisory issued",
            extra={"source_ref": result.source_ref, "risk_score": result.risk_score},
        )

    return ResultReporter(report_sink=report, notify_sink=notify)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire up dependencies on startup."""
    setup_logging()

    if os.getenv("RENDER", "").lower() == "true" and not AUTH_ENABLED:
        logger.warning(
            "Running on Render without auth, all endpoints are public. "
            "Set PATTERNSHIELD_API_KEYS to enable auth."
        )

    app.state.detector = create_detector()
    app.state.history = get_scan_history()
    app.state.community = get_community_reports()
    app.state.ocr = get_provider(settings.OCR_PROVIDER)
    app.state.reporter = _build_reporter(app.state.history, app.state.community)

    logger.info(
        "PatternShield API starting",
        extra={"context": {"ruleset": settings.RULESET_VERSION, "auth_enabled": AUTH_ENABLED}},
    )
    yield
    logger.info("PatternShield API shutting down")


app = FastAPI(
    title="PatternShield API",
    description="Rule-based detection of deceptive subscription and checkout patterns",
    version=f"{settings.VERSION} (ruleset {settings.RULESET_VERSION})",
    lifespan=lifespan,
)

# CORS: the extension calls from chrome-extension:// origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",")],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["X-API-Key", "Content-Type", "Authorization"],
    allow_credentials=False,
)


# ============================================================
# DEPENDENCIES
# ============================================================

def get_detector(request: Request) -> ShieldDetector:
    return request.app.state.detector


def get_history(request: Request) -> ScanHistory:
    return request.app.state.history


def get_community(request: Request) -> CommunityReports:
    return request.app.state.community


def get_ocr(request: Request) -> OCRProvider:
    return request.app.state.ocr


def get_reporter(request: Request) -> ResultReporter:
    return request.app.state.reporter


def _respond(result: ScanResult, reporter: ResultReporter) -> dict:
    """Publish a finished scan (telemetry, overlay, notification) and shape the response."""
    reporter.publish(result, "telemetry")
    advisory = reporter.publish(result, "overlay")
    notification = reporter.publish(result, "notification")

    body = result.to_dict()
    body["advisory"] = advisory.to_dict() if advisory else None
    body["alerts"] = list(notification.alerts) if notification else []
    body["history_hash"] = ScanHistory.entry_hash(result)
    return body


# ============================================================
# GLOBAL ERROR HANDLER
# ============================================================

@app.exception_handler(Exception)
async def global_error_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions — return structured error, don't leak internals."""
    logger.error(
        f"Unhandled exception: {type(exc).__name__}",
        extra={"error": str(exc), "path": request.url.path, "method": request.method},
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error. The scan could not be completed."},
    )


# ============================================================
# SCAN ROUTES
# ============================================================

@app.post("/scan/markup", response_model=ScanResponse)
async def scan_markup(
    request: MarkupScanRequest,
    key_id: Optional[str] = Depends(require_api_key),
    detector: ShieldDetector = Depends(get_detector),
    reporter: ResultReporter = Depends(get_reporter),
):
    """Scan page HTML against the rule registry."""
    result = detector.scan_markup(request.html, url=request.url)
    return _respond(result, reporter)


@app.post("/scan/text", response_model=ScanResponse)
async def scan_text(
    request: TextScanRequest,
    key_id: Optional[str] = Depends(require_api_key),
    detector: ShieldDetector = Depends(get_detector),
    reporter: ResultReporter = Depends(get_reporter),
):
    """Scan text lines already extracted from a screenshot."""
    result = detector.scan_text_lines(request.lines, image_ref=request.image_ref)
    return _respond(result, reporter)


@app.post("/scan/image", response_model=ScanResponse)
async def scan_image(
    file: UploadFile = File(...),
    key_id: Optional[str] = Depends(require_api_key),
    detector: ShieldDetector = Depends(get_detector),
    ocr: OCRProvider = Depends(get_ocr),
    reporter: ResultReporter = Depends(get_reporter),
):
    """OCR an uploaded screenshot, then scan its text."""
    mime_type = (file.content_type or "").lower()
    if mime_type not in SUPPORTED_MIME_TYPES:
        raise HTTPException(415, f"Unsupported image type: {mime_type or 'unknown'}")

    image = await file.read()
    if not image:
        raise HTTPException(400, "Uploaded file is empty.")
    if len(image) > MAX_IMAGE_BYTES:
        raise HTTPException(413, "Image too large.")

    result = await detector.scan_image(image, ocr, mime_type=mime_type)
    return _respond(result, reporter)


@app.post("/scan/url", response_model=ScanResponse)
async def scan_url(
    request: UrlScanRequest,
    key_id: Optional[str] = Depends(require_api_key),
    detector: ShieldDetector = Depends(get_detector),
    reporter: ResultReporter = Depends(get_reporter),
):
    """URL heuristics; with fetch=true the page's markup is scanned too."""
    if request.fetch or request.enrich:
        try:
            result = await detector.scan_page(
                request.url, fetch=request.fetch, enrich=request.enrich,
            )
        except TargetUnavailable as e:
            raise HTTPException(502, f"Scan failed: {e}")
    else:
        result = detector.scan_url(request.url)
    return _respond(result, reporter)


# ============================================================
# RULES / HISTORY
# ============================================================

@app.get("/rules", response_model=RulesResponse)
async def get_rules(
    key_id: Optional[str] = Depends(require_api_key),
    detector: ShieldDetector = Depends(get_detector),
):
    """Return the active rule table."""
    rules = detector.registry.describe()
    return {
        "ruleset_version": settings.RULESET_VERSION,
        "total": len(rules),
        "categories": list(PATTERN_CATEGORIES),
        "rules": rules,
    }


@app.get("/history", response_model=HistoryResponse)
async def get_history_entries(
    limit: int = Query(20, ge=1, le=100),
    source_ref: Optional[str] = None,
    key_id: Optional[str] = Depends(require_api_key),
    history: ScanHistory = Depends(get_history),
):
    """Recent scans, newest first."""
    return {
        "entries": history.get_recent(limit=limit, source_ref=source_ref),
        "total_count": history.get_count(),
    }


# ============================================================
# COMMUNITY
# ============================================================

@app.post("/patterns", response_model=PatternReportResponse, status_code=201)
async def submit_pattern(
    request: PatternSubmitRequest,
    key_id: Optional[str] = Depends(require_api_key),
    community: CommunityReports = Depends(get_community),
):
    """Submit a community report. New reports start as pending."""
    try:
        return community.submit(
            website_url=request.website_url,
            title=request.title,
            description=request.description,
            category=request.category,
            company_name=request.company_name,
            severity=request.severity,
        )
    except ValueError as e:
        raise HTTPException(400, str(e))


@app.get("/patterns", response_model=PatternListResponse)
async def list_patterns(
    status: Optional[str] = Query(None, pattern="^(pending|confirmed|disputed)$"),
    category: Optional[str] = None,
    sort_by: str = Query("recent", pattern="^(recent|popular|controversial)$"),
    q: Optional[str] = Query(None, max_length=200),
    limit: int = Query(50, ge=1, le=200),
    key_id: Optional[str] = Depends(require_api_key),
    community: CommunityReports = Depends(get_community),
):
    """List reports with filters, or search them with q."""
    if category and category not in PATTERN_CATEGORIES:
        raise HTTPException(400, f"Unknown category: {category}")
    if q:
        reports = community.search(q, limit=limit)
    else:
        reports = community.get_reports(
            status=status, category=category, sort_by=sort_by, limit=limit,
        )
    return {"total": len(reports), "reports": reports}


@app.get("/patterns/{report_id}", response_model=PatternReportResponse)
async def get_pattern(
    report_id: str,
    key_id: Optional[str] = Depends(require_api_key),
    community: CommunityReports = Depends(get_community),
):
    report = community.get_report(report_id)
    if report is None:
        raise HTTPException(404, f"Report {report_id} not found")
    return report


@app.post("/patterns/{report_id}/vote", response_model=VoteResponse)
async def vote_pattern(
    report_id: str,
    request: VoteRequest,
    key_id: Optional[str] = Depends(require_api_key),
    community: CommunityReports = Depends(get_community),
):
    result = community.vote(report_id, request.direction)
    if "error" in result:
        raise HTTPException(404, result["error"])
    return result


@app.get("/sites/{domain}/flags", response_model=SiteFlagsResponse)
async def site_flags(
    domain: str,
    key_id: Optional[str] = Depends(require_api_key),
    community: CommunityReports = Depends(get_community),
):
    """Categories flagged for a site by confirmed reports and past scans."""
    return community.flags_for_site(domain)


@app.get("/health", response_model=HealthResponse)
async def health(request: Request):
    """Health check — no auth required."""
    state = request.app.state
    return {
        "status": "operational",
        "version": settings.VERSION,
        "ruleset_version": settings.RULESET_VERSION,
        "rules": len(state.detector.registry),
        "url_rules": len(state.detector.url_rules),
        "ocr_provider": state.ocr.name,
        "history_entries": state.history.get_count(),
        "community_reports": state.community.get_count(),
        "auth_enabled": AUTH_ENABLED,
    }


# --- Security + Version Headers Middleware ---
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Add security and version headers to all responses."""
    response = await call_next(request)
    response.headers["X-PatternShield-Version"] = settings.VERSION
    response.headers["X-Ruleset-Version"] = settings.RULESET_VERSION
    response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains; preload"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"
    return response


# --- Body Size Limit Middleware ---
_MAX_BODY_BYTES = MAX_IMAGE_BYTES + 1_048_576  # screenshot plus multipart overhead
_BODY_METHODS = ("POST", "PUT", "PATCH")


def _too_large() -> JSONResponse:
    return JSONResponse(status_code=413, content={"detail": "Request body too large."})


@app.middleware("http")
async def enforce_body_size_limit(request: Request, call_next):
    """Reject oversized requests before they reach a route."""
    content_length = request.headers.get("content-length")
    if content_length:
        try:
            if int(content_length) > _MAX_BODY_BYTES:
                return _too_large()
        except ValueError:
            pass  # Malformed content-length; let the framework handle it
    elif request.method in _BODY_METHODS:
        # Chunked transfer encoding: no header to trust, measure the body
        body = await request.body()
        if len(body) > _MAX_BODY_BYTES:
            logger.warning(
                "Chunked request body over limit",
                extra={"method": request.method, "path": request.url.path},
            )
            return _too_large()
    return await call_next(request)


# --- Request Logging Middleware ---
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API request with method, path, status, duration."""
    path = request.url.path
    if path == "/health":
        return await call_next(request)

    start = time.time()
    response = await call_next(request)
    duration_ms = round((time.time() - start) * 1000, 1)

    logger.info(
        f"{request.method} {path} -> {response.status_code} ({duration_ms}ms)",
        extra={
            "method": request.method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        },
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host=settings.HOST, port=settings.PORT)
