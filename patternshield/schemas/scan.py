"""
API Schemas — Request and Response Models

Pydantic models for the PatternShield API.
"""

from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, Field

_CATEGORY_PATTERN = (
    "^(forced_renewal|cancellation_trap|hidden_cost|"
    "misleading_language|pre_checked|countdown_pressure)$"
)


# ============================================================
# SCAN
# ============================================================

class MarkupScanRequest(BaseModel):
    """POST /scan/markup request body."""
    url: str = Field("", max_length=2048,
                     description="Page the markup came from. Used as the result's source_ref.")
    html: str = Field(..., min_length=1, max_length=2_000_000,
                      description="Page HTML as captured by the browser extension.")

    model_config = {"json_schema_extra": {"examples": [
        {
            "url": "https://example.com/checkout",
            "html": '<label><input type="checkbox" checked> Automatically renew my plan</label>',
        },
    ]}}


class TextScanRequest(BaseModel):
    """POST /scan/text request body — OCR lines already extracted elsewhere."""
    lines: list[str] = Field(..., max_length=500)
    image_ref: Optional[str] = Field(None, max_length=256)


class UrlScanRequest(BaseModel):
    """POST /scan/url request body."""
    url: str = Field(..., min_length=1, max_length=2048)
    fetch: bool = Field(False, description="Also download the page and match its markup.")
    enrich: bool = Field(False, description="Attach company information for the domain.")


class MatchedElement(BaseModel):
    kind: str
    content: str
    is_checked: bool = False
    is_hidden: bool = False


class DetectionResponse(BaseModel):
    rule_id: str
    name: str
    category: str
    severity: int
    confidence: float
    description: str
    suggestion: str = ""
    matched_elements: list[MatchedElement] = []
    matched_text: list[str] = []


class SuspiciousElementResponse(BaseModel):
    content: str
    reason: str
    risk_level: str


class ScanResponse(BaseModel):
    """Response body for every /scan/* route."""
    source_ref: str
    timestamp: str
    scan_mode: str
    risk_score: int = Field(..., ge=0, le=10)
    patterns_found: int
    summary: str
    detections: list[DetectionResponse]
    recommendations: list[str]
    diagnostics: list[str] = []
    company: Optional[dict] = None
    score_breakdown: Optional[dict] = None
    suspicious_elements: list[SuspiciousElementResponse] = []
    advisory: Optional[dict] = None
    alerts: list[dict] = []
    history_hash: Optional[str] = None


# ============================================================
# RULES / HISTORY
# ============================================================

class RuleInfo(BaseModel):
    id: str
    name: str
    category: str
    severity: int
    confidence: float
    description: str
    suggestion: str
    selectors: list[str]
    text_patterns: list[str]


class RulesResponse(BaseModel):
    ruleset_version: str
    total: int
    categories: list[str]
    rules: list[RuleInfo]


class HistoryEntry(BaseModel):
    hash: str
    source_ref: str
    scan_mode: str
    risk_score: int
    patterns_found: int
    categories: list[str]
    result: dict
    timestamp: str
    ruleset_version: str


class HistoryResponse(BaseModel):
    entries: list[HistoryEntry]
    total_count: int


# ============================================================
# COMMUNITY
# ============================================================

class PatternSubmitRequest(BaseModel):
    """POST /patterns request body."""
    website_url: str = Field(..., min_length=1, max_length=2048)
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    category: Optional[str] = Field(None, pattern=_CATEGORY_PATTERN)
    company_name: Optional[str] = Field(None, max_length=200)
    severity: Optional[int] = Field(None, ge=1, le=5)


class VoteRequest(BaseModel):
    """POST /patterns/{id}/vote request body."""
    direction: str = Field(..., pattern="^(up|down)$")


class PatternReportResponse(BaseModel):
    id: str
    website_url: str
    domain: str
    company_name: Optional[str] = None
    title: str
    description: str
    category: str
    severity: int
    status: str
    upvotes: int
    downvotes: int
    created_at: str
    updated_at: str
    assessment: Optional[dict] = None


class PatternListResponse(BaseModel):
    total: int
    reports: list[PatternReportResponse]


class VoteResponse(BaseModel):
    id: str
    upvotes: int
    downvotes: int
    status: str
    action: str


class SiteFlagsResponse(BaseModel):
    domain: str
    categories: list[str]
    confirmed_reports: int
    findings: int
    max_severity: int


# ============================================================
# HEALTH
# ============================================================

class HealthResponse(BaseModel):
    status: str
    version: str
    ruleset_version: str
    rules: int
    url_rules: int
    ocr_provider: str
    history_entries: int
    community_reports: int
    auth_enabled: bool
