"""
Data structures shared by every stage of the scan pipeline.

EvidenceSet  — what an adapter extracted (transient, per scan)
Detection    — one rule firing against one EvidenceSet
SuspiciousElement — fine print or a pre-selected option, flagged for review
ScanResult   — the aggregate handed to the reporter and the API
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

CONTENT_LIMIT = 100

ELEMENT_KINDS = ("form", "button", "checkbox", "text", "timer", "popup")


def clip(text: str, limit: int = CONTENT_LIMIT) -> str:
    """Collapse whitespace and truncate to a storable length."""
    return " ".join(text.split())[:limit]


# ============================================================
# EVIDENCE
# ============================================================

@dataclass(frozen=True)
class EvidenceElement:
    """A page element (or OCR line) that rules can match structurally."""
    kind: str                       # one of ELEMENT_KINDS
    content: str                    # normalized, <= CONTENT_LIMIT chars
    is_checked: bool = False        # checkbox / form only
    is_hidden: bool = False
    selectors: frozenset[str] = frozenset()  # structural selectors that picked it
    attributes: tuple[tuple[str, str], ...] = ()

    def __post_init__(self):
        if self.kind not in ELEMENT_KINDS:
            raise ValueError(f"unknown element kind: {self.kind}")

    def attribute(self, name: str) -> Optional[str]:
        for key, value in self.attributes:
            if key == name:
                return value
        return None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "content": self.content,
            "is_checked": self.is_checked,
            "is_hidden": self.is_hidden,
        }


@dataclass(frozen=True)
class EvidenceSet:
    """Normalized snapshot of one input, ready for matching."""
    elements: tuple[EvidenceElement, ...] = ()
    full_text: str = ""
    source: str = "manual"          # "markup" | "ocr" | "url" | "manual"
    diagnostics: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.elements and not self.full_text.strip()


# ============================================================
# RESULTS
# ============================================================

@dataclass(frozen=True)
class SuspiciousElement:
    """An element worth a second look even when no rule fired on it."""
    content: str
    reason: str
    risk_level: str                 # "medium" | "high" | "critical"

    def to_dict(self) -> dict:
        return {"content": self.content, "reason": self.reason, "risk_level": self.risk_level}


@dataclass(frozen=True)
class Detection:
    """A single rule that fired during a scan."""
    rule_id: str
    name: str
    category: str
    severity: int                   # 1-5, copied from the rule
    confidence: float               # 0.0-1.0, copied from the rule
    description: str
    suggestion: str = ""
    matched_elements: tuple[EvidenceElement, ...] = ()
    matched_text: tuple[str, ...] = ()

    def __post_init__(self):
        if not 1 <= self.severity <= 5:
            raise ValueError(f"severity out of range: {self.severity}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence out of range: {self.confidence}")

    @property
    def weight(self) -> float:
        return self.severity * self.confidence

    def to_dict(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "name": self.name,
            "category": self.category,
            "severity": self.severity,
            "confidence": self.confidence,
            "description": self.description,
            "suggestion": self.suggestion,
            "matched_elements": [e.to_dict() for e in self.matched_elements],
            "matched_text": list(self.matched_text),
        }


@dataclass(frozen=True)
class ScanResult:
    """Aggregate result of one scan. Never mutated after construction."""
    source_ref: str
    timestamp: str
    detections: tuple[Detection, ...]
    risk_score: int
    recommendations: tuple[str, ...]
    scan_mode: str = "markup"
    diagnostics: tuple[str, ...] = ()
    company: Optional[dict] = None
    score_breakdown: dict = field(default_factory=dict)
    suspicious_elements: tuple[SuspiciousElement, ...] = ()

    @property
    def patterns_found(self) -> int:
        return len(self.detections)

    @property
    def max_severity(self) -> int:
        return max((d.severity for d in self.detections), default=0)

    @property
    def categories(self) -> list[str]:
        seen: list[str] = []
        for d in self.detections:
            if d.category not in seen:
                seen.append(d.category)
        return seen

    @property
    def summary(self) -> str:
        n = self.patterns_found
        return f"Scan complete, {n} pattern{'s' if n != 1 else ''} found."

    def to_dict(self) -> dict:
        return {
            "source_ref": self.source_ref,
            "timestamp": self.timestamp,
            "scan_mode": self.scan_mode,
            "risk_score": self.risk_score,
            "patterns_found": self.patterns_found,
            "summary": self.summary,
            "detections": [d.to_dict() for d in self.detections],
            "recommendations": list(self.recommendations),
            "diagnostics": list(self.diagnostics),
            "company": self.company,
            "score_breakdown": self.score_breakdown,
            "suspicious_elements": [s.to_dict() for s in self.suspicious_elements],
        }
