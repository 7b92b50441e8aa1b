"""
PatternShield — Dark Pattern Detection Engine

Rule-based detection of deceptive subscription and checkout patterns
in page markup, screenshots and bare URLs.

Public API:
  - RuleRegistry:    Immutable, validated rule table
  - default_registry: Registry built from the default rules
  - PatternMatcher:  Evaluates a registry against one EvidenceSet
  - ShieldDetector:  Scan orchestrator (markup, text, image, url, page)
  - create_detector: Factory for a detector with default rule tables
  - ResultReporter:  Dispatches a finished scan to report/notify sinks,
                     with protection alerts on notifications
  - ScanHistory:     Bounded SQLite record of completed scans
  - CommunityReports: User-submitted reports with vote governance

Usage:
    from patternshield import create_detector
    detector = create_detector()
    result = detector.scan_markup(html, url="https://example.com/checkout")
"""

__version__ = "0.4.0"

from patternshield.rules import (
    PATTERN_CATEGORIES,
    Rule,
    RuleRegistry,
    StructuralMatcher,
    default_registry,
)
from patternshield.models import (
    Detection,
    EvidenceElement,
    EvidenceSet,
    ScanResult,
    SuspiciousElement,
)
from patternshield.matcher import PatternMatcher
from patternshield.detector import ShieldDetector, create_detector
from patternshield.reporter import Advisory, ResultReporter, protection_alert
from patternshield.history import ScanHistory
from patternshield.community import CommunityReports

__all__ = [
    "PATTERN_CATEGORIES",
    "Rule",
    "RuleRegistry",
    "StructuralMatcher",
    "default_registry",
    "Detection",
    "EvidenceElement",
    "EvidenceSet",
    "ScanResult",
    "SuspiciousElement",
    "PatternMatcher",
    "ShieldDetector",
    "create_detector",
    "Advisory",
    "ResultReporter",
    "protection_alert",
    "ScanHistory",
    "CommunityReports",
]
