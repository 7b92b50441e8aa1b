"""
URL heuristics — a coarse rule table for pages we cannot load.

Deliberately separate from the Rule Registry: these rules only see a
URL string, so they test substrings of the host and of the full URL
instead of selectors and page text.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from patternshield.errors import MalformedRule
from patternshield.models import Detection, EvidenceSet
from patternshield.rules import PATTERN_CATEGORIES

URL_RULE_CONFIDENCE = 0.6


@dataclass(frozen=True)
class UrlRule:
    """
    Fires when the URL contains any path keyword AND the host contains
    any domain keyword. An empty keyword list is not a constraint.
    """
    id: str
    message: str
    category: str
    risk_weight: int                # 1-5, becomes the detection's severity
    path_keywords: tuple[str, ...] = ()
    domain_keywords: tuple[str, ...] = ()
    confidence: float = URL_RULE_CONFIDENCE

    def applies(self, url: str, domain: str) -> bool:
        if self.path_keywords and not any(k in url for k in self.path_keywords):
            return False
        if self.domain_keywords and not any(k in domain for k in self.domain_keywords):
            return False
        return True


def domain_of(url: str) -> str:
    """Lowercased host of a URL, tolerating a missing scheme."""
    url = (url or "").strip()
    if not url:
        return ""
    if "://" not in url:
        url = "http://" + url
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


DEFAULT_URL_RULES: list[UrlRule] = [
    # --- Offer language in the URL ---
    UrlRule("url-free-trial", "Free trial offer - check for auto-renewal terms",
            "forced_renewal", 3, path_keywords=("free-trial",)),
    UrlRule("url-limited-time", "Artificial urgency - limited time offer detected",
            "countdown_pressure", 2, path_keywords=("limited-time",)),
    UrlRule("url-act-now", "Pressure tactic - immediate action required",
            "countdown_pressure", 2, path_keywords=("act-now",)),
    UrlRule("url-urgent", "Urgency manipulation detected",
            "countdown_pressure", 2, path_keywords=("urgent",)),
    UrlRule("url-expires", "Expiration pressure - time-sensitive offer",
            "countdown_pressure", 2, path_keywords=("expires",)),
    UrlRule("url-cancel-anytime", "Potentially misleading cancellation claim",
            "misleading_language", 3, path_keywords=("cancel-anytime",)),
    UrlRule("url-no-commitment", "No commitment claim - verify actual terms",
            "misleading_language", 2, path_keywords=("no-commitment",)),
    UrlRule("url-risk-free", "Risk-free claim - check for hidden conditions",
            "misleading_language", 2, path_keywords=("risk-free",)),

    # --- Subscription and billing flows ---
    UrlRule("url-subscription",
            "Subscription signup page - verify auto-renewal terms and cancellation policy",
            "forced_renewal", 2, path_keywords=("subscribe", "subscription")),
    UrlRule("url-billing",
            "Payment/billing page - check for hidden fees and pre-selected options",
            "hidden_cost", 2, path_keywords=("billing", "payment")),
    UrlRule("url-checkout",
            "Checkout process - watch for pre-checked add-ons and hidden costs",
            "pre_checked", 2, path_keywords=("checkout",)),
    UrlRule("url-news-subscription",
            "News subscription - check for introductory pricing and auto-renewal terms",
            "forced_renewal", 3, path_keywords=("subscribe",),
            domain_keywords=("news", "times", "post")),
    UrlRule("url-premium-upsell", "Premium upselling detected in URL structure",
            "misleading_language", 3, path_keywords=("premium", "sales"),
            domain_keywords=("linkedin.com",)),
    UrlRule("url-notification-engagement",
            "Notification engagement pattern - designed to increase time on platform",
            "misleading_language", 2, path_keywords=("notifications",),
            domain_keywords=("linkedin.com",)),

    # --- Known platform types ---
    UrlRule("url-social-platform",
            "Social media platform - uses engagement optimization and behavioral nudges",
            "misleading_language", 1,
            domain_keywords=("facebook.com", "instagram.com", "twitter.com",
                             "tiktok.com", "snapchat.com", "linkedin.com")),
    UrlRule("url-ecommerce-platform",
            "E-commerce platform - check for hidden shipping costs and return policies",
            "hidden_cost", 1,
            domain_keywords=("amazon.com", "ebay.com", "shopify", "store", "shop")),
    UrlRule("url-streaming-service",
            "Streaming service - verify auto-renewal settings and cancellation process",
            "forced_renewal", 2,
            domain_keywords=("netflix.com", "hulu.com", "disney", "prime", "spotify.com")),
]


class UrlRuleTable:
    """Ordered, validated URL rule table."""

    def __init__(self, rules: Optional[list[UrlRule]] = None):
        self._rules = tuple(DEFAULT_URL_RULES if rules is None else rules)
        seen: set[str] = set()
        for rule in self._rules:
            if rule.id in seen:
                raise MalformedRule(rule.id, "duplicate id")
            if rule.category not in PATTERN_CATEGORIES:
                raise MalformedRule(rule.id, f"unknown category '{rule.category}'")
            if not 1 <= rule.risk_weight <= 5:
                raise MalformedRule(rule.id, f"risk weight {rule.risk_weight} outside 1-5")
            if not 0.0 <= rule.confidence <= 1.0:
                raise MalformedRule(rule.id, f"confidence {rule.confidence} outside 0-1")
            if not rule.path_keywords and not rule.domain_keywords:
                raise MalformedRule(rule.id, "rule has no keywords")
            seen.add(rule.id)

    def __len__(self) -> int:
        return len(self._rules)

    @property
    def rules(self) -> tuple[UrlRule, ...]:
        return self._rules

    def evaluate(self, evidence: EvidenceSet) -> list[Detection]:
        url = evidence.full_text.strip().lower()
        if not url:
            return []
        domain = domain_of(url)

        detections = []
        for rule in self._rules:
            if not rule.applies(url, domain):
                continue
            detections.append(Detection(
                rule_id=rule.id,
                name=rule.message.split(" - ")[0],
                category=rule.category,
                severity=rule.risk_weight,
                confidence=rule.confidence,
                description=rule.message,
                matched_text=tuple(
                    k for k in rule.path_keywords + rule.domain_keywords
                    if k in url
                ),
            ))
        return detections
