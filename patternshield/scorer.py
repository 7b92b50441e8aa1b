"""
Risk Scorer

Aggregates detections into a 0-10 risk score and an advisory list.
Separated from detector.py for single-responsibility.

Score = mean over detections of (severity * confidence), clamped to
[0, 10] and rounded half-up. A mean rather than a sum keeps the score
on the same scale no matter how many rules fire.
"""

from __future__ import annotations

import math
from typing import Iterable

from patternshield.models import Detection

MAX_RISK_SCORE = 10

NO_CONCERNS = "No immediate concerns detected - continue with caution"

RECOMMENDATIONS = {
    "hidden_cost": "Look for all fees and charges before completing purchase",
    "forced_renewal": "Disable auto-renewal immediately after signup",
    "cancellation_trap": "Document cancellation process before subscribing",
    "pre_checked": "Uncheck any pre-selected add-ons you don't need",
    "countdown_pressure": "Take time to evaluate - ignore artificial urgency",
    "misleading_language": "Read all terms and conditions carefully",
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_risk_score(detections: Iterable[Detection]) -> int:
    """
    0 for no detections. Otherwise at least 1, even when the mean
    product rounds down to zero, so the score is 0 exactly when
    nothing fired.
    """
    products = [d.severity * d.confidence for d in detections]
    if not products:
        return 0
    mean = sum(products) / len(products)
    score = _round_half_up(min(max(mean, 0.0), float(MAX_RISK_SCORE)))
    return max(score, 1)


def build_recommendations(detections: Iterable[Detection]) -> list[str]:
    """One advisory per distinct category, first-seen order."""
    seen: list[str] = []
    recommendations: list[str] = []
    for d in detections:
        if d.category in seen:
            continue
        seen.append(d.category)
        recommendations.append(
            RECOMMENDATIONS.get(d.category, "Review this page carefully before continuing")
        )
    return recommendations or [NO_CONCERNS]


def score_breakdown(detections: Iterable[Detection]) -> dict:
    """Per-detection products plus the aggregate, for transparency."""
    detections = list(detections)
    contributions = [
        {
            "rule_id": d.rule_id,
            "severity": d.severity,
            "confidence": d.confidence,
            "product": round(d.severity * d.confidence, 4),
        }
        for d in detections
    ]
    mean = (
        sum(c["product"] for c in contributions) / len(contributions)
        if contributions else 0.0
    )
    return {
        "contributions": contributions,
        "mean_product": round(mean, 4),
        "risk_score": calculate_risk_score(detections),
    }
