"""
Result Reporter — the seam between a finished scan and its side effects.

Each publish() call performs at most one side effect, chosen by the
caller's context:

  overlay       notify sink once, only when something was detected
  notification  notify sink once, only when the worst detection meets
                the severity threshold; the advisory carries one
                protection alert per detection at or above it
  telemetry     report sink once, always (empty results included)

The reporter persists nothing itself. Sink failures are logged and
swallowed: the scan already succeeded whether or not the side effect
lands.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

from patternshield.config import settings
from patternshield.errors import ReporterSinkFailure
from patternshield.logging import get_logger
from patternshield.models import Detection, ScanResult
from patternshield.url_rules import domain_of

logger = get_logger("reporter")

Sink = Callable[[ScanResult], None]

CONTEXTS = ("overlay", "notification", "telemetry")

BLOCK_SEVERITY = 4


@dataclass(frozen=True)
class Advisory:
    """What a UI shell renders for a scan. Rendering itself happens elsewhere."""
    title: str
    message: str
    items: tuple[dict, ...] = field(default_factory=tuple)
    risk_score: int = 0
    dismiss_after: int = 0          # seconds; 0 means stays until dismissed
    alerts: tuple[dict, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "message": self.message,
            "items": list(self.items),
            "risk_score": self.risk_score,
            "dismiss_after": self.dismiss_after,
            "alerts": list(self.alerts),
        }


def _noop(result: ScanResult) -> None:
    return None


def protection_alert(detection: Detection, url: str) -> dict:
    """Protection alert for one detection: block at BLOCK_SEVERITY and up, else warn."""
    return {
        "website_url": url,
        "pattern_detected": detection.category,
        "rule_id": detection.rule_id,
        "severity": detection.severity,
        "alert_message": detection.description,
        "protection_action": "block" if detection.severity >= BLOCK_SEVERITY else "warn",
        "is_active": True,
    }


class ResultReporter:
    def __init__(
        self,
        report_sink: Optional[Sink] = None,
        notify_sink: Optional[Sink] = None,
        severity_threshold: Optional[int] = None,
        overlay_seconds: Optional[int] = None,
    ):
        self._report_sink = report_sink or _noop
        self._notify_sink = notify_sink or _noop
        self.severity_threshold = (
            settings.SEVERITY_THRESHOLD if severity_threshold is None else severity_threshold
        )
        self.overlay_seconds = (
            settings.OVERLAY_DISMISS_SECONDS if overlay_seconds is None else overlay_seconds
        )

    def publish(self, result: ScanResult, context: str = "overlay") -> Optional[Advisory]:
        """
        Dispatch one side effect for a scan result.

        Returns the Advisory to display for overlay / notification
        contexts when they trigger, otherwise None.
        """
        if context not in CONTEXTS:
            raise ValueError(f"Unknown reporter context: {context}")

        if context == "telemetry":
            self._emit("report", self._report_sink, result, context)
            return None

        if context == "overlay":
            if not result.detections:
                return None
            self._emit("notify", self._notify_sink, result, context)
            return self.build_overlay(result)

        # notification
        if not result.detections or result.max_severity < self.severity_threshold:
            return None
        self._emit("notify", self._notify_sink, result, context)
        return self.build_notification(result)

    def build_overlay(self, result: ScanResult) -> Advisory:
        n = result.patterns_found
        return Advisory(
            title="Dark Patterns Detected",
            message=f"{n} suspicious pattern{'s' if n != 1 else ''} found on this page",
            items=tuple(
                {
                    "name": d.name,
                    "description": d.description,
                    "severity": d.severity,
                    "suggestion": d.suggestion,
                }
                for d in result.detections
            ),
            risk_score=result.risk_score,
            dismiss_after=self.overlay_seconds,
        )

    def build_notification(self, result: ScanResult) -> Advisory:
        names = ", ".join(d.name for d in result.detections)
        where = result.source_ref
        if "://" in where:
            where = domain_of(where) or where
        return Advisory(
            title="Dark Pattern Detected",
            message=f"{names} detected on {where}",
            risk_score=result.risk_score,
            alerts=tuple(
                protection_alert(d, result.source_ref)
                for d in result.detections
                if d.severity >= self.severity_threshold
            ),
        )

    def _emit(self, name: str, sink: Sink, result: ScanResult, context: str) -> None:
        try:
            sink(result)
        except Exception as e:
            failure = ReporterSinkFailure(name, e)
            logger.warning(
                str(failure),
                extra={
                    "sink": name,
                    "context": context,
                    "source_ref": result.source_ref,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
