"""
Result Reporter Tests

One publish() = at most one side effect, and a failing sink never
turns a finished scan into an error.
"""

import logging

import pytest

from patternshield.detector import create_detector
from patternshield.models import EvidenceSet
from patternshield.reporter import ResultReporter, protection_alert


class Recorder:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def __call__(self, result):
        self.calls.append(result)
        if self.fail:
            raise ConnectionError("sink offline")


@pytest.fixture
def detector():
    return create_detector()


@pytest.fixture
def risky(detector):
    # cancellation_trap, severity 5
    return detector.scan_evidence(
        EvidenceSet(full_text="Call to cancel"), source_ref="https://www.example.com/plans",
    )


@pytest.fixture
def mild(detector):
    # countdown_pressure, severity 2
    return detector.scan_evidence(EvidenceSet(full_text="Act now"), source_ref="inline-markup")


@pytest.fixture
def clean(detector):
    return detector.scan_evidence(EvidenceSet(full_text="Welcome"))


def _reporter(**kwargs):
    report, notify = Recorder(), Recorder()
    return ResultReporter(report_sink=report, notify_sink=notify, **kwargs), report, notify


class TestOverlay:

    def test_notifies_once_when_detected(self, risky):
        reporter, report, notify = _reporter(overlay_seconds=15)
        advisory = reporter.publish(risky, "overlay")
        assert len(notify.calls) == 1
        assert report.calls == []
        assert advisory.title == "Dark Patterns Detected"
        assert advisory.dismiss_after == 15
        assert advisory.items[0]["name"] == "Confusing Cancellation Process"

    def test_silent_when_clean(self, clean):
        reporter, report, notify = _reporter()
        assert reporter.publish(clean, "overlay") is None
        assert notify.calls == []

    def test_default_context_is_overlay(self, risky):
        reporter, _, notify = _reporter()
        reporter.publish(risky)
        assert len(notify.calls) == 1


class TestNotification:

    def test_above_threshold(self, risky):
        reporter, _, notify = _reporter(severity_threshold=3)
        advisory = reporter.publish(risky, "notification")
        assert len(notify.calls) == 1
        assert advisory.message == "Confusing Cancellation Process detected on www.example.com"

    def test_below_threshold(self, mild):
        reporter, _, notify = _reporter(severity_threshold=3)
        assert reporter.publish(mild, "notification") is None
        assert notify.calls == []

    def test_non_url_source_used_as_is(self, mild):
        reporter, _, _ = _reporter(severity_threshold=1)
        advisory = reporter.publish(mild, "notification")
        assert advisory.message.endswith("detected on inline-markup")

    def test_alerts_for_detections_at_threshold(self, detector):
        result = detector.scan_evidence(
            EvidenceSet(full_text="Call to cancel\nAct now"), source_ref="https://shop.example/",
        )
        reporter, _, _ = _reporter(severity_threshold=3)
        alerts = reporter.publish(result, "notification").to_dict()["alerts"]
        assert [a["rule_id"] for a in alerts] == ["confusing-cancellation"]
        assert alerts[0]["protection_action"] == "block"
        assert alerts[0]["website_url"] == "https://shop.example/"

    def test_overlay_carries_no_alerts(self, risky):
        reporter, _, _ = _reporter()
        assert reporter.publish(risky, "overlay").alerts == ()


class TestProtectionAlert:

    def _detection(self, detector, text):
        return detector.scan_evidence(EvidenceSet(full_text=text)).detections[0]

    def test_block_high_severity(self, detector):
        alert = protection_alert(self._detection(detector, "Call to cancel"), "https://example.com")
        assert alert["protection_action"] == "block"
        assert alert["pattern_detected"] == "cancellation_trap"
        assert alert["is_active"] is True

    def test_warn_low_severity(self, detector):
        alert = protection_alert(self._detection(detector, "Act now"), "https://example.com")
        assert alert["protection_action"] == "warn"


class TestTelemetry:

    def test_always_reports(self, clean, risky):
        reporter, report, notify = _reporter()
        assert reporter.publish(clean, "telemetry") is None
        reporter.publish(risky, "telemetry")
        assert report.calls == [clean, risky]
        assert notify.calls == []


class TestFailures:

    def test_sink_failure_swallowed_and_logged(self, risky, caplog):
        failing = Recorder(fail=True)
        reporter = ResultReporter(report_sink=failing)
        with caplog.at_level(logging.WARNING, logger="patternshield.reporter"):
            reporter.publish(risky, "telemetry")
        assert len(failing.calls) == 1
        assert any("sink offline" in r.getMessage() for r in caplog.records)

    def test_overlay_still_returned_when_notify_fails(self, risky):
        reporter = ResultReporter(notify_sink=Recorder(fail=True))
        assert reporter.publish(risky, "overlay") is not None

    def test_unknown_context(self, risky):
        with pytest.raises(ValueError):
            ResultReporter().publish(risky, "email")

    def test_no_sinks_configured(self, risky):
        assert ResultReporter().publish(risky, "telemetry") is None
