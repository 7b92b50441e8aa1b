"""
Scan History Tests — storage, fingerprinting and retention.
"""

from datetime import datetime, timedelta, timezone

import pytest

from patternshield.history import ScanHistory
from patternshield.models import ScanResult


def _result(source_ref="https://example.com/", timestamp=None, risk_score=0):
    return ScanResult(
        source_ref=source_ref,
        timestamp=timestamp or datetime.now(timezone.utc).isoformat(),
        detections=(),
        risk_score=risk_score,
        recommendations=("No immediate concerns detected - continue with caution",),
    )


@pytest.fixture
def history(tmp_path):
    return ScanHistory(db_path=str(tmp_path / "history.db"), max_entries=3, max_age_days=7)


class TestRecord:

    def test_record_returns_entry_hash(self, history):
        result = _result()
        entry_hash = history.record(result)
        assert entry_hash == ScanHistory.entry_hash(result)
        assert len(entry_hash) == 64

    def test_same_result_stored_once(self, history):
        result = _result()
        assert history.record(result) == history.record(result)
        assert history.get_count() == 1

    def test_different_results_different_hashes(self, history):
        a = history.record(_result(source_ref="https://a.example/"))
        b = history.record(_result(source_ref="https://b.example/"))
        assert a != b

    def test_round_trip(self, history):
        result = _result(risk_score=0)
        history.record(result)
        [entry] = history.get_recent()
        assert entry["source_ref"] == result.source_ref
        assert entry["result"]["summary"] == "Scan complete, 0 patterns found."
        assert entry["ruleset_version"]


class TestQueries:

    def test_newest_first(self, history):
        history.record(_result(source_ref="https://first.example/"))
        history.record(_result(source_ref="https://second.example/"))
        refs = [e["source_ref"] for e in history.get_recent()]
        assert refs == ["https://second.example/", "https://first.example/"]

    def test_filter_by_source(self, history):
        history.record(_result(source_ref="https://a.example/"))
        history.record(_result(source_ref="https://b.example/"))
        entries = history.get_recent(source_ref="https://a.example/")
        assert [e["source_ref"] for e in entries] == ["https://a.example/"]

    def test_limit(self, history):
        for i in range(3):
            history.record(_result(source_ref=f"https://{i}.example/"))
        assert len(history.get_recent(limit=2)) == 2


class TestRetention:

    def test_max_entries(self, history):
        for i in range(5):
            history.record(_result(source_ref=f"https://{i}.example/"))
        assert history.get_count() == 3
        refs = [e["source_ref"] for e in history.get_recent()]
        assert refs == ["https://4.example/", "https://3.example/", "https://2.example/"]

    def test_old_entries_pruned_on_insert(self, history):
        old = (datetime.now(timezone.utc) - timedelta(days=30)).isoformat()
        history.record(_result(timestamp=old))
        assert history.get_count() == 0

    def test_prune_with_clock(self, history):
        history.record(_result())
        later = datetime.now(timezone.utc) + timedelta(days=8)
        assert history.prune(now=later) == 1
        assert history.get_count() == 0

    def test_prune_nothing_to_do(self, history):
        history.record(_result())
        assert history.prune() == 0
