"""
Community Reports — User-Submitted Patterns With Vote Governance

Users report deceptive practices they ran into; other users vote on
them. The scanner also appends what it finds, so a site's flag-set is
the union of community-confirmed reports and machine findings.

Governance:
  1. New reports enter as "pending"
  2. A pending report with CONFIRM_THRESHOLD upvotes becomes "confirmed"
  3. A confirmed report whose downvote share exceeds DISPUTE_LIMIT
     becomes "disputed" (and returns to "confirmed" if the share drops)
  4. Categories are the canonical scanner taxonomy. A report without
     one is categorized from its description
  5. Only confirmed reports count toward a site's flag-set
"""

from __future__ import annotations

import re
import sqlite3
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from patternshield.config import settings
from patternshield.logging import get_logger
from patternshield.models import ScanResult
from patternshield.rules import PATTERN_CATEGORIES
from patternshield.url_rules import domain_of

logger = get_logger("community")

REPORT_STATUSES = ("pending", "confirmed", "disputed")
SORT_ORDERS = {
    "recent": "created_at DESC",
    "popular": "upvotes DESC, created_at DESC",
    "controversial": "downvotes DESC, created_at DESC",
}
DEFAULT_CATEGORY = "misleading_language"


# ============================================================
# KEYWORD ASSESSMENT
# ============================================================

DARK_PATTERN_KEYWORDS = (
    "hidden", "auto", "renewal", "cancel", "difficult", "confusing",
    "misleading", "deceptive", "trick", "trap", "forced", "pre-checked",
    "countdown", "urgent", "limited", "expires", "fee", "charge",
)
HIGH_SEVERITY_KEYWORDS = ("hidden", "deceptive", "misleading", "trap")
MEDIUM_SEVERITY_KEYWORDS = ("confusing", "difficult", "auto")
LEGAL_RISK_KEYWORDS = ("hidden", "deceptive", "misleading", "forced")

CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "forced_renewal": ("renew", "recurring", "automatic", "autopay", "rebill"),
    "cancellation_trap": ("cancel", "unsubscribe", "retention", "phone", "difficult"),
    "hidden_cost": ("fee", "charge", "surcharge", "shipping", "tax", "cost"),
    "pre_checked": ("pre-checked", "prechecked", "pre-selected", "preselected",
                    "checkbox", "opt-out", "add-on", "addon"),
    "countdown_pressure": ("countdown", "timer", "expire", "hurry", "urgent", "limited"),
    "misleading_language": ("misleading", "confusing", "trick", "fine print",
                            "free trial", "deceptive"),
}


def extract_keywords(description: str) -> list[str]:
    """Words longer than three characters that contain a dark-pattern keyword."""
    words = re.sub(r"[^\w\s-]", " ", (description or "").lower()).split()
    return [
        w for w in words
        if len(w) > 3 and any(k in w for k in DARK_PATTERN_KEYWORDS)
    ]


def suggest_category(description: str) -> Optional[str]:
    """Canonical category with the most keyword hits, None if nothing hits."""
    text = (description or "").lower()
    best, best_hits = None, 0
    for category in PATTERN_CATEGORIES:
        hits = sum(1 for k in CATEGORY_KEYWORDS[category] if k in text)
        if hits > best_hits:
            best, best_hits = category, hits
    return best


def assess_report(description: str) -> dict:
    """Keyword-driven severity / user-impact / legal-risk estimate (1-5 each)."""
    keywords = extract_keywords(description)

    severity = 1
    if any(h in k for k in keywords for h in HIGH_SEVERITY_KEYWORDS):
        severity = 5
    elif any(m in k for k in keywords for m in MEDIUM_SEVERITY_KEYWORDS):
        severity = 3

    legal_risk = 1
    if any(l in k for k in keywords for l in LEGAL_RISK_KEYWORDS):
        legal_risk = severity

    return {
        "keywords": keywords,
        "severity": severity,
        "user_impact": min(severity + 1, 5),
        "legal_risk": legal_risk,
        "suggested_category": suggest_category(description),
    }


def _normalize_domain(domain: str) -> str:
    domain = (domain or "").strip().lower()
    return domain[4:] if domain.startswith("www.") else domain


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass
class PatternReport:
    """A community-submitted report and its vote tally."""
    id: str
    website_url: str
    domain: str
    company_name: Optional[str]
    title: str
    description: str
    category: str
    severity: int
    status: str             # "pending" | "confirmed" | "disputed"
    upvotes: int
    downvotes: int
    created_at: str
    updated_at: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "website_url": self.website_url,
            "domain": self.domain,
            "company_name": self.company_name,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "severity": self.severity,
            "status": self.status,
            "upvotes": self.upvotes,
            "downvotes": self.downvotes,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


_REPORT_COLUMNS = (
    "id, website_url, domain, company_name, title, description, category, "
    "severity, status, upvotes, downvotes, created_at, updated_at"
)


class CommunityReports:
    """
    Manages the lifecycle of community reports:
    submit -> vote -> confirm -> (dispute if contested)

    Backed by SQLite. Writes are serialized by a per-store lock.
    """

    def __init__(
        self,
        db_path: str = "patternshield_community.db",
        confirm_threshold: int = 5,
        dispute_limit: float = 0.4,
    ):
        self.db_path = db_path
        self.confirm_threshold = confirm_threshold
        self.dispute_limit = dispute_limit
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        with self._get_conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS pattern_reports (
                    id TEXT PRIMARY KEY,
                    website_url TEXT NOT NULL,
                    domain TEXT NOT NULL,
                    company_name TEXT,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL,
                    category TEXT NOT NULL,
                    severity INTEGER NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    upvotes INTEGER NOT NULL DEFAULT 0,
                    downvotes INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS site_findings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    domain TEXT NOT NULL,
                    source_ref TEXT NOT NULL,
                    rule_id TEXT NOT NULL,
                    category TEXT NOT NULL,
                    severity INTEGER NOT NULL,
                    confidence REAL NOT NULL,
                    risk_score INTEGER NOT NULL,
                    timestamp TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_reports_domain
                ON pattern_reports(domain)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_findings_domain
                ON site_findings(domain)
            """)
            conn.commit()

    def _get_conn(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    @staticmethod
    def _row_to_report(row) -> PatternReport:
        return PatternReport(*row)

    # ------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------

    def submit(
        self,
        website_url: str,
        title: str,
        description: str,
        category: Optional[str] = None,
        company_name: Optional[str] = None,
        severity: Optional[int] = None,
    ) -> dict:
        """
        Record a new report as pending. The returned dict also carries
        the keyword assessment of the report text (not stored).

        Raises ValueError for blank fields, an unknown category or a
        severity outside 1-5.
        """
        website_url = (website_url or "").strip()
        title = (title or "").strip()
        description = (description or "").strip()
        if not website_url or not title or not description:
            raise ValueError("website_url, title and description are required")

        assessment = assess_report(f"{title} {description}")
        if category is None:
            category = assessment["suggested_category"] or DEFAULT_CATEGORY
        elif category not in PATTERN_CATEGORIES:
            raise ValueError(f"Unknown category: {category}")

        if severity is None:
            severity = assessment["severity"]
        elif not 1 <= severity <= 5:
            raise ValueError(f"Severity must be 1-5, got {severity}")

        now = _now()
        report = PatternReport(
            id=uuid.uuid4().hex,
            website_url=website_url,
            domain=_normalize_domain(domain_of(website_url)),
            company_name=company_name,
            title=title,
            description=description,
            category=category,
            severity=severity,
            status="pending",
            upvotes=0,
            downvotes=0,
            created_at=now,
            updated_at=now,
        )

        with self._lock:
            with self._get_conn() as conn:
                conn.execute(
                    f"INSERT INTO pattern_reports ({_REPORT_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        report.id, report.website_url, report.domain,
                        report.company_name, report.title, report.description,
                        report.category, report.severity, report.status,
                        report.upvotes, report.downvotes,
                        report.created_at, report.updated_at,
                    ),
                )
                conn.commit()

        logger.info(
            "Report submitted",
            extra={"report_id": report.id, "source_ref": report.domain},
        )
        return {**report.to_dict(), "assessment": assessment}

    def vote(self, report_id: str, direction: str) -> dict:
        """Apply one up/down vote and any status transition it triggers."""
        if direction not in ("up", "down"):
            raise ValueError(f"Vote direction must be 'up' or 'down', got {direction!r}")

        with self._lock:
            with self._get_conn() as conn:
                row = conn.execute(
                    "SELECT status, upvotes, downvotes FROM pattern_reports WHERE id = ?",
                    (report_id,),
                ).fetchone()
                if not row:
                    return {"error": f"Report {report_id} not found"}

                status, up, down = row
                if direction == "up":
                    up += 1
                else:
                    down += 1

                new_status = self._next_status(status, up, down)
                conn.execute(
                    """UPDATE pattern_reports
                       SET upvotes = ?, downvotes = ?, status = ?, updated_at = ?
                       WHERE id = ?""",
                    (up, down, new_status, _now(), report_id),
                )
                conn.commit()

        if new_status != status:
            logger.info(
                "Report %s -> %s", status, new_status,
                extra={"report_id": report_id},
            )

        return {
            "id": report_id,
            "upvotes": up,
            "downvotes": down,
            "status": new_status,
            "action": "status_changed" if new_status != status else "recorded",
        }

    def _next_status(self, status: str, up: int, down: int) -> str:
        total = up + down
        disputed = total > 0 and (down / total) > self.dispute_limit
        if status == "pending":
            return "confirmed" if up >= self.confirm_threshold and not disputed else "pending"
        if status == "confirmed" and disputed:
            return "disputed"
        if status == "disputed" and not disputed:
            return "confirmed"
        return status

    def get_report(self, report_id: str) -> Optional[dict]:
        with self._get_conn() as conn:
            row = conn.execute(
                f"SELECT {_REPORT_COLUMNS} FROM pattern_reports WHERE id = ?",
                (report_id,),
            ).fetchone()
        return self._row_to_report(row).to_dict() if row else None

    def get_reports(
        self,
        status: Optional[str] = None,
        category: Optional[str] = None,
        sort_by: str = "recent",
        limit: int = 50,
    ) -> list[dict]:
        if sort_by not in SORT_ORDERS:
            raise ValueError(f"sort_by must be one of {sorted(SORT_ORDERS)}")
        if status and status not in REPORT_STATUSES:
            raise ValueError(f"status must be one of {list(REPORT_STATUSES)}")

        clauses, params = [], []
        if status:
            clauses.append("status = ?")
            params.append(status)
        if category:
            clauses.append("category = ?")
            params.append(category)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        with self._get_conn() as conn:
            rows = conn.execute(
                f"SELECT {_REPORT_COLUMNS} FROM pattern_reports {where} "
                f"ORDER BY {SORT_ORDERS[sort_by]} LIMIT ?",
                (*params, limit),
            ).fetchall()
        return [self._row_to_report(r).to_dict() for r in rows]

    def search(self, query: str, limit: int = 50) -> list[dict]:
        """Case-insensitive substring search over title, description, company and domain."""
        query = (query or "").strip()
        if not query:
            return []
        like = f"%{query.lower()}%"
        with self._get_conn() as conn:
            rows = conn.execute(
                f"""SELECT {_REPORT_COLUMNS} FROM pattern_reports
                    WHERE lower(title) LIKE ? OR lower(description) LIKE ?
                       OR lower(coalesce(company_name, '')) LIKE ? OR domain LIKE ?
                    ORDER BY created_at DESC LIMIT ?""",
                (like, like, like, like, limit),
            ).fetchall()
        return [self._row_to_report(r).to_dict() for r in rows]

    # ------------------------------------------------------------
    # Scanner findings
    # ------------------------------------------------------------

    def append_finding(self, result: ScanResult) -> int:
        """
        Record one finding per detection of a page scan.

        Scans without a site (uploaded images, inline markup) are
        ignored. Returns the number of findings stored.
        """
        if not result.detections or "://" not in result.source_ref:
            return 0
        domain = _normalize_domain(domain_of(result.source_ref))
        if not domain:
            return 0

        rows = [
            (
                domain, result.source_ref, d.rule_id, d.category,
                d.severity, d.confidence, result.risk_score, result.timestamp,
            )
            for d in result.detections
        ]
        with self._lock:
            with self._get_conn() as conn:
                conn.executemany(
                    """INSERT INTO site_findings
                       (domain, source_ref, rule_id, category, severity,
                        confidence, risk_score, timestamp)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    rows,
                )
                conn.commit()
        return len(rows)

    def flags_for_site(self, domain: str) -> dict:
        """Current flag-set for a site: confirmed reports plus scanner findings."""
        domain = _normalize_domain(domain)
        with self._get_conn() as conn:
            report_rows = conn.execute(
                """SELECT category, COUNT(*) FROM pattern_reports
                   WHERE domain = ? AND status = 'confirmed'
                   GROUP BY category""",
                (domain,),
            ).fetchall()
            finding_rows = conn.execute(
                """SELECT category, COUNT(*), MAX(severity) FROM site_findings
                   WHERE domain = ? GROUP BY category""",
                (domain,),
            ).fetchall()

        found = {r[0] for r in report_rows} | {r[0] for r in finding_rows}
        return {
            "domain": domain,
            "categories": [c for c in PATTERN_CATEGORIES if c in found],
            "confirmed_reports": sum(r[1] for r in report_rows),
            "findings": sum(r[1] for r in finding_rows),
            "max_severity": max((r[2] for r in finding_rows), default=0),
        }

    def get_count(self) -> int:
        with self._get_conn() as conn:
            row = conn.execute("SELECT COUNT(*) FROM pattern_reports").fetchone()
            return row[0] if row else 0


def get_community_reports() -> CommunityReports:
    """Factory — reads db path and thresholds from config."""
    return CommunityReports(
        db_path=settings.COMMUNITY_DB_PATH,
        confirm_threshold=settings.CONFIRM_THRESHOLD,
        dispute_limit=settings.DISPUTE_LIMIT,
    )
