"""
Rule Registry — The Canonical Detection Table

This module defines:
  1. The pattern taxonomy (six canonical categories)
  2. The rule and structural-matcher data structures
  3. The default rule table (one rule per deceptive practice)
  4. RuleRegistry — validated, read-only access to a rule table

A registry is built once and never mutated. Construction validates
every rule and raises MalformedRule on the first violation, so the
matcher and scorer can assume well-formed input.

Rules are evaluated independently. Each one fires at most once per
scan, on a structural hit OR a textual hit.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from patternshield.errors import MalformedRule, RuleNotFound
from patternshield.models import EvidenceElement

RULESET_VERSION = "2024.2"


# ============================================================
# TAXONOMY (closed)
# ============================================================

PATTERN_CATEGORIES: tuple[str, ...] = (
    "forced_renewal",
    "cancellation_trap",
    "hidden_cost",
    "misleading_language",
    "pre_checked",
    "countdown_pressure",
)

TRUTHY_VALUES = ("true", "1", "yes")


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass(frozen=True)
class StructuralMatcher:
    """
    A predicate over evidence elements.

    The selector decides which elements the live-DOM adapter collects
    for this matcher. The remaining fields narrow the hit:
      kind            — hand-built elements (no selectors recorded) of
                        this kind are treated as selected
      attributes      — element must carry one of the whitelisted values
                        for at least one listed attribute
      require_checked — checkbox must be checked (pre-selection is the
                        signal, not the checkbox itself)
      label_pattern   — element content must match this regex
      predicate       — arbitrary extra test
    """
    selector: str
    kind: Optional[str] = None
    attributes: tuple[tuple[str, tuple[str, ...]], ...] = ()  # (name, allowed values)
    require_checked: bool = False
    label_pattern: Optional[str] = None
    predicate: Optional[Callable[[EvidenceElement], bool]] = None

    def selects(self, element: EvidenceElement) -> bool:
        if self.selector in element.selectors:
            return True
        return bool(self.kind) and not element.selectors and element.kind == self.kind

    def matches(self, element: EvidenceElement) -> bool:
        if not self.selects(element):
            return False
        if self.require_checked and not element.is_checked:
            return False
        if self.attributes:
            allowed = any(
                (element.attribute(name) or "").strip().lower() in values
                for name, values in self.attributes
            )
            if not allowed:
                return False
        if self.label_pattern and not re.search(
            self.label_pattern, element.content, re.IGNORECASE
        ):
            return False
        if self.predicate is not None and not self.predicate(element):
            return False
        return True


@dataclass(frozen=True)
class Rule:
    """An immutable detection rule."""
    id: str
    name: str
    category: str
    severity: int                   # 1-5, potential harm if real
    confidence: float               # fixed per rule, 0.0-1.0
    description: str
    suggestion: str
    structural_matchers: tuple[StructuralMatcher, ...] = ()
    # Case-insensitive, line-bounded regexes (no DOTALL)
    text_matchers: tuple[str, ...] = ()


def _flag(attribute: str) -> StructuralMatcher:
    """Matcher for a data-* flag attribute set to a truthy value."""
    return StructuralMatcher(
        selector=f"[{attribute}]",
        attributes=((attribute, TRUTHY_VALUES),),
    )


# ============================================================
# DEFAULT RULE TABLE
# ============================================================

DEFAULT_RULES: list[Rule] = [
    Rule(
        id="hidden-auto-renewal",
        name="Hidden Auto-Renewal",
        category="forced_renewal",
        severity=4,
        confidence=0.9,
        description="Subscription will automatically renew without clear user consent",
        suggestion="Look for auto-renewal settings and disable them before subscribing",
        structural_matchers=(
            StructuralMatcher(
                selector='input[type="checkbox"]',
                kind="checkbox",
                require_checked=True,
                label_pattern=(
                    r"renew|recurring|auto[- ]?(?:pay|bill|charge)|"
                    r"subscription\s+continues"
                ),
            ),
            StructuralMatcher(selector=".auto-renewal"),
            StructuralMatcher(selector=".recurring-billing"),
            _flag("data-auto-renew"),
            _flag("data-recurring"),
        ),
        text_matchers=(
            r"automatically.*renew",
            r"recurring.*billing",
            r"auto.*renewal",
            r"subscription.*continues",
        ),
    ),
    Rule(
        id="confusing-cancellation",
        name="Confusing Cancellation Process",
        category="cancellation_trap",
        severity=5,
        confidence=0.85,
        description="Cancellation process is hidden or overly complicated",
        suggestion="Document the cancellation process before subscribing",
        structural_matchers=(
            StructuralMatcher(selector=".cancellation-hidden"),
            StructuralMatcher(selector=".cancel-difficult"),
            StructuralMatcher(selector=".no-cancel-button"),
            _flag("data-cancel-hidden"),
            _flag("data-cancel-difficult"),
        ),
        text_matchers=(
            r"contact.*support.*to.*cancel",
            r"call.*to.*cancel",
            r"email.*to.*cancel",
            r"cancellation.*not.*available",
            r"no\s+online.*cancel",
        ),
    ),
    Rule(
        id="hidden-costs",
        name="Hidden Additional Costs",
        category="hidden_cost",
        severity=4,
        confidence=0.8,
        description="Additional costs are hidden or not clearly disclosed",
        suggestion="Look for fine print and calculate the total cost before subscribing",
        structural_matchers=(
            StructuralMatcher(selector=".hidden-fee"),
            StructuralMatcher(selector=".additional-cost"),
            StructuralMatcher(selector=".service-fee"),
            _flag("data-hidden-cost"),
            _flag("data-additional-fee"),
        ),
        text_matchers=(
            r"additional.*fees.*may.*apply",
            r"service.*fee.*not.*included",
            r"taxes.*and.*fees.*extra",
            r"processing.*fee",
        ),
    ),
    Rule(
        id="misleading-language",
        name="Misleading Language",
        category="misleading_language",
        severity=3,
        confidence=0.75,
        description="Language is misleading or creates false expectations",
        suggestion="Read the terms carefully and ask for clarification if needed",
        structural_matchers=(
            StructuralMatcher(selector=".misleading-text"),
            StructuralMatcher(selector=".confusing-terms"),
            _flag("data-misleading"),
            _flag("data-confusing"),
        ),
        text_matchers=(
            r"free.*trial.*credit.*card",
            r"no.*commitment.*billing",
            r"cancel.*anytime.*charges",
            r"cancel\s+anytime\s*\*",
            r"unlimited.*with.*restrictions",
        ),
    ),
    Rule(
        id="pre-checked-addons",
        name="Pre-checked Add-ons",
        category="pre_checked",
        severity=3,
        confidence=0.9,
        description="Additional services are pre-selected without clear disclosure",
        suggestion="Uncheck any pre-selected add-ons you don't want",
        structural_matchers=(
            StructuralMatcher(
                selector='input[type="checkbox"]',
                kind="checkbox",
                require_checked=True,
                label_pattern=(
                    r"premium|protection|support|backup|warranty|insurance|"
                    r"add-?ons?|newsletter|donat"
                ),
            ),
            StructuralMatcher(selector=".addon-checked"),
            StructuralMatcher(selector=".premium-included"),
            _flag("data-pre-checked"),
            _flag("data-default-checked"),
        ),
        text_matchers=(
            r"premium.*features.*included",
            r"add.*protection.*plan",
            r"extended.*warranty",
            r"additional.*services",
            r"✓.*\$\d",
        ),
    ),
    Rule(
        id="countdown-pressure",
        name="Artificial Countdown Pressure",
        category="countdown_pressure",
        severity=2,
        confidence=0.7,
        description="Artificial time pressure to force quick decisions",
        suggestion="Take your time to evaluate the offer properly",
        structural_matchers=(
            StructuralMatcher(selector='[class*="countdown"]'),
            StructuralMatcher(selector='[id*="countdown"]'),
            StructuralMatcher(selector='[class*="timer"]'),
            StructuralMatcher(selector='[id*="timer"]'),
            StructuralMatcher(selector=".limited-time"),
            StructuralMatcher(selector=".expires-soon"),
            _flag("data-countdown"),
        ),
        text_matchers=(
            r"offer.*expires.*in",
            r"limited.*time.*only",
            r"hurry.*before.*gone",
            r"only.*few.*left",
            r"only\s+\d+\s+left",
            r"\bact\s+now\b",
        ),
    ),
]


# ============================================================
# THE REGISTRY
# ============================================================

class RuleRegistry:
    """
    Validated, ordered, read-only collection of rules.

    Holds no mutable state after __init__. Safe to share between
    threads and between scans.
    """

    def __init__(self, rules: list[Rule]):
        self._rules: tuple[Rule, ...] = tuple(rules)
        self._by_id: dict[str, Rule] = {}
        self._patterns: dict[str, tuple[re.Pattern, ...]] = {}

        for rule in self._rules:
            self._validate(rule)
            self._by_id[rule.id] = rule
            self._patterns[rule.id] = tuple(
                re.compile(p, re.IGNORECASE) for p in rule.text_matchers
            )

    def _validate(self, rule: Rule) -> None:
        if not rule.id:
            raise MalformedRule("<blank>", "id must be non-empty")
        if rule.id in self._by_id:
            raise MalformedRule(rule.id, "duplicate id")
        if rule.category not in PATTERN_CATEGORIES:
            raise MalformedRule(rule.id, f"unknown category '{rule.category}'")
        if isinstance(rule.severity, bool) or not isinstance(rule.severity, int):
            raise MalformedRule(rule.id, "severity must be an integer")
        if not 1 <= rule.severity <= 5:
            raise MalformedRule(rule.id, f"severity {rule.severity} outside 1-5")
        if not 0.0 <= rule.confidence <= 1.0:
            raise MalformedRule(rule.id, f"confidence {rule.confidence} outside 0-1")
        if not rule.structural_matchers and not rule.text_matchers:
            raise MalformedRule(rule.id, "rule has no matchers")

        for pattern in rule.text_matchers:
            try:
                re.compile(pattern, re.IGNORECASE)
            except re.error as e:
                raise MalformedRule(rule.id, f"bad regex {pattern!r}: {e}") from e

        for matcher in rule.structural_matchers:
            if not matcher.selector or not matcher.selector.strip():
                raise MalformedRule(rule.id, "structural matcher has empty selector")
            if matcher.label_pattern:
                try:
                    re.compile(matcher.label_pattern, re.IGNORECASE)
                except re.error as e:
                    raise MalformedRule(
                        rule.id, f"bad label pattern {matcher.label_pattern!r}: {e}"
                    ) from e

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def all_rules(self) -> list[Rule]:
        """Canonical ordered list. A copy — callers can't reorder the registry."""
        return list(self._rules)

    def rule_by_id(self, rule_id: str) -> Rule:
        try:
            return self._by_id[rule_id]
        except KeyError:
            raise RuleNotFound(rule_id) from None

    def text_patterns(self, rule_id: str) -> tuple[re.Pattern, ...]:
        if rule_id not in self._patterns:
            raise RuleNotFound(rule_id)
        return self._patterns[rule_id]

    def selectors(self) -> list[str]:
        """Every distinct structural selector, in registry order."""
        seen: list[str] = []
        for rule in self._rules:
            for matcher in rule.structural_matchers:
                if matcher.selector not in seen:
                    seen.append(matcher.selector)
        return seen

    def describe(self) -> list[dict]:
        """JSON-ready listing used by GET /rules."""
        return [
            {
                "id": r.id,
                "name": r.name,
                "category": r.category,
                "severity": r.severity,
                "confidence": r.confidence,
                "description": r.description,
                "suggestion": r.suggestion,
                "selectors": [m.selector for m in r.structural_matchers],
                "text_patterns": list(r.text_matchers),
            }
            for r in self._rules
        ]


def default_registry(extra_rules: Optional[list[Rule]] = None) -> RuleRegistry:
    """Build a fresh registry from the default table (plus optional extras)."""
    return RuleRegistry(DEFAULT_RULES + list(extra_rules or []))
