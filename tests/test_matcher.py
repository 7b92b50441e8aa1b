"""
Pattern Matcher Tests

The matcher is a pure function of (registry, evidence). Each rule
fires at most once, and one broken rule never takes the others down.
"""

import pytest

from patternshield.matcher import PatternMatcher
from patternshield.models import EvidenceElement, EvidenceSet
from patternshield.rules import Rule, StructuralMatcher, default_registry


def _checkbox(label, checked=True):
    return EvidenceElement(kind="checkbox", content=label, is_checked=checked)


def _explode(element):
    raise RuntimeError("selector blew up")


EXPLODING_RULE = Rule(
    id="exploding-rule",
    name="Exploding",
    category="misleading_language",
    severity=1,
    confidence=0.1,
    description="always raises",
    suggestion="",
    structural_matchers=(
        StructuralMatcher(selector=".anything", kind="checkbox", predicate=_explode),
    ),
)


class TestStructuralPass:

    def test_checked_renewal_checkbox(self, registry):
        evidence = EvidenceSet(elements=(_checkbox("Automatically renew my plan"),))
        outcome = PatternMatcher(registry).match(evidence)
        assert [d.rule_id for d in outcome.detections] == ["hidden-auto-renewal"]
        assert outcome.detections[0].matched_elements[0].content == "Automatically renew my plan"

    def test_unchecked_checkbox_ignored(self, registry):
        evidence = EvidenceSet(elements=(_checkbox("Automatically renew my plan", checked=False),))
        assert PatternMatcher(registry).match(evidence).detections == ()

    def test_precheck_addon(self, registry):
        evidence = EvidenceSet(elements=(_checkbox("Add premium support"),))
        outcome = PatternMatcher(registry).match(evidence)
        assert [d.category for d in outcome.detections] == ["pre_checked"]

    def test_ocr_elements_skip_structural_pass(self, registry):
        evidence = EvidenceSet(elements=(_checkbox("Add premium support"),), source="ocr")
        assert PatternMatcher(registry).match(evidence).detections == ()


class TestTextPass:

    def test_text_hit(self, registry):
        evidence = EvidenceSet(full_text="Processing fee applies at checkout")
        outcome = PatternMatcher(registry).match(evidence)
        assert [d.rule_id for d in outcome.detections] == ["hidden-costs"]
        assert outcome.detections[0].matched_text == ("Processing fee",)

    def test_matched_text_truncated(self, registry):
        text = "automatically " + "x" * 300 + " renew"
        outcome = PatternMatcher(registry).match(EvidenceSet(full_text=text))
        assert all(len(t) <= 120 for d in outcome.detections for t in d.matched_text)

    def test_rule_fires_once_for_many_hits(self, registry):
        text = "Call to cancel.\nEmail to cancel.\nCancellation not available online."
        outcome = PatternMatcher(registry).match(EvidenceSet(full_text=text))
        cancels = [d for d in outcome.detections if d.category == "cancellation_trap"]
        assert len(cancels) == 1
        assert len(cancels[0].matched_text) == 3

    def test_no_match_across_lines(self, registry):
        outcome = PatternMatcher(registry).match(EvidenceSet(full_text="Call us\nto cancel"))
        assert outcome.detections == ()


class TestIsolation:

    def test_failing_rule_does_not_stop_others(self):
        registry = default_registry([EXPLODING_RULE])
        evidence = EvidenceSet(
            elements=(_checkbox("Automatically renew my plan"),),
            full_text="Offer expires in 10 minutes",
        )
        outcome = PatternMatcher(registry).match(evidence)
        ids = [d.rule_id for d in outcome.detections]
        assert "hidden-auto-renewal" in ids
        assert "countdown-pressure" in ids
        assert "exploding-rule" not in ids
        assert len(outcome.diagnostics) == 1
        assert "exploding-rule" in outcome.diagnostics[0]

    def test_detections_follow_registry_order(self, registry):
        evidence = EvidenceSet(full_text="Only 3 left!\nProcessing fee\nAutomatically renews")
        ids = [d.rule_id for d in PatternMatcher(registry).match(evidence).detections]
        order = [r.id for r in registry.all_rules()]
        assert ids == sorted(ids, key=order.index)

    def test_match_is_repeatable(self, registry):
        matcher = PatternMatcher(registry)
        evidence = EvidenceSet(full_text="Limited time only")
        assert matcher.match(evidence) == matcher.match(evidence)


def _extend(evidence, elements=(), lines=()):
    text = "\n".join(filter(None, [evidence.full_text, *lines]))
    return EvidenceSet(
        elements=evidence.elements + tuple(elements),
        full_text=text,
        source=evidence.source,
    )


def _fired(registry, evidence):
    return {d.rule_id for d in PatternMatcher(registry).match(evidence).detections}


BASE = EvidenceSet(
    elements=(_checkbox("Automatically renew my plan"),),
    full_text="Call to cancel",
)

ADDITIONS = [
    {"elements": (_checkbox("Add premium support"),)},
    {"elements": (_checkbox("Send me the newsletter", checked=False),)},
    {"elements": (EvidenceElement(kind="timer", content="09:59"),)},
    {"lines": ("Processing fee applies",)},
    {"lines": ("Cancel anytime*", "Only 2 left")},
    {"lines": ("Thanks for visiting",)},
    {"elements": (_checkbox("Extended warranty"),), "lines": ("Act now",)},
]


class TestMonotonicity:
    """More evidence can add detections, never remove them."""

    @pytest.mark.parametrize("addition", ADDITIONS)
    def test_added_evidence_keeps_fired_rules(self, registry, addition):
        before = _fired(registry, BASE)
        after = _fired(registry, _extend(BASE, **addition))
        assert before == {"hidden-auto-renewal", "confusing-cancellation"}
        assert before <= after

    def test_cumulative_additions(self, registry):
        evidence = EvidenceSet()
        fired = _fired(registry, evidence)
        for addition in ADDITIONS:
            evidence = _extend(evidence, **addition)
            now = _fired(registry, evidence)
            assert fired <= now
            fired = now
        assert fired == {
            "pre-checked-addons", "hidden-costs", "misleading-language", "countdown-pressure",
        }
