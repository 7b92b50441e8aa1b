"""
Pattern Matcher — evaluates every rule against one EvidenceSet.

Pure function of (registry, evidence): no I/O, no DOM access, no
state carried between calls. Rules are evaluated in registry order
and independently of each other; a rule that raises is skipped and
reported as a diagnostic while the remaining rules still run.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from patternshield.errors import MatcherEvaluationError
from patternshield.logging import get_logger
from patternshield.models import Detection, EvidenceElement, EvidenceSet
from patternshield.rules import Rule, RuleRegistry

logger = get_logger("matcher")

# Only these adapters produce elements a structural matcher may inspect.
STRUCTURAL_SOURCES = ("markup", "manual")


@dataclass(frozen=True)
class MatchOutcome:
    detections: tuple[Detection, ...] = ()
    diagnostics: tuple[str, ...] = field(default_factory=tuple)


class PatternMatcher:
    """Runs a RuleRegistry over evidence sets."""

    def __init__(self, registry: RuleRegistry):
        self._registry = registry

    @property
    def registry(self) -> RuleRegistry:
        return self._registry

    def match(self, evidence: EvidenceSet) -> MatchOutcome:
        detections: list[Detection] = []
        diagnostics: list[str] = []

        for rule in self._registry.all_rules():
            try:
                detection = self._evaluate_rule(rule, evidence)
            except Exception as e:
                err = MatcherEvaluationError(rule.id, e)
                diagnostics.append(str(err))
                logger.warning(
                    "Rule skipped after evaluation error",
                    extra={
                        "rule_id": rule.id,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
                continue
            if detection is not None:
                detections.append(detection)

        return MatchOutcome(detections=tuple(detections), diagnostics=tuple(diagnostics))

    def _evaluate_rule(self, rule: Rule, evidence: EvidenceSet):
        # --- Structural pass ---
        matched_elements: list[EvidenceElement] = []
        if evidence.source in STRUCTURAL_SOURCES:
            for element in evidence.elements:
                if any(m.matches(element) for m in rule.structural_matchers):
                    matched_elements.append(element)

        # --- Textual pass ---
        matched_text: list[str] = []
        if evidence.full_text:
            for pattern in self._registry.text_patterns(rule.id):
                found = pattern.search(evidence.full_text)
                if found:
                    matched_text.append(found.group(0)[:120])  # Truncate for storage

        if not matched_elements and not matched_text:
            return None

        return Detection(
            rule_id=rule.id,
            name=rule.name,
            category=rule.category,
            severity=rule.severity,
            confidence=rule.confidence,
            description=rule.description,
            suggestion=rule.suggestion,
            matched_elements=tuple(matched_elements),
            matched_text=tuple(matched_text),
        )
