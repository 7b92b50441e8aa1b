"""
Error taxonomy.

Only MalformedRule and TargetUnavailable ever reach a scan's caller.
The rest are recovered where they happen and surface as diagnostics
on the ScanResult or as warning logs.
"""

from __future__ import annotations


class PatternShieldError(Exception):
    """Base class for all PatternShield errors."""


class MalformedRule(PatternShieldError):
    """A rule failed registry validation. Fatal at startup."""

    def __init__(self, rule_id: str, reason: str):
        self.rule_id = rule_id
        self.reason = reason
        super().__init__(f"Rule '{rule_id}' is malformed: {reason}")


class RuleNotFound(PatternShieldError, KeyError):
    """Lookup of an unknown rule id."""

    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(rule_id)

    def __str__(self) -> str:
        return f"No rule with id '{self.rule_id}'"


class ExtractionUnavailable(PatternShieldError):
    """An evidence adapter could not obtain its input."""


class MatcherEvaluationError(PatternShieldError):
    """A single rule's matchers raised during evaluation."""

    def __init__(self, rule_id: str, cause: Exception):
        self.rule_id = rule_id
        self.cause = cause
        super().__init__(f"Rule '{rule_id}' failed: {type(cause).__name__}: {cause}")


class ReporterSinkFailure(PatternShieldError):
    """A report/notify sink raised while publishing a scan result."""

    def __init__(self, sink: str, cause: Exception):
        self.sink = sink
        self.cause = cause
        super().__init__(f"Sink '{sink}' failed: {type(cause).__name__}: {cause}")


class TargetUnavailable(PatternShieldError):
    """The page to scan could not be loaded at all."""
