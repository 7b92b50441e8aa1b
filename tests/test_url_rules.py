"""
Tests for the URL heuristic table.
"""

import pytest

from patternshield.errors import MalformedRule
from patternshield.evidence import extract_from_url
from patternshield.url_rules import (
    DEFAULT_URL_RULES,
    URL_RULE_CONFIDENCE,
    UrlRule,
    UrlRuleTable,
    domain_of,
)


def _ids(url, table=None):
    table = table or UrlRuleTable()
    return [d.rule_id for d in table.evaluate(extract_from_url(url))]


class TestDomainOf:

    def test_with_scheme(self):
        assert domain_of("https://WWW.Example.com/path?q=1") == "www.example.com"

    def test_without_scheme(self):
        assert domain_of("example.com/free-trial") == "example.com"

    def test_empty(self):
        assert domain_of("") == ""


class TestEvaluate:

    def test_free_trial(self):
        assert _ids("https://example.com/free-trial") == ["url-free-trial"]

    def test_path_match_is_case_insensitive(self):
        assert _ids("https://example.com/LIMITED-TIME/deal") == ["url-limited-time"]

    def test_domain_and_path_both_required(self):
        assert "url-news-subscription" in _ids("https://www.nytimes.com/subscribe")
        assert "url-news-subscription" not in _ids("https://example.com/subscribe")

    def test_domain_only_rule(self):
        assert _ids("https://www.facebook.com/") == ["url-social-platform"]

    def test_detection_fields(self):
        [d] = UrlRuleTable().evaluate(extract_from_url("https://example.com/act-now"))
        assert d.name == "Pressure tactic"
        assert d.description == "Pressure tactic - immediate action required"
        assert d.severity == 2
        assert d.confidence == URL_RULE_CONFIDENCE
        assert d.matched_text == ("act-now",)

    def test_empty_url(self):
        assert _ids("") == []

    def test_clean_url(self):
        assert _ids("https://example.org/about") == []


class TestTableValidation:

    def test_default_table_valid(self):
        assert len(UrlRuleTable()) == len(DEFAULT_URL_RULES)

    def test_duplicate_id(self):
        rule = UrlRule("x", "X", "hidden_cost", 2, path_keywords=("fee",))
        with pytest.raises(MalformedRule):
            UrlRuleTable([rule, rule])

    def test_unknown_category(self):
        with pytest.raises(MalformedRule):
            UrlRuleTable([UrlRule("x", "X", "spam", 2, path_keywords=("fee",))])

    def test_weight_out_of_range(self):
        with pytest.raises(MalformedRule):
            UrlRuleTable([UrlRule("x", "X", "hidden_cost", 9, path_keywords=("fee",))])

    def test_no_keywords(self):
        with pytest.raises(MalformedRule):
            UrlRuleTable([UrlRule("x", "X", "hidden_cost", 2)])
