"""
Evidence Extractor Tests

All three adapters must hand the matcher the same shape. The markup
adapter is exercised against small hand-written pages.
"""

from patternshield.evidence import (
    classify_line,
    extract_from_markup,
    extract_from_ocr_lines,
    extract_from_url,
    find_suspicious,
    is_fine_print,
)
from patternshield.models import EvidenceElement, EvidenceSet
from patternshield.rules import Rule, StructuralMatcher, default_registry


def _by_kind(evidence, kind):
    return [e for e in evidence.elements if e.kind == kind]


class TestMarkupAdapter:

    def test_empty_markup(self, registry):
        evidence = extract_from_markup("", registry)
        assert evidence.is_empty
        assert evidence.source == "markup"
        assert evidence.diagnostics == ()

    def test_checkbox_label_by_for(self, registry):
        html = (
            '<input type="checkbox" id="renew" checked>'
            '<label for="renew">Automatically renew my plan</label>'
        )
        boxes = _by_kind(extract_from_markup(html, registry), "checkbox")
        assert len(boxes) == 1
        assert boxes[0].content == "Automatically renew my plan"
        assert boxes[0].is_checked is True
        assert 'input[type="checkbox"]' in boxes[0].selectors

    def test_checkbox_label_by_ancestor(self, registry):
        html = '<label><input type="checkbox"> Add extended warranty</label>'
        boxes = _by_kind(extract_from_markup(html, registry), "checkbox")
        assert boxes[0].content == "Add extended warranty"
        assert boxes[0].is_checked is False

    def test_element_picked_by_several_selectors_appears_once(self, registry):
        html = '<div id="countdown" class="countdown timer">09:59</div>'
        evidence = extract_from_markup(html, registry)
        assert len(evidence.elements) == 1
        el = evidence.elements[0]
        assert el.kind == "timer"
        assert {'[class*="countdown"]', '[id*="countdown"]', '[class*="timer"]'} <= el.selectors

    def test_data_attributes_kept(self, registry):
        html = '<div data-recurring="true">Billed monthly</div>'
        el = extract_from_markup(html, registry).elements[0]
        assert el.attribute("data-recurring") == "true"

    def test_hidden_element_flagged_and_kept_out_of_text(self, registry):
        html = (
            '<p>Total $9.99</p>'
            '<span class="hidden-fee" style="display: none">Processing fee $2</span>'
        )
        evidence = extract_from_markup(html, registry)
        fee = evidence.elements[0]
        assert fee.is_hidden is True
        assert "Processing fee" not in evidence.full_text
        assert "Total $9.99" in evidence.full_text

    def test_scripts_not_in_text(self, registry):
        html = "<body><script>var x = 'act now';</script><p>Welcome</p></body>"
        assert extract_from_markup(html, registry).full_text == "Welcome"

    def test_blocks_become_lines(self, registry):
        html = "<p>Call us</p><p>to cancel</p>"
        assert extract_from_markup(html, registry).full_text == "Call us\nto cancel"

    def test_inline_tags_stay_on_one_line(self, registry):
        html = (
            "<p>Please <a href='/help'>call our support line</a> "
            "to cancel your subscription.</p>"
        )
        assert extract_from_markup(html, registry).full_text == (
            "Please call our support line to cancel your subscription."
        )

    def test_inline_word_fragments_not_split(self, registry):
        html = "<p>Your plan <b>auto</b>matically renews.</p>"
        assert extract_from_markup(html, registry).full_text == "Your plan automatically renews."

    def test_br_and_source_newlines(self, registry):
        html = "<div>Act\n   now<br>Only 3 left</div>"
        assert extract_from_markup(html, registry).full_text == "Act now\nOnly 3 left"

    def test_content_truncated(self, registry):
        html = f'<div class="misleading-text">{"word " * 100}</div>'
        assert len(extract_from_markup(html, registry).elements[0].content) <= 100

    def test_bad_selector_skipped_with_diagnostic(self):
        broken = Rule(
            id="broken-selector",
            name="Broken",
            category="hidden_cost",
            severity=2,
            confidence=0.5,
            description="x",
            suggestion="x",
            structural_matchers=(StructuralMatcher(selector="div[unclosed"),),
        )
        registry = default_registry([broken])
        html = '<span class="hidden-fee">Fee</span>'
        evidence = extract_from_markup(html, registry)
        assert any("div[unclosed" in d and "skipped" in d for d in evidence.diagnostics)
        assert len(evidence.elements) == 1


class TestOcrAdapter:

    def test_classify_line(self):
        assert classify_line("Click to continue") == "button"
        assert classify_line("✓ Premium support") == "checkbox"
        assert classify_line("Offer ends in 09:59") == "timer"
        assert classify_line("Fill in the form") == "form"
        assert classify_line("Popup window") == "popup"
        assert classify_line("Just words") == "text"

    def test_fine_print(self):
        assert is_fine_print("Terms apply")
        assert is_fine_print("Cancel anytime*")
        assert not is_fine_print("Plain line")

    def test_one_element_per_non_blank_line(self):
        evidence = extract_from_ocr_lines(["First line", "   ", "", "Second   line"])
        assert [e.content for e in evidence.elements] == ["First line", "Second line"]
        assert evidence.full_text == "First line\nSecond line"
        assert evidence.source == "ocr"

    def test_checkmark_line_is_checked(self):
        el = extract_from_ocr_lines(["✓ Premium protection $4.99"]).elements[0]
        assert el.kind == "checkbox"
        assert el.is_checked is True

    def test_ocr_elements_carry_no_selectors(self):
        evidence = extract_from_ocr_lines(["Select your plan"])
        assert evidence.elements[0].selectors == frozenset()

    def test_no_lines(self):
        assert extract_from_ocr_lines(None).is_empty
        assert extract_from_ocr_lines([]).is_empty

    def test_diagnostics_passed_through(self):
        evidence = extract_from_ocr_lines([], diagnostics=("ocr down",))
        assert evidence.diagnostics == ("ocr down",)


class TestUrlAdapter:

    def test_url_is_the_only_evidence(self):
        evidence = extract_from_url("  https://example.com/free-trial  ")
        assert evidence.full_text == "https://example.com/free-trial"
        assert evidence.elements == ()
        assert evidence.source == "url"


class TestFindSuspicious:

    def test_ocr_fine_print_and_checkmarks(self):
        evidence = extract_from_ocr_lines([
            "Premium plan $9.99*", "✓ Premium protection $4.99", "Welcome back",
        ])
        found = find_suspicious(evidence)
        assert [(s.content, s.risk_level) for s in found] == [
            ("Premium plan $9.99*", "high"),
            ("✓ Premium protection $4.99", "medium"),
        ]
        assert found[0].reason == "Important information hidden in fine print"

    def test_hidden_markup_element_is_critical(self, registry):
        html = '<span class="hidden-fee" style="display: none">Processing fee $2</span>'
        found = find_suspicious(extract_from_markup(html, registry))
        assert [(s.content, s.risk_level) for s in found] == [("Processing fee $2", "critical")]

    def test_plain_evidence_has_none(self):
        evidence = EvidenceSet(elements=(EvidenceElement(kind="text", content="Hello"),))
        assert find_suspicious(evidence) == ()
