"""
Page Evidence Extractor — three input adapters, one output shape.

  extract_from_markup     — a page's HTML (BeautifulSoup)
  extract_from_ocr_lines  — text lines pulled out of a screenshot
  extract_from_url        — a bare URL, nothing else

find_suspicious lists the hidden, fine-print and pre-selected elements
of any EvidenceSet.

Adapters never raise for bad input. Problems are recorded on
EvidenceSet.diagnostics and the scan proceeds with whatever evidence
was recovered (possibly none).
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

from bs4 import BeautifulSoup, NavigableString, Tag

from patternshield.logging import get_logger
from patternshield.models import EvidenceElement, EvidenceSet, SuspiciousElement, clip
from patternshield.rules import RuleRegistry

logger = get_logger("evidence")

_HIDDEN_STYLE = re.compile(r"display\s*:\s*none|visibility\s*:\s*hidden", re.IGNORECASE)
_CLOCK = re.compile(r"\d{2}:\d{2}")
_POPUP_HINTS = ("modal", "popup", "dialog", "overlay")
_TIMER_HINTS = ("countdown", "timer")
_FINE_PRINT_MARKERS = ("fine print", "terms apply", "additional charges", "*")
_WHITESPACE = re.compile(r"\s+")
_BLOCK_TAGS = [
    "address", "article", "aside", "blockquote", "dd", "details", "dialog",
    "div", "dl", "dt", "fieldset", "figcaption", "figure", "footer", "form",
    "h1", "h2", "h3", "h4", "h5", "h6", "header", "hr", "li", "main", "nav",
    "ol", "p", "pre", "section", "summary", "table", "tr", "td", "th", "ul",
]


# ============================================================
# LIVE-DOM ADAPTER
# ============================================================

def extract_from_markup(html: str, registry: RuleRegistry) -> EvidenceSet:
    """
    Collect every element any rule's selector picks, plus the page's
    flattened visible text.

    An element picked by several selectors appears once, carrying all
    of them. A selector the parser rejects is skipped and reported.
    """
    if not html or not html.strip():
        return EvidenceSet(source="markup")

    try:
        soup = BeautifulSoup(html, "html.parser")
    except Exception as e:
        logger.warning(
            "Markup could not be parsed",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        return EvidenceSet(
            source="markup",
            diagnostics=(f"ExtractionUnavailable: {type(e).__name__}: {e}",),
        )

    diagnostics: list[str] = []
    picked: dict[int, tuple[Tag, set[str]]] = {}

    for selector in registry.selectors():
        try:
            found = soup.select(selector)
        except Exception as e:
            diagnostics.append(f"selector '{selector}' skipped: {type(e).__name__}: {e}")
            logger.warning(
                "Selector rejected",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            continue
        for tag in found:
            entry = picked.setdefault(id(tag), (tag, set()))
            entry[1].add(selector)

    elements = tuple(
        _element_from_tag(soup, tag, selectors) for tag, selectors in picked.values()
    )

    return EvidenceSet(
        elements=elements,
        full_text=_visible_text(soup),
        source="markup",
        diagnostics=tuple(diagnostics),
    )


def _element_from_tag(soup: BeautifulSoup, tag: Tag, selectors: set[str]) -> EvidenceElement:
    kind = _classify_tag(tag)
    if kind == "checkbox":
        content = _checkbox_label(soup, tag)
        is_checked = tag.has_attr("checked")
    else:
        content = tag.get_text(" ", strip=True)
        is_checked = False

    attributes = tuple(
        (name, " ".join(value) if isinstance(value, list) else str(value))
        for name, value in tag.attrs.items()
    )

    return EvidenceElement(
        kind=kind,
        content=clip(content),
        is_checked=is_checked,
        is_hidden=_is_hidden(tag),
        selectors=frozenset(selectors),
        attributes=attributes,
    )


def _classify_tag(tag: Tag) -> str:
    name = tag.name.lower()
    input_type = str(tag.get("type", "")).lower()
    marker = " ".join([
        " ".join(tag.get("class", [])),
        str(tag.get("id", "")),
    ]).lower()

    if name == "input" and input_type == "checkbox":
        return "checkbox"
    if name == "button" or (name == "input" and input_type in ("submit", "button")):
        return "button"
    if name == "form":
        return "form"
    if tag.has_attr("data-countdown") or any(h in marker for h in _TIMER_HINTS):
        return "timer"
    if tag.get("role") == "dialog" or any(h in marker for h in _POPUP_HINTS):
        return "popup"
    return "text"


def _checkbox_label(soup: BeautifulSoup, tag: Tag) -> str:
    """Resolve a checkbox's label via `for=` first, then an ancestor <label>."""
    box_id = tag.get("id")
    if box_id:
        label = soup.find("label", attrs={"for": box_id})
        if label is not None:
            return label.get_text(" ", strip=True)

    parent = tag.find_parent("label")
    if parent is not None:
        return parent.get_text(" ", strip=True)

    return str(tag.get("aria-label") or tag.get("name") or "")


def _is_hidden(tag: Tag) -> bool:
    if tag.has_attr("hidden") or str(tag.get("type", "")).lower() == "hidden":
        return True
    if str(tag.get("aria-hidden", "")).lower() == "true":
        return True
    return bool(_HIDDEN_STYLE.search(str(tag.get("style", ""))))


def _visible_text(soup: BeautifulSoup) -> str:
    """
    Rendered-text approximation: one line per block-level element or
    <br>, inline runs (<a>, <b>, <span>...) kept on their block's line.
    Scripts, styles and hidden nodes are removed first.
    """
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    for tag in soup.find_all(_is_hidden):
        tag.decompose()

    root = soup.body or soup

    # Source whitespace never breaks a line; only markup structure does.
    for node in list(root.find_all(string=True)):
        if type(node) is NavigableString:
            node.replace_with(_WHITESPACE.sub(" ", node))

    for br in root.find_all("br"):
        br.replace_with("\n")
    for tag in root.find_all(_BLOCK_TAGS):
        tag.insert_before("\n")
        tag.insert_after("\n")

    lines = (" ".join(line.split()) for line in root.get_text().split("\n"))
    return "\n".join(line for line in lines if line)


# ============================================================
# OCR-TEXT ADAPTER
# ============================================================

def classify_line(line: str) -> str:
    """Keyword sniffing for a single OCR line."""
    lower = line.lower()
    if "button" in lower or "click" in lower or "continue" in lower:
        return "button"
    if "check" in lower or "select" in lower or "✓" in line:
        return "checkbox"
    if _CLOCK.search(line):
        return "timer"
    if "form" in lower or "input" in lower:
        return "form"
    if "popup" in lower or "modal" in lower:
        return "popup"
    return "text"


def is_fine_print(line: str) -> bool:
    lower = line.lower()
    return any(marker in lower for marker in _FINE_PRINT_MARKERS)


def extract_from_ocr_lines(
    lines: Optional[Iterable[str]],
    diagnostics: tuple[str, ...] = (),
) -> EvidenceSet:
    """
    One element per non-blank line. Elements carry no selectors, so
    only text matchers apply; full_text keeps the line breaks so each
    regex is tested against one line at a time.
    """
    cleaned = [" ".join(str(line).split()) for line in (lines or [])]
    cleaned = [line for line in cleaned if line]

    elements = []
    for line in cleaned:
        kind = classify_line(line)
        elements.append(EvidenceElement(
            kind=kind,
            content=clip(line),
            is_checked=kind == "checkbox" and "✓" in line,
            is_hidden=is_fine_print(line),
        ))

    return EvidenceSet(
        elements=tuple(elements),
        full_text="\n".join(cleaned),
        source="ocr",
        diagnostics=diagnostics,
    )


# ============================================================
# URL ADAPTER
# ============================================================

def extract_from_url(url: str) -> EvidenceSet:
    """No page contents: the URL itself is the only evidence."""
    return EvidenceSet(full_text=(url or "").strip(), source="url")


# ============================================================
# SUSPICIOUS ELEMENTS
# ============================================================

FINE_PRINT_REASON = "Important information hidden in fine print"
HIDDEN_REASON = "Content hidden from view"
PRE_CHECKED_REASON = "Option selected before the user acted"


def find_suspicious(evidence: EvidenceSet) -> tuple[SuspiciousElement, ...]:
    """
    Hidden or fine-print elements and pre-selected options, in
    evidence order, whether or not a rule fired on them.
    """
    found = []
    for element in evidence.elements:
        if element.is_hidden:
            if evidence.source == "ocr":
                found.append(SuspiciousElement(element.content, FINE_PRINT_REASON, "high"))
            else:
                found.append(SuspiciousElement(element.content, HIDDEN_REASON, "critical"))
        if element.is_checked:
            found.append(SuspiciousElement(element.content, PRE_CHECKED_REASON, "medium"))
    return tuple(found)
