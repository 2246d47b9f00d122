"""Plain-text rendering of chapter markup.

Produces the ``text`` output format from a chapter's collected markup:

Canonicalization Rules:
1. Walk text nodes in document order
2. Normalize:
   - Unicode NFC normalization
   - All whitespace → space
   - Collapse consecutive spaces
3. Block boundaries insert newline:
   - p, li, ul, ol, h1..h6, blockquote, pre, div, section, article,
     header, footer, nav, aside
4. <br> inserts newline
5. Trim lines; drop blank lines so each block is exactly one line
6. Exclude:
   - script, style elements
   - Nodes with hidden or aria-hidden="true" attributes
"""

import re
import unicodedata

from lxml import etree
from lxml.html import HtmlElement, document_fromstring

# Block-level elements that introduce line breaks
BLOCK_ELEMENTS = frozenset(
    {
        "p",
        "li",
        "ul",
        "ol",
        "dl",
        "dt",
        "dd",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "blockquote",
        "pre",
        "div",
        "section",
        "article",
        "header",
        "footer",
        "nav",
        "aside",
        "figure",
        "figcaption",
        "table",
        "tr",
        "td",
        "th",
    }
)

# Elements to skip entirely (including their content)
SKIP_ELEMENTS = frozenset({"script", "style", "noscript", "template"})

# Whitespace regex (all Unicode whitespace including nbsp)
WHITESPACE_RE = re.compile(r"[\s\u00a0]+")


def chapter_to_text(html: str) -> str:
    """Render chapter markup as canonical plain text.

    Args:
        html: Serialized chapter markup.

    Returns:
        Plain text with one line per block.

    Raises:
        ValueError: If the markup cannot be parsed.
    """
    if not html or not html.strip():
        return ""

    try:
        doc = document_fromstring(html)
    except (etree.LxmlError, ValueError) as e:
        raise ValueError(f"Failed to parse HTML: {e}") from e

    body = doc.body
    if body is None:
        return ""

    parts: list[str] = []
    _walk_element(body, parts)

    text = "".join(parts)
    text = unicodedata.normalize("NFC", text)

    lines = (line.strip() for line in text.split("\n"))
    return "\n".join(line for line in lines if line)


def _walk_element(element: HtmlElement, parts: list[str]) -> None:
    """Recursively walk element tree and extract text."""
    tag = element.tag.lower() if isinstance(element.tag, str) else ""

    if _is_hidden(element) or tag in SKIP_ELEMENTS:
        if element.tail:
            parts.append(_normalize_text(element.tail))
        return

    is_block = tag in BLOCK_ELEMENTS

    if tag == "br":
        parts.append("\n")
        if element.tail:
            parts.append(_normalize_text(element.tail))
        return

    # Add newline before block elements (if we have content already)
    if is_block and parts and parts[-1] not in ("\n", ""):
        parts.append("\n")

    if element.text:
        parts.append(_normalize_text(element.text))

    for child in element:
        if isinstance(child, HtmlElement):
            _walk_element(child, parts)
        elif child.tail:
            # comments and processing instructions keep their tail text
            parts.append(_normalize_text(child.tail))

    if is_block and parts and parts[-1] not in ("\n", ""):
        parts.append("\n")

    if element.tail:
        parts.append(_normalize_text(element.tail))


def _normalize_text(text: str) -> str:
    """Map all Unicode whitespace to single spaces."""
    if not text:
        return ""
    return WHITESPACE_RE.sub(" ", text)


def _is_hidden(element: HtmlElement) -> bool:
    """Check if element is hidden (hidden attr or aria-hidden="true")."""
    if element.get("hidden") is not None:
        return True
    return element.get("aria-hidden", "").lower() == "true"
