"""Chapter splitting over the spine's content documents.

Walks the spine in reading order, parses every content document into an
lxml.html tree and partitions the stream of block elements into chapters at
the navigation anchors.

Cursor model:
- ``SplitState.cursor`` is the index of the last consumed navigation entry
  (-1 before the first one).
- ``SplitState.is_open`` tells whether that entry's chapter is collecting.
- Navigation entries are consumed strictly in order; only the entry at
  ``cursor + 1`` is ever looked for.

``split_document`` takes a state and returns the next one together with the
chapters finalized inside that document, so each document is processed
independently of how the state was reached.

Boundary rules:
- An anchor entry opens when an element carrying its id is reached. Inline
  anchors (``<p><a id="x"/>...</p>``) belong to their enclosing block.
- Consecutive entries with the same target all open at that element; every
  one but the last yields an empty chapter.
- A block whose nested block holds the next anchor is descended into; its
  loose text stays with the chapter open before the split.
- A whole-document entry opens at the start of the next content document and
  closes at its end; anchors inside it do not split it.
- With no navigation at all, every content document is one chapter.
"""

from __future__ import annotations

import codecs
import re
from collections.abc import Sequence
from dataclasses import dataclass
from html import escape

from lxml import etree
from lxml.html import HtmlElement, document_fromstring, tostring

from epubsplit.logging import get_logger
from epubsplit.services.epub_archive import ENTRY_READ_ERRORS, EntryNotFoundError, EpubArchive
from epubsplit.services.epub_navigation import NavigationEntry
from epubsplit.services.epub_package import PackageDocument

logger = get_logger(__name__)

# Elements whose serialized markup makes up chapter text
BLOCK_TAGS = frozenset(
    {
        "p",
        "div",
        "section",
        "article",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "blockquote",
        "pre",
        "ul",
        "ol",
        "dl",
        "table",
        "figure",
        "aside",
        "header",
        "footer",
    }
)

# Subtrees never searched or collected
SKIP_TAGS = frozenset({"head", "script", "style", "noscript", "template"})

_XML_DECL_RE = re.compile(r"^\s*<\?xml[^>]*\?>", re.IGNORECASE)
_XML_ENCODING_RE = re.compile(rb"^\s*<\?xml[^>]*encoding\s*=\s*[\"']([A-Za-z0-9._-]+)[\"']")

# UTF-32 marks first: BOM_UTF32_LE starts with BOM_UTF16_LE
_BOMS = (
    (codecs.BOM_UTF8, "utf-8"),
    (codecs.BOM_UTF32_LE, "utf-32-le"),
    (codecs.BOM_UTF32_BE, "utf-32-be"),
    (codecs.BOM_UTF16_LE, "utf-16-le"),
    (codecs.BOM_UTF16_BE, "utf-16-be"),
)
_UTF16_PREFIXES = (
    (b"<\x00?\x00", "utf-16-le"),
    (b"\x00<\x00?", "utf-16-be"),
)


@dataclass(frozen=True)
class Chapter:
    text: str
    label: str | None = None


@dataclass(frozen=True)
class SplitState:
    cursor: int = -1
    is_open: bool = False
    parts: tuple[str, ...] = ()


class ContentParseError(ValueError):
    """Raised when a content document cannot be parsed as markup."""


def _sniff_encoding(raw: bytes) -> tuple[bytes, str]:
    """Return the bytes without any BOM and the encoding to decode them with.

    Order: byte order mark, UTF-16 ``<?`` prefix, XML declaration, UTF-8.
    """
    for bom, encoding in _BOMS:
        if raw.startswith(bom):
            return raw[len(bom) :], encoding
    for prefix, encoding in _UTF16_PREFIXES:
        if raw.startswith(prefix):
            return raw, encoding

    match = _XML_ENCODING_RE.match(raw)
    if match:
        declared = match.group(1).decode("ascii")
        # An ASCII-readable declaration cannot be telling the truth about UTF-16
        if not declared.lower().startswith(("utf-16", "utf16")):
            return raw, declared
    return raw, "utf-8"


def parse_content_document(raw: bytes) -> HtmlElement:
    """Parse XHTML/HTML bytes into an lxml.html document tree.

    Raises:
        ContentParseError: If the bytes do not form a parsable document.
    """
    raw, encoding = _sniff_encoding(raw)
    try:
        text = raw.decode(encoding, errors="replace")
    except LookupError:
        text = raw.decode("utf-8", errors="replace")

    # lxml refuses str input that still declares an encoding
    text = _XML_DECL_RE.sub("", text, count=1)
    if not text.strip():
        raise ContentParseError("Document is empty")

    try:
        return document_fromstring(text)
    except (etree.LxmlError, ValueError) as exc:
        raise ContentParseError(str(exc)) from exc


def split_document(
    root: HtmlElement,
    navigation: Sequence[NavigationEntry],
    state: SplitState,
) -> tuple[SplitState, list[Chapter]]:
    """Process one content document.

    Returns:
        The state after the document and the chapters finalized within it.
    """
    walker = _DocumentWalker(navigation, state)
    walker.begin_document()
    walker.walk(root)
    walker.end_document()
    return walker.state(), walker.chapters


def finish(navigation: Sequence[NavigationEntry], state: SplitState) -> list[Chapter]:
    """Finalize the chapter still open after the last document, if it has content."""
    walker = _DocumentWalker(navigation, state)
    walker.finalize()
    return walker.chapters


def split_spine(
    archive: EpubArchive,
    package: PackageDocument,
    navigation: Sequence[NavigationEntry],
) -> list[Chapter]:
    """Split the whole spine into chapters, in spine order."""
    state = SplitState()
    chapters: list[Chapter] = []

    for position, entry in enumerate(package.spine):
        item = package.resolve(entry.idref)
        if item is None:
            logger.warning("epub_spine_item_unresolved", idref=entry.idref, position=position)
            continue

        try:
            raw = archive.read(item.href)
        except EntryNotFoundError:
            logger.warning("epub_content_missing", idref=entry.idref, href=item.href)
            continue
        except ENTRY_READ_ERRORS as exc:
            logger.warning(
                "epub_content_read_failed", idref=entry.idref, href=item.href, error=str(exc)
            )
            continue

        try:
            root = parse_content_document(raw)
        except ContentParseError as exc:
            logger.warning(
                "epub_content_parse_failed", idref=entry.idref, href=item.href, error=str(exc)
            )
            continue

        state, emitted = split_document(root, navigation, state)
        chapters.extend(emitted)

    chapters.extend(finish(navigation, state))

    if navigation and state.cursor < len(navigation) - 1:
        logger.warning(
            "epub_navigation_unconsumed",
            consumed=state.cursor + 1,
            total=len(navigation),
        )
    return chapters


class _DocumentWalker:
    """Mutable working copy of a SplitState for one document."""

    def __init__(self, navigation: Sequence[NavigationEntry], state: SplitState):
        self.navigation = navigation
        self.fallback = not navigation
        self.cursor = state.cursor
        self.is_open = state.is_open
        self.parts = list(state.parts)
        self.chapters: list[Chapter] = []

    def state(self) -> SplitState:
        return SplitState(cursor=self.cursor, is_open=self.is_open, parts=tuple(self.parts))

    # -- navigation cursor -------------------------------------------------

    def _next_entry(self) -> NavigationEntry | None:
        idx = self.cursor + 1
        if idx < len(self.navigation):
            return self.navigation[idx]
        return None

    def _current_is_whole(self) -> bool:
        if self.fallback:
            return True
        if 0 <= self.cursor < len(self.navigation):
            return self.navigation[self.cursor].is_whole_document
        return False

    def _next_anchor(self) -> str | None:
        """Anchor id to look for, or None when no split may happen here."""
        if self.is_open and self._current_is_whole():
            return None
        nxt = self._next_entry()
        if nxt is None or nxt.is_whole_document:
            return None
        return nxt.anchor  # type: ignore[return-value]

    def _advance(self, allow_empty: bool = False) -> None:
        self.finalize(allow_empty=allow_empty)
        self.cursor += 1
        self.is_open = True

    def finalize(self, allow_empty: bool = False) -> None:
        if not self.is_open:
            return
        if self.parts or allow_empty:
            label = None if self.fallback else self.navigation[self.cursor].label
            self.chapters.append(Chapter(text="\n".join(self.parts), label=label))
        self.parts = []

    # -- document boundaries ----------------------------------------------

    def begin_document(self) -> None:
        if self.fallback:
            self.is_open = True
            return
        nxt = self._next_entry()
        if nxt is not None and nxt.is_whole_document:
            self._advance()

    def end_document(self) -> None:
        if self.is_open and self._current_is_whole():
            self.finalize(allow_empty=True)
            self.is_open = False

    # -- tree traversal ----------------------------------------------------

    def _consume_anchors(self, el: HtmlElement, matches) -> str | None:
        """Open every consecutive entry that targets el; return the next anchor.

        Entries sharing one target each get a chapter; all but the last are empty.
        """
        anchor = self._next_anchor()
        consumed = 0
        while anchor is not None and matches(el, anchor):
            self._advance(allow_empty=consumed > 0)
            consumed += 1
            anchor = self._next_anchor()
        return anchor

    def walk(self, el: HtmlElement) -> None:
        if not isinstance(el.tag, str):
            return
        tag = el.tag.lower()
        if tag in SKIP_TAGS:
            return

        if tag in BLOCK_TAGS:
            anchor = self._consume_anchors(el, _carries_anchor)
            if anchor is not None and _nested_block_holds(el, anchor):
                self._walk_container(el)
                return

            if self.is_open:
                self.parts.append(_serialize(el))
            return

        self._consume_anchors(el, _has_id)
        for child in el:
            self.walk(child)

    def _walk_container(self, el: HtmlElement) -> None:
        """Descend into a block whose nested block holds the next anchor.

        Loose text and inline children between the nested blocks are kept as
        runs in whichever chapter is open when they are reached.
        """
        run = [_escape(el.text)]
        for child in el:
            if not isinstance(child.tag, str):
                run.append(_escape(child.tail))
                continue

            anchor = self._next_anchor()
            if (
                _is_block(child)
                or child.tag.lower() in SKIP_TAGS
                or (anchor is not None and _nested_block_holds(child, anchor))
            ):
                self._flush_run(run)
                run = []
                self.walk(child)
            else:
                if anchor is not None and _carries_anchor(child, anchor):
                    self._flush_run(run)
                    run = []
                    self._consume_anchors(child, _carries_anchor)
                run.append(_serialize(child))
            run.append(_escape(child.tail))
        self._flush_run(run)

    def _flush_run(self, run: list[str]) -> None:
        fragment = "".join(run).strip()
        if fragment and self.is_open:
            self.parts.append(fragment)


def _has_id(el: HtmlElement, anchor: str) -> bool:
    return el.get("id") == anchor


def _escape(text: str | None) -> str:
    return escape(text or "", quote=False)


def _is_block(el: HtmlElement) -> bool:
    return isinstance(el.tag, str) and el.tag.lower() in BLOCK_TAGS


def _carries_anchor(el: HtmlElement, anchor: str) -> bool:
    """True if el or an inline descendant (not inside a nested block) has the id."""
    if el.get("id") == anchor:
        return True
    for child in el:
        if not isinstance(child.tag, str) or _is_block(child):
            continue
        if _carries_anchor(child, anchor):
            return True
    return False


def _nested_block_holds(el: HtmlElement, anchor: str) -> bool:
    """True if a block nested inside el contains the id anywhere in its subtree."""
    for child in el:
        if not isinstance(child.tag, str):
            continue
        if _is_block(child):
            if child.get("id") == anchor or child.xpath(".//*[@id=$anchor]", anchor=anchor):
                return True
        elif _nested_block_holds(child, anchor):
            return True
    return False


def _serialize(el: HtmlElement) -> str:
    return tostring(el, encoding="unicode", method="html", with_tail=False)
