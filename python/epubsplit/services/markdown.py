"""Markdown rendering of chapter markup via html2text."""

import html2text


def chapter_to_markdown(html: str) -> str:
    """Convert chapter markup to Markdown.

    Links are kept and lines are never wrapped so paragraph text stays on a
    single line.
    """
    if not html or not html.strip():
        return ""

    h = html2text.HTML2Text()
    h.ignore_links = False
    h.ignore_images = True
    h.body_width = 0
    return h.handle(html).strip()
