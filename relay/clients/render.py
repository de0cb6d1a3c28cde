from __future__ import annotations

import markdown
import nh3

from relay.errors import RenderError


MARKDOWN_EXTENSIONS = ["fenced_code", "tables", "nl2br", "sane_lists"]


def render(raw_text: str) -> str:
    """Render completion text (markdown) to HTML that is safe to embed.

    Raw HTML in the text is passed through markdown untouched, so the result
    is always run through the sanitizer, which drops script and style
    elements with their content and any attributes outside its allow-list.
    """
    try:
        html = markdown.markdown(raw_text, extensions=MARKDOWN_EXTENSIONS)
        return nh3.clean(html)
    except Exception as exc:
        raise RenderError(f"Failed to render reply: {exc}") from exc
