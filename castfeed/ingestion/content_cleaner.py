"""
Content Cleaner
===============

HTML cleaning for episode show notes. Episode descriptions are stored as
plain text; the first image in the notes is used when an entry carries no
artwork of its own. Episode web pages are reduced to an Open Graph preview.
"""

import re
import html
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup

from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator


@dataclass
class PagePreview:
    """Title and image advertised by a web page."""
    title: Optional[str] = None
    image_url: Optional[str] = None


class ContentCleaner:
    """HTML to text conversion for feed entry descriptions."""

    # HTML elements removed together with their content
    DANGEROUS_ELEMENTS = [
        "script",
        "style",
        "iframe",
        "embed",
        "object",
        "applet",
        "form",
        "noscript",
        "canvas",
    ]

    WHITESPACE_PATTERN = re.compile(r"\s+", re.MULTILINE)

    def __init__(self, parser: str = "html.parser"):
        self.parser = parser
        self.logger = get_logger_for_component("content_cleaner")

    def extract_text_only(self, html_content: Optional[str]) -> str:
        """Extract plain text from HTML, removing all markup.

        Args:
            html_content: HTML content to process

        Returns:
            Plain text with whitespace collapsed, or an empty string
        """
        if not html_content or not html_content.strip():
            return ""

        soup = BeautifulSoup(html_content, self.parser)

        for element in soup(self.DANGEROUS_ELEMENTS):
            element.decompose()

        text = soup.get_text(separator=" ", strip=True)
        text = html.unescape(text)
        return self.WHITESPACE_PATTERN.sub(" ", text).strip()

    def extract_first_image(self, html_content: Optional[str]) -> Optional[str]:
        """Return the first http(s) ``<img src>`` in the HTML, if any."""
        if not html_content or "<img" not in html_content.lower():
            return None

        soup = BeautifulSoup(html_content, self.parser)
        for img in soup.find_all("img"):
            src = URLValidator.normalize_link(img.get("src"))
            if src:
                return src
        return None

    def extract_page_preview(self, html_content: Optional[str]) -> PagePreview:
        """Read ``og:title`` and ``og:image`` from a page.

        Falls back to the Twitter card tags and then to ``<title>``.
        """
        if not html_content or not html_content.strip():
            return PagePreview()

        soup = BeautifulSoup(html_content, self.parser)

        def meta(*names: str) -> Optional[str]:
            for name in names:
                tag = soup.find("meta", attrs={"property": name}) or soup.find(
                    "meta", attrs={"name": name}
                )
                if tag and tag.get("content") and tag["content"].strip():
                    return tag["content"].strip()
            return None

        title = meta("og:title", "twitter:title")
        if not title and soup.title and soup.title.string:
            title = self.WHITESPACE_PATTERN.sub(" ", soup.title.string).strip() or None

        return PagePreview(
            title=html.unescape(title) if title else None,
            image_url=URLValidator.normalize_link(meta("og:image", "og:image:url", "twitter:image")),
        )
