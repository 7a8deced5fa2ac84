# Document loader: raw bytes / HTML -> text. No embeddings, no vector DB, no chunking.
# Supports .txt, .md, .pdf and images (text read by the vision model).

import io
import mimetypes
import textwrap
from html.parser import HTMLParser
from pathlib import Path
from urllib.parse import urldefrag, urljoin

from pypdf import PdfReader

from app.core.config import IMAGE_EXTENSIONS, PDF_EXTENSIONS, TEXT_EXTENSIONS
from app.services.llm import extract_text_from_image


def file_kind(filename: str) -> str | None:
    """Return "text", "pdf" or "image" for a supported filename, else None."""
    ext = Path(filename).suffix.lower() if filename else ""
    if ext in TEXT_EXTENSIONS:
        return "text"
    if ext in PDF_EXTENSIONS:
        return "pdf"
    if ext in IMAGE_EXTENSIONS:
        return "image"
    return None


def read_pdf_pages(raw: bytes) -> list[str]:
    """One string per PDF page (empty string for pages without a text layer)."""
    reader = PdfReader(io.BytesIO(raw))
    return [page.extract_text() or "" for page in reader.pages]


def read_image(raw: bytes, filename: str) -> str:
    mime_type = mimetypes.guess_type(filename)[0] or "image/png"
    return extract_text_from_image(raw, mime_type)


class _HTMLTextExtractor(HTMLParser):
    """Collects visible text and href targets from an HTML page."""

    _SKIP = {"script", "style", "noscript", "head", "svg", "template"}
    _BLOCK = {"p", "div", "br", "li", "ul", "ol", "tr", "table", "section", "article",
              "header", "footer", "h1", "h2", "h3", "h4", "h5", "h6", "pre", "blockquote"}

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []
        self.links: list[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag in self._SKIP:
            self._skip_depth += 1
        elif tag in self._BLOCK:
            self.parts.append("\n")
        if tag == "a":
            href = dict(attrs).get("href")
            if href:
                self.links.append(href)

    def handle_endtag(self, tag):
        if tag in self._SKIP and self._skip_depth:
            self._skip_depth -= 1
        elif tag in self._BLOCK:
            self.parts.append("\n")

    def handle_data(self, data):
        if not self._skip_depth and data.strip():
            self.parts.append(" ".join(data.split()))


def html_to_text(html: str, base_url: str = "", wordwrap: int = 130) -> tuple[str, list[str]]:
    """
    Return (visible text, absolute links) for an HTML document. Text lines are
    wrapped at `wordwrap` characters; links are resolved against base_url and
    stripped of fragments.
    """
    parser = _HTMLTextExtractor()
    parser.feed(html)
    parser.close()
    text_lines: list[str] = []
    for block in "".join(
        p if p == "\n" else f" {p}" for p in parser.parts
    ).split("\n"):
        block = block.strip()
        if block:
            text_lines.extend(textwrap.wrap(block, wordwrap, break_long_words=False))
    links = [urldefrag(urljoin(base_url, href))[0] for href in parser.links]
    return "\n".join(text_lines), links
