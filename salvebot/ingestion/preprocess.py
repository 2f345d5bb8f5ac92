"""Text extraction and per-media-type cleanup for uploaded files."""

import io
import re

import pypdf

PDF = "application/pdf"
MARKDOWN = "text/markdown"
PLAIN_TEXT = "text/plain"

_MD_HEADING = re.compile(r"^#{1,6}\s*", re.MULTILINE)
_MD_BOLD = re.compile(r"\*\*(.+?)\*\*")
_MD_ITALIC = re.compile(r"\*(.+?)\*")
_MD_LINK = re.compile(r"\[(.+?)\]\(.+?\)")
_WHITESPACE_RUN = re.compile(r"\s+")
_HEADER_LIKE = re.compile(r"^[A-Z][^.!?]*$")


def extract_text(data: bytes, media_type: str) -> str:
    """Extract raw text from uploaded bytes.

    PDFs are read page by page with pypdf; pages without a text layer are
    skipped. Everything else is decoded as UTF-8 with replacement.
    """
    if media_type == PDF:
        reader = pypdf.PdfReader(io.BytesIO(data))
        parts: list[str] = []
        for page in reader.pages:
            page_text = (page.extract_text() or "").strip()
            if page_text:
                parts.append(page_text)
        return "\n\n".join(parts)

    return data.decode("utf-8", errors="replace")


def clean_text(content: str, media_type: str) -> str:
    """Normalize extracted text before chunking.

    - PDF: collapse all whitespace runs (extraction artifacts) to single spaces
    - Markdown: drop heading markers, bold/italic markers, keep link text only
    - Anything else: only line endings are normalized
    """
    content = content.replace("\r\n", "\n").replace("\r", "\n")

    if media_type == PDF:
        return _WHITESPACE_RUN.sub(" ", content).strip()

    if media_type == MARKDOWN:
        cleaned = _MD_HEADING.sub("", content)
        cleaned = _MD_BOLD.sub(r"\1", cleaned)
        cleaned = _MD_ITALIC.sub(r"\1", cleaned)
        return _MD_LINK.sub(r"\1", cleaned)

    return content


def extract_section(chunk_text: str) -> str | None:
    """Guess a section header from the first lines of a chunk.

    A short line that ends with ':' or is a capitalized phrase without
    sentence punctuation is treated as a header.
    """
    for line in chunk_text.split("\n")[:3]:
        stripped = line.strip()
        if 0 < len(stripped) < 100 and (stripped.endswith(":") or _HEADER_LIKE.match(stripped)):
            return stripped
    return None


def approximate_page(ordinal: int) -> int:
    """Rough 1-based page estimate assuming five chunks per page."""
    return ordinal // 5 + 1
