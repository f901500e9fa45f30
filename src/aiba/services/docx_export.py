"""Markdown-ish text to DOCX.

Every input line becomes exactly one paragraph. ``# `` lines become Title
paragraphs, ``## `` Heading 1 and ``### `` Heading 2, with the marker removed;
anything else is a plain paragraph, blank lines included.
"""

from __future__ import annotations

from typing import Optional, Tuple
import io
import re

from docx import Document


DEFAULT_TITLE = "PRD"
DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

# (prefix, python-docx heading level); 0 is the Title style
_HEADING_PREFIXES: Tuple[Tuple[str, int], ...] = (
    ("# ", 0),
    ("## ", 1),
    ("### ", 2),
)


class ExportError(RuntimeError):
    pass


def classify_line(line: str) -> Tuple[Optional[int], str]:
    """Return ``(heading_level, text)``; level is None for body text."""
    for prefix, level in _HEADING_PREFIXES:
        if line.startswith(prefix):
            return level, line[len(prefix):]
    return None, line


def build_document(content: str):
    doc = Document()
    for line in (content or "").split("\n"):
        level, text = classify_line(line.rstrip("\r"))
        if level is None:
            doc.add_paragraph(text)
        else:
            doc.add_heading(text, level=level)
    return doc


def render_docx(content: str) -> bytes:
    try:
        doc = build_document(content)
        bio = io.BytesIO()
        doc.save(bio)
    except Exception as exc:
        raise ExportError(f"Could not build document: {exc}") from exc
    return bio.getvalue()


def export_filename(title: Optional[str]) -> str:
    name = (title or "").strip() or DEFAULT_TITLE
    # Keep the header value intact: no quotes, separators or control characters
    name = re.sub(r'[\\/"\r\n\t]+', "_", name)
    name = name.encode("latin-1", errors="replace").decode("latin-1")
    return f"{name}.docx"
