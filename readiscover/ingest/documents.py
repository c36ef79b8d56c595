"""
documents.py
------------
Classify archive entries by content kind and pick the paper's entry document.
"""
from __future__ import annotations

import base64
import posixpath
from typing import Iterable, List, Optional

from ..models import ArchiveEntry, ContentClass, EntryKind, ParsedDocument

TEXT_EXTENSIONS = frozenset({"tex", "txt", "bib", "sty", "cls", "bst"})
IMAGE_EXTENSIONS = frozenset({"pdf", "png", "jpg", "jpeg", "eps", "svg"})

DOCUMENT_CLASS_MARKER = "\\documentclass"
CONVENTIONAL_MAIN_NAMES = ("main.tex", "paper.tex", "manuscript.tex")


def file_extension(path: str) -> str:
    name = posixpath.basename(path)
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[1].lower()


def classify_entry(entry: ArchiveEntry) -> ParsedDocument:
    ext = file_extension(entry.path)
    if ext in TEXT_EXTENSIONS:
        return ParsedDocument(
            path=entry.path,
            extension=ext,
            content_class=ContentClass.TEXT,
            text_content=entry.raw_content.decode("utf-8", errors="replace"),
        )
    if ext in IMAGE_EXTENSIONS:
        return ParsedDocument(
            path=entry.path,
            extension=ext,
            content_class=ContentClass.IMAGE,
            binary_payload=entry.raw_content,
            encoded_payload=base64.b64encode(entry.raw_content).decode("ascii"),
        )
    # Anything else is not needed downstream; keep the record, drop the bytes.
    return ParsedDocument(path=entry.path, extension=ext, content_class=ContentClass.BINARY)


def classify_entries(entries: Iterable[ArchiveEntry]) -> List[ParsedDocument]:
    """Classify every non-directory entry, preserving archive order."""
    return [classify_entry(e) for e in entries if e.kind != EntryKind.DIRECTORY]


def text_documents(documents: Iterable[ParsedDocument]) -> List[ParsedDocument]:
    return [d for d in documents if d.content_class == ContentClass.TEXT]


def image_documents(documents: Iterable[ParsedDocument]) -> List[ParsedDocument]:
    return [d for d in documents if d.content_class == ContentClass.IMAGE]


def find_main_document(documents: List[ParsedDocument]) -> Optional[ParsedDocument]:
    """
    Pick the LaTeX entry point:
    1. first .tex containing \\documentclass
    2. first .tex whose path ends in main.tex / paper.tex / manuscript.tex (in that priority)
    3. first .tex at all
    Returns None when the archive has no .tex files.
    """
    tex = [d for d in text_documents(documents) if d.extension == "tex"]

    for doc in tex:
        if doc.text_content and DOCUMENT_CLASS_MARKER in doc.text_content:
            return doc

    for name in CONVENTIONAL_MAIN_NAMES:
        for doc in tex:
            if doc.path.lower().endswith(name):
                return doc

    return tex[0] if tex else None
