"""
structure.py
------------
Heuristic recovery of a paper's title and figure inventory from LaTeX text.

Title extraction follows braces so that styled titles such as
`\\title{\\textbf{Deep} {Nets}}` are captured whole. Figure extraction looks
for `\\includegraphics` directives and searches a fixed window around each one
for the nearest `\\caption` and `\\label`.
"""
from __future__ import annotations

import logging
import re
import warnings
from typing import List, Optional, Tuple

from ..errors import StructureExtractionEmpty
from ..models import Figure, FigureFormat, PaperStructure, ParsedDocument
from .documents import image_documents, text_documents

logger = logging.getLogger(__name__)

TITLE_MARKER = "\\title{"
CONTEXT_WINDOW = 500

FIGURE_RE = re.compile(r"\\includegraphics(?:\[[^\]]*\])?\{([^}]+)\}")
CAPTION_RE = re.compile(r"\\caption\{([^}]+)\}")
LABEL_RE = re.compile(r"\\label\{([^}]+)\}")

_COMMAND_WITH_ARG_RE = re.compile(r"\\[a-zA-Z]+\{([^}]*)\}")
_BARE_COMMAND_RE = re.compile(r"\\(?:[a-zA-Z]+|\\)")
_WHITESPACE_RE = re.compile(r"\s+")


# --------------------------------------------------------------------------------------
# Title
# --------------------------------------------------------------------------------------
def find_matching_brace(text: str, start: int) -> int:
    """
    Return the index of the `}` closing the group opened just before `start`,
    or -1 if the group never closes.
    """
    depth = 0
    for i in range(start, len(text)):
        ch = text[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            if depth == 0:
                return i
            depth -= 1
    return -1


def clean_title(raw: str) -> str:
    title = _WHITESPACE_RE.sub(" ", raw)
    title = _COMMAND_WITH_ARG_RE.sub(r"\1", title)
    title = _BARE_COMMAND_RE.sub("", title)
    title = title.replace("{", "").replace("}", "")
    return _WHITESPACE_RE.sub(" ", title).strip()


def extract_title(documents: List[ParsedDocument]) -> str:
    """First `\\title{...}` across text documents in file order; "" if there is none."""
    for doc in text_documents(documents):
        content = doc.text_content or ""
        pos = content.find(TITLE_MARKER)
        if pos == -1:
            continue
        start = pos + len(TITLE_MARKER)
        end = find_matching_brace(content, start)
        if end == -1:
            logger.debug("Unterminated \\title in %s", doc.path)
            continue
        raw = content[start:end]
        title = clean_title(raw)
        logger.debug("Title from %s: %r -> %r", doc.path, raw, title)
        return title
    return ""


# --------------------------------------------------------------------------------------
# Figures
# --------------------------------------------------------------------------------------
def find_graphics(full_text: str) -> List[Tuple[int, str]]:
    """(offset, referenced path) for every graphics inclusion, in order of appearance."""
    return [(m.start(), m.group(1)) for m in FIGURE_RE.finditer(full_text)]


def _first_group(pattern: re.Pattern, text: str) -> Optional[str]:
    m = pattern.search(text)
    return m.group(1) if m else None


def resolve_image(reference: str, images: List[ParsedDocument]) -> Optional[ParsedDocument]:
    """
    Match a LaTeX graphics path (often without extension) to an image document:
    exact path, path prefix, `/`-anchored suffix, or plain substring. The first
    document satisfying any of these wins.
    """
    ref = reference.strip()
    if ref.startswith("./"):
        ref = ref[2:]
    if not ref:
        return None
    for doc in images:
        path = doc.path
        if path == ref or path.startswith(ref) or path.endswith("/" + ref) or ref in path:
            return doc
    return None


def extract_figures(full_text: str, documents: List[ParsedDocument]) -> List[Figure]:
    images = image_documents(documents)
    figures: List[Figure] = []
    for index, reference in find_graphics(full_text):
        window = full_text[max(0, index - CONTEXT_WINDOW):index + CONTEXT_WINDOW]
        caption = _first_group(CAPTION_RE, window)
        label = _first_group(LABEL_RE, window)

        image = resolve_image(reference, images)
        if image is None:
            logger.debug("Dropping unresolved graphics reference %r", reference)
            continue

        figures.append(
            Figure(
                label=label if label else f"fig:{len(figures)}",
                caption=caption or "",
                source_path=image.path,
                format=FigureFormat.from_extension(image.extension),
                encoded_payload=image.encoded_payload or "",
            )
        )
    return figures


# --------------------------------------------------------------------------------------
# Whole structure
# --------------------------------------------------------------------------------------
def concatenate_text(documents: List[ParsedDocument]) -> str:
    return "\n\n".join(f"% File: {d.path}\n{d.text_content or ''}" for d in text_documents(documents))


def extract_structure(documents: List[ParsedDocument], main_document: ParsedDocument) -> PaperStructure:
    full_text = concatenate_text(documents)
    structure = PaperStructure(
        title=extract_title(documents),
        main_document_path=main_document.path,
        full_text=full_text,
        figures=extract_figures(full_text, documents),
    )
    if not structure.title:
        logger.warning("No \\title found in any text document (main: %s)", main_document.path)
        warnings.warn("paper title could not be extracted", StructureExtractionEmpty, stacklevel=2)
    if not structure.figures:
        logger.info("No resolvable figures in %s", main_document.path)
    return structure
