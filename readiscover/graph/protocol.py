"""
protocol.py
-----------
Conventions the tutor model is asked to follow in its replies, and the parsers
for them:

- a leading `PROGRESS: <n>%` line estimating how well the reader understands
  the current concept,
- `{{label}}` placeholders where a figure should be shown,
- plain-language phrases signalling that the dialogue moves on.

The phrase checks are substring heuristics over free text. They live here, in
two predicates, so a structured output format can replace them later without
touching the turn graph.
"""
from __future__ import annotations
import re
from typing import Optional, Tuple

ADVANCE_PHRASES = (
    "let's move to the next concept",
    "move to the next concept",
    "ready for the next concept",
)

COMPLETION_PHRASE = "complete"

PROGRESS_RE = re.compile(r"\A\s*PROGRESS:\s*(\d+)\s*%?[ \t]*(?:\r?\n)?", re.IGNORECASE)
FIGURE_MARKER_RE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


def is_advance_signal(text: str) -> bool:
    lowered = (text or "").lower()
    return any(phrase in lowered for phrase in ADVANCE_PHRASES)


def is_completion_signal(text: str) -> bool:
    return COMPLETION_PHRASE in (text or "").lower()


def parse_progress(text: str) -> Optional[int]:
    """Percentage from a leading PROGRESS marker, clamped to 0..100; None when absent."""
    return split_progress(text)[0]


def split_progress(text: str) -> Tuple[Optional[int], str]:
    """Return (percentage, text without the marker). Text after the marker on the same line is kept."""
    m = PROGRESS_RE.match(text or "")
    if not m:
        return None, text or ""
    return max(0, min(100, int(m.group(1)))), text[m.end():]


def strip_markers(text: str) -> str:
    """Remove the progress marker and every figure placeholder."""
    _, body = split_progress(text)
    return FIGURE_MARKER_RE.sub("", body).strip()
