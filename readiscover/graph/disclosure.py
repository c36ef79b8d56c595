"""
disclosure.py
-------------
Resolve `{{label}}` figure placeholders in a tutor reply against the paper's
figure inventory.
"""
from __future__ import annotations
from typing import Iterable, List, Optional, Set

from ..models import DisclosedFigure, Figure
from .protocol import FIGURE_MARKER_RE

LABEL_PREFIX = "fig:"


def find_figure(reference: str, figures: List[Figure]) -> Optional[Figure]:
    """
    Lookup order: exact label, `fig:`-prefixed label, inventory label containing
    the reference, case-insensitive containment. Within each rule the first
    figure in inventory order wins, so duplicate labels resolve to the earliest.
    """
    ref = reference.strip()
    if not ref:
        return None
    lowered = ref.lower()
    rules = (
        lambda f: f.label == ref,
        lambda f: f.label == LABEL_PREFIX + ref,
        lambda f: ref in f.label,
        lambda f: lowered in f.label.lower(),
    )
    for rule in rules:
        for fig in figures:
            if rule(fig):
                return fig
    return None


def referenced_labels(text: str) -> List[str]:
    return [m.group(1) for m in FIGURE_MARKER_RE.finditer(text or "")]


def disclose_figures(text: str, figures: Iterable[Figure]) -> List[DisclosedFigure]:
    """Figures referenced in `text`, each at most once, in first-reference order."""
    inventory = list(figures)
    seen: Set[str] = set()
    out: List[DisclosedFigure] = []
    for ref in referenced_labels(text):
        fig = find_figure(ref, inventory)
        if fig is None or fig.label in seen:
            continue
        seen.add(fig.label)
        out.append(
            DisclosedFigure(
                label=fig.label,
                caption=fig.caption,
                format=fig.format,
                mime_type=fig.format.mime_type,
                payload=fig.encoded_payload,
            )
        )
    return out
