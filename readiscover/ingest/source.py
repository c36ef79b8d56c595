"""
source.py
---------
arXiv source retrieval and the end-to-end ingestion pipeline:

    gzip bytes -> tar entries -> classified documents -> main document -> PaperStructure
"""
from __future__ import annotations

import gzip
import logging
import re
import time
from typing import Callable, Optional

import httpx
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from ..config import settings
from ..errors import MainDocumentMissingError, UpstreamCapabilityError, ValidationError
from ..models import PaperStructure
from .archive import extract_entries
from .documents import classify_entries, find_main_document
from .structure import extract_structure

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"

# New-style (2401.12345, optional version) and old-style (hep-th/9901001) ids.
_ID = r"(\d{4}\.\d{4,5}(?:v\d+)?|[a-z\-]+(?:\.[A-Z]{2})?/\d{7}(?:v\d+)?)"
ARXIV_ID_PATTERNS = (
    re.compile(r"arxiv\.org/abs/" + _ID, re.I),
    re.compile(r"arxiv\.org/pdf/" + _ID, re.I),
    re.compile(r"^" + _ID + r"$", re.I),
)


def normalize_arxiv_id(value: str) -> str:
    """Accept a bare arXiv id or an abs/pdf URL; return the bare id."""
    text = (value or "").strip()
    for pattern in ARXIV_ID_PATTERNS:
        m = pattern.search(text)
        if m:
            return m.group(1)
    raise ValidationError(f"Invalid arXiv URL or ID format: {value!r}")


# --------------------------------------------------------------------------------------
# Fetching
# --------------------------------------------------------------------------------------
def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500 or exc.response.status_code == 429
    return False


def fetch_source(
    arxiv_id: str,
    client: Optional[httpx.Client] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> bytes:
    """
    Download the source bundle for `arxiv_id`. Transient failures are retried;
    anything left over surfaces as UpstreamCapabilityError.
    """
    url = settings.arxiv_source_url.format(arxiv_id=arxiv_id)
    owns_client = client is None
    http = client or httpx.Client(timeout=settings.http_timeout, follow_redirects=True)
    try:
        for attempt in Retrying(
            stop=stop_after_attempt(max(1, settings.fetch_attempts)),
            wait=wait_exponential(multiplier=1, min=1, max=4),
            retry=retry_if_exception(_is_transient),
            sleep=sleep,
            reraise=True,
        ):
            with attempt:
                response = http.get(url)
                response.raise_for_status()
                return response.content
    except httpx.HTTPError as e:
        logger.error("arXiv source fetch failed for %s: %s", arxiv_id, e)
        raise UpstreamCapabilityError(
            f"Failed to download arXiv source for {arxiv_id}. "
            "The paper may not have source files available."
        ) from e
    finally:
        if owns_client:
            http.close()


# --------------------------------------------------------------------------------------
# Pipeline
# --------------------------------------------------------------------------------------
def decompress(payload: bytes) -> bytes:
    if payload[:2] == GZIP_MAGIC:
        try:
            return gzip.decompress(payload)
        except (OSError, EOFError) as e:
            raise UpstreamCapabilityError("arXiv source is not a readable gzip stream") from e
    return payload


def parse_source(payload: bytes) -> PaperStructure:
    """Run the ingestion pipeline over a (possibly gzipped) tar archive."""
    entries = extract_entries(decompress(payload))
    documents = classify_entries(entries)
    main = find_main_document(documents)
    if main is None:
        raise MainDocumentMissingError("Could not find main LaTeX file in source")
    logger.info("Main document: %s (%d files)", main.path, len(documents))
    return extract_structure(documents, main)
