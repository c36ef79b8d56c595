"""
client.py
---------
Small HTTP client for the Readiscover API, mirroring what the browser front end
does. Answer submission is retried on transport failures and 5xx responses
(3 attempts, exponential backoff starting at 1s and capped at 4s). Retries do
not undo anything a failed attempt may have done server-side.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from .ingest.source import normalize_arxiv_id

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8787"
ANSWER_ATTEMPTS = 3


class ReadiscoverClientError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, ReadiscoverClientError):
        return exc.status_code is not None and exc.status_code >= 500
    return False


class ReadiscoverClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout: float = 300.0,
        http: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.http = http or httpx.Client(base_url=base_url, timeout=timeout)
        self._sleep = sleep

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> "ReadiscoverClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = self.http.post(path, json=payload)
        if response.is_error:
            try:
                message = response.json().get("error") or response.text
            except ValueError:
                message = response.text
            raise ReadiscoverClientError(message or f"HTTP {response.status_code}", response.status_code)
        return response.json()

    def start_session(self, arxiv: str, api_key: str, user_knowledge: str = "") -> Dict[str, Any]:
        """`arxiv` may be a bare id or an arxiv.org abs/pdf URL."""
        return self._post(
            "/session/start",
            {
                "arxiv_id": normalize_arxiv_id(arxiv),
                "openrouter_api_key": api_key,
                "user_knowledge_text": user_knowledge,
            },
        )

    def submit_answer(self, session_id: str, answer: str) -> Dict[str, Any]:
        retrying = Retrying(
            stop=stop_after_attempt(ANSWER_ATTEMPTS),
            wait=wait_exponential(multiplier=1, min=1, max=4),
            retry=retry_if_exception(_is_retryable),
            sleep=self._sleep,
            before_sleep=lambda rs: logger.warning(
                "Answer submission attempt %d failed: %s", rs.attempt_number, rs.outcome.exception()
            ),
            reraise=True,
        )
        return retrying(self._post, "/session/answer", {"session_id": session_id, "user_answer": answer})
