"""Shared fixtures: in-memory tar archives, a scripted completion provider and a service."""

from __future__ import annotations

import gzip
import io
import json
import tarfile
from typing import Dict, Iterable, List

import pytest

from readiscover.config import Settings
from readiscover.errors import UpstreamCapabilityError
from readiscover.graph.memory import SessionRegistry
from readiscover.graph.nodes import TutorLLM
from readiscover.service import SessionService

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(64))

MAIN_TEX = r"""\documentclass{article}
\title{A {nested} B}
\begin{document}
\maketitle
\section{Results}
\begin{figure}
  \centering
  \includegraphics[width=0.8\linewidth]{plots/fig1}
  \caption{Results}
  \label{fig:res}
\end{figure}
\end{document}
"""


def make_tar(files: Dict[str, bytes], dirs: Iterable[str] = ()) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w", format=tarfile.USTAR_FORMAT) as tar:
        for d in dirs:
            info = tarfile.TarInfo(d)
            info.type = tarfile.DIRTYPE
            tar.addfile(info)
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


class FakeClock:
    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedLLM(TutorLLM):
    """Returns queued replies in order and records every prompt it was given."""

    def __init__(self, replies: List[str] | None = None) -> None:
        super().__init__(Settings(dev_no_llm=False), offline=False)
        self.replies = list(replies or [])
        self.calls: List[dict] = []

    def queue(self, *replies: str) -> None:
        self.replies.extend(replies)

    def complete(self, api_key, messages, *, model, temperature):
        self.calls.append({"api_key": api_key, "messages": messages, "model": model})
        if not self.replies:
            raise AssertionError("ScriptedLLM ran out of replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def concepts_json(n: int, figures: List[str] | None = None) -> str:
    items = [
        {
            "id": i,
            "title": f"Concept {i}",
            "core_idea": f"Idea {i}",
            "required_background": "linear algebra",
            "relevant_figures": figures or [],
        }
        for i in range(1, n + 1)
    ]
    return "Here are the concepts:\n" + json.dumps(items)


@pytest.fixture
def paper_files() -> Dict[str, bytes]:
    return {
        "main.tex": MAIN_TEX.encode(),
        "plots/fig1.png": PNG_BYTES,
        "refs.bib": b"@article{x, title = {Something}}",
        "anc/data.bin": b"\x00\x01\x02",
    }


@pytest.fixture
def paper_archive(paper_files) -> bytes:
    return gzip.compress(make_tar(paper_files, dirs=["plots", "anc"]))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock) -> SessionRegistry:
    return SessionRegistry(timeout_seconds=30 * 60, clock=clock)


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def fetched() -> List[str]:
    return []


@pytest.fixture
def service(registry, llm, paper_archive, fetched) -> SessionService:
    def fetch(arxiv_id: str) -> bytes:
        fetched.append(arxiv_id)
        if arxiv_id == "0000.00000":
            raise UpstreamCapabilityError("Failed to download arXiv source for 0000.00000.")
        return paper_archive

    return SessionService(registry, llm, fetch=fetch, config=Settings(dev_no_llm=False))
