"""
nodes.py
--------
The text-completion boundary.

This module defines:
- `TutorLLM`, a thin wrapper around langchain's ChatOpenAI pointed at OpenRouter
  (the caller's credential is the API key, passed per call and never stored here)
- The summarizer step that turns a PaperStructure into a list of Concepts
- The opening-message and tutor-reply steps used by the session layer

Optional offline/dev mode (`DEV_NO_LLM=true`) bypasses LLM calls with
deterministic replies that still follow the marker protocol, so the service can
be smoke-tested end to end without credentials.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

from langchain_openai import ChatOpenAI
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from pydantic import ValidationError as PydanticValidationError

from ..config import Settings, settings as default_settings
from ..errors import UpstreamCapabilityError
from ..models import Concept, Message, PaperStructure
from . import prompts

logger = logging.getLogger(__name__)

JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


# --------------------------------------------------------------------------------------
# Completion client
# --------------------------------------------------------------------------------------
class TutorLLM:
    """Synchronous chat completion: prompt messages in, reply text out."""

    def __init__(self, config: Optional[Settings] = None, offline: Optional[bool] = None) -> None:
        self.config = config or default_settings
        self.offline = self.config.dev_no_llm if offline is None else offline

    def _chat(self, api_key: str, model: str, temperature: float) -> ChatOpenAI:
        return ChatOpenAI(
            model=model,
            temperature=temperature,
            api_key=api_key,
            base_url=self.config.openrouter_base_url,
            default_headers={"HTTP-Referer": self.config.app_referer, "X-Title": self.config.app_title},
        )

    def complete(self, api_key: str, messages: List[Dict[str, str]], *, model: str, temperature: float) -> str:
        msgs: List[Any] = []
        for m in messages:
            role = (m.get("role") or "").strip().lower()
            content = m.get("content", "")
            if role == "system":
                msgs.append(SystemMessage(content=content))
            elif role == "assistant":
                msgs.append(AIMessage(content=content))
            else:
                msgs.append(HumanMessage(content=content))

        try:
            out = self._chat(api_key, model, temperature).invoke(msgs)
        except Exception as e:
            logger.exception("Completion call to %s failed", model)
            raise UpstreamCapabilityError(f"OpenRouter API error: {e}") from e

        content = out.content
        if isinstance(content, list):
            # Some providers return content parts instead of a plain string.
            content = "".join(p.get("text", "") if isinstance(p, dict) else str(p) for p in content)
        return content or ""


# --------------------------------------------------------------------------------------
# Offline stubs (used when DEV_NO_LLM is true)
# --------------------------------------------------------------------------------------
def _offline_concepts(structure: PaperStructure) -> List[Concept]:
    labels = [f.label for f in structure.figures]
    topic = structure.title or "the paper"
    names = ("Problem setting", "Core method", "Evidence and results")
    return [
        Concept(
            id=i,
            title=name,
            core_idea=f"{name} of {topic}.",
            required_background="",
            relevant_figures=labels[i - 1:i],
        )
        for i, name in enumerate(names, start=1)
    ]


def _offline_opening(concepts: List[Concept], paper_title: str) -> str:
    return (
        f"Welcome! We will work through {len(concepts)} concepts from \"{paper_title}\" (offline).\n\n"
        f"Let's begin with {concepts[0].title}. What do you already know about it?"
    )


def _offline_reply(concept: Concept, index: int, total: int) -> str:
    figure = f" Have a look at {{{{{concept.relevant_figures[0]}}}}}." if concept.relevant_figures else ""
    closing = "Let's move to the next concept." if index < total else "The session is complete."
    return f"PROGRESS: {min(100, 100 * index // total)}%\nGood thinking about {concept.title} (offline).{figure} {closing}"


# --------------------------------------------------------------------------------------
# Steps
# --------------------------------------------------------------------------------------
def parse_concepts(response: str) -> List[Concept]:
    """Pull the JSON array of concepts out of a summarizer reply."""
    m = JSON_ARRAY_RE.search(response or "")
    if not m:
        raise UpstreamCapabilityError("Failed to extract concepts from summarizer response")
    try:
        raw = json.loads(m.group(0))
        concepts = [Concept.model_validate(item) for item in raw]
    except (json.JSONDecodeError, TypeError, PydanticValidationError) as e:
        raise UpstreamCapabilityError("Summarizer returned malformed concepts") from e
    if not concepts:
        raise UpstreamCapabilityError("Summarizer returned no concepts")
    return concepts


def derive_concepts(llm: TutorLLM, api_key: str, structure: PaperStructure, user_knowledge: str) -> List[Concept]:
    if llm.offline:
        return _offline_concepts(structure)
    response = llm.complete(
        api_key,
        [
            {"role": "system", "content": prompts.summarizer_system(structure, user_knowledge)},
            {"role": "user", "content": prompts.summarizer_user(structure)},
        ],
        model=llm.config.summarizer_model,
        temperature=llm.config.summarizer_temperature,
    )
    return parse_concepts(response)


def opening_message(llm: TutorLLM, api_key: str, concepts: List[Concept], paper_title: str, user_knowledge: str) -> str:
    if llm.offline:
        return _offline_opening(concepts, paper_title)
    return llm.complete(
        api_key,
        [
            {"role": "system", "content": prompts.opening_system(concepts, paper_title, user_knowledge)},
            {"role": "user", "content": prompts.OPENING_USER},
        ],
        model=llm.config.dialogue_model,
        temperature=llm.config.dialogue_temperature,
    )


def tutor_reply(
    llm: TutorLLM,
    api_key: str,
    history: List[Message],
    current_concept: int,
    concepts: List[Concept],
    user_knowledge: str,
    structure: PaperStructure,
) -> str:
    """
    Generate the tutor's next message for the active concept.

    `history` must already end with the user's latest answer.
    """
    concept = concepts[current_concept - 1]
    if llm.offline:
        return _offline_reply(concept, current_concept, len(concepts))

    excerpt = structure.full_text[: llm.config.paper_excerpt_chars]
    system = prompts.tutor_system(concept, current_concept, len(concepts), user_knowledge, excerpt)
    messages = [{"role": "system", "content": system}]
    messages.extend({"role": m.role, "content": m.content} for m in history)
    return llm.complete(
        api_key,
        messages,
        model=llm.config.dialogue_model,
        temperature=llm.config.dialogue_temperature,
    )
