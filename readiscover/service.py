"""
service.py
----------
Session lifecycle: start a tutoring session from an arXiv id and run answer turns.

Concurrency: the registry is shared; each session is additionally locked for
the whole of a turn so two answers for the same session run one after the
other. The registry lock itself is never held across a provider call.
"""
from __future__ import annotations

import logging
import uuid
from typing import Callable, Optional

from .config import Settings, settings as default_settings
from .errors import SessionNotFoundError, ValidationError
from .graph.graph import build_graph, run_turn
from .graph.memory import SessionRegistry
from .graph.nodes import TutorLLM, derive_concepts, opening_message
from .graph.protocol import strip_markers
from .ingest.source import fetch_source, normalize_arxiv_id, parse_source
from .models import (
    AnswerRequest,
    AnswerResponse,
    Message,
    Session,
    StartSessionRequest,
    StartSessionResponse,
)

logger = logging.getLogger(__name__)

SourceFetcher = Callable[[str], bytes]


def _missing(*pairs) -> list[str]:
    return [name for name, value in pairs if not (value and str(value).strip())]


class SessionService:
    def __init__(
        self,
        registry: SessionRegistry,
        llm: TutorLLM,
        fetch: SourceFetcher = fetch_source,
        config: Optional[Settings] = None,
    ) -> None:
        self.registry = registry
        self.llm = llm
        self.fetch = fetch
        self.config = config or default_settings
        self.graph = build_graph()

    # ----------------------------------------------------------------------------------
    # Start
    # ----------------------------------------------------------------------------------
    def start_session(self, req: StartSessionRequest) -> StartSessionResponse:
        missing = _missing(("arxiv_id", req.arxiv_id), ("openrouter_api_key", req.openrouter_api_key))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        self.registry.sweep()

        arxiv_id = normalize_arxiv_id(req.arxiv_id)
        knowledge = req.user_knowledge_text or ""
        session_id = str(uuid.uuid4())

        logger.info("[%s] Fetching arXiv source for %s", session_id, arxiv_id)
        payload = self.fetch(arxiv_id)

        logger.info("[%s] Extracting LaTeX structure", session_id)
        structure = parse_source(payload)

        logger.info("[%s] Summarizing paper into concepts", session_id)
        concepts = derive_concepts(self.llm, req.openrouter_api_key, structure, knowledge)

        title = structure.title or self.config.fallback_title
        logger.info("[%s] Getting initial dialogue message", session_id)
        initial = strip_markers(opening_message(self.llm, req.openrouter_api_key, concepts, title, knowledge))

        session = Session(
            id=session_id,
            credential=req.openrouter_api_key,
            arxiv_id=arxiv_id,
            knowledge_text=knowledge,
            structure=structure,
            concepts=concepts,
            history=[Message(role="assistant", content=initial)],
        )
        self.registry.add(session)
        logger.info("[%s] Session started successfully with %d concepts", session_id, len(concepts))

        return StartSessionResponse(
            session_id=session_id,
            paper_title=title,
            total_concepts=len(concepts),
            initial_message=initial,
        )

    # ----------------------------------------------------------------------------------
    # Answer
    # ----------------------------------------------------------------------------------
    def submit_answer(self, req: AnswerRequest) -> AnswerResponse:
        missing = _missing(("session_id", req.session_id), ("user_answer", req.user_answer))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        self.registry.sweep()
        # Lookup refreshes last_activity even if the turn later fails.
        session = self.registry.get(req.session_id)

        with session.lock:
            # A concurrent turn may have finished the session while we waited.
            if session.completed or session.id not in self.registry:
                raise SessionNotFoundError(session.id)

            logger.info("[%s] Processing answer for concept %d", session.id, session.current_concept)
            outcome = run_turn(self.graph, session, req.user_answer, self.llm)

            session.history.append(Message(role="user", content=req.user_answer))
            session.history.append(Message(role="assistant", content=outcome.message))
            if outcome.current_concept != session.current_concept:
                logger.info("[%s] Moving to concept %d", session.id, outcome.current_concept)
            session.current_concept = outcome.current_concept
            session.touch(self.registry.now())

            if outcome.completed:
                session.completed = True
                self.registry.remove(session.id)
                logger.info("[%s] Session complete, cleaning up", session.id)

        return AnswerResponse(
            tutor_message=outcome.message,
            current_concept=outcome.current_concept,
            is_complete=outcome.completed,
            figures=outcome.figures,
            progress_percentage=outcome.progress_percentage,
        )
