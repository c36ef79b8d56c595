from __future__ import annotations
from functools import lru_cache
from ..config import settings
from ..graph.memory import SessionRegistry
from ..graph.nodes import TutorLLM
from ..service import SessionService

@lru_cache(maxsize=1)
def get_registry() -> SessionRegistry:
    return SessionRegistry(timeout_seconds=settings.session_timeout_seconds)

@lru_cache(maxsize=1)
def get_llm() -> TutorLLM:
    return TutorLLM(settings)

@lru_cache(maxsize=1)
def get_service() -> SessionService:
    return SessionService(get_registry(), get_llm(), config=settings)
