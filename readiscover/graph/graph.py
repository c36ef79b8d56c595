"""
graph.py
--------
LangGraph wiring for one tutoring turn.

The turn graph is pure with respect to the session: it receives a snapshot
(history including the new answer, concept cursor, paper structure) and
returns the outcome. The session layer applies the outcome only after the
graph finished, so a failed provider call leaves the session untouched.

Flow:
START -> generate -> disclose -> progress -> END
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from langchain_core.runnables import RunnableConfig
from langgraph.graph import StateGraph, START, END
from pydantic import BaseModel, Field

from ..models import Concept, DisclosedFigure, Message, PaperStructure, Session
from .disclosure import disclose_figures
from .nodes import TutorLLM, tutor_reply
from .protocol import is_advance_signal, is_completion_signal, split_progress, strip_markers


class TurnState(BaseModel):
    session_id: str
    history: List[Message] = Field(default_factory=list)
    concepts: List[Concept] = Field(default_factory=list)
    current_concept: int = 1
    knowledge_text: str = ""
    structure: PaperStructure

    raw_reply: str = ""
    message: str = ""
    progress_percentage: Optional[int] = None
    figures: List[DisclosedFigure] = Field(default_factory=list)
    advanced: bool = False
    completed: bool = False


# --------------------------------------------------------------------------------------
# Helpers
# --------------------------------------------------------------------------------------
def _configurable(config: RunnableConfig) -> Dict[str, Any]:
    return (config or {}).get("configurable", {}) or {}


def _result_to_dict(result: Any) -> Dict[str, Any]:
    """
    Normalize a LangGraph invoke result (which may be a Pydantic model or a dict)
    into a plain dict for consistent field access.
    """
    if result is None:
        return {}
    if isinstance(result, BaseModel):
        return result.model_dump()
    if isinstance(result, dict):
        return result
    return dict(result)


# --------------------------------------------------------------------------------------
# Nodes
# --------------------------------------------------------------------------------------
def node_generate(state: TurnState, config: RunnableConfig) -> Dict[str, Any]:
    """Ask the completion provider for the tutor's reply."""
    cfg = _configurable(config)
    llm: TutorLLM = cfg["llm"]
    reply = tutor_reply(
        llm,
        cfg.get("credential", ""),
        state.history,
        state.current_concept,
        state.concepts,
        state.knowledge_text,
        state.structure,
    )
    return {"raw_reply": reply}


def node_disclose(state: TurnState) -> Dict[str, Any]:
    """Resolve figure placeholders and strip every protocol marker from the reply."""
    progress, _ = split_progress(state.raw_reply)
    return {
        "progress_percentage": progress,
        "figures": disclose_figures(state.raw_reply, state.structure.figures),
        "message": strip_markers(state.raw_reply),
    }


def node_progress(state: TurnState) -> Dict[str, Any]:
    """
    Advance the concept cursor by at most one and decide completion.
    Completion needs the cursor on the last concept plus either an advance
    signal this turn or an explicit completion phrase.
    """
    total = len(state.concepts)
    advanced = is_advance_signal(state.raw_reply)
    current = state.current_concept
    if advanced and current < total:
        current += 1
    completed = current >= total and (advanced or is_completion_signal(state.raw_reply))
    return {"advanced": advanced, "current_concept": current, "completed": completed}


# --------------------------------------------------------------------------------------
# Graph build & run
# --------------------------------------------------------------------------------------
def build_graph(checkpointer=None):
    """Build and compile the turn state machine."""
    g = StateGraph(TurnState)

    g.add_node("generate", node_generate)
    g.add_node("disclose", node_disclose)
    g.add_node("progress", node_progress)

    g.add_edge(START, "generate")
    g.add_edge("generate", "disclose")
    g.add_edge("disclose", "progress")
    g.add_edge("progress", END)

    return g.compile(checkpointer=checkpointer)


def run_turn(app_graph, session: Session, user_answer: str, llm: TutorLLM) -> TurnState:
    """
    Invoke the compiled graph for one user answer against a snapshot of `session`.
    Does not mutate the session.
    """
    initial = TurnState(
        session_id=session.id,
        history=[*session.history, Message(role="user", content=user_answer)],
        concepts=list(session.concepts),
        current_concept=session.current_concept,
        knowledge_text=session.knowledge_text,
        structure=session.structure,
    )
    raw = app_graph.invoke(
        initial,
        config={"configurable": {"llm": llm, "credential": session.credential}},
    )
    return TurnState.model_validate(_result_to_dict(raw))
