"""Session lifecycle tests: start, turns, completion, expiry and failure isolation."""

from __future__ import annotations

import threading
import time

import pytest

from readiscover.config import Settings
from readiscover.errors import (
    MainDocumentMissingError,
    SessionNotFoundError,
    UpstreamCapabilityError,
    ValidationError,
)
from readiscover.graph.graph import run_turn
from readiscover.graph.nodes import TutorLLM
from readiscover.models import AnswerRequest, StartSessionRequest
from readiscover.service import SessionService

from .conftest import ScriptedLLM, concepts_json, make_tar


def _start(service, llm, n_concepts=3, opening="Welcome! What do you know?"):
    llm.queue(concepts_json(n_concepts, ["fig:res"]), opening)
    return service.start_session(
        StartSessionRequest(arxiv_id="2401.12345", openrouter_api_key="key", user_knowledge_text="basics")
    )


def _answer(service, session_id, text="my answer"):
    return service.submit_answer(AnswerRequest(session_id=session_id, user_answer=text))


class TestStartSession:
    def test_creates_session(self, service, llm, registry, fetched):
        llm.queue(concepts_json(2), "PROGRESS: 0%\nWelcome! See {{fig:res}}. What do you know?")
        resp = service.start_session(
            StartSessionRequest(arxiv_id="https://arxiv.org/abs/2401.12345v2", openrouter_api_key="key")
        )

        assert fetched == ["2401.12345v2"]
        assert resp.paper_title == "A nested B"
        assert resp.total_concepts == 2
        assert resp.initial_message == "Welcome! See . What do you know?"

        session = registry.get(resp.session_id)
        assert session.current_concept == 1
        assert session.credential == "key"
        assert [(m.role, m.content) for m in session.history] == [("assistant", resp.initial_message)]
        assert [c.title for c in session.concepts] == ["Concept 1", "Concept 2"]

    def test_title_falls_back(self, registry, llm):
        archive = make_tar({"main.tex": b"\\documentclass{article}\\begin{document}x\\end{document}"})
        service = SessionService(registry, llm, fetch=lambda _id: archive, config=Settings(fallback_title="Research Paper"))
        resp = _start(service, llm)
        assert resp.paper_title == "Research Paper"

    @pytest.mark.parametrize(
        "req",
        [
            StartSessionRequest(arxiv_id="2401.12345"),
            StartSessionRequest(openrouter_api_key="key"),
            StartSessionRequest(arxiv_id="  ", openrouter_api_key="key"),
        ],
    )
    def test_missing_fields(self, service, fetched, req):
        with pytest.raises(ValidationError) as exc_info:
            service.start_session(req)
        assert exc_info.value.message.startswith("Missing required fields")
        assert fetched == []

    def test_invalid_arxiv_id(self, service):
        with pytest.raises(ValidationError):
            service.start_session(StartSessionRequest(arxiv_id="not an id", openrouter_api_key="key"))

    def test_fetch_failure_registers_nothing(self, service, registry):
        with pytest.raises(UpstreamCapabilityError):
            service.start_session(StartSessionRequest(arxiv_id="0000.00000", openrouter_api_key="key"))
        assert len(registry) == 0

    def test_missing_main_document_registers_nothing(self, registry, llm):
        service = SessionService(registry, llm, fetch=lambda _id: make_tar({"fig.png": b"png"}))
        with pytest.raises(MainDocumentMissingError):
            service.start_session(StartSessionRequest(arxiv_id="2401.12345", openrouter_api_key="key"))
        assert len(registry) == 0
        assert llm.calls == []

    def test_provider_failure_registers_nothing(self, service, llm, registry):
        llm.queue(concepts_json(2), UpstreamCapabilityError("OpenRouter API error: 401"))
        with pytest.raises(UpstreamCapabilityError):
            service.start_session(StartSessionRequest(arxiv_id="2401.12345", openrouter_api_key="bad"))
        assert len(registry) == 0


class TestAnswerTurns:
    def test_markers_stripped_progress_and_figure(self, service, llm, registry):
        sid = _start(service, llm).session_id
        llm.queue("PROGRESS: 40%\nLook at {{fig:res}} for evidence. And again {{fig:res}}.")

        resp = _answer(service, sid, "I think attention is key")

        assert resp.tutor_message == "Look at  for evidence. And again ."
        assert resp.progress_percentage == 40
        assert [f.label for f in resp.figures] == ["fig:res"]
        assert resp.figures[0].caption == "Results"
        assert resp.current_concept == 1
        assert resp.is_complete is False

        history = registry.get(sid).history
        assert [(m.role, m.content) for m in history[-2:]] == [
            ("user", "I think attention is key"),
            ("assistant", "Look at  for evidence. And again ."),
        ]
        assert all("{{" not in m.content and "PROGRESS" not in m.content for m in history)

    def test_same_line_progress_marker_never_reaches_history(self, service, llm, registry):
        sid = _start(service, llm).session_id
        llm.queue("PROGRESS: 60% Good thinking, look at {{fig:res}}.")

        resp = _answer(service, sid)

        assert resp.progress_percentage == 60
        assert resp.tutor_message == "Good thinking, look at ."
        assert registry.get(sid).history[-1].content == "Good thinking, look at ."

    def test_prompt_sees_prior_history_and_new_answer(self, service, llm):
        sid = _start(service, llm).session_id
        llm.queue("Tell me more.")
        _answer(service, sid, "first")
        messages = llm.calls[-1]["messages"]
        assert messages[-2:] == [
            {"role": "assistant", "content": "Welcome! What do you know?"},
            {"role": "user", "content": "first"},
        ]

    def test_progress_absent(self, service, llm):
        sid = _start(service, llm).session_id
        llm.queue("Hmm, tell me more.")
        assert _answer(service, sid).progress_percentage is None

    def test_advance_phrase_twice_moves_once(self, service, llm, registry):
        sid = _start(service, llm, n_concepts=3).session_id
        llm.queue("Let's move to the next concept. Yes, let's MOVE TO THE NEXT CONCEPT!")

        resp = _answer(service, sid)

        assert resp.current_concept == 2
        assert resp.is_complete is False
        assert registry.get(sid).current_concept == 2

    def test_completion_is_terminal(self, service, llm, registry):
        sid = _start(service, llm, n_concepts=2).session_id
        other = _start(service, llm, n_concepts=2).session_id
        assert len(registry) == 2

        llm.queue("Well done, let's move to the next concept.")
        resp = _answer(service, sid)

        assert resp.current_concept == 2
        assert resp.is_complete is True
        assert len(registry) == 1
        assert other in registry
        with pytest.raises(SessionNotFoundError):
            _answer(service, sid)

    def test_completion_phrase_on_last_concept(self, service, llm, registry):
        sid = _start(service, llm, n_concepts=1).session_id
        llm.queue("PROGRESS: 100%\nYou've completed the paper.")
        resp = _answer(service, sid)
        assert resp.is_complete is True
        assert resp.current_concept == 1
        assert sid not in registry

    def test_completion_phrase_before_last_concept_is_ignored(self, service, llm, registry):
        sid = _start(service, llm, n_concepts=3).session_id
        llm.queue("That explanation is complete and correct.")
        resp = _answer(service, sid)
        assert resp.is_complete is False
        assert sid in registry

    def test_upstream_failure_leaves_session_untouched(self, service, llm, registry, clock):
        sid = _start(service, llm).session_id
        snapshot = registry.get(sid)
        before_concept, before_history, before_activity = (
            snapshot.current_concept,
            list(snapshot.history),
            snapshot.last_activity,
        )
        clock.advance(60)
        llm.queue(UpstreamCapabilityError("OpenRouter API error: 500"))

        with pytest.raises(UpstreamCapabilityError):
            _answer(service, sid)

        session = registry.get(sid)
        assert session.current_concept == before_concept
        assert session.history == before_history
        assert session.completed is False
        assert session.last_activity > before_activity

    def test_unknown_session(self, service):
        with pytest.raises(SessionNotFoundError):
            _answer(service, "does-not-exist")

    def test_missing_answer_fields(self, service):
        with pytest.raises(ValidationError):
            service.submit_answer(AnswerRequest(session_id="x"))

    def test_run_turn_does_not_mutate_session(self, service, llm, registry):
        sid = _start(service, llm).session_id
        session = registry.get(sid)
        llm.queue("Let's move to the next concept.")
        outcome = run_turn(service.graph, session, "answer", llm)
        assert outcome.current_concept == 2
        assert outcome.advanced is True
        assert session.current_concept == 1
        assert len(session.history) == 1


class TestExpiry:
    def test_request_for_other_session_sweeps_idle_ones(self, service, llm, registry, clock):
        stale = _start(service, llm).session_id
        clock.advance(20 * 60)
        fresh = _start(service, llm).session_id
        clock.advance(11 * 60)

        llm.queue("Go on.")
        _answer(service, fresh)

        assert stale not in registry
        assert fresh in registry
        with pytest.raises(SessionNotFoundError):
            _answer(service, stale)


class SlowLLM(ScriptedLLM):
    def __init__(self, replies):
        super().__init__(replies)
        self.active = 0
        self.max_active = 0
        self._guard = threading.Lock()
        self.rendezvous = None

    def complete(self, api_key, messages, *, model, temperature):
        with self._guard:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.rendezvous is not None:
                self.rendezvous.wait(timeout=5)
            time.sleep(0.05)
            return super().complete(api_key, messages, model=model, temperature=temperature)
        finally:
            with self._guard:
                self.active -= 1


class TestConcurrency:
    def test_turns_for_one_session_serialize(self, registry, paper_archive):
        llm = SlowLLM([concepts_json(5), "Hello"])
        service = SessionService(registry, llm, fetch=lambda _id: paper_archive)
        sid = service.start_session(StartSessionRequest(arxiv_id="2401.12345", openrouter_api_key="k")).session_id
        llm.queue(*["Keep going."] * 4)

        errors = []

        def submit(i):
            try:
                _answer(service, sid, f"answer {i}")
            except Exception as e:  # collected and asserted below
                errors.append(e)

        threads = [threading.Thread(target=submit, args=(i,)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert llm.max_active == 1
        history = registry.get(sid).history
        assert len(history) == 9
        roles = [m.role for m in history[1:]]
        assert roles == ["user", "assistant"] * 4

    def test_turns_for_different_sessions_overlap(self, registry, paper_archive):
        llm = SlowLLM([concepts_json(3), "Hello", concepts_json(3), "Hello"])
        service = SessionService(registry, llm, fetch=lambda _id: paper_archive)
        ids = [
            service.start_session(StartSessionRequest(arxiv_id="2401.12345", openrouter_api_key="k")).session_id
            for _ in range(2)
        ]
        # Both provider calls must be in flight at once for the barrier to release.
        llm.rendezvous = threading.Barrier(2)
        llm.queue("Keep going.", "Keep going.")

        errors = []

        def submit(sid):
            try:
                _answer(service, sid)
            except Exception as e:  # collected and asserted below
                errors.append(e)

        threads = [threading.Thread(target=submit, args=(sid,)) for sid in ids]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert llm.max_active == 2
        for sid in ids:
            assert len(registry.get(sid).history) == 3


class TestOfflineMode:
    def test_full_session_without_provider(self, registry, paper_archive):
        service = SessionService(registry, TutorLLM(Settings(dev_no_llm=True)), fetch=lambda _id: paper_archive)
        start = service.start_session(StartSessionRequest(arxiv_id="2401.12345", openrouter_api_key="unused"))
        assert start.total_concepts == 3

        first = _answer(service, start.session_id)
        assert first.current_concept == 2
        assert first.progress_percentage == 33
        assert [f.label for f in first.figures] == ["fig:res"]
        assert first.is_complete is False

        second = _answer(service, start.session_id)
        assert second.current_concept == 3
        assert second.is_complete is True
        assert len(registry) == 0
