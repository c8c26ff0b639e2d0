"""
Tests for session lookup, resume and pruning
"""
import asyncio
from uuid import uuid4

import pytest

from quiz_engine.exceptions import AttemptLimitExceeded, NotFoundError
from quiz_engine.services.quiz_session import SessionState
from quiz_engine.services.session_registry import SessionRegistry


@pytest.fixture
def memory_registry(question_bank, ledger, clock):
    return SessionRegistry(question_bank, ledger, clock=clock, tick_seconds=0.01, retention_seconds=60)


def test_start_resumes_live_session(quiz_factory, memory_registry):
    quiz, _ = quiz_factory()
    learner_id = uuid4()

    first = memory_registry.start(quiz.id, learner_id)
    second = memory_registry.start(quiz.id, learner_id)

    assert first is second
    assert memory_registry.get(first.id) is first


def test_learners_get_separate_sessions(quiz_factory, memory_registry):
    quiz, _ = quiz_factory()
    assert memory_registry.start(quiz.id, uuid4()) is not memory_registry.start(quiz.id, uuid4())


def test_completed_session_is_replaced_on_next_start(quiz_factory, memory_registry):
    quiz, _ = quiz_factory(max_attempts=2)
    learner_id = uuid4()

    first = memory_registry.start(quiz.id, learner_id)
    first.submit()
    second = memory_registry.start(quiz.id, learner_id)

    assert second is not first
    assert second.state is SessionState.IN_PROGRESS
    assert memory_registry.get(first.id) is first

    second.submit()
    with pytest.raises(AttemptLimitExceeded):
        memory_registry.start(quiz.id, learner_id)


def test_expired_resumed_session_submits_before_new_one(quiz_factory, memory_registry, ledger, clock):
    quiz, _ = quiz_factory(time_limit=1, max_attempts=2)
    learner_id = uuid4()
    first = memory_registry.start(quiz.id, learner_id)

    clock.advance(90)
    second = memory_registry.start(quiz.id, learner_id)

    assert first.state is SessionState.COMPLETED
    assert second is not first
    assert len(ledger.records) == 1


def test_completed_sessions_pruned_after_retention(quiz_factory, memory_registry, clock):
    quiz, _ = quiz_factory(max_attempts=5)
    session = memory_registry.start(quiz.id, uuid4())
    session.submit()

    clock.advance(61)
    memory_registry.start(quiz.id, uuid4())

    with pytest.raises(NotFoundError):
        memory_registry.get(session.id)


def test_abandoned_untimed_session_is_dropped(question_bank, ledger, clock, quiz_factory):
    registry = SessionRegistry(question_bank, ledger, clock=clock, max_idle_seconds=3600)
    quiz, _ = quiz_factory()
    learner_id = uuid4()
    abandoned = registry.start(quiz.id, learner_id)

    clock.advance(3601)
    registry.start(quiz.id, uuid4())

    with pytest.raises(NotFoundError):
        registry.get(abandoned.id)
    assert ledger.records == []

    fresh = registry.start(quiz.id, learner_id)
    assert fresh is not abandoned
    assert fresh.state is SessionState.IN_PROGRESS


def test_untimed_session_kept_within_idle_cutoff(question_bank, ledger, clock, quiz_factory):
    registry = SessionRegistry(question_bank, ledger, clock=clock, max_idle_seconds=3600)
    quiz, _ = quiz_factory()
    learner_id = uuid4()
    session = registry.start(quiz.id, learner_id)

    clock.advance(3500)

    assert registry.start(quiz.id, learner_id) is session


def test_unknown_session(memory_registry):
    with pytest.raises(NotFoundError):
        memory_registry.get(uuid4())


@pytest.mark.asyncio
async def test_timed_session_gets_background_timer(quiz_factory, memory_registry):
    quiz, _ = quiz_factory(time_limit=1)
    session = memory_registry.start(quiz.id, uuid4())

    timer = memory_registry.timer_for(session.id)
    assert timer is not None and timer.running

    session.submit()
    for _ in range(100):
        if not timer.running:
            break
        await asyncio.sleep(0.01)
    assert not timer.running
