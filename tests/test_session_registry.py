"""Tests for the server-side session registry."""

import asyncio

import pytest

from quizflow.services.session_machine import SessionStatus
from quizflow.services.session_registry import SessionRegistry
from quizflow.utils.storage import session_key


@pytest.fixture
def registry(storage, quiz_source, backend):
    return SessionRegistry(storage=storage, quiz_source=quiz_source, submission_backend=backend)


def started(registry, client_id, slug="capitals"):
    machine = registry.resume_or_create(slug, client_id)
    assert asyncio.run(machine.fetch(slug, "mcq"))
    return machine


class TestResumeOrCreate:

    def test_resumes_own_session(self, registry):
        first = started(registry, "alice")
        first.answer(1, "A")

        again = registry.resume_or_create("capitals", "alice")

        assert again is first
        assert again.answered_count == 1

    def test_clients_do_not_share_sessions(self, registry, storage):
        alice = started(registry, "alice")
        bob = started(registry, "bob")

        assert alice is not bob
        assert storage.get(session_key("capitals", "alice")) == alice.session_id
        assert storage.get(session_key("capitals", "bob")) == bob.session_id
        assert registry.resume_or_create("capitals", "bob") is bob

    def test_handle_for_other_quiz_is_not_reused(self, registry, storage):
        alice = started(registry, "alice")
        storage.set(session_key("rivers", "alice"), alice.session_id, 60)

        assert registry.resume_or_create("rivers", "alice") is not alice

    def test_stale_handle_creates_new_session(self, registry, storage):
        storage.set(session_key("capitals", "alice"), "gone", 60)

        machine = registry.resume_or_create("capitals", "alice")

        assert machine.session_id != "gone"
        assert machine.client_id == "alice"


class TestEviction:

    def test_discard_forgets_and_resets(self, registry, storage):
        machine = started(registry, "alice")

        registry.discard(machine.session_id)

        assert len(registry) == 0
        assert registry.get(machine.session_id) is None
        assert machine.status == SessionStatus.IDLE
        assert storage.get(session_key("capitals", "alice")) is None

    def test_discard_unknown_session(self, registry):
        registry.discard("nope")
        assert len(registry) == 0

    def test_idle_sessions_expire(self, storage, quiz_source, backend):
        registry = SessionRegistry(storage=storage, quiz_source=quiz_source, submission_backend=backend, ttl=0)
        first = registry.create("alice")

        registry.create("bob")

        assert len(registry) == 1
        assert registry.get(first.session_id) is None

    def test_get_keeps_session_alive(self, registry):
        machine = registry.create("alice")
        assert registry.get(machine.session_id) is machine
        assert len(registry) == 1
