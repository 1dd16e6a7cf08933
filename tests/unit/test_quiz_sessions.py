"""
Unit Tests for the Quiz Session Registry

Tests ownership checks and idle-session eviction.
"""

import pytest
import sys
import os
from datetime import timedelta

project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "adaptive_bloom_tutor", "src"))
sys.path.insert(0, os.path.join(project_root, "backend"))

from fastapi import HTTPException

from lib.quiz_sessions import QuizSessionRegistry
from adaptive_bloom_tutor.adaptive_engine import AdaptiveQuizEngine


class NoQuestions:
    async def fetch_question(self, subject, level, topic=None):
        raise AssertionError("registry tests never fetch questions")


@pytest.fixture
def registry():
    return QuizSessionRegistry(lambda: AdaptiveQuizEngine(NoQuestions()), ttl=timedelta(minutes=30))


def age(entry, minutes):
    entry.last_seen -= timedelta(minutes=minutes)


class TestQuizSessionRegistry:
    """Test suite for QuizSessionRegistry."""

    def test_owner_only(self, registry):
        entry = registry.create("student-1")

        assert registry.get(entry.session_id, "student-1") is entry
        with pytest.raises(HTTPException) as exc:
            registry.get(entry.session_id, "student-2")
        assert exc.value.status_code == 404

    def test_expired_session_is_not_found(self, registry):
        entry = registry.create("student-1")
        age(entry, 31)

        with pytest.raises(HTTPException) as exc:
            registry.get(entry.session_id, "student-1")
        assert exc.value.status_code == 404
        assert len(registry) == 0

    def test_access_refreshes_idle_clock(self, registry):
        entry = registry.create("student-1")
        age(entry, 20)
        registry.get(entry.session_id, "student-1")
        age(entry, 20)

        assert registry.get(entry.session_id, "student-1") is entry

    def test_create_and_all_evict_idle_sessions(self, registry):
        stale = registry.create("student-1")
        age(stale, 45)

        fresh = registry.create("student-2")

        assert registry.all() == [fresh]
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_session_with_command_in_flight_is_kept(self, registry):
        entry = registry.create("student-1")
        age(entry, 45)

        async with entry.lock:
            assert registry.all() == [entry]
        assert registry.all() == []

    def test_ttl_from_environment(self, monkeypatch):
        monkeypatch.setenv("QUIZ_SESSION_TTL_MINUTES", "5")
        registry = QuizSessionRegistry(lambda: AdaptiveQuizEngine(NoQuestions()))
        assert registry.ttl == timedelta(minutes=5)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
