"""
Adaptive Quiz Engine

Drives a student through Bloom's Taxonomy levels one question at a time.

Progression policy (applied in advance()):
- Correct below the top level -> move up exactly one level, fetch a question
- Correct at the top level    -> session complete, nothing fetched
- Incorrect at any level      -> stay at the same level, fetch a fresh question

Level never decreases. State is only written after a fetch succeeds, so an
upstream failure or a cancelled fetch leaves the session where it was.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from adaptive_bloom_tutor.errors import InvalidOption, InvalidPhase, NoSelection
from adaptive_bloom_tutor.question_provider import QuestionProvider
from adaptive_bloom_tutor.session_state import AnswerOutcome, SessionPhase, SessionState
from adaptive_bloom_tutor.taxonomy import MIN_ORDINAL, TaxonomyLevel, level_by_ordinal, next_ordinal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionSummary:
    """Aggregate result of a quiz session."""
    subject: str
    topic: str
    phase: SessionPhase
    current_level: int
    highest_level: Optional[TaxonomyLevel]
    total_answered: int
    correct_answers: int
    performance_score: int  # 0-100
    journey: List[Dict[str, Any]]


class AdaptiveQuizEngine:
    """
    Owns one SessionState and enforces its phase transitions.

    Not safe for concurrent mutation: callers serialize commands per session.
    """

    def __init__(self, provider: QuestionProvider, state: Optional[SessionState] = None):
        self.provider = provider
        self._state = state or SessionState()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def phase(self) -> SessionPhase:
        return self._state.phase

    def _require_phase(self, operation: str, *allowed: SessionPhase):
        if self._state.phase not in allowed:
            raise InvalidPhase(
                f"Cannot {operation} while session is {self._state.phase.value}"
            )

    async def start(self, subject: str, topic: Optional[str] = None) -> SessionState:
        """Fetch the first (level 1) question and begin the session."""
        self._require_phase("start", SessionPhase.NOT_STARTED)
        if not subject or not subject.strip():
            raise ValueError("Please enter a subject")
        subject = subject.strip()
        topic = (topic or "").strip()

        question = await self.provider.fetch_question(subject, MIN_ORDINAL, topic or None)

        state = self._state
        state.subject = subject
        state.topic = topic
        state.current_level = MIN_ORDINAL
        state.current_question = question
        state.selected_option_index = None
        state.answered_current = False
        state.phase = SessionPhase.AWAITING_ANSWER
        state.started_at = state.last_updated = datetime.now()
        logger.info("Quiz started: subject=%s topic=%s", subject, topic or "-")
        return state

    def select_answer(self, index: int) -> SessionState:
        """Store the chosen option; may be called repeatedly before submitting."""
        self._require_phase("select an answer", SessionPhase.AWAITING_ANSWER)
        options = self._state.current_question.options
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(options):
            raise InvalidOption(f"Option {index!r} does not exist (0-{len(options) - 1})")
        self._state.selected_option_index = index
        self._state.last_updated = datetime.now()
        return self._state

    def submit_answer(self) -> AnswerOutcome:
        """Record the outcome of the selected option and reveal the result."""
        self._require_phase("submit an answer", SessionPhase.AWAITING_ANSWER)
        state = self._state
        if state.selected_option_index is None:
            raise NoSelection()

        correct = state.selected_option_index == state.current_question.correct_option_index
        outcome = AnswerOutcome(level=state.current_level, correct=correct)
        state.history.append(outcome)
        if correct:
            state.highest_level_achieved = max(state.highest_level_achieved, state.current_level)
        state.answered_current = True
        state.phase = SessionPhase.SHOWING_RESULT
        state.last_updated = datetime.now()

        logger.info("Answer submitted at level %d: %s",
                    outcome.level, "correct" if correct else "incorrect")
        return outcome

    async def advance(self) -> SessionState:
        """Apply the progression policy after a result has been shown."""
        self._require_phase("advance", SessionPhase.SHOWING_RESULT)
        state = self._state
        last = state.history[-1]

        if last.correct:
            target = next_ordinal(state.current_level)
            if target is None:
                state.phase = SessionPhase.COMPLETE
                state.last_updated = datetime.now()
                logger.info("Quiz complete: mastered level %d", state.current_level)
                return state
        else:
            target = state.current_level

        question = await self.provider.fetch_question(state.subject, target, state.topic or None)

        if target != state.current_level:
            logger.info("Level up: %d -> %d", state.current_level, target)
        state.current_level = target
        state.current_question = question
        state.selected_option_index = None
        state.answered_current = False
        state.phase = SessionPhase.AWAITING_ANSWER
        state.last_updated = datetime.now()
        return state

    def reset(self) -> SessionState:
        """Discard the attempt and return to NOT_STARTED. Valid from any phase."""
        self._state = SessionState()
        return self._state

    def is_current_answer_correct(self) -> Optional[bool]:
        """Outcome of the question on screen, or None while it is unanswered."""
        if not self._state.answered_current:
            return None
        return self._state.history[-1].correct

    def summary(self) -> SessionSummary:
        state = self._state
        correct = sum(1 for outcome in state.history if outcome.correct)
        total = len(state.history)
        return SessionSummary(
            subject=state.subject,
            topic=state.topic,
            phase=state.phase,
            current_level=state.current_level,
            highest_level=level_by_ordinal(state.highest_level_achieved) if state.highest_level_achieved else None,
            total_answered=total,
            correct_answers=correct,
            performance_score=round(100 * correct / total) if total else 0,
            journey=[
                {
                    "level": outcome.level,
                    "level_name": level_by_ordinal(outcome.level).name,
                    "correct": outcome.correct,
                }
                for outcome in state.history
            ],
        )
