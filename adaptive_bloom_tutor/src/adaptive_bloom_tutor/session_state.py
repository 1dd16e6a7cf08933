"""
Quiz Session State Data Model

Defines the SessionState aggregate owned by the adaptive engine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from adaptive_bloom_tutor.question_provider import Question


class SessionPhase(Enum):
    """Adaptive quiz phases."""
    NOT_STARTED = "not_started"
    AWAITING_ANSWER = "awaiting_answer"
    SHOWING_RESULT = "showing_result"
    COMPLETE = "complete"


@dataclass(frozen=True)
class AnswerOutcome:
    """Result of one submitted answer."""
    level: int
    correct: bool


@dataclass
class SessionState:
    """State of one adaptive quiz attempt. Mutated only by AdaptiveQuizEngine."""
    subject: str = ""
    topic: str = ""
    current_level: int = 1
    current_question: Optional[Question] = None
    answered_current: bool = False
    selected_option_index: Optional[int] = None
    history: List[AnswerOutcome] = field(default_factory=list)  # append-only
    highest_level_achieved: int = 0
    phase: SessionPhase = SessionPhase.NOT_STARTED
    started_at: Optional[datetime] = None
    last_updated: datetime = field(default_factory=datetime.now)
