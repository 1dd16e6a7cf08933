"""Adaptive Bloom's Taxonomy quiz engine and study-recommendation adapters."""

from adaptive_bloom_tutor.adaptive_engine import AdaptiveQuizEngine, SessionSummary
from adaptive_bloom_tutor.question_provider import Question, QuestionProvider
from adaptive_bloom_tutor.recommendations import RecommendationBundle, RecommendationSynthesizer
from adaptive_bloom_tutor.session_state import AnswerOutcome, SessionPhase, SessionState

__all__ = [
    "AdaptiveQuizEngine",
    "SessionSummary",
    "Question",
    "QuestionProvider",
    "RecommendationBundle",
    "RecommendationSynthesizer",
    "AnswerOutcome",
    "SessionPhase",
    "SessionState",
]
