"""
Study Recommendations

Requests level-appropriate study material, strategies and practice activities
from the completion service. The current and next Bloom's levels are always
computed from the local catalog, never taken from the model.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from adaptive_bloom_tutor.errors import MalformedResponse
from adaptive_bloom_tutor.llm_client import LLMClient
from adaptive_bloom_tutor.taxonomy import BLOOM_LEVELS, TaxonomyLevel, level_by_ordinal, next_level

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "General Studies"

SYSTEM_PROMPT = (
    "You are an educational AI assistant specializing in personalized learning recommendations "
    "based on Bloom's Taxonomy. Your role is to suggest study materials, resources, and learning "
    "strategies tailored to a student's current cognitive level.\n\n"
    "Bloom's Taxonomy Levels (from lowest to highest):\n"
    + "\n".join(f"{lvl.ordinal}. {lvl.name} - {lvl.description}" for lvl in BLOOM_LEVELS)
    + "\n\nAlways provide actionable, specific recommendations with real resource types "
    "(videos, articles, practice problems, projects, etc.)."
)


@dataclass(frozen=True)
class StudyResource:
    title: str
    type: str = ""
    description: str = ""
    blooms_level: Optional[int] = None
    estimated_time: str = ""


@dataclass(frozen=True)
class PracticeActivity:
    activity: str
    description: str = ""
    blooms_level: Optional[int] = None


@dataclass
class RecommendationBundle:
    """Study suggestions plus the locally computed current/next level."""
    current_level: TaxonomyLevel
    next_level: Optional[TaxonomyLevel]
    recommendations: List[StudyResource] = field(default_factory=list)
    strategies: List[str] = field(default_factory=list)
    practice_activities: List[PracticeActivity] = field(default_factory=list)
    foundational_review: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recommendations": [
                {
                    "title": r.title,
                    "type": r.type,
                    "description": r.description,
                    "bloomsLevel": r.blooms_level,
                    "estimatedTime": r.estimated_time,
                }
                for r in self.recommendations
            ],
            "strategies": list(self.strategies),
            "practiceActivities": [
                {"activity": a.activity, "description": a.description, "bloomsLevel": a.blooms_level}
                for a in self.practice_activities
            ],
            "foundationalReview": list(self.foundational_review),
            "currentLevel": self.current_level.to_dict(),
            "nextLevel": self.next_level.to_dict() if self.next_level else None,
        }


def build_recommendation_prompt(subject: str, current: TaxonomyLevel, upcoming: Optional[TaxonomyLevel],
                                performance_score: int, topics: Sequence[str]) -> str:
    next_hint = f" ({upcoming.name})" if upcoming else ""
    topic_text = ", ".join(topics) if topics else "Not specified"
    return f"""A student needs study material recommendations with the following profile:

Subject: {subject or DEFAULT_SUBJECT}
Current Bloom's Level: {current.ordinal} - {current.name} ({current.description})
Performance Score: {performance_score}%
Topics of Interest: {topic_text}

Please provide:
1. 3-5 specific study material recommendations appropriate for their current level
2. Learning strategies to help them progress to the next level{next_hint}
3. Types of practice activities that would reinforce learning at their level
4. Warning signs that indicate they should review foundational concepts

Format your response as a JSON object with these keys:
- recommendations: array of {{title, type, description, bloomsLevel, estimatedTime}}
- strategies: array of strings with learning tips
- practiceActivities: array of {{activity, description, bloomsLevel}}
- foundationalReview: array of strings with warning signs"""


def _require_list(data: Dict[str, Any], key: str) -> list:
    value = data.get(key)
    if not isinstance(value, list):
        raise MalformedResponse(f"'{key}' must be a list")
    return value


def _optional_level(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _parse_strings(data: Dict[str, Any], key: str) -> List[str]:
    items = _require_list(data, key)
    if not all(isinstance(item, str) for item in items):
        raise MalformedResponse(f"'{key}' must contain only strings")
    return [item.strip() for item in items if item.strip()]


def parse_recommendations(data: Dict[str, Any], current: TaxonomyLevel,
                          upcoming: Optional[TaxonomyLevel]) -> RecommendationBundle:
    """
    Build a RecommendationBundle from a decoded reply.

    Raises:
        MalformedResponse: If a required list or item is missing or out of shape.
    """
    resources = []
    for item in _require_list(data, "recommendations"):
        if not isinstance(item, dict) or not _text(item.get("title")):
            raise MalformedResponse("Each recommendation needs a title")
        resources.append(StudyResource(
            title=_text(item.get("title")),
            type=_text(item.get("type")),
            description=_text(item.get("description")),
            blooms_level=_optional_level(item.get("bloomsLevel")),
            estimated_time=_text(item.get("estimatedTime")),
        ))

    activities = []
    for item in _require_list(data, "practiceActivities"):
        if not isinstance(item, dict) or not _text(item.get("activity")):
            raise MalformedResponse("Each practice activity needs an activity name")
        activities.append(PracticeActivity(
            activity=_text(item.get("activity")),
            description=_text(item.get("description")),
            blooms_level=_optional_level(item.get("bloomsLevel")),
        ))

    return RecommendationBundle(
        current_level=current,
        next_level=upcoming,
        recommendations=resources,
        strategies=_parse_strings(data, "strategies"),
        practice_activities=activities,
        foundational_review=_parse_strings(data, "foundationalReview"),
    )


class RecommendationSynthesizer:
    """Generates study recommendations for a student's Bloom's level."""

    def __init__(self, llm: LLMClient):
        self.llm = llm

    async def get_recommendations(self, subject: str, current_level: int, performance_score: int,
                                  topics: Sequence[str] = ()) -> RecommendationBundle:
        current = level_by_ordinal(current_level)
        if isinstance(performance_score, bool) or not 0 <= performance_score <= 100:
            raise ValueError(f"performance_score must be between 0 and 100, got {performance_score!r}")
        upcoming = next_level(current_level)
        topics = [t.strip() for t in topics if t and t.strip()]

        logger.info("Requesting study recommendations: subject=%s level=%d score=%s",
                    subject or DEFAULT_SUBJECT, current.ordinal, performance_score)
        prompt = build_recommendation_prompt(subject.strip() if subject else "", current, upcoming,
                                             performance_score, topics)
        data = await self.llm.complete_json(SYSTEM_PROMPT, prompt)
        return parse_recommendations(data, current, upcoming)
