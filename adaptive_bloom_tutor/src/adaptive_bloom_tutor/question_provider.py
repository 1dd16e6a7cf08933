"""
Question Provider

Asks the completion service for one multiple-choice question at a given
Bloom's level and validates the structured reply.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from adaptive_bloom_tutor.errors import MalformedResponse
from adaptive_bloom_tutor.llm_client import LLMClient
from adaptive_bloom_tutor.taxonomy import TaxonomyLevel, level_by_ordinal

logger = logging.getLogger(__name__)

OPTION_COUNT = 4


@dataclass(frozen=True)
class Question:
    """A generated multiple-choice question tagged with its Bloom's level."""
    stem: str
    options: Tuple[str, ...]
    correct_option_index: int
    explanation: str
    level: int
    level_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question": self.stem,
            "options": list(self.options),
            "correctIndex": self.correct_option_index,
            "explanation": self.explanation,
            "bloomLevel": self.level,
            "bloomName": self.level_name or level_by_ordinal(self.level).name,
        }


def build_question_prompts(subject: str, level: TaxonomyLevel,
                           topic: Optional[str] = None) -> Tuple[str, str]:
    """Return the (system, user) prompt pair for one question."""
    system_prompt = f"""You are an expert educational quiz generator. Generate quiz questions based on Bloom's Taxonomy levels.

Current Bloom's Level: {level.name} (Level {level.ordinal})
Description: {level.description}
Action verbs to use: {level.verbs}

Generate exactly 1 multiple choice question that tests the student at this specific Bloom's taxonomy level.
The question should be challenging but fair for this cognitive level.

Return ONLY a valid JSON object with this exact structure (no markdown, no code blocks):
{{
  "question": "The question text",
  "options": ["Option A", "Option B", "Option C", "Option D"],
  "correctIndex": 0,
  "explanation": "Brief explanation of why this is correct",
  "bloomLevel": {level.ordinal},
  "bloomName": "{level.name}"
}}"""

    topic_line = f"Specific topic: {topic}\n" if topic else ""
    user_prompt = (
        f"Generate a {level.name}-level question about {topic or subject}.\n"
        f"Subject: {subject}\n"
        f"{topic_line}\n"
        "Remember: Return ONLY the JSON object, no additional text."
    )
    return system_prompt, user_prompt


def parse_question(data: Dict[str, Any], expected_level: int) -> Question:
    """
    Validate a decoded reply and build a Question.

    Raises:
        MalformedResponse: If any field is missing or out of shape.
    """
    stem = data.get("question")
    if not isinstance(stem, str) or not stem.strip():
        raise MalformedResponse("Question text is missing")

    options = data.get("options")
    if not isinstance(options, list) or len(options) != OPTION_COUNT:
        raise MalformedResponse(f"Expected exactly {OPTION_COUNT} options")
    if not all(isinstance(o, str) and o.strip() for o in options):
        raise MalformedResponse("Options must be non-empty strings")
    cleaned = tuple(o.strip() for o in options)
    if len(set(cleaned)) != OPTION_COUNT:
        raise MalformedResponse("Options must be distinct")

    correct = data.get("correctIndex")
    if isinstance(correct, bool) or not isinstance(correct, int) or not 0 <= correct < OPTION_COUNT:
        raise MalformedResponse(f"correctIndex out of range: {correct!r}")

    explanation = data.get("explanation")
    if not isinstance(explanation, str):
        raise MalformedResponse("Explanation is missing")

    level = data.get("bloomLevel")
    if isinstance(level, bool) or level != expected_level:
        raise MalformedResponse(f"Question level {level!r} does not match requested level {expected_level}")

    level_name = data.get("bloomName")
    return Question(
        stem=stem.strip(),
        options=cleaned,
        correct_option_index=correct,
        explanation=explanation.strip(),
        level=expected_level,
        level_name=level_name if isinstance(level_name, str) else "",
    )


class QuestionProvider:
    """Fetches Bloom's-leveled questions from the completion service."""

    def __init__(self, llm: LLMClient):
        self.llm = llm

    async def fetch_question(self, subject: str, level: int,
                             topic: Optional[str] = None) -> Question:
        """
        Generate one question for `subject` at Bloom's `level`.

        Args:
            subject: Non-empty subject name
            level: Bloom's ordinal (1-6)
            topic: Optional narrower topic within the subject

        Returns:
            Validated Question

        Raises:
            ValueError: Empty subject
            InvalidLevel: Ordinal outside 1-6
            MalformedResponse: Reply not matching the question shape
            UpstreamFailure subclasses: Service failures (not retried)
        """
        if not subject or not subject.strip():
            raise ValueError("subject must be a non-empty string")
        bloom = level_by_ordinal(level)
        topic = topic.strip() if topic else None

        logger.info("Generating quiz question for %s at Bloom's Level %d (%s)",
                    subject, bloom.ordinal, bloom.name)
        system_prompt, user_prompt = build_question_prompts(subject.strip(), bloom, topic)
        data = await self.llm.complete_json(system_prompt, user_prompt)
        question = parse_question(data, bloom.ordinal)
        logger.debug("Question generated: %s", question.stem[:80])
        return question
