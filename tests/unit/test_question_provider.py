"""
Unit Tests for the Question Provider

Covers prompt construction, reply parsing/validation and JSON extraction,
with the completion service replaced by a canned AsyncOpenAI double.
"""

import json
import pytest
import sys
import os
from types import SimpleNamespace
from unittest.mock import AsyncMock

project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "adaptive_bloom_tutor", "src"))

from adaptive_bloom_tutor.config import LLMSettings
from adaptive_bloom_tutor.errors import InvalidLevel, MalformedResponse
from adaptive_bloom_tutor.llm_client import LLMClient
from adaptive_bloom_tutor.question_provider import (
    QuestionProvider,
    build_question_prompts,
    parse_question,
)
from adaptive_bloom_tutor.taxonomy import level_by_ordinal


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def fake_openai(*contents):
    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace()))
    client.chat.completions.create = AsyncMock(side_effect=[completion(c) for c in contents])
    return client


def valid_reply(level=3, **overrides):
    data = {
        "question": "Which algorithm sorts in O(n log n) worst case?",
        "options": ["Quicksort", "Mergesort", "Bubble sort", "Insertion sort"],
        "correctIndex": 1,
        "explanation": "Mergesort always splits evenly.",
        "bloomLevel": level,
        "bloomName": level_by_ordinal(level).name,
    }
    data.update(overrides)
    return data


class TestQuestionPrompts:
    """Test suite for prompt construction."""

    def test_system_prompt_carries_level_guidance(self):
        system_prompt, _ = build_question_prompts("Algorithms", level_by_ordinal(4))
        assert "Analyze (Level 4)" in system_prompt
        assert "Draw connections among ideas" in system_prompt
        assert "compare, contrast" in system_prompt
        assert '"bloomLevel": 4' in system_prompt

    def test_user_prompt_prefers_topic(self):
        _, user_prompt = build_question_prompts("Algorithms", level_by_ordinal(1), "Binary Trees")
        assert "Remember-level question about Binary Trees" in user_prompt
        assert "Subject: Algorithms" in user_prompt
        assert "Specific topic: Binary Trees" in user_prompt

    def test_user_prompt_without_topic(self):
        _, user_prompt = build_question_prompts("Algorithms", level_by_ordinal(1))
        assert "question about Algorithms" in user_prompt
        assert "Specific topic" not in user_prompt


class TestParseQuestion:
    """Test suite for reply validation."""

    def test_valid_reply(self):
        question = parse_question(valid_reply(), expected_level=3)
        assert question.stem.startswith("Which algorithm")
        assert question.options == ("Quicksort", "Mergesort", "Bubble sort", "Insertion sort")
        assert question.correct_option_index == 1
        assert question.level == 3
        assert question.level_name == "Apply"

    @pytest.mark.parametrize("overrides", [
        {"question": ""},
        {"question": None},
        {"options": ["A", "B", "C"]},
        {"options": ["A", "B", "C", "D", "E"]},
        {"options": ["A", "B", "B", "D"]},
        {"options": ["A", "B", "", "D"]},
        {"options": ["A", "B", 3, "D"]},
        {"correctIndex": 4},
        {"correctIndex": -1},
        {"correctIndex": "1"},
        {"correctIndex": True},
        {"explanation": None},
        {"bloomLevel": 2},
        {"bloomLevel": None},
    ])
    def test_invalid_reply(self, overrides):
        with pytest.raises(MalformedResponse):
            parse_question(valid_reply(**overrides), expected_level=3)

    def test_to_dict_wire_shape(self):
        question = parse_question(valid_reply(level=5), expected_level=5)
        assert question.to_dict() == {
            "question": "Which algorithm sorts in O(n log n) worst case?",
            "options": ["Quicksort", "Mergesort", "Bubble sort", "Insertion sort"],
            "correctIndex": 1,
            "explanation": "Mergesort always splits evenly.",
            "bloomLevel": 5,
            "bloomName": "Evaluate",
        }


class TestQuestionProvider:
    """Test suite for fetch_question against a canned completion service."""

    @pytest.fixture
    def settings(self):
        return LLMSettings(api_key="test-key", base_url=None, model="test-model")

    @pytest.mark.asyncio
    async def test_fetch_question(self, settings):
        client = fake_openai(json.dumps(valid_reply(level=2)))
        provider = QuestionProvider(LLMClient(settings, client=client))

        question = await provider.fetch_question("Algorithms", 2, "Sorting")

        assert question.level == 2
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["messages"][0]["role"] == "system"
        assert "Understand (Level 2)" in kwargs["messages"][0]["content"]
        assert "Sorting" in kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_fenced_reply_is_accepted(self, settings):
        reply = "```json\n" + json.dumps(valid_reply(level=1)) + "\n```"
        provider = QuestionProvider(LLMClient(settings, client=fake_openai(reply)))

        question = await provider.fetch_question("Algorithms", 1)
        assert question.correct_option_index == 1

    @pytest.mark.asyncio
    async def test_non_json_reply(self, settings):
        provider = QuestionProvider(LLMClient(settings, client=fake_openai("Sorry, I cannot help.")))
        with pytest.raises(MalformedResponse):
            await provider.fetch_question("Algorithms", 1)

    @pytest.mark.asyncio
    async def test_empty_reply(self, settings):
        provider = QuestionProvider(LLMClient(settings, client=fake_openai("")))
        with pytest.raises(MalformedResponse):
            await provider.fetch_question("Algorithms", 1)

    @pytest.mark.asyncio
    async def test_level_mismatch(self, settings):
        provider = QuestionProvider(LLMClient(settings, client=fake_openai(json.dumps(valid_reply(level=4)))))
        with pytest.raises(MalformedResponse):
            await provider.fetch_question("Algorithms", 3)

    @pytest.mark.asyncio
    async def test_invalid_arguments_do_not_call_service(self, settings):
        client = fake_openai()
        provider = QuestionProvider(LLMClient(settings, client=client))

        with pytest.raises(ValueError):
            await provider.fetch_question("", 1)
        with pytest.raises(InvalidLevel):
            await provider.fetch_question("Algorithms", 7)
        client.chat.completions.create.assert_not_called()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
