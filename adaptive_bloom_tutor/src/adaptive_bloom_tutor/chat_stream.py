"""
Streaming AI Problem Solver

- ChatAssistant streams text deltas from the completion service
- encode_sse_delta / SSE_DONE write the chat-completions event-stream format
- decode_sse_deltas reads it back incrementally from raw byte chunks
- ChatTranscript appends streamed deltas to the growing assistant message
"""

import codecs
import json
import logging
from dataclasses import dataclass, field
from typing import AsyncIterable, AsyncIterator, Dict, List

from adaptive_bloom_tutor.errors import UpstreamError
from adaptive_bloom_tutor.llm_client import LLMClient

logger = logging.getLogger(__name__)

SSE_DONE = "data: [DONE]\n\n"

SOLVER_SYSTEM_PROMPT = (
    "You are a helpful AI tutor for college students. Solve problems step by step, "
    "explain concepts clearly, and format answers in Markdown. When writing code, "
    "use fenced code blocks with the language name."
)


def encode_sse_delta(text: str) -> str:
    """Encode one text delta as a chat-completions style SSE event."""
    payload = {"choices": [{"delta": {"content": text}}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


async def decode_sse_deltas(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """
    Decode text deltas from an event stream delivered as arbitrary byte chunks.

    Lines are processed as they complete. Comment and blank lines are skipped,
    `[DONE]` ends the stream, and a data line whose JSON does not parse yet is
    pushed back into the buffer until more bytes arrive. A line that still
    fails after that, or that fails once the input is exhausted, is dropped.
    An `{"error": ...}` event raises UpstreamError.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    retried = None
    source = aiter(chunks)
    while True:
        chunk = await anext(source, None)
        final = chunk is None
        buffer += decoder.decode(chunk or b"", final=final)
        if final and buffer and not buffer.endswith("\n"):
            buffer += "\n"

        while "\n" in buffer:
            line, buffer = buffer.split("\n", 1)
            if line.endswith("\r"):
                line = line[:-1]
            if line.startswith(":") or not line.strip():
                continue
            if not line.startswith("data: "):
                continue

            data = line[6:].strip()
            if data == "[DONE]":
                return

            try:
                parsed = json.loads(data)
            except json.JSONDecodeError:
                if final or retried == line:
                    logger.warning("Dropping unparsable stream line: %s", line[:80])
                    retried = None
                    continue
                retried = line
                buffer = line + "\n" + buffer
                break

            retried = None
            if not isinstance(parsed, dict):
                continue
            if parsed.get("error"):
                raise UpstreamError(str(parsed["error"]))
            choices = parsed.get("choices")
            first = choices[0] if isinstance(choices, list) and choices else {}
            delta = first.get("delta") if isinstance(first, dict) else None
            content = delta.get("content") if isinstance(delta, dict) else None
            if isinstance(content, str) and content:
                yield content

        if final:
            return


@dataclass
class ChatTranscript:
    """Conversation shown to the student; assistant text grows as deltas arrive."""
    messages: List[Dict[str, str]] = field(default_factory=list)

    def append_user(self, content: str) -> None:
        self.messages.append({"role": "user", "content": content.strip()})

    async def consume(self, deltas: AsyncIterable[str]) -> str:
        """Append each delta to the trailing assistant message; returns its full text."""
        reply = ""
        async for delta in deltas:
            reply += delta
            if self.messages and self.messages[-1]["role"] == "assistant":
                self.messages[-1]["content"] = reply
            else:
                self.messages.append({"role": "assistant", "content": reply})
        return reply


class ChatAssistant:
    """General problem-solving assistant backed by the completion service."""

    def __init__(self, llm: LLMClient, system_prompt: str = SOLVER_SYSTEM_PROMPT):
        self.llm = llm
        self.system_prompt = system_prompt

    async def stream_reply(self, messages: List[Dict[str, str]]) -> AsyncIterator[str]:
        conversation = [{"role": "system", "content": self.system_prompt}]
        conversation.extend(
            {"role": m["role"], "content": m["content"]}
            for m in messages
            if m.get("role") in ("user", "assistant") and m.get("content")
        )
        logger.info("Streaming solver reply for %d message(s)", len(conversation) - 1)
        async for delta in self.llm.stream(conversation):
            yield delta
