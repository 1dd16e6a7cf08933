"""
Settings for the completion service, read from the environment (.env supported).
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_BASE_URL = "https://ai.gateway.lovable.dev/v1"
DEFAULT_MODEL = "google/gemini-2.5-flash"


@dataclass(frozen=True)
class LLMSettings:
    """Connection settings for the OpenAI-compatible completion gateway."""
    api_key: str
    base_url: Optional[str] = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    temperature: float = 0.7
    timeout_seconds: float = 60.0

    @classmethod
    def from_env(cls) -> "LLMSettings":
        api_key = os.getenv("OPENAI_API_KEY") or os.getenv("LOVABLE_API_KEY")
        if not api_key:
            raise ValueError("OPENAI_API_KEY (or LOVABLE_API_KEY) not found in environment variables")

        return cls(
            api_key=api_key,
            base_url=os.getenv("LLM_BASE_URL", DEFAULT_BASE_URL) or None,
            model=os.getenv("LLM_MODEL", DEFAULT_MODEL),
            temperature=float(os.getenv("LLM_TEMPERATURE", "0.7")),
            timeout_seconds=float(os.getenv("LLM_TIMEOUT_SECONDS", "60")),
        )
