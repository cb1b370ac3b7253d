"""AI agents package."""

from bookkeeper.agents.classifier_agent import (
    AIClassificationError,
    GeminiClassifierAgent,
    build_prompt,
    parse_response,
)

__all__ = [
    "AIClassificationError",
    "GeminiClassifierAgent",
    "build_prompt",
    "parse_response",
]
