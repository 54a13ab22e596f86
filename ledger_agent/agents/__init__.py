"""Language model adapters behind the LanguageModel interface."""

from ledger_agent.agents.base import (
    LanguageModel,
    ModelCredentialsError,
    ModelError,
    ModelUnavailableError,
    UnconfiguredLanguageModel,
)
from ledger_agent.agents.gemini_model import GeminiLanguageModel

__all__ = [
    "LanguageModel",
    "ModelCredentialsError",
    "ModelError",
    "ModelUnavailableError",
    "UnconfiguredLanguageModel",
    "GeminiLanguageModel",
]
