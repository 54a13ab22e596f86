"""
Language Model Interface

DESIGN DECISION: The orchestrator talks to the language model through one
narrow call: send the system instruction, the full transcript and the
tool contract, get back a ModelTurn (text and/or tool calls). Model-side
chat sessions are not used; the orchestrator owns the transcript.

This keeps the session state machine testable with a scripted fake and
lets any model API sit behind the seam.
"""

from abc import ABC, abstractmethod
from typing import Sequence

from ledger_agent.models.chat import ChatTurn, ModelTurn


class ModelError(Exception):
    """Base exception for language model failures."""
    pass


class ModelUnavailableError(ModelError):
    """Transport failure, timeout, or server-side error. Retrying later may work."""
    pass


class ModelCredentialsError(ModelError):
    """
    The API key was rejected (invalid, expired, or out of quota).

    Distinct from ModelUnavailableError: the user can fix this by
    supplying another key.
    """
    pass


class LanguageModel(ABC):
    """A model that can answer with text or request tool calls."""

    def __init__(self, model_name: str):
        self.model_name = model_name

    @abstractmethod
    async def send_turn(
        self,
        system_instruction: str,
        transcript: Sequence[ChatTurn],
        tools: Sequence,
    ) -> ModelTurn:
        """
        Run one model round-trip.

        Args:
            system_instruction: Policy text for the whole session
            transcript: Every turn so far, oldest first; the last turn is
                a user turn or a tool turn
            tools: ToolSpec objects the model may call

        Returns:
            The model's text and/or tool calls

        Raises:
            ModelCredentialsError: the API key was rejected
            ModelUnavailableError: any other failure to get an answer
        """
        pass


class UnconfiguredLanguageModel(LanguageModel):
    """
    Stand-in used when no API key is configured.

    Every turn fails with ModelCredentialsError, so the caller asks the
    user for a key instead of failing at startup.
    """

    def __init__(self, model_name: str = "unconfigured"):
        super().__init__(model_name)

    async def send_turn(self, system_instruction, transcript, tools) -> ModelTurn:
        raise ModelCredentialsError("No API key configured")
