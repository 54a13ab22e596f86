"""
Gemini Language Model

Adapter between the orchestrator's transcript and the Gemini
function-calling API (google-generativeai).

DESIGN DECISION: Every round-trip sends the whole transcript as a list
of Content objects instead of using a ChatSession. The orchestrator owns
conversation state; this class only translates.

Translation rules:
- user turns become "user" contents with one text part
- assistant turns become "model" contents with a text part and/or one
  function_call part per tool call
- a tool turn becomes ONE "user" content with a function_response part
  per result, so every call of a model turn gets its answer together

Gemini function calls carry no identifier, so each call is given a UUID
here and echoed back inside its function response.
"""

import asyncio
from typing import Any, Mapping, Optional, Sequence
from uuid import uuid4

import google.generativeai as genai
import structlog
from google.api_core import exceptions as google_exceptions
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ledger_agent.agents.base import (
    LanguageModel,
    ModelCredentialsError,
    ModelUnavailableError,
)
from ledger_agent.config import AppSettings, GeminiSettings
from ledger_agent.models.chat import ChatRole, ChatTurn, ModelTurn, ToolCall


logger = structlog.get_logger(__name__)

# Retried before giving up; everything else fails immediately
TRANSIENT_ERRORS = (
    asyncio.TimeoutError,
    google_exceptions.ServiceUnavailable,
    google_exceptions.InternalServerError,
    google_exceptions.DeadlineExceeded,
)

CREDENTIAL_ERRORS = (
    google_exceptions.PermissionDenied,
    google_exceptions.Unauthenticated,
    google_exceptions.ResourceExhausted,
)

_SCHEMA_TYPES = {
    "string": genai.protos.Type.STRING,
    "number": genai.protos.Type.NUMBER,
}


def build_gemini_tool(specs: Sequence) -> genai.protos.Tool:
    """Declare the tool contract as Gemini function declarations."""
    declarations = []
    for spec in specs:
        properties = {
            parameter.name: genai.protos.Schema(
                type=_SCHEMA_TYPES[parameter.type],
                description=parameter.description,
            )
            for parameter in spec.parameters
        }
        declarations.append(genai.protos.FunctionDeclaration(
            name=spec.name.value,
            description=spec.description,
            parameters=genai.protos.Schema(
                type=genai.protos.Type.OBJECT,
                properties=properties,
                required=list(spec.required),
            ),
        ))
    return genai.protos.Tool(function_declarations=declarations)


def build_contents(transcript: Sequence[ChatTurn]) -> list[genai.protos.Content]:
    """Convert the transcript into Gemini contents, oldest first."""
    contents = []
    for turn in transcript:
        if turn.role == ChatRole.USER:
            contents.append(genai.protos.Content(
                role="user",
                parts=[genai.protos.Part(text=turn.content)],
            ))
        elif turn.role == ChatRole.ASSISTANT:
            parts = []
            if turn.content:
                parts.append(genai.protos.Part(text=turn.content))
            for call in turn.tool_calls:
                parts.append(genai.protos.Part(
                    function_call=genai.protos.FunctionCall(
                        name=call.name,
                        args=call.arguments,
                    )
                ))
            if parts:
                contents.append(genai.protos.Content(role="model", parts=parts))
        elif turn.role == ChatRole.TOOL and turn.tool_results:
            contents.append(genai.protos.Content(
                role="user",
                parts=[
                    genai.protos.Part(
                        function_response=genai.protos.FunctionResponse(
                            name=result.name,
                            response=result.to_model_payload(),
                        )
                    )
                    for result in turn.tool_results
                ],
            ))
    return contents


def _to_plain(value: Any) -> Any:
    """Unwrap proto-plus map and list composites into dicts and lists."""
    if isinstance(value, Mapping):
        return {key: _to_plain(item) for key, item in value.items()}
    if isinstance(value, (str, bytes)):
        return value
    if isinstance(value, Sequence):
        return [_to_plain(item) for item in value]
    return value


def parse_response(response) -> ModelTurn:
    """Extract text and function calls from a generate_content response."""
    candidates = list(getattr(response, "candidates", None) or [])
    if not candidates:
        # Blocked by safety filters, or an empty answer
        return ModelTurn()

    texts = []
    tool_calls = []
    for part in candidates[0].content.parts:
        fn = part.function_call
        if fn and fn.name:
            tool_calls.append(ToolCall(
                call_id=uuid4().hex,
                name=fn.name,
                arguments=_to_plain(fn.args) if fn.args else {},
            ))
        elif part.text:
            texts.append(part.text)

    return ModelTurn(text="".join(texts).strip(), tool_calls=tool_calls)


def map_model_error(error: Exception):
    """Classify a Gemini failure as a credentials or availability problem."""
    if isinstance(error, CREDENTIAL_ERRORS):
        return ModelCredentialsError(str(error))
    if isinstance(error, google_exceptions.InvalidArgument) and "api key" in str(error).lower():
        return ModelCredentialsError(str(error))
    if isinstance(error, asyncio.TimeoutError):
        return ModelUnavailableError("Model request timed out")
    return ModelUnavailableError(str(error))


class GeminiLanguageModel(LanguageModel):
    """
    Gemini behind the LanguageModel interface.

    Note: google-generativeai holds the API key in process-wide
    configuration, so the most recently created adapter's key is the one
    in use.
    """

    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-2.5-flash",
        temperature: float = 0.2,
        max_output_tokens: int = 2048,
        timeout_seconds: float = 60.0,
        retry_attempts: int = 3,
    ):
        super().__init__(model_name)
        self._api_key = api_key
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        self._timeout_seconds = timeout_seconds
        self._retry_attempts = retry_attempts
        self._models: dict[str, genai.GenerativeModel] = {}
        genai.configure(api_key=api_key)

    @classmethod
    def from_settings(
        cls,
        gemini: GeminiSettings,
        app: Optional[AppSettings] = None,
    ) -> "GeminiLanguageModel":
        app = app or AppSettings()
        return cls(
            api_key=gemini.api_key,
            model_name=gemini.model_name,
            temperature=gemini.temperature,
            max_output_tokens=gemini.max_output_tokens,
            timeout_seconds=app.model_timeout_seconds,
            retry_attempts=app.model_retry_attempts,
        )

    def _model_for(self, system_instruction: str) -> genai.GenerativeModel:
        # The instruction is fixed per session, so this rarely grows past one entry
        model = self._models.get(system_instruction)
        if model is None:
            model = genai.GenerativeModel(
                model_name=self.model_name,
                system_instruction=system_instruction,
                generation_config={
                    "temperature": self._temperature,
                    "max_output_tokens": self._max_output_tokens,
                },
            )
            self._models = {system_instruction: model}
        return model

    async def send_turn(
        self,
        system_instruction: str,
        transcript: Sequence[ChatTurn],
        tools: Sequence,
    ) -> ModelTurn:
        model = self._model_for(system_instruction)
        contents = build_contents(transcript)
        gemini_tools = [build_gemini_tool(tools)] if tools else None

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._retry_attempts),
                wait=wait_exponential(multiplier=1, min=1, max=8),
                retry=retry_if_exception_type(TRANSIENT_ERRORS),
                reraise=True,
            ):
                with attempt:
                    response = await asyncio.wait_for(
                        model.generate_content_async(contents, tools=gemini_tools),
                        timeout=self._timeout_seconds,
                    )
        except (google_exceptions.GoogleAPIError, asyncio.TimeoutError) as e:
            mapped = map_model_error(e)
            logger.error(
                "model_request_failed",
                model=self.model_name,
                error_type=type(e).__name__,
                mapped_to=type(mapped).__name__,
            )
            raise mapped from e

        turn = parse_response(response)
        logger.debug(
            "model_turn_received",
            model=self.model_name,
            text_length=len(turn.text),
            tool_calls=[call.name for call in turn.tool_calls],
        )
        return turn
