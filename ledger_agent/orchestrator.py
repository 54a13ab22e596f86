"""
Main Orchestrator for Ledger Agent

This module ties the components together and defines the chat flow:

    user text -> model turn -> final text
                            -> tool calls -> execute in order -> model turn -> ...

DESIGN DECISION: The orchestrator enforces the boundaries:
- One message at a time per session; a second send while busy is rejected
- At most max_tool_iterations tool rounds per message, then a
  "could not complete" reply
- Tool errors stay inside the loop (the model sees them, the user does not)
- A dead ledger backend, a failed model call or any unexpected error ends
  the turn with a localized message; raw backend or transport text never
  reaches the user
- Every step is audited under one correlation id per message

The session owns its transcript. The model sees the whole transcript on
every round-trip and keeps no state of its own.
"""

from datetime import date
from enum import Enum
from typing import Optional, Sequence
from uuid import UUID

import structlog

from ledger_agent.agents import (
    GeminiLanguageModel,
    LanguageModel,
    ModelCredentialsError,
    ModelError,
    UnconfiguredLanguageModel,
)
from ledger_agent.audit import AuditLogger, create_correlation_id
from ledger_agent.config import GeminiSettings, Settings, get_settings
from ledger_agent.events import EventBus, get_event_bus
from ledger_agent.models.chat import (
    ChatReply,
    ChatRole,
    ChatTurn,
    ReplyLanguage,
    ReplyStatus,
    ToolResult,
)
from ledger_agent.policy import (
    build_system_instruction,
    detect_input_script,
    detect_reply_language,
)
from ledger_agent.policy.messages import (
    APOLOGY,
    CREDENTIALS_NEEDED,
    EMPTY_ANSWER,
    ITERATION_LIMIT,
    get_message,
)
from ledger_agent.services.storage import (
    LedgerStore,
    StoreUnavailableError,
    create_audit_storage,
    create_ledger_store,
)
from ledger_agent.tools import TOOL_CONTRACT, ToolExecutor


logger = structlog.get_logger(__name__)

DEFAULT_MAX_TOOL_ITERATIONS = 8


class SessionState(str, Enum):
    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"


class SessionBusyError(Exception):
    """send_message was called while the previous message is still being handled."""
    pass


class LedgerChatSession:
    """
    One conversation between the user and the ledger assistant.

    States:
        IDLE -> send_message -> AWAITING_MODEL
        AWAITING_MODEL -> final text -> IDLE
        AWAITING_MODEL -> tool calls -> EXECUTING_TOOLS -> AWAITING_MODEL
    """

    def __init__(
        self,
        model: LanguageModel,
        executor: ToolExecutor,
        audit_logger: Optional[AuditLogger] = None,
        max_tool_iterations: int = DEFAULT_MAX_TOOL_ITERATIONS,
        currency_symbol: str = "$",
        today: Optional[date] = None,
        tools: Sequence = TOOL_CONTRACT,
    ):
        if max_tool_iterations < 1:
            raise ValueError("max_tool_iterations must be at least 1")

        self._model = model
        self._executor = executor
        self._audit = audit_logger
        self._max_tool_iterations = max_tool_iterations
        self._currency_symbol = currency_symbol
        self._tools = tuple(tools)

        self._state = SessionState.IDLE
        self._transcript: list[ChatTurn] = []
        self._today = today or date.today()
        self._system_instruction = build_system_instruction(self._today, currency_symbol)

    # -------------------------------------------------------------------------
    # Session properties
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._state != SessionState.IDLE

    @property
    def today(self) -> date:
        return self._today

    @property
    def system_instruction(self) -> str:
        return self._system_instruction

    @property
    def model(self) -> LanguageModel:
        return self._model

    @property
    def audit_logger(self) -> Optional[AuditLogger]:
        return self._audit

    @property
    def transcript(self) -> list[ChatTurn]:
        """Full transcript including tool plumbing (a copy)."""
        return list(self._transcript)

    @property
    def messages(self) -> list[ChatTurn]:
        """User and assistant text turns, for display."""
        return [turn for turn in self._transcript if turn.is_visible]

    # -------------------------------------------------------------------------
    # Session control
    # -------------------------------------------------------------------------

    def restart(self, today: Optional[date] = None) -> None:
        """Start a fresh conversation; "today" is re-derived."""
        if self.is_busy:
            raise SessionBusyError("Cannot restart while a message is in progress")
        self._transcript = []
        self._today = today or date.today()
        self._system_instruction = build_system_instruction(self._today, self._currency_symbol)
        logger.info("chat_session_restarted", today=self._today.isoformat())

    def use_model(self, model: LanguageModel) -> None:
        """Swap the language model (e.g. after the user enters a new API key)."""
        if self.is_busy:
            raise SessionBusyError("Cannot change model while a message is in progress")
        self._model = model
        logger.info("chat_model_changed", model=model.model_name)

    # -------------------------------------------------------------------------
    # Chat loop
    # -------------------------------------------------------------------------

    async def send_message(self, text: str) -> ChatReply:
        """
        Handle one user message through to a final reply.

        Raises:
            SessionBusyError: a previous message is still being handled
            ValueError: the message is empty
        """
        if self.is_busy:
            raise SessionBusyError("A message is already being processed")
        text = (text or "").strip()
        if not text:
            raise ValueError("Message is empty")

        # Claimed before the first await so a concurrent call sees the session busy
        self._state = SessionState.AWAITING_MODEL
        try:
            return await self._handle(text)
        finally:
            self._state = SessionState.IDLE

    async def _handle(self, text: str) -> ChatReply:
        correlation_id = create_correlation_id()
        language = detect_reply_language(text)
        self._transcript.append(ChatTurn(role=ChatRole.USER, content=text))

        if self._audit:
            await self._audit.log_message_received(
                text, language.value, correlation_id, script=detect_input_script(text)
            )

        results: list[ToolResult] = []
        try:
            return await self._run_loop(language, correlation_id, results)
        except ModelCredentialsError as e:
            logger.warning("model_credentials_rejected", model=self._model.model_name, error=str(e))
            if self._audit:
                await self._audit.log_credentials_rejected(self._model.model_name, correlation_id)
            return self._finish(
                CREDENTIALS_NEEDED, ReplyStatus.NEEDS_CREDENTIALS, language, correlation_id, results
            )
        except ModelError as e:
            logger.error("model_unavailable", model=self._model.model_name, error=str(e))
            if self._audit:
                await self._audit.log_external_service_error("language_model", str(e), correlation_id)
            return self._finish(APOLOGY, ReplyStatus.FAILED, language, correlation_id, results)
        except StoreUnavailableError as e:
            logger.error("ledger_store_unavailable", error=str(e))
            if self._audit:
                await self._audit.log_external_service_error("ledger_store", str(e), correlation_id)
            return self._finish(APOLOGY, ReplyStatus.FAILED, language, correlation_id, results)
        except Exception as e:
            # Unmapped SDK or backend failures still end the turn with an apology
            logger.exception("chat_turn_failed", error_type=type(e).__name__)
            if self._audit:
                await self._audit.log_external_service_error(
                    "chat_turn", f"{type(e).__name__}: {e}", correlation_id
                )
            return self._finish(APOLOGY, ReplyStatus.FAILED, language, correlation_id, results)

    async def _run_loop(
        self,
        language: ReplyLanguage,
        correlation_id: UUID,
        results: list[ToolResult],
    ) -> ChatReply:
        rounds = 0
        while True:
            self._state = SessionState.AWAITING_MODEL
            turn = await self._model.send_turn(
                self._system_instruction,
                list(self._transcript),
                self._tools,
            )
            if self._audit:
                await self._audit.log_model_turn(rounds + 1, len(turn.tool_calls), correlation_id)

            if not turn.wants_tools:
                text = turn.text or get_message(EMPTY_ANSWER, language)
                self._transcript.append(ChatTurn(role=ChatRole.ASSISTANT, content=text))
                return ChatReply(
                    text=text,
                    status=ReplyStatus.ANSWERED,
                    language=language,
                    tool_results=results,
                    correlation_id=correlation_id,
                )

            if rounds >= self._max_tool_iterations:
                logger.warning(
                    "tool_iteration_limit_reached",
                    limit=self._max_tool_iterations,
                    correlation_id=str(correlation_id),
                )
                if self._audit:
                    await self._audit.log_iteration_limit(self._max_tool_iterations, correlation_id)
                return self._finish(
                    ITERATION_LIMIT, ReplyStatus.ITERATION_LIMIT, language, correlation_id, results
                )

            self._state = SessionState.EXECUTING_TOOLS
            round_results = await self._executor.execute_all(turn.tool_calls, correlation_id)

            # Calls and their results join the transcript together, only once all succeeded
            self._transcript.append(ChatTurn(
                role=ChatRole.ASSISTANT,
                content=turn.text,
                tool_calls=turn.tool_calls,
            ))
            self._transcript.append(ChatTurn(role=ChatRole.TOOL, tool_results=round_results))
            results.extend(round_results)
            rounds += 1

    def _finish(
        self,
        message_key: str,
        status: ReplyStatus,
        language: ReplyLanguage,
        correlation_id: UUID,
        results: list[ToolResult],
    ) -> ChatReply:
        """End the turn with an orchestrator-written reply."""
        text = get_message(message_key, language)
        self._transcript.append(ChatTurn(role=ChatRole.ASSISTANT, content=text))
        return ChatReply(
            text=text,
            status=status,
            language=language,
            tool_results=results,
            correlation_id=correlation_id,
        )


def build_language_model(settings: Settings, api_key: Optional[str] = None) -> LanguageModel:
    """
    Gemini model from settings, optionally with a user-supplied key.

    Falls back to UnconfiguredLanguageModel when no key is available, so
    the first message prompts for one.
    """
    app = settings.app
    if api_key:
        # Init arguments take precedence over GEMINI_API_KEY
        gemini = GeminiSettings(api_key=api_key.strip())
        return GeminiLanguageModel.from_settings(gemini, app)

    try:
        gemini = settings.gemini
    except Exception as e:
        logger.warning("gemini_not_configured", reason=str(e).splitlines()[0])
        return UnconfiguredLanguageModel()
    return GeminiLanguageModel.from_settings(gemini, app)


def create_app_components(
    settings: Optional[Settings] = None,
    event_bus: Optional[EventBus] = None,
    model: Optional[LanguageModel] = None,
    store: Optional[LedgerStore] = None,
    today: Optional[date] = None,
) -> tuple[LedgerChatSession, LedgerStore, EventBus]:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use (defaults to get_settings())
        event_bus: Bus shared by store, tools and views (defaults to the process bus)
        model: Language model (defaults to Gemini from settings)
        store: Ledger store (defaults to the configured backend)
        today: Session start date (defaults to date.today())

    Returns:
        (chat_session, ledger_store, event_bus)
    """
    settings = settings or get_settings()
    app = settings.app
    event_bus = event_bus or get_event_bus()

    audit_logger = AuditLogger(create_audit_storage(settings))
    store = store or create_ledger_store(settings, event_bus, audit_logger)
    executor = ToolExecutor(store, event_bus=event_bus, audit_logger=audit_logger)

    session = LedgerChatSession(
        model=model or build_language_model(settings),
        executor=executor,
        audit_logger=audit_logger,
        max_tool_iterations=app.max_tool_iterations,
        currency_symbol=app.currency_symbol,
        today=today,
    )
    return session, store, event_bus
