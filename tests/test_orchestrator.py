"""
Tests for the chat session state machine.

The model is scripted, so these tests pin down what the orchestrator
does with whatever the model answers: how many rounds run, what lands in
the transcript and the ledger, and which reply the user sees.
"""

import asyncio

import pytest

from conftest import TODAY, ScriptedModel, lunch_fields, text_turn, tool_turn
from ledger_agent.agents import (
    GeminiLanguageModel,
    ModelCredentialsError,
    ModelUnavailableError,
    UnconfiguredLanguageModel,
)
from ledger_agent.config import Settings
from ledger_agent.events import EventBus
from ledger_agent.models.chat import ChatRole, ModelTurn, ReplyLanguage, ReplyStatus
from ledger_agent.models.events import EventType
from ledger_agent.models.transaction import TransactionKind
from ledger_agent.orchestrator import (
    LedgerChatSession,
    SessionBusyError,
    SessionState,
    build_language_model,
    create_app_components,
)
from ledger_agent.policy.messages import (
    APOLOGY,
    CREDENTIALS_NEEDED,
    EMPTY_ANSWER,
    ITERATION_LIMIT,
    get_message,
)
from ledger_agent.services.storage import LocalJsonLedgerStore
from ledger_agent.tools import ToolExecutor


LUNCH_CALL = ("addTransaction", {
    "date": TODAY.isoformat(),
    "kind": "expense",
    "category": "Food",
    "amount": 150,
    "description": "午餐",
})


@pytest.fixture
def make_session(executor, audit_logger):
    def factory(script, max_tool_iterations=8):
        model = ScriptedModel(script)
        session = LedgerChatSession(
            model=model,
            executor=executor,
            audit_logger=audit_logger,
            max_tool_iterations=max_tool_iterations,
            today=TODAY,
        )
        return session, model
    return factory


class TestChatFlow:
    """Tests for the normal message flow."""

    @pytest.mark.asyncio
    async def test_plain_answer(self, make_session):
        """Test a reply with no tool calls."""
        session, model = make_session([text_turn("Hello! What would you like to record?")])

        reply = await session.send_message("hi")

        assert reply.status == ReplyStatus.ANSWERED
        assert reply.text == "Hello! What would you like to record?"
        assert reply.tool_results == []
        assert [t.role for t in session.transcript] == [ChatRole.USER, ChatRole.ASSISTANT]
        assert session.state == SessionState.IDLE

    @pytest.mark.asyncio
    async def test_lunch_adds_exactly_one_transaction(self, make_session, store):
        """Test that a complete expense message results in one addTransaction."""
        session, model = make_session([
            tool_turn(LUNCH_CALL),
            text_turn("已記錄今天午餐 $150.00。"),
        ])

        reply = await session.send_message("今天午餐花了150元")

        transactions = await store.get_all()
        assert len(transactions) == 1
        assert transactions[0].category == "Food"
        assert transactions[0].kind == TransactionKind.EXPENSE
        assert transactions[0].date == TODAY
        assert reply.tool_names == ["addTransaction"]
        assert reply.language == ReplyLanguage.TRADITIONAL_CHINESE
        assert reply.text == "已記錄今天午餐 $150.00。"

    @pytest.mark.asyncio
    async def test_missing_category_gets_a_question(self, make_session, store):
        """Test that an ambiguous expense produces a question and no write."""
        question = "請問這筆是什麼類型的支出？（例如：餐飲、交通、購物等）"
        session, model = make_session([text_turn(question)])

        reply = await session.send_message("今天花了150元")

        assert reply.text == question
        assert reply.tool_results == []
        assert await store.get_all() == []

    @pytest.mark.asyncio
    async def test_off_topic_is_redirected_without_tools(self, make_session, store):
        """Test that a joke request gets a redirect and touches nothing."""
        redirect = "I can only help with your ledger. Would you like to record a transaction?"
        session, model = make_session([text_turn(redirect)])

        reply = await session.send_message("Tell me a joke")

        assert reply.text == redirect
        assert reply.language == ReplyLanguage.ENGLISH
        assert await store.get_all() == []
        assert len(model.calls) == 1
        assert "Never respond to" in model.calls[0]["system_instruction"]

    @pytest.mark.asyncio
    async def test_multiple_tool_rounds(self, make_session, store):
        """Test N tool rounds followed by a final answer."""
        transaction = await store.add(lunch_fields())
        session, model = make_session([
            tool_turn(("queryTransactions", {"category": "Food"})),
            tool_turn(("deleteTransaction", {"id": transaction.id})),
            text_turn("Deleted your lunch."),
        ])

        reply = await session.send_message("delete today's lunch")

        assert reply.status == ReplyStatus.ANSWERED
        assert reply.tool_names == ["queryTransactions", "deleteTransaction"]
        assert await store.get_all() == []
        assert len(model.calls) == 3
        assert [t.role for t in session.transcript] == [
            ChatRole.USER,
            ChatRole.ASSISTANT, ChatRole.TOOL,
            ChatRole.ASSISTANT, ChatRole.TOOL,
            ChatRole.ASSISTANT,
        ]
        # The second round-trip sees the first round's results
        second_transcript = model.calls[1]["transcript"]
        assert second_transcript[-1].role == ChatRole.TOOL
        assert second_transcript[-1].tool_results[0].output["count"] == 1

    @pytest.mark.asyncio
    async def test_several_calls_in_one_turn_run_in_order(self, make_session, store):
        """Test that every call of a turn is executed, in order, before the next model call."""
        session, model = make_session([
            tool_turn(LUNCH_CALL, ("queryTransactions", {})),
            text_turn("Done."),
        ])

        reply = await session.send_message("lunch 150 and show me everything")

        assert reply.tool_names == ["addTransaction", "queryTransactions"]
        assert reply.tool_results[1].output["count"] == 1
        tool_turn_entry = model.calls[1]["transcript"][-1]
        assert [r.call_id for r in tool_turn_entry.tool_results] == [
            c.call_id for c in session.transcript[1].tool_calls
        ]

    @pytest.mark.asyncio
    async def test_tool_errors_go_back_to_the_model(self, make_session, store):
        """Test that a rejected call is answered to the model, not the user."""
        session, model = make_session([
            tool_turn(("addTransaction", {**LUNCH_CALL[1], "category": "Uncategorized"})),
            text_turn("What category is this expense?"),
        ])

        reply = await session.send_message("lunch 150")

        assert reply.status == ReplyStatus.ANSWERED
        assert reply.text == "What category is this expense?"
        assert not reply.tool_results[0].ok
        assert await store.get_all() == []

    @pytest.mark.asyncio
    async def test_empty_final_answer(self, make_session):
        """Test the fallback text when the model finishes with nothing to say."""
        session, model = make_session([tool_turn(LUNCH_CALL), ModelTurn()])

        reply = await session.send_message("今天午餐花了150元")

        assert reply.status == ReplyStatus.ANSWERED
        assert reply.text == get_message(EMPTY_ANSWER, ReplyLanguage.TRADITIONAL_CHINESE)

    @pytest.mark.asyncio
    async def test_empty_message_is_rejected(self, make_session):
        """Test that blank input never reaches the model."""
        session, model = make_session([text_turn("unused")])

        with pytest.raises(ValueError):
            await session.send_message("   ")
        assert model.calls == []
        assert session.transcript == []


class TestIterationLimit:
    """Tests for the bounded tool loop."""

    @pytest.mark.asyncio
    async def test_endless_tool_calls_stop_at_the_limit(self, make_session):
        """Test that a model that never stops calling tools is cut off."""
        session, model = make_session(
            [tool_turn(("queryTransactions", {}))],
            max_tool_iterations=3,
        )

        reply = await session.send_message("how much did I spend?")

        assert reply.status == ReplyStatus.ITERATION_LIMIT
        assert reply.text == get_message(ITERATION_LIMIT, ReplyLanguage.ENGLISH)
        assert len(reply.tool_results) == 3
        assert len(model.calls) == 4
        assert session.transcript[-1].content == reply.text
        assert session.state == SessionState.IDLE

    @pytest.mark.asyncio
    async def test_limit_is_audited(self, make_session, audit_storage):
        """Test the iteration-limit audit event."""
        session, model = make_session([tool_turn(("queryTransactions", {}))], max_tool_iterations=1)

        await session.send_message("loop")

        assert "iteration_limit_reached" in audit_storage.types()

    def test_limit_must_be_positive(self, executor):
        """Test constructor validation."""
        with pytest.raises(ValueError):
            LedgerChatSession(ScriptedModel([]), executor, max_tool_iterations=0)


class TestFailures:
    """Tests for failures that end the turn."""

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, make_session, audit_storage):
        """Test that a rejected key asks for a new one without leaking the error."""
        session, model = make_session([ModelCredentialsError("API key expired: sk-123")])

        reply = await session.send_message("lunch 150")

        assert reply.status == ReplyStatus.NEEDS_CREDENTIALS
        assert reply.text == get_message(CREDENTIALS_NEEDED, ReplyLanguage.ENGLISH)
        assert "sk-123" not in reply.text
        assert "model_credentials_rejected" in audit_storage.types()

    @pytest.mark.asyncio
    async def test_new_model_after_credentials_failure(self, make_session):
        """Test that the conversation continues after swapping the model."""
        session, model = make_session([ModelCredentialsError("bad key")])
        await session.send_message("hi")

        session.use_model(ScriptedModel([text_turn("Hello again")]))
        reply = await session.send_message("hi")

        assert reply.status == ReplyStatus.ANSWERED
        assert reply.text == "Hello again"

    @pytest.mark.asyncio
    async def test_unconfigured_model_asks_for_key(self, executor):
        """Test that a missing API key surfaces on the first message."""
        session = LedgerChatSession(UnconfiguredLanguageModel(), executor, today=TODAY)

        reply = await session.send_message("午餐 150")

        assert reply.status == ReplyStatus.NEEDS_CREDENTIALS
        assert reply.language == ReplyLanguage.TRADITIONAL_CHINESE

    @pytest.mark.asyncio
    async def test_model_unavailable(self, make_session, audit_storage):
        """Test that a transport failure becomes a localized apology."""
        session, model = make_session([ModelUnavailableError("503 upstream connect error")])

        reply = await session.send_message("今天午餐花了150元")

        assert reply.status == ReplyStatus.FAILED
        assert reply.text == get_message(APOLOGY, ReplyLanguage.TRADITIONAL_CHINESE)
        assert "503" not in reply.text
        assert "external_service_error" in audit_storage.types()
        assert session.state == SessionState.IDLE

    @pytest.mark.asyncio
    async def test_unexpected_error_ends_turn_with_apology(self, make_session, audit_storage):
        """Test that an unmapped failure is audited and answered, and the session goes on."""
        session, model = make_session([RuntimeError("boom"), text_turn("Back again")])

        reply = await session.send_message("lunch 150")

        assert reply.status == ReplyStatus.FAILED
        assert reply.text == get_message(APOLOGY, ReplyLanguage.ENGLISH)
        assert "boom" not in reply.text
        assert [t.role for t in session.transcript] == [ChatRole.USER, ChatRole.ASSISTANT]
        assert "external_service_error" in audit_storage.types()
        assert session.state == SessionState.IDLE

        follow_up = await session.send_message("hi")
        assert follow_up.text == "Back again"
        assert [t.role for t in model.calls[1]["transcript"]][-2:] == [ChatRole.ASSISTANT, ChatRole.USER]

    @pytest.mark.asyncio
    async def test_store_unavailable_leaves_no_dangling_tool_turn(self, tmp_path, audit_logger):
        """Test that a dead backend ends the turn cleanly."""
        path = tmp_path / "ledger.json"
        path.write_text("{broken", encoding="utf-8")
        model = ScriptedModel([tool_turn(("queryTransactions", {})), text_turn("unused")])
        session = LedgerChatSession(
            model,
            ToolExecutor(LocalJsonLedgerStore(path)),
            audit_logger=audit_logger,
            today=TODAY,
        )

        reply = await session.send_message("show my expenses")

        assert reply.status == ReplyStatus.FAILED
        assert reply.text == get_message(APOLOGY, ReplyLanguage.ENGLISH)
        assert [t.role for t in session.transcript] == [ChatRole.USER, ChatRole.ASSISTANT]
        assert session.transcript[-1].tool_calls == []
        assert len(model.calls) == 1


class TestSessionState:
    """Tests for busy handling, restart and auditing."""

    @pytest.mark.asyncio
    async def test_second_message_while_busy_is_rejected(self, executor):
        """Test that a concurrent send is rejected, not queued."""
        release = asyncio.Event()

        class SlowModel(ScriptedModel):
            async def send_turn(self, system_instruction, transcript, tools):
                await release.wait()
                return await super().send_turn(system_instruction, transcript, tools)

        model = SlowModel([text_turn("first answer")])
        session = LedgerChatSession(model, executor, today=TODAY)

        first = asyncio.create_task(session.send_message("first"))
        await asyncio.sleep(0)

        assert session.is_busy
        assert session.state == SessionState.AWAITING_MODEL
        with pytest.raises(SessionBusyError):
            await session.send_message("second")
        with pytest.raises(SessionBusyError):
            session.restart()

        release.set()
        reply = await first

        assert reply.text == "first answer"
        assert session.state == SessionState.IDLE
        assert [t.content for t in session.messages] == ["first", "first answer"]

    @pytest.mark.asyncio
    async def test_state_while_tools_run(self, make_session, event_bus):
        """Test that the session reports EXECUTING_TOOLS during tool calls."""
        session, model = make_session([tool_turn(LUNCH_CALL), text_turn("ok")])
        seen = []
        event_bus.subscribe(EventType.TRANSACTION_ADDED, lambda e: seen.append(session.state))

        await session.send_message("lunch 150")

        assert seen == [SessionState.EXECUTING_TOOLS]

    @pytest.mark.asyncio
    async def test_restart_clears_transcript(self, make_session):
        """Test that restart starts a fresh conversation with a new date."""
        session, model = make_session([text_turn("hi")])
        await session.send_message("hello")

        session.restart(today=TODAY.replace(day=21))

        assert session.transcript == []
        assert session.today == TODAY.replace(day=21)
        assert "2025-03-21" in session.system_instruction

    @pytest.mark.asyncio
    async def test_one_correlation_id_per_message(self, make_session, audit_storage):
        """Test that every audit event of a turn shares the reply's correlation id."""
        session, model = make_session([tool_turn(LUNCH_CALL), text_turn("ok")])

        reply = await session.send_message("lunch 150")

        turn_events = [e for e in audit_storage.events if e.correlation_id == reply.correlation_id]
        types = [e.event_type.value for e in turn_events]
        assert types[0] == "message_received"
        assert "tool_call_executed" in types
        assert types.count("model_turn_completed") == 2
        assert "transaction_added" in types

    @pytest.mark.asyncio
    async def test_input_script_is_audited(self, make_session, audit_storage):
        """Test that the Chinese variant of the message is recorded, while the reply stays zh-TW."""
        session, model = make_session([text_turn("好的")])

        reply = await session.send_message("这个月花了多少")

        received = [e for e in audit_storage.events if e.event_type.value == "message_received"]
        assert received[0].details["script"] == "zh-CN"
        assert reply.language == ReplyLanguage.TRADITIONAL_CHINESE

    @pytest.mark.asyncio
    async def test_turn_events_can_be_read_back(self, make_session):
        """Test looking up what happened for one reply through the session's audit logger."""
        session, model = make_session([tool_turn(LUNCH_CALL), text_turn("ok")])

        reply = await session.send_message("lunch 150")

        events = await session.audit_logger.events_for_turn(reply.correlation_id)
        assert events[0].event_type.value == "message_received"
        assert any(e.event_type.value == "transaction_added" for e in events)

    @pytest.mark.asyncio
    async def test_tools_are_offered_every_round(self, make_session):
        """Test that the tool contract is sent with each model call."""
        session, model = make_session([tool_turn(LUNCH_CALL), text_turn("ok")])

        await session.send_message("lunch 150")

        for recorded in model.calls:
            assert [spec.name.value for spec in recorded["tools"]] == [
                "addTransaction", "queryTransactions", "deleteTransaction", "printReport",
            ]


class TestAppComponents:
    """Tests for wiring the application together."""

    @pytest.mark.asyncio
    async def test_create_app_components_local(self, tmp_path, monkeypatch):
        """Test the local backend wiring end to end."""
        monkeypatch.setenv("LEDGER_BACKEND", "local")
        monkeypatch.setenv("LOCAL_STORE_PATH", str(tmp_path / "ledger.json"))
        monkeypatch.setenv("MAX_TOOL_ITERATIONS", "2")
        bus = EventBus()

        session, store, event_bus = create_app_components(
            Settings(),
            event_bus=bus,
            model=ScriptedModel([tool_turn(LUNCH_CALL), text_turn("ok")]),
            today=TODAY,
        )

        assert isinstance(store, LocalJsonLedgerStore)
        assert event_bus is bus
        reply = await session.send_message("lunch 150")
        assert reply.status == ReplyStatus.ANSWERED
        assert len(await store.get_all()) == 1

    def test_build_language_model_without_key(self, tmp_path, monkeypatch):
        """Test the stand-in model when no key is configured."""
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.chdir(tmp_path)
        assert isinstance(build_language_model(Settings()), UnconfiguredLanguageModel)

    def test_build_language_model_with_user_key(self, monkeypatch):
        """Test that a user-supplied key builds a Gemini model."""
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        model = build_language_model(Settings(), api_key="  user-key  ")
        assert isinstance(model, GeminiLanguageModel)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
