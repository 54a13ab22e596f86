"""
Streamlit Frontend for Ledger Agent

The interface a single user works with every day: a chat assistant, the
ledger itself, a printable report and a settings page.

DESIGN PRINCIPLES:
1. The form and the assistant go through the same ledger store
2. Views react to bus events instead of polling the store
3. Errors are shown in plain language, never as raw backend text
4. Nothing is deleted without an explicit click

The chat assistant reports what it did through events:
- transaction-added: the ledger view jumps to and highlights the new row
- transaction-deleted: the ledger view refreshes
- print-report-requested: the report view opens for the requested period
"""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Optional

import streamlit as st
import streamlit.components.v1 as components

from ledger_agent.config import get_settings, validate_all_settings
from ledger_agent.models import (
    EventType,
    QueryFilter,
    ReplyStatus,
    TransactionKind,
    allowed_categories,
    summarize_totals,
)
from ledger_agent.audit import AuditLogger
from ledger_agent.orchestrator import (
    LedgerChatSession,
    SessionBusyError,
    build_language_model,
    create_app_components,
)
from ledger_agent.policy import (
    detect_reply_language,
    format_currency,
    get_message,
    suggest_category,
    suggest_kind,
)
from ledger_agent.policy.messages import BUSY
from ledger_agent.services.demo_data import subtract_months
from ledger_agent.services.storage import (
    LedgerStore,
    StorageError,
    StoreUnavailableError,
    ValidationError,
    prepare_ledger,
)


# Page configuration
st.set_page_config(
    page_title="Ledger Agent",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
    }
    .highlight-row {
        padding: 8px 12px;
        background-color: #fff3cd;
        border-radius: 8px;
        border-left: 5px solid #ffc107;
        margin: 4px 0;
    }
    @media print {
        section[data-testid="stSidebar"], header, .stButton { display: none; }
    }
</style>
""", unsafe_allow_html=True)

PAGES = ["💬 Chat", "📒 Ledger", "📊 Report", "⚙️ Settings"]


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components():
    """Get or create application components (cached; one user per process)."""
    return create_app_components()


def init_state():
    defaults = {
        "page": PAGES[0],
        "highlight_id": None,
        "ledger_focus_date": None,
        "report_request": None,
        "needs_api_key": False,
        "ledger_prepared": False,
        "pending_page": None,
        "last_correlation_id": None,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


# =============================================================================
# EVENT HANDLERS
# =============================================================================

def on_transaction_added(event):
    st.session_state.highlight_id = event.transaction_id
    st.session_state.ledger_focus_date = event.date


def on_transaction_deleted(event):
    if st.session_state.highlight_id == event.transaction_id:
        st.session_state.highlight_id = None


def on_print_report(event):
    st.session_state.report_request = {
        "report_type": event.report_type,
        "date_start": event.date_start,
        "date_end": event.date_end,
        "print": True,
    }
    st.session_state.pending_page = PAGES[2]


def main():
    """Main application entry point."""
    init_state()
    session, store, event_bus = get_components()
    settings = get_settings()

    if not st.session_state.ledger_prepared:
        try:
            run_async(prepare_ledger(store, enabled=settings.app.demo_data_enabled))
        except StoreUnavailableError:
            st.error("The ledger could not be loaded. Check the storage settings.")
        st.session_state.ledger_prepared = True

    # Sidebar navigation
    st.sidebar.title("💰 Ledger Agent")
    st.sidebar.markdown("---")

    # A widget key cannot change after the widget is drawn, so event handlers queue the switch
    if st.session_state.pending_page:
        st.session_state.page = st.session_state.pending_page
        st.session_state.pending_page = None
    page = st.sidebar.radio("Navigate to:", PAGES, key="page")

    st.sidebar.markdown("---")
    if st.sidebar.button("🔄 New conversation"):
        session.restart()
        st.session_state.needs_api_key = False
        st.session_state.last_correlation_id = None
        st.rerun()

    st.sidebar.markdown(
        """
        **Try asking:**
        - "Lunch 120"
        - "How much did I spend on food this month?"
        - "昨天搭計程車 250"
        - "Print this month's report"
        """
    )

    if page == PAGES[0]:
        render_chat_page(session, event_bus)
    elif page == PAGES[1]:
        render_ledger_page(store)
    elif page == PAGES[2]:
        render_report_page(store)
    elif page == PAGES[3]:
        render_settings_page(store, session.audit_logger)


# =============================================================================
# CHAT
# =============================================================================

def render_chat_page(session: LedgerChatSession, event_bus):
    st.title("💬 Chat")
    st.caption(f"Today is {session.today.isoformat()}")

    for turn in session.messages:
        with st.chat_message(turn.role.value):
            st.markdown(turn.content)

    if st.session_state.last_correlation_id and session.audit_logger:
        render_turn_details(session.audit_logger, st.session_state.last_correlation_id)

    if st.session_state.needs_api_key:
        render_api_key_form(session)

    prompt = st.chat_input(
        "Tell me about an expense, or ask about your ledger...",
        disabled=session.is_busy,
    )
    if not prompt:
        return

    with st.chat_message("user"):
        st.markdown(prompt)

    try:
        with event_bus.subscription(EventType.TRANSACTION_ADDED, on_transaction_added), \
                event_bus.subscription(EventType.TRANSACTION_DELETED, on_transaction_deleted), \
                event_bus.subscription(EventType.PRINT_REPORT_REQUESTED, on_print_report):
            with st.spinner("Thinking..."):
                reply = run_async(session.send_message(prompt))
    except SessionBusyError:
        st.warning(get_message(BUSY, detect_reply_language(prompt)))
        return

    st.session_state.last_correlation_id = reply.correlation_id
    st.session_state.needs_api_key = reply.status == ReplyStatus.NEEDS_CREDENTIALS
    st.rerun()


def render_api_key_form(session: LedgerChatSession):
    with st.form("api_key_form"):
        st.markdown("#### 🔑 Gemini API key")
        api_key = st.text_input("API key", type="password")
        submitted = st.form_submit_button("Use this key")

    if submitted and api_key.strip():
        session.use_model(build_language_model(get_settings(), api_key=api_key))
        st.session_state.needs_api_key = False
        st.success("API key saved for this session. Send your message again.")


def render_turn_details(audit_logger: AuditLogger, correlation_id):
    if not audit_logger.has_storage:
        return
    with st.expander("🔎 What happened in the last reply"):
        try:
            events = run_async(audit_logger.events_for_turn(correlation_id))
        except StorageError:
            st.caption("The audit log could not be loaded.")
            return
        for event in events:
            st.markdown(f"- `{event.timestamp:%H:%M:%S}` {event.description}")


# =============================================================================
# LEDGER
# =============================================================================

def render_ledger_page(store: LedgerStore):
    st.title("📒 Ledger")

    render_entry_form(store)
    st.markdown("---")

    today = date.today()
    focus = st.session_state.ledger_focus_date

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        date_start = st.date_input(
            "From",
            value=min(focus, today.replace(day=1)) if focus else today.replace(day=1),
        )
    with col2:
        date_end = st.date_input("To", value=max(focus, today) if focus else today)
    with col3:
        kind = st.selectbox(
            "Type",
            options=[None] + list(TransactionKind),
            format_func=lambda x: "All" if x is None else x.value.title(),
        )
    with col4:
        category = st.text_input("Category contains")

    if date_start > date_end:
        st.error("The start date cannot be after the end date.")
        return

    try:
        transactions = run_async(store.query(QueryFilter(
            date_start=date_start,
            date_end=date_end,
            kind=kind,
            category=category or None,
        )))
    except StoreUnavailableError:
        st.error("The ledger could not be loaded. Please try again later.")
        return

    symbol = get_settings().app.currency_symbol
    totals = summarize_totals(transactions)
    col1, col2, col3 = st.columns(3)
    col1.metric("Income", format_currency(totals["income"], symbol))
    col2.metric("Expense", format_currency(totals["expense"], symbol))
    col3.metric("Net", format_currency(totals["net"], symbol))

    if not transactions:
        st.info("No transactions match these filters.")
        return

    for transaction in transactions:
        line = (
            f"**{transaction.date.isoformat()}** · {transaction.category} · "
            f"{format_currency(transaction.signed_amount, symbol)} · {transaction.description}"
        )
        col1, col2 = st.columns([8, 1])
        with col1:
            if transaction.id == st.session_state.highlight_id:
                st.markdown(f'<div class="highlight-row">✨ {line}</div>', unsafe_allow_html=True)
            else:
                st.markdown(line)
        with col2:
            if st.button("🗑️", key=f"delete_{transaction.id}", help="Delete this transaction"):
                run_async(store.delete(transaction.id))
                st.rerun()


def render_entry_form(store: LedgerStore):
    st.markdown("### Add a transaction")

    description = st.text_input("Description", key="entry_description")
    suggested = suggest_category(description)

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        entry_date = st.date_input("Date", value=date.today(), key="entry_date")
    with col2:
        kinds = list(TransactionKind)
        default_kind = suggest_kind(suggested) if suggested else TransactionKind.EXPENSE
        kind = st.selectbox(
            "Type",
            options=kinds,
            index=kinds.index(default_kind),
            format_func=lambda x: x.value.title(),
            key="entry_kind",
        )
    with col3:
        categories = list(allowed_categories(kind))
        category = st.selectbox(
            "Category",
            options=categories,
            index=categories.index(suggested) if suggested in categories else 0,
            key=f"entry_category_{kind.value}",
        )
    with col4:
        amount = st.number_input("Amount", min_value=0.0, step=1.0, format="%.2f", key="entry_amount")

    if st.button("➕ Add", type="primary"):
        try:
            transaction = run_async(store.add({
                "date": entry_date,
                "kind": kind,
                "category": category,
                "amount": Decimal(str(amount)),
                "description": description,
            }))
        except ValidationError as e:
            for issue in e.issues:
                st.error(f"{issue.field}: {issue.message}")
            return
        except StoreUnavailableError:
            st.error("The transaction could not be saved. Please try again later.")
            return
        st.session_state.highlight_id = transaction.id
        st.success("Transaction added.")
        st.rerun()


# =============================================================================
# REPORT
# =============================================================================

def render_report_page(store: LedgerStore):
    st.title("📊 Report")

    today = date.today()
    request = st.session_state.report_request or {
        "report_type": "monthly",
        "date_start": today.replace(day=1),
        "date_end": today,
        "print": False,
    }

    col1, col2 = st.columns(2)
    with col1:
        date_start = st.date_input("From", value=request["date_start"], key="report_start")
    with col2:
        date_end = st.date_input("To", value=request["date_end"], key="report_end")

    if date_start > date_end:
        st.error("The start date cannot be after the end date.")
        return

    try:
        transactions = run_async(store.query(QueryFilter(date_start=date_start, date_end=date_end)))
        previous = run_async(store.query(QueryFilter(
            date_start=subtract_months(date_start, 1),
            date_end=subtract_months(date_end, 1),
        )))
    except StoreUnavailableError:
        st.error("The ledger could not be loaded. Please try again later.")
        return

    symbol = get_settings().app.currency_symbol
    totals = summarize_totals(transactions)
    previous_totals = summarize_totals(previous)

    st.markdown(f"#### {request['report_type'].title()} report: {date_start} to {date_end}")
    col1, col2, col3 = st.columns(3)
    col1.metric(
        "Income",
        format_currency(totals["income"], symbol),
        delta=format_currency(totals["income"] - previous_totals["income"], symbol),
    )
    col2.metric(
        "Expense",
        format_currency(totals["expense"], symbol),
        delta=format_currency(totals["expense"] - previous_totals["expense"], symbol),
        delta_color="inverse",
    )
    col3.metric("Net", format_currency(totals["net"], symbol))

    by_category: dict[str, Decimal] = {}
    for transaction in transactions:
        if transaction.kind == TransactionKind.EXPENSE:
            by_category[transaction.category] = (
                by_category.get(transaction.category, Decimal("0")) + transaction.amount
            )

    if by_category:
        st.markdown("#### Expenses by category")
        st.bar_chart({name: float(value) for name, value in by_category.items()})
        st.table([
            {"Category": name, "Amount": format_currency(value, symbol)}
            for name, value in sorted(by_category.items(), key=lambda item: item[1], reverse=True)
        ])
    else:
        st.info("No expenses in this period.")

    if request.get("print"):
        st.session_state.report_request = dict(request, print=False)
        components.html("<script>window.parent.print();</script>", height=0)
    elif st.button("🖨️ Print"):
        components.html("<script>window.parent.print();</script>", height=0)


# =============================================================================
# SETTINGS
# =============================================================================

def render_settings_page(store: LedgerStore, audit_logger: Optional[AuditLogger]):
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")
    status = validate_all_settings()

    services = [
        ("Google Sheets (Remote ledger)", "google_sheets"),
        ("Gemini (Assistant)", "gemini"),
        ("Application settings", "app"),
    ]
    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            st.warning(f"⚠️ {name} - Not configured")

    st.markdown(f"**Active ledger backend:** `{store.backend_name}`")

    st.markdown("---")
    st.markdown("### Demo data")
    st.markdown(
        "The ledger is refilled with demo data once a day. "
        "Reseeding now replaces **every** transaction."
    )
    confirm = st.checkbox("I understand all transactions will be replaced")
    if st.button("🔁 Reseed now", disabled=not confirm):
        try:
            run_async(store.reset_with_seed_data(force=True))
            st.session_state.highlight_id = None
            st.success("Ledger reseeded.")
        except StoreUnavailableError:
            st.error("The ledger could not be reseeded. Please try again later.")

    st.markdown("---")
    st.markdown("### Recent activity")
    render_recent_activity(audit_logger)

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the supported variables."
    )



def render_recent_activity(audit_logger: Optional[AuditLogger], limit: int = 20):
    if audit_logger is None or not audit_logger.has_storage:
        st.info("Audit events are only kept when the Google Sheets backend is configured.")
        return
    try:
        events = run_async(audit_logger.recent_events(limit))
    except StorageError:
        st.error("The audit log could not be loaded.")
        return
    if not events:
        st.caption("No activity recorded yet.")
        return
    st.table([
        {
            "Time": event.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            "Event": event.event_type.value,
            "Description": event.description,
        }
        for event in events
    ])

if __name__ == "__main__":
    main()
