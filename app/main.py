"""
Streamlit Frontend for Finanza

DESIGN PRINCIPLES:
1. Amounts are always entered and shown in the selected display currency
2. Incomplete forms do nothing and say what is missing
3. Paying a bill is an explicit action per bill
4. Visual feedback for all operations

Streamlit reruns the script on every interaction, so there is no
long-lived event loop for the hourly scheduler. Rates are refreshed lazily
instead: whenever a page renders and the table is older than the refresh
interval, plus on the "Update rates" button.
"""

import asyncio
from datetime import date
from typing import Optional
from decimal import Decimal

import streamlit as st

from finanza.agents import ReceiptParseError
from finanza.config import validate_all_settings
from finanza.currency import RefreshOutcome
from finanza.ledger import LedgerError, NotFoundError, SettlementError
from finanza.models.ledger import (
    CATEGORY_LABELS,
    EXPENSE_CATEGORIES,
    AccountDraft,
    AccountType,
    BillDraft,
    TransactionDraft,
    TransactionType,
    categories_for,
)
from finanza.models.rates import Currency, Theme, currency_symbol
from finanza.orchestrator import AppComponents, AppSession, create_app_components
from finanza.services.auth import AuthenticationError
from finanza.services.storage import StorageError


st.set_page_config(
    page_title="Finanza",
    page_icon="💸",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .big-number {
        font-size: 2.2em;
        font-weight: bold;
    }
    .overdue { color: #dc3545; font-weight: bold; }
    .soon { color: #d39e00; font-weight: bold; }
</style>
""", unsafe_allow_html=True)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    try:
        return create_app_components()
    except Exception as e:
        st.error(f"Failed to initialize storage: {e}")
        st.stop()


def get_session() -> Optional[AppSession]:
    session = st.session_state.get("app_session")
    if session is not None and session.active:
        return session
    return None


def refresh_rates_if_stale(components: AppComponents) -> None:
    if components.refresher.is_stale():
        run_async(components.refresher.refresh(trigger="page_load"))


def main():
    """Main application entry point."""
    components = get_components()
    refresh_rates_if_stale(components)

    session = get_session()
    if session is None and not st.session_state.get("restore_attempted"):
        st.session_state.restore_attempted = True
        session = run_async(components.session_manager.restore())
        st.session_state.app_session = session

    if session is None:
        render_auth_page(components)
        return

    st.sidebar.title("💸 Finanza")
    st.sidebar.caption(f"Signed in as **{session.user.username}**")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["📊 Dashboard", "➕ Add Transaction", "🏦 Accounts", "🧾 Bills", "🤖 Assistant", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    if st.sidebar.button("🚪 Log out"):
        run_async(components.session_manager.logout(session))
        st.session_state.app_session = None
        st.rerun()

    if page == "📊 Dashboard":
        render_dashboard_page(components, session)
    elif page == "➕ Add Transaction":
        render_transaction_page(components, session)
    elif page == "🏦 Accounts":
        render_accounts_page(components, session)
    elif page == "🧾 Bills":
        render_bills_page(components, session)
    elif page == "🤖 Assistant":
        render_assistant_page(components, session)
    elif page == "⚙️ Settings":
        render_settings_page(components, session)


def render_auth_page(components: AppComponents):
    st.title("💸 Finanza")
    login_tab, register_tab = st.tabs(["Log in", "Register"])

    with login_tab:
        with st.form("login_form"):
            username = st.text_input("Username")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Log in", type="primary")
        if submitted:
            try:
                st.session_state.app_session = run_async(
                    components.session_manager.login(username, password)
                )
                st.rerun()
            except AuthenticationError as e:
                st.error(str(e))

    with register_tab:
        with st.form("register_form"):
            username = st.text_input("Username", key="reg_username")
            email = st.text_input("Email", key="reg_email")
            password = st.text_input("Password", type="password", key="reg_password")
            submitted = st.form_submit_button("Create account", type="primary")
        if submitted:
            try:
                st.session_state.app_session = run_async(
                    components.session_manager.register(username, email, password)
                )
                st.rerun()
            except AuthenticationError as e:
                st.error(str(e))


def render_dashboard_page(components: AppComponents, session: AppSession):
    st.title("📊 Dashboard")
    view = components.ledger_flow.dashboard(session, today=date.today())
    sym = view.currency_symbol

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Income", f"{sym}{view.totals.income:,.2f}")
    col2.metric("Expenses", f"{sym}{view.totals.expense:,.2f}")
    col3.metric("Net", f"{sym}{view.totals.balance:,.2f}")
    col4.metric("All accounts", f"{sym}{view.total_account_balance:,.2f}")

    if view.alert_bills:
        st.markdown("### ⏰ Bills needing attention")
        for bill in view.alert_bills:
            css = "overdue" if bill.is_overdue else "soon"
            label = "Overdue" if bill.is_overdue else "Due soon"
            st.markdown(
                f'<span class="{css}">{label}</span> · {bill.name} · '
                f"{sym}{bill.amount:,.2f} · {bill.due_date.strftime('%d %b %Y')}",
                unsafe_allow_html=True,
            )

    left, right = st.columns(2)
    with left:
        st.markdown("### Spending by category")
        if view.category_breakdown:
            st.bar_chart({label: float(amount) for label, amount in view.category_breakdown.items()})
        else:
            st.info("No expenses recorded yet.")

    with right:
        st.markdown("### Recent transactions")
        if not view.recent_transactions:
            st.info("No transactions yet. Add one from the sidebar.")
        for t in view.recent_transactions[:15]:
            sign = "+" if t.type == TransactionType.INCOME else "-"
            st.markdown(
                f"**{t.description}** · {CATEGORY_LABELS[t.category]} · "
                f"{t.date.strftime('%d %b %Y')} · {sign}{sym}{t.amount:,.2f}"
            )


def _account_picker(session: AppSession, key: str) -> Optional[str]:
    accounts = session.ledger.accounts
    if not accounts:
        st.warning("Add an account first.")
        return None
    options = {a.id: a.name for a in accounts}
    return st.selectbox("Account", options=list(options), format_func=options.get, key=key)


def render_transaction_page(components: AppComponents, session: AppSession):
    st.title("➕ Add Transaction")
    sym = currency_symbol(session.display_currency)
    prefill = st.session_state.get("receipt_draft")

    if components.assistant_flow:
        with st.expander("📷 Scan a receipt"):
            uploaded = st.file_uploader("Receipt photo", type=["jpg", "jpeg", "png", "webp"])
            if uploaded and st.button("🔍 Read receipt"):
                with st.spinner("Reading receipt..."):
                    try:
                        extraction = run_async(
                            components.assistant_flow.scan_receipt(session, uploaded.getvalue())
                        )
                        st.session_state.receipt_draft = extraction
                        st.rerun()
                    except ReceiptParseError as e:
                        st.error(f"Could not read this receipt: {e}")

    tx_type = st.radio(
        "Type",
        options=list(TransactionType),
        format_func=lambda t: t.value.title(),
        horizontal=True,
        index=1,
    )
    categories = list(categories_for(tx_type))
    default_index = 0
    if prefill and prefill.category in categories and tx_type == TransactionType.EXPENSE:
        default_index = categories.index(prefill.category)

    with st.form("transaction_form"):
        amount = st.number_input(
            f"Amount ({sym})",
            min_value=0.0,
            step=0.01,
            value=float(prefill.amount) if prefill else 0.0,
        )
        description = st.text_input("Description", value=prefill.description if prefill else "")
        category = st.selectbox(
            "Category",
            options=categories,
            index=default_index,
            format_func=lambda c: CATEGORY_LABELS[c],
        )
        tx_date = st.date_input(
            "Date",
            value=prefill.date.date() if prefill and prefill.date else date.today(),
        )
        account_id = _account_picker(session, key="tx_account")
        submitted = st.form_submit_button("Save", type="primary")

    if submitted:
        draft = TransactionDraft(
            amount=Decimal(str(amount)),
            category=category,
            description=description,
            type=tx_type,
            date=tx_date,
            account_id=account_id,
        )
        try:
            transaction, result = run_async(components.ledger_flow.add_transaction(session, draft))
        except (LedgerError, StorageError) as e:
            st.error(str(e))
            return
        if transaction is None:
            st.warning(components.ledger_flow.validator.get_user_friendly_summary(result))
        else:
            st.session_state.receipt_draft = None
            st.success("✅ Transaction saved")
            if result.warnings:
                st.info("\n".join(result.warnings))


def render_accounts_page(components: AppComponents, session: AppSession):
    st.title("🏦 Accounts")
    normalizer = components.ledger_flow.normalizer(session)

    for account in session.ledger.accounts:
        col1, col2, col3 = st.columns([3, 2, 2])
        col1.markdown(f"**{account.name}**")
        col2.markdown(account.type.value.replace("_", " ").title())
        col3.markdown(normalizer.format(account.balance))

    st.markdown("---")
    st.markdown("### New account")
    with st.form("account_form"):
        name = st.text_input("Name")
        account_type = st.selectbox(
            "Type",
            options=list(AccountType),
            format_func=lambda t: t.value.replace("_", " ").title(),
        )
        balance = st.number_input(f"Opening balance ({normalizer.symbol})", step=0.01, value=0.0)
        submitted = st.form_submit_button("Add account", type="primary")

    if submitted:
        draft = AccountDraft(name=name, type=account_type, balance=Decimal(str(balance)))
        account, result = run_async(components.ledger_flow.add_account(session, draft))
        if account is None:
            st.warning(components.ledger_flow.validator.get_user_friendly_summary(result))
        else:
            st.rerun()


def render_bills_page(components: AppComponents, session: AppSession):
    st.title("🧾 Bills")
    normalizer = components.ledger_flow.normalizer(session)
    view = components.ledger_flow.dashboard(session, today=date.today())

    if not view.upcoming_bills:
        st.info("No unpaid bills. 🎉")

    for bill in view.upcoming_bills:
        col1, col2, col3, col4 = st.columns([3, 2, 2, 2])
        status = "🔴 Overdue" if bill.is_overdue else ("🟡 Soon" if bill.is_soon else "")
        col1.markdown(f"**{bill.name}** {status}")
        col2.markdown(f"{normalizer.symbol}{bill.amount:,.2f}")
        col3.markdown(bill.due_date.strftime("%d %b %Y"))
        with col4:
            if st.button("💳 Pay", key=f"pay_{bill.id}"):
                try:
                    run_async(components.ledger_flow.pay_bill(session, bill.id))
                    st.rerun()
                except (NotFoundError, SettlementError, StorageError) as e:
                    st.error(str(e))
            if st.button("🗑️ Delete", key=f"del_{bill.id}"):
                try:
                    run_async(components.ledger_flow.delete_bill(session, bill.id))
                    st.rerun()
                except (NotFoundError, StorageError) as e:
                    st.error(str(e))

    st.markdown("---")
    st.markdown("### New bill")
    with st.form("bill_form"):
        name = st.text_input("Name")
        amount = st.number_input(f"Amount ({normalizer.symbol})", min_value=0.0, step=0.01)
        due_date = st.date_input("Due date", value=date.today())
        category = st.selectbox(
            "Category",
            options=list(EXPENSE_CATEGORIES),
            index=list(EXPENSE_CATEGORIES).index(BillDraft().category),
            format_func=lambda c: CATEGORY_LABELS[c],
        )
        submitted = st.form_submit_button("Add bill", type="primary")

    if submitted:
        draft = BillDraft(name=name, amount=Decimal(str(amount)), due_date=due_date, category=category)
        bill, result = run_async(components.ledger_flow.add_bill(session, draft))
        if bill is None:
            st.warning(components.ledger_flow.validator.get_user_friendly_summary(result))
        else:
            st.rerun()


def render_assistant_page(components: AppComponents, session: AppSession):
    st.title("🤖 Assistant")
    if components.assistant_flow is None:
        st.error("The assistant is not configured. Set GEMINI_API_KEY in your .env file.")
        return

    if "chat_history" not in st.session_state:
        st.session_state.chat_history = []

    for role, text in st.session_state.chat_history:
        with st.chat_message(role):
            st.markdown(text)

    prompt = st.chat_input("Ask about budgeting, prices, news...")
    if prompt:
        st.session_state.chat_history.append(("user", prompt))
        with st.spinner("Thinking..."):
            reply = run_async(components.assistant_flow.ask(session, prompt))
        text = reply.text
        if reply.sources:
            links = "\n".join(f"- [{s.title or s.uri}]({s.uri})" for s in reply.sources)
            text = f"{text}\n\n**Sources:**\n{links}"
        st.session_state.chat_history.append(("assistant", text))
        st.rerun()


def render_settings_page(components: AppComponents, session: AppSession):
    st.title("⚙️ Settings")

    st.markdown("### Display")
    currencies = list(Currency)
    currency = st.selectbox(
        "Currency",
        options=currencies,
        index=currencies.index(session.preferences.display_currency),
        format_func=lambda c: f"{c.value} ({currency_symbol(c.value)})",
    )
    if currency != session.preferences.display_currency:
        run_async(components.session_manager.set_display_currency(session, currency))
        st.rerun()

    themes = list(Theme)
    theme = st.radio(
        "Theme",
        options=themes,
        index=themes.index(session.preferences.theme),
        format_func=lambda t: t.value.title(),
        horizontal=True,
    )
    if theme != session.preferences.theme:
        run_async(components.session_manager.set_theme(session, theme))
        st.rerun()

    st.markdown("### Exchange rates")
    table = components.refresher.table
    for code, rate in table.rates.items():
        if code != table.base_currency:
            st.markdown(f"1 {code} = {rate} {table.base_currency}")
    if components.refresher.last_success_at:
        st.caption(f"Last updated {components.refresher.last_success_at:%Y-%m-%d %H:%M} UTC")
    if st.button("🔄 Update rates"):
        with st.spinner("Fetching rates..."):
            outcome = run_async(components.refresher.refresh(trigger="manual"))
        if outcome == RefreshOutcome.UPDATED:
            st.success("Rates updated")
        elif outcome == RefreshOutcome.SKIPPED:
            st.info("A refresh is already running")
        else:
            st.warning(f"Kept previous rates: {components.refresher.last_error}")

    st.markdown("### Connection Status")
    status = validate_all_settings()
    services = [
        ("Gemini (Assistant)", "gemini"),
        ("Google Sheets (Storage)", "google_sheets"),
        ("Local storage", "storage"),
    ]
    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")


if __name__ == "__main__":
    main()
