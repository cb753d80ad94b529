"""
savviFinance - Streamlit entry point.

Run with:
    streamlit run app.py

All session and data state lives on one background asyncio loop
(savvi_core.utils.LoopRunner). Each Streamlit rerun submits work to that loop
and renders the immutable state snapshots it gets back.
"""

from __future__ import annotations
import time
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Optional

import plotly.graph_objects as go
import streamlit as st

from savvi_core.auth import AuthResult, ConnectionStatus, SessionManager
from savvi_core.config import get_supabase_config, load_config
from savvi_core.context import AppContext
from savvi_core.data.models import DebtType, Transaction, TransactionType
from savvi_core.errors import MESSAGE_TIMEOUT_SECONDS, ErrorContext, handle_error
from savvi_core.logging import get_logger, setup_logging
from savvi_core.offline.local_storage import CLIENT_ID_PATTERN
from savvi_core.services import (
    FinanceService,
    ServiceResult,
    build_summary,
    monthly_totals,
    recent_transactions,
)
from savvi_core.state.app_state import AppScreen, AppStateMachine
from savvi_core.state.settings_store import CURRENCIES, LANGUAGES
from savvi_core.ui.theme import AVATARS, apply_css, balance_card, offline_banner
from savvi_core.utils import LoopRunner

logger = get_logger("savvi_app")

INCOME_CATEGORIES = ["Salary", "Freelance", "Investment", "Gift", "Other"]
EXPENSE_CATEGORIES = ["Food", "Transport", "Shopping", "Bills", "Entertainment", "Health", "Other"]

st.set_page_config(
    page_title="savviFinance",
    page_icon="🥕",
    layout="centered",
)


# ============================================================================
# RUNTIME
# ============================================================================

@st.cache_resource
def get_loop_runner() -> LoopRunner:
    """One event loop per server process, shared by every browser session."""
    setup_logging()
    return LoopRunner().start()


@dataclass
class Runtime:
    context: AppContext
    session: SessionManager
    machine: AppStateMachine
    runner: LoopRunner

    def run(self, coro):
        return self.runner.run(coro)

    def act(self, coro, operation: str):
        """Run a user action; a failure is logged and flashed, and None returned."""
        with ErrorContext(operation) as ctx:
            return self.runner.run(coro)
        flash(ctx.error_message or f"Error during: {operation}")
        return None


def get_client_id() -> str:
    """
    Stable id for this browser, kept in the `client` URL query parameter so a
    reload finds the same local storage.
    """
    client_id = st.query_params.get("client")
    if not client_id or not CLIENT_ID_PATTERN.match(client_id):
        client_id = uuid.uuid4().hex
        st.query_params["client"] = client_id
    return client_id


def get_runtime() -> Runtime:
    """The AppContext for this browser session, created once and reused."""
    if "savvi_runtime" not in st.session_state:
        runner = get_loop_runner()
        context = AppContext(load_config(), client_id=get_client_id())
        session = context.create_session_manager()
        machine = context.create_state_machine()
        runtime = Runtime(context=context, session=session, machine=machine, runner=runner)
        with st.spinner("Checking connection..."):
            runtime.run(session.initialize())
        st.session_state["savvi_runtime"] = runtime
    return st.session_state["savvi_runtime"]


# ============================================================================
# INLINE MESSAGES (auto-clear)
# ============================================================================

def flash(message: str, kind: str = "error") -> None:
    st.session_state["savvi_flash"] = (message, kind, time.monotonic())


def show_flash() -> None:
    entry = st.session_state.get("savvi_flash")
    if not entry:
        return
    message, kind, created = entry
    if time.monotonic() - created > MESSAGE_TIMEOUT_SECONDS:
        del st.session_state["savvi_flash"]
        return
    getattr(st, kind, st.info)(message)


def report(result: Optional[ServiceResult], success_message: str) -> bool:
    if result is None:
        return False
    if result.success:
        flash(success_message, "success")
        return True
    flash(result.error or "Operation failed", "error")
    return False


# ============================================================================
# AUTH SCREEN
# ============================================================================

def handle_auth_result(result: Optional[AuthResult], success_message: str) -> None:
    if result is None:
        return
    if result.needs_verification:
        flash(result.advisory, "info")
    elif result.success:
        flash(success_message, "success")
    else:
        flash(result.error or "Authentication failed", "error")


def render_auth(rt: Runtime) -> None:
    t = rt.context.settings.t
    st.title("🥕 savviFinance")
    state = rt.session.state
    if state.error and state.connection_status == ConnectionStatus.DISCONNECTED:
        st.warning(state.error)

    sign_in_tab, sign_up_tab, reset_tab = st.tabs([t("sign_in"), t("create_account"), t("forgot_password")])

    with sign_in_tab:
        with st.form("sign_in"):
            email = st.text_input(t("email"))
            password = st.text_input(t("password"), type="password")
            if st.form_submit_button(t("sign_in")):
                with st.spinner("Signing in..."):
                    result = rt.act(rt.session.sign_in(email, password), "Signing in")
                handle_auth_result(result, "Signed in")
                st.rerun()

    with sign_up_tab:
        with st.form("sign_up"):
            name = st.text_input(t("full_name"))
            email = st.text_input(t("email"), key="sign_up_email")
            password = st.text_input(t("password"), type="password", key="sign_up_password")
            avatar = st.selectbox("Avatar", AVATARS)
            if st.form_submit_button(t("create_account")):
                with st.spinner("Creating account..."):
                    result = rt.act(rt.session.sign_up(email, password, name, avatar), "Creating account")
                handle_auth_result(result, "Account created")
                st.rerun()

    with reset_tab:
        with st.form("reset_password"):
            email = st.text_input(t("email"), key="reset_email")
            if st.form_submit_button("Send reset link"):
                result = rt.act(rt.session.reset_password(email), "Sending reset link")
                handle_auth_result(result, "Password reset email sent")
                st.rerun()


# ============================================================================
# STATUS SCREENS
# ============================================================================

def offline_button(rt: Runtime, key: str) -> None:
    if st.button("Continue Offline", key=key):
        rt.machine.enter_offline_mode()
        st.rerun()


def render_loading(rt: Runtime) -> None:
    view = rt.machine.view()
    text = (
        f"Retrying connection... ({view.retry_count})"
        if view.retry_count > 0
        else "Connecting to database..."
    )
    st.info(text)
    if view.can_continue_offline:
        offline_button(rt, "loading_offline")


def render_connection_error(rt: Runtime) -> None:
    view = rt.machine.view()
    st.header("📡 Connection Problem")
    st.write("savviFinance could not reach the database and no offline data is stored for this account.")
    if view.error:
        st.caption(view.error)

    config = get_supabase_config(rt.context.config)
    issues = []
    if not config["has_url"]:
        issues.append("❌ Supabase URL is not configured")
    elif not config["url_valid"]:
        issues.append("⚠️ Supabase URL does not look like a Supabase project URL")
    if not config["has_key"]:
        issues.append("❌ Supabase anon key is not configured")
    if view.retry_count > 0:
        issues.append(f"⚠️ Connection attempts: {view.retry_count}")
    for issue in issues:
        st.write(issue)
    st.caption(f"URL: {config['url']}")

    label = f"Retry Connection ({view.retry_count})" if view.retry_count else "Retry Connection"
    if st.button(label, key="retry_connection"):
        with st.spinner("Retrying connection..."):
            rt.run(rt.machine.retry())
        st.rerun()
    if view.can_continue_offline:
        offline_button(rt, "connection_offline")


def render_needs_setup(rt: Runtime) -> None:
    st.header("🔧 Database Setup Required")
    st.write(
        "The savviFinance tables (money_buckets, transactions, goals, debts) were not "
        "found in your Supabase project. Create them in the Supabase SQL editor, "
        "then continue."
    )
    if st.button("I've completed the setup", key="setup_complete"):
        with st.spinner("Checking database..."):
            rt.run(rt.machine.setup_complete())
        st.rerun()


def render_error(rt: Runtime) -> None:
    view = rt.machine.view()
    st.header("⚠️ Application Error")
    st.write(view.error or "Something went wrong")
    if st.button("Try Again", key="error_retry"):
        rt.run(rt.machine.retry())
        st.rerun()
    offline_button(rt, "error_offline")


# ============================================================================
# MAIN APP TABS
# ============================================================================

def refresh(rt: Runtime) -> None:
    rt.run(rt.machine.refresh_data())


def render_dashboard(rt: Runtime) -> None:
    settings = rt.context.settings
    t, money = settings.t, settings.format_currency
    snapshot = rt.machine.snapshot
    summary = build_summary(snapshot)

    balance_card(t("total_balance"), money(summary.total_balance), f"{summary.bucket_count} {t('money_buckets')}")

    col1, col2 = st.columns(2)
    col1.metric(t("goals_progress"), f"{summary.goal_progress_pct:.0f}%", money(summary.goal_progress))
    col2.metric(
        t("net_debt"),
        money(abs(summary.net_debt)),
        t("you_owe") if summary.owed_by_me > summary.owed_to_me else t("others_owe_you"),
        delta_color="off",
    )

    st.subheader(t("monthly_summary"))
    totals = monthly_totals(snapshot)
    if totals.empty:
        st.caption("No transactions yet")
    else:
        fig = go.Figure()
        fig.add_bar(x=totals["label"], y=totals["income"], name=t("income"), marker_color="#1DB954")
        fig.add_bar(x=totals["label"], y=totals["expense"], name=t("expense"), marker_color="#ef4444")
        fig.update_layout(barmode="group", height=300, margin=dict(l=10, r=10, t=10, b=10))
        st.plotly_chart(fig, use_container_width=True)

    st.subheader(t("money_buckets"))
    for bucket in snapshot.buckets:
        st.write(f"**{bucket.name}** · {money(bucket.balance)}")

    st.subheader(t("recent_transactions"))
    for tx in recent_transactions(snapshot):
        sign = "+" if tx.type == TransactionType.INCOME.value else "-"
        st.write(f"{tx.date} · {tx.category} · {sign}{money(tx.amount)}")


def transaction_form(rt: Runtime, service: FinanceService, key: str, tx: Optional[Transaction] = None) -> None:
    """Add form when `tx` is None, edit form for `tx` otherwise."""
    snapshot = rt.machine.snapshot
    types = [m.value for m in TransactionType]
    tx_type = st.radio(
        "Type", types, index=types.index(tx.type) if tx and tx.type in types else 0,
        horizontal=True, key=f"{key}_type",
    )
    categories = INCOME_CATEGORIES if tx_type == TransactionType.INCOME.value else EXPENSE_CATEGORIES
    bucket_names = {b.name: b.id for b in snapshot.buckets}
    # A completed goal stays selectable on the transaction already booked against it
    open_goals = {g.title: g.id for g in snapshot.goals if not g.completed or (tx and g.id == tx.goal_id)}

    def index_of(options, value_map, current):
        names = [name for name, value in value_map.items() if value == current]
        return options.index(names[0]) if names else 0

    with st.form(key):
        amount = st.number_input("Amount", min_value=0.0, step=1.0, value=float(tx.amount) if tx else 0.0)
        category = st.selectbox(
            "Category", categories,
            index=categories.index(tx.category) if tx and tx.category in categories else 0,
        )
        bucket_options = list(bucket_names)
        bucket = st.selectbox(
            "Money Bucket", bucket_options,
            index=index_of(bucket_options, bucket_names, tx.bucket_id) if tx else 0,
        )
        description = st.text_input("Description (Optional)", value=(tx.description or "") if tx else "")
        tx_date = st.date_input("Date", value=date.fromisoformat(tx.date[:10]) if tx and tx.date else date.today())
        goal_options = ["—"] + list(open_goals)
        goal = st.selectbox(
            "Goal", goal_options,
            index=index_of(goal_options, open_goals, tx.goal_id) if tx and tx.goal_id else 0,
        )
        allocation = st.number_input(
            "Goal Allocation (Optional)", min_value=0.0, step=1.0,
            value=float(tx.goal_allocation or 0.0) if tx else 0.0,
        )
        if st.form_submit_button("Update" if tx else "Save"):
            form = {
                "amount": amount,
                "type": tx_type,
                "category": category,
                "description": description,
                "date": tx_date.isoformat(),
                "bucket_id": bucket_names.get(bucket),
                "goal_id": open_goals.get(goal),
                "goal_allocation": allocation or None,
            }
            operation = "Updating transaction" if tx else "Saving transaction"
            result = rt.act(service.save_transaction(form, snapshot, tx.id if tx else None), operation)
            if report(result, "Transaction updated" if tx else "Transaction saved"):
                refresh(rt)
            st.rerun()


def render_transactions(rt: Runtime, service: FinanceService, read_only: bool) -> None:
    settings = rt.context.settings
    snapshot = rt.machine.snapshot

    if not read_only:
        with st.expander("Add Transaction"):
            transaction_form(rt, service, "add_transaction")

    for tx in snapshot.transactions:
        cols = st.columns([4, 2, 1])
        cols[0].write(f"{tx.date} · **{tx.category}** {tx.description or ''}")
        sign = "+" if tx.type == TransactionType.INCOME.value else "-"
        cols[1].write(f"{sign}{settings.format_currency(tx.amount)}")
        if read_only:
            continue
        if cols[2].button("🗑", key=f"del_tx_{tx.id}"):
            if report(rt.act(service.delete_transaction(tx, snapshot), "Deleting transaction"), "Transaction deleted"):
                refresh(rt)
            st.rerun()
        with st.expander("Edit"):
            transaction_form(rt, service, f"edit_tx_{tx.id}", tx)


def render_goals(rt: Runtime, service: FinanceService, read_only: bool) -> None:
    money = rt.context.settings.format_currency
    if not read_only:
        with st.form("add_goal"):
            title = st.text_input("Goal Title")
            target = st.number_input("Target Amount", min_value=0.0, step=10.0)
            if st.form_submit_button("Create Goal"):
                if report(rt.act(service.save_goal(title, target), "Creating goal"), "Goal created"):
                    refresh(rt)
                st.rerun()

    for goal in rt.machine.snapshot.goals:
        label = "✅ " if goal.completed else ""
        st.write(f"{label}**{goal.title}** · {money(goal.current_amount)} / {money(goal.target_amount)}")
        st.progress(goal.progress)
        if read_only:
            continue
        with st.expander("Edit"):
            with st.form(f"edit_goal_{goal.id}"):
                title = st.text_input("Goal Title", value=goal.title)
                target = st.number_input("Target Amount", min_value=0.0, step=10.0, value=float(goal.target_amount))
                if st.form_submit_button("Update Goal"):
                    result = rt.act(
                        service.save_goal(title, target, goal_id=goal.id, current_amount=goal.current_amount),
                        "Updating goal",
                    )
                    if report(result, "Goal updated"):
                        refresh(rt)
                    st.rerun()
        if st.button("Delete", key=f"del_goal_{goal.id}"):
            if report(rt.act(service.delete_goal(goal.id), "Deleting goal"), "Goal deleted"):
                refresh(rt)
            st.rerun()


def render_debts(rt: Runtime, service: FinanceService, read_only: bool) -> None:
    money = rt.context.settings.format_currency
    if not read_only:
        with st.form("add_debt"):
            debt_type = st.radio(
                "Type",
                [DebtType.OWED_BY_ME.value, DebtType.OWED_TO_ME.value],
                format_func=lambda v: "I owe someone" if v == DebtType.OWED_BY_ME.value else "Someone owes me",
            )
            person = st.text_input("Person's Name")
            amount = st.number_input("Amount", min_value=0.0, step=1.0, key="debt_amount")
            due = st.date_input("Due Date (Optional)", value=None)
            if st.form_submit_button("Add Debt"):
                result = rt.act(
                    service.save_debt(amount, person, debt_type, due.isoformat() if due else None),
                    "Adding debt",
                )
                if report(result, "Debt added"):
                    refresh(rt)
                st.rerun()

    for debt in rt.machine.snapshot.debts:
        cols = st.columns([4, 1, 1])
        arrow = "→" if debt.type == DebtType.OWED_BY_ME.value else "←"
        paid = " (Paid)" if debt.paid else ""
        cols[0].write(f"{arrow} **{debt.person_name}** · {money(debt.amount)}{paid}")
        if not read_only and cols[1].button("✔", key=f"paid_{debt.id}"):
            if report(rt.act(service.toggle_debt_paid(debt), "Updating debt"), "Debt updated"):
                refresh(rt)
            st.rerun()
        if not read_only and cols[2].button("🗑", key=f"del_debt_{debt.id}"):
            if report(rt.act(service.delete_debt(debt.id), "Deleting debt"), "Debt deleted"):
                refresh(rt)
            st.rerun()


def render_profile(rt: Runtime, service: FinanceService, read_only: bool) -> None:
    settings = rt.context.settings
    user = rt.session.user
    st.write(f"{user.avatar or '🥕'} **{user.name or user.email}**")
    st.caption(user.email or "")

    if not read_only:
        with st.form("profile"):
            name = st.text_input("Name", value=user.name or "")
            current = user.avatar if user.avatar in AVATARS else AVATARS[0]
            avatar = st.selectbox("Avatar", AVATARS, index=AVATARS.index(current))
            if st.form_submit_button("Save Changes"):
                handle_auth_result(rt.act(rt.session.update_profile(name, avatar), "Updating profile"), "Profile updated")
                st.rerun()

        with st.form("add_bucket"):
            bucket_name = st.text_input("Bucket Name")
            balance = st.number_input("Initial Balance", min_value=0.0, step=10.0)
            if st.form_submit_button("Add Bucket"):
                if report(rt.act(service.save_bucket(bucket_name, balance), "Creating bucket"), "Bucket added"):
                    refresh(rt)
                st.rerun()

    st.subheader(settings.t("money_buckets"))
    for bucket in rt.machine.snapshot.buckets:
        st.write(f"**{bucket.name}** · {settings.format_currency(bucket.balance)}")
        if read_only:
            continue
        with st.expander("Edit"):
            with st.form(f"edit_bucket_{bucket.id}"):
                bucket_name = st.text_input("Bucket Name", value=bucket.name)
                balance = st.number_input("Balance", min_value=0.0, step=10.0, value=float(bucket.balance))
                if st.form_submit_button("Update Bucket"):
                    result = rt.act(service.save_bucket(bucket_name, balance, bucket_id=bucket.id), "Updating bucket")
                    if report(result, "Bucket updated"):
                        refresh(rt)
                    st.rerun()
            with st.form(f"delete_bucket_{bucket.id}"):
                confirmed = st.checkbox("Yes, delete this bucket")
                if st.form_submit_button("Delete Bucket") and confirmed:
                    if report(rt.act(service.delete_bucket(bucket.id), "Deleting bucket"), "Bucket deleted"):
                        refresh(rt)
                    st.rerun()

    st.subheader("Settings")
    language = st.selectbox(
        settings.t("language"), LANGUAGES, index=LANGUAGES.index(settings.language)
    )
    currency = st.selectbox(
        settings.t("currency"), list(CURRENCIES), index=list(CURRENCIES).index(settings.currency)
    )
    dark = st.toggle(settings.t("dark_mode"), value=settings.dark_mode)
    if language != settings.language:
        settings.set_language(language)
        st.rerun()
    if currency != settings.currency:
        settings.set_currency(currency)
        st.rerun()
    if dark != settings.dark_mode:
        settings.set_dark_mode(dark)
        st.rerun()

    if st.button(settings.t("sign_out")):
        result = rt.act(rt.session.sign_out(), "Signing out")
        if result is not None and not result:
            flash(result.error or "Sign out failed")
        st.rerun()


def render_main(rt: Runtime) -> None:
    t = rt.context.settings.t
    view = rt.machine.view()
    offline = view.is_offline or rt.session.connection_status == ConnectionStatus.DISCONNECTED

    if offline:
        offline_banner()
        if st.button("Reconnect", key="reconnect"):
            with st.spinner("Reconnecting..."):
                rt.run(rt.machine.retry())
            st.rerun()
    elif st.button("🔄 Refresh", key="refresh"):
        refresh(rt)
        st.rerun()

    if view.failed_collections:
        st.caption(f"Some data could not be loaded: {', '.join(view.failed_collections)}")

    service = FinanceService(rt.context.remote, rt.session.user.id)
    tabs = st.tabs([t("dashboard"), t("transactions"), t("goals"), t("owed"), t("profile")])
    with tabs[0]:
        render_dashboard(rt)
    with tabs[1]:
        render_transactions(rt, service, offline)
    with tabs[2]:
        render_goals(rt, service, offline)
    with tabs[3]:
        render_debts(rt, service, offline)
    with tabs[4]:
        render_profile(rt, service, offline)


# ============================================================================
# ROUTER
# ============================================================================

SCREENS = {
    AppScreen.LOADING: render_loading,
    AppScreen.CONNECTION_ERROR: render_connection_error,
    AppScreen.NEEDS_SETUP: render_needs_setup,
    AppScreen.ERROR: render_error,
    AppScreen.READY: render_main,
    AppScreen.OFFLINE_MODE: render_main,
}


def main() -> None:
    rt = get_runtime()
    apply_css(rt.context.settings.dark_mode)
    show_flash()

    state = rt.session.state
    if state.connection_status == ConnectionStatus.CHECKING:
        st.info("Checking connection...")
        return

    rt.run(rt.machine.on_session_change(state.user, state.connection_status))

    if state.user is None:
        render_auth(rt)
        return

    SCREENS[rt.machine.state](rt)


try:
    main()
except Exception as e:
    handle_error(e, show_user_message=True)
