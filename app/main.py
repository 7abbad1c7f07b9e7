"""
Streamlit Frontend for Passbook

The single page a user keeps open on their phone or laptop.

DESIGN PRINCIPLES:
1. Locked until the PIN is entered
2. Balance and this month's spendable money always visible
3. Clear error messages in simple language
4. Visual feedback for all operations
5. No hidden actions

Every ledger call goes through LedgerFlow with the session token kept
in st.session_state, so an expired session sends the user back to the
unlock screen.
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import streamlit as st

from passbook.errors import (
    AuthError,
    InvalidSessionError,
    PassbookError,
)
from passbook.orchestrator import AuthFlow, LedgerFlow, create_app_components
from passbook.services.ledger import current_period


# Page configuration
st.set_page_config(
    page_title="Passbook",
    page_icon="💰",
    layout="centered",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .big-number {
        font-size: 2.5em;
        font-weight: bold;
        color: #2c3e50;
    }
    .error-box {
        padding: 20px;
        background-color: #f8d7da;
        border-radius: 10px;
        border-left: 5px solid #dc3545;
        margin: 10px 0;
    }
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
def get_components():
    """Get or create application components (cached)."""
    return create_app_components()


def format_money(amount: Decimal) -> str:
    return f"${amount:,.2f}"


def format_time(epoch: int) -> str:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime("%H:%M UTC")


def logout_locally(message: str = "") -> None:
    st.session_state.token = None
    st.session_state.expense_cursors = []
    st.session_state.month_cursors = []
    if message:
        st.session_state.flash = message


def main():
    """Main application entry point."""
    auth_flow, ledger_flow, _ = get_components()

    # Initialize session state
    if "token" not in st.session_state:
        st.session_state.token = None
    if "expense_cursors" not in st.session_state:
        # Stack of cursors for the pages already seen ("" = first page)
        st.session_state.expense_cursors = []
    if "month_cursors" not in st.session_state:
        st.session_state.month_cursors = []

    st.sidebar.title("💰 Passbook")
    st.sidebar.markdown("---")

    if st.session_state.get("flash"):
        st.info(st.session_state.pop("flash"))

    token = st.session_state.token
    if not token or not run_async(auth_flow.validate_session(token)):
        st.session_state.token = None
        render_unlock_page(auth_flow)
        return

    page = st.sidebar.radio(
        "Navigate to:",
        ["🏠 This Month", "📅 Months", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    if st.sidebar.button("🔒 Lock"):
        run_async(auth_flow.logout(token))
        logout_locally("Locked.")
        st.rerun()

    try:
        if page == "🏠 This Month":
            render_month_page(ledger_flow, token)
        elif page == "📅 Months":
            render_months_page(ledger_flow, token)
        elif page == "⚙️ Settings":
            render_settings_page(auth_flow, token)
    except InvalidSessionError:
        logout_locally("Your session expired. Please enter your PIN again.")
        st.rerun()


def render_unlock_page(auth_flow: AuthFlow):
    """PIN setup on first run, PIN entry afterwards."""
    is_setup = run_async(auth_flow.is_setup())

    if not is_setup:
        st.title("Set up your PIN")
        st.markdown("Choose a 4-6 digit PIN. You will need it every time you open Passbook.")

        with st.form("setup_form"):
            pin = st.text_input("New PIN", type="password", max_chars=6)
            confirm = st.text_input("Confirm PIN", type="password", max_chars=6)
            submitted = st.form_submit_button("Save PIN", type="primary")

        if submitted:
            if pin != confirm:
                st.error("The PINs do not match.")
                return
            try:
                run_async(auth_flow.setup_pin(pin))
                st.session_state.flash = "PIN saved. Enter it to unlock."
                st.rerun()
            except PassbookError as e:
                st.error(str(e))
        return

    st.title("🔒 Enter PIN")

    with st.form("unlock_form"):
        pin = st.text_input("PIN", type="password", max_chars=6)
        submitted = st.form_submit_button("Unlock", type="primary")

    if submitted:
        result = run_async(auth_flow.verify_pin(pin))
        if result.success:
            st.session_state.token = result.token
            st.rerun()
        elif result.locked_until:
            st.markdown(f"""
            <div class="error-box">
                <h4>Too many wrong PINs</h4>
                <p>Try again after {format_time(result.locked_until)}.</p>
            </div>
            """, unsafe_allow_html=True)
        else:
            message = result.error or "Invalid PIN"
            if result.attempts_remaining is not None:
                message += f" ({result.attempts_remaining} attempts remaining)"
            st.error(message)


def render_month_page(ledger_flow: LedgerFlow, token: str):
    """Balance, this month's summary, add expense and the expense list."""
    period = current_period(datetime.now(timezone.utc).timestamp())
    cursors = st.session_state.expense_cursors
    cursor = cursors[-1] if cursors else None

    try:
        data = run_async(ledger_flow.get_month_data(token, period, cursor=cursor))
    except PassbookError as e:
        if isinstance(e, AuthError):
            raise
        st.error(str(e))
        st.session_state.expense_cursors = []
        return

    st.title(f"🏠 {period}")

    col1, col2 = st.columns(2)
    with col1:
        st.markdown("Total balance")
        st.markdown(f'<div class="big-number">{format_money(data.total_balance)}</div>',
                    unsafe_allow_html=True)
    with col2:
        st.markdown("Left this month")
        st.markdown(f'<div class="big-number">{format_money(data.summary.ending_balance)}</div>',
                    unsafe_allow_html=True)

    st.caption(
        f"Started with {format_money(data.summary.starting_balance)} · "
        f"allowance {format_money(data.summary.allowance_added)} · "
        f"spent {format_money(data.summary.total_expenses)}"
    )

    st.markdown("---")
    st.subheader("➕ Add Expense")

    with st.form("add_expense_form", clear_on_submit=True):
        amount = st.number_input("Amount", min_value=0.0, step=0.01, format="%.2f")
        description = st.text_input("Description", max_chars=100, placeholder="Expense")
        submitted = st.form_submit_button("Add", type="primary")

    if submitted:
        try:
            result = run_async(ledger_flow.add_expense(token, Decimal(str(amount)), description))
            st.session_state.expense_cursors = []
            st.session_state.flash = (
                f"Added {format_money(result.expense.amount)}. "
                f"{format_money(result.month_balance)} left this month."
            )
            st.rerun()
        except AuthError:
            raise
        except PassbookError as e:
            st.error(str(e))

    st.markdown("---")
    st.subheader("🧾 Expenses")

    if not data.expenses:
        st.info("No expenses yet this month.")

    for expense in data.expenses:
        with st.expander(f"{format_money(expense.amount)} · {expense.description}"):
            st.caption(expense.created_at.strftime("%Y-%m-%d %H:%M"))
            with st.form(f"edit_{expense.id}"):
                new_amount = st.number_input(
                    "Amount", min_value=0.0, step=0.01, format="%.2f",
                    value=float(expense.amount),
                )
                new_description = st.text_input(
                    "Description", max_chars=100, value=expense.description,
                )
                col1, col2 = st.columns(2)
                with col1:
                    save = st.form_submit_button("💾 Save")
                with col2:
                    delete = st.form_submit_button("🗑️ Delete")

            if save or delete:
                try:
                    if delete:
                        run_async(ledger_flow.delete_expense(token, period, expense.id))
                        st.session_state.flash = "Expense deleted."
                    else:
                        changed_amount = Decimal(str(new_amount)).quantize(Decimal("0.01"))
                        run_async(ledger_flow.update_expense(
                            token,
                            period,
                            expense.id,
                            amount=changed_amount if changed_amount != expense.amount else None,
                            description=new_description if new_description != expense.description else None,
                        ))
                        st.session_state.flash = "Expense updated."
                    st.session_state.expense_cursors = []
                    st.rerun()
                except AuthError:
                    raise
                except PassbookError as e:
                    st.error(str(e))

    col1, col2 = st.columns(2)
    with col1:
        if cursors and st.button("⬅️ Newer"):
            cursors.pop()
            st.rerun()
    with col2:
        if data.next_cursor and st.button("Older ➡️"):
            cursors.append(data.next_cursor)
            st.rerun()


def render_months_page(ledger_flow: LedgerFlow, token: str):
    """Month history, month creation and adding funds."""
    st.title("📅 Months")

    cursors = st.session_state.month_cursors
    cursor = cursors[-1] if cursors else None
    months = run_async(ledger_flow.list_months(token, cursor=cursor))

    if not months.months:
        st.info("No months yet. Create one below.")

    for item in months.months:
        col1, col2 = st.columns(2)
        col1.markdown(f"**{item.month}**")
        col2.markdown(f"saved {format_money(item.monthly_saved)}")

    col1, col2 = st.columns(2)
    with col1:
        if cursors and st.button("⬅️ Newer months"):
            cursors.pop()
            st.rerun()
    with col2:
        if months.next_cursor and st.button("Older months ➡️"):
            cursors.append(months.next_cursor)
            st.rerun()

    st.markdown("---")
    st.subheader("🗓️ Create Month")

    with st.form("create_month_form"):
        period = st.text_input(
            "Month (YYYY-MM)",
            value=current_period(datetime.now(timezone.utc).timestamp()),
        )
        submitted = st.form_submit_button("Create", type="primary")

    if submitted:
        try:
            result = run_async(ledger_flow.create_month(token, period))
            st.session_state.month_cursors = []
            st.session_state.flash = (
                f"{period} created with {format_money(result.summary.ending_balance)} to spend."
            )
            st.rerun()
        except AuthError:
            raise
        except PassbookError as e:
            st.error(str(e))

    st.markdown("---")
    st.subheader("💵 Add Funds")

    with st.form("add_funds_form", clear_on_submit=True):
        period = st.text_input(
            "Month (YYYY-MM)",
            value=current_period(datetime.now(timezone.utc).timestamp()),
            key="funds_period",
        )
        amount = st.number_input("Amount", min_value=0.0, step=0.01, format="%.2f")
        submitted = st.form_submit_button("Add Funds")

    if submitted:
        try:
            result = run_async(ledger_flow.add_funds(token, period, Decimal(str(amount))))
            st.session_state.flash = (
                f"Added {format_money(Decimal(str(amount)))} to {period}. "
                f"Total balance {format_money(result.total_balance)}."
            )
            st.rerun()
        except AuthError:
            raise
        except PassbookError as e:
            st.error(str(e))


def render_settings_page(auth_flow: AuthFlow, token: str):
    """Change PIN and backend status."""
    st.title("⚙️ Settings")

    st.markdown("### Change PIN")

    with st.form("change_pin_form", clear_on_submit=True):
        current_pin = st.text_input("Current PIN", type="password", max_chars=6)
        new_pin = st.text_input("New PIN", type="password", max_chars=6)
        submitted = st.form_submit_button("Change PIN", type="primary")

    if submitted:
        try:
            run_async(auth_flow.change_pin(token, current_pin, new_pin))
            st.success("✅ PIN changed")
        except InvalidSessionError:
            raise
        except PassbookError as e:
            st.error(str(e))

    st.markdown("---")
    st.markdown("### Configuration Status")

    from passbook.config import validate_all_settings

    status = validate_all_settings()

    sections = [
        ("Ledger", "ledger"),
        ("Access control", "auth"),
        ("Storage", "storage"),
        ("Google Sheets (Storage)", "google_sheets"),
    ]

    for name, key in sections:
        if key not in status:
            continue
        if status[key]:
            st.success(f"✅ {name} - OK")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown(
        "To configure the application, create a `.env` file. "
        "See `.env.example` for the available variables."
    )


if __name__ == "__main__":
    main()
