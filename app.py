"""
Palm Fruit Console: Interactive Admin Dashboard

Run with:  streamlit run app.py
Set PALM_DEMO_MODE=1 to use simulated data instead of Supabase.
"""

import logging
import sys
from pathlib import Path

import streamlit as st
import plotly.graph_objects as go
import pandas as pd

sys.path.insert(0, str(Path(__file__).resolve().parent))

from palm_console import records
from palm_console.config import ADMIN_ROLE, COMPANY_NAME, DELIVERY_STATUSES, LOG_FORMAT, load_settings
from palm_console.dashboard import (
    alerts_table,
    build_cards,
    dashboard_from_rows,
    load_admin_dashboard,
    outstanding_table,
    pending_orders_table,
)
from palm_console.errors import PalmConsoleError
from palm_console.formatting import format_currency, format_weight
from palm_console.kpis import agent_balances, collection_spend_table
from palm_console.loaders import (
    all_time,
    custom_range,
    get_client,
    last_month,
    last_n_days,
    load_agent_report_rows,
    load_dashboard_rows,
    this_month,
)
from palm_console.reports import (
    build_agent_report,
    render_agent_report_html,
    render_consolidated_html,
)
from palm_console.session import IdleLogout
from palm_console.simulator import filter_rows, generate_dataset
from palm_console.transforms import build_frames

settings = load_settings()
logging.basicConfig(level=settings.log_level, format=LOG_FORMAT, datefmt="%H:%M:%S")

# ---------------------------------------------------------------------------
# Page config
# ---------------------------------------------------------------------------
st.set_page_config(
    page_title="Palm Fruit Admin Dashboard",
    page_icon="🌴",
    layout="wide",
    initial_sidebar_state="expanded",
)

TONE_COLORS = {
    "good": "#0f7a3a",
    "bad": "#b42318",
    "warning": "#d97706",
    "neutral": "#1d4ed8",
}

DEMO = settings.demo_mode or not settings.backend_configured


# ---------------------------------------------------------------------------
# Session: role and idle sign-out
# ---------------------------------------------------------------------------
if "idle" not in st.session_state:
    st.session_state["idle"] = IdleLogout(
        timeout_minutes=settings.idle_timeout_minutes,
        exclude_paths=settings.idle_exclude_paths,
    )
    st.session_state["role"] = ADMIN_ROLE
    st.session_state["idle"].start(st.session_state["role"], "/dashboard")

# The timer thread has no script-run context, so expiry is polled here
if st.session_state["idle"].expired:
    st.session_state["idle"].stop()
    st.warning("You were signed out after a period of inactivity.")
    if st.button("Sign in again"):
        st.session_state.clear()
        st.rerun()
    st.stop()

# Every rerun is a user interaction
st.session_state["idle"].record_activity("mousedown")


# ---------------------------------------------------------------------------
# Data loading (cached)
# ---------------------------------------------------------------------------
@st.cache_resource
def backend():
    return get_client(settings)


@st.cache_data
def demo_rows():
    return generate_dataset()


def load_rows(date_range, agent_id=None):
    if DEMO:
        return filter_rows(demo_rows(), date_range, agent_id)
    if agent_id is not None:
        return load_agent_report_rows(backend(), agent_id, date_range)
    return load_dashboard_rows(backend(), date_range)


def notify(message: str, level: str) -> None:
    {"error": st.error, "warning": st.warning}.get(level, st.info)(message)


# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------
st.sidebar.title(COMPANY_NAME)
st.sidebar.markdown("Admin Dashboard")
st.sidebar.divider()

preset = st.sidebar.selectbox(
    "Date Range", ["All time", "This month", "Last month", "Last 7 days", "Last 30 days", "Custom"],
)
if preset == "This month":
    date_range = this_month()
elif preset == "Last month":
    date_range = last_month()
elif preset == "Last 7 days":
    date_range = last_n_days(7)
elif preset == "Last 30 days":
    date_range = last_n_days(30)
elif preset == "Custom":
    today = pd.Timestamp.now(tz="UTC").date()
    picked = st.sidebar.date_input("From / To", (today.replace(day=1), today))
    date_range = custom_range(*picked) if len(picked) == 2 else all_time()
else:
    date_range = all_time()

page = st.sidebar.radio(
    "Navigate",
    ["Dashboard", "Agent Balances", "Agent Report", "Orders"],
)

st.sidebar.divider()
st.sidebar.caption("Data: simulated" if DEMO else f"Data: {settings.supabase_url}")


# ---------------------------------------------------------------------------
# Helper: KPI card
# ---------------------------------------------------------------------------
def kpi_card(card: dict):
    color = TONE_COLORS.get(card["tone"], TONE_COLORS["neutral"])
    subtext = card["subtext"] or "&nbsp;"
    st.markdown(
        f"""
        <div style="background: linear-gradient(135deg, {color}22, {color}11);
                    border-left: 4px solid {color};
                    border-radius: 8px; padding: 16px; margin-bottom: 8px;">
            <div style="font-size: 13px; color: #888; font-weight: 600; text-transform: uppercase;">{card['title']}</div>
            <div style="font-size: 26px; font-weight: 700; color: #222; margin: 4px 0;">{card['value']}</div>
            <div style="font-size: 12px; color: #666;">{subtext}</div>
        </div>
        """,
        unsafe_allow_html=True,
    )


def frames_for(date_range):
    try:
        return build_frames(load_rows(date_range))
    except PalmConsoleError as exc:
        st.error(f"Could not load data: {exc}")
        st.stop()


# ===========================================================================
# PAGE: Dashboard
# ===========================================================================
if page == "Dashboard":
    st.title("Admin Dashboard")
    st.caption(f"Overview of palm fruit operations: **{date_range.label}**")

    if DEMO:
        summary = dashboard_from_rows(filter_rows(demo_rows(), date_range))
    else:
        with st.spinner("Loading dashboard..."):
            summary = load_admin_dashboard(
                backend(), date_range, notify=notify, role=st.session_state["role"],
            )
    if summary is None:
        st.stop()

    for section in build_cards(summary, date_range.label):
        st.subheader(section["title"])
        st.caption(section["description"])
        cols = st.columns(4)
        for i, card in enumerate(section["cards"]):
            with cols[i % 4]:
                kpi_card(card)

    st.divider()
    col1, col2 = st.columns(2)

    with col1:
        st.subheader("Top Outstanding Agents")
        st.caption("Highest outstanding advances and last activity")
        table = outstanding_table(summary["outstanding_agents"])
        if table.empty:
            st.info("No outstanding advances")
        else:
            st.dataframe(
                table, use_container_width=True, hide_index=True,
                column_config={"route": st.column_config.LinkColumn("Open")},
            )

    with col2:
        st.subheader("Alerts")
        st.caption("Agents requiring attention")
        table = alerts_table(summary["alerts"])
        if table.empty:
            st.success("No alerts")
        else:
            for alert in table.itertuples(index=False):
                box = st.error if alert.severity == "error" else st.warning
                box(f"**{alert.agent}**: {alert.reason}")

    st.subheader("Pending Deliveries")
    table = pending_orders_table(summary["pending_orders"])
    if table.empty:
        st.info("No pending deliveries")
    else:
        st.dataframe(
            table, use_container_width=True, hide_index=True,
            column_config={"route": st.column_config.LinkColumn("Open")},
        )

    if not summary["outstanding_agents"].empty:
        top = summary["outstanding_agents"]
        fig = go.Figure(go.Bar(
            x=[float(v) for v in top["total_advances"]],
            y=top["full_name"],
            orientation="h",
            marker_color=TONE_COLORS["warning"],
            text=[format_currency(v) for v in top["total_advances"]],
            textposition="auto",
        ))
        fig.update_layout(
            title="Outstanding Advances by Agent",
            height=320,
            margin=dict(l=0, r=0, t=40, b=0),
            yaxis=dict(autorange="reversed"),
        )
        st.plotly_chart(fig, use_container_width=True)

# ===========================================================================
# PAGE: Agent Balances
# ===========================================================================
elif page == "Agent Balances":
    st.title("Agent Balances")
    st.caption(f"Period: **{date_range.label}**")

    frames = frames_for(date_range)
    balances = agent_balances(frames)

    display = balances.copy()
    for col in ("total_advances", "total_expenses", "total_fruit_spend", "cash_balance"):
        display[col] = display[col].apply(format_currency)
    display["total_weight"] = display["total_weight"].apply(format_weight)
    st.dataframe(display.drop(columns=["agent_id"]), use_container_width=True, hide_index=True)

    if not balances.empty:
        values = [float(v) for v in balances["cash_balance"]]
        fig = go.Figure(go.Bar(
            x=balances["full_name"],
            y=values,
            marker_color=[TONE_COLORS["good"] if v >= 0 else TONE_COLORS["bad"] for v in values],
        ))
        fig.update_layout(title="Cash Balance by Agent", height=360, margin=dict(l=0, r=0, t=40, b=0))
        st.plotly_chart(fig, use_container_width=True)

    st.download_button(
        "Download consolidated report (HTML)",
        render_consolidated_html(balances, date_range.label),
        file_name="consolidated_report.html",
        mime="text/html",
    )

# ===========================================================================
# PAGE: Agent Report
# ===========================================================================
elif page == "Agent Report":
    st.title("General Account Report")

    agents = frames_for(all_time())["agents"]
    if agents.empty:
        st.info("No agents yet")
        st.stop()

    names = dict(zip(agents["id"], agents["full_name"]))
    agent_id = st.selectbox("Agent", list(names), format_func=lambda i: names[i] or "Unknown")

    try:
        frames = build_frames(load_rows(date_range, agent_id))
    except PalmConsoleError as exc:
        st.error(f"Could not load report: {exc}")
        st.stop()

    report = build_agent_report(frames, agent_id, period_label=date_range.label)

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total Advances", format_currency(report.total_advances))
    col2.metric("Total Expenses", format_currency(report.total_expenses))
    col3.metric("Spent On Fruit", format_currency(report.total_fruit_spend))
    col4.metric(report.balance_label, format_currency(abs(report.balance)))

    st.markdown("\n\n".join(report.calculation_lines()))

    spend = collection_spend_table(frames["collections"], frames["items"])
    if not spend.empty:
        fig = go.Figure(go.Bar(
            x=spend["collection_date"],
            y=[float(v) for v in spend["total_weight_kg"]],
            name="Weight (kg)",
            marker_color=TONE_COLORS["good"],
        ))
        fig.update_layout(title="Collected Weight", height=300, margin=dict(l=0, r=0, t=40, b=0))
        st.plotly_chart(fig, use_container_width=True)

    st.download_button(
        "Download printable report (HTML)",
        render_agent_report_html(report),
        file_name=f"agent_report_{agent_id}.html",
        mime="text/html",
    )

# ===========================================================================
# PAGE: Orders
# ===========================================================================
elif page == "Orders":
    st.title("Orders & Receipts")
    st.caption(f"Period: **{date_range.label}**")

    orders = frames_for(date_range)["orders"]
    status = st.selectbox("Delivery status", ["OUTSTANDING", "ALL", "PENDING", "PARTIALLY_DELIVERED", "DELIVERED", "CANCELLED"])
    if status == "OUTSTANDING":
        orders = orders[orders["delivery_status"].isin({"PENDING", "PARTIALLY_DELIVERED"})]
    elif status != "ALL":
        orders = orders[orders["delivery_status"] == status]

    orders = orders.assign(customer_name=orders["customer_name"].fillna("Unknown"))
    st.dataframe(pending_orders_table(orders), use_container_width=True, hide_index=True)

    if not DEMO and not orders.empty:
        st.subheader("Update delivery")
        with st.form("delivery_status"):
            order_id = st.selectbox(
                "Order",
                orders["id"].tolist(),
                format_func=lambda oid: orders.loc[orders["id"] == oid, "customer_name"].iloc[0],
            )
            new_status = st.selectbox("New status", DELIVERY_STATUSES)
            delivered_on = st.date_input("Delivery date", value=None)
            delivered_by = st.text_input("Delivered by")
            notes = st.text_area("Notes")
            if st.form_submit_button("Save"):
                try:
                    records.update_delivery_status(
                        backend(), order_id, new_status, delivered_on, delivered_by, notes,
                    )
                except PalmConsoleError as exc:
                    st.error(str(exc))
                else:
                    st.success("Delivery status updated")
                    st.cache_data.clear()
