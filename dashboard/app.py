"""
Streamlit Dashboard for Pool Predict
Browse events, price a bet against the live pool and place it.
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from datetime import datetime, timezone

import pandas as pd
import streamlit as st

from backend.services.betting import EVENT_CATEGORIES
from backend.services.pool_monitor import POOL_MONITOR_INTERVAL_SEC
from backend.services.streak_manager import STREAK_CHECK_INTERVAL_MIN
from dashboard.utils import (
    api_get,
    api_post,
    ensure_streak_watch,
    format_currency,
    sidebar_api_key,
    streak_banner,
)

st.set_page_config(
    page_title="Pool Predict",
    page_icon="🎯",
    layout="wide",
    initial_sidebar_state="expanded",
)

QUICK_AMOUNTS = [100, 500, 1000, 2500]


def _time_left(expires_at) -> str:
    if not expires_at:
        return "No expiry"
    expires = datetime.fromisoformat(expires_at.replace("Z", "+00:00"))
    seconds = max(0, (expires - datetime.now(timezone.utc)).total_seconds())
    hours, minutes = int(seconds // 3600), int(seconds % 3600 // 60)
    if hours > 0:
        return f"{hours}h {minutes}m left"
    if minutes > 0:
        return f"{minutes}m left"
    return "Expired"


@st.fragment(run_every=POOL_MONITOR_INTERVAL_SEC)
def live_options(event: dict) -> None:
    """Option table, re-priced from the pool monitor on every poll."""
    options = pd.DataFrame(event["options"])
    if options.empty:
        return
    live = api_get(f"/api/events/{event['id']}/odds", quiet=True) or {}
    shown = {o["id"]: o["display_odds"] for o in event["options"]}
    shown.update(live.get("odds") or {})
    options["live odds"] = options["id"].map(
        lambda oid: f"{shown[oid]:.2f}x" if shown.get(oid) is not None else "—"
    )
    options["backing"] = options["total_bets"].map(format_currency)
    st.dataframe(
        options[["label", "live odds", "backing", "bettors"]],
        use_container_width=True,
        hide_index=True,
    )
    if live:
        st.caption(f"Pool {format_currency(live['total_pool'])} · updated {live['updated_at'][11:19]} UTC")


@st.fragment(run_every=STREAK_CHECK_INTERVAL_MIN * 60)
def streak_notice() -> None:
    streak_banner(api_get("/api/me/streak", quiet=True))


# ==============================================================================
# SIDEBAR
# ==============================================================================

sidebar_api_key()

me = api_get("/api/me", quiet=True)

with st.sidebar:
    st.title("🎯 Pool Predict")
    st.caption("85% of every pool goes to the winners")
    st.markdown("---")

    if me:
        show_balance = st.toggle("Show balance", value=True)
        st.metric("Balance", format_currency(me["balance"]) if show_balance else "₹ ••••••")
        st.metric("Net P/L", format_currency(me["net_pl"]))
        st.metric("Win streak", f"🔥 {me['current_streak']}")
    else:
        st.info("Profile unavailable")

    st.markdown("---")
    category = st.selectbox("Category", EVENT_CATEGORIES)
    search = st.text_input("Search events")


# ==============================================================================
# EVENTS
# ==============================================================================

st.title("Events")
if me:
    ensure_streak_watch()
streak_notice()

tab_active, tab_completed = st.tabs(["Active", "Completed"])
params = {"category": category, "search": search}

with tab_active:
    data = api_get("/api/events", {**params, "tab": "active"})
    events = (data or {}).get("events", [])
    if not events:
        st.info("Try adjusting your search or filters" if search or category != "All"
                else "No active events right now.")

    for event in events:
        with st.expander(f"{event['title']}  ·  {event['category']}  ·  {_time_left(event.get('expires_at'))}"):
            c1, c2, c3 = st.columns(3)
            c1.metric("Total Pool", format_currency(event["total_pool"]))
            c2.metric("Available (85%)", format_currency(event["available_pool"]))
            c3.metric("Participants", event["participant_count"])

            live_options(event)

            labels = {o["label"]: o["id"] for o in event["options"]}
            if not labels:
                continue

            st.subheader("Place your bet")
            choice = st.radio("Select your prediction", list(labels), key=f"opt_{event['id']}", horizontal=True)
            quick = st.columns(len(QUICK_AMOUNTS))
            amount_key = f"amt_{event['id']}"
            for col, preset in zip(quick, QUICK_AMOUNTS):
                if col.button(f"₹{preset}", key=f"{amount_key}_{preset}"):
                    st.session_state[amount_key] = float(preset)
            amount = st.number_input("Bet amount (₹)", min_value=1.0, value=100.0, step=50.0, key=amount_key)

            quote = api_post(
                f"/api/events/{event['id']}/quote",
                {"option_id": labels[choice], "amount": amount},
                quiet=True,
            )
            if quote:
                q1, q2, q3 = st.columns(3)
                q1.metric("Potential Return", quote["display"]["potential_return"])
                q2.metric("Profit", quote["display"]["potential_profit"])
                q3.metric("Effective Odds", quote["display"]["effective_odds"])
                st.caption(
                    f"From pool {quote['display']['available_pool']} · "
                    f"Max {'∞' if quote['uncapped'] else quote['display']['max_bet_amount']}"
                )
                if me and amount > me["balance"] and not quote["uncapped"]:
                    st.error("Insufficient balance")
                elif quote["exceeds_max"]:
                    st.warning("Bet amount exceeds maximum limit")

            if st.button(f"Place Bet - {format_currency(amount)}", key=f"place_{event['id']}", type="primary"):
                bet = api_post("/api/bets", {"event_id": event["id"], "option_id": labels[choice], "amount": amount})
                if bet:
                    st.success(f"Bet placed: {format_currency(bet['amount'])} on {choice}")
                    st.rerun()

with tab_completed:
    data = api_get("/api/events", {**params, "tab": "completed"})
    events = (data or {}).get("events", [])
    if not events:
        st.info("No completed events with your bets yet.")

    bets = api_get("/api/bets", quiet=True) or []
    bet_by_event = {b["event_id"]: b for b in bets}

    for event in events:
        winner = next((o["label"] for o in event["options"] if o["id"] == event.get("winning_option")), "—")
        bet = bet_by_event.get(event["id"])
        if bet is None:
            outcome = "No bet"
        elif bet["result"] == "won":
            outcome = f"Won {format_currency(bet.get('payout') or 0)}"
        else:
            outcome = bet["result"].capitalize()
        st.markdown(
            f"**{event['title']}** · {event['category']} · Winner: **{winner}** · "
            f"Pool {format_currency(event['total_pool'])} · {outcome}"
        )

st.markdown("---")
st.caption("15% house edge on total pool · 85% distributed to winners proportionally · "
           "higher odds for less popular options · "
           f"odds refresh every {POOL_MONITOR_INTERVAL_SEC}s")
