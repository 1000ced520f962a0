"""Profile page: balance, rank, streak and activity."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

import pandas as pd
import plotly.graph_objects as go
import streamlit as st
from dashboard.utils import TIER_BADGES, api_get, bet_pl, format_currency, sidebar_api_key, streak_banner

st.set_page_config(page_title="Profile | Pool Predict", layout="wide")
sidebar_api_key()

me = api_get("/api/me")
if not me:
    st.stop()

st.title(f"{TIER_BADGES.get(me['tier'], '')} {me['name']}")
streak_banner(api_get("/api/me/streak", quiet=True))

c1, c2, c3, c4 = st.columns(4)
c1.metric("Balance", format_currency(me["balance"]))
c2.metric("Net P/L", format_currency(me["net_pl"]))
c3.metric("Win Rate", f"{me['win_rate']:.1f}%")
c4.metric("In Play", format_currency(me["active_bet_amount"]), f"{me['active_bets']} bets", delta_color="off")

c1, c2, c3 = st.columns(3)
c1.metric("Win Streak", f"🔥 {me['current_streak']}")
c2.metric("Longest Streak", me["longest_streak"])
c3.metric("Total Winnings", format_currency(me["total_winnings"]))

# --- Rank ---
rank = api_get("/api/me/rank", quiet=True)
if rank:
    st.subheader("Ranking")
    r1, r2, r3 = st.columns(3)
    r1.metric("Rank", f"#{rank['rank']}" if rank["rank"] else "Unranked", f"of {rank['total_users']}",
              delta_color="off")
    r2.metric("Percentile", f"{rank['percentile']:.1f}%")
    if rank["points_to_next_tier"] is None:
        r3.metric("Next Tier", "Max tier")
    else:
        r3.metric("Points to next tier", f"{rank['points_to_next_tier']:,.0f}")

# --- Bets ---
st.subheader("My Bets")
bets = api_get("/api/bets", {"limit": 200}, quiet=True) or []
if bets:
    df = pd.DataFrame(bets)
    df["placed_at"] = pd.to_datetime(df["placed_at"])
    df = df.sort_values("placed_at")

    resolved = df[df["result"] != "active"].copy()
    if not resolved.empty:
        resolved["pl"] = resolved.apply(lambda r: bet_pl(r["result"], r["amount"], r["payout"]), axis=1)
        resolved["cumulative"] = resolved["pl"].cumsum()
        fig = go.Figure(go.Scatter(x=resolved["placed_at"], y=resolved["cumulative"], mode="lines+markers"))
        fig.update_layout(title="Cumulative P/L (₹)", height=300, margin=dict(l=20, r=20, t=40, b=20))
        st.plotly_chart(fig, use_container_width=True)

    df["amount"] = df["amount"].map(format_currency)
    df["status"] = df["result"]
    df["payout"] = df["payout"].map(lambda v: format_currency(v) if pd.notna(v) else "")
    st.dataframe(
        df.sort_values("placed_at", ascending=False)[["placed_at", "event_id", "amount", "status", "payout"]],
        use_container_width=True,
        hide_index=True,
    )
else:
    st.info("No bets yet.")

# --- Activity ---
st.subheader("Recent Activity")
activity = api_get("/api/me/activity", {"limit": 20}, quiet=True) or []
for item in activity:
    pts = f" (+{item['points_earned']:.0f} pts)" if item["points_earned"] else ""
    st.markdown(f"- **{item['action_type']}**: {item['description']}{pts}")
if not activity:
    st.caption("Nothing yet.")
