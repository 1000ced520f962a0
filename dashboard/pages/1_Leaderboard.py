"""Leaderboard page."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

import pandas as pd
import plotly.express as px
import streamlit as st
from dashboard.utils import RANK_ICONS, TIER_BADGES, api_get, format_currency, sidebar_api_key

st.set_page_config(page_title="Leaderboard | Pool Predict", layout="wide")
sidebar_api_key()

st.title("Leaderboard")

PERIODS = {"All time": "all", "This week": "weekly", "This month": "monthly"}
SORTS = {
    "Total winnings": "total_winnings",
    "Points": "total_points",
    "Current streak": "current_streak",
}

c1, c2 = st.columns(2)
period_label = c1.radio("Period", list(PERIODS), horizontal=True)
sort_label = c2.selectbox("Sort by", list(SORTS), disabled=PERIODS[period_label] != "all")

params = {"period": PERIODS[period_label], "limit": 100}
if params["period"] == "all":
    params["sort_by"] = SORTS[sort_label]
board = api_get("/api/leaderboard", params)
entries = (board or {}).get("entries", [])

if not entries:
    st.info("No rankings yet.")
    st.stop()

df = pd.DataFrame(entries)
df.insert(0, "#", range(1, len(df) + 1))
df["player"] = [
    f"{RANK_ICONS.get(i, '')} {name}{' ✔' if verified else ''}".strip()
    for i, name, verified in zip(df["#"], df["name"], df["is_verified"])
]
df["tier"] = df["tier"].map(lambda t: f"{TIER_BADGES.get(t, '')} {t}")

value_col = board["sort_by"]
money_cols = {"total_winnings", "weekly_earnings", "monthly_earnings"}
df["score"] = df[value_col].map(format_currency) if value_col in money_cols else df[value_col]

st.dataframe(
    df[["#", "player", "tier", "score", "current_streak", "total_bets"]].rename(
        columns={"score": sort_label if PERIODS[period_label] == "all" else period_label}
    ),
    use_container_width=True,
    hide_index=True,
)

# --- Tier distribution ---
st.subheader("Tier Distribution")
tiers = api_get("/api/tiers", quiet=True) or {}
counts = pd.DataFrame(entries)["tier"].value_counts()
if tiers:
    counts = counts.reindex(list(tiers), fill_value=0)
fig = px.bar(
    x=counts.index,
    y=counts.values,
    color=counts.index,
    color_discrete_map={name: cfg["color"] for name, cfg in tiers.items()},
    labels={"x": "Tier", "y": "Players"},
)
fig.update_layout(showlegend=False, height=320)
st.plotly_chart(fig, use_container_width=True)

with st.expander("Tier benefits"):
    for name, cfg in tiers.items():
        st.markdown(f"**{TIER_BADGES.get(name, '')} {name}** ({cfg['min_points']:,} pts): "
                    + ", ".join(cfg["benefits"]))
