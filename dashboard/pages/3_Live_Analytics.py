"""Live pool analytics page."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st
from dashboard.utils import OPTION_COLORS, api_get, format_currency, sidebar_api_key

st.set_page_config(page_title="Live Analytics | Pool Predict", layout="wide")
sidebar_api_key()

st.title("Live Analytics")

data = api_get("/api/events", {"status": "active"})
events = (data or {}).get("events", [])
if not events:
    st.info("No active events.")
    st.stop()

titles = {e["title"]: e["id"] for e in events}
selected = st.selectbox("Event", list(titles))
stats = api_get(f"/api/events/{titles[selected]}/analytics")
if not stats:
    st.stop()

c1, c2, c3, c4 = st.columns(4)
c1.metric("Total Pool", format_currency(stats["total_pool"]))
c2.metric("Available Pool", format_currency(stats["available_pool"]))
c3.metric("Participants", stats["participant_count"])
c4.metric("Average Bet", format_currency(stats["average_bet"]))

options = pd.DataFrame(stats["options"])
if options.empty or options["total_bets"].sum() == 0:
    st.info("No bets in this pool yet.")
    st.stop()

left, right = st.columns(2)
with left:
    fig = px.pie(
        options,
        names="label",
        values="total_bets",
        hole=0.45,
        color_discrete_sequence=OPTION_COLORS,
        title="Pool Distribution",
    )
    st.plotly_chart(fig, use_container_width=True)

with right:
    fig = go.Figure(go.Bar(
        x=options["label"],
        y=options["bettors"],
        marker_color=OPTION_COLORS[: len(options)],
    ))
    fig.update_layout(title="Bettors per Option", height=400)
    st.plotly_chart(fig, use_container_width=True)

m1, m2 = st.columns(2)
m1.metric("Most Popular", stats["most_popular"] or "—")
m2.metric("Volatility", f"{stats['volatility']:.1f}" if stats["volatility"] is not None else "—")

odds = api_get(f"/api/events/{titles[selected]}/odds", quiet=True)
if odds:
    options["live odds"] = options["option_id"].map(
        lambda oid: f"{odds['odds'].get(oid):.2f}x" if odds["odds"].get(oid) is not None else "—"
    )
    options["backing"] = options["total_bets"].map(format_currency)
    st.dataframe(
        options[["label", "backing", "bettors", "percentage", "live odds"]],
        use_container_width=True,
        hide_index=True,
    )
