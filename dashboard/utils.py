"""Shared utilities for all dashboard pages."""

import os
import pandas as pd
import requests
import streamlit as st
from dotenv import load_dotenv

from backend.core.parimutuel import format_currency  # noqa: F401  (re-exported for pages)

load_dotenv()

_API_URL = os.getenv("API_URL", "http://localhost:8000")
_API_KEY = os.getenv("API_KEY_USER1", "").partition(":")[0]


def _key() -> str:
    return st.session_state.get("api_key", _API_KEY)


def _headers() -> dict:
    return {"X-API-Key": _key()}


def _error_detail(exc: requests.HTTPError) -> str:
    if exc.response is None:
        return str(exc)
    try:
        return exc.response.json().get("detail", str(exc))
    except ValueError:
        return str(exc)


def api_get(endpoint: str, params: dict = None, quiet: bool = False):
    try:
        r = requests.get(f"{_API_URL}{endpoint}", headers=_headers(), params=params, timeout=15)
        r.raise_for_status()
        return r.json()
    except requests.HTTPError as exc:
        if not quiet:
            st.error(f"API {exc.response.status_code}: {_error_detail(exc)}")
        return None
    except Exception as exc:
        if not quiet:
            st.error(f"API error: {exc}")
        return None


def api_post(endpoint: str, payload: dict = None, quiet: bool = False):
    try:
        r = requests.post(
            f"{_API_URL}{endpoint}",
            headers={**_headers(), "Content-Type": "application/json"},
            json=payload or {},
            timeout=15,
        )
        r.raise_for_status()
        return r.json()
    except requests.HTTPError as exc:
        if not quiet:
            st.error(f"API {exc.response.status_code}: {_error_detail(exc)}")
        return None
    except Exception as exc:
        if not quiet:
            st.error(f"Request failed: {exc}")
        return None


def sidebar_api_key() -> None:
    """Show API key input in sidebar if the key is not yet set."""
    if not _key():
        with st.sidebar:
            key_input = st.text_input("API Key", type="password", key="api_key_sidebar")
            if key_input:
                st.session_state["api_key"] = key_input
                st.rerun()


def bet_pl(outcome: str, amount: float, payout) -> float:
    """Profit or loss of one settled bet; a missing payout (None or NaN) counts as 0."""
    if outcome != "won":
        return -amount
    return (payout if pd.notna(payout) else 0) - amount


def ensure_streak_watch() -> None:
    """Register this session's periodic streak check once."""
    if st.session_state.get("streak_watch"):
        return
    if api_post("/api/me/streak/watch", quiet=True):
        st.session_state["streak_watch"] = True


def streak_banner(streak: dict) -> None:
    """Render the streak reset notice or the window warning."""
    if not streak:
        return
    if streak.get("streak_reset") and streak.get("message"):
        st.error(streak["message"])
        return
    warning = streak.get("warning") or {}
    if not warning.get("show_warning"):
        return
    level = warning.get("urgency_level")
    if level == "high":
        st.error(f"🚨 {warning['message']}")
    elif level == "medium":
        st.warning(f"⚠️ {warning['message']}")
    else:
        st.info(f"💡 {warning['message']}")


TIER_BADGES = {
    "Master":   "👑",
    "Diamond":  "💎",
    "Platinum": "🏅",
    "Gold":     "🏆",
    "Silver":   "🥈",
    "Bronze":   "🎯",
}

RANK_ICONS = {1: "👑", 2: "🏆", 3: "🥉"}

OPTION_COLORS = ["#3B82F6", "#EF4444", "#10B981", "#F59E0B", "#8B5CF6", "#EC4899"]
