"""Tests for scripts/refresh_leaderboard.py (backend mocked)."""

import importlib.util
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from backend.models import LeaderboardUser
from backend.services.backend_client import BackendError

_SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "refresh_leaderboard.py"


@pytest.fixture
def script():
    spec = importlib.util.spec_from_file_location("refresh_leaderboard", _SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def client():
    client = MagicMock()
    with patch("backend.services.backend_client.get_backend_client", return_value=client):
        yield client


def test_refresh_only(script, client, capsys):
    assert script.main([]) == 0
    assert [c[0][0] for c in client.rpc.call_args_list] == [
        "update_leaderboard_rankings", "refresh_leaderboard",
    ]
    assert "Leaderboard refreshed." in capsys.readouterr().out


def test_recomputes_users_first(script, client, capsys):
    client.rpc.side_effect = [1500, 3, None, None]

    assert script.main(["--user", "u1"]) == 0

    assert client.rpc.call_args_list[0][0] == ("calculate_user_points", {"user_uuid": "u1"})
    assert "u1: 1,500 pts, streak 3" in capsys.readouterr().out


def test_failed_user_sets_exit_code(script, client):
    client.rpc.side_effect = [BackendError("rpc calculate_user_points", "down"), None, None]
    assert script.main(["--user", "u1"]) == 1


def test_ranking_failure(script, client):
    client.rpc.side_effect = BackendError("rpc update_leaderboard_rankings", "down")
    assert script.main([]) == 1


def test_show_top_entries(script, client, capsys):
    with patch(
        "backend.services.leaderboard.get_leaderboard",
        return_value=[LeaderboardUser(id="u1", name="Asha", tier="Gold", total_winnings=125000)],
    ):
        assert script.main(["--show", "1"]) == 0
    assert "₹1,25,000" in capsys.readouterr().out
