"""Tests for the command-line interface."""

import csv
import json

import pytest

from shortseo.cli import main


TEXT = "Three quick tips for sharper phone photos"


@pytest.fixture
def paths(tmp_path):
    return ["--state", str(tmp_path / "state.json"), "--events", str(tmp_path / "events.jsonl")]


def read_events(tmp_path):
    with open(tmp_path / "events.jsonl") as f:
        return [json.loads(line)["eventType"] for line in f if line.strip()]


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert "usage" in capsys.readouterr().out.lower()


def test_usage_fresh(paths, capsys):
    assert main(paths + ["usage"]) == 0
    assert "Remaining: 5/5" in capsys.readouterr().out


def test_generate_with_mock(paths, tmp_path, capsys):
    """A mock generation prints keywords and persists the new count."""
    assert main(paths + ["generate", TEXT, "--platform", "tiktok", "--mock"]) == 0

    out = capsys.readouterr().out
    assert "SHORTSEO KEYWORDS" in out
    assert "- tiktok" in out
    assert "Remaining: 4/5" in out

    main(paths + ["usage"])
    assert "Remaining: 4/5" in capsys.readouterr().out
    assert read_events(tmp_path) == ["keyword_generation_attempt", "keyword_generation_success"]


def test_generate_invalid_text(paths, capsys):
    assert main(paths + ["generate", "short", "--mock"]) == 1
    assert "at least 10 characters" in capsys.readouterr().out


def test_limit_and_bonus(paths, capsys):
    """The quota runs out after five runs and the bonus restores it."""
    for _ in range(5):
        assert main(paths + ["generate", TEXT, "--mock"]) == 0
    assert "Daily limit reached" in capsys.readouterr().out

    assert main(paths + ["generate", TEXT, "--mock"]) == 1
    assert "Daily generation limit of 5 reached" in capsys.readouterr().out

    assert main(paths + ["claim-bonus", "creator@example.com"]) == 0
    out = capsys.readouterr().out
    assert "Bonus generations added!" in out
    assert "Remaining: 5/10" in out

    assert main(paths + ["claim-bonus", "creator@example.com"]) == 1
    assert "already received" in capsys.readouterr().out


def test_referral_url_code(paths, tmp_path, capsys):
    assert main(paths + ["referral", "--url-code", "ABC123"]) == 0
    assert "Active referral code: ABC123 (from url)" in capsys.readouterr().out

    main(paths + ["referral"])
    assert "ABC123 (from stored)" in capsys.readouterr().out
    assert read_events(tmp_path) == ["referral_code_applied"]


def test_referral_message_origin_checked(paths, capsys):
    main(paths + ["referral", "--message-code", "EVIL", "--origin", "https://evil.example"])

    out = capsys.readouterr().out
    assert "was rejected" in out
    assert "No active referral code." in out


def test_referral_message_trusted(paths, capsys):
    main(paths + ["referral", "--message-code", "MSG", "--origin", "https://superprofile.bio"])

    assert "Active referral code: MSG (from message)" in capsys.readouterr().out


def test_generate_attaches_referral(paths, tmp_path):
    main(paths + ["generate", TEXT, "--mock", "--referral", "REF1"])

    with open(tmp_path / "events.jsonl") as f:
        events = [json.loads(line) for line in f]
    assert events[0]["eventType"] == "referral_code_applied"
    assert all(e.get("referralCode") == "REF1" for e in events)


def test_export_events(paths, tmp_path, capsys):
    main(paths + ["generate", TEXT, "--mock"])
    out_path = tmp_path / "events.csv"

    assert main(paths + ["export-events", "--csv", str(out_path)]) == 0
    assert "Exported 2 events" in capsys.readouterr().out

    with open(out_path, newline="") as f:
        rows = list(csv.DictReader(f))
    assert [r["eventType"] for r in rows] == [
        "keyword_generation_attempt",
        "keyword_generation_success",
    ]


def test_generate_unlimited(paths, capsys):
    """--unlimited runs past the daily limit without spending quota."""
    for _ in range(6):
        assert main(paths + ["generate", TEXT, "--mock", "--unlimited"]) == 0
    capsys.readouterr()

    main(paths + ["usage"])
    assert "Remaining: 5/5" in capsys.readouterr().out
