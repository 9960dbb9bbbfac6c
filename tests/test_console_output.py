"""Tests for console output helpers."""

import pytest

from display.console_output import print_panel, print_response, set_colorama_only


@pytest.fixture(autouse=True)
def colorama_only():
    set_colorama_only(True)
    yield
    set_colorama_only(False)


def test_response_status_and_details(capsys):
    print_response("200 OK\nBalance for user Robby Bobby: $100.00\n")
    out = capsys.readouterr().out
    assert "200 OK" in out
    assert "Balance for user Robby Bobby: $100.00" in out


def test_response_without_details(capsys):
    print_response("400 invalid command\n")
    lines = [line for line in capsys.readouterr().out.splitlines() if line.strip()]
    assert len(lines) == 1
    assert "400 invalid command" in lines[0]


def test_panel_banner(capsys):
    print_panel(["Available Commands:", "5. QUIT - Close client connection"], title="Stock Trading System")
    out = capsys.readouterr().out
    assert "========== Stock Trading System ==========" in out
    assert "5. QUIT - Close client connection" in out
