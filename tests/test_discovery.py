from __future__ import annotations

import subprocess

import pytest

from btrepl.core.locator import list_active_connections


def _cp(cmd: list[str], rc: int, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(cmd, rc, stdout=stdout, stderr=stderr)


def test_active_connections_parsed_from_hcitool(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(cmd, check, capture_output, text):
        if cmd[:2] == ("hcitool", "con"):
            return _cp(
                list(cmd),
                0,
                stdout=(
                    "Connections:\n"
                    "\t< ACL b0:d5:fb:99:14:b0 handle 42 state 1 lm MASTER\n"
                    "\t> ACL 88:92:CC:11:22:33 handle 43 state 1 lm SLAVE\n"
                ),
            )
        if cmd[0] == "bluetoothctl":
            return _cp(list(cmd), 0, stdout="Device 88:92:CC:11:22:33 OnePlus Buds 4\n")
        raise AssertionError(f"Unexpected cmd: {cmd}")

    monkeypatch.setattr(subprocess, "run", fake_run)

    assert list_active_connections() == ["B0:D5:FB:99:14:B0", "88:92:CC:11:22:33"]


def test_failing_or_missing_tools_yield_empty_list(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(cmd, check, capture_output, text):
        if cmd[0] == "hcitool":
            raise FileNotFoundError(cmd[0])
        return _cp(list(cmd), -6, stderr="dbus crashed")

    monkeypatch.setattr(subprocess, "run", fake_run)

    assert list_active_connections() == []
