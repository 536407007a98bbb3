"""Tests for both halves of the restart protocol."""

import sys

import pytest

from autopoiesis.agent.restart import RestartController
from autopoiesis.agent.supervisor import (
    child_command,
    supervise,
)
from autopoiesis.memory.history_store import HistoryStore


class _Exited(Exception):
    pass


def test_restart_flushes_history_before_exit(history_path) -> None:
    store = HistoryStore(history_path)
    store.append("user", "pending")
    seen: list = []

    def fake_exit(code: int):
        seen.append((code, HistoryStore(history_path).turns))
        raise _Exited

    with pytest.raises(_Exited):
        RestartController(store, exit_code=7, exit_fn=fake_exit).restart("unsent reply")

    code, turns = seen[0]
    assert code == 7
    assert [t.content for t in turns] == ["pending"]


def test_restart_uses_sys_exit_by_default(history_path) -> None:
    with pytest.raises(SystemExit) as exc_info:
        RestartController(HistoryStore(history_path), exit_code=3).restart()
    assert exc_info.value.code == 3


def test_supervise_relaunches_on_restart_code() -> None:
    codes = iter([3, 3, 0])
    launches: list = []

    def run(cmd):
        launches.append(list(cmd))
        return next(codes)

    rc = supervise(["agent"], restart_code=3, max_restarts=0, backoff=0, run=run)

    assert rc == 0
    assert launches == [["agent"]] * 3


def test_supervise_stops_on_other_exit_codes() -> None:
    rc = supervise(["agent"], restart_code=3, max_restarts=0, backoff=0, run=lambda cmd: 1)
    assert rc == 1


def test_supervise_gives_up_after_max_restarts() -> None:
    launches: list = []
    sleeps: list = []

    def run(cmd):
        launches.append(cmd)
        return 3

    rc = supervise(
        ["agent"], restart_code=3, max_restarts=2, backoff=0.5, run=run, sleep=sleeps.append
    )

    assert rc == 1
    assert len(launches) == 3
    assert sleeps == [0.5, 0.5]


def test_child_command_runs_chat_mode() -> None:
    cmd = child_command(["--log-level", "debug"])
    assert cmd[0] == sys.executable
    assert cmd[1:5] == ["-m", "autopoiesis.main", "--mode", "chat"]
    assert cmd[-2:] == ["--log-level", "debug"]
