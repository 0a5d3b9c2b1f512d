"""Functional tests for the process tree reaper.

Trees are built from real bash and sleep processes — no mocks.
"""

import contextlib
import os
import subprocess
import sys
import time

import psutil
import pytest

from gbx_cli.process import (
    ChildListStrategy,
    HandleTableStrategy,
    ProcessHandle,
    TreeStrategy,
    default_strategy,
    kill_tree,
)
from gbx_cli.process.reaper import discover_tree, list_child_pids

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="builds trees with bash")

STRATEGIES = [ChildListStrategy(), HandleTableStrategy()]


def _spawn(script: str) -> subprocess.Popen:
    return subprocess.Popen(["/bin/bash", "-c", script])


def _wait_for_tree(root: ProcessHandle, size: int, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        with contextlib.ExitStack() as stack:
            if len(discover_tree(root, ChildListStrategy(), stack)) >= size:
                return
        time.sleep(0.05)
    pytest.fail(f"tree under pid {root.pid} never reached {size} processes")


def _gone(pid: int) -> bool:
    try:
        return psutil.Process(pid).status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


def _descendant_pids(pid: int) -> list[int]:
    return [p.pid for p in psutil.Process(pid).children(recursive=True)]


@pytest.mark.parametrize("strategy", STRATEGIES, ids=lambda s: s.name)
def test_kill_tree_reaps_every_descendant(strategy):
    proc = _spawn("sleep 30 & (sleep 30; true) & wait")
    try:
        with ProcessHandle.open(proc.pid) as root:
            _wait_for_tree(root, 3)
            descendants = _descendant_pids(proc.pid)

            kill_tree(root, grace=2.0, strategy=strategy)

        assert proc.wait(timeout=5) is not None
        deadline = time.monotonic() + 5
        while not all(_gone(pid) for pid in descendants) and time.monotonic() < deadline:
            time.sleep(0.05)
        assert all(_gone(pid) for pid in descendants)
    finally:
        proc.kill()
        proc.wait()


@pytest.mark.parametrize("strategy", STRATEGIES, ids=lambda s: s.name)
def test_discover_tree_is_post_order(strategy):
    proc = _spawn("(sleep 30; true) & wait")
    try:
        with ProcessHandle.open(proc.pid) as root:
            _wait_for_tree(root, 2)
            with contextlib.ExitStack() as stack:
                tree = discover_tree(root, strategy, stack)

                assert len(tree) == 2
                leaf, subshell = tree
                assert subshell.parent_pid() == root.pid
                assert leaf.parent_pid() == subshell.pid
            assert all(handle.closed for handle in tree)

            kill_tree(root, grace=2.0)
        proc.wait(timeout=5)
    finally:
        proc.kill()
        proc.wait()


def test_kill_tree_escalates_when_term_ignored():
    proc = _spawn("trap '' TERM; sleep 30 & wait; sleep 30")
    try:
        with ProcessHandle.open(proc.pid) as root:
            _wait_for_tree(root, 1)
            start = time.monotonic()
            kill_tree(root, grace=0.5)
            assert time.monotonic() - start < 5
        assert proc.wait(timeout=5) == -9
    finally:
        proc.kill()
        proc.wait()


def test_kill_tree_on_exited_root_is_noop():
    proc = subprocess.Popen(["sleep", "0.1"])
    root = ProcessHandle.open(proc.pid)
    assert root is not None
    proc.wait()

    with root:
        kill_tree(root)
        kill_tree(root)
    assert root.closed


def test_kill_tree_twice_is_harmless():
    proc = _spawn("sleep 30 & wait")
    try:
        with ProcessHandle.open(proc.pid) as root:
            kill_tree(root, grace=2.0)
            proc.wait(timeout=5)
            kill_tree(root, grace=2.0)
    finally:
        proc.kill()
        proc.wait()


def test_kill_tree_does_not_close_root():
    proc = subprocess.Popen(["sleep", "30"])
    try:
        root = ProcessHandle.open(proc.pid)
        kill_tree(root, grace=2.0)
        assert not root.closed
        root.close()
        proc.wait(timeout=5)
    finally:
        proc.kill()
        proc.wait()


# -- ProcessHandle -----------------------------------------------------------


def test_open_returns_none_for_exited_process():
    proc = subprocess.Popen(["true"])
    proc.wait()
    assert ProcessHandle.open(proc.pid) is None


def test_close_is_idempotent():
    handle = ProcessHandle.open(os.getpid())
    handle.close()
    handle.close()
    assert handle.closed


def test_is_child_of():
    proc = subprocess.Popen(["sleep", "30"])
    try:
        with ProcessHandle.open(os.getpid()) as me, ProcessHandle.open(proc.pid) as child:
            assert child.is_child_of(me)
            assert not me.is_child_of(child)
            assert not me.is_child_of(me)
            assert child.started_after(me)
            assert child.is_alive()
    finally:
        proc.kill()
        proc.wait()


def test_start_time_tie_counts_as_child_only_off_windows():
    me = psutil.Process()
    a = ProcessHandle(me, 100.0)
    b = ProcessHandle(me, 100.0)
    assert a.started_after(b) is (sys.platform != "win32")
    assert not ProcessHandle(me, 99.0).started_after(b)


def test_zombie_is_not_alive():
    proc = subprocess.Popen(["true"])
    handle = ProcessHandle.open(proc.pid)
    try:
        if handle is None:
            pytest.skip("child exited before it could be opened")
        deadline = time.monotonic() + 5
        while handle.is_alive() and time.monotonic() < deadline:
            time.sleep(0.05)
        # Not reaped yet: still a zombie in the process table
        assert not handle.is_alive()
    finally:
        proc.wait()
        if handle is not None:
            handle.close()


# -- Discovery ---------------------------------------------------------------


def test_list_child_pids_finds_direct_children():
    proc = subprocess.Popen(["sleep", "30"])
    try:
        assert proc.pid in list_child_pids(os.getpid())
    finally:
        proc.kill()
        proc.wait()


def test_list_child_pids_without_pgrep(tmp_path, monkeypatch):
    monkeypatch.setenv("PATH", str(tmp_path))
    assert list_child_pids(os.getpid()) == []


def test_default_strategy_is_cached():
    strategy = default_strategy()
    assert strategy is default_strategy()
    assert isinstance(strategy, TreeStrategy)
    assert isinstance(strategy, ChildListStrategy)


@pytest.mark.parametrize("strategy", STRATEGIES, ids=lambda s: s.name)
def test_strategies_satisfy_protocol(strategy):
    assert isinstance(strategy, TreeStrategy)
