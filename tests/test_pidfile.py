import os
import subprocess
import sys
from unittest import mock

import pytest

from nanomqtt.pidfile import process_running, status_check, store_pid


def _dead_pid():
    proc = subprocess.Popen([sys.executable, "-c", "pass"])
    proc.wait()
    return proc.pid


def test_process_running_for_self():
    assert process_running(os.getpid()) is True


def test_process_running_rejects_non_positive():
    assert process_running(0) is False
    assert process_running(-5) is False


def test_process_running_for_finished_process():
    assert process_running(_dead_pid()) is False


def test_store_then_check_round_trip(tmp_path):
    pid_path = tmp_path / "run" / "broker.pid"
    written = store_pid(pid_path)
    assert written == os.getpid()
    assert pid_path.read_text() == str(os.getpid())
    assert status_check(pid_path) == os.getpid()
    assert pid_path.exists()


def test_store_explicit_pid(tmp_path):
    pid_path = tmp_path / "broker.pid"
    store_pid(pid_path, os.getpid())
    assert status_check(pid_path) == os.getpid()


def test_store_rejects_bad_pid(tmp_path):
    with pytest.raises(ValueError):
        store_pid(tmp_path / "broker.pid", 0)


def test_missing_file_means_not_running(tmp_path):
    assert status_check(tmp_path / "absent.pid") is None


def test_stale_pid_file_is_removed(tmp_path):
    pid_path = tmp_path / "broker.pid"
    store_pid(pid_path, _dead_pid())
    assert status_check(pid_path) is None
    assert not pid_path.exists()


def test_garbage_pid_file_is_kept(tmp_path):
    pid_path = tmp_path / "broker.pid"
    pid_path.write_text("not a pid")
    assert status_check(pid_path) is None
    assert pid_path.exists()


def test_leading_whitespace_and_trailing_bytes_are_accepted(tmp_path):
    pid_path = tmp_path / "broker.pid"
    pid_path.write_bytes(b"  " + str(os.getpid()).encode() + b"\0\0\n")
    assert status_check(pid_path) == os.getpid()


def test_failure_to_remove_stale_file_raises(tmp_path):
    pid_path = tmp_path / "broker.pid"
    store_pid(pid_path, _dead_pid())
    with mock.patch("os.remove", side_effect=PermissionError("denied")):
        with pytest.raises(OSError):
            status_check(pid_path)
    assert pid_path.exists()