"""Pid file used to find out whether a broker instance is already running."""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Union

log = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

DEFAULT_PID_PATH = os.path.join(tempfile.gettempdir(), "nanomqtt", "nanomqtt.pid")

_LEADING_PID = re.compile(r"\s*\+?(\d+)")


def process_running(pid: int) -> bool:
    """Return True if a process with ``pid`` exists."""
    if os.name == "nt":
        raise OSError("process checks are not supported on Windows")
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # The process exists but belongs to someone else.
        return True
    return True


def _read_pid(path: Path) -> int | None:
    try:
        text = path.read_bytes().decode("ascii", errors="replace")
    except OSError:
        log.warning(".pid file not found or unreadable")
        return None
    match = _LEADING_PID.match(text)
    if match is None:
        log.error("read pid from file error!")
        return None
    return int(match.group(1))


def status_check(pid_path: PathLike = DEFAULT_PID_PATH) -> int | None:
    """Return the pid of the running instance recorded in ``pid_path``.

    Returns None when no instance is running. A pid file naming a process
    that no longer exists is removed; failing to remove it raises OSError.
    A pid file that cannot be read or holds no pid is left alone.
    """
    path = Path(pid_path)
    if not path.exists():
        log.warning(".pid file not found or unreadable")
        return None
    pid = _read_pid(path)
    if pid is None:
        return None
    log.info("pid read, [%d]", pid)
    if process_running(pid):
        log.info("there is a running instance: pid [%d]", pid)
        return pid
    os.remove(path)
    log.info(".pid file is removed")
    return None


def store_pid(pid_path: PathLike = DEFAULT_PID_PATH, pid: int | None = None) -> int:
    """Write ``pid`` (the current process by default) to ``pid_path``.

    Returns the pid written; raises OSError when the file cannot be written.
    """
    if pid is None:
        pid = os.getpid()
    if pid <= 0:
        raise ValueError("pid must be positive")
    path = Path(pid_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(str(pid), encoding="ascii")
    log.info("%d", pid)
    return pid