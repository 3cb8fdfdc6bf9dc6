"""Reload commands sent to a running broker over a local control socket.

A client sends a JSON document such as
``{"cmd":"reload","conf_file":"/etc/broker.conf","conf_type":2}``; the
broker parses the named file and copies its hot-reloadable settings into
the running configuration, answering ``reload succeed`` or
``reload failed!``.

Messages on the control socket are framed by a 4-byte big-endian length.
"""

from __future__ import annotations

import json
import logging
import os
import socket
import socketserver
import struct
import tempfile
import threading
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Tuple, Union

from nanomqtt.conf_api import (
    reload_auth_config,
    reload_basic_config,
    reload_sqlite_config,
)
from nanomqtt.config import Config

log = logging.getLogger(__name__)

Address = Union[str, "os.PathLike[str]", Tuple[str, int]]
Loader = Callable[[str, "ConfType"], Config]

RELOAD_SUCCEED = "reload succeed"
RELOAD_FAILED = "reload failed!"
DEFAULT_CMD_ADDRESS = os.path.join(tempfile.gettempdir(), "nanomqtt_cmd.sock")
COMMAND_TIMEOUT = 5.0
_MAX_FRAME = 1 << 20
_HEADER = struct.Struct(">I")


class ConfType(IntEnum):
    """Format of a configuration file."""

    HOCON = 2
    CONF = 3


class CommandError(Exception):
    """A control command was malformed or cannot be carried out."""


@dataclass(frozen=True)
class ReloadRequest:
    """A validated reload command."""

    conf_file: str
    conf_type: ConfType = ConfType.HOCON


def encode_client_cmd(conf_file: str | None, conf_type: int) -> str:
    """Return the compact JSON reload command for ``conf_file``."""
    obj: dict[str, Any] = {"cmd": "reload"}
    if conf_file is not None:
        obj["conf_file"] = conf_file
    obj["conf_type"] = int(conf_type)
    return json.dumps(obj, separators=(",", ":"))


def parse_reload_command(
    payload: str | bytes, config: Config
) -> ReloadRequest:
    """Validate a reload command against the running configuration."""
    if isinstance(payload, (bytes, bytearray, memoryview)):
        try:
            text = bytes(payload).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CommandError("Invalid command") from exc
    else:
        text = payload
    text = text.rstrip("\0")
    try:
        obj = json.loads(text)
    except ValueError as exc:
        raise CommandError("Invalid command") from exc
    if not isinstance(obj, dict):
        raise CommandError("Invalid command")

    cmd = obj.get("cmd")
    if not isinstance(cmd, str) or cmd.lower() != "reload":
        raise CommandError("Invalid command")

    conf_file = obj.get("conf_file")
    if not isinstance(conf_file, str):
        conf_file = None
    if conf_file is None and config.conf_file is None:
        raise CommandError("conf_file is not specified")
    if conf_file is not None and not os.path.exists(conf_file):
        raise CommandError("conf_file does not exist")

    raw_type = obj.get("conf_type", int(ConfType.HOCON))
    if isinstance(raw_type, bool) or not isinstance(raw_type, (int, float)):
        raw_type = int(ConfType.HOCON)
    try:
        conf_type = ConfType(int(raw_type))
    except ValueError as exc:
        raise CommandError(f"unsupported conf_type {raw_type}") from exc

    path = conf_file if conf_file is not None else config.conf_file
    return ReloadRequest(path, conf_type)


def handle_command(payload: str | bytes, config: Config, loader: Loader) -> str:
    """Carry out a reload command and return the text to answer with."""
    try:
        request = parse_reload_command(payload, config)
        new = loader(request.conf_file, request.conf_type)
    except (CommandError, OSError, ValueError) as exc:
        log.warning("reload rejected: %s", exc)
        return RELOAD_FAILED

    reload_basic_config(config, new)
    reload_sqlite_config(config.sqlite, new.sqlite)
    reload_auth_config(config.auths, new.auths)
    config.log = new.log
    return RELOAD_SUCCEED


def _recv_exact(sock: socket.socket, size: int) -> bytes:
    chunks = bytearray()
    while len(chunks) < size:
        chunk = sock.recv(size - len(chunks))
        if not chunk:
            raise EOFError("connection closed")
        chunks.extend(chunk)
    return bytes(chunks)


def _recv_frame(sock: socket.socket) -> bytes:
    (length,) = _HEADER.unpack(_recv_exact(sock, _HEADER.size))
    if length > _MAX_FRAME:
        raise CommandError("frame too large")
    return _recv_exact(sock, length)


def _send_frame(sock: socket.socket, data: bytes) -> None:
    sock.sendall(_HEADER.pack(len(data)) + data)


def _is_path(address: Address) -> bool:
    return isinstance(address, (str, os.PathLike))


def send_command(cmd: str | bytes, address: Address) -> str:
    """Send ``cmd`` to the broker at ``address`` and return its answer."""
    data = cmd.encode("utf-8") if isinstance(cmd, str) else bytes(cmd)
    if _is_path(address):
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        target: Any = os.fspath(address)
    else:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        target = tuple(address)
    with sock:
        sock.settimeout(COMMAND_TIMEOUT)
        sock.connect(target)
        _send_frame(sock, data + b"\0")
        try:
            reply = _recv_frame(sock)
        except EOFError:
            return ""
    return reply.decode("utf-8", errors="replace").rstrip("\0")


class _Handler(socketserver.BaseRequestHandler):
    def handle(self) -> None:
        owner: CommandServer = self.server.owner  # type: ignore[attr-defined]
        while True:
            try:
                payload = _recv_frame(self.request)
            except (EOFError, OSError, CommandError):
                return
            log.debug("recv cmd: %r", payload)
            with owner._lock:
                response = handle_command(payload, owner.config, owner.loader)
            log.debug("send resp: %s", response)
            _send_frame(self.request, response.encode("utf-8"))


class _TCPServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True


if hasattr(socketserver, "ThreadingUnixStreamServer"):

    class _UnixServer(socketserver.ThreadingUnixStreamServer):
        daemon_threads = True

else:  # pragma: no cover - platforms without AF_UNIX
    _UnixServer = None  # type: ignore[assignment,misc]


class CommandServer:
    """Serves reload commands for a running configuration."""

    def __init__(self, address: Address, config: Config, loader: Loader) -> None:
        self.config = config
        self.loader = loader
        self._lock = threading.Lock()
        self._serving = False
        self._path: str | None = None
        if _is_path(address):
            if _UnixServer is None:
                raise OSError("local sockets are not supported on this platform")
            self._path = os.fspath(address)
            if os.path.exists(self._path):
                os.unlink(self._path)
            self._server: socketserver.BaseServer = _UnixServer(
                self._path, _Handler
            )
        else:
            self._server = _TCPServer(tuple(address), _Handler)
        self._server.owner = self  # type: ignore[attr-defined]

    @property
    def server_address(self) -> Any:
        """The address actually bound."""
        return self._server.server_address

    def serve_forever(self) -> None:
        """Answer commands until :meth:`shutdown` is called."""
        self._serving = True
        self._server.serve_forever(poll_interval=0.1)

    def shutdown(self) -> None:
        """Stop serving and release the socket."""
        if self._serving:
            self._server.shutdown()
            self._serving = False
        self._server.server_close()
        if self._path is not None and os.path.exists(self._path):
            os.unlink(self._path)

    def __enter__(self) -> "CommandServer":
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown()