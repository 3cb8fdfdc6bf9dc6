"""Command-line entry point: start, stop, restart and reload a broker."""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
import re
import signal
import sys
import time
from pathlib import Path
from typing import Any, Mapping, Sequence

from nanomqtt.cmd_proc import (
    DEFAULT_CMD_ADDRESS,
    CommandServer,
    ConfType,
    encode_client_cmd,
    send_command,
)
from nanomqtt.conf_api import (
    set_auth_config,
    set_auth_http_config,
    set_basic_config,
    set_http_config,
    set_sqlite_config,
    set_tls_config,
    set_websocket_config,
)
from nanomqtt.config import Config, LogConfig
from nanomqtt.options import (
    LOG_LEVELS,
    OptionError,
    apply_default_urls,
    broker_parse_opts,
    file_path_parse,
    usage,
)
from nanomqtt.pidfile import DEFAULT_PID_PATH, status_check, store_pid

log = logging.getLogger(__name__)

PID_PATH_ENV = "NANOMQTT_PID_FILE"
CMD_ADDRESS_ENV = "NANOMQTT_CMD_ADDRESS"

_PARSE_FAILED = "Cannot parse command line arguments, quit"

_LOG_LEVELS = {
    "trace": 5,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
}


# ------------------------------------------------------------ config files


def _scalar(token: str) -> Any:
    lowered = token.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered == "null":
        return None
    for convert in (int, float):
        try:
            return convert(token)
        except ValueError:
            pass
    return token


def _merge(target: dict[str, Any], extra: Mapping[str, Any]) -> None:
    for key, value in extra.items():
        existing = target.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            _merge(existing, value)
        else:
            target[key] = value


def _assign(obj: dict[str, Any], path: Sequence[str], value: Any) -> None:
    *parents, last = path
    for part in parents:
        child = obj.get(part)
        if not isinstance(child, dict):
            child = obj[part] = {}
        obj = child
    existing = obj.get(last)
    if isinstance(existing, dict) and isinstance(value, dict):
        _merge(existing, value)
    else:
        obj[last] = value


_BARE_KEY = re.compile(r"[A-Za-z0-9_\-]+")
_VALUE_END = frozenset("\n,}]#")


class _HoconParser:
    """Parser for the HOCON subset used by configuration files (JSON included)."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0
        self.decoder = json.JSONDecoder()

    def error(self, message: str) -> ValueError:
        line = self.text.count("\n", 0, self.pos) + 1
        return ValueError(f"line {line}: {message}")

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def skip(self, newlines: bool = True) -> None:
        while self.pos < len(self.text):
            c = self.text[self.pos]
            if c == "\n" and not newlines:
                return
            if c.isspace():
                self.pos += 1
            elif c == "#" or self.text.startswith("//", self.pos):
                end = self.text.find("\n", self.pos)
                self.pos = len(self.text) if end < 0 else end
            else:
                return

    def skip_separators(self) -> None:
        while True:
            self.skip()
            if self.peek() != ",":
                return
            self.pos += 1

    def parse(self) -> dict[str, Any]:
        self.skip()
        if self.peek() == "{":
            self.pos += 1
            obj = self.members("}")
            self.skip()
            if self.pos < len(self.text):
                raise self.error("unexpected content after document")
            return obj
        return self.members(None)

    def members(self, close: str | None) -> dict[str, Any]:
        obj: dict[str, Any] = {}
        while True:
            self.skip_separators()
            c = self.peek()
            if not c:
                if close is not None:
                    raise self.error(f"missing '{close}'")
                return obj
            if c == close:
                self.pos += 1
                return obj
            path = self.key()
            self.skip(newlines=False)
            c = self.peek()
            if c in ("=", ":"):
                self.pos += 1
                self.skip()
                value = self.value()
            elif c == "{":
                value = self.value()
            else:
                raise self.error(f"expected '=', ':' or '{{' after {'.'.join(path)!r}")
            _assign(obj, path, value)

    def key(self) -> list[str]:
        parts = []
        while True:
            if self.peek() == '"':
                parts.append(self.string())
            else:
                match = _BARE_KEY.match(self.text, self.pos)
                if match is None:
                    raise self.error("expected a key")
                parts.append(match.group())
                self.pos = match.end()
            if self.peek() != ".":
                return parts
            self.pos += 1

    def string(self) -> str:
        try:
            value, end = self.decoder.raw_decode(self.text, self.pos)
        except json.JSONDecodeError as exc:
            raise self.error("malformed string") from exc
        self.pos = end
        return value

    def value(self) -> Any:
        c = self.peek()
        if c == "{":
            self.pos += 1
            return self.members("}")
        if c == "[":
            self.pos += 1
            return self.array()
        if c == '"':
            return self.string()
        return self.unquoted()

    def array(self) -> list[Any]:
        items = []
        while True:
            self.skip_separators()
            c = self.peek()
            if not c:
                raise self.error("missing ']'")
            if c == "]":
                self.pos += 1
                return items
            items.append(self.value())

    def unquoted(self) -> Any:
        start = self.pos
        while self.pos < len(self.text):
            c = self.text[self.pos]
            if c in _VALUE_END or self.text.startswith("//", self.pos):
                break
            self.pos += 1
        token = self.text[start : self.pos].strip()
        if not token:
            raise self.error("expected a value")
        return _scalar(token)


def _parse_old_conf(text: str) -> dict[str, Any]:
    """Parse ``key=value`` lines; dotted keys name nested sections."""
    data: dict[str, Any] = {}
    for number, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"line {number}: expected key=value")
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] == '"':
            parsed: Any = value[1:-1]
        else:
            parsed = _scalar(value) if value else ""
        _assign(data, key.split("."), parsed)
    return data


def _apply_log(data: Mapping[str, Any], settings: LogConfig) -> None:
    level = data.get("level")
    if isinstance(level, str) and level.lower() in LOG_LEVELS:
        settings.level = level.lower()
    file_path = data.get("file")
    if isinstance(file_path, str):
        directory, sep, name = file_path.rpartition("/")
        settings.dir, settings.file = (directory, name) if sep else (None, file_path)
    directory = data.get("dir")
    if isinstance(directory, str):
        settings.dir = directory
    for key in ("to_console", "to_file", "to_syslog"):
        flag = data.get(key)
        if isinstance(flag, bool):
            setattr(settings, key, flag)


def _apply(data: Any, config: Config) -> None:
    if not isinstance(data, Mapping):
        raise ValueError("configuration must be an object")
    set_basic_config(data, config)
    bridge_mode = data.get("bridge_mode")
    if isinstance(bridge_mode, bool):
        config.bridge_mode = bridge_mode
    sections = {
        "tls": (set_tls_config, config.tls),
        "websocket": (set_websocket_config, config.websocket),
        "http_server": (set_http_config, config.http_server),
        "sqlite": (set_sqlite_config, config.sqlite),
        "auth_http": (set_auth_http_config, config.auth_http),
    }
    for key, (setter, target) in sections.items():
        section = data.get(key)
        if isinstance(section, Mapping):
            setter(section, target)
    auth = data.get("auth")
    if isinstance(auth, list):
        set_auth_config(auth, config.auths)
    log_section = data.get("log")
    if isinstance(log_section, Mapping):
        _apply_log(log_section, config.log)


def load_config_file(
    path: str | os.PathLike[str] | None, conf_type: int = ConfType.HOCON
) -> Config:
    """Return the configuration read from ``path`` over the defaults.

    HOCON files (JSON included) are read as nested objects; older files
    hold ``key=value`` lines with dotted keys. Top-level keys are the basic
    settings; ``tls``, ``websocket``, ``http_server``, ``sqlite``,
    ``auth_http`` and ``log`` are sections and ``auth`` is a list of
    ``{login, password}`` objects. Without a path the defaults are returned.
    """
    kind = ConfType(conf_type)
    config = Config()
    if path is None:
        return config
    text = Path(path).read_text(encoding="utf-8")
    if kind is ConfType.HOCON:
        data = _HoconParser(text).parse()
    else:
        data = _parse_old_conf(text)
    _apply(data, config)
    config.conf_file = os.fspath(path)
    return config


# ------------------------------------------------------------ helpers


def _pid_path() -> str:
    return os.environ.get(PID_PATH_ENV) or DEFAULT_PID_PATH


def _cmd_address() -> Any:
    value = os.environ.get(CMD_ADDRESS_ENV)
    if not value:
        return DEFAULT_CMD_ADDRESS
    host, sep, port = value.rpartition(":")
    if sep and host and port.isdigit():
        return (host, int(port))
    return value


def _running_pid() -> int | None:
    if os.name == "nt":
        log.warning("process checks are not supported on Windows")
        return None
    try:
        return status_check(_pid_path())
    except OSError as exc:
        log.error("unexpected error: %s", exc)
        return None


def _err(message: str) -> None:
    print(message, file=sys.stderr)


def _configure_logging(settings: LogConfig) -> None:
    logger = logging.getLogger("nanomqtt")
    for handler in list(logger.handlers):
        if getattr(handler, "_from_cli", False):
            logger.removeHandler(handler)
            handler.close()
    handlers: list[logging.Handler] = []
    if settings.to_console:
        handlers.append(logging.StreamHandler(sys.stderr))
    if settings.to_file:
        target = os.path.join(settings.dir or ".", settings.file or "nanomqtt.log")
        handlers.append(logging.FileHandler(target, encoding="utf-8"))
    if settings.to_syslog and os.name != "nt":
        address: Any = "/dev/log" if os.path.exists("/dev/log") else ("localhost", 514)
        handlers.append(logging.handlers.SysLogHandler(address=address))
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    for handler in handlers:
        handler.setFormatter(formatter)
        handler._from_cli = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    logger.setLevel(_LOG_LEVELS.get(settings.level, logging.WARNING))


def _daemonize() -> None:
    if os.name == "nt":
        raise OSError("Daemon mode is not supported on Windows")
    if os.fork() > 0:
        os._exit(0)
    os.setsid()
    if os.fork() > 0:
        os._exit(0)
    os.chdir("/")
    with open(os.devnull, "r+b") as devnull:
        for stream in (sys.stdin, sys.stdout, sys.stderr):
            try:
                os.dup2(devnull.fileno(), stream.fileno())
            except (OSError, ValueError):
                pass


def _log_config(config: Config) -> None:
    log.info("url: %s", config.url)
    log.info("parallel: %d", config.parallel)
    log.info("daemon: %s", config.daemon)
    log.info("tls: %s %s", config.tls.enable, config.tls.url)
    log.info("websocket: %s %s", config.websocket.enable, config.websocket.url)
    log.info("http server: %s port %d", config.http_server.enable, config.http_server.port)


def _run(config: Config) -> int:
    server = None
    if config.ipc_internal:
        try:
            server = CommandServer(_cmd_address(), config, load_config_file)
        except OSError as exc:
            _err(f"cannot open command socket: {exc}")
            return 1
    print("Broker is started successfully!")
    try:
        if server is not None:
            server.serve_forever()
        else:
            while True:
                time.sleep(3600)
    except KeyboardInterrupt:
        pass
    finally:
        if server is not None:
            server.shutdown()
    return 0


# ------------------------------------------------------------ commands


def broker_start(argv: Sequence[str]) -> int:
    """Start a broker with the options in ``argv``; return the exit status."""
    if _running_pid() is not None:
        _err(
            "One instance is still running, a new instance won't be "
            "started until the other one is stopped."
        )
        return 1
    try:
        conf_type, path = file_path_parse(argv)
    except OptionError as exc:
        _err(str(exc))
        _err(_PARSE_FAILED)
        return 1
    except SystemExit as exc:
        return int(exc.code or 0)

    try:
        config = load_config_file(path, conf_type or ConfType.HOCON)
    except (OSError, ValueError) as exc:
        _err(f"Cannot load configuration: {exc}")
        return 1

    try:
        broker_parse_opts(argv, config)
    except OptionError as exc:
        _err(str(exc))
        _err(_PARSE_FAILED)
        return 1
    apply_default_urls(config)

    if config.daemon:
        try:
            _daemonize()
        except OSError as exc:
            log.error("Error occurs, cannot daemonize: %s", exc)
            _err(f"Error occurs, cannot daemonize: {exc}")
            return 1

    _configure_logging(config.log)
    _log_config(config)

    try:
        store_pid(_pid_path())
    except OSError as exc:
        log.error("create pid file failed: %s", exc)

    return _run(config)


def broker_stop(argv: Sequence[str]) -> int:
    """Stop the running broker; return the exit status."""
    if os.name == "nt":
        log.error("Not supported on Windows")
        return 0
    if argv:
        print(usage())
        return 1
    pid = _running_pid()
    if pid is None:
        _err("There is no running instance.")
        return 1
    os.kill(pid, signal.SIGTERM)
    _err("Broker stopped.")
    return 0


def broker_reload(argv: Sequence[str]) -> int:
    """Ask the running broker to reload its configuration."""
    if os.name != "nt" and _running_pid() is None:
        _err(
            "The broker is not running, use command 'start [--conf <path>]' "
            "to start a new instance."
        )
        return 1
    try:
        conf_type, path = file_path_parse(argv)
    except OptionError as exc:
        _err(str(exc))
        _err(_PARSE_FAILED)
        return 1
    except SystemExit as exc:
        return int(exc.code or 0)

    msg = encode_client_cmd(path, conf_type or ConfType.HOCON)
    try:
        reply = send_command(msg, _cmd_address())
    except OSError as exc:
        _err(f"Cannot reach the broker: {exc}")
        return 1
    print(reply if reply else "no response from broker")
    return 0


def broker_restart(argv: Sequence[str]) -> int:
    """Stop the running broker, if any, and start a new one."""
    if os.name == "nt":
        log.error("Not supported on Windows")
        return 0
    pid = _running_pid()
    if pid is not None:
        os.kill(pid, signal.SIGTERM)
        while (pid := _running_pid()) is not None:
            os.kill(pid, signal.SIGKILL)
            time.sleep(0.1)
        _err("Previous instance stopped.")
    else:
        _err("There is no running instance.")
    return broker_start(argv)


_COMMANDS = {
    "start": broker_start,
    "stop": broker_stop,
    "restart": broker_restart,
    "reload": broker_reload,
}


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command named first in ``argv``; print usage when there is none."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args or args[0] not in _COMMANDS:
        print(usage())
        return 0
    return _COMMANDS[args[0]](args[1:])