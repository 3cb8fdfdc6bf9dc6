"""Command-line options of the broker's start, restart and reload commands."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Sequence

from nanomqtt.cmd_proc import ConfType
from nanomqtt.config import DEFAULT_TCP_URL, Config

DEFAULT_TLS_URL = "tls+nmq-tcp://0.0.0.0:8883"
DEFAULT_WS_URL = "nmq-ws://0.0.0.0:8083/mqtt"
DEFAULT_WSS_URL = "nmq-wss://0.0.0.0:8086/mqtt"

TCP_URL_PREFIX = "nmq-tcp"
TLS_URL_PREFIX = "tls+nmq-tcp"
WS_URL_PREFIX = "nmq-ws"
WSS_URL_PREFIX = "nmq-wss"

LOG_LEVELS = ("trace", "debug", "info", "warn", "error", "fatal")

_PROG = "nanomqtt"


class OptionError(Exception):
    """The command line could not be parsed."""


class LogTarget(Enum):
    """A log destination, named by its switch in the log configuration."""

    CONSOLE = "to_console"
    FILE = "to_file"
    SYSLOG = "to_syslog"


@dataclass(frozen=True)
class _Option:
    name: str
    short: str | None = None
    takes_arg: bool = False


_OPTIONS = (
    _Option("help", "h"),
    _Option("conf", None, True),
    _Option("old_conf", None, True),
    _Option("daemon", "d"),
    _Option("tq_thread", "t", True),
    _Option("max_tq_thread", "T", True),
    _Option("parallel", "n", True),
    _Option("property_size", "s", True),
    _Option("msq_len", "S", True),
    _Option("qos_duration", "D", True),
    _Option("url", None, True),
    _Option("http"),
    _Option("port", "p", True),
    _Option("cacert", None, True),
    _Option("cert", "E", True),
    _Option("key", None, True),
    _Option("keypass", None, True),
    _Option("verify"),
    _Option("fail"),
    _Option("log_level", None, True),
    _Option("log_stdout", None, True),
    _Option("log_syslog", None, True),
    _Option("log_file", None, True),
)

_USAGE = f"""\
Usage: {_PROG} {{ {{ start | restart [--url <url>] [--conf <path>] [-t, --tq_thread <num>]
                     [-T, --max_tq_thread <num>] [-n, --parallel <num>]
                     [--old_conf <path>] [-D, --qos_duration <num>] [--http]
                     [-p, --port] [-d, --daemon]
                     [--cacert <path>] [-E, --cert <path>] [--key <path>]
                     [--keypass <password>] [--verify] [--fail] }}
                 | reload [--conf <path>]
                 | stop }}

Options:
  --url <url>                Listener url: 'nmq-tcp://host:port',
                             'tls+nmq-tcp://host:port',
                             'nmq-ws://host:port/path',
                             'nmq-wss://host:port/path'
  --conf <path>              Path of a HOCON configuration file
  --old_conf <path>          Path of a configuration file in the older format
  --http                     Enable the http server (default: false)
  -p, --port <num>           Port of the http server (default: 8081)
  -t, --tq_thread <num>      Number of task queue threads (1 to 255)
  -T, --max_tq_thread <num>  Maximum number of task queue threads (1 to 255)
  -n, --parallel <num>       Maximum number of outstanding requests
  -s, --property_size <num>  Maximum size of an MQTT user property
  -S, --msq_len <num>        Queue length for resending messages
  -D, --qos_duration <num>   Interval of the QoS timer
  -d, --daemon               Run as a daemon (default: false)
  --cacert                   File of PEM-encoded CA certificates
  --cert                     File holding the user certificate (also -E)
  --key                      File holding the user's PEM-encoded private key
  --keypass                  Password of the private key, if it has one
  --verify                   Verify the peer certificate (default: false)
  --fail                     Fail if the client sends no certificate
                             (default: false)
  --log_level <level>        Log level: trace, debug, info, warn, error, fatal
                             (default: warn)
  --log_file <file_path>     Path of the log file
  --log_stdout <true|false>  Enable/disable console logging (default: true)
  --log_syslog <true|false>  Enable/disable syslog output (default: false)
"""


def usage() -> str:
    """Return the usage text."""
    return _USAGE


def _hint(message: str) -> str:
    return f"{message}\nTry '{_PROG} --help' for more information."


def _parse(argv: Sequence[str]) -> Iterator[tuple[str, str | None]]:
    """Yield ``(option name, argument)`` pairs until a non-option is met."""
    idx = 0
    while idx < len(argv):
        arg = argv[idx]
        if arg == "--" or len(arg) < 2 or not arg.startswith("-"):
            return
        if arg.startswith("--"):
            name, sep, inline = arg[2:].partition("=")
            exact = [o for o in _OPTIONS if o.name == name]
            found = exact or [o for o in _OPTIONS if o.name.startswith(name)]
            if not found:
                raise OptionError(_hint(f"Option {arg} is invalid."))
            if len(found) > 1:
                raise OptionError(
                    _hint(f"Option {arg} is ambiguous (specify in full).")
                )
            opt = found[0]
            if not opt.takes_arg and sep:
                raise OptionError(_hint(f"Option {arg} is invalid."))
            value: str | None = inline if sep else None
        else:
            opt = next((o for o in _OPTIONS if o.short == arg[1]), None)
            if opt is None:
                raise OptionError(_hint(f"Option {arg} is invalid."))
            rest = arg[2:]
            if rest and not opt.takes_arg:
                raise OptionError(_hint(f"Option {arg} is invalid."))
            value = rest or None
        if opt.takes_arg and value is None:
            idx += 1
            if idx >= len(argv):
                raise OptionError(_hint(f"Option {arg} requires argument."))
            value = argv[idx]
        yield opt.name, value
        idx += 1


def _atoi(text: str) -> int:
    """Leading integer of ``text``, or 0 when there is none."""
    match = re.match(r"\s*([+-]?\d+)", text)
    return int(match.group(1)) if match else 0


def _read_file(path: str) -> str:
    try:
        with open(path, encoding="utf-8") as handle:
            return handle.read()
    except OSError as exc:
        raise OptionError(f"cannot read {path}: {exc.strerror}") from exc


def file_path_parse(argv: Sequence[str]) -> tuple[ConfType | None, str | None]:
    """Return the configuration file type and path named on the command line.

    ``--help`` prints the usage text and exits. Returns ``(None, None)``
    when no configuration file is given.
    """
    for name, value in _parse(argv):
        if name == "help":
            print(usage())
            raise SystemExit(0)
        if name == "conf":
            return ConfType.HOCON, value
        if name == "old_conf":
            return ConfType.CONF, value
    return None, None


def predicate_url(config: Config, url: str) -> None:
    """Enable the listener that ``url``'s scheme selects."""
    if url.startswith(TCP_URL_PREFIX):
        config.url = url
        config.enable = True
    if url.startswith(TLS_URL_PREFIX):
        config.tls.enable = True
        config.tls.url = url
    elif url.startswith(WS_URL_PREFIX):
        if url.startswith(WSS_URL_PREFIX):
            config.tls.enable = True
            config.websocket.tls_url = url
        else:
            config.websocket.url = url
        config.websocket.enable = True


def _switch(value: str) -> bool | None:
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return None


def broker_parse_opts(argv: Sequence[str], config: Config) -> None:
    """Apply command-line options onto ``config``."""
    int_fields = {
        "parallel": "parallel",
        "tq_thread": "num_taskq_thread",
        "max_tq_thread": "max_taskq_thread",
        "property_size": "property_size",
        "msq_len": "msq_len",
        "qos_duration": "qos_duration",
    }
    tls_files = {"cacert": "ca", "cert": "cert", "key": "key"}

    for name, value in _parse(argv):
        if name in int_fields:
            setattr(config, int_fields[name], _atoi(value))
        elif name == "daemon":
            config.daemon = True
        elif name == "url":
            predicate_url(config, value)
        elif name in tls_files:
            setattr(config.tls, tls_files[name], _read_file(value))
        elif name == "keypass":
            config.tls.key_password = value
        elif name == "verify":
            config.tls.verify_peer = True
        elif name == "fail":
            config.tls.set_fail = True
        elif name == "http":
            config.http_server.enable = True
        elif name == "port":
            config.http_server.port = _atoi(value)
        elif name == "log_level":
            level = value.lower()
            if level not in LOG_LEVELS:
                raise OptionError(f"unknown log level {value!r}")
            config.log.level = level
        elif name == "log_file":
            setattr(config.log, LogTarget.FILE.value, True)
            directory, sep, file_name = value.rpartition("/")
            if sep:
                config.log.dir = directory
                config.log.file = file_name
            else:
                config.log.dir = None
                config.log.file = value
        elif name in ("log_stdout", "log_syslog"):
            target = LogTarget.CONSOLE if name == "log_stdout" else LogTarget.SYSLOG
            flag = _switch(value)
            if flag is not None:
                setattr(config.log, target.value, flag)


def apply_default_urls(config: Config) -> None:
    """Give every enabled listener without a url its default url."""
    if config.enable and config.url is None:
        config.url = DEFAULT_TCP_URL
    if config.tls.enable and config.tls.url is None:
        config.tls.url = DEFAULT_TLS_URL
    if config.websocket.enable:
        if config.websocket.url is None:
            config.websocket.url = DEFAULT_WS_URL
        if config.tls.enable and config.websocket.tls_url is None:
            config.websocket.tls_url = DEFAULT_WSS_URL