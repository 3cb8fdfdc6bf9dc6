import pytest

from nanomqtt.cmd_proc import ConfType
from nanomqtt.config import DEFAULT_TCP_URL, Config
from nanomqtt.options import (
    DEFAULT_TLS_URL,
    DEFAULT_WS_URL,
    DEFAULT_WSS_URL,
    LogTarget,
    OptionError,
    apply_default_urls,
    broker_parse_opts,
    file_path_parse,
    predicate_url,
    usage,
)


def test_file_path_parse_hocon():
    assert file_path_parse(["--conf", "a.conf"]) == (ConfType.HOCON, "a.conf")


def test_file_path_parse_old_conf_inline_value():
    assert file_path_parse(["-d", "--old_conf=b.conf"]) == (ConfType.CONF, "b.conf")


def test_file_path_parse_without_conf():
    assert file_path_parse(["-n", "4", "--http"]) == (None, None)


def test_file_path_parse_help_exits(capsys):
    with pytest.raises(SystemExit) as info:
        file_path_parse(["-h"])
    assert info.value.code == 0
    assert "--conf" in capsys.readouterr().out


@pytest.mark.parametrize(
    "argv, fragment",
    [
        (["--bogus"], "invalid"),
        (["-z"], "invalid"),
        (["--log", "x"], "ambiguous"),
        (["--url"], "requires argument"),
        (["--http=yes"], "invalid"),
        (["-dx"], "invalid"),
    ],
)
def test_parse_errors(argv, fragment):
    config = Config()
    with pytest.raises(OptionError, match=fragment):
        broker_parse_opts(argv, config)


def test_numeric_and_flag_options():
    config = Config()
    broker_parse_opts(
        [
            "-n", "8", "-t", "3", "-T", "6", "-s", "64", "-S", "100",
            "-D", "20", "--http", "-p", "9000", "-d", "--verify",
            "--fail", "--keypass", "secret",
        ],
        config,
    )
    assert config.parallel == 8
    assert config.num_taskq_thread == 3
    assert config.max_taskq_thread == 6
    assert config.property_size == 64
    assert config.msq_len == 100
    assert config.qos_duration == 20
    assert config.http_server.enable is True
    assert config.http_server.port == 9000
    assert config.daemon is True
    assert config.tls.verify_peer is True
    assert config.tls.set_fail is True
    assert config.tls.key_password == "secret"


def test_unique_prefix_and_attached_short_value():
    config = Config()
    broker_parse_opts(["--paral", "4", "-S50"], config)
    assert config.parallel == 4
    assert config.msq_len == 50


def test_numbers_are_parsed_leniently():
    config = Config()
    broker_parse_opts(["-n", "12abc", "-p", "none"], config)
    assert config.parallel == 12
    assert config.http_server.port == 0


def test_parsing_stops_at_positional_argument():
    config = Config()
    broker_parse_opts(["-d", "positional", "--http"], config)
    assert config.daemon is True
    assert config.http_server.enable is False


def test_tls_files_are_loaded(tmp_path):
    ca = tmp_path / "ca.pem"
    ca.write_text("CA DATA")
    config = Config()
    broker_parse_opts(["--cacert", str(ca)], config)
    assert config.tls.ca == "CA DATA"


def test_unreadable_tls_file(tmp_path):
    with pytest.raises(OptionError):
        broker_parse_opts(["--key", str(tmp_path / "missing.pem")], Config())


def test_log_options():
    config = Config()
    broker_parse_opts(
        ["--log_level", "DEBUG", "--log_file", "logs/broker.log",
         "--log_stdout", "false", "--log_syslog", "TRUE"],
        config,
    )
    assert config.log.level == "debug"
    assert getattr(config.log, LogTarget.FILE.value) is True
    assert config.log.dir == "logs"
    assert config.log.file == "broker.log"
    assert config.log.to_console is False
    assert config.log.to_syslog is True


def test_log_switch_ignores_other_words():
    config = Config()
    broker_parse_opts(["--log_stdout", "maybe"], config)
    assert config.log.to_console is True


def test_bad_log_level():
    with pytest.raises(OptionError):
        broker_parse_opts(["--log_level", "loud"], Config())


def test_predicate_url_tcp():
    config = Config(url=None, enable=False)
    predicate_url(config, "nmq-tcp://127.0.0.1:1884")
    assert config.url == "nmq-tcp://127.0.0.1:1884"
    assert config.enable is True


def test_predicate_url_tls():
    config = Config()
    predicate_url(config, "tls+nmq-tcp://0.0.0.0:8884")
    assert config.tls.enable is True
    assert config.tls.url == "tls+nmq-tcp://0.0.0.0:8884"
    assert config.url == DEFAULT_TCP_URL


def test_predicate_url_websockets():
    config = Config()
    predicate_url(config, "nmq-ws://0.0.0.0:8080/mqtt")
    predicate_url(config, "nmq-wss://0.0.0.0:8090/mqtt")
    assert config.websocket.enable is True
    assert config.websocket.url == "nmq-ws://0.0.0.0:8080/mqtt"
    assert config.websocket.tls_url == "nmq-wss://0.0.0.0:8090/mqtt"
    assert config.tls.enable is True


def test_apply_default_urls_fills_missing():
    config = Config(url=None)
    config.tls.enable = True
    config.websocket.enable = True
    apply_default_urls(config)
    assert config.url == DEFAULT_TCP_URL
    assert config.tls.url == DEFAULT_TLS_URL
    assert config.websocket.url == DEFAULT_WS_URL
    assert config.websocket.tls_url == DEFAULT_WSS_URL


def test_apply_default_urls_keeps_existing():
    config = Config(url="nmq-tcp://127.0.0.1:2000")
    config.websocket.enable = True
    config.websocket.url = "nmq-ws://127.0.0.1:2001/mqtt"
    apply_default_urls(config)
    assert config.url == "nmq-tcp://127.0.0.1:2000"
    assert config.websocket.url == "nmq-ws://127.0.0.1:2001/mqtt"
    assert config.websocket.tls_url is None
    assert config.tls.url is None


def test_usage_documents_every_long_option():
    text = usage()
    for name in ("url", "conf", "old_conf", "http", "port", "tq_thread",
                 "max_tq_thread", "parallel", "property_size", "msq_len",
                 "qos_duration", "daemon", "cacert", "cert", "key", "keypass",
                 "verify", "fail", "log_level", "log_file", "log_stdout",
                 "log_syslog"):
        assert f"--{name}" in text