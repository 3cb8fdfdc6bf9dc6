# nanomqtt

Pieces of an MQTT broker's management side, in plain Python with no
dependencies outside the standard library:

- `nanomqtt.config`: dataclasses for the whole broker configuration
  (`Config`, `TlsConfig`, `WebsocketConfig`, `HttpServerConfig`,
  `SqliteConfig`, `AuthConfig`, `AuthHttpConfig`, `BridgeConfig`,
  `BridgeNode`, `LogConfig`, `AclConfig`, `AclRule` and friends).
- `nanomqtt.acl`: MQTT topic filter matching and ACL rule evaluation.
- `nanomqtt.conf_api`: the configuration as JSON-ready dictionaries, and
  updates of it from parsed JSON.
- `nanomqtt.cmd_proc`: reload commands and the control socket that serves
  them.
- `nanomqtt.options`: the broker's command-line options.
- `nanomqtt.pidfile`: the pid file that records a running instance.
- `nanomqtt.hashmap`: a thread-safe open-addressing map from strings to
  unsigned 32-bit integers.
- `nanomqtt.cli`: the `nanomqtt` command.

## Install

    pip install .

## Command line

    nanomqtt start --conf /etc/nanomq.conf
    nanomqtt reload --conf /etc/nanomq.conf
    nanomqtt restart
    nanomqtt stop

`start` refuses to run when the pid file names a live process. It reads the
configuration file (`--conf` for HOCON or JSON, `--old_conf` for `key=value`
lines with dotted keys), then applies the command-line options over it:
`--url`, `-n/--parallel`, `-t/--tq_thread`, `-T/--max_tq_thread`,
`-s/--property_size`, `-S/--msq_len`, `-D/--qos_duration`, `-d/--daemon`,
`--http`, `-p/--port`, the TLS options `--cacert`, `-E/--cert`, `--key`
(each reads the named file), `--keypass`, `--verify`, `--fail`, and the
logging options `--log_level`, `--log_file`, `--log_stdout`, `--log_syslog`.
Long options may be abbreviated when unambiguous. `nanomqtt start --help`
prints the full list.

The `--url` scheme picks the listener it configures: `nmq-tcp://`,
`tls+nmq-tcp://`, `nmq-ws://` or `nmq-wss://`. Enabled listeners without a
url get `nmq-tcp://0.0.0.0:1883`, `tls+nmq-tcp://0.0.0.0:8883`,
`nmq-ws://0.0.0.0:8083/mqtt` and `nmq-wss://0.0.0.0:8086/mqtt`.

`stop` sends SIGTERM to the recorded process; `restart` stops it (falling
back to SIGKILL) and starts again with the given options. `reload` sends a
reload command to the running instance and prints its answer,
`reload succeed` or `reload failed!`.

Two environment variables move the files the command uses:

- `NANOMQTT_PID_FILE`: the pid file (default `nanomqtt/nanomqtt.pid` in the
  temporary directory).
- `NANOMQTT_CMD_ADDRESS`: the control socket, either a Unix socket path or
  `host:port` for TCP (default `nanomqtt_cmd.sock` in the temporary
  directory).

## What it does not do

`nanomqtt start` does not accept MQTT clients. It loads and checks the
configuration, writes the pid file and serves reload commands on the control
socket (when `ipc_internal` is true) until interrupted. There is no MQTT
listener, no message routing, no bridging to remote brokers, no HTTP
management server, no webhooks and no persistent message cache: the
configuration model describes these settings, but nothing here acts on them.
Configuration files are read for the basic settings and the `tls`,
`websocket`, `http_server`, `sqlite`, `auth_http`, `auth` and `log`
sections only; bridge and ACL rules are built in code.

## Library

Access control. Rules are tried in order; the first whose action, identity
and topics match decides, otherwise `Config.acl_nomatch` applies:

```python
from nanomqtt.acl import ConnectionInfo, auth_acl, topic_filter
from nanomqtt.config import AclAction, AclContent, AclContentType, AclPermit, AclRule, AclRuleType, Config

config = Config(acl_nomatch=AclPermit.DENY)
config.acl.rules.append(AclRule(
    permit=AclPermit.ALLOW,
    rule_type=AclRuleType.USERNAME,
    content=AclContent(AclContentType.SINGLE_STRING, "alice"),
    action=AclAction.PUBLISH,
    topics=["sensors/#"],
))
auth_acl(config, AclAction.PUBLISH, ConnectionInfo(username="alice"), "sensors/1")  # True
topic_filter("sensors/+", "sensors/1")  # True
```

Configuration as dictionaries, and updates from them. Only keys present with
the right JSON type are applied; packet sizes are given in KiB:

```python
import json
from nanomqtt.conf_api import get_basic_config, set_basic_config

json.dumps(get_basic_config(config))
set_basic_config({"max_packet_size": 256}, config)
config.max_packet_size  # 262144
```

Reload commands. `handle_command` validates a command, loads the named file
with the loader it is given, and copies the hot-reloadable settings (packet
sizes, property size, queue length, QoS duration, keepalive backoff,
anonymous access, the cache flush threshold, the credential list and the log
settings) into the running configuration:

```python
from nanomqtt.cli import load_config_file
from nanomqtt.cmd_proc import CommandServer, encode_client_cmd, handle_command, send_command

cmd = encode_client_cmd("/etc/nanomq.conf", 2)
# '{"cmd":"reload","conf_file":"/etc/nanomq.conf","conf_type":2}'
handle_command(cmd, config, load_config_file)

with CommandServer(("127.0.0.1", 0), config, load_config_file) as server:
    ...  # server.serve_forever() in a thread, then send_command(cmd, server.server_address)
```

On the control socket each message is preceded by its length as a 4-byte
big-endian integer.

The hash map:

```python
from nanomqtt.hashmap import HashMap

table = HashMap(16)
table.put("client-1", 7)
table.get("client-1")  # 7; absent keys give 0
```

## Tests

    pip install .[test]
    pytest