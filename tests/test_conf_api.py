import json

import pytest

from nanomqtt.config import (
    MQTT_PROTOCOL_VERSION_V5,
    AuthConfig,
    AuthHttpConfig,
    AuthHttpRequest,
    AuthType,
    BridgeConfig,
    BridgeConnProperties,
    BridgeNode,
    BridgeSubProperties,
    BridgeWillProperties,
    Config,
    HttpServerConfig,
    ParamType,
    SqliteConfig,
    Subscription,
    TlsConfig,
    UserProperty,
    WebsocketConfig,
)
from nanomqtt import conf_api


def test_reload_config_round_trip():
    source = Config(property_size=64, max_packet_size=2048 * 1024, msq_len=100,
                    qos_duration=20, backoff=2.5, allow_anonymous=False)
    data = conf_api.get_reload_config(source)
    target = Config()
    conf_api.set_reload_config(json.loads(json.dumps(data)), target)
    assert target.property_size == 64
    assert target.max_packet_size == 2048 * 1024
    assert target.msq_len == 100
    assert target.qos_duration == 20
    assert target.backoff == 2.5
    assert target.allow_anonymous is False


def test_basic_config_reports_kilobytes():
    config = Config(max_packet_size=4096 * 1024, client_max_packet_size=1024)
    data = conf_api.get_basic_config(config)
    assert data["max_packet_size"] == 4096
    assert data["client_max_packet_size"] == 1
    assert data["url"] == config.url


def test_basic_config_round_trip():
    source = Config(url="nmq-tcp://127.0.0.1:1884", daemon=True, parallel=8,
                    num_taskq_thread=4, max_taskq_thread=6, ipc_internal=False)
    target = Config()
    conf_api.set_basic_config(conf_api.get_basic_config(source), target)
    assert target.url == source.url
    assert target.daemon is True
    assert target.parallel == 8
    assert target.num_taskq_thread == 4
    assert target.max_taskq_thread == 6
    assert target.ipc_internal is False


def test_set_basic_ignores_wrong_types():
    config = Config()
    conf_api.set_basic_config({"parallel": "many", "daemon": 1, "msq_len": True}, config)
    assert config.parallel == Config().parallel
    assert config.daemon is False
    assert config.msq_len == Config().msq_len


def test_set_config_requires_object():
    with pytest.raises(TypeError):
        conf_api.set_basic_config([1, 2], Config())
    with pytest.raises(TypeError):
        conf_api.set_auth_config({"login": "a"}, AuthConfig())


def test_tls_keys_and_set():
    tls = TlsConfig(enable=True, ca="ca-pem", verify_peer=True)
    data = conf_api.get_tls_config(tls)
    assert data["cacert"] == "ca-pem"
    assert data["fail_if_no_peer_cert"] is False
    target = TlsConfig()
    conf_api.set_tls_config({"keypass": "password", "cacert": "ca-pem",
                             "enable": True, "fail_if_no_peer_cert": True}, target)
    assert target.key_password == "password"
    assert target.ca == "ca-pem"
    assert target.enable is True
    assert target.set_fail is True


def test_http_config_auth_type():
    http = HttpServerConfig(auth_type=AuthType.JWT)
    assert conf_api.get_http_config(http)["auth_type"] == "jwt"
    conf_api.set_http_config({"auth_type": "basic", "port": 9000}, http)
    assert http.auth_type is AuthType.BASIC
    assert http.port == 9000
    conf_api.set_http_config({"auth_type": "JWT"}, http)
    assert http.auth_type is AuthType.BASIC


def test_websocket_and_sqlite_round_trip():
    ws = WebsocketConfig(enable=True, url="nmq-ws://0.0.0.0:8083/mqtt")
    ws_target = WebsocketConfig()
    conf_api.set_websocket_config(conf_api.get_websocket_config(ws), ws_target)
    assert ws_target == ws

    sqlite = SqliteConfig(enable=True, disk_cache_size=7, flush_mem_threshold=3,
                          resend_interval=9, mounted_file_path="/tmp/cache")
    sq_target = SqliteConfig()
    conf_api.set_sqlite_config(conf_api.get_sqlite_config(sqlite), sq_target)
    assert sq_target == sqlite


def test_auth_config_round_trip_and_replace():
    auth = AuthConfig()
    auth.add("alice", "password")
    data = conf_api.get_auth_config(auth)
    assert data == [{"login": "alice", "password": "password"}]

    conf_api.set_auth_config(
        [{"login": "bob", "password": "secret"}, {"login": "carol"},
         {"login": "dave", "password": "token"}], auth)
    assert auth.users[0] == ("bob", "secret")
    assert ("dave", "token") in auth.users
    assert all(user != "carol" for user, _ in auth.users)


def test_auth_http_req_params():
    req = AuthHttpRequest()
    conf_api.set_auth_http_req(
        {"url": "http://localhost/auth", "method": "post",
         "headers": {"content-type": "application/json", "bad": 3},
         "params": ["USERNAME", "subject", "nonsense", "clientid"]}, req)
    assert req.url == "http://localhost/auth"
    assert [(h.key, h.value) for h in req.headers] == [("content-type", "application/json")]
    assert [p.type for p in req.params] == [
        ParamType.USERNAME, ParamType.PROTOCOL, ParamType.CLIENTID]
    assert req.params[1].name == "protocol"


def test_auth_http_config_round_trip():
    source = AuthHttpConfig(enable=True, timeout=10, pool_size=4)
    conf_api.set_auth_http_req({"url": "http://localhost/acl",
                                "params": ["topic", "access"]}, source.acl_req)
    data = conf_api.get_auth_http_config(source)
    assert data["acl_req"]["params"] == ["topic", "access"]
    target = AuthHttpConfig()
    conf_api.set_auth_http_config(json.loads(json.dumps(data)), target)
    assert target.enable is True
    assert target.timeout == 10
    assert target.pool_size == 4
    assert target.acl_req.url == "http://localhost/acl"
    assert [p.type for p in target.acl_req.params] == [ParamType.TOPIC, ParamType.ACCESS]


def test_user_properties_empty_is_none():
    assert conf_api.get_user_properties([]) is None
    props = [UserProperty("k", "v")]
    assert conf_api.get_user_properties(props) == [{"key": "k", "value": "v"}]


def _v5_node(name):
    return BridgeNode(
        name=name, enable=True, address="mqtt-tcp://localhost:1883",
        proto_ver=MQTT_PROTOCOL_VERSION_V5,
        conn_properties=BridgeConnProperties(
            user_properties=[UserProperty("a", "b")]),
        will_properties=BridgeWillProperties(content_type="text/plain"),
        sub_properties=BridgeSubProperties(identifier=7),
        forwards=["fwd/#"],
        subscriptions=[Subscription("cmd/+", 1)],
    )


def test_bridge_connector_v5():
    node = _v5_node("one")
    connector = conf_api.get_bridge_connector(node)
    assert connector["server"] == node.address
    assert connector["conn_properties"]["user_properties"] == [{"key": "a", "value": "b"}]
    assert connector["will_properties"]["content_type"] == "text/plain"
    assert "response_topic" not in connector["will_properties"]
    assert connector["conn_properties"]["request_problem_information"] is True


def test_bridge_connector_v311_has_no_properties():
    node = _v5_node("one")
    node.proto_ver = 4
    connector = conf_api.get_bridge_connector(node)
    assert "conn_properties" not in connector
    assert conf_api.get_bridge_sub_properties(node) is None


def test_bridge_config_filters_by_name():
    bridge = BridgeConfig(nodes=[_v5_node("one"), _v5_node("two")])
    data = conf_api.get_bridge_config(bridge, "two")
    assert [n["name"] for n in data["nodes"]] == ["two"]
    node = data["nodes"][0]
    assert node["subscription"] == [{"topic": "cmd/+", "qos": 1}]
    assert node["forwards"] == ["fwd/#"]
    assert node["sub_properties"] == {"identifier": 7}
    assert node["quic_keepalive"].endswith("s")
    assert len(conf_api.get_bridge_config(bridge, None)["nodes"]) == 2


def test_reload_functions():
    current = Config()
    new = Config(property_size=99, msq_len=5, parallel=77)
    conf_api.reload_basic_config(current, new)
    assert current.property_size == 99
    assert current.msq_len == 5
    assert current.parallel == Config().parallel

    cur_sq = SqliteConfig()
    conf_api.reload_sqlite_config(cur_sq, SqliteConfig(flush_mem_threshold=11, enable=True))
    assert cur_sq.flush_mem_threshold == 11
    assert cur_sq.enable is False

    cur_auth = AuthConfig()
    cur_auth.add("old", "password")
    new_auth = AuthConfig()
    new_auth.add("new", "secret")
    conf_api.reload_auth_config(cur_auth, new_auth)
    assert cur_auth.users == [("new", "secret")]
    new_auth.add("extra", "token")
    assert len(cur_auth) == 1