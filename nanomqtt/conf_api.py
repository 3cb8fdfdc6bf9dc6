"""Conversion of broker configuration to and from JSON-ready dictionaries.

The ``get_*`` functions build plain ``dict``/``list`` structures suitable for
``json.dumps``; the ``set_*`` functions apply a parsed JSON object onto an
existing configuration, touching only the keys present with the right type.
The ``reload_*`` functions copy the hot-reloadable part of a freshly parsed
configuration into the running one.
"""

from __future__ import annotations

from typing import Any, Mapping

from nanomqtt.config import (
    MQTT_PROTOCOL_VERSION_V5,
    AuthConfig,
    AuthHttpConfig,
    AuthHttpRequest,
    AuthType,
    BridgeConfig,
    BridgeNode,
    Config,
    HttpHeader,
    HttpParam,
    HttpServerConfig,
    ParamType,
    SqliteConfig,
    TlsConfig,
    UserProperty,
    WebsocketConfig,
)

_PARAM_NAMES: dict[str, tuple[str, ParamType]] = {
    "username": ("username", ParamType.USERNAME),
    "password": ("password", ParamType.PASSWORD),
    "clientid": ("clientid", ParamType.CLIENTID),
    "access": ("access", ParamType.ACCESS),
    "topic": ("topic", ParamType.TOPIC),
    "ipaddress": ("ipaddress", ParamType.IPADDRESS),
    "sockport": ("sockport", ParamType.SOCKPORT),
    "common": ("common", ParamType.COMMON_NAME),
    "protocol": ("protocol", ParamType.PROTOCOL),
    # A "subject" parameter is sent as the protocol parameter.
    "subject": ("protocol", ParamType.PROTOCOL),
    "mountpoint": ("mountpoint", ParamType.MOUNTPOINT),
}


# ---------------------------------------------------------------- helpers


def _require_mapping(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise TypeError(f"expected a JSON object, not {type(data).__name__}")
    return data


def _number(data: Mapping[str, Any], key: str) -> int | float | None:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _int(data: Mapping[str, Any], key: str) -> int | None:
    value = _number(data, key)
    return None if value is None else int(value)


def _bool(data: Mapping[str, Any], key: str) -> bool | None:
    value = data.get(key)
    return value if isinstance(value, bool) else None


def _string(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    return value if isinstance(value, str) else None


def _put_string(obj: dict[str, Any], key: str, value: str | None) -> None:
    """Add ``value`` under ``key`` only when it is set."""
    if value is not None:
        obj[key] = value


def _seconds(value: int) -> str:
    return f"{int(value)}s"


# ---------------------------------------------------------------- getters


def get_reload_config(config: Config) -> dict[str, Any]:
    """Return the settings that can be changed while the broker runs."""
    return {
        "property_size": config.property_size,
        "max_packet_size": config.max_packet_size // 1024,
        "client_max_packet_size": config.client_max_packet_size // 1024,
        "msq_len": config.msq_len,
        "qos_duration": config.qos_duration,
        "keepalive_backoff": float(config.backoff),
        "allow_anonymous": config.allow_anonymous,
    }


def get_basic_config(config: Config) -> dict[str, Any]:
    """Return the basic broker settings."""
    return {
        "url": config.url,
        "num_taskq_thread": config.num_taskq_thread,
        "max_taskq_thread": config.max_taskq_thread,
        "parallel": config.parallel,
        "property_size": config.property_size,
        "daemon": config.daemon,
        "max_packet_size": config.max_packet_size // 1024,
        "client_max_packet_size": config.client_max_packet_size // 1024,
        "msq_len": config.msq_len,
        "qos_duration": config.qos_duration,
        "keepalive_backoff": float(config.backoff),
        "allow_anonymous": config.allow_anonymous,
        "ipc_internal": config.ipc_internal,
    }


def get_tls_config(tls: TlsConfig) -> dict[str, Any]:
    """Return TLS settings."""
    return {
        "enable": tls.enable,
        "url": tls.url,
        "key_password": tls.key_password,
        "key": tls.key,
        "cert": tls.cert,
        "cacert": tls.ca,
        "verify_peer": tls.verify_peer,
        "fail_if_no_peer_cert": tls.set_fail,
    }


def get_auth_config(auth: AuthConfig) -> list[dict[str, Any]]:
    """Return the credential list."""
    return [{"login": user, "password": secret} for user, secret in auth.users]


def _get_auth_http_req(req: AuthHttpRequest) -> dict[str, Any]:
    headers: dict[str, str] = {}
    for header in req.headers:
        if header.key is not None and header.value is not None:
            headers[header.key] = header.value
    return {
        "url": req.url,
        "method": req.method,
        "headers": headers,
        "params": [param.name for param in req.params if param.name is not None],
        "tls": get_tls_config(req.tls),
    }


def get_auth_http_config(auth_http: AuthHttpConfig) -> dict[str, Any]:
    """Return HTTP authentication settings with their three endpoints."""
    return {
        "enable": auth_http.enable,
        "timeout": auth_http.timeout,
        "connect_timeout": auth_http.connect_timeout,
        "pool_size": auth_http.pool_size,
        "auth_req": _get_auth_http_req(auth_http.auth_req),
        "acl_req": _get_auth_http_req(auth_http.acl_req),
        "super_req": _get_auth_http_req(auth_http.super_req),
    }


def get_websocket_config(ws: WebsocketConfig) -> dict[str, Any]:
    """Return WebSocket listener settings."""
    return {"enable": ws.enable, "url": ws.url, "tls_url": ws.tls_url}


def get_http_config(http: HttpServerConfig) -> dict[str, Any]:
    """Return HTTP management server settings."""
    return {
        "enable": http.enable,
        "port": http.port,
        "username": http.username,
        "password": http.password,
        "auth_type": "jwt" if http.auth_type is AuthType.JWT else "basic",
    }


def get_sqlite_config(sqlite: SqliteConfig) -> dict[str, Any]:
    """Return persistent cache settings."""
    return {
        "enable": sqlite.enable,
        "disk_cache_size": sqlite.disk_cache_size,
        "flush_mem_threshold": sqlite.flush_mem_threshold,
        "resend_interval": sqlite.resend_interval,
        "mounted_file_path": sqlite.mounted_file_path,
    }


def get_user_properties(
    properties: list[UserProperty],
) -> list[dict[str, Any]] | None:
    """Return user properties as key/value objects, or None when empty."""
    if not properties:
        return None
    result = []
    for prop in properties:
        item: dict[str, Any] = {}
        _put_string(item, "key", prop.key)
        _put_string(item, "value", prop.value)
        result.append(item)
    return result


def get_bridge_connector(node: BridgeNode) -> dict[str, Any]:
    """Return the connection settings of a bridge node."""
    connector: dict[str, Any] = {}
    _put_string(connector, "server", node.address)
    connector.update(
        {
            "proto_ver": node.proto_ver,
            "clientid": node.clientid,
            "clean_start": node.clean_start,
            "username": node.username,
            "password": node.password,
            "keepalive": node.keepalive,
        }
    )

    if node.proto_ver != MQTT_PROTOCOL_VERSION_V5:
        return connector

    conn = node.conn_properties
    if conn is not None:
        conn_obj: dict[str, Any] = {
            "session_expiry_interval": conn.session_expiry_interval,
            "receive_maximum": conn.receive_maximum,
            "maximum_packet_size": conn.maximum_packet_size,
            "topic_alias_maximum": conn.topic_alias_maximum,
            "request_response_information": bool(conn.request_response_info),
            "request_problem_information": bool(conn.request_problem_info),
        }
        if conn.user_properties:
            conn_obj["user_properties"] = get_user_properties(conn.user_properties)
        connector["conn_properties"] = conn_obj

    will = node.will_properties
    if will is not None:
        will_obj: dict[str, Any] = {
            "payload_format_indicator": will.payload_format_indicator,
            "message_expiry_interval": will.message_expiry_interval,
        }
        _put_string(will_obj, "content_type", will.content_type)
        will_obj["will_delay_interval"] = will.will_delay_interval
        _put_string(will_obj, "response_topic", will.response_topic)
        _put_string(will_obj, "correlation_data", will.correlation_data)
        if will.user_properties:
            will_obj["user_properties"] = get_user_properties(will.user_properties)
        connector["will_properties"] = will_obj

    return connector


def get_bridge_sub_properties(node: BridgeNode) -> dict[str, Any] | None:
    """Return the v5 SUBSCRIBE properties of a node, or None if not applicable."""
    sub = node.sub_properties
    if node.proto_ver != MQTT_PROTOCOL_VERSION_V5 or sub is None:
        return None
    obj: dict[str, Any] = {"identifier": sub.identifier}
    if sub.user_properties:
        obj["user_properties"] = get_user_properties(sub.user_properties)
    return obj


def _quic_fields(node: BridgeNode) -> dict[str, Any]:
    return {
        "quic_keepalive": _seconds(node.qkeepalive),
        "quic_idle_timeout": _seconds(node.qidle_timeout),
        "quic_discon_timeout": _seconds(node.qdiscon_timeout),
        "quic_send_idle_timeout": _seconds(node.qsend_idle_timeout),
        "quic_initial_rtt_ms": _seconds(node.qinitial_rtt_ms),
        "quic_max_ack_delay_ms": _seconds(node.qmax_ack_delay_ms),
        "quic_multi_stream": node.multi_stream,
        "hybrid_bridging": node.hybrid,
        "quic_qos_priority": node.qos_first,
        "quic_0rtt": node.quic_0rtt,
    }


def get_bridge_config(
    bridge: BridgeConfig, node_name: str | None = None
) -> dict[str, Any]:
    """Return the bridge settings, limited to ``node_name`` when it is given."""
    nodes = []
    for node in bridge.nodes:
        if node_name is not None and node.name != node_name:
            continue
        node_obj: dict[str, Any] = {
            "name": node.name,
            "enable": node.enable,
            "parallel": node.parallel,
            "connector": get_bridge_connector(node),
            "forwards": list(node.forwards),
            "subscription": [
                {"topic": sub.topic, "qos": sub.qos} for sub in node.subscriptions
            ],
        }
        if node.proto_ver == MQTT_PROTOCOL_VERSION_V5:
            sub_props = get_bridge_sub_properties(node)
            if sub_props is not None:
                node_obj["sub_properties"] = sub_props
        node_obj["tls"] = get_tls_config(node.tls)
        node_obj.update(_quic_fields(node))
        nodes.append(node_obj)

    return {"nodes": nodes, "sqlite": get_sqlite_config(bridge.sqlite)}


# ---------------------------------------------------------------- setters


def set_reload_config(data: Mapping[str, Any], config: Config) -> None:
    """Apply the hot-reloadable settings found in ``data``."""
    data = _require_mapping(data)
    if (value := _int(data, "property_size")) is not None:
        config.property_size = value
    if (value := _int(data, "msq_len")) is not None:
        config.msq_len = value
    if (value := _int(data, "qos_duration")) is not None:
        config.qos_duration = value
    if (flag := _bool(data, "allow_anonymous")) is not None:
        config.allow_anonymous = flag
    if (value := _int(data, "max_packet_size")) is not None:
        config.max_packet_size = value * 1024
    if (value := _int(data, "client_max_packet_size")) is not None:
        config.client_max_packet_size = value * 1024
    if (number := _number(data, "keepalive_backoff")) is not None:
        config.backoff = float(number)


def set_basic_config(data: Mapping[str, Any], config: Config) -> None:
    """Apply the basic broker settings found in ``data``."""
    data = _require_mapping(data)
    if (text := _string(data, "url")) is not None:
        config.url = text
    for key in ("enable", "daemon", "allow_anonymous", "ipc_internal"):
        if (flag := _bool(data, key)) is not None:
            setattr(config, key, flag)
    for key in (
        "num_taskq_thread",
        "max_taskq_thread",
        "parallel",
        "property_size",
        "msq_len",
        "qos_duration",
    ):
        if (value := _int(data, key)) is not None:
            setattr(config, key, value)
    if (value := _int(data, "max_packet_size")) is not None:
        config.max_packet_size = value * 1024
    if (value := _int(data, "client_max_packet_size")) is not None:
        config.client_max_packet_size = value * 1024
    if (number := _number(data, "keepalive_backoff")) is not None:
        config.backoff = float(number)


def set_tls_config(data: Mapping[str, Any], tls: TlsConfig) -> None:
    """Apply TLS settings found in ``data``."""
    data = _require_mapping(data)
    if (flag := _bool(data, "enable")) is not None:
        tls.enable = flag
    if (text := _string(data, "url")) is not None:
        tls.url = text
    if (text := _string(data, "keypass")) is not None:
        tls.key_password = text
    if (text := _string(data, "key")) is not None:
        tls.key = text
    if (text := _string(data, "cert")) is not None:
        tls.cert = text
    if (text := _string(data, "cacert")) is not None:
        tls.ca = text
    if (flag := _bool(data, "verify_peer")) is not None:
        tls.verify_peer = flag
    if (flag := _bool(data, "fail_if_no_peer_cert")) is not None:
        tls.set_fail = flag


def set_http_config(data: Mapping[str, Any], http: HttpServerConfig) -> None:
    """Apply HTTP management server settings found in ``data``."""
    data = _require_mapping(data)
    if (flag := _bool(data, "enable")) is not None:
        http.enable = flag
    if (value := _int(data, "port")) is not None:
        http.port = value
    if (text := _string(data, "username")) is not None:
        http.username = text
    if (text := _string(data, "password")) is not None:
        http.password = text
    auth_type = _string(data, "auth_type")
    if auth_type == "basic":
        http.auth_type = AuthType.BASIC
    elif auth_type == "jwt":
        http.auth_type = AuthType.JWT


def set_websocket_config(data: Mapping[str, Any], ws: WebsocketConfig) -> None:
    """Apply WebSocket listener settings found in ``data``."""
    data = _require_mapping(data)
    if (flag := _bool(data, "enable")) is not None:
        ws.enable = flag
    if (text := _string(data, "url")) is not None:
        ws.url = text
    if (text := _string(data, "tls_url")) is not None:
        ws.tls_url = text


def set_sqlite_config(data: Mapping[str, Any], sqlite: SqliteConfig) -> None:
    """Apply persistent cache settings found in ``data``."""
    data = _require_mapping(data)
    if (flag := _bool(data, "enable")) is not None:
        sqlite.enable = flag
    if (text := _string(data, "mounted_file_path")) is not None:
        sqlite.mounted_file_path = text
    for key in ("disk_cache_size", "flush_mem_threshold", "resend_interval"):
        if (value := _int(data, key)) is not None:
            setattr(sqlite, key, value)


def set_auth_config(data: list[Any], auth: AuthConfig) -> None:
    """Apply a list of ``{"login", "password"}`` objects, position by position.

    An entry replaces the credential at the same position, or is appended
    when the list is shorter; entries lacking either field are skipped.
    """
    if not isinstance(data, list):
        raise TypeError(f"expected a JSON array, not {type(data).__name__}")
    for index, item in enumerate(data):
        if not isinstance(item, Mapping):
            continue
        username = _string(item, "login")
        secret = _string(item, "password")
        if username is None or secret is None:
            continue
        if index < len(auth.users):
            auth.users[index] = (username, secret)
        else:
            auth.add(username, secret)


def set_auth_http_req(data: Mapping[str, Any], req: AuthHttpRequest) -> None:
    """Apply one HTTP authentication endpoint's settings found in ``data``."""
    data = _require_mapping(data)
    if (text := _string(data, "url")) is not None:
        req.url = text
    if (text := _string(data, "method")) is not None:
        req.method = text

    headers = data.get("headers")
    if isinstance(headers, Mapping):
        index = 0
        for key, value in headers.items():
            if not isinstance(value, str):
                continue
            if index < len(req.headers):
                req.headers[index] = HttpHeader(key, value)
            else:
                req.headers.append(HttpHeader(key, value))
            index += 1

    if "params" in data:
        params = data.get("params")
        new_params: list[HttpParam] = []
        if isinstance(params, list):
            for arg in params:
                if not isinstance(arg, str):
                    continue
                known = _PARAM_NAMES.get(arg.lower())
                if known is not None:
                    new_params.append(HttpParam(*known))
        req.params = new_params


def set_auth_http_config(data: Mapping[str, Any], auth: AuthHttpConfig) -> None:
    """Apply HTTP authentication settings found in ``data``."""
    data = _require_mapping(data)
    if (flag := _bool(data, "enable")) is not None:
        auth.enable = flag
    for key in ("timeout", "connect_timeout", "pool_size"):
        if (value := _int(data, key)) is not None:
            setattr(auth, key, value)
    for key in ("auth_req", "acl_req", "super_req"):
        section = data.get(key)
        if isinstance(section, Mapping):
            set_auth_http_req(section, getattr(auth, key))


# ---------------------------------------------------------------- reload


def reload_basic_config(current: Config, new: Config) -> None:
    """Copy the hot-reloadable basic settings from ``new`` into ``current``."""
    current.property_size = new.property_size
    current.max_packet_size = new.max_packet_size
    current.client_max_packet_size = new.client_max_packet_size
    current.msq_len = new.msq_len
    current.qos_duration = new.qos_duration
    current.backoff = new.backoff
    current.allow_anonymous = new.allow_anonymous


def reload_sqlite_config(current: SqliteConfig, new: SqliteConfig) -> None:
    """Copy the reloadable cache setting from ``new`` into ``current``."""
    current.flush_mem_threshold = new.flush_mem_threshold


def reload_auth_config(current: AuthConfig, new: AuthConfig) -> None:
    """Replace the credentials of ``current`` with those of ``new``."""
    current.users = list(new.users)