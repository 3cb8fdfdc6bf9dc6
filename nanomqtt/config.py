"""Broker configuration model: listeners, authentication, bridging and ACL."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto

MQTT_PROTOCOL_VERSION_V31 = 3
MQTT_PROTOCOL_VERSION_V311 = 4
MQTT_PROTOCOL_VERSION_V5 = 5

DEFAULT_TCP_URL = "nmq-tcp://0.0.0.0:1883"


class AuthType(Enum):
    """Authentication scheme of the HTTP management server."""

    BASIC = "basic"
    JWT = "jwt"


class ParamType(Enum):
    """Kind of value sent as a parameter of an HTTP authentication request."""

    USERNAME = "username"
    PASSWORD = "password"
    CLIENTID = "clientid"
    ACCESS = "access"
    TOPIC = "topic"
    IPADDRESS = "ipaddress"
    SOCKPORT = "sockport"
    COMMON_NAME = "common"
    PROTOCOL = "protocol"
    MOUNTPOINT = "mountpoint"


class AclRuleType(Enum):
    """What an ACL rule inspects."""

    NONE = auto()
    USERNAME = auto()
    CLIENTID = auto()
    IPADDR = auto()
    AND = auto()
    OR = auto()


class AclAction(Enum):
    """Which operation an ACL rule applies to."""

    PUBLISH = "publish"
    SUBSCRIBE = "subscribe"
    ALL = "pubsub"


class AclPermit(Enum):
    """Outcome of a matching ACL rule."""

    ALLOW = "allow"
    DENY = "deny"


class AclContentType(Enum):
    """How the content of an ACL rule is compared."""

    ALL = auto()
    SINGLE_STRING = auto()
    STRING_ARRAY = auto()


@dataclass
class AclContent:
    """The value an ACL rule compares against."""

    type: AclContentType = AclContentType.ALL
    value: str | None = None


@dataclass
class AclSubRule:
    """One operand of an AND/OR ACL rule."""

    rule_type: AclRuleType
    content: AclContent = field(default_factory=AclContent)


@dataclass
class AclRule:
    """A single ACL rule, evaluated in list order."""

    permit: AclPermit = AclPermit.ALLOW
    rule_type: AclRuleType = AclRuleType.NONE
    content: AclContent = field(default_factory=AclContent)
    sub_rules: list[AclSubRule] = field(default_factory=list)
    action: AclAction = AclAction.ALL
    topics: list[str] = field(default_factory=list)


@dataclass
class AclConfig:
    """Ordered list of ACL rules."""

    enable: bool = False
    rules: list[AclRule] = field(default_factory=list)


@dataclass
class UserProperty:
    """An MQTT v5 user property pair."""

    key: str
    value: str


@dataclass
class TlsConfig:
    """TLS settings of a listener or an outgoing connection."""

    enable: bool = False
    url: str | None = None
    key_password: str | None = None
    key: str | None = None
    cert: str | None = None
    ca: str | None = None
    verify_peer: bool = False
    set_fail: bool = False


@dataclass
class WebsocketConfig:
    """WebSocket listener settings."""

    enable: bool = False
    url: str | None = None
    tls_url: str | None = None


@dataclass
class HttpServerConfig:
    """HTTP management server settings."""

    enable: bool = False
    port: int = 8081
    username: str | None = None
    password: str | None = None
    auth_type: AuthType = AuthType.BASIC


@dataclass
class SqliteConfig:
    """Persistent message cache settings."""

    enable: bool = False
    disk_cache_size: int = 102400
    flush_mem_threshold: int = 100
    resend_interval: int = 5000
    mounted_file_path: str | None = None


@dataclass
class AuthConfig:
    """Username/password pairs accepted by the broker."""

    users: list[tuple[str, str]] = field(default_factory=list)

    def add(self, username: str, password: str) -> None:
        """Append a credential pair."""
        if username is None or password is None:
            raise ValueError("username and password are both required")
        self.users.append((username, password))

    def __len__(self) -> int:
        return len(self.users)


@dataclass
class HttpParam:
    """A named parameter of an HTTP authentication request."""

    name: str
    type: ParamType


@dataclass
class HttpHeader:
    """A header of an HTTP authentication request."""

    key: str
    value: str


@dataclass
class AuthHttpRequest:
    """One of the HTTP authentication endpoints."""

    url: str | None = None
    method: str | None = None
    headers: list[HttpHeader] = field(default_factory=list)
    params: list[HttpParam] = field(default_factory=list)
    tls: TlsConfig = field(default_factory=TlsConfig)


@dataclass
class AuthHttpConfig:
    """HTTP-backed authentication settings."""

    enable: bool = False
    timeout: int = 5
    connect_timeout: int = 5
    pool_size: int = 32
    auth_req: AuthHttpRequest = field(default_factory=AuthHttpRequest)
    acl_req: AuthHttpRequest = field(default_factory=AuthHttpRequest)
    super_req: AuthHttpRequest = field(default_factory=AuthHttpRequest)


@dataclass
class BridgeConnProperties:
    """MQTT v5 CONNECT properties of a bridge connection."""

    session_expiry_interval: int = 0
    receive_maximum: int = 65535
    maximum_packet_size: int = 0
    topic_alias_maximum: int = 0
    request_response_info: int = 0
    request_problem_info: int = 1
    user_properties: list[UserProperty] = field(default_factory=list)


@dataclass
class BridgeWillProperties:
    """MQTT v5 will properties of a bridge connection."""

    payload_format_indicator: int = 0
    message_expiry_interval: int = 0
    content_type: str | None = None
    response_topic: str | None = None
    correlation_data: str | None = None
    will_delay_interval: int = 0
    user_properties: list[UserProperty] = field(default_factory=list)


@dataclass
class BridgeSubProperties:
    """MQTT v5 SUBSCRIBE properties of a bridge connection."""

    identifier: int = 0xFFFFFFFF
    user_properties: list[UserProperty] = field(default_factory=list)


@dataclass
class Subscription:
    """A topic subscribed to on the remote broker."""

    topic: str
    qos: int = 0


@dataclass
class BridgeNode:
    """One remote broker the bridge connects to."""

    name: str | None = None
    enable: bool = False
    parallel: int = 2
    address: str | None = None
    proto_ver: int = MQTT_PROTOCOL_VERSION_V311
    clientid: str | None = None
    clean_start: bool = True
    username: str | None = None
    password: str | None = None
    keepalive: int = 60
    will_flag: bool = False
    will_topic: str | None = None
    will_payload: str | None = None
    will_qos: int = 0
    will_retain: bool = False
    conn_properties: BridgeConnProperties | None = None
    will_properties: BridgeWillProperties | None = None
    sub_properties: BridgeSubProperties | None = None
    forwards: list[str] = field(default_factory=list)
    subscriptions: list[Subscription] = field(default_factory=list)
    tls: TlsConfig = field(default_factory=TlsConfig)
    qkeepalive: int = 30
    qidle_timeout: int = 60
    qdiscon_timeout: int = 30
    qsend_idle_timeout: int = 60
    qinitial_rtt_ms: int = 800
    qmax_ack_delay_ms: int = 100
    multi_stream: bool = False
    hybrid: bool = False
    qos_first: bool = False
    quic_0rtt: bool = True


@dataclass
class BridgeConfig:
    """All bridge nodes plus their shared cache."""

    nodes: list[BridgeNode] = field(default_factory=list)
    sqlite: SqliteConfig = field(default_factory=SqliteConfig)


@dataclass
class LogConfig:
    """Where and how verbosely the broker logs."""

    level: str = "warn"
    to_console: bool = True
    to_file: bool = False
    to_syslog: bool = False
    file: str | None = None
    dir: str | None = None


@dataclass
class Config:
    """Complete broker configuration."""

    conf_file: str | None = None
    url: str | None = DEFAULT_TCP_URL
    enable: bool = True
    daemon: bool = False
    num_taskq_thread: int = 0
    max_taskq_thread: int = 0
    parallel: int = 32
    property_size: int = 32
    max_packet_size: int = 10240 * 1024
    client_max_packet_size: int = 10240 * 1024
    msq_len: int = 2048
    qos_duration: int = 10
    backoff: float = 1.5
    allow_anonymous: bool = True
    ipc_internal: bool = True
    bridge_mode: bool = False
    tls: TlsConfig = field(default_factory=TlsConfig)
    websocket: WebsocketConfig = field(default_factory=WebsocketConfig)
    http_server: HttpServerConfig = field(default_factory=HttpServerConfig)
    sqlite: SqliteConfig = field(default_factory=SqliteConfig)
    auths: AuthConfig = field(default_factory=AuthConfig)
    auth_http: AuthHttpConfig = field(default_factory=AuthHttpConfig)
    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    log: LogConfig = field(default_factory=LogConfig)
    acl: AclConfig = field(default_factory=AclConfig)
    acl_nomatch: AclPermit = AclPermit.ALLOW