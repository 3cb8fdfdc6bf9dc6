"""Evaluation of access-control rules for publish and subscribe requests."""

from __future__ import annotations

from dataclasses import dataclass

from nanomqtt.config import (
    AclAction,
    AclContent,
    AclContentType,
    AclPermit,
    AclRuleType,
    Config,
)


@dataclass(frozen=True)
class ConnectionInfo:
    """Identity of the client a request comes from."""

    username: str | None = None
    clientid: str | None = None


def topic_filter(pattern: str, topic: str) -> bool:
    """Return True if ``topic`` matches the MQTT filter ``pattern``."""
    filter_levels = pattern.split("/")
    topic_levels = topic.split("/")
    for index, level in enumerate(filter_levels):
        if level == "#":
            return True
        if index >= len(topic_levels):
            return False
        if level != "+" and level != topic_levels[index]:
            return False
    return len(filter_levels) == len(topic_levels)


def match_rule_content(content: AclContent, value: str | None) -> bool:
    """Return True if ``value`` satisfies the rule content."""
    if content.type is AclContentType.ALL:
        return True
    return (
        content.type is AclContentType.SINGLE_STRING
        and value is not None
        and content.value == value
    )


def _field_of(rule_type: AclRuleType, connection: ConnectionInfo) -> str | None:
    if rule_type is AclRuleType.USERNAME:
        return connection.username
    return connection.clientid


def auth_acl(
    config: Config, action: AclAction, connection: ConnectionInfo, topic: str
) -> bool:
    """Return whether ``connection`` may perform ``action`` on ``topic``.

    The first rule whose action, identity and topics all match decides;
    when none matches, the configured no-match policy applies.
    """
    match = False
    result = False
    # A failed AND rule keeps later AND rules from matching.
    sub_match = True

    for rule in config.acl.rules:
        if rule.action is not AclAction.ALL and rule.action is not action:
            continue

        kind = rule.rule_type
        if kind in (AclRuleType.USERNAME, AclRuleType.CLIENTID):
            match = match_rule_content(rule.content, _field_of(kind, connection))
        elif kind is AclRuleType.AND:
            for sub in rule.sub_rules:
                if sub.rule_type in (AclRuleType.USERNAME, AclRuleType.CLIENTID):
                    value = _field_of(sub.rule_type, connection)
                    if not match_rule_content(sub.content, value):
                        sub_match = False
                        break
            if sub_match:
                match = True
        elif kind is AclRuleType.OR:
            for sub in rule.sub_rules:
                if sub.rule_type in (AclRuleType.USERNAME, AclRuleType.CLIENTID):
                    value = _field_of(sub.rule_type, connection)
                    match = match or match_rule_content(sub.content, value)
                if match:
                    break
        elif kind is AclRuleType.NONE:
            match = True

        if not match:
            continue

        if rule.topics and not any(topic_filter(t, topic) for t in rule.topics):
            match = False
            continue

        result = match if rule.permit is AclPermit.ALLOW else not match
        break

    if match:
        return result
    return True if config.acl_nomatch is AclPermit.ALLOW else result