"""Read-only rows built from ACL queries for list screens and API payloads.

Entities stay free of display-only fields; the joined values (module names,
counters, landing page) live on these rows instead.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .models import Acl, Rule


def module_action(module_name: str, action: Optional[str]) -> str:
    """Return the "module action" label shown next to rules and grants."""
    return f"{module_name} {action}" if action else module_name


@dataclass(frozen=True)
class RuleRow:
    id: int
    module_id: int
    module_name: str
    action: Optional[str]
    admin_only: bool
    module_action: str


@dataclass(frozen=True)
class AclRow:
    id: int
    rule_id: int
    group_id: Optional[int]
    module_name: str
    action: Optional[str]
    is_default: bool
    module_action: str


@dataclass(frozen=True)
class GroupRow:
    id: int
    name: str
    is_default: bool
    user_count: int
    acl_count: int
    landing_module: Optional[str]
    landing_action: Optional[str]
    can_be_deleted: bool


@dataclass(frozen=True)
class Landing:
    """Module/action pair a user is redirected to after login."""

    module: str
    action: Optional[str]


@dataclass(frozen=True)
class UserRow:
    """A user joined with the name of its group."""

    id: str
    username: str
    full_name: str
    email: Optional[str]
    group_id: int
    group_name: str
    language: str
    admin: bool
    enabled: bool
    faults: int
    last_login: Optional[datetime]


def user_row(user) -> UserRow:
    return UserRow(
        id=str(user.pk),
        username=user.username,
        full_name=user.full_name,
        email=user.email,
        group_id=user.group_id,
        group_name=user.group.name,
        language=user.language.code,
        admin=user.admin,
        enabled=user.enabled,
        faults=user.faults,
        last_login=user.last_login,
    )


def rule_row(rule: Rule) -> RuleRow:
    return RuleRow(
        id=rule.pk,
        module_id=rule.module_id,
        module_name=rule.module.name,
        action=rule.action,
        admin_only=rule.admin_only,
        module_action=module_action(rule.module.name, rule.action),
    )


def acl_row(acl: Acl) -> AclRow:
    return AclRow(
        id=acl.pk,
        rule_id=acl.rule_id,
        group_id=acl.group_id,
        module_name=acl.rule.module.name,
        action=acl.rule.action,
        is_default=acl.is_default,
        module_action=module_action(acl.rule.module.name, acl.rule.action),
    )


__all__ = [
    "RuleRow",
    "AclRow",
    "GroupRow",
    "Landing",
    "UserRow",
    "module_action",
    "rule_row",
    "acl_row",
    "user_row",
]
