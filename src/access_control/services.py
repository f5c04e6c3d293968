"""Rule registry, group store, ACL grants, and the authorization engine.

The services are plain classes holding no per-request state. They are built
once (see ``AccessControl``) and handed to the views that need them; every
call reads the database afresh so decisions never outlive a request.
"""

import enum
import logging
from typing import Iterable, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Count, F, Q

from .errors import (
    ConfigurationError,
    ConstraintError,
    DuplicateGrant,
    DuplicateGroupName,
    DuplicateRule,
    NotFoundError,
    ValidationError,
)
from .models import Acl, Group, Module, Rule
from .presenters import AclRow, GroupRow, Landing, UserRow, acl_row, user_row

logger = logging.getLogger(__name__)

# A rule with this action also matches requests that name no action.
DEFAULT_ACTION = "default"

RULE_ACTION_MAX_LENGTH = 30


def normalize_action(action: Optional[str]) -> Optional[str]:
    """Map blank actions to None, the full-module marker."""
    if action is None:
        return None
    action = action.strip()
    return action or None


def _rule_ordering(prefix: str = "") -> list:
    return [
        F(f"{prefix}module__name").asc(),
        F(f"{prefix}action").asc(nulls_first=True),
        F(f"{prefix}id").asc(),
    ]


def _module_lookup(module) -> dict:
    if isinstance(module, Module):
        return {"module": module}
    if isinstance(module, int):
        return {"module_id": module}
    return {"module__name": module}


class Decision(enum.Enum):
    """Outcome of an authorization check."""

    ALLOW = "allow"
    DENY = "deny"

    def __bool__(self) -> bool:
        return self is Decision.ALLOW


class RuleRegistry:
    """Catalog of (module, action, admin-only) rules."""

    def get(self, rule_id: int) -> Rule:
        try:
            return Rule.objects.select_related("module").get(pk=rule_id)
        except Rule.DoesNotExist:
            raise NotFoundError(f"Rule {rule_id} does not exist.") from None

    def get_module(self, module) -> Module:
        """Resolve a Module instance, id or name."""
        if isinstance(module, Module):
            return module
        lookup = {"pk": module} if isinstance(module, int) else {"name": module}
        try:
            return Module.objects.get(**lookup)
        except Module.DoesNotExist:
            raise NotFoundError(f"Module '{module}' does not exist.") from None

    def list_rules(self, admin_only: Optional[bool] = None) -> list[Rule]:
        """Return rules ordered by module name then action.

        ``admin_only=False`` keeps only the rules that can be granted to
        non-admin groups; ``None`` returns everything.
        """
        rules = Rule.objects.select_related("module")
        if admin_only is not None:
            rules = rules.filter(admin_only=admin_only)
        return list(rules.order_by(*_rule_ordering()))

    def find(self, module, action: Optional[str], admin_only: Optional[bool] = None) -> Optional[Rule]:
        """Exact (module, action) lookup; a None action matches the full-module rule."""
        action = normalize_action(action)
        rules = Rule.objects.select_related("module").filter(**_module_lookup(module))
        if action is None:
            rules = rules.filter(action__isnull=True)
        else:
            rules = rules.filter(action=action)
        if admin_only is not None:
            rules = rules.filter(admin_only=admin_only)
        return rules.first()

    def capability_exists(self, module_name: str, action: Optional[str]) -> bool:
        """True if a rule covers the module either for this action or for all actions."""
        action = normalize_action(action)
        matches = Q(action__isnull=True) | Q(action=action if action else DEFAULT_ACTION)
        return Rule.objects.filter(module__name=module_name).filter(matches).exists()

    def create(self, module, action: Optional[str] = None, admin_only: bool = False) -> Rule:
        """Create a rule; raise DuplicateRule carrying the existing one on conflict."""
        module = self.get_module(module)
        action = self._clean_action(action)

        existing = self.find(module, action)
        if existing is not None:
            raise DuplicateRule(existing)

        try:
            with transaction.atomic():
                rule = Rule.objects.create(module=module, action=action, admin_only=admin_only)
        except IntegrityError:
            existing = self.find(module, action)
            if existing is None:
                raise
            raise DuplicateRule(existing) from None

        logger.info("Rule %s created for module %s (admin_only=%s)", rule.pk, module.name, admin_only)
        return rule

    def update(self, rule_id: int, module, action: Optional[str], admin_only: bool) -> Rule:
        """Change all fields of a rule, refusing a pair already held by another rule."""
        rule = self.get(rule_id)
        module = self.get_module(module)
        action = self._clean_action(action)

        existing = self.find(module, action)
        if existing is not None and existing.pk != rule.pk:
            raise DuplicateRule(existing)

        rule.module = module
        rule.action = action
        rule.admin_only = admin_only
        try:
            with transaction.atomic():
                rule.save()
        except IntegrityError:
            raise DuplicateRule(self.find(module, action) or rule) from None

        logger.info("Rule %s changed to %s %s", rule.pk, module.name, action or "*")
        return rule

    def delete(self, rule_id: int) -> None:
        rule = self.get(rule_id)
        if rule.grants.exists():
            raise ConstraintError(
                f"Rule '{rule.module.name} {rule.action or '*'}' is granted to at least one group "
                f"and cannot be deleted."
            )
        rule.delete()
        logger.info("Rule %s deleted", rule_id)

    @transaction.atomic
    def install_module(
        self,
        name: str,
        actions: Iterable[str] = (),
        admin_only: bool = False,
        version: str = "1.0",
    ) -> Module:
        """Register a module and its rules, skipping whatever already exists."""
        module, created = Module.objects.get_or_create(name=name, defaults={"version": version})
        if created:
            logger.info("Module %s installed", name)

        for action in [None, *actions]:
            action = self._clean_action(action)
            if self.find(module, action) is None:
                Rule.objects.create(module=module, action=action, admin_only=admin_only)
        return module

    @staticmethod
    def _clean_action(action: Optional[str]) -> Optional[str]:
        action = normalize_action(action)
        if action is not None and len(action) > RULE_ACTION_MAX_LENGTH:
            raise ValidationError(
                f"Action name must be at most {RULE_ACTION_MAX_LENGTH} characters long."
            )
        return action


class GroupStore:
    """Groups of users, their default flag, and their landing grant."""

    @property
    def name_min_length(self) -> int:
        return getattr(settings, "ACL_GROUP_NAME_MIN_LENGTH", 3)

    def get(self, group_id: int) -> Group:
        try:
            return Group.objects.get(pk=group_id)
        except Group.DoesNotExist:
            raise NotFoundError(f"Group {group_id} does not exist.") from None

    def get_default(self) -> Optional[Group]:
        """Return the default group, or None when the installation lacks one."""
        group = Group.objects.filter(is_default=True).first()
        if group is None:
            logger.warning("No default group is configured; default-dependent features are disabled")
        return group

    def require_default(self) -> Group:
        group = self.get_default()
        if group is None:
            raise ConfigurationError()
        return group

    def create(self, name: str, is_default: bool = False) -> Group:
        """Create a group; a default group takes the flag from any previous one.

        The first group of an installation always becomes the default.
        """
        name = self._clean_name(name)
        try:
            with transaction.atomic():
                if not Group.objects.exists():
                    is_default = True
                if is_default:
                    Group.objects.filter(is_default=True).update(is_default=False)
                group = Group.objects.create(name=name, is_default=is_default)
                self._grant_landing_rule(group)
        except IntegrityError:
            raise DuplicateGroupName() from None

        logger.info("Group %s created (default=%s)", group.name, group.is_default)
        return group

    def update(
        self,
        group_id: int,
        name: Optional[str] = None,
        is_default: Optional[bool] = None,
        default_acl_id: Optional[int] = None,
    ) -> Group:
        """Rename a group, make it the default, or move its landing grant.

        The default flag is sticky: asking to unset it on the current default
        group is ignored, since only another group taking the flag may clear it.
        """
        group = self.get(group_id)
        if name is not None:
            group.name = self._clean_name(name, exclude_pk=group.pk)

        try:
            with transaction.atomic():
                if is_default and not group.is_default:
                    Group.objects.filter(is_default=True).update(is_default=False)
                    group.is_default = True
                    logger.info("Group %s is now the default group", group.name)
                group.save()
                if default_acl_id:
                    self.set_default_acl(group.pk, default_acl_id)
        except IntegrityError:
            raise DuplicateGroupName() from None

        return group

    def user_count(self, group: Group) -> int:
        return get_user_model().objects.filter(group=group).count()

    def deletion_blockers(self, group: Group) -> list[str]:
        """Return the reasons preventing deletion; empty when it is allowed."""
        reasons = []
        users = self.user_count(group)
        if users:
            reasons.append(f"Group '{group.name}' still has {users} user(s) and cannot be deleted.")
        if Group.objects.count() <= 1:
            reasons.append(f"Group '{group.name}' is the last group and cannot be deleted.")
        return reasons

    def can_be_deleted(self, group: Group) -> bool:
        return not self.deletion_blockers(group)

    def delete(self, group_id: int) -> None:
        """Delete a group and its grants, unless users or the last-group rule forbid it."""
        with transaction.atomic():
            group = self.get(group_id)
            reasons = self.deletion_blockers(group)
            if reasons:
                logger.info("Deletion of group %s refused: %s", group.name, "; ".join(reasons))
                raise ConstraintError(reasons)
            was_default = group.is_default
            name = group.name
            group.delete()

        logger.info("Group %s deleted", name)
        if was_default:
            logger.warning("Default group %s was deleted; no default group remains", name)

    def set_default_acl(self, group_id: int, acl_id: int) -> Acl:
        """Flag one grant of the group as its landing grant, clearing the others."""
        group = self.get(group_id)
        with transaction.atomic():
            acl = Acl.objects.filter(pk=acl_id, group=group).first()
            if acl is None:
                raise NotFoundError(f"Grant {acl_id} does not belong to group '{group.name}'.")
            Acl.objects.filter(group=group, is_default=True).exclude(pk=acl.pk).update(is_default=False)
            if not acl.is_default:
                acl.is_default = True
                acl.save(update_fields=["is_default"])

        logger.info("Grant %s is now the landing grant of group %s", acl.pk, group.name)
        return acl

    def missing_rules(self, group_id: int, include_admin_only: bool = False) -> list[Rule]:
        """Rules not yet granted to the group, ordered by module, action."""
        group = self.get(group_id)
        held = Acl.objects.filter(group=group).values("rule_id")
        rules = Rule.objects.select_related("module").exclude(pk__in=held)
        if not include_admin_only:
            rules = rules.filter(admin_only=False)
        return list(rules.order_by(*_rule_ordering()))

    def list_groups(self) -> list[GroupRow]:
        """Groups with user/grant counters and landing page, ordered by name."""
        return self._rows(Group.objects.order_by("name"))

    def group_row(self, group_id: int) -> GroupRow:
        rows = self._rows(Group.objects.filter(pk=group_id))
        if not rows:
            raise NotFoundError(f"Group {group_id} does not exist.")
        return rows[0]

    def _rows(self, groups) -> list[GroupRow]:
        groups = list(
            groups.annotate(
                user_count=Count("users", distinct=True),
                acl_count=Count("grants", distinct=True),
            )
        )
        landings = {
            acl.group_id: acl
            for acl in Acl.objects.filter(
                is_default=True, group__in=[group.pk for group in groups]
            ).select_related("rule__module")
        }
        total = Group.objects.count()

        rows = []
        for group in groups:
            landing = landings.get(group.pk)
            rows.append(
                GroupRow(
                    id=group.pk,
                    name=group.name,
                    is_default=group.is_default,
                    user_count=group.user_count,
                    acl_count=group.acl_count,
                    landing_module=landing.rule.module.name if landing else None,
                    landing_action=landing.rule.action if landing else None,
                    can_be_deleted=group.user_count == 0 and total > 1,
                )
            )
        return rows

    def _clean_name(self, name: Optional[str], exclude_pk: Optional[int] = None) -> str:
        name = (name or "").strip()
        if len(name) < self.name_min_length:
            raise ValidationError(f"Group name must be at least {self.name_min_length} characters long.")
        others = Group.objects.filter(name=name)
        if exclude_pk is not None:
            others = others.exclude(pk=exclude_pk)
        if others.exists():
            raise DuplicateGroupName(f"A group named '{name}' already exists.")
        return name

    @staticmethod
    def _grant_landing_rule(group: Group) -> None:
        """Give a new group the configured landing module as its default grant."""
        module_name = getattr(settings, "ACL_GROUP_LANDING_MODULE", "users")
        if not module_name:
            return
        rule = (
            Rule.objects.filter(module__name=module_name, admin_only=False)
            .order_by(F("action").asc(nulls_first=True), "id")
            .first()
        )
        if rule is not None:
            Acl.objects.create(rule=rule, group=group, is_default=True)


class AclGrants:
    """Grant and revoke rules for groups."""

    def __init__(self, groups: GroupStore, rules: RuleRegistry):
        self._groups = groups
        self._rules = rules

    def get(self, acl_id: int) -> Acl:
        try:
            return Acl.objects.select_related("rule__module", "group").get(pk=acl_id)
        except Acl.DoesNotExist:
            raise NotFoundError(f"Grant {acl_id} does not exist.") from None

    def list_for_group(self, group_id: int) -> list[AclRow]:
        group = self._groups.get(group_id)
        grants = (
            Acl.objects.filter(group=group)
            .select_related("rule__module")
            .order_by(*_rule_ordering("rule__"))
        )
        return [acl_row(acl) for acl in grants]

    def grant(self, group_id: int, rule_id: int) -> Acl:
        """Grant one rule; the new grant is never the landing grant."""
        group = self._groups.get(group_id)
        rule = self._rules.get(rule_id)
        self._check_grantable(rule)

        if Acl.objects.filter(rule=rule, group=group).exists():
            raise DuplicateGrant(f"Group '{group.name}' already holds rule '{rule}'.")
        try:
            with transaction.atomic():
                acl = Acl.objects.create(rule=rule, group=group, is_default=False)
        except IntegrityError:
            raise DuplicateGrant(f"Group '{group.name}' already holds rule '{rule}'.") from None

        logger.info("Rule %s granted to group %s", rule.pk, group.name)
        return acl

    def grant_many(self, group_id: int, rule_ids: Iterable[int]) -> int:
        """Grant several rules at once, silently skipping those already held.

        Returns the number of grants created.
        """
        group = self._groups.get(group_id)
        ids = list(dict.fromkeys(rule_ids))
        rules = Rule.objects.select_related("module").in_bulk(ids)

        unknown = [rule_id for rule_id in ids if rule_id not in rules]
        if unknown:
            raise NotFoundError([f"Rule {rule_id} does not exist." for rule_id in unknown])
        for rule in rules.values():
            self._check_grantable(rule)

        held = self._held_rule_ids(group, ids)
        created = 0
        with transaction.atomic():
            for rule_id in ids:
                if rule_id in held:
                    continue
                try:
                    # Savepoint per row: a concurrent grant of the same rule is skipped.
                    with transaction.atomic():
                        Acl.objects.create(rule=rules[rule_id], group=group)
                except IntegrityError:
                    continue
                created += 1

        logger.info("%d rule(s) granted to group %s", created, group.name)
        return created

    @staticmethod
    def _held_rule_ids(group: Group, ids: list[int]) -> set[int]:
        return set(Acl.objects.filter(group=group, rule_id__in=ids).values_list("rule_id", flat=True))

    def add_all(self, group_id: int) -> int:
        """Grant every rule the group is missing, admin-only rules excepted."""
        missing = self._groups.missing_rules(group_id)
        return self.grant_many(group_id, [rule.pk for rule in missing])

    def revoke(self, acl_id: int) -> None:
        """Delete a grant. Revoking the landing grant leaves the group without one."""
        acl = self.get(acl_id)
        group_name = acl.group.name if acl.group else None
        was_default = acl.is_default
        acl.delete()

        logger.info("Grant %s revoked from group %s", acl_id, group_name)
        if was_default:
            logger.info("Group %s has no landing grant anymore", group_name)

    @staticmethod
    def _check_grantable(rule: Rule) -> None:
        if rule.admin_only:
            raise ValidationError(
                f"Rule '{rule}' is reserved to administrators and cannot be granted to a group."
            )


class AuthorizationEngine:
    """Decide whether a user may run a module action.

    Default deny: access is allowed only to admins, or to enabled users whose
    group holds a grant for the exact action or for the whole module.
    """

    def __init__(self, rules: RuleRegistry):
        self._rules = rules

    def decide(self, user, module: str, action: Optional[str] = None) -> Decision:
        if user is None or not getattr(user, "is_authenticated", False):
            return Decision.DENY
        if getattr(user, "admin", False):
            return Decision.ALLOW
        if not getattr(user, "enabled", False):
            return Decision.DENY

        group_id = getattr(user, "group_id", None)
        if group_id is None:
            return Decision.DENY

        action = normalize_action(action)
        if not self._rules.capability_exists(module, action):
            logger.debug("Unknown capability %s/%s denied", module, action)
            return Decision.DENY

        action_match = Q(rule__action__isnull=True)
        action_match |= Q(rule__action=action) if action else Q(rule__action=DEFAULT_ACTION)
        granted = (
            Acl.objects.filter(group_id=group_id, rule__module__name=module, rule__admin_only=False)
            .filter(action_match)
            .exists()
        )
        if not granted:
            logger.debug("User %s denied %s/%s", getattr(user, "pk", None), module, action)
            return Decision.DENY
        return Decision.ALLOW

    def authorize(self, user, module: str, action: Optional[str] = None) -> bool:
        return self.decide(user, module, action) is Decision.ALLOW

    def landing(self, user) -> Optional[Landing]:
        """Module/action of the user's group landing grant, or None."""
        group_id = getattr(user, "group_id", None)
        if group_id is None:
            return None
        acl = (
            Acl.objects.filter(group_id=group_id, is_default=True)
            .select_related("rule__module")
            .first()
        )
        if acl is None:
            return None
        return Landing(module=acl.rule.module.name, action=acl.rule.action)


class Memberships:
    """Binding of users to their single group."""

    def __init__(self, groups: GroupStore):
        self._groups = groups

    def group_for_new_user(self, group_id: Optional[int] = None) -> Group:
        """The requested group, or the default group when none is given."""
        if group_id is None:
            return self._groups.require_default()
        return self._groups.get(group_id)

    def assign(self, user, group_id: int):
        """Move a user to another existing group."""
        group = self._groups.get(group_id)
        if user.group_id != group.pk:
            user.group = group
            user.save(update_fields=["group"])
            logger.info("User %s moved to group %s", user.username, group.name)
        return user

    def list_users(self, group_id: Optional[int] = None) -> list[UserRow]:
        """Users with their group name, optionally restricted to one group."""
        users = get_user_model().objects.select_related("group", "language")
        if group_id is not None:
            users = users.filter(group=self._groups.get(group_id))
        return [user_row(user) for user in users]


class AccessControl:
    """One instance of each service, wired together."""

    def __init__(self):
        self.rules = RuleRegistry()
        self.groups = GroupStore()
        self.grants = AclGrants(self.groups, self.rules)
        self.engine = AuthorizationEngine(self.rules)
        self.memberships = Memberships(self.groups)


__all__ = [
    "AccessControl",
    "AclGrants",
    "AuthorizationEngine",
    "Decision",
    "GroupStore",
    "Memberships",
    "RuleRegistry",
    "normalize_action",
]
