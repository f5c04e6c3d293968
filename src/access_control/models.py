"""ACL models: Module, Rule, Group, and the Acl grant binding them."""

from django.db import models
from django.db.models import Q


class Module(models.Model):
    """An installed application module whose actions can be guarded by rules."""

    name = models.CharField(max_length=50, unique=True)
    version = models.CharField(max_length=20, blank=True)
    installed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.name


class Rule(models.Model):
    """A (module, action) capability point.

    A null ``action`` means every action of the module (full-module rule).
    Admin-only rules never take effect through the ACL.
    """

    module = models.ForeignKey(Module, on_delete=models.PROTECT, related_name="rules")
    action = models.CharField(max_length=30, null=True, blank=True)
    admin_only = models.BooleanField(default=False)

    class Meta:
        ordering = ["module__name", "action"]
        constraints = [
            models.UniqueConstraint(
                fields=["module", "action"],
                condition=Q(action__isnull=False),
                name="rule_module_action_unique",
            ),
            models.UniqueConstraint(
                fields=["module"],
                condition=Q(action__isnull=True),
                name="rule_module_full_access_unique",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.module.name} {self.action or '*'}"


class Group(models.Model):
    """Named collection of users; at most one group is flagged default."""

    name = models.CharField(max_length=100, unique=True)
    is_default = models.BooleanField(default=False)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.UniqueConstraint(
                fields=["is_default"],
                condition=Q(is_default=True),
                name="group_single_default",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.name


class Acl(models.Model):
    """Grant binding a Group to a Rule.

    ``is_default`` marks the grant used as the group's landing page; at most one
    grant per group carries it.
    """

    rule = models.ForeignKey(Rule, on_delete=models.PROTECT, related_name="grants")
    group = models.ForeignKey(
        Group, on_delete=models.CASCADE, related_name="grants", null=True, blank=True
    )
    is_default = models.BooleanField(default=False)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["rule", "group"], name="acl_rule_group_unique"),
            models.UniqueConstraint(
                fields=["group"],
                condition=Q(is_default=True),
                name="acl_single_default_per_group",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.group_id} -> {self.rule_id}"


__all__ = ["Module", "Rule", "Group", "Acl"]
