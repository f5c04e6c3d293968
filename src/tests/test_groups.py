"""Group store invariants: single default, deletion guards, landing grants."""

from django.test import TestCase, override_settings

from access_control.errors import (
    ConfigurationError,
    ConstraintError,
    DuplicateGroupName,
    NotFoundError,
    ValidationError,
)
from access_control.models import Acl, Group
from tests.utils import create_user, services


@override_settings(ACL_GROUP_LANDING_MODULE="")
class GroupStoreTests(TestCase):
    def setUp(self):
        self.acl = services()
        self.groups = self.acl.groups

    def test_first_group_becomes_default(self):
        group = self.groups.create("Staff")

        self.assertTrue(group.is_default)

    def test_new_default_group_clears_previous_default(self):
        first = self.groups.create("Staff")
        second = self.groups.create("Managers", is_default=True)

        first.refresh_from_db()
        self.assertFalse(first.is_default)
        self.assertTrue(second.is_default)
        self.assertEqual(Group.objects.filter(is_default=True).count(), 1)

    def test_non_default_group_leaves_default_alone(self):
        first = self.groups.create("Staff")
        second = self.groups.create("Managers")

        self.assertFalse(second.is_default)
        self.assertEqual(self.groups.get_default(), first)

    def test_name_too_short_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.groups.create("ab")
        self.assertFalse(Group.objects.exists())

    def test_duplicate_name_is_rejected(self):
        self.groups.create("Staff")

        with self.assertRaises(DuplicateGroupName) as ctx:
            self.groups.create("Staff")
        # Duplicates are also validation failures.
        self.assertIsInstance(ctx.exception, ValidationError)

    def test_update_renames_and_validates(self):
        group = self.groups.create("Staff")
        self.groups.create("Managers")

        self.assertEqual(self.groups.update(group.pk, name="Team").name, "Team")
        with self.assertRaises(DuplicateGroupName):
            self.groups.update(group.pk, name="Managers")
        with self.assertRaises(ValidationError):
            self.groups.update(group.pk, name="x")

    def test_renaming_to_own_name_is_allowed(self):
        group = self.groups.create("Staff")

        self.assertEqual(self.groups.update(group.pk, name="Staff").name, "Staff")

    def test_default_flag_is_sticky(self):
        group = self.groups.create("Staff")

        self.groups.update(group.pk, is_default=False)

        group.refresh_from_db()
        self.assertTrue(group.is_default)

    def test_update_can_move_default_to_another_group(self):
        first = self.groups.create("Staff")
        second = self.groups.create("Managers")

        self.groups.update(second.pk, is_default=True)

        first.refresh_from_db()
        second.refresh_from_db()
        self.assertFalse(first.is_default)
        self.assertTrue(second.is_default)

    def test_delete_refused_while_group_has_users(self):
        group = self.groups.create("Staff")
        self.groups.create("Managers")
        create_user("alice", "secret", group)

        with self.assertRaises(ConstraintError):
            self.groups.delete(group.pk)
        self.assertTrue(Group.objects.filter(pk=group.pk).exists())

    def test_delete_refused_for_last_group(self):
        group = self.groups.create("Staff")

        with self.assertRaises(ConstraintError) as ctx:
            self.groups.delete(group.pk)
        self.assertIn("last group", ctx.exception.messages[0])

    def test_delete_removes_group_and_its_grants(self):
        self.groups.create("Staff")
        doomed = self.groups.create("Temporary")
        self.acl.rules.install_module("orders", ["view"])
        self.acl.grants.add_all(doomed.pk)

        self.groups.delete(doomed.pk)

        self.assertFalse(Group.objects.filter(pk=doomed.pk).exists())
        self.assertFalse(Acl.objects.filter(group_id=doomed.pk).exists())

    def test_can_be_deleted_reflects_guards(self):
        staff = self.groups.create("Staff")
        self.assertFalse(self.groups.can_be_deleted(staff))

        empty = self.groups.create("Empty")
        create_user("alice", "secret", staff)

        self.assertFalse(self.groups.can_be_deleted(staff))
        self.assertTrue(self.groups.can_be_deleted(empty))

    def test_get_default_returns_none_when_missing(self):
        with self.assertLogs("access_control.services", level="WARNING"):
            self.assertIsNone(self.groups.get_default())
        with self.assertRaises(ConfigurationError):
            self.groups.require_default()

    def test_unknown_group_raises_not_found(self):
        with self.assertRaises(NotFoundError):
            self.groups.get(999)


@override_settings(ACL_GROUP_LANDING_MODULE="")
class DefaultAclTests(TestCase):
    def setUp(self):
        self.acl = services()
        self.acl.rules.install_module("orders", ["view", "edit"])
        self.group = self.acl.groups.create("Staff")
        self.other = self.acl.groups.create("Guests")
        self.view = self.acl.grants.grant(self.group.pk, self.acl.rules.find("orders", "view").pk)
        self.edit = self.acl.grants.grant(self.group.pk, self.acl.rules.find("orders", "edit").pk)

    def test_set_default_acl_keeps_a_single_default(self):
        self.acl.groups.set_default_acl(self.group.pk, self.view.pk)
        self.acl.groups.set_default_acl(self.group.pk, self.edit.pk)

        defaults = Acl.objects.filter(group=self.group, is_default=True)
        self.assertEqual(list(defaults), [self.edit])

    def test_set_default_acl_rejects_grant_of_another_group(self):
        foreign = self.acl.grants.grant(self.other.pk, self.acl.rules.find("orders", "view").pk)

        with self.assertRaises(NotFoundError):
            self.acl.groups.set_default_acl(self.group.pk, foreign.pk)
        foreign.refresh_from_db()
        self.assertFalse(foreign.is_default)

    def test_update_moves_landing_grant(self):
        self.acl.groups.update(self.group.pk, default_acl_id=self.view.pk)

        self.view.refresh_from_db()
        self.assertTrue(self.view.is_default)

    def test_missing_rules_is_set_difference(self):
        missing = self.acl.groups.missing_rules(self.group.pk)

        self.assertEqual([(rule.module.name, rule.action) for rule in missing], [("orders", None)])

    def test_missing_rules_ordered_by_module_then_action(self):
        self.acl.rules.install_module("billing", ["pay"])

        missing = self.acl.groups.missing_rules(self.other.pk)

        self.assertEqual(
            [(rule.module.name, rule.action) for rule in missing],
            [
                ("billing", None),
                ("billing", "pay"),
                ("orders", None),
                ("orders", "edit"),
                ("orders", "view"),
            ],
        )

    def test_missing_rules_hides_admin_only_rules_by_default(self):
        self.acl.rules.install_module("settings", admin_only=True)

        names = {rule.module.name for rule in self.acl.groups.missing_rules(self.group.pk)}
        self.assertNotIn("settings", names)

        names = {
            rule.module.name
            for rule in self.acl.groups.missing_rules(self.group.pk, include_admin_only=True)
        }
        self.assertIn("settings", names)

    def test_list_groups_projects_counters_and_landing(self):
        self.acl.groups.set_default_acl(self.group.pk, self.view.pk)
        create_user("alice", "secret", self.group)

        rows = {row.name: row for row in self.acl.groups.list_groups()}

        staff = rows["Staff"]
        self.assertEqual(staff.user_count, 1)
        self.assertEqual(staff.acl_count, 2)
        self.assertEqual((staff.landing_module, staff.landing_action), ("orders", "view"))
        self.assertFalse(staff.can_be_deleted)
        self.assertTrue(rows["Guests"].can_be_deleted)
        self.assertIsNone(rows["Guests"].landing_module)
