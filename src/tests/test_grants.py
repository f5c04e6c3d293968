"""ACL grants: duplicates, bulk grants, admin-only rules, revoking the landing grant."""

from unittest import mock

from django.test import TestCase, override_settings

from access_control.errors import DuplicateGrant, NotFoundError, ValidationError
from access_control.models import Acl
from access_control.services import AclGrants
from tests.utils import create_user, services


@override_settings(ACL_GROUP_LANDING_MODULE="")
class AclGrantTests(TestCase):
    def setUp(self):
        self.acl = services()
        self.acl.rules.install_module("orders", ["view", "edit"])
        self.acl.rules.install_module("settings", ["edit"], admin_only=True)
        self.group = self.acl.groups.create("Staff")
        self.view = self.acl.rules.find("orders", "view")
        self.edit = self.acl.rules.find("orders", "edit")

    def test_grant_creates_non_default_grant(self):
        acl = self.acl.grants.grant(self.group.pk, self.view.pk)

        self.assertFalse(acl.is_default)
        self.assertEqual((acl.group_id, acl.rule_id), (self.group.pk, self.view.pk))

    def test_duplicate_grant_is_rejected(self):
        acl = self.acl.grants.grant(self.group.pk, self.view.pk)
        self.acl.groups.set_default_acl(self.group.pk, acl.pk)

        with self.assertRaises(DuplicateGrant):
            self.acl.grants.grant(self.group.pk, self.view.pk)

        existing = Acl.objects.get(group=self.group, rule=self.view)
        self.assertEqual(existing.pk, acl.pk)
        self.assertTrue(existing.is_default)
        self.assertEqual(Acl.objects.filter(group=self.group, rule=self.view).count(), 1)

    def test_admin_only_rule_cannot_be_granted(self):
        reserved = self.acl.rules.find("settings", "edit")

        with self.assertRaises(ValidationError):
            self.acl.grants.grant(self.group.pk, reserved.pk)
        with self.assertRaises(ValidationError):
            self.acl.grants.grant_many(self.group.pk, [self.view.pk, reserved.pk])
        self.assertFalse(Acl.objects.filter(group=self.group).exists())

    def test_grant_many_skips_held_rules(self):
        self.acl.grants.grant(self.group.pk, self.view.pk)

        created = self.acl.grants.grant_many(self.group.pk, [self.view.pk, self.edit.pk, self.edit.pk])

        self.assertEqual(created, 1)
        self.assertEqual(Acl.objects.filter(group=self.group).count(), 2)

    def test_grant_many_counts_only_rows_it_wrote(self):
        # Another request granted "view" after the held rules were read.
        self.acl.grants.grant(self.group.pk, self.view.pk)

        with mock.patch.object(AclGrants, "_held_rule_ids", return_value=set()):
            created = self.acl.grants.grant_many(self.group.pk, [self.view.pk, self.edit.pk])

        self.assertEqual(created, 1)
        self.assertEqual(Acl.objects.filter(group=self.group).count(), 2)

    def test_grant_many_rejects_unknown_rules(self):
        with self.assertRaises(NotFoundError):
            self.acl.grants.grant_many(self.group.pk, [self.view.pk, 9999])
        self.assertFalse(Acl.objects.filter(group=self.group).exists())

    def test_add_all_grants_every_missing_grantable_rule(self):
        self.acl.grants.grant(self.group.pk, self.view.pk)

        created = self.acl.grants.add_all(self.group.pk)

        self.assertEqual(created, 2)
        self.assertEqual(self.acl.groups.missing_rules(self.group.pk), [])
        self.assertFalse(Acl.objects.filter(group=self.group, rule__admin_only=True).exists())
        self.assertEqual(self.acl.grants.add_all(self.group.pk), 0)

    def test_list_for_group_ordered_by_module_then_action(self):
        self.acl.grants.add_all(self.group.pk)

        rows = self.acl.grants.list_for_group(self.group.pk)

        self.assertEqual([row.module_action for row in rows], ["orders", "orders edit", "orders view"])

    def test_revoking_landing_grant_leaves_group_without_landing(self):
        user = create_user("alice", "secret", self.group)
        acl = self.acl.grants.grant(self.group.pk, self.view.pk)
        self.acl.groups.set_default_acl(self.group.pk, acl.pk)
        self.assertIsNotNone(self.acl.engine.landing(user))

        self.acl.grants.revoke(acl.pk)

        self.assertIsNone(self.acl.engine.landing(user))
        self.assertFalse(Acl.objects.filter(group=self.group, is_default=True).exists())

    def test_revoke_unknown_grant(self):
        with self.assertRaises(NotFoundError):
            self.acl.grants.revoke(12345)
