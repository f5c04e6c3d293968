import uuid

import django.db.models.deletion
from django.db import migrations, models

import authentication.managers


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("access_control", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Language",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=7, unique=True)),
                ("name", models.CharField(max_length=50)),
                ("is_default", models.BooleanField(default=False)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="User",
            fields=[
                ("password", models.CharField(max_length=128, verbose_name="password")),
                ("last_login", models.DateTimeField(blank=True, null=True, verbose_name="last login")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("username", models.CharField(max_length=150, unique=True)),
                ("password_hash", models.CharField(max_length=128)),
                ("name", models.CharField(blank=True, max_length=150)),
                ("surname", models.CharField(blank=True, max_length=150)),
                ("email", models.EmailField(blank=True, max_length=254, null=True)),
                ("admin", models.BooleanField(default=False)),
                ("enabled", models.BooleanField(default=True)),
                ("faults", models.PositiveIntegerField(default=0)),
                ("token_version", models.PositiveIntegerField(default=1)),
                ("date_joined", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "group",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="users",
                        to="access_control.group",
                    ),
                ),
                (
                    "language",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="users",
                        to="authentication.language",
                    ),
                ),
            ],
            options={
                "ordering": ["name", "surname", "username"],
            },
            managers=[
                ("objects", authentication.managers.UserManager()),
            ],
        ),
    ]
