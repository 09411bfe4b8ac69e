import uuid

from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("core", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Customer",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("phone", models.CharField(max_length=64)),
                ("email", models.EmailField(blank=True, max_length=254, null=True)),
                ("metadata", models.JSONField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "studio",
                    models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="customers", to="core.studio"),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["studio", "created_at"], name="customer_studio_created_idx"),
                    models.Index(fields=["studio", "email"], name="customer_studio_email_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=["studio", "phone"], name="uniq_customer_studio_phone"),
                ],
            },
        ),
    ]
