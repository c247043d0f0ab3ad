import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("bookings", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("action", models.CharField(choices=[("BOOKING_STATUS_CHANGED", "Booking status changed"), ("DISPUTE_CREATED", "Dispute created"), ("PAYOUT_HELD", "Payout held"), ("ADMIN_DISPUTE_RESOLVED", "Dispute resolved by admin"), ("PAYOUT_CREATED", "Payout created"), ("PAYMENT_RECONCILED", "Payment reconciled"), ("BOND_CAPTURED", "Bond captured"), ("BOND_RELEASED", "Bond released")], db_index=True, max_length=32)),
                ("description", models.TextField()),
                ("target_type", models.CharField(help_text="Type of the record the action applied to", max_length=50)),
                ("target_id", models.CharField(help_text="Identifier of the record the action applied to", max_length=64)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("actor", models.ForeignKey(blank=True, help_text="User that triggered the action (null for system actions)", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="audit_logs", to=settings.AUTH_USER_MODEL)),
                ("booking", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="audit_logs", to="bookings.booking")),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["target_type", "target_id"], name="audit_target_idx")],
            },
        ),
    ]
