import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Notification",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("notification_type", models.CharField(choices=[("PAYMENT_RECEIVED", "Payment received"), ("PAYMENT_FAILED", "Payment failed"), ("PAYMENT_CANCELLED", "Payment cancelled"), ("BOOKING_REFUNDED", "Booking refunded"), ("DISPUTE_RAISED", "Dispute raised"), ("PAYOUT_SENT", "Payout sent"), ("PAYOUT_FAILED", "Payout failed")], db_index=True, help_text="Notification type", max_length=32)),
                ("title", models.CharField(max_length=200)),
                ("body", models.TextField(blank=True)),
                ("data", models.JSONField(blank=True, default=dict, help_text="Structured payload for clients and renderers")),
                ("is_read", models.BooleanField(default=False)),
                ("idempotency_key", models.CharField(blank=True, help_text="Prevents duplicate notifications for the same trigger", max_length=255, null=True, unique=True)),
                ("recipient", models.ForeignKey(help_text="User receiving the notification", on_delete=django.db.models.deletion.CASCADE, related_name="notifications", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["recipient", "is_read", "created_at"], name="notif_recipient_read_idx")],
            },
        ),
    ]
