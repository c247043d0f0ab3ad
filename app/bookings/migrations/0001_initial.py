import uuid
from decimal import Decimal

import django.core.validators
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
            name="Booking",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("booking_status", models.CharField(choices=[("PENDING", "Pending"), ("ACCEPTED", "Accepted"), ("DECLINED", "Declined"), ("AWAITING_PICKUP", "Awaiting pickup"), ("ACTIVE", "Active"), ("COMPLETED", "Completed"), ("CANCELLED", "Cancelled"), ("IN_DISPUTE", "In dispute")], db_index=True, default="PENDING", max_length=20)),
                ("listing_title", models.CharField(max_length=200)),
                ("rental_total", models.DecimalField(decimal_places=2, help_text="Rental price; the only source of the charge amount", max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal("0"))])),
                ("bond_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal("0"))])),
                ("currency", models.CharField(choices=[("NZD", "New Zealand Dollar"), ("AUD", "Australian Dollar")], default="NZD", max_length=3)),
                ("start_date", models.DateField()),
                ("end_date", models.DateField()),
                ("actual_return_time", models.DateTimeField(blank=True, help_text="When the rental was returned; orders payout eligibility", null=True)),
                ("owner", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="bookings_as_owner", to=settings.AUTH_USER_MODEL)),
                ("renter", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="bookings_as_renter", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["owner", "booking_status"], name="booking_owner_status_idx")],
            },
        ),
    ]
