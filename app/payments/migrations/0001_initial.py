import uuid
from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
import django_fsm
from django.conf import settings
from django.db import migrations, models

import payments.models.payout_account


CURRENCY_CHOICES = [("NZD", "New Zealand Dollar"), ("AUD", "Australian Dollar")]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("bookings", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="OwnerPayoutAccount",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("external_account_ref", models.CharField(blank=True, help_text="Processor connected account ID (acct_xxx)", max_length=255, null=True, unique=True)),
                ("account_status", models.CharField(choices=[("pending", "Pending"), ("pending_verification", "Pending Verification"), ("active", "Active")], default="pending", max_length=32)),
                ("onboarding_complete", models.BooleanField(default=False)),
                ("is_verified", models.BooleanField(default=False)),
                ("verified_at", models.DateTimeField(blank=True, null=True)),
                ("minimum_payout_amount", models.DecimalField(decimal_places=2, default=payments.models.payout_account.default_minimum_payout_amount, max_digits=12)),
                ("payout_schedule", models.CharField(choices=[("daily", "Daily"), ("weekly", "Weekly"), ("monthly", "Monthly"), ("manual", "Manual")], db_index=True, default="weekly", max_length=10)),
                ("currency", models.CharField(choices=CURRENCY_CHOICES, default="NZD", max_length=3)),
                ("owner", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="payout_account", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Owner Payout Account",
                "verbose_name_plural": "Owner Payout Accounts",
            },
        ),
        migrations.CreateModel(
            name="PaymentIntent",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("external_ref", models.CharField(blank=True, help_text="Processor PaymentIntent ID (pi_xxx)", max_length=255, null=True, unique=True)),
                ("client_secret", models.CharField(blank=True, help_text="Client secret for confirming the payment client-side", max_length=255)),
                ("external_charge_ref", models.CharField(blank=True, db_index=True, help_text="Processor charge ID (ch_xxx)", max_length=255, null=True)),
                ("currency", models.CharField(choices=CURRENCY_CHOICES, default="NZD", max_length=3)),
                ("payment_mode", models.CharField(choices=[("FULL", "Full payment"), ("DEPOSIT", "Deposit")], default="FULL", max_length=10)),
                ("deposit_percent", models.PositiveSmallIntegerField(blank=True, help_text="Deposit percentage when payment_mode is DEPOSIT", null=True)),
                ("balance_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Amount left to pay after the deposit", max_digits=12)),
                ("rental_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("platform_fee_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("platform_fee_percent", models.DecimalField(decimal_places=2, max_digits=5)),
                ("owner_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("total_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("bond_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Bond authorized separately (never part of total_amount)", max_digits=12)),
                ("refunded_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("status", models.CharField(choices=[("PENDING", "Pending"), ("PROCESSING", "Processing"), ("SUCCEEDED", "Succeeded"), ("FAILED", "Failed"), ("CANCELLED", "Cancelled"), ("REFUNDED", "Refunded"), ("PARTIALLY_REFUNDED", "Partially Refunded")], db_index=True, default="PENDING", max_length=20)),
                ("is_in_escrow", models.BooleanField(default=True, help_text="Funds are held until the booking completes and a payout runs")),
                ("escrow_released_at", models.DateTimeField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.TextField(blank=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("refund_reason", models.TextField(blank=True)),
                ("dispute_hold", models.BooleanField(default=False, help_text="An open dispute blocks this booking from payouts")),
                ("external_dispute_ref", models.CharField(blank=True, max_length=255)),
                ("dispute_resolution", models.CharField(blank=True, choices=[("owner_favor", "Owner favor"), ("renter_favor", "Renter favor"), ("split", "Split")], max_length=20)),
                ("dispute_resolved_at", models.DateTimeField(blank=True, null=True)),
                ("version", models.PositiveIntegerField(default=1, help_text="Version for optimistic locking - incremented on each save")),
                ("booking", models.OneToOneField(help_text="Booking paid by this intent (at most one per booking)", on_delete=django.db.models.deletion.PROTECT, related_name="payment_intent", to="bookings.booking")),
            ],
            options={
                "verbose_name": "Payment Intent",
                "verbose_name_plural": "Payment Intents",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "is_in_escrow"], name="pi_status_escrow_idx"),
                    models.Index(fields=["status", "updated_at"], name="pi_status_updated_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("refunded_amount__lte", models.F("total_amount"))), name="pi_refund_within_total"),
                    models.CheckConstraint(condition=models.Q(("refunded_amount__gte", 0), ("rental_amount__gte", 0), ("platform_fee_amount__gte", 0), ("owner_amount__gte", 0), ("total_amount__gte", 0)), name="pi_amounts_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BondHold",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("external_ref", models.CharField(blank=True, help_text="Processor PaymentIntent ID for the authorization", max_length=255, null=True, unique=True)),
                ("payment_method_ref", models.CharField(blank=True, max_length=255)),
                ("currency", models.CharField(choices=CURRENCY_CHOICES, default="NZD", max_length=3)),
                ("authorized_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("captured_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("released_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("status", django_fsm.FSMField(choices=[("AUTHORIZED", "Authorized"), ("PARTIALLY_CAPTURED", "Partially Captured"), ("CAPTURED", "Captured"), ("RELEASED", "Released"), ("EXPIRED", "Expired")], db_index=True, default="AUTHORIZED", help_text="Current state of the bond hold (managed by FSM)", max_length=50, protected=True)),
                ("authorized_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("expires_at", models.DateTimeField(db_index=True)),
                ("captured_at", models.DateTimeField(blank=True, null=True)),
                ("released_at", models.DateTimeField(blank=True, null=True)),
                ("capture_reason", models.TextField(blank=True)),
                ("version", models.PositiveIntegerField(default=1, help_text="Version for optimistic locking - incremented on each save")),
                ("booking", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="bond_holds", to="bookings.booking")),
                ("captured_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="captured_bond_holds", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Bond Hold",
                "verbose_name_plural": "Bond Holds",
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["status", "expires_at"], name="bond_status_expiry_idx")],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("captured_amount__lte", models.F("authorized_amount"))), name="bond_capture_within_authorized"),
                    models.CheckConstraint(condition=models.Q(("authorized_amount__gt", 0)), name="bond_authorized_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payout",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("external_transfer_ref", models.CharField(blank=True, help_text="Processor transfer ID (tr_xxx)", max_length=255, null=True, unique=True)),
                ("currency", models.CharField(choices=CURRENCY_CHOICES, default="NZD", max_length=3)),
                ("gross_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("platform_fees", models.DecimalField(decimal_places=2, max_digits=12)),
                ("net_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("period_start", models.DateTimeField()),
                ("period_end", models.DateTimeField()),
                ("booking_count", models.PositiveIntegerField(default=0)),
                ("status", django_fsm.FSMField(choices=[("PENDING", "Pending"), ("PROCESSING", "Processing"), ("COMPLETED", "Completed"), ("FAILED", "Failed"), ("CANCELLED", "Cancelled")], db_index=True, default="PENDING", help_text="Current state of the payout (managed by FSM)", max_length=50, protected=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.TextField(blank=True)),
                ("version", models.PositiveIntegerField(default=1, help_text="Version for optimistic locking - incremented on each save")),
                ("owner_account", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="payouts", to="payments.ownerpayoutaccount")),
            ],
            options={
                "verbose_name": "Payout",
                "verbose_name_plural": "Payouts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["owner_account", "status"], name="payout_account_status_idx"),
                    models.Index(fields=["status", "created_at"], name="payout_status_created_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("net_amount__gt", 0)), name="payout_net_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PayoutItem",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("gross_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("platform_fee", models.DecimalField(decimal_places=2, max_digits=12)),
                ("net_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("booking", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="payout_items", to="bookings.booking")),
                ("payout", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="items", to="payments.payout")),
            ],
            options={
                "verbose_name": "Payout Item",
                "verbose_name_plural": "Payout Items",
                "ordering": ["created_at"],
                "constraints": [
                    models.UniqueConstraint(fields=("payout", "booking"), name="payout_item_unique_booking"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Transaction",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("type", models.CharField(choices=[("RENTAL_PAYMENT", "Rental Payment"), ("PLATFORM_FEE", "Platform Fee"), ("OWNER_PAYOUT", "Owner Payout"), ("REFUND", "Refund"), ("BOND_CAPTURE", "Bond Capture"), ("BOND_RELEASE", "Bond Release")], db_index=True, max_length=20)),
                ("reference_type", models.CharField(max_length=50)),
                ("reference_id", models.CharField(db_index=True, max_length=64)),
                ("currency", models.CharField(choices=CURRENCY_CHOICES, default="NZD", max_length=3)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("external_charge_ref", models.CharField(blank=True, max_length=255)),
                ("external_transfer_ref", models.CharField(blank=True, max_length=255)),
                ("description", models.TextField(blank=True)),
                ("idempotency_key", models.CharField(blank=True, help_text="Unique key to prevent duplicate entries", max_length=255, null=True, unique=True)),
                ("bond_hold", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="transactions", to="payments.bondhold")),
                ("from_user", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="outgoing_transactions", to=settings.AUTH_USER_MODEL)),
                ("payment_intent", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="transactions", to="payments.paymentintent")),
                ("payout", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="transactions", to="payments.payout")),
                ("to_user", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="incoming_transactions", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Transaction",
                "verbose_name_plural": "Transactions",
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["reference_type", "reference_id"], name="txn_reference_idx")],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount__gte", 0)), name="txn_amount_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("external_event_id", models.CharField(help_text="Processor event ID (evt_xxx) - unique constraint for idempotency", max_length=255, unique=True)),
                ("event_type", models.CharField(db_index=True, help_text="Processor event type (e.g., 'payment_intent.succeeded')", max_length=100)),
                ("payload", models.JSONField(default=dict, help_text="Full webhook payload (JSON)")),
                ("status", models.CharField(choices=[("PENDING", "Pending"), ("PROCESSED", "Processed"), ("FAILED", "Failed"), ("SKIPPED", "Skipped")], db_index=True, default="PENDING", max_length=20)),
                ("attempts", models.PositiveIntegerField(default=0, help_text="Incremented on every delivery and processing attempt")),
                ("last_error", models.TextField(blank=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "attempts"], name="webhook_status_attempts_idx"),
                    models.Index(fields=["event_type", "created_at"], name="webhook_type_created_idx"),
                ],
            },
        ),
    ]
