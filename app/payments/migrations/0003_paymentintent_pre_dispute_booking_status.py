from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0002_add_celery_beat_schedules"),
    ]

    operations = [
        migrations.AddField(
            model_name="paymentintent",
            name="pre_dispute_booking_status",
            field=models.CharField(
                blank=True,
                help_text="Booking status restored when the dispute is resolved",
                max_length=20,
            ),
        ),
    ]
