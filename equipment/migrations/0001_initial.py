import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("events", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Equipment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=120)),
                ("description", models.CharField(blank=True, max_length=240)),
                ("category", models.CharField(blank=True, max_length=64)),
                ("unit", models.CharField(default="event", max_length=32)),
                ("price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("quantity", models.PositiveIntegerField(default=0)),
                ("is_available", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "organizer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="equipment",
                        to="events.organizer",
                    ),
                ),
            ],
            options={
                "ordering": ["name", "id"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("price__gte", 0)),
                        name="check_equipment_price_nonnegative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="EventEquipment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("special_price", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("available_quantity", models.PositiveIntegerField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "equipment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="event_offers",
                        to="equipment.equipment",
                    ),
                ),
                (
                    "event",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="equipment_offers",
                        to="events.event",
                    ),
                ),
            ],
            options={
                "ordering": ["event", "equipment__name", "id"],
                "constraints": [
                    models.UniqueConstraint(fields=("event", "equipment"), name="uniq_equipment_offer_by_event"),
                    models.CheckConstraint(
                        condition=models.Q(("special_price__isnull", True), ("special_price__gte", 0), _connector="OR"),
                        name="check_equipment_offer_price_nonnegative",
                    ),
                ],
            },
        ),
    ]
