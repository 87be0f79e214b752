import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("events", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Plan",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=160)),
                ("description", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "organizer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="plans",
                        to="events.organizer",
                    ),
                ),
            ],
            options={
                "ordering": ["name", "id"],
            },
        ),
        migrations.CreateModel(
            name="Stand",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("number", models.CharField(max_length=32)),
                (
                    "stand_type",
                    models.CharField(
                        choices=[
                            ("standard", "Standard"),
                            ("premium", "Premium"),
                            ("corner", "Corner"),
                            ("custom", "Custom"),
                        ],
                        default="standard",
                        max_length=16,
                    ),
                ),
                ("area", models.DecimalField(decimal_places=2, default=0, max_digits=8)),
                ("base_price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("description", models.TextField(blank=True)),
                (
                    "status",
                    models.CharField(
                        choices=[("available", "Available"), ("reserved", "Reserved")],
                        default="available",
                        max_length=16,
                    ),
                ),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "plan",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="stands",
                        to="stands.plan",
                    ),
                ),
            ],
            options={
                "ordering": ["plan", "number", "id"],
                "indexes": [models.Index(fields=["plan", "status"], name="stand_plan_status_idx")],
                "constraints": [
                    models.UniqueConstraint(fields=("plan", "number"), name="uniq_stand_number_by_plan"),
                    models.CheckConstraint(
                        condition=models.Q(("base_price__gte", 0)),
                        name="check_stand_price_nonnegative",
                    ),
                ],
            },
        ),
    ]
