import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("events", "0001_initial"),
        ("stands", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="event",
            name="plan",
            field=models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="events",
                to="stands.plan",
            ),
        ),
    ]
