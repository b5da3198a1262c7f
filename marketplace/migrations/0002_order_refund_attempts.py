from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("marketplace", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="order",
            name="refund_attempts",
            field=models.PositiveSmallIntegerField(default=0),
        ),
    ]
