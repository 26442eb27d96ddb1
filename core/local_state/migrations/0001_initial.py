from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="LocalStateRecord",
            fields=[
                ("key", models.CharField(max_length=255, primary_key=True, serialize=False)),
                ("document", models.JSONField()),
                ("saved_at", models.DateTimeField()),
            ],
            options={
                "db_table": "pos_local_state",
                "ordering": ["key"],
            },
        ),
    ]
