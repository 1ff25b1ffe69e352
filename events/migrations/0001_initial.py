import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Event",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("slug", models.SlugField(max_length=100, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("kind", models.CharField(choices=[("techelons", "Techelons"), ("workshop", "Workshop")], db_index=True, default="techelons", max_length=32)),
                ("category", models.CharField(blank=True, max_length=100)),
                ("description", models.TextField(blank=True)),
                ("is_team_event", models.BooleanField(default=False)),
                ("team_size_min", models.PositiveSmallIntegerField(default=1)),
                ("team_size_max", models.PositiveSmallIntegerField(default=1)),
                ("registration_status", models.CharField(choices=[("open", "Open"), ("closed", "Closed"), ("coming_soon", "Coming soon")], default="open", max_length=32)),
                ("whatsapp_group", models.URLField(blank=True, max_length=500)),
                ("requires_college_id", models.BooleanField(default=True)),
                ("email_policy", models.CharField(choices=[("academic", "Academic domains only"), ("any", "Any valid address")], default="any", max_length=16)),
                ("registry_backend", models.CharField(choices=[("database", "Database"), ("sheets", "Google Sheets")], default="database", max_length=16)),
                ("file_sink", models.CharField(choices=[("database", "Database"), ("drive", "Google Drive")], default="database", max_length=16)),
                ("sheet_name", models.CharField(blank=True, help_text="Spreadsheet tab; defaults to the slug", max_length=100)),
                ("venue", models.CharField(blank=True, max_length=255)),
                ("fest_day", models.CharField(blank=True, max_length=32)),
                ("date", models.CharField(blank=True, max_length=64)),
                ("time", models.CharField(blank=True, max_length=64)),
                ("email_subject", models.CharField(blank=True, max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ["kind", "name"],
                "indexes": [
                    models.Index(fields=["kind", "registration_status"], name="event_kind_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Festival",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(default="Techelons", max_length=255)),
                ("registration_enabled", models.BooleanField(default=True)),
                ("default_whatsapp_group", models.URLField(blank=True, max_length=500)),
                ("info", models.JSONField(blank=True, default=dict)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="Registration",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("event_name", models.CharField(max_length=255)),
                ("is_team_event", models.BooleanField(default=False)),
                ("team_name", models.CharField(blank=True, max_length=255)),
                ("main_participant", models.JSONField(default=dict)),
                ("main_email", models.EmailField(max_length=254)),
                ("main_phone", models.CharField(max_length=15)),
                ("team_members", models.JSONField(blank=True, default=list)),
                ("college_id_url", models.CharField(blank=True, max_length=1024)),
                ("query", models.TextField(blank=True)),
                ("registration_date", models.DateTimeField(auto_now_add=True)),
                ("event", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="registrations", to="events.event")),
            ],
            options={
                "ordering": ["-registration_date"],
                "indexes": [
                    models.Index(fields=["event", "registration_date"], name="reg_event_date_idx"),
                    models.Index(fields=["main_email"], name="reg_main_email_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("event", "main_email"), name="reg_unique_event_email"),
                    models.UniqueConstraint(fields=("event", "main_phone"), name="reg_unique_event_phone"),
                ],
            },
        ),
    ]
