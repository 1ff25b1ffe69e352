# websters-backend/events/models.py
from django.db import models


class Event(models.Model):
    KIND_TECHELONS = "techelons"
    KIND_WORKSHOP = "workshop"

    KIND_CHOICES = [
        (KIND_TECHELONS, "Techelons"),
        (KIND_WORKSHOP, "Workshop"),
    ]

    STATUS_OPEN = "open"
    STATUS_CLOSED = "closed"
    STATUS_COMING_SOON = "coming_soon"

    STATUS_CHOICES = [
        (STATUS_OPEN, "Open"),
        (STATUS_CLOSED, "Closed"),
        (STATUS_COMING_SOON, "Coming soon"),
    ]

    EMAIL_POLICY_ACADEMIC = "academic"
    EMAIL_POLICY_ANY = "any"

    EMAIL_POLICY_CHOICES = [
        (EMAIL_POLICY_ACADEMIC, "Academic domains only"),
        (EMAIL_POLICY_ANY, "Any valid address"),
    ]

    REGISTRY_DATABASE = "database"
    REGISTRY_SHEETS = "sheets"

    REGISTRY_CHOICES = [
        (REGISTRY_DATABASE, "Database"),
        (REGISTRY_SHEETS, "Google Sheets"),
    ]

    SINK_DATABASE = "database"
    SINK_DRIVE = "drive"

    SINK_CHOICES = [
        (SINK_DATABASE, "Database"),
        (SINK_DRIVE, "Google Drive"),
    ]

    # Public identifier used in URLs and stored on every registration
    slug = models.SlugField(max_length=100, unique=True)
    name = models.CharField(max_length=255)
    kind = models.CharField(max_length=32, choices=KIND_CHOICES, default=KIND_TECHELONS, db_index=True)
    category = models.CharField(max_length=100, blank=True)
    description = models.TextField(blank=True)

    is_team_event = models.BooleanField(default=False)
    team_size_min = models.PositiveSmallIntegerField(default=1)
    team_size_max = models.PositiveSmallIntegerField(default=1)

    registration_status = models.CharField(max_length=32, choices=STATUS_CHOICES, default=STATUS_OPEN)
    whatsapp_group = models.URLField(max_length=500, blank=True)
    requires_college_id = models.BooleanField(default=True)
    email_policy = models.CharField(max_length=16, choices=EMAIL_POLICY_CHOICES, default=EMAIL_POLICY_ANY)

    registry_backend = models.CharField(max_length=16, choices=REGISTRY_CHOICES, default=REGISTRY_DATABASE)
    file_sink = models.CharField(max_length=16, choices=SINK_CHOICES, default=SINK_DATABASE)
    sheet_name = models.CharField(max_length=100, blank=True, help_text="Spreadsheet tab; defaults to the slug")

    venue = models.CharField(max_length=255, blank=True)
    fest_day = models.CharField(max_length=32, blank=True)
    date = models.CharField(max_length=64, blank=True)
    time = models.CharField(max_length=64, blank=True)
    email_subject = models.CharField(max_length=255, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["kind", "name"]
        indexes = [
            models.Index(
                fields=['kind', 'registration_status'],
                name='event_kind_status_idx',
            ),
        ]

    def __str__(self):
        return self.name

    @property
    def is_open(self):
        return self.registration_status == self.STATUS_OPEN

    @property
    def tab_name(self):
        return self.sheet_name or self.slug

    @property
    def team_size(self):
        return {"min": self.team_size_min, "max": self.team_size_max}


class Festival(models.Model):
    """Site-wide fest settings. A single row, fetched with Festival.load()."""
    name = models.CharField(max_length=255, default="Techelons")
    registration_enabled = models.BooleanField(default=True)
    default_whatsapp_group = models.URLField(max_length=500, blank=True)
    info = models.JSONField(default=dict, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    @classmethod
    def load(cls):
        festival, _ = cls.objects.get_or_create(pk=1)
        return festival


class Registration(models.Model):
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="registrations")
    # Snapshot; the event may be renamed later
    event_name = models.CharField(max_length=255)
    is_team_event = models.BooleanField(default=False)
    team_name = models.CharField(max_length=255, blank=True)

    main_participant = models.JSONField(default=dict)
    main_email = models.EmailField(max_length=254)
    main_phone = models.CharField(max_length=15)
    team_members = models.JSONField(default=list, blank=True)

    college_id_url = models.CharField(max_length=1024, blank=True)
    query = models.TextField(blank=True)
    registration_date = models.DateTimeField(auto_now_add=True, editable=False)

    class Meta:
        ordering = ["-registration_date"]
        constraints = [
            models.UniqueConstraint(fields=['event', 'main_email'], name='reg_unique_event_email'),
            models.UniqueConstraint(fields=['event', 'main_phone'], name='reg_unique_event_phone'),
        ]
        indexes = [
            models.Index(
                fields=['event', 'registration_date'],
                name='reg_event_date_idx',
            ),
            models.Index(
                fields=['main_email'],
                name='reg_main_email_idx',
            ),
        ]

    def __str__(self):
        return f"{self.main_participant.get('name', self.main_email)} - {self.event_name}"

    @property
    def event_slug(self):
        return self.event.slug

    def participants(self):
        return [self.main_participant] + list(self.team_members or [])
