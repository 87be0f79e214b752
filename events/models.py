from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone


class EventStatus(models.TextChoices):
    DRAFT = "draft", "Draft"
    PUBLISHED = "published", "Published"
    CANCELLED = "cancelled", "Cancelled"
    COMPLETED = "completed", "Completed"


class Organizer(models.Model):
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="organizer_profile")
    organization_name = models.CharField(max_length=160)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["organization_name", "id"]

    def __str__(self):
        return self.organization_name


class Exhibitor(models.Model):
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="exhibitor_profile")
    company_name = models.CharField(max_length=160)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["company_name", "id"]

    def __str__(self):
        return self.company_name

    @property
    def contact_email(self):
        return self.user.email


class Event(models.Model):
    organizer = models.ForeignKey(Organizer, on_delete=models.PROTECT, related_name="events")
    name = models.CharField(max_length=160)
    description = models.TextField(blank=True)
    start_date = models.DateTimeField()
    end_date = models.DateTimeField()
    registration_deadline = models.DateTimeField()
    plan = models.ForeignKey(
        "stands.Plan",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="events",
    )
    status = models.CharField(max_length=16, choices=EventStatus.choices, default=EventStatus.DRAFT)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-start_date", "-id"]
        indexes = [
            models.Index(fields=["status", "start_date"], name="event_status_start_idx"),
            models.Index(fields=["organizer", "start_date"], name="event_organizer_start_idx"),
        ]

    def __str__(self):
        return self.name

    def clean(self):
        if self.start_date and self.end_date and self.start_date >= self.end_date:
            raise ValidationError({"end_date": "The event must end after it starts."})
        if self.registration_deadline and self.start_date and self.registration_deadline > self.start_date:
            raise ValidationError({"registration_deadline": "Registrations must close before the event starts."})

    @property
    def organizer_user_id(self):
        return self.organizer.user_id

    @property
    def is_open_for_registration(self):
        return self.status == EventStatus.PUBLISHED and timezone.now() <= self.registration_deadline
