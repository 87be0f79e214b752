from django.conf import settings
from django.db import models
from django.utils import timezone

from events.errors import InvalidStateError


class RegistrationStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


ALLOWED_TRANSITIONS = {
    RegistrationStatus.PENDING: {
        RegistrationStatus.APPROVED,
        RegistrationStatus.REJECTED,
        RegistrationStatus.CANCELLED,
    },
    RegistrationStatus.APPROVED: {RegistrationStatus.COMPLETED, RegistrationStatus.CANCELLED},
    RegistrationStatus.COMPLETED: {RegistrationStatus.CANCELLED},
    RegistrationStatus.REJECTED: set(),
    RegistrationStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset({RegistrationStatus.REJECTED, RegistrationStatus.CANCELLED})
CANCELLABLE_STATUSES = frozenset(
    {RegistrationStatus.PENDING, RegistrationStatus.APPROVED, RegistrationStatus.COMPLETED}
)


class Registration(models.Model):
    exhibitor = models.ForeignKey("events.Exhibitor", on_delete=models.CASCADE, related_name="registrations")
    event = models.ForeignKey("events.Event", on_delete=models.CASCADE, related_name="registrations")
    status = models.CharField(max_length=16, choices=RegistrationStatus.choices, default=RegistrationStatus.PENDING)
    participation_note = models.TextField(blank=True)
    stands = models.ManyToManyField("stands.Stand", blank=True, related_name="selected_by")
    stand_selection_completed = models.BooleanField(default=False)
    equipment_selection_completed = models.BooleanField(default=False)
    approval_date = models.DateTimeField(null=True, blank=True)
    rejection_date = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True)
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reviewed_registrations",
    )
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="cancelled_registrations",
    )
    cancelled_by_role = models.CharField(max_length=16, blank=True)
    cancellation_reason = models.TextField(blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["exhibitor", "event"],
                condition=~models.Q(status="cancelled"),
                name="uniq_active_registration_by_exhibitor_event",
            ),
        ]
        indexes = [
            models.Index(fields=["event", "status"], name="registration_event_status_idx"),
        ]

    def __str__(self):
        return f"{self.exhibitor} @ {self.event} ({self.status})"

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    @property
    def selections_completed(self):
        return self.stand_selection_completed and self.equipment_selection_completed

    def can_transition_to(self, status):
        return status in ALLOWED_TRANSITIONS.get(self.status, set())

    def transition_to(self, status):
        if not self.can_transition_to(status):
            raise InvalidStateError(
                f"Cannot move a {self.get_status_display().lower()} registration to {status}.",
                registration_id=self.pk,
                status=self.status,
                requested=status,
            )
        now = timezone.now()
        if status == RegistrationStatus.APPROVED:
            self.approval_date = now
        elif status == RegistrationStatus.REJECTED:
            self.rejection_date = now
        elif status == RegistrationStatus.CANCELLED:
            self.cancelled_at = now
        self.status = status


class EquipmentAllocation(models.Model):
    registration = models.ForeignKey(Registration, on_delete=models.CASCADE, related_name="equipment_allocations")
    equipment = models.ForeignKey("equipment.Equipment", on_delete=models.PROTECT, related_name="allocations")
    quantity = models.PositiveIntegerField()
    position = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["registration", "position", "id"]
        constraints = [
            models.UniqueConstraint(fields=["registration", "equipment"], name="uniq_allocation_by_registration"),
            models.CheckConstraint(condition=models.Q(quantity__gte=1), name="check_allocation_quantity_positive"),
        ]

    def __str__(self):
        return f"{self.equipment} x{self.quantity}"
