from django.db import models


class StandStatus(models.TextChoices):
    AVAILABLE = "available", "Available"
    RESERVED = "reserved", "Reserved"


class StandType(models.TextChoices):
    STANDARD = "standard", "Standard"
    PREMIUM = "premium", "Premium"
    CORNER = "corner", "Corner"
    CUSTOM = "custom", "Custom"


class Plan(models.Model):
    organizer = models.ForeignKey("events.Organizer", on_delete=models.CASCADE, related_name="plans")
    name = models.CharField(max_length=160)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name", "id"]

    def __str__(self):
        return self.name


class Stand(models.Model):
    plan = models.ForeignKey(Plan, on_delete=models.CASCADE, related_name="stands")
    number = models.CharField(max_length=32)
    stand_type = models.CharField(max_length=16, choices=StandType.choices, default=StandType.STANDARD)
    area = models.DecimalField(max_digits=8, decimal_places=2, default=0)
    base_price = models.DecimalField(max_digits=12, decimal_places=2)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=16, choices=StandStatus.choices, default=StandStatus.AVAILABLE)
    reservation = models.ForeignKey(
        "registrations.Registration",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reserved_stands",
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["plan", "number", "id"]
        constraints = [
            models.UniqueConstraint(fields=["plan", "number"], name="uniq_stand_number_by_plan"),
            models.CheckConstraint(condition=models.Q(base_price__gte=0), name="check_stand_price_nonnegative"),
        ]
        indexes = [
            models.Index(fields=["plan", "status"], name="stand_plan_status_idx"),
        ]

    def __str__(self):
        return f"{self.plan.name} - {self.number}"

    @property
    def display_name(self):
        return f"{self.get_stand_type_display()} Stand #{self.number}"
