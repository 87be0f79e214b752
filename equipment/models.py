from django.db import models


class Equipment(models.Model):
    organizer = models.ForeignKey("events.Organizer", on_delete=models.CASCADE, related_name="equipment")
    name = models.CharField(max_length=120)
    description = models.CharField(max_length=240, blank=True)
    category = models.CharField(max_length=64, blank=True)
    unit = models.CharField(max_length=32, default="event")
    price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField(default=0)
    is_available = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name", "id"]
        constraints = [
            models.CheckConstraint(condition=models.Q(price__gte=0), name="check_equipment_price_nonnegative"),
        ]

    def __str__(self):
        return self.name


class EventEquipment(models.Model):
    """Per-event offer of a catalog item, with optional price and quantity overrides."""

    event = models.ForeignKey("events.Event", on_delete=models.CASCADE, related_name="equipment_offers")
    equipment = models.ForeignKey(Equipment, on_delete=models.CASCADE, related_name="event_offers")
    special_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    available_quantity = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["event", "equipment__name", "id"]
        constraints = [
            models.UniqueConstraint(fields=["event", "equipment"], name="uniq_equipment_offer_by_event"),
            models.CheckConstraint(
                condition=models.Q(special_price__isnull=True) | models.Q(special_price__gte=0),
                name="check_equipment_offer_price_nonnegative",
            ),
        ]

    def __str__(self):
        return f"{self.event.name} - {self.equipment.name}"

    @property
    def total_quantity(self):
        if self.available_quantity is not None:
            return self.available_quantity
        return self.equipment.quantity

    @property
    def unit_price(self):
        if self.special_price is not None:
            return self.special_price
        return self.equipment.price
