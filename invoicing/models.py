from django.db import models


class InvoiceStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    CANCELLED = "cancelled", "Cancelled"


class InvoiceItemType(models.TextChoices):
    STAND = "stand", "Stand"
    EQUIPMENT = "equipment", "Equipment"


class Invoice(models.Model):
    invoice_number = models.CharField(max_length=32, unique=True)
    registration = models.OneToOneField(
        "registrations.Registration",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="invoice",
    )
    exhibitor = models.ForeignKey("events.Exhibitor", on_delete=models.PROTECT, related_name="invoices")
    organizer = models.ForeignKey("events.Organizer", on_delete=models.PROTECT, related_name="invoices")
    event = models.ForeignKey("events.Event", on_delete=models.PROTECT, related_name="invoices")
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    tax_rate = models.DecimalField(max_digits=5, decimal_places=4)
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2)
    total = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=16, choices=InvoiceStatus.choices, default=InvoiceStatus.PENDING)
    document_path = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    paid_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.CheckConstraint(condition=models.Q(subtotal__gte=0), name="check_invoice_subtotal_nonnegative"),
            models.CheckConstraint(condition=models.Q(total__gte=0), name="check_invoice_total_nonnegative"),
        ]
        indexes = [
            models.Index(fields=["exhibitor", "created_at"], name="invoice_exhibitor_created_idx"),
            models.Index(fields=["organizer", "created_at"], name="invoice_organizer_created_idx"),
        ]

    def __str__(self):
        return self.invoice_number


class InvoiceItem(models.Model):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="items")
    item_type = models.CharField(max_length=16, choices=InvoiceItemType.choices)
    name = models.CharField(max_length=160)
    description = models.TextField(blank=True)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField(default=1)
    line_total = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gt=0), name="check_invoice_item_qty_positive"),
            models.CheckConstraint(
                condition=models.Q(unit_price__gte=0),
                name="check_invoice_item_unit_price_nonnegative",
            ),
        ]

    def __str__(self):
        return f"{self.name} x{self.quantity}"
