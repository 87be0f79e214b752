import logging
import secrets
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone
from django.utils.module_loading import import_string

from equipment.services import EquipmentInventory
from events.authz import Role
from events.errors import InvalidStateError, NotFoundError, WorkflowError
from events.services import pk_of, resolve
from registrations.models import Registration, RegistrationStatus

from .models import Invoice, InvoiceItem, InvoiceItemType, InvoiceStatus

logger = logging.getLogger(__name__)

DEFAULT_TAX_RATE = Decimal("0.20")
MAX_NUMBER_ATTEMPTS = 20


def _money(amount):
    return Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def tax_rate():
    return Decimal(str(getattr(settings, "EXPOHUB_TAX_RATE", DEFAULT_TAX_RATE)))


def invoice_prefix(organization_name):
    letters = [char for char in organization_name or "" if char.isascii() and char.isalpha()]
    if not letters:
        return "ORG"
    return "".join(letters[:3]).upper().ljust(3, "X")


def compute_totals(line_totals, rate):
    subtotal = _money(sum(line_totals, Decimal("0.00")))
    tax_amount = _money(subtotal * rate)
    return subtotal, tax_amount, _money(subtotal + tax_amount)


class InvoiceGenerator:
    @classmethod
    def _new_invoice_number(cls, *, prefix):
        for _ in range(MAX_NUMBER_ATTEMPTS):
            candidate = f"{prefix}-{timezone.localdate():%Y%m%d}-{secrets.randbelow(10000):04d}"
            if not Invoice.objects.filter(invoice_number=candidate).exists():
                return candidate
        raise InvalidStateError("Could not allocate a unique invoice number.", prefix=prefix)

    @classmethod
    def build_items(cls, *, registration):
        """Snapshot the billable lines of ``registration`` as unsaved ``InvoiceItem`` rows."""
        items = []
        for stand in registration.stands.order_by("number", "id"):
            items.append(
                InvoiceItem(
                    item_type=InvoiceItemType.STAND,
                    name=stand.display_name,
                    description=stand.description or f"{stand.area} m2",
                    unit_price=_money(stand.base_price),
                    quantity=1,
                    line_total=_money(stand.base_price),
                )
            )
        for allocation in registration.equipment_allocations.select_related("equipment").order_by("position", "id"):
            price = _money(EquipmentInventory.unit_price(equipment=allocation.equipment, event=registration.event_id))
            items.append(
                InvoiceItem(
                    item_type=InvoiceItemType.EQUIPMENT,
                    name=allocation.equipment.name,
                    description=allocation.equipment.description,
                    unit_price=price,
                    quantity=allocation.quantity,
                    line_total=_money(price * allocation.quantity),
                )
            )
        return items

    @classmethod
    @transaction.atomic
    def generate(cls, *, registration):
        registration = resolve(Registration, registration, for_update=True)
        if registration.status != RegistrationStatus.COMPLETED:
            raise InvalidStateError(
                "Invoices can only be generated for completed registrations.",
                registration_id=registration.id,
                status=registration.status,
            )
        existing = Invoice.objects.filter(registration=registration).first()
        if existing:
            return existing

        event = registration.event
        items = cls.build_items(registration=registration)
        rate = tax_rate()
        subtotal, tax_amount, total = compute_totals([item.line_total for item in items], rate)
        prefix = invoice_prefix(event.organizer.organization_name)

        invoice = None
        for _ in range(MAX_NUMBER_ATTEMPTS):
            try:
                with transaction.atomic():
                    invoice = Invoice.objects.create(
                        invoice_number=cls._new_invoice_number(prefix=prefix),
                        registration=registration,
                        exhibitor=registration.exhibitor,
                        organizer=event.organizer,
                        event=event,
                        subtotal=subtotal,
                        tax_rate=rate,
                        tax_amount=tax_amount,
                        total=total,
                        status=InvoiceStatus.PENDING,
                    )
                break
            except IntegrityError:
                # Lost a race on invoice_number; draw another.
                continue
        if invoice is None:
            raise InvalidStateError("Could not allocate a unique invoice number.", prefix=prefix)

        for item in items:
            item.invoice = invoice
        InvoiceItem.objects.bulk_create(items)
        logger.info(
            "Invoice %s generated for registration %s: subtotal=%s tax=%s total=%s",
            invoice.invoice_number,
            registration.id,
            subtotal,
            tax_amount,
            total,
        )
        transaction.on_commit(lambda: cls._render(invoice))
        return invoice

    @classmethod
    def _render(cls, invoice):
        renderer_path = getattr(settings, "EXPOHUB_INVOICE_RENDERER", None)
        if not renderer_path:
            return None
        try:
            renderer = import_string(renderer_path)
            with transaction.atomic():
                document_path = renderer(invoice)
                if document_path:
                    invoice.document_path = str(document_path)
                    invoice.save(update_fields=["document_path"])
        except Exception:  # noqa: BLE001
            logger.exception("Invoice %s was saved but its document could not be rendered", invoice.invoice_number)
            return None
        return invoice.document_path


class InvoiceService:
    @classmethod
    def get(cls, invoice_id):
        return resolve(Invoice, invoice_id, queryset=Invoice.objects.select_related("exhibitor", "organizer", "event"))

    @classmethod
    def get_for_registration(cls, registration):
        invoice = (
            Invoice.objects.select_related("exhibitor", "organizer", "event")
            .filter(registration_id=pk_of(registration))
            .first()
        )
        if invoice is None:
            raise NotFoundError(
                f"No invoice exists for registration {pk_of(registration)}.",
                entity="Invoice",
                registration_id=pk_of(registration),
            )
        return invoice

    @classmethod
    def list_for_exhibitor(cls, exhibitor):
        return Invoice.objects.filter(exhibitor_id=pk_of(exhibitor)).prefetch_related("items")

    @classmethod
    def list_for_organizer(cls, organizer):
        return Invoice.objects.filter(organizer_id=pk_of(organizer)).prefetch_related("items")

    @classmethod
    def can_view(cls, principal, invoice):
        if principal.is_admin:
            return True
        if principal.role == Role.EXHIBITOR:
            return invoice.exhibitor.user_id == principal.user_id
        return invoice.organizer.user_id == principal.user_id

    @classmethod
    @transaction.atomic
    def update_status(cls, *, invoice, status):
        if status not in InvoiceStatus.values:
            raise ValidationError(f"Unknown invoice status: {status!r}.")
        invoice = resolve(Invoice, invoice, for_update=True)
        if invoice.status == status:
            return invoice
        if invoice.status == InvoiceStatus.CANCELLED:
            raise InvalidStateError(
                f"Invoice {invoice.invoice_number} is cancelled.",
                invoice_id=invoice.id,
                status=invoice.status,
                requested=status,
            )
        invoice.status = status
        invoice.paid_at = timezone.now() if status == InvoiceStatus.PAID else None
        invoice.save(update_fields=["status", "paid_at"])
        logger.info("Invoice %s marked %s", invoice.invoice_number, status)
        return invoice

    @classmethod
    def mark_paid(cls, *, invoice):
        return cls.update_status(invoice=invoice, status=InvoiceStatus.PAID)

    @classmethod
    def generate_missing(cls):
        """Generate invoices for completed registrations that do not have one yet.

        Returns ``(generated, failed)`` lists of invoices and registration ids.
        """
        generated = []
        failed = []
        pending = Registration.objects.filter(status=RegistrationStatus.COMPLETED, invoice__isnull=True).order_by("id")
        for registration_id in pending.values_list("id", flat=True):
            try:
                generated.append(InvoiceGenerator.generate(registration=registration_id))
            except (WorkflowError, DatabaseError):
                logger.exception("Could not generate the invoice for registration %s", registration_id)
                failed.append(registration_id)
        return generated, failed
