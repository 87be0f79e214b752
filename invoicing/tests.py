import shutil
import tempfile
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.core.exceptions import ValidationError
from django.core.management import CommandError, call_command
from django.db import transaction
from django.test import TestCase, override_settings
from django.urls import reverse

from events.errors import InvalidStateError, NotFoundError
from events.testing import WorkflowFixtures
from registrations.models import EquipmentAllocation, Registration, RegistrationStatus
from stands.services import StandInventory

from .models import Invoice, InvoiceItemType, InvoiceStatus
from .services import InvoiceGenerator, InvoiceService, compute_totals, invoice_prefix


def failing_renderer(invoice):
    raise OSError("read-only filesystem")


def fixed_path_renderer(invoice):
    return f"documents/{invoice.invoice_number}.pdf"


class InvoiceMathTests(TestCase):
    def test_tax_and_total(self):
        subtotal, tax, total = compute_totals([Decimal("600.00"), Decimal("400.00")], Decimal("0.20"))
        self.assertEqual(subtotal, Decimal("1000.00"))
        self.assertEqual(tax, Decimal("200.00"))
        self.assertEqual(total, Decimal("1200.00"))

    def test_half_up_rounding(self):
        _, tax, total = compute_totals([Decimal("0.125")], Decimal("0.20"))
        self.assertEqual(tax, Decimal("0.03"))
        self.assertEqual(total, Decimal("0.16"))

    def test_prefix(self):
        self.assertEqual(invoice_prefix("Acme Expo"), "ACM")
        self.assertEqual(invoice_prefix("9 to 5"), "TOX")
        self.assertEqual(invoice_prefix("Él"), "LXX")
        self.assertEqual(invoice_prefix("2024"), "ORG")
        self.assertEqual(invoice_prefix(""), "ORG")


class InvoiceGeneratorTests(WorkflowFixtures, TestCase):
    def setUp(self):
        self.organizer = self._create_organizer(organization_name="Acme Expo")
        self.plan, (self.s1, self.s2, _) = self._create_plan(self.organizer, base_price=Decimal("400.00"))
        self.event = self._create_event(self.organizer, plan=self.plan)
        self.exhibitor = self._create_exhibitor()
        self.chair = self._offer_equipment(
            self.organizer,
            self.event,
            name="Chair",
            price=Decimal("25.00"),
            special_price=Decimal("20.00"),
        )
        self.registration = Registration.objects.create(
            exhibitor=self.exhibitor,
            event=self.event,
            status=RegistrationStatus.APPROVED,
            stand_selection_completed=True,
            equipment_selection_completed=True,
        )
        for stand in (self.s1, self.s2):
            StandInventory.reserve(stand_id=stand.id, registration=self.registration)
        self.registration.stands.set([self.s1, self.s2])
        EquipmentAllocation.objects.create(registration=self.registration, equipment=self.chair, quantity=10)

    def _complete(self):
        Registration.objects.filter(pk=self.registration.pk).update(status=RegistrationStatus.COMPLETED)

    def test_requires_completed_registration(self):
        with self.assertRaises(InvalidStateError):
            InvoiceGenerator.generate(registration=self.registration)
        self.assertFalse(Invoice.objects.exists())

    def test_invoice_lines_and_totals(self):
        self._complete()
        invoice = InvoiceGenerator.generate(registration=self.registration.id)

        self.assertRegex(invoice.invoice_number, r"^ACM-\d{8}-\d{4}$")
        self.assertEqual(invoice.subtotal, Decimal("1000.00"))
        self.assertEqual(invoice.tax_rate, Decimal("0.20"))
        self.assertEqual(invoice.tax_amount, Decimal("200.00"))
        self.assertEqual(invoice.total, Decimal("1200.00"))
        self.assertEqual(invoice.status, InvoiceStatus.PENDING)
        self.assertEqual(invoice.organizer, self.organizer)

        items = list(invoice.items.all())
        self.assertEqual([item.item_type for item in items], [InvoiceItemType.STAND, InvoiceItemType.STAND, InvoiceItemType.EQUIPMENT])
        self.assertEqual(items[0].name, "Standard Stand #S1")
        self.assertEqual(items[2].unit_price, Decimal("20.00"))
        self.assertEqual(items[2].line_total, Decimal("200.00"))

    def test_generate_is_idempotent(self):
        self._complete()
        first = InvoiceGenerator.generate(registration=self.registration)
        second = InvoiceGenerator.generate(registration=self.registration)
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(Invoice.objects.count(), 1)

    @override_settings(EXPOHUB_TAX_RATE=Decimal("0.10"))
    def test_tax_rate_setting(self):
        self._complete()
        invoice = InvoiceGenerator.generate(registration=self.registration)
        self.assertEqual(invoice.total, Decimal("1100.00"))

    def test_number_collision_draws_again(self):
        self._complete()
        with mock.patch("invoicing.services.secrets.randbelow", side_effect=[42, 42, 43]):
            first = Invoice.objects.create(
                invoice_number=InvoiceGenerator._new_invoice_number(prefix="ACM"),
                exhibitor=self.exhibitor,
                organizer=self.organizer,
                event=self.event,
                subtotal=Decimal("0"),
                tax_rate=Decimal("0.20"),
                tax_amount=Decimal("0"),
                total=Decimal("0"),
            )
            invoice = InvoiceGenerator.generate(registration=self.registration)
        self.assertTrue(first.invoice_number.endswith("-0042"))
        self.assertTrue(invoice.invoice_number.endswith("-0043"))

    @override_settings(EXPOHUB_INVOICE_RENDERER="invoicing.tests.fixed_path_renderer")
    def test_renderer_sets_document_path(self):
        self._complete()
        with self.captureOnCommitCallbacks(execute=True):
            invoice = InvoiceGenerator.generate(registration=self.registration)
        invoice.refresh_from_db()
        self.assertEqual(invoice.document_path, f"documents/{invoice.invoice_number}.pdf")

    @override_settings(EXPOHUB_INVOICE_RENDERER="invoicing.tests.failing_renderer")
    def test_renderer_failure_keeps_invoice(self):
        self._complete()
        with self.assertLogs("invoicing.services", level="ERROR"):
            with self.captureOnCommitCallbacks(execute=True):
                invoice = InvoiceGenerator.generate(registration=self.registration)
        self.assertTrue(Invoice.objects.filter(pk=invoice.pk).exists())
        self.assertEqual(invoice.document_path, "")

    @override_settings(EXPOHUB_INVOICE_RENDERER="invoicing.tests.fixed_path_renderer")
    def test_renderer_waits_for_commit(self):
        self._complete()
        with mock.patch("invoicing.tests.fixed_path_renderer") as renderer:
            with self.captureOnCommitCallbacks(execute=True) as callbacks:
                with self.assertRaises(InvalidStateError):
                    with transaction.atomic():
                        InvoiceGenerator.generate(registration=self.registration)
                        raise InvalidStateError("completion aborted")
        self.assertEqual(callbacks, [])
        renderer.assert_not_called()
        self.assertFalse(Invoice.objects.exists())

    def test_text_renderer_writes_document(self):
        media_root = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, media_root, True)
        self._complete()
        with override_settings(
            MEDIA_ROOT=media_root,
            EXPOHUB_INVOICE_RENDERER="invoicing.rendering.render_invoice_text",
        ):
            with self.captureOnCommitCallbacks(execute=True):
                invoice = InvoiceGenerator.generate(registration=self.registration)
        self.assertTrue(invoice.document_path.startswith("invoices/ACM-"))
        with open(f"{media_root}/{invoice.document_path}", encoding="utf-8") as handle:
            content = handle.read()
        self.assertIn("Standard Stand #S1", content)
        self.assertIn("1200.00", content)


class InvoiceServiceTests(WorkflowFixtures, TestCase):
    def setUp(self):
        self.organizer = self._create_organizer()
        self.plan, (self.s1, *_) = self._create_plan(self.organizer)
        self.event = self._create_event(self.organizer, plan=self.plan)
        self.exhibitor = self._create_exhibitor()
        self.registration = Registration.objects.create(
            exhibitor=self.exhibitor,
            event=self.event,
            status=RegistrationStatus.COMPLETED,
            stand_selection_completed=True,
            equipment_selection_completed=True,
        )
        self.registration.stands.set([self.s1])

    def test_lookups(self):
        invoice = InvoiceGenerator.generate(registration=self.registration)
        self.assertEqual(InvoiceService.get(invoice.id), invoice)
        self.assertEqual(InvoiceService.get_for_registration(self.registration), invoice)
        self.assertEqual(list(InvoiceService.list_for_exhibitor(self.exhibitor)), [invoice])
        self.assertEqual(list(InvoiceService.list_for_organizer(self.organizer)), [invoice])
        with self.assertRaises(NotFoundError):
            InvoiceService.get(999999)
        with self.assertRaises(NotFoundError):
            InvoiceService.get_for_registration(999999)

    def test_mark_paid_is_idempotent(self):
        invoice = InvoiceGenerator.generate(registration=self.registration)
        invoice = InvoiceService.mark_paid(invoice=invoice)
        paid_at = invoice.paid_at
        self.assertEqual(invoice.status, InvoiceStatus.PAID)
        self.assertIsNotNone(paid_at)
        self.assertEqual(InvoiceService.mark_paid(invoice=invoice.id).paid_at, paid_at)

    def test_cancelled_invoice_cannot_be_paid(self):
        invoice = InvoiceGenerator.generate(registration=self.registration)
        InvoiceService.update_status(invoice=invoice, status=InvoiceStatus.CANCELLED)
        with self.assertRaises(InvalidStateError):
            InvoiceService.mark_paid(invoice=invoice)
        with self.assertRaises(ValidationError):
            InvoiceService.update_status(invoice=invoice, status="refunded")

    def test_generate_missing(self):
        other = Registration.objects.create(
            exhibitor=self._create_exhibitor("two", "Two"),
            event=self.event,
            status=RegistrationStatus.COMPLETED,
        )
        InvoiceGenerator.generate(registration=self.registration)

        generated, failed = InvoiceService.generate_missing()
        self.assertEqual([invoice.registration_id for invoice in generated], [other.id])
        self.assertEqual(failed, [])
        self.assertEqual(InvoiceService.generate_missing(), ([], []))

    def test_generate_missing_command(self):
        out = StringIO()
        call_command("generate_missing_invoices", stdout=out)
        self.assertIn("Generated 1 invoices.", out.getvalue())

        other = Registration.objects.create(
            exhibitor=self._create_exhibitor("two", "Two"),
            event=self.event,
            status=RegistrationStatus.COMPLETED,
        )
        with mock.patch(
            "invoicing.services.InvoiceGenerator.build_items",
            side_effect=InvalidStateError("price missing"),
        ):
            with self.assertLogs("invoicing.services", level="ERROR"):
                with self.assertRaises(CommandError) as ctx:
                    call_command("generate_missing_invoices", stdout=StringIO())
        self.assertIn(str(other.id), str(ctx.exception))


class InvoiceApiTests(WorkflowFixtures, TestCase):
    def setUp(self):
        self.organizer = self._create_organizer()
        self.event = self._create_event(self.organizer)
        self.exhibitor = self._create_exhibitor()
        registration = Registration.objects.create(
            exhibitor=self.exhibitor,
            event=self.event,
            status=RegistrationStatus.COMPLETED,
        )
        self.invoice = InvoiceGenerator.generate(registration=registration)

    def test_owner_and_organizer_can_read(self):
        for user in (self.exhibitor.user, self.organizer.user):
            self.client.force_login(user)
            response = self.client.get(reverse("api_invoice_detail", args=[self.invoice.id]))
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.json()["invoice"]["invoice_number"], self.invoice.invoice_number)

        stranger = self._create_exhibitor("stranger", "Stranger")
        self.client.force_login(stranger.user)
        response = self.client.get(reverse("api_invoice_detail", args=[self.invoice.id]))
        self.assertEqual(response.status_code, 403)

    def test_only_admin_marks_paid(self):
        self.client.force_login(self.organizer.user)
        response = self.client.post(reverse("api_invoice_mark_paid", args=[self.invoice.id]))
        self.assertEqual(response.status_code, 403)

        self.client.force_login(self._create_admin())
        response = self.client.post(reverse("api_invoice_mark_paid", args=[self.invoice.id]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["invoice"]["status"], "paid")
