from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.test import TestCase
from django.urls import reverse

from events.errors import ConflictError, ForbiddenError, NotAvailableError, NotFoundError
from events.testing import WorkflowFixtures
from registrations.models import Registration, RegistrationStatus

from .models import Stand, StandStatus, StandType
from .services import StandInventory


class StandInventoryTests(WorkflowFixtures, TestCase):
    def setUp(self):
        self.organizer = self._create_organizer()
        self.plan, (self.s1, self.s2, self.s3) = self._create_plan(self.organizer)
        self.event = self._create_event(self.organizer, plan=self.plan)
        self.exhibitor = self._create_exhibitor()
        self.registration = Registration.objects.create(
            exhibitor=self.exhibitor,
            event=self.event,
            status=RegistrationStatus.APPROVED,
        )

    def test_reserve_marks_stand_and_back_reference(self):
        StandInventory.reserve(stand_id=self.s1.id, registration=self.registration)
        self.s1.refresh_from_db()
        self.assertEqual(self.s1.status, StandStatus.RESERVED)
        self.assertEqual(self.s1.reservation_id, self.registration.id)

    def test_second_reserve_loses(self):
        other = Registration.objects.create(
            exhibitor=self._create_exhibitor("rival", "Rival Co"),
            event=self.event,
            status=RegistrationStatus.APPROVED,
        )
        StandInventory.reserve(stand_id=self.s1.id, registration=self.registration)
        with self.assertRaises(NotAvailableError):
            StandInventory.reserve(stand_id=self.s1.id, registration=other)
        self.s1.refresh_from_db()
        self.assertEqual(self.s1.reservation_id, self.registration.id)

    def test_reserve_missing_stand(self):
        with self.assertRaises(NotFoundError):
            StandInventory.reserve(stand_id=999999, registration=self.registration)

    def test_free_is_idempotent(self):
        StandInventory.reserve(stand_id=self.s1.id, registration=self.registration)
        self.assertTrue(StandInventory.free(stand_id=self.s1.id))
        self.assertFalse(StandInventory.free(stand_id=self.s1.id))
        self.s1.refresh_from_db()
        self.assertEqual(self.s1.status, StandStatus.AVAILABLE)
        self.assertIsNone(self.s1.reservation_id)

    def test_selectable_for_own_reservation_only(self):
        StandInventory.reserve(stand_id=self.s1.id, registration=self.registration)
        self.s1.refresh_from_db()
        self.assertTrue(StandInventory.is_selectable(stand=self.s1, registration_id=self.registration.id))
        self.assertFalse(StandInventory.is_selectable(stand=self.s1, registration_id=self.registration.id + 1))
        self.assertTrue(StandInventory.is_selectable(stand=self.s2, registration_id=self.registration.id + 1))

    def test_listings(self):
        StandInventory.reserve(stand_id=self.s2.id, registration=self.registration)
        self.assertEqual([stand.number for stand in StandInventory.list_by_event(event=self.event)], ["S1", "S2", "S3"])
        self.assertEqual(
            [stand.number for stand in StandInventory.list_available_by_event(event=self.event)],
            ["S1", "S3"],
        )
        self.assertEqual(list(StandInventory.held_by(registration=self.registration)), [self.s2])

    def test_event_without_plan_lists_nothing(self):
        event = self._create_event(self.organizer, name="No plan")
        self.assertFalse(StandInventory.list_by_event(event=event).exists())

    def test_create_stand_rejects_duplicate_number(self):
        principal = self._principal(self.organizer)
        stand = StandInventory.create_stand(
            principal=principal,
            plan=self.plan,
            number="C1",
            base_price=Decimal("800.00"),
            stand_type=StandType.CORNER,
        )
        self.assertEqual(stand.display_name, "Corner Stand #C1")
        with self.assertRaises(ConflictError):
            StandInventory.create_stand(principal=principal, plan=self.plan, number="C1", base_price=Decimal("1.00"))

    def test_only_plan_owner_adds_stands(self):
        intruder = self._create_organizer("intruder", "Intruder Events")
        with self.assertRaises(ForbiddenError):
            StandInventory.create_stand(
                principal=self._principal(intruder),
                plan=self.plan,
                number="X1",
                base_price=Decimal("1.00"),
            )
        with self.assertRaises(ForbiddenError):
            StandInventory.create_plan(principal=self._principal(self.exhibitor), name="Mine")

    def test_reconcile_frees_stands_of_terminal_or_missing_registrations(self):
        StandInventory.reserve(stand_id=self.s1.id, registration=self.registration)
        StandInventory.reserve(stand_id=self.s3.id, registration=self.registration)
        Registration.objects.filter(pk=self.registration.pk).update(status=RegistrationStatus.CANCELLED)
        Stand.objects.filter(pk=self.s2.pk).update(status=StandStatus.RESERVED, reservation=None)

        with self.assertLogs("stands.services", level="WARNING"):
            released = StandInventory.reconcile()

        self.assertEqual(sorted(released), sorted([self.s1.id, self.s2.id, self.s3.id]))
        self.assertFalse(Stand.objects.filter(status=StandStatus.RESERVED).exists())

    def test_reconcile_keeps_active_reservations(self):
        StandInventory.reserve(stand_id=self.s1.id, registration=self.registration)
        self.assertEqual(StandInventory.reconcile(), [])
        self.s1.refresh_from_db()
        self.assertEqual(self.s1.status, StandStatus.RESERVED)

    def test_reconcile_command(self):
        StandInventory.reserve(stand_id=self.s1.id, registration=self.registration)
        Registration.objects.filter(pk=self.registration.pk).update(status=RegistrationStatus.REJECTED)

        out = StringIO()
        call_command("reconcile_stands", "--dry-run", stdout=out)
        self.assertIn("S1", out.getvalue())
        self.s1.refresh_from_db()
        self.assertEqual(self.s1.status, StandStatus.RESERVED)

        out = StringIO()
        call_command("reconcile_stands", stdout=out)
        self.assertIn("Freed 1 stands", out.getvalue())
        self.s1.refresh_from_db()
        self.assertEqual(self.s1.status, StandStatus.AVAILABLE)


class StandApiTests(WorkflowFixtures, TestCase):
    def setUp(self):
        self.organizer = self._create_organizer()
        self.plan, (self.s1, self.s2, _) = self._create_plan(self.organizer)
        self.event = self._create_event(self.organizer, plan=self.plan)
        self.exhibitor = self._create_exhibitor()
        registration = Registration.objects.create(
            exhibitor=self.exhibitor,
            event=self.event,
            status=RegistrationStatus.APPROVED,
        )
        StandInventory.reserve(stand_id=self.s2.id, registration=registration)

    def test_available_stands_for_event(self):
        self.client.force_login(self.exhibitor.user)
        response = self.client.get(reverse("api_event_available_stands", args=[self.event.id]))
        self.assertEqual(response.status_code, 200)
        numbers = [row["number"] for row in response.json()["stands"]]
        self.assertEqual(numbers, ["S1", "S3"])

    def test_holders_hidden_from_exhibitors(self):
        self.client.force_login(self.exhibitor.user)
        rows = self.client.get(reverse("api_event_stands", args=[self.event.id])).json()["stands"]
        self.assertNotIn("registration_id", rows[0])

        self.client.force_login(self.organizer.user)
        rows = self.client.get(reverse("api_plan_stands", args=[self.plan.id])).json()["stands"]
        self.assertEqual(rows[1]["status"], StandStatus.RESERVED)
        self.assertIsNotNone(rows[1]["registration_id"])

    def test_unknown_event_returns_404(self):
        self.client.force_login(self.organizer.user)
        response = self.client.get(reverse("api_event_stands", args=[999999]))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "not_found")
