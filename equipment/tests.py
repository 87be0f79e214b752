from decimal import Decimal

from django.test import TestCase
from django.urls import reverse

from events.errors import ConflictError, ForbiddenError, InsufficientInventoryError, NotFoundError
from events.testing import WorkflowFixtures
from registrations.models import EquipmentAllocation, Registration, RegistrationStatus

from .models import Equipment, EventEquipment
from .services import EquipmentInventory


class EquipmentInventoryTests(WorkflowFixtures, TestCase):
    def setUp(self):
        self.organizer = self._create_organizer()
        self.event = self._create_event(self.organizer)
        self.chair = self._offer_equipment(self.organizer, self.event, name="Chair", quantity=10)
        self.r1 = Registration.objects.create(
            exhibitor=self._create_exhibitor("one", "One"),
            event=self.event,
            status=RegistrationStatus.APPROVED,
        )
        self.r2 = Registration.objects.create(
            exhibitor=self._create_exhibitor("two", "Two"),
            event=self.event,
            status=RegistrationStatus.APPROVED,
        )

    def test_available_quantity_counts_active_allocations(self):
        EquipmentAllocation.objects.create(registration=self.r1, equipment=self.chair, quantity=6)
        self.assertEqual(EquipmentInventory.allocated_quantity(equipment=self.chair, event=self.event), 6)
        self.assertEqual(EquipmentInventory.available_quantity(equipment=self.chair, event=self.event), 4)
        self.assertEqual(
            EquipmentInventory.available_quantity(equipment=self.chair, event=self.event, exclude_registration=self.r1),
            10,
        )

        Registration.objects.filter(pk=self.r1.pk).update(status=RegistrationStatus.CANCELLED)
        self.assertEqual(EquipmentInventory.available_quantity(equipment=self.chair, event=self.event), 10)

    def test_event_overrides_catalog_values(self):
        table = self._offer_equipment(
            self.organizer,
            self.event,
            name="Table",
            price=Decimal("40.00"),
            quantity=50,
            special_price=Decimal("35.50"),
            available_quantity=5,
        )
        self.assertEqual(EquipmentInventory.event_cap(equipment=table, event=self.event), 5)
        self.assertEqual(EquipmentInventory.unit_price(equipment=table, event=self.event), Decimal("35.50"))
        self.assertEqual(EquipmentInventory.event_cap(equipment=self.chair, event=self.event), 10)
        self.assertEqual(EquipmentInventory.unit_price(equipment=self.chair, event=self.event), Decimal("10.00"))

    def test_check_allocation_reports_maximum(self):
        EquipmentAllocation.objects.create(registration=self.r1, equipment=self.chair, quantity=6)
        offers = EquipmentInventory.lock_for_allocation(equipment_ids=[self.chair.id], event=self.event)
        with self.assertRaises(InsufficientInventoryError) as ctx:
            EquipmentInventory.check_allocation(offer=offers[self.chair.id], quantity=5, registration=self.r2)
        self.assertEqual(ctx.exception.available, 4)
        self.assertEqual(ctx.exception.requested, 5)
        self.assertEqual(ctx.exception.equipment_id, self.chair.id)

        self.assertEqual(
            EquipmentInventory.check_allocation(offer=offers[self.chair.id], quantity=4, registration=self.r2),
            4,
        )

    def test_lock_rejects_equipment_not_offered(self):
        other_event = self._create_event(self.organizer, name="Other")
        with self.assertRaises(NotFoundError):
            EquipmentInventory.lock_for_allocation(equipment_ids=[self.chair.id], event=other_event)

        Equipment.objects.filter(pk=self.chair.pk).update(is_available=False)
        with self.assertRaises(NotFoundError):
            EquipmentInventory.lock_for_allocation(equipment_ids=[self.chair.id], event=self.event)

    def test_associate_and_dissociate(self):
        principal = self._principal(self.organizer)
        lamp = EquipmentInventory.create_equipment(principal=principal, name="Lamp", price=Decimal("5.00"), quantity=3)
        offer = EquipmentInventory.associate_with_event(principal=principal, equipment=lamp, event=self.event)
        self.assertEqual(offer.total_quantity, 3)
        with self.assertRaises(ConflictError):
            EquipmentInventory.associate_with_event(principal=principal, equipment=lamp, event=self.event)

        EquipmentInventory.dissociate_from_event(principal=principal, equipment=lamp, event=self.event)
        self.assertFalse(EventEquipment.objects.filter(equipment=lamp).exists())
        with self.assertRaises(NotFoundError):
            EquipmentInventory.dissociate_from_event(principal=principal, equipment=lamp, event=self.event)

    def test_dissociate_blocked_while_allocated(self):
        EquipmentAllocation.objects.create(registration=self.r1, equipment=self.chair, quantity=1)
        with self.assertRaises(ConflictError):
            EquipmentInventory.dissociate_from_event(
                principal=self._principal(self.organizer),
                equipment=self.chair,
                event=self.event,
            )

    def test_other_organizer_cannot_offer_equipment(self):
        intruder = self._create_organizer("intruder", "Intruder")
        with self.assertRaises(ForbiddenError):
            EquipmentInventory.associate_with_event(
                principal=self._principal(intruder),
                equipment=self.chair,
                event=self.event,
            )

    def test_list_available_for_event(self):
        EquipmentAllocation.objects.create(registration=self.r1, equipment=self.chair, quantity=6)
        rows = EquipmentInventory.list_available_for_event(event=self.event)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["available_quantity"], 4)
        self.assertEqual(rows[0]["allocated_quantity"], 6)


class EquipmentApiTests(WorkflowFixtures, TestCase):
    def test_available_equipment_endpoint(self):
        organizer = self._create_organizer()
        event = self._create_event(organizer)
        self._offer_equipment(organizer, event, name="Chair", quantity=10, special_price=Decimal("7.25"))
        exhibitor = self._create_exhibitor()

        self.client.force_login(exhibitor.user)
        response = self.client.get(reverse("api_event_available_equipment", args=[event.id]))
        self.assertEqual(response.status_code, 200)
        row = response.json()["equipment"][0]
        self.assertEqual(row["name"], "Chair")
        self.assertEqual(row["unit_price"], "7.25")
        self.assertEqual(row["available_quantity"], 10)
