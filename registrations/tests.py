import json
from decimal import Decimal
from unittest import mock

from django.core import mail
from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.urls import reverse

from events.errors import (
    ConflictError,
    ForbiddenError,
    InsufficientInventoryError,
    InvalidStateError,
    NotAvailableError,
    NotFoundError,
    TooLateToCancelError,
)
from events.models import EventStatus
from events.testing import WorkflowFixtures
from invoicing.models import Invoice
from stands.models import Stand, StandStatus
from stands.services import StandInventory

from .models import EquipmentAllocation, Registration, RegistrationStatus
from .services import RegistrationService


class RecordingDispatcher:
    sent = []

    def notify_approved(self, email, context):
        self.sent.append(("approved", email, context))

    def notify_rejected(self, email, context):
        self.sent.append(("rejected", email, context))

    def notify_cancelled(self, email, context):
        self.sent.append(("cancelled", email, context))


class BrokenDispatcher(RecordingDispatcher):
    def notify_approved(self, email, context):
        raise ConnectionError("smtp down")


class RegistrationWorkflowBase(WorkflowFixtures, TestCase):
    starts_in_days = 30

    def setUp(self):
        self.organizer = self._create_organizer()
        self.plan, (self.s1, self.s2, self.s3) = self._create_plan(self.organizer)
        self.event = self._create_event(self.organizer, plan=self.plan, starts_in_days=self.starts_in_days)
        self.exhibitor = self._create_exhibitor()
        self.chair = self._offer_equipment(self.organizer, self.event, name="Chair", quantity=10)
        self.organizer_principal = self._principal(self.organizer)
        self.exhibitor_principal = self._principal(self.exhibitor)

    def _pending(self, exhibitor=None, event=None):
        exhibitor = exhibitor or self.exhibitor
        return RegistrationService.create(
            principal=self._principal(exhibitor),
            event=event or self.event,
            participation_note="We build widgets.",
        )

    def _approved(self, exhibitor=None):
        registration = self._pending(exhibitor)
        return RegistrationService.review(
            registration=registration,
            decision=RegistrationStatus.APPROVED,
            principal=self.organizer_principal,
        )

    def _completed(self):
        registration = self._approved()
        RegistrationService.select_stands(
            registration=registration,
            stand_ids=[self.s1.id],
            principal=self.exhibitor_principal,
            completed=True,
        )
        return RegistrationService.select_equipment(
            registration=registration,
            allocations=[{"equipment_id": self.chair.id, "quantity": 2}],
            principal=self.exhibitor_principal,
            completed=True,
        )


class CreateAndReviewTests(RegistrationWorkflowBase):
    def test_create_then_approve(self):
        registration = self._pending()
        self.assertEqual(registration.status, RegistrationStatus.PENDING)
        self.assertFalse(registration.stands.exists())
        self.assertFalse(registration.equipment_allocations.exists())

        registration = RegistrationService.review(
            registration=registration.id,
            decision=RegistrationStatus.APPROVED,
            principal=self.organizer_principal,
            reason="ok",
        )
        self.assertEqual(registration.status, RegistrationStatus.APPROVED)
        self.assertIsNotNone(registration.approval_date)
        self.assertIsNone(registration.rejection_date)
        self.assertEqual(registration.reviewed_by_id, self.organizer.user_id)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, [self.exhibitor.user.email])
        self.assertIn("approved", mail.outbox[0].subject)

    def test_duplicate_registration_conflicts_until_cancelled(self):
        registration = self._pending()
        with self.assertRaises(ConflictError):
            self._pending()

        RegistrationService.cancel(registration=registration, principal=self.exhibitor_principal)
        again = self._pending()
        self.assertNotEqual(again.id, registration.id)

    def test_create_requires_open_event_and_exhibitor(self):
        draft = self._create_event(self.organizer, status=EventStatus.DRAFT, name="Draft")
        with self.assertRaises(InvalidStateError):
            self._pending(event=draft)
        with self.assertRaises(ForbiddenError):
            RegistrationService.create(principal=self.organizer_principal, event=self.event)
        with self.assertRaises(NotFoundError):
            RegistrationService.create(principal=self.exhibitor_principal, event=999999)

    def test_admin_registers_on_behalf_of_exhibitor(self):
        admin = self._principal(self._create_admin())
        with self.assertRaises(ValidationError):
            RegistrationService.create(principal=admin, event=self.event)
        registration = RegistrationService.create(principal=admin, event=self.event, exhibitor=self.exhibitor.id)
        self.assertEqual(registration.exhibitor, self.exhibitor)

    def test_only_event_organizer_reviews(self):
        registration = self._pending()
        intruder = self._create_organizer("intruder", "Intruder")
        for principal in (self._principal(intruder), self.exhibitor_principal):
            with self.assertRaises(ForbiddenError):
                RegistrationService.review(
                    registration=registration,
                    decision=RegistrationStatus.APPROVED,
                    principal=principal,
                )
        registration.refresh_from_db()
        self.assertEqual(registration.status, RegistrationStatus.PENDING)

    def test_reject_requires_reason(self):
        registration = self._pending()
        with self.assertRaises(ValidationError):
            RegistrationService.review(
                registration=registration,
                decision=RegistrationStatus.REJECTED,
                principal=self.organizer_principal,
                reason="  ",
            )
        registration = RegistrationService.review(
            registration=registration,
            decision=RegistrationStatus.REJECTED,
            principal=self.organizer_principal,
            reason="Stands are full.",
        )
        self.assertEqual(registration.status, RegistrationStatus.REJECTED)
        self.assertEqual(registration.rejection_reason, "Stands are full.")
        self.assertIsNotNone(registration.rejection_date)
        self.assertIsNone(registration.approval_date)
        self.assertIn("Stands are full.", mail.outbox[0].body)

    def test_review_only_from_pending(self):
        registration = self._approved()
        with self.assertRaises(InvalidStateError):
            RegistrationService.review(
                registration=registration,
                decision=RegistrationStatus.REJECTED,
                principal=self.organizer_principal,
                reason="changed my mind",
            )

    def test_unknown_decision(self):
        registration = self._pending()
        with self.assertRaises(ValidationError):
            RegistrationService.review(
                registration=registration,
                decision=RegistrationStatus.COMPLETED,
                principal=self.organizer_principal,
            )

    def test_note_editable_only_while_pending(self):
        registration = self._pending()
        registration = RegistrationService.update_note(
            registration=registration,
            principal=self.exhibitor_principal,
            participation_note="Bigger booth please.",
        )
        self.assertEqual(registration.participation_note, "Bigger booth please.")

        RegistrationService.review(
            registration=registration,
            decision=RegistrationStatus.APPROVED,
            principal=self.organizer_principal,
        )
        with self.assertRaises(InvalidStateError):
            RegistrationService.update_note(
                registration=registration,
                principal=self.exhibitor_principal,
                participation_note="Too late",
            )


class NotificationTests(RegistrationWorkflowBase):
    def setUp(self):
        super().setUp()
        RecordingDispatcher.sent = []

    @override_settings(EXPOHUB_NOTIFICATION_DISPATCHER="registrations.tests.RecordingDispatcher")
    def test_dispatcher_is_configurable(self):
        registration = self._approved()
        RegistrationService.cancel(registration=registration, principal=self.organizer_principal, reason="Venue closed")
        kinds = [kind for kind, _, _ in RecordingDispatcher.sent]
        self.assertEqual(kinds, ["approved", "cancelled"])
        _, email, context = RecordingDispatcher.sent[1]
        self.assertEqual(email, self.exhibitor.user.email)
        self.assertEqual(context["cancelled_by"], "organizer")
        self.assertEqual(context["reason"], "Venue closed")
        self.assertEqual(context["event_name"], self.event.name)

    @override_settings(EXPOHUB_NOTIFICATION_DISPATCHER="registrations.tests.BrokenDispatcher")
    def test_notification_failure_does_not_undo_review(self):
        registration = self._pending()
        with self.assertLogs("registrations.services", level="ERROR") as logs:
            registration = RegistrationService.review(
                registration=registration,
                decision=RegistrationStatus.APPROVED,
                principal=self.organizer_principal,
            )
        self.assertIn("approved notification", logs.output[0])
        registration.refresh_from_db()
        self.assertEqual(registration.status, RegistrationStatus.APPROVED)


class StandSelectionTests(RegistrationWorkflowBase):
    def test_unavailable_stand_aborts_whole_selection(self):
        registration = self._approved()
        rival = self._approved(self._create_exhibitor("rival", "Rival Co"))
        StandInventory.reserve(stand_id=self.s2.id, registration=rival)

        with self.assertRaises(NotAvailableError):
            RegistrationService.select_stands(
                registration=registration,
                stand_ids=[self.s1.id, self.s2.id],
                principal=self.exhibitor_principal,
            )

        self.s1.refresh_from_db()
        self.assertEqual(self.s1.status, StandStatus.AVAILABLE)
        self.assertFalse(registration.stands.exists())

    def test_select_reserves_and_replaces_set(self):
        registration = self._approved()
        RegistrationService.select_stands(
            registration=registration,
            stand_ids=[self.s1.id, self.s2.id],
            principal=self.exhibitor_principal,
        )
        self.assertEqual(set(registration.stands.values_list("id", flat=True)), {self.s1.id, self.s2.id})

        # Re-selecting a stand already held by the same registration is allowed.
        RegistrationService.select_stands(
            registration=registration,
            stand_ids=[self.s2.id, self.s3.id],
            principal=self.exhibitor_principal,
        )
        self.assertEqual(set(registration.stands.values_list("id", flat=True)), {self.s2.id, self.s3.id})

        # Dropped stands stay reserved by this registration until it is cancelled.
        self.s1.refresh_from_db()
        self.assertEqual(self.s1.status, StandStatus.RESERVED)
        self.assertEqual(self.s1.reservation_id, registration.id)

    def test_unknown_or_foreign_stand(self):
        registration = self._approved()
        with self.assertRaises(NotFoundError):
            RegistrationService.select_stands(
                registration=registration,
                stand_ids=[999999],
                principal=self.exhibitor_principal,
            )
        _, (foreign, *_) = self._create_plan(self._create_organizer("other", "Other"), numbers=("F1",))
        with self.assertRaises(NotAvailableError):
            RegistrationService.select_stands(
                registration=registration,
                stand_ids=[foreign.id],
                principal=self.exhibitor_principal,
            )

    def test_selection_requires_owner_and_approval(self):
        registration = self._pending()
        with self.assertRaises(InvalidStateError):
            RegistrationService.select_stands(
                registration=registration,
                stand_ids=[self.s1.id],
                principal=self.exhibitor_principal,
            )
        registration = RegistrationService.review(
            registration=registration,
            decision=RegistrationStatus.APPROVED,
            principal=self.organizer_principal,
        )
        someone_else = self._principal(self._create_exhibitor("else", "Else"))
        with self.assertRaises(ForbiddenError):
            RegistrationService.select_stands(registration=registration, stand_ids=[self.s1.id], principal=someone_else)
        with self.assertRaises(ValidationError):
            RegistrationService.select_stands(registration=registration, stand_ids="1,2", principal=self.exhibitor_principal)

    def test_malformed_stand_ids_are_rejected(self):
        registration = self._approved()
        for stand_ids in (5, 1.5, None, {"id": self.s1.id}, [True], [float(self.s1.id) + 0.9], ["S1"]):
            with self.assertRaises(ValidationError):
                RegistrationService.select_stands(
                    registration=registration,
                    stand_ids=stand_ids,
                    principal=self.exhibitor_principal,
                )
        self.s1.refresh_from_db()
        self.assertEqual(self.s1.status, StandStatus.AVAILABLE)
        self.assertFalse(registration.stands.exists())


class EquipmentSelectionTests(RegistrationWorkflowBase):
    def test_cap_is_shared_between_registrations(self):
        r1 = self._approved()
        r2 = self._approved(self._create_exhibitor("second", "Second"))
        RegistrationService.select_equipment(
            registration=r1,
            allocations=[{"equipment_id": self.chair.id, "quantity": 6}],
            principal=self.exhibitor_principal,
        )
        r2_principal = self._principal(r2.exhibitor)

        with self.assertRaises(InsufficientInventoryError) as ctx:
            RegistrationService.select_equipment(
                registration=r2,
                allocations=[{"equipment_id": self.chair.id, "quantity": 5}],
                principal=r2_principal,
            )
        self.assertEqual(ctx.exception.available, 4)
        self.assertEqual(ctx.exception.equipment_id, self.chair.id)

        RegistrationService.select_equipment(
            registration=r2,
            allocations=[{"equipment_id": self.chair.id, "quantity": 4}],
            principal=r2_principal,
        )
        total = sum(EquipmentAllocation.objects.filter(equipment=self.chair).values_list("quantity", flat=True))
        self.assertEqual(total, 10)

    def test_replacing_own_allocation_does_not_count_twice(self):
        registration = self._approved()
        for quantity in (6, 10, 3):
            RegistrationService.select_equipment(
                registration=registration,
                allocations=[(self.chair.id, quantity)],
                principal=self.exhibitor_principal,
            )
        allocations = list(registration.equipment_allocations.all())
        self.assertEqual(len(allocations), 1)
        self.assertEqual(allocations[0].quantity, 3)

    def test_allocation_order_is_kept(self):
        table = self._offer_equipment(self.organizer, self.event, name="Table", quantity=4)
        registration = self._approved()
        RegistrationService.select_equipment(
            registration=registration,
            allocations=[{"equipment_id": table.id, "quantity": 1}, {"equipment_id": self.chair.id, "quantity": 2}],
            principal=self.exhibitor_principal,
        )
        self.assertEqual(
            list(registration.equipment_allocations.values_list("equipment_id", flat=True)),
            [table.id, self.chair.id],
        )

    def test_invalid_allocations(self):
        registration = self._approved()
        for allocations in (
            [{"equipment_id": self.chair.id, "quantity": 0}],
            [{"equipment_id": self.chair.id, "quantity": 1.5}],
            [{"equipment_id": self.chair.id, "quantity": 1}, {"equipment_id": self.chair.id, "quantity": 2}],
            None,
            3,
            [{"equipment_id": True, "quantity": 1}],
            [{"equipment_id": self.chair.id + 0.5, "quantity": 1}],
        ):
            with self.assertRaises(ValidationError):
                RegistrationService.select_equipment(
                    registration=registration,
                    allocations=allocations,
                    principal=self.exhibitor_principal,
                )

    def test_equipment_not_offered(self):
        registration = self._approved()
        other_event = self._create_event(self.organizer, name="Other")
        lamp = self._offer_equipment(self.organizer, other_event, name="Lamp")
        with self.assertRaises(NotFoundError):
            RegistrationService.select_equipment(
                registration=registration,
                allocations=[{"equipment_id": lamp.id, "quantity": 1}],
                principal=self.exhibitor_principal,
            )


class CompletionTests(RegistrationWorkflowBase):
    def test_single_flag_never_completes(self):
        registration = self._approved()
        registration = RegistrationService.select_stands(
            registration=registration,
            stand_ids=[self.s1.id],
            principal=self.exhibitor_principal,
            completed=True,
        )
        self.assertEqual(registration.status, RegistrationStatus.APPROVED)
        self.assertFalse(Invoice.objects.exists())

        registration = RegistrationService.select_equipment(
            registration=registration,
            allocations=[],
            principal=self.exhibitor_principal,
            completed=False,
        )
        self.assertEqual(registration.status, RegistrationStatus.APPROVED)
        self.assertFalse(Invoice.objects.exists())

    def test_both_flags_complete_and_invoice_once(self):
        registration = self._completed()
        self.assertEqual(registration.status, RegistrationStatus.COMPLETED)
        self.assertEqual(Invoice.objects.filter(registration=registration).count(), 1)
        invoice = Invoice.objects.get(registration=registration)
        self.assertEqual(invoice.subtotal, Decimal("520.00"))

    def test_completion_from_stand_selection(self):
        registration = self._approved()
        RegistrationService.select_equipment(
            registration=registration,
            allocations=[],
            principal=self.exhibitor_principal,
            completed=True,
        )
        registration = RegistrationService.select_stands(
            registration=registration,
            stand_ids=[self.s1.id],
            principal=self.exhibitor_principal,
            completed=True,
        )
        self.assertEqual(registration.status, RegistrationStatus.COMPLETED)
        self.assertEqual(Invoice.objects.count(), 1)

    def test_invoice_failure_rolls_back_completion(self):
        registration = self._approved()
        RegistrationService.select_stands(
            registration=registration,
            stand_ids=[self.s1.id],
            principal=self.exhibitor_principal,
            completed=True,
        )
        with mock.patch(
            "registrations.services.InvoiceGenerator.generate",
            side_effect=DatabaseError("disk full"),
        ):
            with self.assertRaises(DatabaseError):
                RegistrationService.select_equipment(
                    registration=registration,
                    allocations=[{"equipment_id": self.chair.id, "quantity": 1}],
                    principal=self.exhibitor_principal,
                    completed=True,
                )
        registration.refresh_from_db()
        self.assertEqual(registration.status, RegistrationStatus.APPROVED)
        self.assertFalse(registration.equipment_selection_completed)
        self.assertFalse(registration.equipment_allocations.exists())

        RegistrationService.select_equipment(
            registration=registration,
            allocations=[{"equipment_id": self.chair.id, "quantity": 1}],
            principal=self.exhibitor_principal,
            completed=True,
        )
        registration.refresh_from_db()
        self.assertEqual(registration.status, RegistrationStatus.COMPLETED)

    def test_completed_reselection_forbidden_by_default(self):
        registration = self._completed()
        with self.assertRaises(InvalidStateError):
            RegistrationService.select_equipment(
                registration=registration,
                allocations=[{"equipment_id": self.chair.id, "quantity": 5}],
                principal=self.exhibitor_principal,
            )

    @override_settings(EXPOHUB_ALLOW_COMPLETED_RESELECTION=True)
    def test_completed_reselection_when_enabled_keeps_invoice(self):
        registration = self._completed()
        invoice = Invoice.objects.get(registration=registration)
        registration = RegistrationService.select_equipment(
            registration=registration,
            allocations=[{"equipment_id": self.chair.id, "quantity": 5}],
            principal=self.exhibitor_principal,
        )
        self.assertEqual(registration.status, RegistrationStatus.COMPLETED)
        self.assertEqual(registration.equipment_allocations.get().quantity, 5)
        self.assertEqual(Invoice.objects.get(registration=registration).total, invoice.total)


class CancellationTests(RegistrationWorkflowBase):
    starts_in_days = 11

    def test_exhibitor_cancels_outside_window(self):
        registration = self._completed()
        registration = RegistrationService.cancel(
            registration=registration,
            principal=self.exhibitor_principal,
            reason="Budget cut",
        )
        self.assertEqual(registration.status, RegistrationStatus.CANCELLED)
        self.assertEqual(registration.cancelled_by_id, self.exhibitor.user_id)
        self.assertEqual(registration.cancelled_by_role, "exhibitor")
        self.assertEqual(registration.cancellation_reason, "Budget cut")
        self.assertIsNotNone(registration.cancelled_at)
        self.assertFalse(registration.stands.exists())
        self.assertFalse(registration.equipment_allocations.exists())
        self.assertFalse(registration.stand_selection_completed)
        self.assertFalse(registration.equipment_selection_completed)
        self.s1.refresh_from_db()
        self.assertEqual(self.s1.status, StandStatus.AVAILABLE)
        self.assertIsNone(self.s1.reservation_id)

    def test_cancel_frees_stands_dropped_from_selection(self):
        registration = self._approved()
        RegistrationService.select_stands(
            registration=registration,
            stand_ids=[self.s1.id],
            principal=self.exhibitor_principal,
        )
        RegistrationService.select_stands(
            registration=registration,
            stand_ids=[self.s2.id],
            principal=self.exhibitor_principal,
        )
        RegistrationService.cancel(registration=registration, principal=self.exhibitor_principal)
        self.assertFalse(Stand.objects.filter(status=StandStatus.RESERVED).exists())

    def test_stand_free_failure_does_not_abort_cancellation(self):
        registration = self._approved()
        RegistrationService.select_stands(
            registration=registration,
            stand_ids=[self.s1.id, self.s2.id],
            principal=self.exhibitor_principal,
        )
        real_free = StandInventory.free.__func__

        def flaky_free(cls, *, stand_id):
            if stand_id == self.s1.id:
                raise DatabaseError("lock timeout")
            return real_free(cls, stand_id=stand_id)

        with mock.patch.object(StandInventory, "free", classmethod(flaky_free)):
            with self.assertLogs("registrations.services", level="ERROR"):
                registration = RegistrationService.cancel(registration=registration, principal=self.exhibitor_principal)

        self.assertEqual(registration.status, RegistrationStatus.CANCELLED)
        self.s2.refresh_from_db()
        self.assertEqual(self.s2.status, StandStatus.AVAILABLE)
        self.s1.refresh_from_db()
        self.assertEqual(self.s1.status, StandStatus.RESERVED)
        self.assertEqual(StandInventory.reconcile(), [self.s1.id])

    def test_only_owner_or_event_organizer_cancels(self):
        registration = self._pending()
        with self.assertRaises(ForbiddenError):
            RegistrationService.cancel(
                registration=registration,
                principal=self._principal(self._create_exhibitor("else", "Else")),
            )
        with self.assertRaises(ForbiddenError):
            RegistrationService.cancel(
                registration=registration,
                principal=self._principal(self._create_organizer("intruder", "Intruder")),
            )


class LateCancellationTests(RegistrationWorkflowBase):
    starts_in_days = 9

    def test_exhibitor_inside_window_is_too_late(self):
        registration = self._approved()
        RegistrationService.select_stands(
            registration=registration,
            stand_ids=[self.s1.id],
            principal=self.exhibitor_principal,
        )
        with self.assertRaises(TooLateToCancelError):
            RegistrationService.cancel(registration=registration, principal=self.exhibitor_principal)
        registration.refresh_from_db()
        self.assertEqual(registration.status, RegistrationStatus.APPROVED)
        self.s1.refresh_from_db()
        self.assertEqual(self.s1.status, StandStatus.RESERVED)

    def test_organizer_and_admin_ignore_window(self):
        registration = self._approved()
        registration = RegistrationService.cancel(registration=registration, principal=self.organizer_principal)
        self.assertEqual(registration.status, RegistrationStatus.CANCELLED)
        self.assertEqual(registration.cancelled_by_role, "organizer")

        again = self._approved()
        admin = self._principal(self._create_admin())
        again = RegistrationService.cancel(registration=again, principal=admin)
        self.assertEqual(again.cancelled_by_role, "admin")

    @override_settings(EXPOHUB_CANCELLATION_WINDOW_DAYS=5)
    def test_window_is_configurable(self):
        registration = self._approved()
        registration = RegistrationService.cancel(registration=registration, principal=self.exhibitor_principal)
        self.assertEqual(registration.status, RegistrationStatus.CANCELLED)


class TerminalStateTests(RegistrationWorkflowBase):
    def _assert_frozen(self, registration):
        operations = [
            lambda: RegistrationService.update_note(
                registration=registration,
                principal=self.exhibitor_principal,
                participation_note="x",
            ),
            lambda: RegistrationService.review(
                registration=registration,
                decision=RegistrationStatus.APPROVED,
                principal=self.organizer_principal,
            ),
            lambda: RegistrationService.select_stands(
                registration=registration,
                stand_ids=[self.s3.id],
                principal=self.exhibitor_principal,
            ),
            lambda: RegistrationService.select_equipment(
                registration=registration,
                allocations=[{"equipment_id": self.chair.id, "quantity": 1}],
                principal=self.exhibitor_principal,
            ),
            lambda: RegistrationService.cancel(registration=registration, principal=self.organizer_principal),
        ]
        for operation in operations:
            with self.assertRaises(InvalidStateError):
                operation()
        self.s3.refresh_from_db()
        self.assertEqual(self.s3.status, StandStatus.AVAILABLE)

    def test_rejected_is_terminal(self):
        registration = RegistrationService.review(
            registration=self._pending(),
            decision=RegistrationStatus.REJECTED,
            principal=self.organizer_principal,
            reason="No space",
        )
        self._assert_frozen(registration)

    def test_cancelled_is_terminal(self):
        registration = RegistrationService.cancel(registration=self._approved(), principal=self.exhibitor_principal)
        self._assert_frozen(registration)

    def test_transition_table(self):
        registration = Registration(status=RegistrationStatus.PENDING)
        with self.assertRaises(InvalidStateError):
            registration.transition_to(RegistrationStatus.COMPLETED)
        registration.transition_to(RegistrationStatus.APPROVED)
        self.assertIsNotNone(registration.approval_date)
        self.assertTrue(registration.can_transition_to(RegistrationStatus.COMPLETED))
        self.assertFalse(registration.can_transition_to(RegistrationStatus.REJECTED))


class RemovalAndQueryTests(RegistrationWorkflowBase):
    def test_only_admin_removes(self):
        registration = self._approved()
        with self.assertRaises(ForbiddenError):
            RegistrationService.remove(registration=registration, principal=self.organizer_principal)
        self.assertTrue(Registration.objects.filter(pk=registration.pk).exists())

    def test_remove_frees_stands_and_keeps_invoice_snapshot(self):
        registration = self._completed()
        invoice = Invoice.objects.get(registration=registration)
        admin = self._principal(self._create_admin())

        RegistrationService.remove(registration=registration.id, principal=admin)

        self.assertFalse(Registration.objects.filter(pk=registration.pk).exists())
        invoice.refresh_from_db()
        self.assertIsNone(invoice.registration_id)
        self.assertEqual(invoice.exhibitor, self.exhibitor)
        self.assertEqual(invoice.items.count(), 2)
        self.s1.refresh_from_db()
        self.assertEqual(self.s1.status, StandStatus.AVAILABLE)

    def test_queries(self):
        mine = self._pending()
        other_event = self._create_event(self.organizer, name="Second")
        other = self._pending(event=other_event)

        self.assertEqual(RegistrationService.get(mine.id), mine)
        with self.assertRaises(NotFoundError):
            RegistrationService.get(999999)
        self.assertEqual(set(RegistrationService.list_for_exhibitor(self.exhibitor)), {mine, other})
        self.assertEqual(list(RegistrationService.list_for_event(other_event)), [other])
        self.assertEqual(list(RegistrationService.list(status=RegistrationStatus.APPROVED)), [])
        with self.assertRaises(ValidationError):
            list(RegistrationService.list(status="bogus"))

        intruder = self._principal(self._create_organizer("intruder", "Intruder"))
        self.assertFalse(RegistrationService.list_visible_to(intruder).exists())
        self.assertEqual(RegistrationService.list_visible_to(self.organizer_principal).count(), 2)


class RegistrationApiTests(RegistrationWorkflowBase):
    def _post(self, name, registration_id=None, payload=None):
        args = [registration_id] if registration_id is not None else []
        return self.client.post(
            reverse(name, args=args),
            data=json.dumps(payload or {}),
            content_type="application/json",
        )

    def test_full_flow_over_http(self):
        self.client.force_login(self.exhibitor.user)
        response = self._post("api_registrations", payload={"event_id": self.event.id, "participation_note": "hi"})
        self.assertEqual(response.status_code, 201)
        registration_id = response.json()["registration"]["id"]

        response = self._post("api_registration_review", registration_id, {"decision": "approved"})
        self.assertEqual(response.status_code, 403)

        self.client.force_login(self.organizer.user)
        response = self._post("api_registration_review", registration_id, {"decision": "approved"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["registration"]["status"], "approved")

        self.client.force_login(self.exhibitor.user)
        response = self._post(
            "api_registration_select_stands",
            registration_id,
            {"stand_ids": [self.s1.id], "completed": True},
        )
        self.assertEqual(response.status_code, 200)
        response = self._post(
            "api_registration_select_equipment",
            registration_id,
            {"allocations": [{"equipment_id": self.chair.id, "quantity": 11}], "completed": True},
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "insufficient_inventory")
        self.assertEqual(response.json()["context"]["available"], "10")

        response = self._post(
            "api_registration_select_equipment",
            registration_id,
            {"allocations": [{"equipment_id": self.chair.id, "quantity": 2}], "completed": True},
        )
        self.assertEqual(response.json()["registration"]["status"], "completed")

        response = self.client.get(reverse("api_registration_invoice", args=[registration_id]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["invoice"]["total"], "624.00")

    def test_malformed_bodies_are_bad_requests(self):
        registration = self._approved()
        self.client.force_login(self.exhibitor.user)
        requests = [
            ("api_registration_select_stands", {"stand_ids": 5}),
            ("api_registration_select_stands", [1]),
            ("api_registration_select_equipment", {"allocations": 3}),
            ("api_registration_select_equipment", 7),
            ("api_registration_cancel", {"reason": ["no"]}),
        ]
        for name, payload in requests:
            response = self._post(name, registration.id, payload)
            self.assertEqual(response.status_code, 400, name)
            self.assertEqual(response.json()["code"], "invalid")

        self.client.force_login(self.organizer.user)
        response = self._post("api_registration_review", registration.id, {"decision": 1})
        self.assertEqual(response.status_code, 400)

        registration.refresh_from_db()
        self.assertEqual(registration.status, RegistrationStatus.APPROVED)

    def test_errors_map_to_statuses(self):
        self.client.force_login(self.exhibitor.user)
        response = self._post("api_registrations", payload={})
        self.assertEqual(response.status_code, 400)

        registration = self._approved()
        response = self._post("api_registration_review", registration.id, {"decision": "approved"})
        self.assertEqual(response.status_code, 403)

        response = self.client.get(reverse("api_registration_detail", args=[999999]))
        self.assertEqual(response.status_code, 404)

        response = self.client.patch(
            reverse("api_registration_detail", args=[registration.id]),
            data=json.dumps({"participation_note": "late"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "invalid_state")

    def test_list_is_scoped_to_principal(self):
        self._pending()
        self._pending(self._create_exhibitor("rival", "Rival"))

        self.client.force_login(self.exhibitor.user)
        rows = self.client.get(reverse("api_registrations")).json()["registrations"]
        self.assertEqual([row["exhibitor_id"] for row in rows], [self.exhibitor.id])

        self.client.force_login(self.organizer.user)
        rows = self.client.get(reverse("api_registrations"), {"status": "pending"}).json()["registrations"]
        self.assertEqual(len(rows), 2)

    def test_cancel_and_delete(self):
        registration = self._approved()
        self.client.force_login(self.exhibitor.user)
        response = self._post("api_registration_cancel", registration.id, {"reason": "changed plans"})
        self.assertEqual(response.json()["registration"]["status"], "cancelled")

        response = self.client.delete(reverse("api_registration_detail", args=[registration.id]))
        self.assertEqual(response.status_code, 403)

        self.client.force_login(self._create_admin())
        response = self.client.delete(reverse("api_registration_detail", args=[registration.id]))
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Registration.objects.filter(pk=registration.pk).exists())
