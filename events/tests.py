from datetime import timedelta

from django.contrib.auth.models import AnonymousUser
from django.test import TestCase
from django.utils import timezone

from .authz import Principal, Role, has_capability, require_capability, resolve_principal
from .errors import ForbiddenError, InsufficientInventoryError, InvalidStateError, NotFoundError
from .models import Event, EventStatus
from .services import assert_event_open_for_registration, get_event, resolve, time_until_start
from .testing import WorkflowFixtures


class PrincipalTests(WorkflowFixtures, TestCase):
    def test_roles_are_derived_from_profiles(self):
        organizer = self._create_organizer()
        exhibitor = self._create_exhibitor()
        admin = self._create_admin()

        self.assertEqual(resolve_principal(organizer.user).role, Role.ORGANIZER)
        self.assertEqual(resolve_principal(exhibitor.user).role, Role.EXHIBITOR)
        self.assertTrue(resolve_principal(admin).is_admin)

    def test_user_without_profile_is_forbidden(self):
        user = self._create_user("nobody")
        with self.assertRaises(ForbiddenError):
            resolve_principal(user)
        with self.assertRaises(ForbiddenError):
            resolve_principal(AnonymousUser())

    def test_owner_check(self):
        organizer = Principal(user_id=7, role=Role.ORGANIZER)
        self.assertTrue(has_capability(organizer, roles={Role.ORGANIZER}, owner_id=7))
        self.assertFalse(has_capability(organizer, roles={Role.ORGANIZER}, owner_id=8))
        self.assertFalse(has_capability(organizer, roles={Role.EXHIBITOR}))
        with self.assertRaises(ForbiddenError) as ctx:
            require_capability(organizer, roles={Role.ORGANIZER}, owner_id=8, message="nope")
        self.assertEqual(ctx.exception.code, "forbidden")
        self.assertEqual(ctx.exception.http_status, 403)

    def test_admin_always_passes(self):
        admin = Principal(user_id=1, role=Role.ADMIN)
        self.assertTrue(has_capability(admin, roles=set(), owner_id=99))


class EventServiceTests(WorkflowFixtures, TestCase):
    def setUp(self):
        self.organizer = self._create_organizer()

    def test_resolve_accepts_instances_and_ids(self):
        event = self._create_event(self.organizer)
        self.assertIs(resolve(Event, event), event)
        self.assertEqual(resolve(Event, event.id), event)
        self.assertEqual(get_event(event.id).organizer, self.organizer)

    def test_resolve_missing_raises_not_found(self):
        with self.assertRaises(NotFoundError) as ctx:
            resolve(Event, 12345)
        self.assertEqual(ctx.exception.context["id"], 12345)
        self.assertIsInstance(ctx.exception, LookupError)

    def test_registration_window(self):
        event = self._create_event(self.organizer)
        assert_event_open_for_registration(event)

        draft = self._create_event(self.organizer, status=EventStatus.DRAFT, name="Draft")
        with self.assertRaises(InvalidStateError):
            assert_event_open_for_registration(draft)

        closed = self._create_event(self.organizer, name="Closed")
        closed.registration_deadline = timezone.now() - timedelta(minutes=1)
        closed.save(update_fields=["registration_deadline"])
        self.assertFalse(closed.is_open_for_registration)
        with self.assertRaises(InvalidStateError):
            assert_event_open_for_registration(closed)

    def test_time_until_start(self):
        event = self._create_event(self.organizer, starts_in_days=5)
        remaining = time_until_start(event, now=event.start_date - timedelta(days=2))
        self.assertEqual(remaining, timedelta(days=2))


class ErrorTests(TestCase):
    def test_insufficient_inventory_carries_quantities(self):
        exc = InsufficientInventoryError("short", equipment_id=3, requested=5, available=4)
        self.assertEqual(exc.available, 4)
        self.assertEqual(exc.as_dict()["context"], {"equipment_id": "3", "requested": "5", "available": "4"})
        self.assertEqual(exc.http_status, 409)
