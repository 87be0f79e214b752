from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.utils import timezone

from equipment.models import Equipment, EventEquipment
from stands.models import Plan, Stand

from .authz import resolve_principal
from .models import Event, EventStatus, Exhibitor, Organizer


class WorkflowFixtures:
    """Builders shared by the workflow test suites."""

    def _create_user(self, username, **extra):
        extra.setdefault("email", f"{username}@example.com")
        return get_user_model().objects.create_user(username=username, password="secret", **extra)

    def _create_organizer(self, username="organizer", organization_name="Acme Expo"):
        user = self._create_user(username)
        return Organizer.objects.create(user=user, organization_name=organization_name)

    def _create_exhibitor(self, username="exhibitor", company_name="Widgets Ltd"):
        user = self._create_user(username)
        return Exhibitor.objects.create(user=user, company_name=company_name)

    def _create_admin(self, username="root"):
        return get_user_model().objects.create_superuser(
            username=username,
            password="secret",
            email=f"{username}@example.com",
        )

    def _create_event(self, organizer, *, starts_in_days=30, plan=None, status=EventStatus.PUBLISHED, name="Expo 2026"):
        start = timezone.now() + timedelta(days=starts_in_days)
        return Event.objects.create(
            organizer=organizer,
            name=name,
            start_date=start,
            end_date=start + timedelta(days=3),
            registration_deadline=start - timedelta(days=1),
            plan=plan,
            status=status,
        )

    def _create_plan(self, organizer, *, numbers=("S1", "S2", "S3"), base_price=Decimal("500.00")):
        plan = Plan.objects.create(organizer=organizer, name=f"Hall {organizer.id}")
        stands = [Stand.objects.create(plan=plan, number=number, base_price=base_price) for number in numbers]
        return plan, stands

    def _offer_equipment(self, organizer, event, *, name="Chair", price=Decimal("10.00"), quantity=10, **overrides):
        equipment = Equipment.objects.create(organizer=organizer, name=name, price=price, quantity=quantity)
        EventEquipment.objects.create(equipment=equipment, event=event, **overrides)
        return equipment

    def _principal(self, profile_or_user):
        user = getattr(profile_or_user, "user", profile_or_user)
        return resolve_principal(user)
