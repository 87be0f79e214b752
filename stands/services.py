import logging

from django.db import IntegrityError, transaction
from django.db.models import Q

from events.authz import Role, require_capability
from events.errors import ConflictError, NotAvailableError, NotFoundError
from events.services import get_event, get_organizer_for_user, pk_of, resolve
from registrations.models import RegistrationStatus

from .models import Plan, Stand, StandStatus

logger = logging.getLogger(__name__)


class StandInventory:
    @classmethod
    @transaction.atomic
    def create_plan(cls, *, principal, name, description=""):
        require_capability(principal, roles={Role.ORGANIZER}, message="Only organizers can author floor plans.")
        organizer = get_organizer_for_user(principal.user_id)
        return Plan.objects.create(organizer=organizer, name=name.strip(), description=description.strip())

    @classmethod
    def create_stand(cls, *, principal, plan, number, base_price, stand_type=None, area=0, description=""):
        plan = resolve(Plan, plan, queryset=Plan.objects.select_related("organizer"))
        require_capability(
            principal,
            roles={Role.ORGANIZER},
            owner_id=plan.organizer.user_id,
            message="You do not have permission to add stands to this plan.",
        )
        number = str(number).strip()
        if Stand.objects.filter(plan=plan, number=number).exists():
            raise ConflictError(
                f"A stand with number {number} already exists in this plan.",
                plan_id=plan.id,
                number=number,
            )
        fields = {
            "plan": plan,
            "number": number,
            "base_price": base_price,
            "area": area,
            "description": description,
            "status": StandStatus.AVAILABLE,
        }
        if stand_type:
            fields["stand_type"] = stand_type
        try:
            with transaction.atomic():
                return Stand.objects.create(**fields)
        except IntegrityError as exc:
            raise ConflictError(
                f"A stand with number {number} already exists in this plan.",
                plan_id=plan.id,
                number=number,
            ) from exc

    @classmethod
    def reserve(cls, *, stand_id, registration):
        registration_id = pk_of(registration)
        # Conditional update: only one concurrent caller can flip an available row.
        updated = Stand.objects.filter(pk=stand_id, status=StandStatus.AVAILABLE).update(
            status=StandStatus.RESERVED,
            reservation_id=registration_id,
        )
        if updated == 1:
            logger.info("Stand %s reserved for registration %s", stand_id, registration_id)
            return True
        current = Stand.objects.filter(pk=stand_id).values("status", "reservation_id").first()
        if current is None:
            raise NotFoundError(f"Stand {stand_id} not found.", entity="Stand", id=stand_id)
        raise NotAvailableError(
            f"Stand {stand_id} is not available.",
            stand_id=stand_id,
            status=current["status"],
            registration_id=registration_id,
        )

    @classmethod
    def free(cls, *, stand_id):
        if not Stand.objects.filter(pk=stand_id).exists():
            raise NotFoundError(f"Stand {stand_id} not found.", entity="Stand", id=stand_id)
        updated = Stand.objects.filter(pk=stand_id).exclude(status=StandStatus.AVAILABLE, reservation__isnull=True).update(
            status=StandStatus.AVAILABLE,
            reservation=None,
        )
        if updated:
            logger.info("Stand %s freed", stand_id)
        return bool(updated)

    @classmethod
    def is_selectable(cls, *, stand, registration_id):
        if stand.status == StandStatus.AVAILABLE:
            return True
        return stand.status == StandStatus.RESERVED and stand.reservation_id == registration_id

    @classmethod
    def held_by(cls, *, registration):
        return Stand.objects.filter(reservation_id=pk_of(registration), status=StandStatus.RESERVED)

    @classmethod
    def list_by_plan(cls, *, plan):
        return Stand.objects.filter(plan_id=pk_of(plan)).order_by("number", "id")

    @classmethod
    def list_by_event(cls, *, event):
        event = get_event(event)
        if event.plan_id is None:
            return Stand.objects.none()
        return cls.list_by_plan(plan=event.plan_id)

    @classmethod
    def list_available_by_event(cls, *, event):
        return cls.list_by_event(event=event).filter(status=StandStatus.AVAILABLE)

    @classmethod
    def orphaned_reservations(cls):
        return Stand.objects.filter(status=StandStatus.RESERVED).filter(
            Q(reservation__isnull=True)
            | Q(reservation__status__in=[RegistrationStatus.CANCELLED, RegistrationStatus.REJECTED])
        )

    @classmethod
    def reconcile(cls):
        """Free reserved stands whose holder is missing or no longer active.

        Returns the ids of the stands that were released.
        """
        released = []
        for stand_id in cls.orphaned_reservations().values_list("id", flat=True):
            with transaction.atomic():
                if cls.free(stand_id=stand_id):
                    released.append(stand_id)
        if released:
            logger.warning("Released %d orphaned stand reservations: %s", len(released), released)
        return released
