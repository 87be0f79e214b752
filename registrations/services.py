import logging
from datetime import timedelta

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction

from equipment.services import EquipmentInventory
from events.authz import Role, require_capability
from events.errors import ConflictError, InvalidStateError, NotAvailableError, NotFoundError, TooLateToCancelError
from events.models import Exhibitor
from events.services import (
    assert_event_open_for_registration,
    get_event,
    get_exhibitor_for_user,
    pk_of,
    resolve,
    time_until_start,
)
from invoicing.services import InvoiceGenerator
from stands.models import Stand
from stands.services import StandInventory

from .models import CANCELLABLE_STATUSES, EquipmentAllocation, Registration, RegistrationStatus
from .notifications import get_dispatcher

logger = logging.getLogger(__name__)

DEFAULT_CANCELLATION_WINDOW_DAYS = 10
REVIEW_DECISIONS = frozenset({RegistrationStatus.APPROVED, RegistrationStatus.REJECTED})


def _registration_queryset():
    return Registration.objects.select_related("exhibitor__user", "event__organizer")


def _clean_id(raw, *, label):
    if isinstance(raw, bool):
        raise ValidationError(f"Invalid {label} id: {raw!r}.")
    if isinstance(raw, float):
        if not raw.is_integer():
            raise ValidationError(f"Invalid {label} id: {raw!r}.")
        return int(raw)
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid {label} id: {raw!r}.") from exc


def _clean_stand_ids(stand_ids):
    if not isinstance(stand_ids, (list, tuple)):
        raise ValidationError("stand_ids must be a list of stand ids.")
    cleaned = []
    for raw in stand_ids:
        stand_id = _clean_id(raw, label="stand")
        if stand_id not in cleaned:
            cleaned.append(stand_id)
    return cleaned


def _clean_allocations(allocations):
    """Normalize ``allocations`` into an ordered list of ``(equipment_id, quantity)`` pairs.

    Accepts mappings with ``equipment``/``equipment_id`` and ``quantity`` keys
    or plain two-item pairs.
    """
    if not isinstance(allocations, (list, tuple)):
        raise ValidationError("allocations must be a list of equipment/quantity pairs.")
    cleaned = []
    seen = set()
    for item in allocations:
        if isinstance(item, dict):
            equipment = item.get("equipment_id", item.get("equipment"))
            quantity = item.get("quantity")
        else:
            try:
                equipment, quantity = item
            except (TypeError, ValueError) as exc:
                raise ValidationError(f"Invalid allocation: {item!r}.") from exc
        equipment_id = _clean_id(pk_of(equipment), label="equipment")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(f"Quantity for equipment {equipment_id} must be a whole number of at least 1.")
        if equipment_id in seen:
            raise ValidationError(f"Equipment {equipment_id} appears more than once.")
        seen.add(equipment_id)
        cleaned.append((equipment_id, quantity))
    return cleaned


class RegistrationService:
    @classmethod
    def _lock(cls, registration):
        return resolve(Registration, registration, for_update=True)

    @classmethod
    def _assert_status(cls, registration, allowed, *, action):
        if registration.status not in allowed:
            raise InvalidStateError(
                f"A {registration.get_status_display().lower()} registration cannot be {action}.",
                registration_id=registration.id,
                status=registration.status,
            )

    @classmethod
    def _require_owner(cls, principal, registration, *, message):
        exhibitor = Exhibitor.objects.only("user_id").get(pk=registration.exhibitor_id)
        require_capability(principal, roles={Role.EXHIBITOR}, owner_id=exhibitor.user_id, message=message)

    @classmethod
    def _require_event_owner(cls, principal, event, *, message):
        require_capability(principal, roles={Role.ORGANIZER}, owner_id=event.organizer.user_id, message=message)

    @classmethod
    def _held_stand_ids(cls, registration):
        selected = set(registration.stands.values_list("id", flat=True))
        back_referenced = set(Stand.objects.filter(reservation_id=registration.id).values_list("id", flat=True))
        return sorted(selected | back_referenced)

    @classmethod
    def _free_held_stands(cls, registration):
        freed = []
        for stand_id in cls._held_stand_ids(registration):
            try:
                with transaction.atomic():
                    StandInventory.free(stand_id=stand_id)
            except (DatabaseError, NotFoundError):
                logger.exception("Could not free stand %s held by registration %s", stand_id, registration.id)
                continue
            freed.append(stand_id)
        return freed

    @classmethod
    def _complete_if_ready(cls, registration):
        if registration.status != RegistrationStatus.APPROVED or not registration.selections_completed:
            return None
        registration.transition_to(RegistrationStatus.COMPLETED)
        registration.save(update_fields=["status", "updated_at"])
        logger.info("Registration %s completed", registration.id)
        return InvoiceGenerator.generate(registration=registration)

    @classmethod
    def _notify(cls, kind, registration, **context):
        registration = _registration_queryset().get(pk=registration.pk)
        email = registration.exhibitor.contact_email
        if not email:
            logger.warning("Registration %s has no contact address; %s notice skipped", registration.id, kind)
            return False
        payload = {
            "exhibitor_name": registration.exhibitor.company_name,
            "event_name": registration.event.name,
            "event_start": registration.event.start_date.isoformat(),
            **context,
        }
        try:
            getattr(get_dispatcher(), f"notify_{kind}")(email, payload)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to send %s notification for registration %s", kind, registration.id)
            return False
        return True

    @classmethod
    @transaction.atomic
    def create(cls, *, principal, event, participation_note="", exhibitor=None):
        require_capability(principal, roles={Role.EXHIBITOR}, message="Only exhibitors can register for events.")
        if principal.is_admin:
            if exhibitor is None:
                raise ValidationError("An exhibitor is required when registering on behalf of one.")
            exhibitor = resolve(Exhibitor, exhibitor)
        else:
            exhibitor = get_exhibitor_for_user(principal.user_id)

        event = get_event(event)
        assert_event_open_for_registration(event)

        active = Registration.objects.filter(exhibitor=exhibitor, event=event).exclude(
            status=RegistrationStatus.CANCELLED
        )
        if active.exists():
            raise ConflictError(
                "You already have a registration for this event.",
                exhibitor_id=exhibitor.id,
                event_id=event.id,
            )
        try:
            with transaction.atomic():
                registration = Registration.objects.create(
                    exhibitor=exhibitor,
                    event=event,
                    participation_note=(participation_note or "").strip(),
                    status=RegistrationStatus.PENDING,
                )
        except IntegrityError as exc:
            raise ConflictError(
                "You already have a registration for this event.",
                exhibitor_id=exhibitor.id,
                event_id=event.id,
            ) from exc
        logger.info("Registration %s created for exhibitor %s on event %s", registration.id, exhibitor.id, event.id)
        return registration

    @classmethod
    @transaction.atomic
    def update_note(cls, *, registration, principal, participation_note):
        registration = cls._lock(registration)
        cls._require_owner(principal, registration, message="You can only edit your own registrations.")
        cls._assert_status(registration, {RegistrationStatus.PENDING}, action="edited")
        registration.participation_note = (participation_note or "").strip()
        registration.save(update_fields=["participation_note", "updated_at"])
        return registration

    @classmethod
    def review(cls, *, registration, decision, principal, reason=""):
        registration = cls._review(registration=registration, decision=decision, principal=principal, reason=reason)
        if registration.status == RegistrationStatus.APPROVED:
            cls._notify("approved", registration)
        else:
            cls._notify("rejected", registration, reason=registration.rejection_reason)
        return registration

    @classmethod
    @transaction.atomic
    def _review(cls, *, registration, decision, principal, reason):
        registration = cls._lock(registration)
        event = get_event(registration.event_id)
        cls._require_event_owner(principal, event, message="Only the event organizer can review registrations.")
        if decision not in REVIEW_DECISIONS:
            raise ValidationError(f"Unknown review decision: {decision!r}.")
        cls._assert_status(registration, {RegistrationStatus.PENDING}, action="reviewed")

        reason = (reason or "").strip()
        if decision == RegistrationStatus.REJECTED and not reason:
            raise ValidationError("A reason is required to reject a registration.")

        registration.transition_to(decision)
        registration.reviewed_by_id = principal.user_id
        update_fields = ["status", "reviewed_by", "updated_at"]
        if decision == RegistrationStatus.APPROVED:
            update_fields.append("approval_date")
        else:
            registration.rejection_reason = reason
            update_fields += ["rejection_date", "rejection_reason"]
        registration.save(update_fields=update_fields)
        logger.info("Registration %s %s by user %s", registration.id, decision, principal.user_id)
        return registration

    @classmethod
    @transaction.atomic
    def select_stands(cls, *, registration, stand_ids, principal, completed=None):
        registration = cls._lock(registration)
        cls._require_owner(principal, registration, message="You can only select stands for your own registrations.")
        cls._assert_status(registration, {RegistrationStatus.APPROVED}, action="given stands")

        stand_ids = _clean_stand_ids(stand_ids)
        event = get_event(registration.event_id)
        stands = Stand.objects.in_bulk(stand_ids)
        for stand_id in stand_ids:
            stand = stands.get(stand_id)
            if stand is None:
                raise NotFoundError(f"Stand {stand_id} not found.", entity="Stand", id=stand_id)
            if event.plan_id is None or stand.plan_id != event.plan_id:
                raise NotAvailableError(
                    f"Stand {stand.number} is not part of the floor plan for {event.name}.",
                    stand_id=stand_id,
                    event_id=event.id,
                )
            if not StandInventory.is_selectable(stand=stand, registration_id=registration.id):
                raise NotAvailableError(
                    f"Stand {stand.number} is not available.",
                    stand_id=stand_id,
                    status=stand.status,
                    registration_id=registration.id,
                )

        for stand_id in stand_ids:
            if stands[stand_id].reservation_id != registration.id:
                StandInventory.reserve(stand_id=stand_id, registration=registration)

        registration.stands.set(stand_ids)
        if completed is not None:
            registration.stand_selection_completed = bool(completed)
        registration.save(update_fields=["stand_selection_completed", "updated_at"])
        logger.info("Registration %s selected stands %s", registration.id, stand_ids)
        cls._complete_if_ready(registration)
        return registration

    @classmethod
    @transaction.atomic
    def select_equipment(cls, *, registration, allocations, principal, completed=None):
        registration = cls._lock(registration)
        cls._require_owner(
            principal,
            registration,
            message="You can only select equipment for your own registrations.",
        )
        allowed = {RegistrationStatus.APPROVED}
        if getattr(settings, "EXPOHUB_ALLOW_COMPLETED_RESELECTION", False):
            allowed.add(RegistrationStatus.COMPLETED)
        cls._assert_status(registration, allowed, action="given equipment")

        items = _clean_allocations(allocations)
        offers = EquipmentInventory.lock_for_allocation(
            equipment_ids=[equipment_id for equipment_id, _ in items],
            event=registration.event_id,
        )
        for equipment_id, quantity in items:
            EquipmentInventory.check_allocation(offer=offers[equipment_id], quantity=quantity, registration=registration)

        registration.equipment_allocations.all().delete()
        EquipmentAllocation.objects.bulk_create(
            [
                EquipmentAllocation(registration=registration, equipment_id=equipment_id, quantity=quantity, position=index)
                for index, (equipment_id, quantity) in enumerate(items)
            ]
        )
        if completed is not None:
            registration.equipment_selection_completed = bool(completed)
        registration.save(update_fields=["equipment_selection_completed", "updated_at"])
        logger.info("Registration %s allocated equipment %s", registration.id, items)
        cls._complete_if_ready(registration)
        return registration

    @classmethod
    def cancel(cls, *, registration, principal, reason=""):
        registration = cls._cancel(registration=registration, principal=principal, reason=reason)
        cls._notify(
            "cancelled",
            registration,
            cancelled_by=registration.cancelled_by_role,
            reason=registration.cancellation_reason,
        )
        return registration

    @classmethod
    @transaction.atomic
    def _cancel(cls, *, registration, principal, reason):
        registration = cls._lock(registration)
        event = get_event(registration.event_id)
        if principal.role == Role.EXHIBITOR:
            cls._require_owner(principal, registration, message="You can only cancel your own registrations.")
        else:
            cls._require_event_owner(
                principal,
                event,
                message="Only the event organizer can cancel this registration.",
            )
        cls._assert_status(registration, CANCELLABLE_STATUSES, action="cancelled")

        if principal.role == Role.EXHIBITOR:
            window_days = getattr(settings, "EXPOHUB_CANCELLATION_WINDOW_DAYS", DEFAULT_CANCELLATION_WINDOW_DAYS)
            remaining = time_until_start(event)
            if remaining < timedelta(days=window_days):
                raise TooLateToCancelError(
                    f"Registrations can only be cancelled at least {window_days} days before the event starts.",
                    registration_id=registration.id,
                    event_start=event.start_date.isoformat(),
                    window_days=window_days,
                )

        freed = cls._free_held_stands(registration)
        registration.stands.clear()
        registration.equipment_allocations.all().delete()
        registration.stand_selection_completed = False
        registration.equipment_selection_completed = False
        registration.transition_to(RegistrationStatus.CANCELLED)
        registration.cancelled_by_id = principal.user_id
        registration.cancelled_by_role = principal.role
        registration.cancellation_reason = (reason or "").strip()
        if principal.role != Role.EXHIBITOR:
            registration.reviewed_by_id = principal.user_id
        registration.save()
        logger.info(
            "Registration %s cancelled by %s %s; freed stands %s",
            registration.id,
            principal.role,
            principal.user_id,
            freed,
        )
        return registration

    @classmethod
    @transaction.atomic
    def remove(cls, *, registration, principal):
        require_capability(principal, roles=set(), message="Only administrators can delete registrations.")
        registration = cls._lock(registration)
        registration_id = registration.id
        freed = cls._free_held_stands(registration)
        registration.delete()
        logger.warning("Registration %s deleted by user %s; freed stands %s", registration_id, principal.user_id, freed)
        return registration_id

    @classmethod
    def get(cls, registration_id):
        return resolve(Registration, registration_id, queryset=_registration_queryset())

    @classmethod
    def can_view(cls, principal, registration):
        if principal.is_admin:
            return True
        if principal.role == Role.EXHIBITOR:
            return registration.exhibitor.user_id == principal.user_id
        return registration.event.organizer.user_id == principal.user_id

    @classmethod
    def list(cls, *, exhibitor=None, event=None, status=None):
        registrations = _registration_queryset().prefetch_related("stands", "equipment_allocations__equipment")
        if exhibitor is not None:
            registrations = registrations.filter(exhibitor_id=pk_of(exhibitor))
        if event is not None:
            registrations = registrations.filter(event_id=pk_of(event))
        if status:
            if status not in RegistrationStatus.values:
                raise ValidationError(f"Unknown registration status: {status!r}.")
            registrations = registrations.filter(status=status)
        return registrations

    @classmethod
    def list_for_exhibitor(cls, exhibitor):
        return cls.list(exhibitor=exhibitor)

    @classmethod
    def list_for_event(cls, event):
        return cls.list(event=event)

    @classmethod
    def list_visible_to(cls, principal, *, exhibitor=None, event=None, status=None):
        registrations = cls.list(exhibitor=exhibitor, event=event, status=status)
        if principal.is_admin:
            return registrations
        if principal.role == Role.EXHIBITOR:
            return registrations.filter(exhibitor__user_id=principal.user_id)
        return registrations.filter(event__organizer__user_id=principal.user_id)
