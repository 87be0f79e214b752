import logging

from django.db import transaction
from django.db.models import Sum

from events.authz import Role, require_capability
from events.errors import ConflictError, InsufficientInventoryError, NotFoundError
from events.services import get_event, get_organizer_for_user, pk_of, resolve
from registrations.models import EquipmentAllocation, RegistrationStatus

from .models import Equipment, EventEquipment

logger = logging.getLogger(__name__)


class EquipmentInventory:
    @classmethod
    @transaction.atomic
    def create_equipment(
        cls,
        *,
        principal,
        name,
        price,
        quantity=0,
        description="",
        category="",
        unit="event",
        is_available=True,
    ):
        require_capability(principal, roles={Role.ORGANIZER}, message="Only organizers can manage the equipment catalog.")
        organizer = get_organizer_for_user(principal.user_id)
        return Equipment.objects.create(
            organizer=organizer,
            name=name.strip(),
            description=description.strip(),
            category=category.strip(),
            unit=unit,
            price=price,
            quantity=quantity,
            is_available=is_available,
        )

    @classmethod
    def _require_owner(cls, *, principal, equipment, event, message):
        require_capability(principal, roles={Role.ORGANIZER}, owner_id=equipment.organizer.user_id, message=message)
        require_capability(principal, roles={Role.ORGANIZER}, owner_id=event.organizer.user_id, message=message)

    @classmethod
    @transaction.atomic
    def associate_with_event(cls, *, principal, equipment, event, special_price=None, available_quantity=None):
        equipment = resolve(Equipment, equipment, queryset=Equipment.objects.select_related("organizer"))
        event = get_event(event)
        cls._require_owner(
            principal=principal,
            equipment=equipment,
            event=event,
            message="You do not have permission to offer this equipment for this event.",
        )
        if EventEquipment.objects.filter(equipment=equipment, event=event).exists():
            raise ConflictError(
                f"{equipment.name} is already offered for {event.name}.",
                equipment_id=equipment.id,
                event_id=event.id,
            )
        offer = EventEquipment.objects.create(
            equipment=equipment,
            event=event,
            special_price=special_price,
            available_quantity=available_quantity,
        )
        logger.info("Equipment %s offered for event %s", equipment.id, event.id)
        return offer

    @classmethod
    @transaction.atomic
    def dissociate_from_event(cls, *, principal, equipment, event):
        equipment = resolve(Equipment, equipment, queryset=Equipment.objects.select_related("organizer"))
        event = get_event(event)
        cls._require_owner(
            principal=principal,
            equipment=equipment,
            event=event,
            message="You do not have permission to withdraw this equipment from this event.",
        )
        offer = EventEquipment.objects.select_for_update().filter(equipment=equipment, event=event).first()
        if offer is None:
            raise NotFoundError(
                f"{equipment.name} is not offered for {event.name}.",
                equipment_id=equipment.id,
                event_id=event.id,
            )
        allocated = cls.allocated_quantity(equipment=equipment, event=event)
        if allocated:
            raise ConflictError(
                f"{equipment.name} is still allocated to registrations for {event.name}.",
                equipment_id=equipment.id,
                event_id=event.id,
                allocated=allocated,
            )
        offer.delete()
        logger.info("Equipment %s withdrawn from event %s", equipment.id, event.id)

    @classmethod
    def get_offer(cls, *, equipment, event):
        offer = (
            EventEquipment.objects.select_related("equipment")
            .filter(equipment_id=pk_of(equipment), event_id=pk_of(event))
            .first()
        )
        if offer is None:
            raise NotFoundError(
                f"Equipment {pk_of(equipment)} is not offered for event {pk_of(event)}.",
                equipment_id=pk_of(equipment),
                event_id=pk_of(event),
            )
        return offer

    @classmethod
    def event_cap(cls, *, equipment, event):
        return cls.get_offer(equipment=equipment, event=event).total_quantity

    @classmethod
    def unit_price(cls, *, equipment, event):
        return cls.get_offer(equipment=equipment, event=event).unit_price

    @classmethod
    def allocated_quantity(cls, *, equipment, event, exclude_registration=None):
        allocations = EquipmentAllocation.objects.filter(
            equipment_id=pk_of(equipment),
            registration__event_id=pk_of(event),
        ).exclude(registration__status=RegistrationStatus.CANCELLED)
        if exclude_registration is not None:
            allocations = allocations.exclude(registration_id=pk_of(exclude_registration))
        return allocations.aggregate(total=Sum("quantity"))["total"] or 0

    @classmethod
    def available_quantity(cls, *, equipment, event, exclude_registration=None):
        cap = cls.event_cap(equipment=equipment, event=event)
        allocated = cls.allocated_quantity(equipment=equipment, event=event, exclude_registration=exclude_registration)
        return max(cap - allocated, 0)

    @classmethod
    def lock_for_allocation(cls, *, equipment_ids, event):
        """Lock the per-event offers for ``equipment_ids`` and return them keyed by equipment id.

        Rows are locked in ascending id order so two selections touching the
        same equipment never wait on each other in opposite orders. Must run
        inside a transaction.
        """
        event_id = pk_of(event)
        wanted = sorted(set(equipment_ids))
        offers = {
            offer.equipment_id: offer
            for offer in EventEquipment.objects.select_for_update()
            .select_related("equipment")
            .filter(event_id=event_id, equipment_id__in=wanted)
            .order_by("id")
        }
        for equipment_id in wanted:
            offer = offers.get(equipment_id)
            if offer is None or not offer.equipment.is_available:
                raise NotFoundError(
                    f"Equipment {equipment_id} is not offered for event {event_id}.",
                    equipment_id=equipment_id,
                    event_id=event_id,
                )
        return offers

    @classmethod
    def check_allocation(cls, *, offer, quantity, registration):
        available = cls.available_quantity(
            equipment=offer.equipment_id,
            event=offer.event_id,
            exclude_registration=registration,
        )
        if quantity > available:
            raise InsufficientInventoryError(
                f"Only {available} units of {offer.equipment.name} are available.",
                equipment_id=offer.equipment_id,
                requested=quantity,
                available=available,
            )
        return available

    @classmethod
    def list_available_for_event(cls, *, event):
        event = get_event(event)
        offers = (
            EventEquipment.objects.select_related("equipment")
            .filter(event=event, equipment__is_available=True)
            .order_by("equipment__name", "id")
        )
        rows = []
        for offer in offers:
            allocated = cls.allocated_quantity(equipment=offer.equipment_id, event=event)
            rows.append(
                {
                    "equipment_id": offer.equipment_id,
                    "name": offer.equipment.name,
                    "category": offer.equipment.category,
                    "unit": offer.equipment.unit,
                    "unit_price": offer.unit_price,
                    "total_quantity": offer.total_quantity,
                    "allocated_quantity": allocated,
                    "available_quantity": max(offer.total_quantity - allocated, 0),
                }
            )
        return rows
