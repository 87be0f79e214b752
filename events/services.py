from django.db import models
from django.utils import timezone

from .errors import InvalidStateError, NotFoundError
from .models import Event, EventStatus, Exhibitor, Organizer


def resolve(model, ref, *, for_update=False, queryset=None):
    """Return the ``model`` instance behind ``ref``, which is an instance or a primary key.

    With ``for_update`` the row is always re-read under ``select_for_update``,
    even when an instance was passed in.
    """
    if isinstance(ref, models.Model) and not for_update:
        return ref
    pk = ref.pk if isinstance(ref, models.Model) else ref
    qs = queryset if queryset is not None else model.objects.all()
    if for_update:
        qs = qs.select_for_update()
    instance = qs.filter(pk=pk).first()
    if instance is None:
        raise NotFoundError(f"{model.__name__} {pk} not found.", entity=model.__name__, id=pk)
    return instance


def pk_of(ref):
    return ref.pk if isinstance(ref, models.Model) else ref


def get_event(event, *, for_update=False):
    return resolve(Event, event, for_update=for_update, queryset=Event.objects.select_related("organizer", "plan"))


def get_exhibitor_for_user(user_id):
    exhibitor = Exhibitor.objects.select_related("user").filter(user_id=user_id).first()
    if exhibitor is None:
        raise NotFoundError("Exhibitor profile not found.", user_id=user_id)
    return exhibitor


def get_organizer_for_user(user_id):
    organizer = Organizer.objects.filter(user_id=user_id).first()
    if organizer is None:
        raise NotFoundError("Organizer profile not found.", user_id=user_id)
    return organizer


def assert_event_open_for_registration(event):
    if event.status != EventStatus.PUBLISHED:
        raise InvalidStateError(
            "Registrations are only accepted for published events.",
            event_id=event.id,
            status=event.status,
        )
    if timezone.now() > event.registration_deadline:
        raise InvalidStateError(
            "The registration deadline for this event has passed.",
            event_id=event.id,
            registration_deadline=event.registration_deadline.isoformat(),
        )


def time_until_start(event, *, now=None):
    current = now or timezone.now()
    return event.start_date - current
