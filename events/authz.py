from dataclasses import dataclass

from django.core.exceptions import ValidationError
from django.db import models
from django.http import JsonResponse

from .errors import ForbiddenError


class Role(models.TextChoices):
    EXHIBITOR = "exhibitor", "Exhibitor"
    ORGANIZER = "organizer", "Organizer"
    ADMIN = "admin", "Admin"


ORGANIZER_SIDE_ROLES = frozenset({Role.ORGANIZER, Role.ADMIN})


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: str

    @property
    def is_admin(self):
        return self.role == Role.ADMIN


def resolve_principal(user):
    if not user or not user.is_authenticated:
        raise ForbiddenError("Authentication required.")
    if user.is_superuser:
        return Principal(user_id=user.id, role=Role.ADMIN)
    if hasattr(user, "organizer_profile"):
        return Principal(user_id=user.id, role=Role.ORGANIZER)
    if hasattr(user, "exhibitor_profile"):
        return Principal(user_id=user.id, role=Role.EXHIBITOR)
    raise ForbiddenError("The user has no exhibitor or organizer profile.", user_id=user.id)


def has_capability(principal, *, roles, owner_id=None):
    if principal.is_admin:
        return True
    if principal.role not in roles:
        return False
    if owner_id is None:
        return True
    return principal.user_id == owner_id


def require_capability(principal, *, roles, owner_id=None, message="You are not allowed to perform this action."):
    if not has_capability(principal, roles=roles, owner_id=owner_id):
        raise ForbiddenError(message, user_id=principal.user_id, role=principal.role)
    return principal


def enforce_principal_api(request):
    try:
        return resolve_principal(request.user), None
    except ForbiddenError as exc:
        return None, JsonResponse({"ok": False, **exc.as_dict()}, status=exc.http_status)


def error_response(exc):
    if isinstance(exc, ValidationError):
        return JsonResponse({"ok": False, "code": "invalid", "error": "; ".join(exc.messages)}, status=400)
    return JsonResponse({"ok": False, **exc.as_dict()}, status=exc.http_status)
