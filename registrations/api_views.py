import json

from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from events.authz import enforce_principal_api, error_response
from events.errors import ForbiddenError, WorkflowError

from .services import RegistrationService


def _json_body(request):
    if not request.body:
        return {}
    try:
        body = json.loads(request.body.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object.")
    return body


def _optional_int(value, *, field):
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be an integer.") from exc


def _optional_text(value, *, field):
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string.")
    return value


def _optional_bool(value):
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def serialize_registration(registration):
    return {
        "id": registration.id,
        "exhibitor_id": registration.exhibitor_id,
        "event_id": registration.event_id,
        "status": registration.status,
        "participation_note": registration.participation_note,
        "stands": sorted(stand.id for stand in registration.stands.all()),
        "equipment": [
            {"equipment_id": allocation.equipment_id, "quantity": allocation.quantity}
            for allocation in registration.equipment_allocations.all()
        ],
        "stand_selection_completed": registration.stand_selection_completed,
        "equipment_selection_completed": registration.equipment_selection_completed,
        "approval_date": registration.approval_date.isoformat() if registration.approval_date else None,
        "rejection_date": registration.rejection_date.isoformat() if registration.rejection_date else None,
        "rejection_reason": registration.rejection_reason,
        "cancelled_at": registration.cancelled_at.isoformat() if registration.cancelled_at else None,
        "cancelled_by_role": registration.cancelled_by_role,
        "cancellation_reason": registration.cancellation_reason,
        "created_at": registration.created_at.isoformat(),
    }


def _visible_registration(principal, registration_id):
    registration = RegistrationService.get(registration_id)
    if not RegistrationService.can_view(principal, registration):
        raise ForbiddenError("You do not have access to this registration.", registration_id=registration_id)
    return registration


@login_required
@require_http_methods(["GET", "POST"])
def registrations_api(request):
    principal, auth_error = enforce_principal_api(request)
    if auth_error:
        return auth_error

    try:
        if request.method == "GET":
            registrations = RegistrationService.list_visible_to(
                principal,
                exhibitor=_optional_int(request.GET.get("exhibitor"), field="exhibitor"),
                event=_optional_int(request.GET.get("event"), field="event"),
                status=request.GET.get("status") or None,
            )
            return JsonResponse(
                {"ok": True, "registrations": [serialize_registration(item) for item in registrations]}
            )

        body = _json_body(request)
        event_id = _optional_int(body.get("event_id"), field="event_id")
        if event_id is None:
            raise ValidationError("event_id is required.")
        registration = RegistrationService.create(
            principal=principal,
            event=event_id,
            participation_note=_optional_text(body.get("participation_note"), field="participation_note"),
            exhibitor=_optional_int(body.get("exhibitor_id"), field="exhibitor_id"),
        )
    except (WorkflowError, ValidationError) as exc:
        return error_response(exc)

    return JsonResponse({"ok": True, "registration": serialize_registration(registration)}, status=201)


@login_required
@require_http_methods(["GET", "PATCH", "DELETE"])
def registration_detail_api(request, registration_id):
    principal, auth_error = enforce_principal_api(request)
    if auth_error:
        return auth_error

    try:
        if request.method == "DELETE":
            RegistrationService.remove(registration=registration_id, principal=principal)
            return JsonResponse({"ok": True, "deleted": registration_id})
        if request.method == "PATCH":
            body = _json_body(request)
            registration = RegistrationService.update_note(
                registration=registration_id,
                principal=principal,
                participation_note=_optional_text(body.get("participation_note"), field="participation_note"),
            )
        else:
            registration = _visible_registration(principal, registration_id)
    except (WorkflowError, ValidationError) as exc:
        return error_response(exc)

    return JsonResponse({"ok": True, "registration": serialize_registration(registration)})


@login_required
@require_http_methods(["POST"])
def review_registration_api(request, registration_id):
    principal, auth_error = enforce_principal_api(request)
    if auth_error:
        return auth_error

    try:
        body = _json_body(request)
        registration = RegistrationService.review(
            registration=registration_id,
            decision=_optional_text(body.get("decision"), field="decision").strip().lower(),
            principal=principal,
            reason=_optional_text(body.get("reason"), field="reason"),
        )
    except (WorkflowError, ValidationError) as exc:
        return error_response(exc)

    return JsonResponse({"ok": True, "registration": serialize_registration(registration)})


@login_required
@require_http_methods(["POST"])
def select_stands_api(request, registration_id):
    principal, auth_error = enforce_principal_api(request)
    if auth_error:
        return auth_error

    try:
        body = _json_body(request)
        registration = RegistrationService.select_stands(
            registration=registration_id,
            stand_ids=body.get("stand_ids"),
            principal=principal,
            completed=_optional_bool(body.get("completed")),
        )
    except (WorkflowError, ValidationError) as exc:
        return error_response(exc)

    return JsonResponse({"ok": True, "registration": serialize_registration(registration)})


@login_required
@require_http_methods(["POST"])
def select_equipment_api(request, registration_id):
    principal, auth_error = enforce_principal_api(request)
    if auth_error:
        return auth_error

    try:
        body = _json_body(request)
        registration = RegistrationService.select_equipment(
            registration=registration_id,
            allocations=body.get("allocations"),
            principal=principal,
            completed=_optional_bool(body.get("completed")),
        )
    except (WorkflowError, ValidationError) as exc:
        return error_response(exc)

    return JsonResponse({"ok": True, "registration": serialize_registration(registration)})


@login_required
@require_http_methods(["POST"])
def cancel_registration_api(request, registration_id):
    principal, auth_error = enforce_principal_api(request)
    if auth_error:
        return auth_error

    try:
        body = _json_body(request)
        registration = RegistrationService.cancel(
            registration=registration_id,
            principal=principal,
            reason=_optional_text(body.get("reason"), field="reason"),
        )
    except (WorkflowError, ValidationError) as exc:
        return error_response(exc)

    return JsonResponse({"ok": True, "registration": serialize_registration(registration)})
