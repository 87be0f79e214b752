from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from events.authz import Role, enforce_principal_api, error_response
from events.errors import WorkflowError

from .services import StandInventory


def serialize_stand(stand):
    return {
        "id": stand.id,
        "plan_id": stand.plan_id,
        "number": stand.number,
        "name": stand.display_name,
        "stand_type": stand.stand_type,
        "area": str(stand.area),
        "base_price": str(stand.base_price),
        "status": stand.status,
    }


def _stands_response(principal, stands):
    rows = []
    for stand in stands:
        row = serialize_stand(stand)
        # Holders are only disclosed to organizer-side principals.
        if principal.role != Role.EXHIBITOR:
            row["registration_id"] = stand.reservation_id
        rows.append(row)
    return JsonResponse({"ok": True, "stands": rows})


@login_required
@require_http_methods(["GET"])
def event_stands_api(request, event_id):
    principal, auth_error = enforce_principal_api(request)
    if auth_error:
        return auth_error
    try:
        stands = StandInventory.list_by_event(event=event_id)
    except WorkflowError as exc:
        return error_response(exc)
    return _stands_response(principal, stands)


@login_required
@require_http_methods(["GET"])
def event_available_stands_api(request, event_id):
    principal, auth_error = enforce_principal_api(request)
    if auth_error:
        return auth_error
    try:
        stands = StandInventory.list_available_by_event(event=event_id)
    except WorkflowError as exc:
        return error_response(exc)
    return _stands_response(principal, stands)


@login_required
@require_http_methods(["GET"])
def plan_stands_api(request, plan_id):
    principal, auth_error = enforce_principal_api(request)
    if auth_error:
        return auth_error
    try:
        stands = StandInventory.list_by_plan(plan=plan_id)
    except WorkflowError as exc:
        return error_response(exc)
    return _stands_response(principal, stands)
