from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from events.authz import enforce_principal_api, error_response
from events.errors import WorkflowError

from .services import EquipmentInventory


@login_required
@require_http_methods(["GET"])
def event_available_equipment_api(request, event_id):
    _, auth_error = enforce_principal_api(request)
    if auth_error:
        return auth_error
    try:
        rows = EquipmentInventory.list_available_for_event(event=event_id)
    except WorkflowError as exc:
        return error_response(exc)
    return JsonResponse(
        {
            "ok": True,
            "equipment": [{**row, "unit_price": str(row["unit_price"])} for row in rows],
        }
    )
