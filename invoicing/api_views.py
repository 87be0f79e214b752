from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from events.authz import enforce_principal_api, error_response, require_capability
from events.errors import ForbiddenError, WorkflowError
from registrations.services import RegistrationService

from .services import InvoiceService


def serialize_invoice(invoice):
    return {
        "id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "registration_id": invoice.registration_id,
        "exhibitor_id": invoice.exhibitor_id,
        "organizer_id": invoice.organizer_id,
        "event_id": invoice.event_id,
        "status": invoice.status,
        "subtotal": str(invoice.subtotal),
        "tax_rate": str(invoice.tax_rate),
        "tax_amount": str(invoice.tax_amount),
        "total": str(invoice.total),
        "document_path": invoice.document_path,
        "created_at": invoice.created_at.isoformat(),
        "paid_at": invoice.paid_at.isoformat() if invoice.paid_at else None,
        "items": [
            {
                "item_type": item.item_type,
                "name": item.name,
                "description": item.description,
                "unit_price": str(item.unit_price),
                "quantity": item.quantity,
                "line_total": str(item.line_total),
            }
            for item in invoice.items.all()
        ],
    }


def _check_visible(principal, invoice):
    if not InvoiceService.can_view(principal, invoice):
        raise ForbiddenError("You do not have access to this invoice.", invoice_id=invoice.id)


@login_required
@require_http_methods(["GET"])
def invoice_detail_api(request, invoice_id):
    principal, auth_error = enforce_principal_api(request)
    if auth_error:
        return auth_error
    try:
        invoice = InvoiceService.get(invoice_id)
        _check_visible(principal, invoice)
    except WorkflowError as exc:
        return error_response(exc)
    return JsonResponse({"ok": True, "invoice": serialize_invoice(invoice)})


@login_required
@require_http_methods(["GET"])
def registration_invoice_api(request, registration_id):
    principal, auth_error = enforce_principal_api(request)
    if auth_error:
        return auth_error
    try:
        registration = RegistrationService.get(registration_id)
        if not RegistrationService.can_view(principal, registration):
            raise ForbiddenError("You do not have access to this registration.", registration_id=registration_id)
        invoice = InvoiceService.get_for_registration(registration)
    except WorkflowError as exc:
        return error_response(exc)
    return JsonResponse({"ok": True, "invoice": serialize_invoice(invoice)})


@login_required
@require_http_methods(["POST"])
def mark_invoice_paid_api(request, invoice_id):
    principal, auth_error = enforce_principal_api(request)
    if auth_error:
        return auth_error
    try:
        require_capability(principal, roles=set(), message="Only the payment service can settle invoices.")
        invoice = InvoiceService.mark_paid(invoice=invoice_id)
    except (WorkflowError, ValidationError) as exc:
        return error_response(exc)
    return JsonResponse({"ok": True, "invoice": serialize_invoice(invoice)})
