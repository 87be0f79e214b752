from django.core.files.base import ContentFile
from django.core.files.storage import default_storage


def render_invoice_text(invoice):
    """Write a plain-text copy of ``invoice`` to the default storage and return its path.

    Enable with ``EXPOHUB_INVOICE_RENDERER = "invoicing.rendering.render_invoice_text"``.
    """
    lines = [
        f"Invoice {invoice.invoice_number}",
        f"Date: {invoice.created_at:%Y-%m-%d}",
        f"Organizer: {invoice.organizer.organization_name}",
        f"Exhibitor: {invoice.exhibitor.company_name}",
        f"Event: {invoice.event.name}",
        "",
    ]
    for item in invoice.items.all():
        lines.append(f"{item.name:<40} {item.quantity:>4} x {item.unit_price:>10} = {item.line_total:>10}")
    lines += [
        "",
        f"{'Subtotal':<40} {invoice.subtotal:>30}",
        f"{'Tax (' + str(invoice.tax_rate) + ')':<40} {invoice.tax_amount:>30}",
        f"{'Total':<40} {invoice.total:>30}",
    ]
    content = ContentFile("\n".join(lines) + "\n")
    return default_storage.save(f"invoices/{invoice.invoice_number}.txt", content)
