from django.contrib import admin

from .models import Invoice, InvoiceItem


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0
    readonly_fields = ("item_type", "name", "description", "unit_price", "quantity", "line_total")
    can_delete = False


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ("invoice_number", "exhibitor", "event", "total", "status", "created_at")
    list_filter = ("status", "event")
    search_fields = ("invoice_number", "exhibitor__company_name", "event__name")
    readonly_fields = ("subtotal", "tax_rate", "tax_amount", "total", "created_at")
    inlines = [InvoiceItemInline]
