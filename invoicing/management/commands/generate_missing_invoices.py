from django.core.management.base import BaseCommand, CommandError

from invoicing.services import InvoiceService


class Command(BaseCommand):
    help = "Generates invoices for completed registrations that are still missing one."

    def handle(self, *args, **options):
        generated, failed = InvoiceService.generate_missing()
        for invoice in generated:
            self.stdout.write(f"{invoice.invoice_number} -> registration {invoice.registration_id}")
        if failed:
            raise CommandError(f"Could not generate invoices for registrations: {', '.join(map(str, failed))}")
        self.stdout.write(self.style.SUCCESS(f"Generated {len(generated)} invoices."))
