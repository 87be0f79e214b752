from django.core.management.base import BaseCommand

from stands.models import Stand, StandStatus
from stands.services import StandInventory


class Command(BaseCommand):
    help = "Frees stands still reserved by cancelled, rejected or deleted registrations."

    def add_arguments(self, parser):
        parser.add_argument("--dry-run", action="store_true", help="Only report the stands that would be freed.")

    def handle(self, *args, **options):
        if options["dry_run"]:
            orphaned = StandInventory.orphaned_reservations()
            numbers = [f"{stand.plan.name}/{stand.number}" for stand in orphaned.select_related("plan")]
            if not numbers:
                self.stdout.write("No orphaned stand reservations.")
                return
            self.stdout.write(self.style.WARNING(f"{len(numbers)} orphaned reservations: {', '.join(numbers)}"))
            return

        released = StandInventory.reconcile()
        if not released:
            self.stdout.write("No orphaned stand reservations.")
            return
        numbers = Stand.objects.filter(id__in=released, status=StandStatus.AVAILABLE).values_list("number", flat=True)
        self.stdout.write(self.style.SUCCESS(f"Freed {len(released)} stands: {', '.join(numbers)}"))
