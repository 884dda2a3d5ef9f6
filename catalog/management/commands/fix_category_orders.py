from django.core.management.base import BaseCommand, CommandError
from django.db.models import Count

from catalog import ordering
from catalog.models import Category


class Command(BaseCommand):
    help = "Renumber category display order 1..N by creation time (safe to re-run)"

    def add_arguments(self, parser):
        parser.add_argument("--dry-run", action="store_true", help="Only report what would change")

    def handle(self, *args, **opts):
        total = Category.objects.count()
        self.stdout.write(f"Found {total} categories")

        if opts["dry_run"]:
            rows = Category.objects.order_by("created_at", "pk").values_list("name", "order")
            for i, (name, old) in enumerate(rows, start=1):
                if old != i:
                    self.stdout.write(f"Would move {name!r} from {old} to {i}")
            return

        try:
            changes = ordering.renumber_all()
        except ordering.OrderingConflict as e:
            raise CommandError(str(e))

        names = dict(Category.objects.values_list("pk", "name"))
        for pk, old, new in changes:
            self.stdout.write(f"Moved {names.get(pk)!r} from {old} to {new}")

        dupes = (
            Category.objects.values("order").annotate(n=Count("pk")).filter(n__gt=1)
        )
        if dupes.exists():
            raise CommandError(f"Duplicate orders still exist: {list(dupes)}")

        self.stdout.write(self.style.SUCCESS(f"Category orders fixed ({len(changes)} moved)."))
