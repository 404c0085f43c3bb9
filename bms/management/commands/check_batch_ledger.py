from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.db.models import Sum
from django.db.models.functions import Coalesce

from bms.domain.pricing import compute_total_price
from bms.models import Batch, Order


class Command(BaseCommand):
    help = (
        "Check that every batch quantity matches its initial quantity minus its "
        "assignments, and that every order total matches its assigned quantity."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--fix",
            action="store_true",
            help="Repair the mismatches that can be repaired.",
        )
        parser.add_argument(
            "--fail-on-issues",
            action="store_true",
            help="Exit with an error when at least one mismatch remains.",
        )

    def handle(self, *args, **options):
        fix = options["fix"]
        issue_count = 0
        fixed_count = 0

        with transaction.atomic():
            batches = Batch.objects.annotate(
                assigned=Coalesce(Sum("assignments__qty"), 0)
            ).order_by("id")
            for batch in batches:
                expected_qty = batch.init_qty - batch.assigned
                if batch.qty == expected_qty:
                    continue
                issue_count += 1
                self.stdout.write(
                    self.style.WARNING(
                        f"- Batch #{batch.pk} ({batch.batch_number}): qty={batch.qty}, "
                        f"expected {expected_qty} (init_qty={batch.init_qty}, "
                        f"assigned={batch.assigned})"
                    )
                )
                if fix and expected_qty >= 0:
                    Batch.objects.filter(pk=batch.pk).update(qty=expected_qty)
                    fixed_count += 1
                elif fix:
                    self.stdout.write(
                        self.style.ERROR(
                            f"  Batch #{batch.pk} is over-assigned and needs a manual fix."
                        )
                    )

            orders = Order.objects.annotate(
                assigned=Coalesce(Sum("assignments__qty"), 0)
            ).order_by("id")
            for order in orders:
                expected_total = compute_total_price(
                    unit_price=order.unit_price,
                    quantity=order.assigned,
                )
                if order.total_price == expected_total:
                    continue
                issue_count += 1
                self.stdout.write(
                    self.style.WARNING(
                        f"- Order #{order.pk}: total_price={order.total_price}, "
                        f"expected {expected_total} (assigned={order.assigned})"
                    )
                )
                if fix:
                    Order.objects.filter(pk=order.pk).update(total_price=expected_total)
                    fixed_count += 1

        if issue_count == 0:
            self.stdout.write(self.style.SUCCESS("Batch ledger is consistent."))
            return

        self.stdout.write(self.style.WARNING(f"{issue_count} mismatch(es) found."))
        if fix:
            self.stdout.write(self.style.SUCCESS(f"{fixed_count} mismatch(es) repaired."))
        if options["fail_on_issues"] and issue_count > fixed_count:
            raise CommandError("Batch ledger check failed.")
