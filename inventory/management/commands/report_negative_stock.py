from django.core.management.base import BaseCommand

from inventory.balances import negative_balances


class Command(BaseCommand):
    help = (
        "List product/warehouse pairs whose ledger balance is below zero. "
        "The ledger accepts outbound movements beyond on-hand stock; this surfaces them for review."
    )

    def add_arguments(self, parser):
        parser.add_argument("--branch-id", default=None, help="Restrict the report to one branch (UUID).")

    def handle(self, *args, **options):
        rows = list(negative_balances(branch_id=options["branch_id"]))
        if not rows:
            self.stdout.write(self.style.SUCCESS("No negative stock balances found."))
            return

        self.stdout.write(self.style.WARNING(f"{len(rows)} negative stock balance(s):"))
        for row in rows:
            self.stdout.write(
                f"  {row['product__sku']} @ {row['warehouse__name']}: {row['balance']} "
                f"(product={row['product_id']} warehouse={row['warehouse_id']})"
            )
