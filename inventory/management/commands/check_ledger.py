from django.core.management.base import BaseCommand, CommandError

from inventory.models import ZERO, StockLedgerEntry, StockQuant


class Command(BaseCommand):
    help = (
        "Check that every ledger running balance equals the cumulative sum of "
        "deltas for its (product, warehouse, location), and that each quant "
        "matches the last running balance."
    )

    def add_arguments(self, parser):
        parser.add_argument("--product", type=int, default=None, help="Only check this product id")

    def handle(self, *args, **options):
        entries = StockLedgerEntry.objects.order_by(
            "product_id", "warehouse_id", "location_id", "created_at", "id"
        )
        quants = StockQuant.objects.all()
        if options["product"]:
            entries = entries.filter(product_id=options["product"])
            quants = quants.filter(product_id=options["product"])

        problems = []
        balances = {}
        for entry in entries.iterator():
            triple = (entry.product_id, entry.warehouse_id, entry.location_id)
            expected = balances.get(triple, ZERO) + entry.quantity
            if entry.running_balance != expected:
                problems.append(
                    f"Entry {entry.pk} ({entry.reference_doc}) on {triple}: "
                    f"running balance {entry.running_balance}, expected {expected}"
                )
            balances[triple] = expected

        for quant in quants:
            expected = balances.get(quant.triple, ZERO)
            if quant.quantity != expected:
                problems.append(f"Quant {quant.triple}: quantity {quant.quantity}, ledger says {expected}")

        for problem in problems:
            self.stderr.write(self.style.ERROR(problem))

        if problems:
            raise CommandError(f"{len(problems)} ledger inconsistenc{'y' if len(problems) == 1 else 'ies'} found.")

        self.stdout.write(self.style.SUCCESS(f"Ledger consistent: {len(balances)} stock position(s) checked."))
