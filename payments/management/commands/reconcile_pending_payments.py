import time
from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from orders.models import Order
from payments.integrations.zalopay import ConfigurationError, ProviderUnavailable
from payments.services import poll_status


class Command(BaseCommand):
    help = "Poll ZaloPay for pending online orders and update local payment state"

    def add_arguments(self, parser):
        parser.add_argument("--max", type=int, default=50)
        parser.add_argument("--sleep", type=float, default=0.5)
        parser.add_argument("--older-than-minutes", type=int, default=1)

    def handle(self, *args, **opts):
        cutoff = timezone.now() - timedelta(minutes=opts["older_than_minutes"])
        qs = (
            Order.objects.filter(payment_method="zalopay", payment_status="pending", updated_at__lt=cutoff)
            .exclude(zp_provider_trans_id="")
            .order_by("updated_at")[:opts["max"]]
        )
        orders = list(qs)
        if not orders:
            self.stdout.write(self.style.SUCCESS("No pending payments to reconcile."))
            return

        paid = 0
        for i, order in enumerate(orders):
            if i and opts["sleep"]:
                time.sleep(opts["sleep"])
            try:
                result = poll_status(order)
            except ConfigurationError as e:
                self.stdout.write(self.style.ERROR(f"Payment configuration error: {e}"))
                return
            except ProviderUnavailable as e:
                self.stdout.write(self.style.WARNING(f"{order.order_id}: {e}"))
                continue
            if result.is_paid:
                paid += 1
                self.stdout.write(self.style.SUCCESS(f"{order.order_id} -> paid"))
            else:
                self.stdout.write(f"{order.order_id} still {order.payment_status}")

        self.stdout.write(self.style.SUCCESS(f"Reconciled {len(orders)} orders, {paid} paid."))
