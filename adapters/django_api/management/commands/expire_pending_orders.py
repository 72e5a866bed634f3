"""
Cancel orders left unpaid past the payment window.

Safe to run while checkout traffic is live: each expiry takes the
order's lock and re-checks payment before cancelling.
"""

from django.core.management.base import BaseCommand

from adapters.django_api.wiring import build_dependencies
from engines.orders.jobs import expire_pending_orders


class Command(BaseCommand):
    help = "Cancel pending orders whose payment window has elapsed."

    def handle(self, *args, **options):
        expired = expire_pending_orders(build_dependencies().lifecycle)
        self.stdout.write(f"Expired {len(expired)} order(s).")
        for order_number in expired:
            self.stdout.write(f"  {order_number}")
