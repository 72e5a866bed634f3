"""
Poll the carrier for in-flight shipments not heard from recently.
"""

from django.core.management.base import BaseCommand

from adapters.django_api.wiring import build_dependencies
from engines.orders.jobs import reconcile_shipments


class Command(BaseCommand):
    help = "Reconcile shipment status with the carrier for stale orders."

    def handle(self, *args, **options):
        polled = reconcile_shipments(build_dependencies().tracking)
        self.stdout.write(f"Polled {len(polled)} shipment(s).")
