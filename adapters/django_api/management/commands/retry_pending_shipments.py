"""
Retry carrier bookings that failed transiently after payment.
"""

from django.core.management.base import BaseCommand

from adapters.django_api.wiring import build_dependencies
from engines.orders.jobs import retry_pending_shipments


class Command(BaseCommand):
    help = "Retry shipment creation for orders in retry_pending."

    def handle(self, *args, **options):
        booked = retry_pending_shipments(build_dependencies().fulfillment)
        self.stdout.write(f"Booked {len(booked)} shipment(s).")
