"""
Evolv Exchange Engine
=====================
Post-delivery exchange requests: eligibility, submission, admin
decision, reverse pickup and replacement or refund.
"""

from engines.exchange.commands import (
    ApproveExchangeRequest,
    MarkReverseReceivedRequest,
    RejectExchangeRequest,
    RequestedItem,
    SubmitExchangeRequest,
)
from engines.exchange.model import (
    EXCHANGE_WINDOW,
    Eligibility,
    ExchangeItem,
    ExchangeRequest,
)
from engines.exchange.repository import ExchangeRepository
from engines.exchange.services import ExchangeService

__all__ = [
    "ApproveExchangeRequest",
    "EXCHANGE_WINDOW",
    "Eligibility",
    "ExchangeItem",
    "ExchangeRepository",
    "ExchangeRequest",
    "ExchangeService",
    "MarkReverseReceivedRequest",
    "RejectExchangeRequest",
    "RequestedItem",
    "SubmitExchangeRequest",
]
