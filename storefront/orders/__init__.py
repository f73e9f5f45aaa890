"""
Orders Module

Checkout, order reads, delivery fees and stock reconciliation.
"""
from .delivery import DeliveryFees
from .store import OrderDraft, OrderStore
from .reconciliation import ReconciliationEngine, TransitionResult, AdjustmentOutcome

__all__ = [
    "DeliveryFees",
    "OrderDraft",
    "OrderStore",
    "ReconciliationEngine",
    "TransitionResult",
    "AdjustmentOutcome",
]
