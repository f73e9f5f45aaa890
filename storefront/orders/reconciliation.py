"""
Order Fulfillment Reconciliation

Advances an order through its status lifecycle and keeps product stock in
step with it.

Stock moves only on edges of the lifecycle:
- entering confirmed/delivered from anywhere else decrements stock once per
  line, floored at zero
- leaving confirmed/delivered for pending/cancelled restores what was
  actually removed (when restocking is enabled)

The status write and one stock_adjustments row per line are committed
together. Each row is then applied in its own transaction that also marks
it applied, so a failed line stays pending and replay_pending() can finish
the job later without ever applying a row twice.
"""

import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Union

import structlog
from prometheus_client import Counter
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.catalog.repository import StockLedger
from storefront.config import get_settings
from storefront.database.connection import session_scope
from storefront.database.models import (
    FULFILLING_STATUSES,
    AdjustmentKind,
    AdjustmentStatus,
    Order,
    OrderStatus,
    StockAdjustment,
    utcnow,
)
from storefront.errors import InvalidTransitionError, NotFoundError, StorefrontError
from storefront.orders.store import OrderStore, parse_status
from storefront.realtime.feed import ORDERS_CHANNEL, ChangeType
from storefront.realtime.hub import ChangeHub

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

STOCK_ADJUSTMENTS = Counter(
    "storefront_stock_adjustments_total",
    "Stock adjustments processed by reconciliation",
    ["kind", "outcome"],
)

ORDER_TRANSITIONS = Counter(
    "storefront_order_transitions_total",
    "Order status transitions written",
    ["new_status"],
)


# =============================================================================
# RESULTS
# =============================================================================

# Adjustment outcomes
APPLIED = "applied"
SKIPPED = "skipped"
FAILED = "failed"
VOIDED = "void"


@dataclass
class AdjustmentOutcome:
    """What happened to one order line's stock"""
    adjustment_id: int
    product_id: Optional[uuid.UUID]
    kind: str
    quantity: int
    outcome: str
    stock_before: Optional[int] = None
    stock_after: Optional[int] = None
    error: Optional[str] = None


@dataclass
class TransitionResult:
    order_id: uuid.UUID
    previous_status: OrderStatus
    new_status: OrderStatus
    stock_action: str = "none"
    adjustments: List[AdjustmentOutcome] = field(default_factory=list)

    @property
    def status_changed(self) -> bool:
        return self.previous_status != self.new_status

    @property
    def fully_applied(self) -> bool:
        return all(a.outcome != FAILED for a in self.adjustments)


def stock_action_for(previous: OrderStatus, new: OrderStatus, restock: bool = True) -> str:
    """
    Decide the stock side effect of a transition.

    Returns:
        "decrement", "restore" or "none"
    """
    was_fulfilling = previous in FULFILLING_STATUSES
    is_fulfilling = new in FULFILLING_STATUSES
    if is_fulfilling and not was_fulfilling:
        return "decrement"
    if was_fulfilling and not is_fulfilling and restock:
        return "restore"
    return "none"


# =============================================================================
# ENGINE
# =============================================================================

class ReconciliationEngine:
    """
    Order status transitions with outbox-backed stock adjustments.

    Example:
        engine = ReconciliationEngine(session_factory, orders, ledger, hub)
        result = await engine.transition(order_id, "confirmed")
        result.adjustments  # one entry per order line
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        orders: OrderStore,
        ledger: StockLedger,
        hub: Optional[ChangeHub] = None,
        restock_on_reversal: Optional[bool] = None,
    ):
        self._session_factory = session_factory
        self._orders = orders
        self._ledger = ledger
        self._hub = hub
        if restock_on_reversal is None:
            restock_on_reversal = get_settings().reconciliation.restock_on_reversal
        self.restock_on_reversal = restock_on_reversal

    async def transition(
        self,
        order_id: uuid.UUID,
        new_status: Union[str, OrderStatus],
        previous_status: Optional[Union[str, OrderStatus]] = None,
    ) -> TransitionResult:
        """
        Write the new status and reconcile stock.

        The status write is authoritative: per-line stock failures are
        logged and recorded on the outbox row, never raised.

        Args:
            order_id: Order to move
            new_status: Target status
            previous_status: Status the caller saw before the change;
                defaults to the status stored on the order

        Raises:
            NotFoundError: The order does not exist
            ValidationFailedError: Unknown status string
            InvalidTransitionError: The order is cancelled
        """
        new = parse_status(new_status)
        claimed_previous = parse_status(previous_status) if previous_status is not None else None

        async with session_scope(self._session_factory) as db:
            order = await self._orders.get_order_in(db, order_id)
            stored = order.status
            previous = claimed_previous or stored

            if OrderStatus.CANCELLED in (stored, previous) and new != OrderStatus.CANCELLED:
                raise InvalidTransitionError(
                    "Cancelled orders cannot be reopened",
                    detail={"order_id": str(order_id), "status": stored.value, "requested": new.value},
                )

            await self._orders.set_status(db, order_id, new)

            action = stock_action_for(previous, new, self.restock_on_reversal)
            voided: List[AdjustmentOutcome] = []
            if action == "decrement":
                queued = self._queue_decrements(db, order)
            elif action == "restore":
                queued, voided = await self._queue_restores(db, order)
            else:
                queued = []

            await db.flush()
            pending_ids = [row.id for row in queued]

        ORDER_TRANSITIONS.labels(new_status=new.value).inc()
        logger.info(
            "Order status written",
            order_id=str(order_id),
            previous_status=previous.value,
            new_status=new.value,
            stock_action=action,
            adjustments=len(pending_ids),
        )

        result = TransitionResult(
            order_id=order_id,
            previous_status=previous,
            new_status=new,
            stock_action=action,
            adjustments=voided,
        )
        for adjustment_id in pending_ids:
            outcome = await self.apply_adjustment(adjustment_id)
            if outcome is not None:
                result.adjustments.append(outcome)

        if pending_ids:
            await self._ledger.invalidate_cache()

        if self._hub is not None:
            await self._hub.publish(ORDERS_CHANNEL, ChangeType.UPDATE, {
                "id": str(order_id),
                "status": new.value,
                "previous_status": previous.value,
            })

        return result

    def _queue_decrements(self, db: AsyncSession, order: Order) -> List[StockAdjustment]:
        rows = [
            StockAdjustment(
                order_id=order.id,
                product_id=item.product_id,
                kind=AdjustmentKind.DECREMENT,
                quantity=item.quantity,
                status=AdjustmentStatus.PENDING,
                attempts=0,
                created_at=utcnow(),
            )
            for item in order.items
        ]
        db.add_all(rows)
        return rows

    async def _queue_restores(self, db: AsyncSession, order: Order):
        result = await db.execute(
            select(StockAdjustment)
            .where(
                StockAdjustment.order_id == order.id,
                StockAdjustment.kind == AdjustmentKind.DECREMENT,
                StockAdjustment.status.in_([AdjustmentStatus.APPLIED, AdjustmentStatus.PENDING]),
            )
            .order_by(StockAdjustment.id)
        )

        restores: List[StockAdjustment] = []
        voided: List[AdjustmentOutcome] = []
        for decrement in result.scalars():
            if decrement.status == AdjustmentStatus.PENDING:
                # never reached the ledger, nothing to give back
                decrement.status = AdjustmentStatus.VOID
                voided.append(AdjustmentOutcome(
                    adjustment_id=decrement.id,
                    product_id=decrement.product_id,
                    kind=AdjustmentKind.DECREMENT.value,
                    quantity=decrement.quantity,
                    outcome=VOIDED,
                ))
                STOCK_ADJUSTMENTS.labels(kind=AdjustmentKind.DECREMENT.value, outcome=VOIDED).inc()
                continue

            decrement.status = AdjustmentStatus.REVERSED
            if decrement.applied_quantity:
                restores.append(StockAdjustment(
                    order_id=order.id,
                    product_id=decrement.product_id,
                    kind=AdjustmentKind.RESTORE,
                    quantity=decrement.applied_quantity,
                    status=AdjustmentStatus.PENDING,
                    attempts=0,
                    created_at=utcnow(),
                ))

        db.add_all(restores)
        return restores, voided

    async def apply_adjustment(self, adjustment_id: int) -> Optional[AdjustmentOutcome]:
        """
        Apply one pending outbox row in its own transaction.

        Returns None when the row is gone or no longer pending.
        """
        try:
            async with session_scope(self._session_factory) as db:
                row = await db.get(StockAdjustment, adjustment_id)
                if row is None or row.status != AdjustmentStatus.PENDING:
                    return None
                outcome = await self._apply_in(db, row)
        except StorefrontError as e:
            outcome = await self._record_failure(adjustment_id, e)

        STOCK_ADJUSTMENTS.labels(kind=outcome.kind, outcome=outcome.outcome).inc()
        return outcome

    async def _apply_in(self, db: AsyncSession, row: StockAdjustment) -> AdjustmentOutcome:
        row.attempts += 1
        outcome = AdjustmentOutcome(
            adjustment_id=row.id,
            product_id=row.product_id,
            kind=row.kind.value,
            quantity=row.quantity,
            outcome=SKIPPED,
        )

        try:
            if row.product_id is None:
                raise NotFoundError("Order line no longer references a product")
            before = await self._ledger.get_stock_in(db, row.product_id)
        except NotFoundError as e:
            row.status = AdjustmentStatus.SKIPPED
            row.last_error = e.message
            outcome.error = e.message
            logger.warning(
                "Stock adjustment skipped, product missing",
                order_id=str(row.order_id),
                product_id=str(row.product_id) if row.product_id else None,
                kind=row.kind.value,
            )
            return outcome

        if row.kind == AdjustmentKind.DECREMENT:
            after = max(0, before - row.quantity)
            applied = before - after
        else:
            after = before + row.quantity
            applied = row.quantity

        await self._ledger.set_stock_in(db, row.product_id, after)
        row.status = AdjustmentStatus.APPLIED
        row.applied_quantity = applied
        row.applied_at = utcnow()
        row.last_error = None

        outcome.outcome = APPLIED
        outcome.stock_before = before
        outcome.stock_after = after
        logger.info(
            "Stock adjusted",
            order_id=str(row.order_id),
            product_id=str(row.product_id),
            kind=row.kind.value,
            quantity=row.quantity,
            stock_before=before,
            stock_after=after,
        )
        return outcome

    async def _record_failure(self, adjustment_id: int, error: StorefrontError) -> AdjustmentOutcome:
        logger.error("Stock adjustment failed, left pending", adjustment_id=adjustment_id, error=error.message)
        outcome = AdjustmentOutcome(
            adjustment_id=adjustment_id,
            product_id=None,
            kind="unknown",
            quantity=0,
            outcome=FAILED,
            error=error.message,
        )

        try:
            async with session_scope(self._session_factory) as db:
                row = await db.get(StockAdjustment, adjustment_id)
                if row is not None:
                    row.attempts += 1
                    row.last_error = error.message
                    outcome.product_id = row.product_id
                    outcome.kind = row.kind.value
                    outcome.quantity = row.quantity
        except StorefrontError as e:
            logger.error("Could not record adjustment failure", adjustment_id=adjustment_id, error=e.message)

        return outcome

    async def pending_ids(self) -> List[int]:
        async with session_scope(self._session_factory) as db:
            result = await db.execute(
                select(StockAdjustment.id)
                .where(StockAdjustment.status == AdjustmentStatus.PENDING)
                .order_by(StockAdjustment.id)
            )
            return list(result.scalars().all())

    async def replay_pending(self) -> List[AdjustmentOutcome]:
        """Re-apply every pending outbox row, oldest first"""
        outcomes: List[AdjustmentOutcome] = []
        for adjustment_id in await self.pending_ids():
            outcome = await self.apply_adjustment(adjustment_id)
            if outcome is not None:
                outcomes.append(outcome)

        if outcomes:
            await self._ledger.invalidate_cache()
        logger.info(
            "Pending stock adjustments replayed",
            total=len(outcomes),
            applied=sum(1 for o in outcomes if o.outcome == APPLIED),
            failed=sum(1 for o in outcomes if o.outcome == FAILED),
        )
        return outcomes
