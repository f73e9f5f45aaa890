"""
Delivery Fee Configuration

Per-zone delivery surcharge kept in the delivery_charges table. Stores
that predate the table fall back to the configured defaults for reads and
reject writes.
"""

from decimal import Decimal
from typing import Dict, Optional, Union

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.config import get_settings
from storefront.database.capabilities import SchemaCapabilities
from storefront.database.connection import session_scope
from storefront.database.models import DeliveryCharge, DeliveryZone
from storefront.errors import SchemaMismatchError, ValidationFailedError

logger = structlog.get_logger(__name__)


def parse_zone(zone: Union[str, DeliveryZone]) -> DeliveryZone:
    try:
        return DeliveryZone(zone)
    except ValueError:
        raise ValidationFailedError(
            f"Unknown delivery zone: {zone}",
            detail={"allowed": [z.value for z in DeliveryZone]},
        ) from None


class DeliveryFees:
    """
    Zone fee lookup and operator updates.

    Example:
        fees = DeliveryFees(session_factory, capabilities)
        await fees.get_fees()   # {"inside_dhaka": Decimal("60"), ...}
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        capabilities: SchemaCapabilities,
        defaults: Optional[Dict[str, float]] = None,
    ):
        self._session_factory = session_factory
        self._capabilities = capabilities
        self._defaults = {
            zone: Decimal(str(fee))
            for zone, fee in (defaults or get_settings().delivery.defaults).items()
        }

    @property
    def defaults(self) -> Dict[str, Decimal]:
        return dict(self._defaults)

    async def get_fees(self) -> Dict[str, Decimal]:
        """Defaults overlaid with whatever rows the table holds"""
        fees = dict(self._defaults)
        if not self._capabilities.has_delivery_charges:
            logger.warning("delivery_charges table missing, using default fees")
            return fees

        async with session_scope(self._session_factory) as db:
            result = await db.execute(select(DeliveryCharge))
            for row in result.scalars():
                fees[row.location_type] = Decimal(str(row.charge))
        return fees

    async def get_fee(self, zone: Union[str, DeliveryZone]) -> Decimal:
        zone = parse_zone(zone)
        fees = await self.get_fees()
        return fees.get(zone.value, Decimal("0"))

    async def set_fee(self, zone: Union[str, DeliveryZone], charge: Union[Decimal, float, int]) -> Decimal:
        """Insert or update the fee for one zone"""
        zone = parse_zone(zone)
        try:
            amount = Decimal(str(charge))
        except ArithmeticError:
            raise ValidationFailedError("Delivery charge must be a number") from None
        if not amount.is_finite() or amount < 0:
            raise ValidationFailedError("Delivery charge must be zero or more", detail={"charge": str(charge)})

        if not self._capabilities.has_delivery_charges:
            raise SchemaMismatchError(
                "Delivery charges cannot be saved: the delivery_charges table does not exist",
                detail={"table": "delivery_charges"},
            )

        async with session_scope(self._session_factory) as db:
            row = await db.get(DeliveryCharge, zone.value)
            if row is None:
                db.add(DeliveryCharge(location_type=zone.value, charge=amount))
            else:
                row.charge = amount

        logger.info("Delivery fee updated", zone=zone.value, charge=str(amount))
        return amount
