"""Bill arithmetic and bill-number generation.

Pure functions: no session, no clock unless one is passed in. Amounts are
``Decimal`` and rounded half-up to paise.
"""

import secrets
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional

from cafepos.core.config import settings
from cafepos.core.timeutils import to_venue_local, utcnow
from cafepos.models.order import DeliveryPlatform

CENT = Decimal("0.01")

DINE_IN_BILL_PREFIX = "DI"

PLATFORM_BILL_PREFIXES = {
    DeliveryPlatform.DIRECT: "DL",
    DeliveryPlatform.ZOMATO: "ZM",
    DeliveryPlatform.SWIGGY: "SW",
    DeliveryPlatform.TAKEAWAY: "TA",
}


def money(value) -> Decimal:
    """Round to 2 dp, half-up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class ModLine:
    price: Decimal
    quantity: int = 1


@dataclass
class BillLine:
    price: Decimal
    quantity: int
    modifications: List[ModLine] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        mods = sum((m.price * m.quantity for m in self.modifications), Decimal("0"))
        return self.price * self.quantity + mods * self.quantity


@dataclass
class Bill:
    subtotal: Decimal
    tax: Decimal
    delivery_fee: Decimal
    packaging_fee: Decimal
    total: Decimal


def calculate_bill(
    lines: Iterable[BillLine],
    delivery_fee: Optional[Decimal] = None,
    packaging_fee: Optional[Decimal] = None,
    include_fees: bool = False,
    tax_rate: Optional[Decimal] = None,
) -> Bill:
    """Total a set of order lines.

    Fees are only charged when ``include_fees`` is set (delivery and
    takeaway orders); missing fees fall back to the configured defaults.
    """
    rate = settings.tax_rate if tax_rate is None else Decimal(tax_rate)
    subtotal = money(sum((line.total for line in lines), Decimal("0")))
    if subtotal < 0:
        subtotal = Decimal("0.00")
    tax = money(subtotal * rate)

    if include_fees:
        d_fee = money(settings.default_delivery_fee if delivery_fee is None else delivery_fee)
        p_fee = money(settings.default_packaging_fee if packaging_fee is None else packaging_fee)
    else:
        d_fee = p_fee = Decimal("0.00")

    return Bill(
        subtotal=subtotal,
        tax=tax,
        delivery_fee=d_fee,
        packaging_fee=p_fee,
        total=subtotal + tax + d_fee + p_fee,
    )


def generate_bill_number(prefix: str, now: Optional[datetime] = None) -> str:
    """``<prefix><YY><MM><DD><4 random digits>`` using the venue-local date."""
    local = to_venue_local(now or utcnow())
    suffix = secrets.randbelow(10000)
    return f"{prefix}{local:%y%m%d}{suffix:04d}"


def bill_prefix_for(platform: Optional[DeliveryPlatform]) -> str:
    if platform is None:
        return DINE_IN_BILL_PREFIX
    return PLATFORM_BILL_PREFIXES[platform]
