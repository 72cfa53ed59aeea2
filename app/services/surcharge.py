"""Surcharge rules: cart total vs. the shop's minimum order value."""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional, Protocol

from app.errors import ValidationError
from app.models import Tenant
from app.store.tenants import TenantStore

ZERO = Decimal("0")


class LineItem(Protocol):
    price: Decimal
    quantity: int


@dataclass(frozen=True)
class SurchargeDecision:
    surcharge: Decimal
    label: Optional[dict[str, str]] = None

    @property
    def applies(self) -> bool:
        return self.surcharge > ZERO


def cart_total(items: Iterable[LineItem]) -> Decimal:
    """Exact decimal sum of price * quantity."""
    total = ZERO
    count = 0
    for item in items:
        price = item.price if isinstance(item.price, Decimal) else Decimal(str(item.price))
        total += price * item.quantity
        count += 1
    if count == 0:
        raise ValidationError({"cart.items": "must contain at least one item"})
    return total


def decide(tenant: Tenant, items: Iterable[LineItem]) -> SurchargeDecision:
    """Pure rule: surcharge only when the total is strictly below the minimum."""
    total = cart_total(items)
    if tenant.min_order_value is None:
        return SurchargeDecision(surcharge=ZERO)
    if total < Decimal(tenant.min_order_value):
        return SurchargeDecision(
            surcharge=Decimal(tenant.surcharge or 0),
            label=dict(tenant.surcharge_label or {}),
        )
    return SurchargeDecision(surcharge=ZERO)


def evaluate(store: TenantStore, shop_id: str, items: Iterable[LineItem]) -> SurchargeDecision:
    tenant = store.get(shop_id)
    return decide(tenant, items)
