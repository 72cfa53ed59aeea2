"""
Surcharge configuration updates.

Only shops that completed authorization can be configured; configuration never
creates a tenant. Validation runs before the store is touched, so rejected
input leaves the record unchanged.
"""
import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Mapping

from app.errors import ValidationError
from app.models import Tenant
from app.store.tenants import TenantStore

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("9999999999.99")  # Numeric(12, 2)
MAX_LEN_LOCALE = 35
MAX_LEN_LABEL = 255


def _amount(value: Any, name: str, problems: dict[str, str]) -> Decimal | None:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        problems[name] = "must be a number"
        return None
    if not amount.is_finite():
        problems[name] = "must be a finite number"
    elif amount < 0:
        problems[name] = "must be greater than or equal to 0"
    elif amount > MAX_AMOUNT:
        problems[name] = f"must be at most {MAX_AMOUNT}"
    else:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    return None


def _labels(value: Mapping[str, str] | None, problems: dict[str, str]) -> dict[str, str]:
    labels = {}
    for locale, text in (value or {}).items():
        key = str(locale).strip()
        if not key or len(key) > MAX_LEN_LOCALE:
            problems["surchargeLabel"] = f"locale codes must be 1-{MAX_LEN_LOCALE} characters"
        elif not isinstance(text, str) or len(text) > MAX_LEN_LABEL:
            problems[f"surchargeLabel.{key}"] = f"must be text of at most {MAX_LEN_LABEL} characters"
        else:
            labels[key] = text
    return labels


def validate_configuration(
    min_order_value: Any,
    surcharge: Any,
    surcharge_label: Mapping[str, str] | None,
) -> dict[str, Any]:
    """Return normalized store fields, or raise ValidationError with every problem found."""
    problems: dict[str, str] = {}
    fields = {
        "min_order_value": _amount(min_order_value, "minOrderValue", problems),
        "surcharge": _amount(surcharge, "surcharge", problems),
        "surcharge_label": _labels(surcharge_label, problems),
    }
    if problems:
        raise ValidationError(problems, message="Invalid configuration")
    return fields


def set_configuration(
    store: TenantStore,
    shop_id: str,
    min_order_value: Any,
    surcharge: Any,
    surcharge_label: Mapping[str, str] | None = None,
) -> Tenant:
    fields = validate_configuration(min_order_value, surcharge, surcharge_label)
    store.get(shop_id)  # UnknownShop unless authorized first
    tenant = store.upsert(shop_id, **fields)
    logger.info(
        "Configuration saved for shop=%s min_order_value=%s surcharge=%s",
        shop_id,
        tenant.min_order_value,
        tenant.surcharge,
    )
    return tenant
