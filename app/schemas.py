"""
Pydantic schemas for the API: strict validation.

- All string inputs have explicit max_length to prevent DoS and injection.
- Request body models use extra="forbid" to reject unexpected fields.
- Amount ranges are checked by the configuration service so callers get
  field-level errors in one shape.
"""
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, ConfigDict

# Shared max lengths for consistency and security (strict input validation)
MAX_LEN_SHOP = 255
MAX_CART_ITEMS = 500
MAX_LABELS = 50


class CartItem(BaseModel):
    price: Decimal = Field(..., ge=0, allow_inf_nan=False)
    quantity: int = Field(..., gt=0)


class Cart(BaseModel):
    items: list[CartItem] = Field(..., min_length=1, max_length=MAX_CART_ITEMS)


class CheckCartRequest(BaseModel):
    """Body sent by storefront checkout code."""
    shop: str = Field(..., min_length=1, max_length=MAX_LEN_SHOP)
    cart: Cart


class CheckCartResponse(BaseModel):
    surcharge: float
    label: Optional[dict[str, str]] = None


class SetConfigRequest(BaseModel):
    """Request body for saving a shop's surcharge rule; extra fields rejected."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)
    shop: str = Field(..., min_length=1, max_length=MAX_LEN_SHOP)
    min_order_value: Any = Field(..., alias="minOrderValue")
    surcharge: Any = Field(...)
    surcharge_label: dict[str, str] = Field(default_factory=dict, alias="surchargeLabel", max_length=MAX_LABELS)


class SetConfigResponse(BaseModel):
    success: bool = True


class WebhookAck(BaseModel):
    status: str = "received"
    topic: str
