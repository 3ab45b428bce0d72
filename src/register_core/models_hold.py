from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

HoldStatus = Literal["HELD", "RESUMED", "EXPIRED"]


class HeldOrderItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    product_ref: str
    product_name: str
    quantity: int = Field(gt=0)
    unit_price: int = Field(ge=0)
    total_price: int | None = None
    category: str | None = None
    notes: str | None = None

    @model_validator(mode="after")
    def _default_total(self) -> "HeldOrderItem":
        if self.total_price is None:
            self.total_price = self.unit_price * self.quantity
        return self


class CustomerInfo(BaseModel):
    ref: str | None = None
    name: str | None = None
    phone: str | None = None
    email: str | None = None


class HeldOrder(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    customer: CustomerInfo | None = None
    items: list[HeldOrderItem]
    subtotal: int
    discount_amount: int = 0
    tax_amount: int = 0
    total_amount: int
    payment_method: str | None = None
    notes: str | None = None
    status: HoldStatus = "HELD"
    created_at: datetime
    expires_at: datetime
    resumed_at: datetime | None = None
    created_by: str
    resumed_by: str | None = None
    branch: str
    hold_duration_hours: int


class HoldStatistics(BaseModel):
    total: int
    held: int
    resumed: int
    expired: int
    total_value: int
    average_hold_minutes: float
