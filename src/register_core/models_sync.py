from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

InventoryReason = Literal["SALE", "RETURN", "ADJUSTMENT", "TRANSFER"]


class CatalogStock(BaseModel):
    model_config = ConfigDict(extra="allow", alias_generator=to_camel, populate_by_name=True)

    branch_id: str | None = None
    quantity: int = 0


class CatalogProduct(BaseModel):
    model_config = ConfigDict(extra="allow", alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    sku: str | None = None
    barcode: str | None = None
    category: str | None = None
    price: int = 0
    stock: CatalogStock | None = None
    cached_at: datetime | None = None
    is_dirty: bool = False

    @property
    def branch_id(self) -> str | None:
        return self.stock.branch_id if self.stock else None


class OfflineSaleItem(BaseModel):
    product_ref: str
    product_name: str
    quantity: int = Field(gt=0)
    unit_price: int = Field(ge=0)
    total_price: int
    batch_ref: str | None = None
    variation_ref: str | None = None


class NewOfflineSale(BaseModel):
    sale_number: str
    customer_ref: str | None = None
    items: list[OfflineSaleItem]
    subtotal: int
    discount_amount: int = 0
    tax_amount: int = 0
    total_amount: int
    payment_method: str
    payment_status: str = "PAID"
    branch_id: str
    branch_name: str | None = None
    cashier_name: str
    notes: str | None = None


class OfflineSale(NewOfflineSale):
    id: str
    created_at: datetime
    updated_at: datetime
    synced: bool = False
    sync_attempts: int = 0
    last_sync_attempt: datetime | None = None
    sync_error: str | None = None


class NewInventoryDelta(BaseModel):
    product_ref: str
    variation_ref: str | None = None
    batch_ref: str | None = None
    branch_id: str
    quantity_change: int
    reason: InventoryReason
    reference: str | None = None


class InventoryDelta(NewInventoryDelta):
    id: str
    created_at: datetime
    synced: bool = False
    sync_attempts: int = 0
    last_sync_attempt: datetime | None = None
    sync_error: str | None = None


class _Envelope(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SaleEnvelopeItem(_Envelope):
    product_id: str
    product_name: str
    quantity: int
    unit_price: int
    total_price: int
    batch_id: str | None = None
    variation_id: str | None = None


class SaleEnvelope(_Envelope):
    offline_id: str
    created_at: datetime
    sale_number: str
    customer_id: str | None = None
    items: list[SaleEnvelopeItem]
    subtotal: int
    discount_amount: int
    tax_amount: int
    total_amount: int
    payment_method: str
    payment_status: str
    branch_id: str
    cashier_name: str
    notes: str | None = None

    @classmethod
    def from_sale(cls, sale: OfflineSale) -> "SaleEnvelope":
        return cls(
            offline_id=sale.id,
            created_at=sale.created_at,
            sale_number=sale.sale_number,
            customer_id=sale.customer_ref,
            items=[
                SaleEnvelopeItem(
                    product_id=item.product_ref,
                    product_name=item.product_name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                    batch_id=item.batch_ref,
                    variation_id=item.variation_ref,
                )
                for item in sale.items
            ],
            subtotal=sale.subtotal,
            discount_amount=sale.discount_amount,
            tax_amount=sale.tax_amount,
            total_amount=sale.total_amount,
            payment_method=sale.payment_method,
            payment_status=sale.payment_status,
            branch_id=sale.branch_id,
            cashier_name=sale.cashier_name,
            notes=sale.notes,
        )


class InventoryDeltaEnvelope(_Envelope):
    offline_id: str
    created_at: datetime
    product_id: str
    variation_id: str | None = None
    batch_id: str | None = None
    branch_id: str
    quantity_change: int
    reason: InventoryReason
    reference: str | None = None

    @classmethod
    def from_delta(cls, delta: InventoryDelta) -> "InventoryDeltaEnvelope":
        return cls(
            offline_id=delta.id,
            created_at=delta.created_at,
            product_id=delta.product_ref,
            variation_id=delta.variation_ref,
            batch_id=delta.batch_ref,
            branch_id=delta.branch_id,
            quantity_change=delta.quantity_change,
            reason=delta.reason,
            reference=delta.reference,
        )


def envelope_payload(envelope: _Envelope) -> dict:
    return envelope.model_dump(mode="json", by_alias=True, exclude_none=True)


class SyncStatus(BaseModel):
    is_online: bool
    last_online_time: datetime | None = None
    pending_sales_count: int = 0
    pending_inventory_delta_count: int = 0
    exhausted_sales_count: int = 0
    exhausted_inventory_delta_count: int = 0
    last_sync_time: datetime | None = None
    sync_in_progress: bool = False
    sync_error: str | None = None


class SyncPassResult(BaseModel):
    skipped: bool = False
    reason: str | None = None
    sales_attempted: int = 0
    sales_synced: int = 0
    deltas_attempted: int = 0
    deltas_synced: int = 0
    exhausted: int = 0

    @property
    def failed(self) -> int:
        return (self.sales_attempted - self.sales_synced) + (self.deltas_attempted - self.deltas_synced)


class StorageUsage(BaseModel):
    used: int
    available: int
    percentage: float


class CheckoutSale(NewOfflineSale):
    cashier_id: str


class CheckoutResult(BaseModel):
    sale_number: str
    status: Literal["SYNCED", "QUEUED"]
    offline_id: str
    server_response: dict | None = None
    error: str | None = None
