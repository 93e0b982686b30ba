"""Marketplace API payload models.

Field names follow the marketplace's camelCase wire format through aliases;
Python code uses snake_case attributes.
"""

from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, StringConstraints
from pydantic.alias_generators import to_camel

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class OrderStatus(str, Enum):
    NEW = "NEW"
    ACCEPTED_BY_MERCHANT = "ACCEPTED_BY_MERCHANT"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    PICKING = "PICKING"
    DELIVERING = "DELIVERING"


ORDER_STATUS_LABELS = {
    OrderStatus.NEW: "Новый",
    OrderStatus.ACCEPTED_BY_MERCHANT: "Принят продавцом",
    OrderStatus.CANCELLED: "Отменен",
    OrderStatus.COMPLETED: "Завершен",
    OrderStatus.PICKING: "Собирается",
    OrderStatus.DELIVERING: "Доставляется",
}


def order_status_label(status: str) -> str:
    """Human-readable status label; unknown statuses are returned as is."""
    try:
        return ORDER_STATUS_LABELS[OrderStatus(status)]
    except ValueError:
        return status


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class OrderEntry(WireModel):
    id: str
    unit_type: str
    quantity: float
    total_price: float
    weight: Optional[float] = None
    entry_number: str
    category: str
    title: str
    delivery_cost: float
    base_price: float
    is_imei_required: bool


class Order(WireModel):
    id: str
    code: str
    status: OrderStatus
    entries: list[OrderEntry]
    total_price: Optional[float] = None
    created_at: Optional[str] = None


class ProductImage(WireModel):
    url: HttpUrl


class ProductAttribute(WireModel):
    code: str
    value: str


class ProductPayload(WireModel):
    """A catalog card submitted to the marketplace."""

    sku: NonEmptyStr
    title: NonEmptyStr
    brand: NonEmptyStr
    category: NonEmptyStr
    description: NonEmptyStr
    images: list[ProductImage] = Field(min_length=1)
    attributes: list[ProductAttribute] = Field(default_factory=list)


class Category(WireModel):
    code: str
    name: str
    parent_code: Optional[str] = None


class CategoryAttribute(WireModel):
    code: str
    name: str
    type: str
    required: bool
    values: Optional[list[str]] = None


class UploadResult(WireModel):
    upload_code: str
    status: str


class OrderEntryChanges(WireModel):
    weight: Optional[float] = None
    quantity: Optional[float] = None
    remove: Optional[bool] = None


class OrdersQuery(WireModel):
    filter: Optional[str] = None
    sort: Optional[str] = None
    page: Optional[int] = Field(default=None, ge=0)
    page_size: Optional[int] = Field(default=None, ge=1)
