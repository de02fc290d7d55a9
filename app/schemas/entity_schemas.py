from decimal import Decimal
from pydantic import BaseModel, Field


class CustomerInput(BaseModel):
    """Schema for creating or updating a customer"""

    name: str = Field(..., min_length=1, max_length=255)
    email: str | None = Field(None, max_length=255)
    phone_number: str | None = Field(None, max_length=24)
    order_ids: list[int] = Field(default_factory=list)


class ProductInput(BaseModel):
    """Schema for creating or updating a product"""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    unit_price: Decimal = Field(..., ge=0, max_digits=15, decimal_places=2)
    order_ids: list[int] = Field(default_factory=list)


class OrderInput(BaseModel):
    """Schema for creating or updating an order"""

    customer_id: int | None = None
    product_ids: list[int] = Field(default_factory=list)
    delivered: bool = False
    notes: str | None = Field(None, max_length=1000)
