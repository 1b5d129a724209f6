from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]


# Request bodies are deliberately loose; OrderService owns the validation
# rules so the API and the service report the same messages.
class OrderItemIn(BaseModel):
    product_name: Optional[str] = None
    quantity: Optional[int] = None
    price: Optional[Decimal] = None


class OrderCreate(BaseModel):
    user_id: Optional[int] = None
    status: Optional[str] = None
    items: Optional[List[OrderItemIn]] = None


class StatusUpdate(BaseModel):
    status: Optional[str] = None


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    product_name: str
    quantity: int
    price: Decimal
    total: Decimal


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    status: str
    total_amount: Decimal
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []
    user_name: Optional[str] = None
    user_email: Optional[str] = None
