from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, Field

from core.MongoORJSONResponse import MongoModel, PyObjectId


class LeaseStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


class EntryStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"


class PaymentEntry(BaseModel):
    model_config = {"use_enum_values": True}

    month: str             # e.g. "2025-09"
    amount: float
    status: EntryStatus = EntryStatus.PENDING
    paid_at: Optional[datetime] = None


class Lease(MongoModel):
    id: PyObjectId = Field(default_factory=ObjectId, alias="_id")
    property_id: PyObjectId
    tenant_id: PyObjectId
    start_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    end_date: datetime
    total_amount: float
    monthly_rent: float
    initial_price: float = 0.0
    status: LeaseStatus = LeaseStatus.ACTIVE
    payments: List[PaymentEntry] = Field(default_factory=list)
    lease_doc_url: Optional[str] = None
    version: int = 0


class LeasePayRequest(BaseModel):
    lease_id: PyObjectId
    type: Literal["initial", "monthly"] = "monthly"
