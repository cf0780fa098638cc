from datetime import datetime, timezone
from enum import Enum

from bson import ObjectId
from pydantic import BaseModel, Field

from core.MongoORJSONResponse import MongoModel, PyObjectId


class PaymentStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class MockPaymentRequest(BaseModel):
    user_id: PyObjectId
    card_id: str = Field(..., min_length=1, description="Opaque card id or last four digits")
    amount: float
    property_id: PyObjectId


class Payment(MongoModel):
    """Audit record, one per mock payment call."""
    id: PyObjectId = Field(default_factory=ObjectId, alias="_id")
    user_id: PyObjectId
    property_id: PyObjectId
    card_id: str
    amount: float
    status: PaymentStatus = PaymentStatus.SUCCESS
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
