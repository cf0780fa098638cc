from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from bson import ObjectId
from pydantic import BaseModel, Field

from core.MongoORJSONResponse import MongoModel, PyObjectId


class PropertyStatus(str, Enum):
    AVAILABLE = "available"
    REQUESTED = "requested"
    OCCUPIED = "occupied"


class PropertyCreate(BaseModel):
    name: str = Field(..., min_length=1)
    location: Optional[str] = None
    initial_price: float = Field(..., ge=0, description="One-time deposit due at lease start")
    rent: float = Field(..., ge=0, description="Recurring monthly rent")


class Property(MongoModel, PropertyCreate):
    id: PyObjectId = Field(default_factory=ObjectId, alias="_id")
    status: PropertyStatus = PropertyStatus.AVAILABLE
    tenant_id: Optional[PyObjectId] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PropertyRequest(BaseModel):
    tenant_id: PyObjectId
    property_id: PyObjectId


class ApproveRequest(BaseModel):
    property_id: PyObjectId
