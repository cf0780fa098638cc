from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from bson import ObjectId
from pydantic import BaseModel, EmailStr, Field, field_validator

from core.MongoORJSONResponse import MongoModel, PyObjectId


class UserRole(str, Enum):
    MANAGER = "manager"
    TENANT = "tenant"


class Card(BaseModel):
    """Card on file. Only the last four digits and a CVV digest are kept."""
    card_id: str = Field(default_factory=lambda: str(uuid4()))
    last4: str
    brand: Optional[str] = None
    expiry_month: int = Field(..., ge=1, le=12)
    expiry_year: int
    cvv_hash: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return (self.expiry_year, self.expiry_month) < (now.year, now.month)

    def matches(self, reference: str) -> bool:
        """A card reference is either the opaque card id or the last four digits."""
        return reference in (self.card_id, self.last4)


class User(MongoModel):
    id: PyObjectId = Field(default_factory=ObjectId, alias="_id")
    name: str
    email: EmailStr
    password_hash: str
    role: UserRole = UserRole.TENANT
    cards: List[Card] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def find_card(self, reference: str) -> Optional[Card]:
        return next((c for c in self.cards if c.matches(reference)), None)

    def public(self) -> dict:
        """User as returned to clients: no password hash, no CVV digests."""
        data = self.model_dump(by_alias=True, exclude={"password_hash"})
        data["cards"] = [c.model_dump(exclude={"cvv_hash"}) for c in self.cards]
        return data


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=1)
    role: UserRole = UserRole.TENANT


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class SaveCardRequest(BaseModel):
    user_id: PyObjectId
    card_number: str
    brand: Optional[str] = None
    expiry_month: int = Field(..., ge=1, le=12)
    expiry_year: int
    cvv: Optional[str] = None

    @field_validator("card_number")
    @classmethod
    def digits_only(cls, v: str) -> str:
        v = v.replace(" ", "").replace("-", "")
        if not v.isdigit() or len(v) < 12:
            raise ValueError("Card number must contain at least 12 digits")
        return v
