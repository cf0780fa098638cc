import hashlib
from typing import Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorDatabase
from passlib.context import CryptContext
from pymongo.errors import DuplicateKeyError

from core.database import USERS_COLL
from models.user import Card, RegisterRequest, LoginRequest, SaveCardRequest, User
from utils.exceptions import InvalidCredentialsError, NotFoundError, UserAlreadyExistsError

logger = structlog.get_logger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class UserService:
    """Registration, login and card-on-file storage."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.users = db[USERS_COLL]

    async def get(self, user_id) -> User:
        doc = await self.users.find_one({"_id": user_id})
        if not doc:
            raise NotFoundError("User not found")
        return User.model_validate(doc)

    async def register(self, data: RegisterRequest) -> User:
        if await self.users.find_one({"email": data.email}):
            raise UserAlreadyExistsError("User already exists")

        user = User(
            name=data.name,
            email=data.email,
            password_hash=pwd_context.hash(data.password),
            role=data.role,
        )
        try:
            await self.users.insert_one(user.to_mongo())
        except DuplicateKeyError as e:
            raise UserAlreadyExistsError("User already exists") from e
        logger.info("user_registered", user_id=str(user.id), role=user.role)
        return user

    async def authenticate(self, data: LoginRequest) -> User:
        doc = await self.users.find_one({"email": data.email})
        if not doc or not pwd_context.verify(data.password, doc.get("password_hash", "")):
            raise InvalidCredentialsError("Invalid credentials")
        return User.model_validate(doc)

    async def save_card(self, data: SaveCardRequest) -> Card:
        await self.get(data.user_id)
        card = Card(
            last4=data.card_number[-4:],
            brand=data.brand,
            expiry_month=data.expiry_month,
            expiry_year=data.expiry_year,
            cvv_hash=hash_cvv(data.cvv),
        )
        await self.users.update_one(
            {"_id": data.user_id},
            {"$push": {"cards": card.model_dump()}},
        )
        logger.info("card_saved", user_id=str(data.user_id), last4=card.last4)
        return card


def hash_cvv(cvv: Optional[str]) -> Optional[str]:
    if not cvv:
        return None
    return hashlib.sha256(cvv.encode()).hexdigest()
