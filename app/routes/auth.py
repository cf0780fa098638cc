from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from core.MongoORJSONResponse import PyObjectId, bson_default
from core.database import get_database
from models.user import LoginRequest, RegisterRequest, SaveCardRequest
from services.users import UserService

router = APIRouter(prefix="/api", tags=["users"])


def get_user_service(db: AsyncIOMotorDatabase = Depends(get_database)) -> UserService:
    return UserService(db)


@router.post("/register")
async def register(data: RegisterRequest, users: UserService = Depends(get_user_service)):
    user = await users.register(data)
    return bson_default({"msg": "User registered", "user": user.public()})


@router.post("/login")
async def login(data: LoginRequest, users: UserService = Depends(get_user_service)):
    user = await users.authenticate(data)
    return bson_default({"msg": "Login successful", "user": user.public()})


@router.get("/user/{user_id}")
async def get_user(user_id: PyObjectId, users: UserService = Depends(get_user_service)):
    """Fresh user profile, including saved cards (without CVV digests)."""
    user = await users.get(user_id)
    return bson_default({"user": user.public()})


@router.post("/cards/save")
async def save_card(data: SaveCardRequest, users: UserService = Depends(get_user_service)):
    card = await users.save_card(data)
    return {"msg": "Card saved", "card": card.model_dump(exclude={"cvv_hash"})}
