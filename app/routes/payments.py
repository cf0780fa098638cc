from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from core.MongoORJSONResponse import bson_default
from core.config import Settings, get_settings
from core.database import get_database
from models.payment import MockPaymentRequest
from services.payments import MockPaymentGateway

router = APIRouter(prefix="/api/payments", tags=["payments"])


def get_payment_gateway(
    db: AsyncIOMotorDatabase = Depends(get_database),
    settings: Settings = Depends(get_settings),
) -> MockPaymentGateway:
    return MockPaymentGateway(
        db,
        delay_seconds=settings.PAYMENT_DELAY_SECONDS,
        max_retries=settings.LEDGER_MAX_RETRIES,
    )


@router.post("/mock")
async def mock_payment(data: MockPaymentRequest, gateway: MockPaymentGateway = Depends(get_payment_gateway)):
    payment, lease = await gateway.process(data)
    return bson_default({
        "msg": "Mock payment processed successfully",
        "payment": payment,
        "lease": lease,
    })
