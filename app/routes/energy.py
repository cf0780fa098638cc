from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from core.MongoORJSONResponse import bson_default
from core.config import Settings, get_settings
from core.database import get_database
from services.energy import EnergyReports

router = APIRouter(prefix="/api/energy", tags=["energy"])


def get_energy_reports(db: AsyncIOMotorDatabase = Depends(get_database)) -> EnergyReports:
    return EnergyReports(db)


@router.get("/live")
async def live_readings(
    reports: EnergyReports = Depends(get_energy_reports),
    settings: Settings = Depends(get_settings),
):
    """Most recent readings across all properties, newest first."""
    return bson_default(await reports.live(settings.ENERGY_LIVE_LIMIT))


@router.get("/summary")
async def energy_summary(reports: EnergyReports = Depends(get_energy_reports)):
    return bson_default(await reports.summary())
