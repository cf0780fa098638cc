from datetime import datetime, timezone

from bson import ObjectId
from pydantic import Field

from core.MongoORJSONResponse import MongoModel, PyObjectId


class EnergyReading(MongoModel):
    id: PyObjectId = Field(default_factory=ObjectId, alias="_id")
    property_id: PyObjectId
    power_kWh: float
    voltage_V: float
    current_A: float
    temp_C: float
    humidity: float
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EnergySummary(MongoModel):
    property_id: PyObjectId = Field(alias="_id")
    avg_kWh: float
    avg_temp: float
    avg_humidity: float
    readings: int

