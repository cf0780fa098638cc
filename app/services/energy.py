"""
Synthetic IoT energy readings for occupied properties.

Each tick writes one reading per occupied property. The first reading of a
property is drawn from fixed ranges; later readings random-walk around the
previous one. With the startup spike enabled, the very first tick instead
writes a fixed high reading for every occupied property and publishes a spike
event.
"""
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import orjson
import structlog
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING
from redis.exceptions import RedisError

from core.MongoORJSONResponse import bson_default
from core.database import ENERGY_COLL, PROPERTIES_COLL
from metrics.metrics import MetricsCollector, get_metrics
from models.energy import EnergyReading, EnergySummary
from models.property import PropertyStatus

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SensorField:
    name: str
    low: float        # range for a property's first reading
    high: float
    variance: float   # max step from the previous reading
    digits: int = 2
    ceiling: Optional[float] = None


SENSOR_FIELDS = (
    SensorField("power_kWh", 2, 7, 1),
    SensorField("voltage_V", 220, 230, 5, digits=1),
    SensorField("current_A", 10, 15, 2),
    SensorField("temp_C", 22, 28, 1.5, digits=1),
    SensorField("humidity", 40, 60, 5, digits=1, ceiling=100),
)

SPIKE_READING = {
    "power_kWh": 12,
    "voltage_V": 240,
    "current_A": 22,
    "temp_C": 30,
    "humidity": 50,
}


def clamp(value: float, ceiling: Optional[float] = None) -> float:
    value = max(value, 0)
    if ceiling is not None:
        value = min(value, ceiling)
    return value


def random_around(rng: random.Random, value: float, variance: float) -> float:
    return round(value + rng.uniform(-variance, variance), 2)


def next_values(rng: random.Random, last: Optional[dict]) -> Dict[str, float]:
    """Sensor values for one reading, seeded from the previous reading when there is one."""
    values = {}
    for field in SENSOR_FIELDS:
        if last is not None and last.get(field.name) is not None:
            value = random_around(rng, last[field.name], field.variance)
        else:
            value = round(rng.uniform(field.low, field.high), field.digits)
        values[field.name] = clamp(value, field.ceiling)
    return values


class SpikeNotifier:
    """Publishes spike events to a Redis pub/sub channel."""

    def __init__(self, redis_client, channel: str = "energy-spike"):
        self.redis = redis_client
        self.channel = channel

    async def publish(self, payload: dict) -> bool:
        """Returns False when the event could not be delivered; the reading is already stored by then."""
        try:
            await self.redis.publish(self.channel, orjson.dumps(bson_default(payload)))
        except RedisError as e:
            logger.error("energy_spike_publish_failed", channel=self.channel, error=str(e))
            return False
        except Exception:
            logger.exception("energy_spike_publish_failed", channel=self.channel)
            return False
        logger.info("energy_spike_published", channel=self.channel, property_id=str(payload["propertyId"]))
        return True


class EnergySimulator:
    """
    Reading generator. The instance owns its one-shot startup spike state, so a
    fresh simulator spikes once and a second one built in the same process
    spikes again.
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        notifier: Optional[SpikeNotifier] = None,
        startup_spike: bool = True,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.properties = db[PROPERTIES_COLL]
        self.readings = db[ENERGY_COLL]
        self.notifier = notifier
        self.rng = rng or random.Random()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.metrics = metrics or get_metrics()
        self.spike_pending = startup_spike

    async def occupied_properties(self) -> List[dict]:
        cursor = self.properties.find({"status": PropertyStatus.OCCUPIED.value}, {"_id": 1})
        return await cursor.to_list(length=None)

    async def last_reading(self, property_id) -> Optional[dict]:
        return await self.readings.find_one(
            {"property_id": property_id}, sort=[("timestamp", DESCENDING)]
        )

    async def tick(self) -> int:
        """Generate one reading per occupied property. Returns how many were written."""
        started = time.perf_counter()
        spike = self.spike_pending
        properties = await self.occupied_properties()
        if spike:
            logger.info("energy_startup_spike", properties=len(properties))

        written = 0
        for prop in properties:
            try:
                await self._generate(prop["_id"], spike)
                written += 1
            except Exception:
                self.metrics.energy_tick_failures_total.inc()
                logger.exception("energy_reading_failed", property_id=str(prop["_id"]))

        self.spike_pending = False
        self.metrics.energy_tick_duration.observe(time.perf_counter() - started)
        logger.info("energy_tick_completed", properties=len(properties), written=written)
        return written

    async def _generate(self, property_id, spike: bool) -> EnergyReading:
        now = self.clock()
        if spike:
            values = dict(SPIKE_READING)
        else:
            values = next_values(self.rng, await self.last_reading(property_id))

        reading = EnergyReading(property_id=property_id, timestamp=now, **values)
        await self.readings.insert_one(reading.to_mongo())
        self.metrics.record_reading("spike" if spike else "random_walk")

        if spike and self.notifier is not None:
            delivered = await self.notifier.publish({
                "propertyId": property_id,
                "avg_kWh": reading.power_kWh,
                "avg_temp": reading.temp_C,
                "avg_humidity": reading.humidity,
                "timestamp": now,
            })
            if not delivered:
                self.metrics.energy_spike_notify_failures_total.inc()
        return reading

    async def run(self) -> None:
        """Scheduler entry point; a failed tick is logged and the next one still runs."""
        try:
            await self.tick()
        except Exception:
            logger.exception("energy_tick_failed")


class EnergyReports:
    """Read side used by the reporting endpoints."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.readings = db[ENERGY_COLL]

    async def live(self, limit: int = 100) -> List[EnergyReading]:
        cursor = self.readings.find({}).sort("timestamp", DESCENDING).limit(limit)
        return [EnergyReading.model_validate(d) for d in await cursor.to_list(length=limit)]

    async def summary(self) -> List[EnergySummary]:
        pipeline = [
            {
                "$group": {
                    "_id": "$property_id",
                    "avg_kWh": {"$avg": "$power_kWh"},
                    "avg_temp": {"$avg": "$temp_C"},
                    "avg_humidity": {"$avg": "$humidity"},
                    "readings": {"$sum": 1},
                }
            }
        ]
        cursor = self.readings.aggregate(pipeline)
        return [EnergySummary.model_validate(d) for d in await cursor.to_list(length=None)]
