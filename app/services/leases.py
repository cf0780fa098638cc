from datetime import datetime, timezone
from typing import Optional, Tuple

import structlog
from dateutil.relativedelta import relativedelta
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from core.database import LEASES_COLL, PROPERTIES_COLL
from metrics.metrics import MetricsCollector, get_metrics
from models.lease import Lease, LeasePayRequest, LeaseStatus, PaymentEntry
from models.property import Property, PropertyStatus
from services.ledger import LedgerStore, build_schedule, month_label, pay_named_month, total_amount
from utils.exceptions import InvalidInputError, LeaseExistsError, NotFoundError

logger = structlog.get_logger(__name__)


class LeaseService:
    """Approval workflow and lease lookups."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        ledger: Optional[LedgerStore] = None,
        metrics: Optional[MetricsCollector] = None,
        clock=None,
    ):
        self.leases = db[LEASES_COLL]
        self.properties = db[PROPERTIES_COLL]
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.ledger = ledger or LedgerStore(db, clock=self.clock)
        self.metrics = metrics or get_metrics()

    async def approve(self, property_id) -> Lease:
        """
        Turn a requested property into an occupied one and create its lease with
        a 12-entry Pending schedule. A property gets at most one active lease.
        """
        doc = await self.properties.find_one({"_id": property_id})
        if not doc:
            raise NotFoundError("Property not found")
        prop = Property.model_validate(doc)

        if await self.leases.find_one({"property_id": prop.id, "status": LeaseStatus.ACTIVE.value}):
            raise LeaseExistsError("Property already has an active lease")
        if prop.status != PropertyStatus.REQUESTED or prop.tenant_id is None:
            raise InvalidInputError("Property has no pending request")

        claimed = await self.properties.update_one(
            {"_id": prop.id, "status": PropertyStatus.REQUESTED.value},
            {"$set": {"status": PropertyStatus.OCCUPIED.value}},
        )
        if claimed.modified_count != 1:
            raise LeaseExistsError("Property was approved concurrently")

        start = self.clock()
        lease = Lease(
            property_id=prop.id,
            tenant_id=prop.tenant_id,
            start_date=start,
            end_date=start + relativedelta(years=1),
            total_amount=total_amount(prop.initial_price, prop.rent),
            monthly_rent=prop.rent,
            initial_price=prop.initial_price,
            payments=build_schedule(start, prop.initial_price, prop.rent),
        )
        try:
            await self.leases.insert_one(lease.to_mongo())
        except Exception as e:
            await self._release_claim(prop.id)
            if isinstance(e, DuplicateKeyError):
                raise LeaseExistsError("Property already has an active lease") from e
            raise

        self.metrics.lease_approvals_total.inc()
        logger.info(
            "lease_approved",
            lease_id=str(lease.id),
            property_id=str(prop.id),
            tenant_id=str(prop.tenant_id),
            total_amount=lease.total_amount,
        )
        return lease

    async def _release_claim(self, property_id) -> None:
        """Put a claimed property back to `requested` when its lease could not be stored."""
        await self.properties.update_one(
            {"_id": property_id, "status": PropertyStatus.OCCUPIED.value},
            {"$set": {"status": PropertyStatus.REQUESTED.value}},
        )
        logger.warning("lease_claim_released", property_id=str(property_id))

    async def for_tenant(self, tenant_id) -> Tuple[Lease, Optional[Property]]:
        doc = await self.leases.find_one({"tenant_id": tenant_id}, sort=[("start_date", -1)])
        if not doc:
            raise NotFoundError("Lease not found")
        lease = Lease.model_validate(doc)
        prop_doc = await self.properties.find_one({"_id": lease.property_id})
        return lease, Property.model_validate(prop_doc) if prop_doc else None

    async def for_payer(self, property_id, tenant_id) -> Optional[Lease]:
        doc = await self.leases.find_one(
            {"property_id": property_id, "tenant_id": tenant_id},
            sort=[("start_date", -1)],
        )
        return Lease.model_validate(doc) if doc else None

    async def pay_current_month(self, req: LeasePayRequest) -> Tuple[Lease, PaymentEntry]:
        """Named-month payment: settle the entry labelled with the current calendar month."""
        label = month_label(self.clock())
        lease, entry = await self.ledger.apply(
            req.lease_id, lambda entries, now: pay_named_month(entries, label, now)
        )
        self.metrics.record_ledger_transition("named_month")
        logger.info(
            "ledger_month_paid",
            lease_id=str(lease.id),
            month=label,
            type=req.type,
            amount=entry.amount,
        )
        return lease, entry
