import asyncio
from datetime import datetime, timezone
from typing import Optional, Tuple

import structlog
from motor.motor_asyncio import AsyncIOMotorDatabase

from core.database import PAYMENTS_COLL
from metrics.metrics import MetricsCollector, get_metrics
from models.lease import Lease
from models.payment import MockPaymentRequest, Payment, PaymentStatus
from services.leases import LeaseService
from services.ledger import LedgerStore, advance_sequential
from services.users import UserService
from utils.exceptions import ConcurrencyError, InvalidCardError, InvalidInputError, PaymentDeclinedError

logger = structlog.get_logger(__name__)


class MockPaymentGateway:
    """
    Simulated card payment: validate the stored card, wait a fixed delay,
    record a Payment and advance the payer's lease ledger by one entry.
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        delay_seconds: float = 1.0,
        max_retries: int = 5,
        metrics: Optional[MetricsCollector] = None,
        clock=None,
    ):
        self.payments = db[PAYMENTS_COLL]
        self.delay_seconds = delay_seconds
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.metrics = metrics or get_metrics()
        self.users = UserService(db)
        self.ledger = LedgerStore(db, max_retries=max_retries, clock=self.clock)
        self.leases = LeaseService(db, ledger=self.ledger, metrics=self.metrics, clock=self.clock)

    async def process(self, req: MockPaymentRequest) -> Tuple[Payment, Optional[Lease]]:
        user = await self.users.get(req.user_id)
        card = user.find_card(req.card_id)
        if card is None:
            raise InvalidCardError("Invalid or missing card")
        if req.amount <= 0:
            raise InvalidInputError("Amount must be positive")

        await asyncio.sleep(self.delay_seconds)

        payment = Payment(
            user_id=req.user_id,
            property_id=req.property_id,
            card_id=req.card_id,
            amount=req.amount,
            status=PaymentStatus.SUCCESS,
            timestamp=self.clock(),
        )
        if card.is_expired(payment.timestamp):
            await self._record(payment, PaymentStatus.FAILED)
            logger.warning("payment_declined", user_id=str(req.user_id), reason="card_expired")
            raise PaymentDeclinedError("Card expired")

        lease = await self.leases.for_payer(req.property_id, req.user_id)
        if lease is None:
            # payments may precede the lease in some flows
            await self._record(payment, PaymentStatus.SUCCESS)
            return payment, None

        def mutation(entries, now):
            return advance_sequential(
                entries,
                now,
                start=lease.start_date,
                initial_price=lease.initial_price or lease.monthly_rent,
                monthly_rent=lease.monthly_rent,
            )

        # the audit row reflects whether the ledger actually moved
        try:
            lease, entry = await self.ledger.apply(lease.id, mutation)
        except ConcurrencyError:
            await self._record(payment, PaymentStatus.FAILED)
            logger.warning("payment_failed", user_id=str(req.user_id), reason="ledger_conflict")
            raise

        await self._record(payment, PaymentStatus.SUCCESS)
        if entry is not None:
            self.metrics.record_ledger_transition("sequential")
            logger.info("ledger_advanced", lease_id=str(lease.id), month=entry.month)
        return payment, lease

    async def _record(self, payment: Payment, status: PaymentStatus) -> None:
        payment.status = status.value
        await self.payments.insert_one(payment.to_mongo())
        self.metrics.record_payment(status.value)
        logger.info(
            "payment_recorded",
            payment_id=str(payment.id),
            user_id=str(payment.user_id),
            property_id=str(payment.property_id),
            amount=payment.amount,
            status=status.value,
        )
