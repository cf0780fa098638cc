"""
Lease ledger: the 12-entry monthly payment schedule attached to a lease.

Every entry moves one way, Pending -> Paid. Two selectors pick the entry to
transition:

* sequential-unlock (``advance_sequential``): the earliest Pending entry,
  regardless of calendar month. Used by the mock payment gateway.
* named-month (``pay_named_month``): the entry labelled with a given month.
  Used by the explicit lease-pay endpoint.

Both go through ``mark_paid`` so labels, casing and ``paid_at`` stamping
are identical whichever endpoint the client calls.

Persistence is optimistic: ``LedgerStore.apply`` re-reads the lease, applies a
pure mutation and writes it back conditionally on the lease ``version``.
"""
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

import structlog
from dateutil.relativedelta import relativedelta
from motor.motor_asyncio import AsyncIOMotorDatabase

from core.database import LEASES_COLL
from models.lease import EntryStatus, Lease, PaymentEntry
from utils.exceptions import AlreadyPaidError, ConcurrencyError, NoPaymentRecordError, NotFoundError

logger = structlog.get_logger(__name__)

LEASE_MONTHS = 12

# mutation(entries, now) -> (changed, result)
LedgerMutation = Callable[[List[PaymentEntry], datetime], Tuple[bool, object]]


def month_label(dt: datetime) -> str:
    return dt.strftime("%Y-%m")


def build_schedule(
    start: datetime,
    initial_price: float,
    monthly_rent: float,
    months: int = LEASE_MONTHS,
    first_paid: bool = False,
) -> List[PaymentEntry]:
    """
    Month 0 carries the initial price, months 1..n-1 the monthly rent.
    ``first_paid`` marks month 0 as already settled.
    """
    first_of_month = start.replace(day=1)
    entries = []
    for i in range(months):
        paid = first_paid and i == 0
        entries.append(PaymentEntry(
            month=month_label(first_of_month + relativedelta(months=i)),
            amount=initial_price if i == 0 else monthly_rent,
            status=(EntryStatus.PAID if paid else EntryStatus.PENDING).value,
            paid_at=start if paid else None,
        ))
    return entries


def total_amount(initial_price: float, monthly_rent: float, months: int = LEASE_MONTHS) -> float:
    return initial_price + monthly_rent * (months - 1)


def next_pending_index(entries: List[PaymentEntry]) -> Optional[int]:
    for i, entry in enumerate(entries):
        if entry.status == EntryStatus.PENDING:
            return i
    return None


def index_for_month(entries: List[PaymentEntry], label: str) -> Optional[int]:
    for i, entry in enumerate(entries):
        if entry.month == label:
            return i
    return None


def mark_paid(entries: List[PaymentEntry], index: int, now: datetime) -> PaymentEntry:
    entry = entries[index]
    if entry.status == EntryStatus.PAID:
        raise AlreadyPaidError(f"Payment for {entry.month} is already paid.")
    entry.status = EntryStatus.PAID.value
    entry.paid_at = now
    return entry


def advance_sequential(
    entries: List[PaymentEntry],
    now: datetime,
    start: Optional[datetime] = None,
    initial_price: float = 0.0,
    monthly_rent: float = 0.0,
) -> Tuple[bool, Optional[PaymentEntry]]:
    """
    Pay the earliest Pending entry.

    An empty ledger is first initialised with month 0 already Paid; that
    initialisation is the transition for this call. When nothing is Pending the
    call is a no-op.
    """
    if not entries:
        entries.extend(build_schedule(start or now, initial_price, monthly_rent, first_paid=True))
        entries[0].paid_at = now
        return True, entries[0]

    index = next_pending_index(entries)
    if index is None:
        logger.info("ledger_fully_paid", months=len(entries))
        return False, None
    return True, mark_paid(entries, index, now)


def pay_named_month(
    entries: List[PaymentEntry], label: str, now: datetime
) -> Tuple[bool, PaymentEntry]:
    index = index_for_month(entries, label)
    if index is None:
        raise NoPaymentRecordError(f"No payment record found for {label}.")
    return True, mark_paid(entries, index, now)


class LedgerStore:
    """Versioned read-modify-write of a lease's payment schedule."""

    def __init__(self, db: AsyncIOMotorDatabase, max_retries: int = 5, clock=None):
        self.leases = db[LEASES_COLL]
        self.max_retries = max_retries
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def load(self, lease_id) -> Lease:
        doc = await self.leases.find_one({"_id": lease_id})
        if not doc:
            raise NotFoundError("Lease not found")
        return Lease.model_validate(doc)

    async def apply(self, lease_id, mutation: LedgerMutation) -> Tuple[Lease, object]:
        """
        Apply ``mutation`` to the lease ledger and persist it only if no other
        writer bumped the version in between. Lost races are retried against a
        fresh read; errors raised by the mutation propagate untouched.
        """
        for attempt in range(1, self.max_retries + 1):
            lease = await self.load(lease_id)
            changed, result = mutation(lease.payments, self.clock())
            if not changed:
                return lease, result

            payments = [p.model_dump(mode="python") for p in lease.payments]
            update = await self.leases.update_one(
                {"_id": lease.id, "version": lease.version},
                {"$set": {"payments": payments}, "$inc": {"version": 1}},
            )
            if update.modified_count == 1:
                lease.version += 1
                return lease, result
            logger.warning("ledger_write_conflict", lease_id=str(lease.id), attempt=attempt)

        raise ConcurrencyError("Lease was updated concurrently, please retry")
