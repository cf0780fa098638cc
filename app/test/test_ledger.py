# tests/test_ledger.py - Lease ledger schedule, selectors and versioned writes

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId

from core.database import LEASES_COLL
from models.lease import EntryStatus, Lease
from services.ledger import (
    LedgerStore,
    advance_sequential,
    build_schedule,
    month_label,
    next_pending_index,
    pay_named_month,
    total_amount,
)
from utils.exceptions import AlreadyPaidError, ConcurrencyError, NoPaymentRecordError, NotFoundError

from conftest import FIXED_NOW, FakeCollection


class TestSchedule:
    """Schedule construction"""

    def test_twelve_entries_starting_this_month(self):
        entries = build_schedule(FIXED_NOW, initial_price=5000, monthly_rent=1000)

        assert len(entries) == 12
        assert entries[0].month == "2025-03"
        assert entries[-1].month == "2026-02"
        assert entries[0].amount == 5000
        assert all(e.amount == 1000 for e in entries[1:])
        assert all(e.status == EntryStatus.PENDING for e in entries)
        assert all(e.paid_at is None for e in entries)

    def test_month_labels_cross_year_boundary(self):
        start = datetime(2025, 11, 30, tzinfo=timezone.utc)
        labels = [e.month for e in build_schedule(start, 100, 100)]

        assert labels[:3] == ["2025-11", "2025-12", "2026-01"]
        assert len(set(labels)) == 12

    def test_first_paid(self):
        entries = build_schedule(FIXED_NOW, 5000, 1000, first_paid=True)

        assert entries[0].status == "Paid"
        assert entries[0].paid_at == FIXED_NOW
        assert next_pending_index(entries) == 1

    def test_total_amount(self):
        assert total_amount(5000, 1000) == 16000
        assert month_label(FIXED_NOW) == "2025-03"


class TestSequentialUnlock:
    """Earliest-Pending selector used by the mock gateway"""

    def test_twelve_payments_then_noop(self):
        entries = build_schedule(FIXED_NOW, 5000, 1000)

        for i in range(12):
            changed, entry = advance_sequential(entries, FIXED_NOW)
            assert changed is True
            assert entry.month == entries[i].month
            assert entry.paid_at == FIXED_NOW

        changed, entry = advance_sequential(entries, FIXED_NOW)
        assert changed is False
        assert entry is None
        assert all(e.status == "Paid" for e in entries)

    def test_ignores_calendar_month(self):
        """Payment goes to month 0 even when called months later"""
        entries = build_schedule(FIXED_NOW, 5000, 1000)
        later = datetime(2025, 9, 1, tzinfo=timezone.utc)

        _, entry = advance_sequential(entries, later)

        assert entry.month == "2025-03"

    def test_empty_ledger_initialised_with_first_month_paid(self):
        entries = []

        changed, entry = advance_sequential(
            entries, FIXED_NOW, start=FIXED_NOW, initial_price=5000, monthly_rent=1000
        )

        assert changed is True
        assert len(entries) == 12
        assert entry is entries[0]
        assert entries[0].status == "Paid"
        assert sum(1 for e in entries if e.status == "Pending") == 11


class TestNamedMonth:
    """Explicit month selector used by the lease-pay endpoint"""

    def test_pays_named_month(self):
        entries = build_schedule(FIXED_NOW, 5000, 1000)

        changed, entry = pay_named_month(entries, "2025-05", FIXED_NOW)

        assert changed is True
        assert entries[2] is entry
        assert entry.status == "Paid"
        assert next_pending_index(entries) == 0

    def test_missing_month(self):
        entries = build_schedule(FIXED_NOW, 5000, 1000)

        with pytest.raises(NoPaymentRecordError) as exc:
            pay_named_month(entries, "2030-01", FIXED_NOW)
        assert exc.value.status_code == 400

    def test_already_paid(self):
        entries = build_schedule(FIXED_NOW, 5000, 1000)
        pay_named_month(entries, "2025-03", FIXED_NOW)

        with pytest.raises(AlreadyPaidError):
            pay_named_month(entries, "2025-03", FIXED_NOW)


class TestLedgerStore:
    """Optimistic read-modify-write against the leases collection"""

    @pytest.fixture
    def lease(self):
        return Lease(
            property_id=ObjectId(),
            tenant_id=ObjectId(),
            start_date=FIXED_NOW,
            end_date=datetime(2026, 3, 15, tzinfo=timezone.utc),
            total_amount=16000,
            monthly_rent=1000,
            initial_price=5000,
            payments=build_schedule(FIXED_NOW, 5000, 1000),
        )

    @pytest.fixture
    def racing_db(self, lease):
        coll = FakeCollection(yield_on_read=True)
        coll.docs.append(lease.to_mongo())
        return {LEASES_COLL: coll}

    @pytest.mark.asyncio
    async def test_apply_bumps_version(self, racing_db, lease, clock):
        store = LedgerStore(racing_db, clock=clock)

        updated, entry = await store.apply(lease.id, lambda e, now: advance_sequential(e, now))

        assert updated.version == 1
        assert entry.month == "2025-03"
        stored = racing_db[LEASES_COLL].docs[0]
        assert stored["version"] == 1
        assert stored["payments"][0]["status"] == "Paid"

    @pytest.mark.asyncio
    async def test_noop_mutation_does_not_write(self, racing_db, lease, clock):
        store = LedgerStore(racing_db, clock=clock)

        updated, result = await store.apply(lease.id, lambda e, now: (False, None))

        assert result is None
        assert racing_db[LEASES_COLL].docs[0]["version"] == 0

    @pytest.mark.asyncio
    async def test_concurrent_named_month_transitions_once(self, racing_db, lease, clock):
        """Two writers on the same month: exactly one wins, the other sees it already paid"""
        store = LedgerStore(racing_db, clock=clock)

        def pay_march(entries, now):
            return pay_named_month(entries, "2025-03", now)

        results = await asyncio.gather(
            store.apply(lease.id, pay_march),
            store.apply(lease.id, pay_march),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], AlreadyPaidError)
        stored = racing_db[LEASES_COLL].docs[0]
        assert stored["version"] == 1
        assert [p["status"] for p in stored["payments"]].count("Paid") == 1

    @pytest.mark.asyncio
    async def test_concurrent_sequential_payments_settle_distinct_entries(self, racing_db, lease, clock):
        store = LedgerStore(racing_db, clock=clock)

        results = await asyncio.gather(*[
            store.apply(lease.id, lambda e, now: advance_sequential(e, now)) for _ in range(3)
        ])

        months = sorted(entry.month for _, entry in results)
        assert months == ["2025-03", "2025-04", "2025-05"]
        stored = racing_db[LEASES_COLL].docs[0]
        assert stored["version"] == 3

    @pytest.mark.asyncio
    async def test_concurrent_payments_on_last_pending_entry(self, lease, clock):
        """Only one of two racing payments settles the final month; the other is a no-op"""
        for entry in lease.payments[:11]:
            entry.status = "Paid"
        coll = FakeCollection(yield_on_read=True)
        coll.docs.append(lease.to_mongo())
        store = LedgerStore({LEASES_COLL: coll}, clock=clock)

        results = await asyncio.gather(
            store.apply(lease.id, lambda e, now: advance_sequential(e, now)),
            store.apply(lease.id, lambda e, now: advance_sequential(e, now)),
        )

        settled = [entry for _, entry in results if entry is not None]
        assert len(settled) == 1
        assert settled[0].month == "2026-02"
        assert coll.docs[0]["version"] == 1
        assert all(p["status"] == "Paid" for p in coll.docs[0]["payments"])

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, lease, clock):
        coll = MagicMock()
        coll.find_one = AsyncMock(return_value=lease.to_mongo())
        coll.update_one = AsyncMock(return_value=MagicMock(modified_count=0))
        store = LedgerStore({LEASES_COLL: coll}, max_retries=3, clock=clock)

        with pytest.raises(ConcurrencyError):
            await store.apply(lease.id, lambda e, now: advance_sequential(e, now))
        assert coll.update_one.await_count == 3

    @pytest.mark.asyncio
    async def test_missing_lease(self, clock):
        store = LedgerStore({LEASES_COLL: FakeCollection()}, clock=clock)

        with pytest.raises(NotFoundError):
            await store.load(ObjectId())
