"""
Counter reconciler

The counters on a wedding (rsvp_count, guest_count, total_attending) are a
cache for listing views. They are recomputed from the RSVP and guest
collections after every mutation, never incremented in place. Runs for the
same wedding are serialized so a slow, stale count never lands last.
"""
import asyncio
import logging
from typing import Dict, Optional, Set

from core.config import RECONCILE_DEBOUNCE_MS, RSVP_ATTENDING
from core.database import storage_operation, clear_deadline
from services.weddings import set_counters

logger = logging.getLogger(__name__)


@storage_operation()
async def count_wedding_totals(db, wedding_id: str) -> dict:
    rsvp_count = await db.rsvps.count_documents({"wedding_id": wedding_id})
    guest_count = await db.guests.count_documents({"wedding_id": wedding_id})

    total_attending = 0
    async for rsvp in db.rsvps.find(
        {"wedding_id": wedding_id, "status": RSVP_ATTENDING},
        {"_id": 0, "attendance_count": 1}
    ):
        total_attending += rsvp.get("attendance_count", 1)

    return {
        "rsvp_count": rsvp_count,
        "guest_count": guest_count,
        "total_attending": total_attending,
    }


class CounterReconciler:
    """Recomputes wedding counters; `trigger` never raises into the caller."""

    def __init__(self, db, debounce_seconds: Optional[float] = None):
        self.db = db
        if debounce_seconds is None:
            debounce_seconds = RECONCILE_DEBOUNCE_MS / 1000
        self.debounce_seconds = debounce_seconds
        self._pending: Dict[str, asyncio.Task] = {}
        self._dirty: Set[str] = set()
        self._locks: Dict[str, asyncio.Lock] = {}

    @property
    def dirty(self) -> Set[str]:
        """Weddings whose last reconciliation failed"""
        return set(self._dirty)

    async def reconcile(self, wedding_id: str) -> dict:
        lock = self._locks.setdefault(wedding_id, asyncio.Lock())
        async with lock:
            counters = await count_wedding_totals(self.db, wedding_id)
            await set_counters(self.db, wedding_id, counters)
        self._dirty.discard(wedding_id)
        return counters

    async def trigger(self, wedding_id: str):
        """
        Schedule a recount for `wedding_id`.

        Without a debounce the recount runs before returning. Otherwise bursts
        of triggers within the debounce window share a single run.
        """
        if self.debounce_seconds <= 0:
            await self._run(wedding_id)
            return

        task = self._pending.get(wedding_id)
        if task is not None and not task.done():
            return
        self._pending[wedding_id] = asyncio.create_task(self._debounced(wedding_id))

    async def _debounced(self, wedding_id: str):
        clear_deadline()
        try:
            await asyncio.sleep(self.debounce_seconds)
        finally:
            # Triggers that arrive while we run must schedule a fresh pass
            if self._pending.get(wedding_id) is asyncio.current_task():
                del self._pending[wedding_id]
        await self._run(wedding_id)

    async def _run(self, wedding_id: str) -> bool:
        try:
            await self.reconcile(wedding_id)
            return True
        except Exception as e:
            self._dirty.add(wedding_id)
            logger.error(f"Counter reconciliation failed for wedding {wedding_id}: {e}")
            return False

    async def retry_dirty(self) -> int:
        """Re-run failed reconciliations; returns how many now succeeded"""
        fixed = 0
        for wedding_id in list(self._dirty):
            if await self._run(wedding_id):
                fixed += 1
        if fixed:
            logger.info(f"Reconciled counters for {fixed} previously failed weddings")
        return fixed

    async def drain(self):
        """Wait for scheduled runs (shutdown, tests)"""
        while self._pending:
            tasks = list(self._pending.values())
            await asyncio.gather(*tasks, return_exceptions=True)
            for wedding_id, task in list(self._pending.items()):
                if task.done():
                    self._pending.pop(wedding_id, None)
