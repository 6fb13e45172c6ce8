"""
Background Tasks Module

The sweeper runs for the lifetime of the application and repairs what an
interrupted request can leave behind:
- RSVPs and guests whose wedding no longer exists (partial cascade delete)
- guest <-> RSVP back-references that do not point at each other
- weddings whose counter reconciliation failed

Dependencies (injected at startup):
- db: MongoDB database connection
- reconciler: CounterReconciler shared with the request handlers
- logger: Logging instance
"""
import asyncio
import logging

from core.config import SWEEP_INTERVAL_SECONDS, LONG_READ_TIMEOUT_SECONDS
from core.database import storage_operation
from utils.helpers import utc_now_iso

# Module-level references to dependencies (set by init_tasks)
_db = None
_reconciler = None
_logger = logging.getLogger(__name__)
_sweep_task_running = True
_SWEEP_INTERVAL = SWEEP_INTERVAL_SECONDS


def init_tasks(db, reconciler, logger=None, sweep_interval=SWEEP_INTERVAL_SECONDS):
    """
    Initialize the tasks module with required dependencies.
    Must be called before starting any background tasks.
    """
    global _db, _reconciler, _logger, _sweep_task_running, _SWEEP_INTERVAL

    _db = db
    _reconciler = reconciler
    if logger is not None:
        _logger = logger
    _SWEEP_INTERVAL = sweep_interval
    _sweep_task_running = True

    _logger.info("Background tasks module initialized")


def stop_tasks():
    """Signal all tasks to stop"""
    global _sweep_task_running
    _sweep_task_running = False


@storage_operation(LONG_READ_TIMEOUT_SECONDS)
async def sweep_orphans(db) -> dict:
    """Delete RSVPs and guests keyed by a wedding id that no longer exists"""
    removed = {}
    for collection in ("rsvps", "guests"):
        # Read referenced ids before live ones so a wedding created meanwhile is never missed
        referenced = await db[collection].distinct("wedding_id")
        if not referenced:
            removed[collection] = 0
            continue
        alive = set(await db.weddings.distinct("id", {"id": {"$in": referenced}}))
        orphaned = [wedding_id for wedding_id in referenced if wedding_id not in alive]
        if not orphaned:
            removed[collection] = 0
            continue
        result = await db[collection].delete_many({"wedding_id": {"$in": orphaned}})
        removed[collection] = result.deleted_count
        _logger.info(f"Sweeper: removed {result.deleted_count} orphaned {collection} for {len(orphaned)} deleted weddings")
    return removed


@storage_operation(LONG_READ_TIMEOUT_SECONDS)
async def repair_references(db) -> dict:
    """Make every guest_id / rsvp_id pair point at each other again"""
    relinked = 0
    detached_rsvps = 0
    detached_guests = 0

    rsvps = await db.rsvps.find(
        {"guest_id": {"$ne": None}},
        {"_id": 0, "id": 1, "wedding_id": 1, "guest_id": 1, "status": 1, "submitted_at": 1}
    ).to_list(None)
    for rsvp in rsvps:
        guest = await db.guests.find_one({"id": rsvp["guest_id"]}, {"_id": 0, "id": 1, "wedding_id": 1, "rsvp_id": 1})
        if guest and guest.get("wedding_id") == rsvp["wedding_id"]:
            if guest.get("rsvp_id") == rsvp["id"]:
                continue
            if not guest.get("rsvp_id"):
                # RSVP written but the guest patch never happened
                await db.guests.update_one(
                    {"id": guest["id"], "rsvp_id": None},
                    {"$set": {
                        "rsvp_id": rsvp["id"],
                        "rsvp_status": rsvp.get("status"),
                        "rsvp_submitted_at": rsvp.get("submitted_at"),
                        "updated_at": utc_now_iso(),
                    }}
                )
                relinked += 1
                continue
        await db.rsvps.update_one({"id": rsvp["id"]}, {"$unset": {"guest_id": ""}})
        detached_rsvps += 1

    guests = await db.guests.find(
        {"rsvp_id": {"$ne": None}},
        {"_id": 0, "id": 1, "rsvp_id": 1}
    ).to_list(None)
    for guest in guests:
        rsvp = await db.rsvps.find_one({"id": guest["rsvp_id"]}, {"_id": 0, "id": 1, "guest_id": 1})
        if rsvp and rsvp.get("guest_id") == guest["id"]:
            continue
        await db.guests.update_one(
            {"id": guest["id"], "rsvp_id": guest["rsvp_id"]},
            {"$unset": {"rsvp_id": "", "rsvp_status": "", "rsvp_submitted_at": ""},
             "$set": {"updated_at": utc_now_iso()}}
        )
        detached_guests += 1

    if relinked or detached_rsvps or detached_guests:
        _logger.info(
            f"Sweeper: relinked {relinked} guests, detached {detached_rsvps} RSVPs "
            f"and {detached_guests} guests with dangling references"
        )
    return {"relinked": relinked, "detached_rsvps": detached_rsvps, "detached_guests": detached_guests}


async def run_sweep(db, reconciler=None) -> dict:
    """One full sweeper pass"""
    summary = {
        "orphans": await sweep_orphans(db),
        "references": await repair_references(db),
        "counters_fixed": 0,
    }
    if reconciler is not None:
        summary["counters_fixed"] = await reconciler.retry_dirty()
    return summary


async def auto_sweep_task():
    """Background task that runs the sweeper every SWEEP_INTERVAL seconds"""
    _logger.info("Sweeper task started")

    while _sweep_task_running:
        try:
            await run_sweep(_db, _reconciler)
        except Exception as e:
            _logger.error(f"Sweeper task error: {e}")

        await asyncio.sleep(_SWEEP_INTERVAL)
