"""
RSVP routes for the couple's dashboard
"""
import csv
import io
from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from typing import Optional

from core.config import API_PREFIX, DEFAULT_PAGE_SIZE, TREND_DAYS
from models.rsvp import RSVP, ManualRSVPCreate, RSVPUpdate, RSVPStatistics
from services import rsvps as rsvp_engine
from services.statistics import compute_statistics
from services.weddings import get_owned_wedding

CSV_FIELDS = [
    "first_name", "last_name", "email", "phone", "status", "attendance_count",
    "plus_one_count", "plus_ones", "dietary_restrictions", "dietary_selected",
    "additional_notes", "source", "submitted_at", "updated_at", "notes",
]


def rsvps_to_csv(rsvps: list) -> str:
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=CSV_FIELDS, extrasaction='ignore')
    writer.writeheader()
    for rsvp in rsvps:
        row = dict(rsvp)
        row["plus_ones"] = "; ".join(
            f"{p.get('first_name', '')} {p.get('last_name', '')}".strip() for p in rsvp.get("plus_ones") or []
        )
        row["dietary_selected"] = "; ".join(rsvp.get("dietary_selected") or [])
        writer.writerow(row)
    return output.getvalue()


def setup_rsvp_routes(app, db, reconciler, get_current_user, get_optional_user):
    """Setup RSVP routes with database, reconciler and auth dependencies"""
    router = APIRouter(tags=["rsvps"])

    @router.get("/weddings/{wedding_id}/rsvps")
    async def list_rsvps(
        wedding_id: str,
        status: Optional[str] = None,
        source: Optional[str] = None,
        search: Optional[str] = None,
        submitted_after: Optional[str] = None,
        submitted_before: Optional[str] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        current_user: dict = Depends(get_current_user)
    ):
        """Paged RSVPs for a wedding, newest first"""
        await get_owned_wedding(db, wedding_id, current_user["id"])
        return await rsvp_engine.list_rsvps(
            db, wedding_id, page=page, page_size=page_size,
            status=status, source=source, search=search,
            submitted_after=submitted_after, submitted_before=submitted_before,
        )

    @router.post("/weddings/{wedding_id}/rsvps", response_model=RSVP, status_code=201)
    async def add_manual_rsvp(
        wedding_id: str,
        data: ManualRSVPCreate,
        current_user: dict = Depends(get_current_user)
    ):
        """Record an RSVP received by phone or in person"""
        wedding = await get_owned_wedding(db, wedding_id, current_user["id"])
        return await rsvp_engine.add_manual_rsvp(db, reconciler, wedding, data)

    @router.get("/weddings/{wedding_id}/rsvps/statistics", response_model=RSVPStatistics)
    async def get_rsvp_statistics(
        wedding_id: str,
        days: int = Query(TREND_DAYS, ge=1, le=365),
        current_user: dict = Depends(get_current_user)
    ):
        """Exact statistics computed from the RSVP records"""
        await get_owned_wedding(db, wedding_id, current_user["id"])
        return await compute_statistics(db, wedding_id, days=days)

    @router.get("/weddings/{wedding_id}/rsvps/export")
    async def export_rsvps(
        wedding_id: str,
        format: str = Query("json", pattern="^(json|csv)$"),
        status: Optional[str] = None,
        source: Optional[str] = None,
        search: Optional[str] = None,
        submitted_after: Optional[str] = None,
        submitted_before: Optional[str] = None,
        current_user: dict = Depends(get_current_user)
    ):
        """Export RSVPs (JSON or CSV format)"""
        wedding = await get_owned_wedding(db, wedding_id, current_user["id"])
        rsvps = await rsvp_engine.export_rsvps(
            db, wedding_id, status=status, source=source, search=search,
            submitted_after=submitted_after, submitted_before=submitted_before,
        )

        if format == "csv":
            return StreamingResponse(
                iter([rsvps_to_csv(rsvps)]),
                media_type="text/csv",
                headers={"Content-Disposition": f"attachment; filename=rsvps_{wedding['slug']}.csv"}
            )
        return {"rsvps": rsvps, "total": len(rsvps)}

    @router.get("/rsvps/{rsvp_id}", response_model=RSVP)
    async def get_rsvp(
        rsvp_id: str,
        current_user: dict = Depends(get_current_user)
    ):
        rsvp = await rsvp_engine.get_rsvp(db, rsvp_id)
        await get_owned_wedding(db, rsvp["wedding_id"], current_user["id"])
        return rsvp

    @router.put("/rsvps/{rsvp_id}", response_model=RSVP)
    async def update_rsvp(
        rsvp_id: str,
        data: RSVPUpdate,
        current_user: Optional[dict] = Depends(get_optional_user)
    ):
        """Update an RSVP: the couple at any time, the guest within 24 hours"""
        caller_id = current_user["id"] if current_user else None
        return await rsvp_engine.update_rsvp(db, reconciler, rsvp_id, data, caller_id)

    @router.delete("/rsvps/{rsvp_id}")
    async def delete_rsvp(
        rsvp_id: str,
        current_user: dict = Depends(get_current_user)
    ):
        await rsvp_engine.delete_rsvp(db, reconciler, rsvp_id, current_user["id"])
        return {"message": "RSVP deleted successfully"}

    @router.post("/rsvps/{rsvp_id}/confirmation", response_model=RSVP)
    async def mark_confirmation_sent(
        rsvp_id: str,
        current_user: dict = Depends(get_current_user)
    ):
        """Record that a confirmation went out to the guest"""
        rsvp = await rsvp_engine.get_rsvp(db, rsvp_id)
        await get_owned_wedding(db, rsvp["wedding_id"], current_user["id"])
        return await rsvp_engine.mark_confirmation_sent(db, rsvp_id)

    app.include_router(router, prefix=API_PREFIX)
