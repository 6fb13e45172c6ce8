"""
Guest roster routes (owner only)
"""
from fastapi import APIRouter, Depends
from typing import Optional

from core.config import API_PREFIX, DEFAULT_PAGE_SIZE
from models.guest import Guest, GuestCreate, GuestUpdate, BulkGuestCreate, BulkGuestResult
from services import guests as guest_store
from services.weddings import get_owned_wedding


def setup_guest_routes(app, db, reconciler, get_current_user):
    """Setup guest routes with database, reconciler and auth dependencies"""
    router = APIRouter(tags=["guests"])

    async def owned_guest(guest_id: str, user_id: str) -> dict:
        guest = await guest_store.get_guest(db, guest_id)
        await get_owned_wedding(db, guest["wedding_id"], user_id)
        return guest

    @router.post("/weddings/{wedding_id}/guests", response_model=Guest, status_code=201)
    async def create_guest(
        wedding_id: str,
        data: GuestCreate,
        current_user: dict = Depends(get_current_user)
    ):
        await get_owned_wedding(db, wedding_id, current_user["id"])
        return await guest_store.create_guest(db, wedding_id, data, current_user["id"], reconciler)

    @router.post("/weddings/{wedding_id}/guests/bulk", response_model=BulkGuestResult, status_code=201)
    async def bulk_create_guests(
        wedding_id: str,
        data: BulkGuestCreate,
        current_user: dict = Depends(get_current_user)
    ):
        """Import parsed guest rows; failures are reported per row"""
        await get_owned_wedding(db, wedding_id, current_user["id"])
        return await guest_store.bulk_create_guests(db, wedding_id, data.guests, current_user["id"], reconciler)

    @router.get("/weddings/{wedding_id}/guests")
    async def list_guests(
        wedding_id: str,
        rsvp_status: Optional[str] = None,
        side: Optional[str] = None,
        invitation_status: Optional[str] = None,
        vip: Optional[bool] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        current_user: dict = Depends(get_current_user)
    ):
        await get_owned_wedding(db, wedding_id, current_user["id"])
        return await guest_store.list_guests(
            db, wedding_id, rsvp_status=rsvp_status, side=side,
            invitation_status=invitation_status, vip=vip, search=search,
            page=page, page_size=page_size,
        )

    @router.get("/weddings/{wedding_id}/guests/batches/{batch_id}")
    async def get_import_batch(
        wedding_id: str,
        batch_id: str,
        current_user: dict = Depends(get_current_user)
    ):
        await get_owned_wedding(db, wedding_id, current_user["id"])
        guests = await guest_store.get_guests_by_import_batch(db, wedding_id, batch_id)
        return {"batch_id": batch_id, "guests": guests, "total": len(guests)}

    @router.delete("/weddings/{wedding_id}/guests/batches/{batch_id}")
    async def delete_import_batch(
        wedding_id: str,
        batch_id: str,
        current_user: dict = Depends(get_current_user)
    ):
        """Roll back a bulk import"""
        await get_owned_wedding(db, wedding_id, current_user["id"])
        deleted = await guest_store.delete_import_batch(db, wedding_id, batch_id, reconciler)
        return {"message": "Import rolled back", "deleted_count": deleted}

    @router.get("/guests/{guest_id}", response_model=Guest)
    async def get_guest(
        guest_id: str,
        current_user: dict = Depends(get_current_user)
    ):
        return await owned_guest(guest_id, current_user["id"])

    @router.put("/guests/{guest_id}", response_model=Guest)
    async def update_guest(
        guest_id: str,
        data: GuestUpdate,
        current_user: dict = Depends(get_current_user)
    ):
        await owned_guest(guest_id, current_user["id"])
        return await guest_store.update_guest(db, guest_id, data)

    @router.delete("/guests/{guest_id}")
    async def delete_guest(
        guest_id: str,
        current_user: dict = Depends(get_current_user)
    ):
        await owned_guest(guest_id, current_user["id"])
        await guest_store.delete_guest(db, guest_id, reconciler)
        return {"message": "Guest deleted successfully"}

    app.include_router(router, prefix=API_PREFIX)
