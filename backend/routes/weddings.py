"""
Wedding management routes (owner only)
"""
from fastapi import APIRouter, Depends
from typing import Optional

from core.config import API_PREFIX, DEFAULT_PAGE_SIZE
from models.wedding import Wedding, WeddingCreate, WeddingUpdate
from services import weddings as wedding_store
from services.weddings import ensure_owner


def setup_wedding_routes(app, db, get_current_user):
    """Setup wedding routes with database and auth dependencies"""
    router = APIRouter(prefix="/weddings", tags=["weddings"])

    @router.post("", response_model=Wedding, status_code=201)
    async def create_wedding(
        data: WeddingCreate,
        current_user: dict = Depends(get_current_user)
    ):
        """Create a new draft wedding"""
        return await wedding_store.create_wedding(db, current_user["id"], data)

    @router.get("")
    async def list_weddings(
        status: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        current_user: dict = Depends(get_current_user)
    ):
        """List the current user's weddings, newest first"""
        result = await wedding_store.list_weddings_for_user(
            db, current_user["id"], status=status, search=search, page=page, page_size=page_size
        )
        result["data"] = [Wedding(**w) for w in result["data"]]
        return result

    @router.get("/slug/{slug}", response_model=Wedding)
    async def get_wedding_by_slug(
        slug: str,
        current_user: dict = Depends(get_current_user)
    ):
        """Resolve one of the user's own weddings by slug, whatever its status"""
        wedding = await wedding_store.get_wedding_by_slug(db, slug)
        return ensure_owner(wedding, current_user["id"])

    @router.get("/{wedding_id}", response_model=Wedding)
    async def get_wedding(
        wedding_id: str,
        current_user: dict = Depends(get_current_user)
    ):
        return await wedding_store.get_owned_wedding(db, wedding_id, current_user["id"])

    @router.put("/{wedding_id}", response_model=Wedding)
    async def update_wedding(
        wedding_id: str,
        data: WeddingUpdate,
        current_user: dict = Depends(get_current_user)
    ):
        """Partially update a wedding"""
        await wedding_store.get_owned_wedding(db, wedding_id, current_user["id"])
        return await wedding_store.update_wedding(db, wedding_id, data)

    @router.delete("/{wedding_id}")
    async def delete_wedding(
        wedding_id: str,
        current_user: dict = Depends(get_current_user)
    ):
        """Delete a wedding together with its guests and RSVPs"""
        await wedding_store.get_owned_wedding(db, wedding_id, current_user["id"])
        result = await wedding_store.delete_wedding(db, wedding_id)
        return {"message": "Wedding deleted successfully", **result}

    @router.post("/{wedding_id}/publish", response_model=Wedding)
    async def publish_wedding(
        wedding_id: str,
        current_user: dict = Depends(get_current_user)
    ):
        """Publish a wedding (make it live at its slug)"""
        await wedding_store.get_owned_wedding(db, wedding_id, current_user["id"])
        return await wedding_store.publish_wedding(db, wedding_id)

    app.include_router(router, prefix=API_PREFIX)
