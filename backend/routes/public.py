"""
Public invitation routes (no authentication)
"""
from fastapi import APIRouter, Request
from typing import Optional

from core.config import API_PREFIX, DEFAULT_PAGE_SIZE
from models.rsvp import RSVP, RSVPCreate
from models.wedding import PublicWedding
from services import weddings as wedding_store
from services.rsvps import submit_rsvp


def setup_public_routes(app, db, reconciler):
    """Setup public routes with database and reconciler dependencies"""
    router = APIRouter(prefix="/public", tags=["public"])

    @router.get("/weddings")
    async def list_public_weddings(
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        """Published public weddings, soonest event first"""
        result = await wedding_store.list_public_weddings(db, search=search, page=page, page_size=page_size)
        result["data"] = [PublicWedding(**w) for w in result["data"]]
        return result

    @router.get("/weddings/{slug}", response_model=PublicWedding)
    async def get_public_wedding(slug: str):
        """Invitation page data for guests; counts a view"""
        wedding = await wedding_store.get_wedding_by_slug(db, slug, public=True)
        await wedding_store.increment_views(db, wedding["id"])
        return wedding

    @router.post("/weddings/{slug}/rsvp", response_model=RSVP, status_code=201)
    async def submit_public_rsvp(slug: str, data: RSVPCreate, request: Request):
        """Submit an RSVP response (public endpoint for guests)"""
        return await submit_rsvp(
            db, reconciler, slug, data,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )

    app.include_router(router, prefix=API_PREFIX)
