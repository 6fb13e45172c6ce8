"""
Guest store

Guest emails are unique within a wedding when present. Guests without an
email are stored without the field so the partial unique index skips them.
"""
import logging
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from core.config import GUEST_SIDES, INVITATION_STATUSES, LONG_READ_TIMEOUT_SECONDS, RSVP_STATUSES
from core.database import storage_operation
from core.errors import DuplicateGuestError, NotFoundError, ValidationError
from models.guest import GuestCreate, GuestUpdate
from utils.helpers import (
    new_id, utc_now, utc_now_iso, bump_timestamp, generate_random_string,
    contains_pattern, normalize_pagination, page_response,
)

logger = logging.getLogger(__name__)


async def _email_taken(db, wedding_id: str, email: str, exclude_id: Optional[str] = None) -> bool:
    query = {"wedding_id": wedding_id, "email": email}
    if exclude_id:
        query["id"] = {"$ne": exclude_id}
    return await db.guests.find_one(query, {"_id": 0, "id": 1}) is not None


def _duplicate(email: str) -> DuplicateGuestError:
    return DuplicateGuestError(f"A guest with email {email} already exists for this wedding", field="email")


async def _insert_guest(db, wedding_id: str, data: GuestCreate, created_by: str,
                        import_batch_id: Optional[str] = None) -> dict:
    if data.email and await _email_taken(db, wedding_id, data.email):
        raise _duplicate(data.email)

    now = utc_now_iso()
    guest_doc = {
        "id": new_id(),
        "wedding_id": wedding_id,
        **data.model_dump(),
        "rsvp_id": None,
        "rsvp_status": None,
        "rsvp_submitted_at": None,
        "import_batch_id": import_batch_id,
        "created_by": created_by,
        "created_at": now,
        "updated_at": now,
    }
    if not guest_doc.get("email"):
        guest_doc.pop("email", None)

    try:
        await db.guests.insert_one(guest_doc)
    except DuplicateKeyError:
        raise _duplicate(data.email)

    guest_doc.pop("_id", None)
    return guest_doc


@storage_operation()
async def create_guest(db, wedding_id: str, data: GuestCreate, created_by: str, reconciler=None) -> dict:
    guest = await _insert_guest(db, wedding_id, data, created_by)
    logger.info(f"Added guest {guest['id']} to wedding {wedding_id}")
    if reconciler is not None:
        await reconciler.trigger(wedding_id)
    return guest


@storage_operation(LONG_READ_TIMEOUT_SECONDS)
async def bulk_create_guests(db, wedding_id: str, rows: List[dict], created_by: str, reconciler=None) -> dict:
    """
    Insert already-parsed import rows under one batch id.

    Each row succeeds or fails on its own: invalid rows, emails repeated
    within the import and emails that already exist are reported with their
    row index. Successful rows are kept; roll back with delete_import_batch.
    """
    batch_id = f"{created_by}_{int(utc_now().timestamp())}_{generate_random_string(4)}"
    seen_emails = set()
    errors = []
    guest_ids = []

    for index, row in enumerate(rows):
        try:
            data = GuestCreate.model_validate(row)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or None
            errors.append({"row": index, "field": field, "error": first.get("msg", "Invalid row")})
            continue

        if data.email:
            if data.email in seen_emails:
                errors.append({"row": index, "field": "email",
                               "error": f"Email {data.email} appears more than once in this import"})
                continue
            seen_emails.add(data.email)

        try:
            guest = await _insert_guest(db, wedding_id, data, created_by, import_batch_id=batch_id)
        except DuplicateGuestError as e:
            errors.append({"row": index, "field": "email", "error": e.message})
            continue
        guest_ids.append(guest["id"])

    logger.info(
        f"Guest import {batch_id} for wedding {wedding_id}: "
        f"{len(guest_ids)} added, {len(errors)} rejected"
    )
    if guest_ids and reconciler is not None:
        await reconciler.trigger(wedding_id)

    return {
        "batch_id": batch_id,
        "success_count": len(guest_ids),
        "error_count": len(errors),
        "errors": errors,
        "guest_ids": guest_ids,
    }


@storage_operation()
async def get_guest(db, guest_id: str) -> dict:
    guest = await db.guests.find_one({"id": guest_id}, {"_id": 0})
    if not guest:
        raise NotFoundError("Guest not found")
    return guest


@storage_operation()
async def update_guest(db, guest_id: str, patch: GuestUpdate) -> dict:
    guest = await get_guest(db, guest_id)
    changes = patch.model_dump(exclude_unset=True)
    set_data = {}
    unset_data = {}

    if "email" in changes:
        email = changes.pop("email")
        if email:
            if email != guest.get("email") and await _email_taken(db, guest["wedding_id"], email, exclude_id=guest_id):
                raise _duplicate(email)
            set_data["email"] = email
        else:
            unset_data["email"] = ""

    for field, value in changes.items():
        if value is None and field in ("first_name", "last_name", "side", "allow_plus_one",
                                       "max_plus_ones", "invitation_status", "vip"):
            continue
        set_data[field] = value

    set_data["updated_at"] = bump_timestamp(guest.get("updated_at"))
    update = {"$set": set_data}
    if unset_data:
        update["$unset"] = unset_data

    try:
        updated = await db.guests.find_one_and_update(
            {"id": guest_id},
            update,
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        raise _duplicate(set_data.get("email"))
    if not updated:
        raise NotFoundError("Guest not found")
    return updated


@storage_operation()
async def delete_guest(db, guest_id: str, reconciler=None):
    """Delete a guest; a linked RSVP stays but loses its guest reference"""
    guest = await get_guest(db, guest_id)
    await db.rsvps.update_many({"guest_id": guest_id}, {"$unset": {"guest_id": ""}})

    result = await db.guests.delete_one({"id": guest_id})
    if result.deleted_count == 0:
        raise NotFoundError("Guest not found")

    logger.info(f"Deleted guest {guest_id} from wedding {guest['wedding_id']}")
    if reconciler is not None:
        await reconciler.trigger(guest["wedding_id"])


@storage_operation()
async def list_guests(
    db,
    wedding_id: str,
    rsvp_status: Optional[str] = None,
    side: Optional[str] = None,
    invitation_status: Optional[str] = None,
    vip: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
) -> dict:
    query = {"wedding_id": wedding_id}
    if rsvp_status:
        if rsvp_status == "none":
            query["rsvp_id"] = None
        elif rsvp_status in RSVP_STATUSES:
            query["rsvp_status"] = rsvp_status
        else:
            raise ValidationError(f"Unknown RSVP status filter: {rsvp_status}", field="rsvp_status")
    if side:
        if side not in GUEST_SIDES:
            raise ValidationError(f"Unknown side: {side}", field="side")
        query["side"] = side
    if invitation_status:
        if invitation_status not in INVITATION_STATUSES:
            raise ValidationError(f"Unknown invitation status: {invitation_status}", field="invitation_status")
        query["invitation_status"] = invitation_status
    if vip is not None:
        query["vip"] = vip
    if search:
        pattern = contains_pattern(search)
        query["$or"] = [{"first_name": pattern}, {"last_name": pattern}, {"email": pattern}]

    page, page_size = normalize_pagination(page, page_size)
    total = await db.guests.count_documents(query)
    guests = await db.guests.find(query, {"_id": 0}).sort(
        [("created_at", -1), ("id", -1)]
    ).skip((page - 1) * page_size).limit(page_size).to_list(page_size)
    return page_response(guests, total, page, page_size)


@storage_operation()
async def get_guests_by_import_batch(db, wedding_id: str, batch_id: str) -> list:
    return await db.guests.find(
        {"wedding_id": wedding_id, "import_batch_id": batch_id},
        {"_id": 0}
    ).sort([("created_at", 1), ("id", 1)]).to_list(None)


@storage_operation(LONG_READ_TIMEOUT_SECONDS)
async def delete_import_batch(db, wedding_id: str, batch_id: str, reconciler=None) -> int:
    """Roll back a bulk import"""
    guest_ids = await db.guests.distinct("id", {"wedding_id": wedding_id, "import_batch_id": batch_id})
    if not guest_ids:
        raise NotFoundError("Import batch not found")

    await db.rsvps.update_many({"guest_id": {"$in": guest_ids}}, {"$unset": {"guest_id": ""}})
    result = await db.guests.delete_many({"wedding_id": wedding_id, "import_batch_id": batch_id})

    logger.info(f"Rolled back import {batch_id}: removed {result.deleted_count} guests")
    if reconciler is not None:
        await reconciler.trigger(wedding_id)
    return result.deleted_count
