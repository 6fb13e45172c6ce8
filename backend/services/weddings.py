"""
Wedding store

Persists invitation documents, enforces slug uniqueness and the
draft -> published lifecycle, and owns the cascade on delete.
"""
import logging
from typing import Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from core.config import (
    MONGO_USE_TRANSACTIONS, RESERVED_SLUGS, SLUG_MIN_LENGTH, SLUG_MAX_LENGTH,
    WEDDING_STATUS_DRAFT, WEDDING_STATUS_PUBLISHED, WEDDING_STATUSES,
)
from core.database import storage_operation
from core.errors import (
    NotFoundError, PermissionDeniedError, ServiceError, SlugTakenError,
    ValidationError, WeddingNotPublicError,
)
from models.wedding import WeddingCreate, WeddingUpdate
from utils.helpers import (
    new_id, validate_slug, slugify, generate_random_string, utc_now_iso,
    bump_timestamp, contains_pattern, normalize_pagination, page_response,
)

logger = logging.getLogger(__name__)

# Fields that must be filled in before a wedding can go live
PUBLISH_REQUIRED_FIELDS = [
    "couple.partner1.first_name",
    "couple.partner2.first_name",
    "event.title",
    "event.date",
    "event.venue_name",
    "event.venue_address",
]

# Nested values replaced wholesale on update instead of merged key by key
_OPAQUE_KEYS = {"custom_settings"}


def _lookup(doc: dict, path: str):
    value = doc
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _flatten(prefix: str, value, out: dict):
    """Turn a nested patch into dotted $set paths so siblings are kept"""
    if isinstance(value, dict) and prefix.rsplit(".", 1)[-1] not in _OPAQUE_KEYS:
        for key, item in value.items():
            _flatten(f"{prefix}.{key}", item, out)
    else:
        out[prefix] = value


def _mint_question_ids(questions: list) -> list:
    seen = set()
    for index, question in enumerate(questions):
        if not question.get("id"):
            question["id"] = new_id()
        if question["id"] in seen:
            raise ValidationError(
                f"Duplicate question id {question['id']}",
                field=f"rsvp.custom_questions[{index}].id",
            )
        seen.add(question["id"])
    return questions


async def _slug_in_use(db, slug: str, exclude_id: Optional[str] = None) -> bool:
    query = {"slug": slug}
    if exclude_id:
        query["id"] = {"$ne": exclude_id}
    return await db.weddings.find_one(query, {"_id": 0, "id": 1}) is not None


@storage_operation()
async def generate_unique_slug(db, title: str) -> str:
    """Derive a free slug from the title, adding a short random suffix on collision"""
    base = slugify(title, SLUG_MAX_LENGTH - 7)
    if len(base) < SLUG_MIN_LENGTH or base in RESERVED_SLUGS:
        base = f"wedding-{base}".strip("-")
    candidate = base
    for _ in range(5):
        if not await _slug_in_use(db, candidate):
            return candidate
        candidate = f"{base}-{generate_random_string(6)}"
    raise SlugTakenError("Could not generate a unique slug, please choose one", field="slug")


@storage_operation()
async def create_wedding(db, owner_id: str, data: WeddingCreate) -> dict:
    """Persist a new draft wedding for `owner_id`"""
    if data.slug:
        slug = validate_slug(data.slug)
        if await _slug_in_use(db, slug):
            raise SlugTakenError(f"Slug '{slug}' is already taken", field="slug")
    else:
        slug = await generate_unique_slug(db, data.title)

    payload = data.model_dump()
    payload["rsvp"]["custom_questions"] = _mint_question_ids(payload["rsvp"]["custom_questions"])
    now = utc_now_iso()

    wedding_doc = {
        "id": new_id(),
        "user_id": owner_id,
        "slug": slug,
        "title": payload["title"],
        "couple": payload["couple"],
        "event": payload["event"],
        "theme": payload["theme"],
        "rsvp": payload["rsvp"],
        "cover_image_url": payload["cover_image_url"],
        "share_message": payload["share_message"],
        "is_public": payload["is_public"],
        "status": WEDDING_STATUS_DRAFT,
        "published_at": None,
        "rsvp_count": 0,
        "guest_count": 0,
        "total_attending": 0,
        "view_count": 0,
        "last_viewed_at": None,
        "created_at": now,
        "updated_at": now,
    }

    try:
        await db.weddings.insert_one(wedding_doc)
    except DuplicateKeyError:
        raise SlugTakenError(f"Slug '{slug}' is already taken", field="slug")

    # Remove MongoDB _id before returning
    wedding_doc.pop("_id", None)
    logger.info(f"Created wedding {wedding_doc['id']} ({slug}) for user {owner_id}")
    return wedding_doc


@storage_operation()
async def get_wedding(db, wedding_id: str) -> dict:
    wedding = await db.weddings.find_one({"id": wedding_id}, {"_id": 0})
    if not wedding:
        raise NotFoundError("Wedding not found")
    return wedding


@storage_operation()
async def get_wedding_by_slug(db, slug: str, public: bool = False) -> dict:
    """
    Resolve a wedding by slug.

    On the public path only published, public weddings are visible; anything
    else is reported as not public so drafts are never revealed.
    """
    wedding = await db.weddings.find_one({"slug": (slug or "").lower()}, {"_id": 0})
    if not wedding:
        raise NotFoundError("Wedding not found")
    if public and (wedding.get("status") != WEDDING_STATUS_PUBLISHED or not wedding.get("is_public")):
        raise WeddingNotPublicError("Wedding not found or not yet published")
    return wedding


def ensure_owner(wedding: dict, user_id: str) -> dict:
    if wedding.get("user_id") != user_id:
        raise PermissionDeniedError("You do not have access to this wedding")
    return wedding


async def get_owned_wedding(db, wedding_id: str, user_id: str) -> dict:
    return ensure_owner(await get_wedding(db, wedding_id), user_id)


def _search_clause(search: str) -> list:
    pattern = contains_pattern(search)
    return [
        {"title": pattern},
        {"slug": pattern},
        {"couple.partner1.first_name": pattern},
        {"couple.partner1.last_name": pattern},
        {"couple.partner2.first_name": pattern},
        {"couple.partner2.last_name": pattern},
    ]


@storage_operation()
async def list_weddings_for_user(
    db,
    owner_id: str,
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
) -> dict:
    query = {"user_id": owner_id}
    if status:
        if status not in WEDDING_STATUSES:
            raise ValidationError(f"Unknown status: {status}", field="status")
        query["status"] = status
    if search:
        query["$or"] = _search_clause(search)

    page, page_size = normalize_pagination(page, page_size)
    total = await db.weddings.count_documents(query)
    weddings = await db.weddings.find(query, {"_id": 0}).sort(
        [("created_at", -1), ("id", -1)]
    ).skip((page - 1) * page_size).limit(page_size).to_list(page_size)
    return page_response(weddings, total, page, page_size)


@storage_operation()
async def list_public_weddings(
    db,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
) -> dict:
    query = {"is_public": True, "status": WEDDING_STATUS_PUBLISHED}
    if search:
        query["$or"] = _search_clause(search)

    page, page_size = normalize_pagination(page, page_size)
    total = await db.weddings.count_documents(query)
    weddings = await db.weddings.find(query, {"_id": 0, "user_id": 0}).sort(
        [("event.date", 1), ("id", 1)]
    ).skip((page - 1) * page_size).limit(page_size).to_list(page_size)
    return page_response(weddings, total, page, page_size)


@storage_operation()
async def update_wedding(db, wedding_id: str, patch: WeddingUpdate) -> dict:
    """Apply a partial update; nested objects merge, lists replace"""
    wedding = await get_wedding(db, wedding_id)
    changes = patch.model_dump(exclude_unset=True)
    update_data = {}

    if "slug" in changes:
        slug = validate_slug(changes.pop("slug") or "")
        if slug != wedding["slug"]:
            if await _slug_in_use(db, slug, exclude_id=wedding_id):
                raise SlugTakenError(f"Slug '{slug}' is already taken", field="slug")
            update_data["slug"] = slug

    if "status" in changes:
        status = changes.pop("status")
        if status == WEDDING_STATUS_PUBLISHED and wedding.get("status") != WEDDING_STATUS_PUBLISHED:
            raise ValidationError("Use the publish action to publish a wedding", field="status")
        if status:
            update_data["status"] = status

    rsvp_changes = changes.get("rsvp")
    if rsvp_changes and "custom_questions" in rsvp_changes:
        # exclude_unset would drop question defaults, so dump them whole
        rsvp_changes["custom_questions"] = _mint_question_ids(
            [q.model_dump() for q in patch.rsvp.custom_questions]
        )

    for field, value in changes.items():
        if value is None and field in ("title", "couple", "event", "theme", "rsvp", "is_public"):
            continue
        if isinstance(value, dict):
            _flatten(field, value, update_data)
        else:
            update_data[field] = value

    update_data["updated_at"] = bump_timestamp(wedding.get("updated_at"))

    try:
        updated = await db.weddings.find_one_and_update(
            {"id": wedding_id},
            {"$set": update_data},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        raise SlugTakenError(f"Slug '{update_data.get('slug')}' is already taken", field="slug")
    if not updated:
        raise NotFoundError("Wedding not found")
    return updated


def missing_publish_fields(wedding: dict) -> list:
    return [path for path in PUBLISH_REQUIRED_FIELDS if not _lookup(wedding, path)]


@storage_operation()
async def publish_wedding(db, wedding_id: str) -> dict:
    """Move a draft to published. Publishing twice keeps the first published_at."""
    wedding = await get_wedding(db, wedding_id)
    if wedding.get("status") == WEDDING_STATUS_PUBLISHED:
        return wedding
    if wedding.get("status") != WEDDING_STATUS_DRAFT:
        raise ValidationError(
            f"Only draft weddings can be published (current status: {wedding.get('status')})",
            field="status",
        )

    missing = missing_publish_fields(wedding)
    if missing:
        raise ValidationError(f"Required field missing: {missing[0]}", field=missing[0])

    now = utc_now_iso()
    published = await db.weddings.find_one_and_update(
        {"id": wedding_id, "status": WEDDING_STATUS_DRAFT},
        {"$set": {
            "status": WEDDING_STATUS_PUBLISHED,
            "published_at": now,
            "updated_at": bump_timestamp(wedding.get("updated_at")),
        }},
        projection={"_id": 0},
        return_document=ReturnDocument.AFTER,
    )
    if published:
        logger.info(f"Published wedding {wedding_id} at /{published['slug']}")
        return published

    # Lost a race with another publish or a delete
    current = await get_wedding(db, wedding_id)
    if current.get("status") == WEDDING_STATUS_PUBLISHED:
        return current
    raise ValidationError("Wedding changed while publishing, please retry", field="status")


async def _cascade(db, wedding_id: str, session=None):
    rsvps = await db.rsvps.delete_many({"wedding_id": wedding_id}, session=session)
    guests = await db.guests.delete_many({"wedding_id": wedding_id}, session=session)
    wedding = await db.weddings.delete_one({"id": wedding_id}, session=session)
    return rsvps.deleted_count, guests.deleted_count, wedding.deleted_count


@storage_operation()
async def delete_wedding(db, wedding_id: str, use_transactions: Optional[bool] = None) -> dict:
    """
    Delete a wedding with its RSVPs and guests.

    Children go first so a failure part way never leaves a wedding pointing
    at nothing; leftovers are removed by the orphan sweeper.
    """
    await get_wedding(db, wedding_id)
    if use_transactions is None:
        use_transactions = MONGO_USE_TRANSACTIONS

    if use_transactions:
        async with await db.client.start_session() as session:
            async with session.start_transaction():
                rsvps_deleted, guests_deleted, deleted = await _cascade(db, wedding_id, session)
    else:
        rsvps_deleted, guests_deleted, deleted = await _cascade(db, wedding_id)

    if not deleted:
        raise NotFoundError("Wedding not found")

    logger.info(f"Deleted wedding {wedding_id} with {rsvps_deleted} RSVPs and {guests_deleted} guests")
    return {"rsvps_deleted": rsvps_deleted, "guests_deleted": guests_deleted}


@storage_operation()
async def _increment_views(db, wedding_id: str):
    await db.weddings.update_one(
        {"id": wedding_id},
        {"$inc": {"view_count": 1}, "$set": {"last_viewed_at": utc_now_iso()}}
    )


async def increment_views(db, wedding_id: str):
    """Count a public page view; failures are logged and ignored"""
    try:
        await _increment_views(db, wedding_id)
    except ServiceError as e:
        logger.warning(f"Failed to record view for wedding {wedding_id}: {e}")


@storage_operation()
async def set_counters(db, wedding_id: str, counters: dict) -> bool:
    """Write reconciled counters. Only the counter reconciler calls this."""
    result = await db.weddings.update_one(
        {"id": wedding_id},
        {"$set": {**counters, "counters_updated_at": utc_now_iso()}}
    )
    return result.matched_count > 0
