"""
RSVP engine

Accepts, updates and deletes responses against the wedding's current RSVP
settings and keeps the guest <-> RSVP back-references in step. The RSVP is
always written before the guest is patched, and the guest is cleared before
the RSVP is deleted; the sweeper repairs whatever an interrupted request
leaves behind.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from core.config import (
    LONG_READ_TIMEOUT_SECONDS, RSVP_EDIT_WINDOW_HOURS, RSVP_SOURCES, RSVP_STATUSES,
    WEDDING_STATUS_PUBLISHED,
)
from core.database import storage_operation
from core.errors import (
    DuplicateRSVPError, NotFoundError, PermissionDeniedError, RSVPCannotModifyError,
    RSVPClosedError, RSVPNotFoundError, TooManyPlusOnesError, ValidationError,
    WeddingNotPublicError,
)
from models.rsvp import RSVPCreate, ManualRSVPCreate, RSVPUpdate, normalize_status
from services.weddings import get_wedding, get_wedding_by_slug
from utils.helpers import (
    new_id, utc_now, utc_now_iso, to_iso, parse_datetime, bump_timestamp,
    contains_pattern, normalize_pagination, page_response,
)

logger = logging.getLogger(__name__)

# Request metadata is kept for abuse review but never returned
HIDDEN_FIELDS = {"_id": 0, "ip_address": 0, "user_agent": 0}


# ============ Rule checks ============

def plus_one_cap(wedding: dict) -> int:
    settings = wedding.get("rsvp") or {}
    if not settings.get("allow_plus_one", True):
        return 0
    return settings.get("max_plus_ones", 0)


def check_plus_ones(wedding: dict, plus_ones: list):
    cap = plus_one_cap(wedding)
    if len(plus_ones) > cap:
        raise TooManyPlusOnesError(
            f"This invitation allows at most {cap} plus-one(s), got {len(plus_ones)}",
            field="plus_ones",
        )


def _is_answered(answer) -> bool:
    if answer is None:
        return False
    if isinstance(answer, str):
        return bool(answer.strip())
    if isinstance(answer, list):
        return len(answer) > 0
    return True


def check_custom_answers(wedding: dict, answers: List[dict]) -> List[dict]:
    """
    Validate answers against the wedding's questions and return them with the
    question text attached, in submission order.
    """
    questions = {q["id"]: q for q in (wedding.get("rsvp") or {}).get("custom_questions", [])}
    resolved = []
    answered = set()

    for index, answer in enumerate(answers):
        question_id = answer.get("question_id")
        question = questions.get(question_id)
        if question is None:
            raise ValidationError(
                f"Unknown question id: {question_id}",
                field=f"custom_answers[{index}].question_id",
            )
        if question_id in answered:
            raise ValidationError(
                f"Question {question_id} answered more than once",
                field=f"custom_answers[{index}].question_id",
            )

        value = answer.get("answer")
        options = question.get("options") or []
        if options and _is_answered(value):
            chosen = value if isinstance(value, list) else [value]
            if question.get("type") in ("select", "radio", "checkbox") and not all(
                isinstance(v, bool) or v in options for v in chosen
            ):
                raise ValidationError(
                    f"Answer is not one of the options for '{question['question']}'",
                    field=f"custom_answers[{index}].answer",
                )

        if _is_answered(value):
            answered.add(question_id)
        resolved.append({
            "question_id": question_id,
            "question": question["question"],
            "answer": value,
        })

    for question in sorted(questions.values(), key=lambda q: q.get("order", 0)):
        if question.get("required") and question["id"] not in answered:
            raise ValidationError(
                f"Question '{question['question']}' is required",
                field=f"custom_answers.{question['id']}",
            )
    return resolved


def check_dietary(wedding: dict, selected: List[str]):
    options = (wedding.get("rsvp") or {}).get("dietary_options") or []
    if not options:
        return
    unknown = [s for s in selected if s not in options]
    if unknown:
        raise ValidationError(f"Unknown dietary option: {unknown[0]}", field="dietary_selected")


def check_open(wedding: dict, now: datetime):
    """A public submission needs a published, public wedding with RSVPs open"""
    if wedding.get("status") != WEDDING_STATUS_PUBLISHED or not wedding.get("is_public"):
        raise WeddingNotPublicError("Wedding not found or not yet published")

    settings = wedding.get("rsvp") or {}
    if not settings.get("enabled", True):
        raise RSVPClosedError("RSVPs are closed for this wedding")

    try:
        deadline = parse_datetime(settings.get("deadline"), end_of_day=True)
    except ValueError:
        logger.warning(f"Ignoring unparseable RSVP deadline on wedding {wedding.get('id')}")
        deadline = None
    if deadline is not None and now > deadline:
        raise RSVPClosedError("The RSVP deadline has passed")


def can_modify(rsvp: dict, is_owner: bool, now: datetime) -> bool:
    if is_owner:
        return True
    submitted = parse_datetime(rsvp.get("submitted_at"))
    return submitted is not None and now - submitted <= timedelta(hours=RSVP_EDIT_WINDOW_HOURS)


# ============ Guest linkage ============

async def _email_used(db, wedding_id: str, email: str, exclude_id: Optional[str] = None) -> bool:
    query = {"wedding_id": wedding_id, "email": email}
    if exclude_id:
        query["id"] = {"$ne": exclude_id}
    return await db.rsvps.find_one(query, {"_id": 0, "id": 1}) is not None


async def _resolve_guest(db, wedding_id: str, guest_id: Optional[str], email: Optional[str]) -> Optional[dict]:
    """
    Find the pre-registered guest this response belongs to: the explicit
    guest id from a personal invitation link, otherwise a guest of the same
    wedding with the same email.
    """
    if guest_id:
        guest = await db.guests.find_one({"id": guest_id}, {"_id": 0})
        if not guest or guest.get("wedding_id") != wedding_id:
            raise NotFoundError("Guest not found", field="guest_id")
    elif email:
        guest = await db.guests.find_one({"wedding_id": wedding_id, "email": email}, {"_id": 0})
        if not guest:
            return None
    else:
        return None

    if guest.get("rsvp_id"):
        existing = await db.rsvps.find_one({"id": guest["rsvp_id"]}, {"_id": 0, "id": 1})
        if existing:
            raise DuplicateRSVPError("This guest has already responded", field="guest_id")
    return guest


async def _link_guest(db, guest: dict, rsvp: dict) -> bool:
    """
    Point the guest at the new RSVP, but only if nobody else linked it since
    the guest was read. Returns False when another response got there first.
    """
    try:
        result = await db.guests.update_one(
            {"id": guest["id"], "rsvp_id": guest.get("rsvp_id")},
            {"$set": {
                "rsvp_id": rsvp["id"],
                "rsvp_status": rsvp["status"],
                "rsvp_submitted_at": rsvp["submitted_at"],
                "updated_at": utc_now_iso(),
            }}
        )
    except PyMongoError as e:
        # The RSVP is already stored; the sweeper restores the back-reference
        logger.error(f"Failed to link guest {guest['id']} to RSVP {rsvp['id']}: {e}")
        return True
    return result.matched_count > 0


# ============ Operations ============

async def _create_rsvp(db, reconciler, wedding: dict, data: RSVPCreate, source: str,
                       ip_address: Optional[str] = None, user_agent: Optional[str] = None,
                       notes: Optional[str] = None) -> dict:
    wedding_id = wedding["id"]
    plus_ones = [p.model_dump() for p in data.plus_ones]
    check_plus_ones(wedding, plus_ones)
    answers = check_custom_answers(wedding, [a.model_dump() for a in data.custom_answers])
    check_dietary(wedding, data.dietary_selected)

    email = data.email
    if email and await _email_used(db, wedding_id, email):
        raise DuplicateRSVPError("An RSVP with this email already exists for this wedding", field="email")

    guest = await _resolve_guest(db, wedding_id, data.guest_id, email)

    rsvp_doc = {
        "id": new_id(),
        "wedding_id": wedding_id,
        "guest_id": guest["id"] if guest else None,
        "first_name": data.first_name.strip(),
        "last_name": data.last_name.strip(),
        "email": email,
        "phone": data.phone,
        "status": data.status,
        "attendance_count": data.attendance_count,
        "plus_ones": plus_ones,
        "plus_one_count": len(plus_ones),
        "dietary_restrictions": data.dietary_restrictions,
        "dietary_selected": data.dietary_selected,
        "additional_notes": data.additional_notes,
        "custom_answers": answers,
        "source": source,
        "submitted_at": utc_now_iso(),
        "updated_at": None,
        "ip_address": ip_address,
        "user_agent": user_agent,
        "confirmation_sent": False,
        "confirmation_sent_at": None,
        "notes": notes,
    }
    if not email:
        rsvp_doc.pop("email")

    try:
        await db.rsvps.insert_one(rsvp_doc)
    except DuplicateKeyError:
        raise DuplicateRSVPError("An RSVP with this email already exists for this wedding", field="email")

    rsvp_doc.pop("_id", None)
    rsvp_doc.pop("ip_address", None)
    rsvp_doc.pop("user_agent", None)

    if guest and not await _link_guest(db, guest, rsvp_doc):
        await db.rsvps.delete_one({"id": rsvp_doc["id"]})
        logger.warning(f"Guest {guest['id']} was linked by a concurrent response; dropped RSVP {rsvp_doc['id']}")
        await reconciler.trigger(wedding_id)
        raise DuplicateRSVPError("This guest has already responded", field="guest_id")

    logger.info(f"RSVP {rsvp_doc['id']} ({data.status}) received for wedding {wedding_id} via {source}")
    await reconciler.trigger(wedding_id)
    return rsvp_doc


@storage_operation()
async def submit_rsvp(db, reconciler, slug: str, data: RSVPCreate,
                      ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> dict:
    """Public submission against the wedding at `slug`"""
    wedding = await get_wedding_by_slug(db, slug)
    check_open(wedding, utc_now())
    if data.source == "manual":
        raise ValidationError("Manual RSVPs can only be added by the couple", field="source")
    return await _create_rsvp(db, reconciler, wedding, data, data.source, ip_address, user_agent)


@storage_operation()
async def add_manual_rsvp(db, reconciler, wedding: dict, data: ManualRSVPCreate) -> dict:
    """RSVP taken by the couple themselves; RSVPs need not be open"""
    return await _create_rsvp(db, reconciler, wedding, data, "manual", notes=data.notes)


@storage_operation()
async def get_rsvp(db, rsvp_id: str) -> dict:
    rsvp = await db.rsvps.find_one({"id": rsvp_id}, HIDDEN_FIELDS)
    if not rsvp:
        raise RSVPNotFoundError("RSVP not found")
    return rsvp


@storage_operation()
async def update_rsvp(db, reconciler, rsvp_id: str, patch: RSVPUpdate, caller_id: Optional[str] = None) -> dict:
    """
    Update a response. The couple may edit at any time; anyone else only
    within the edit window after submission. The result is revalidated
    against the wedding's current settings. Last writer wins.
    """
    rsvp = await get_rsvp(db, rsvp_id)
    wedding = await get_wedding(db, rsvp["wedding_id"])
    is_owner = caller_id is not None and caller_id == wedding.get("user_id")

    if not can_modify(rsvp, is_owner, utc_now()):
        raise RSVPCannotModifyError(
            f"RSVPs can only be changed within {RSVP_EDIT_WINDOW_HOURS} hours of submission"
        )

    changes = patch.model_dump(exclude_unset=True)
    if "notes" in changes and not is_owner:
        raise PermissionDeniedError("Only the couple can edit notes")

    set_data = {}
    unset_data = {}

    if "email" in changes:
        email = changes.pop("email")
        if email:
            if email != rsvp.get("email") and await _email_used(db, rsvp["wedding_id"], email, exclude_id=rsvp_id):
                raise DuplicateRSVPError("An RSVP with this email already exists for this wedding", field="email")
            set_data["email"] = email
        else:
            unset_data["email"] = ""

    for field, value in changes.items():
        if value is None and field in ("first_name", "last_name", "status", "attendance_count",
                                       "plus_ones", "dietary_selected", "custom_answers"):
            continue
        set_data[field] = value

    # Revalidate the record as it will look after the update
    plus_ones = set_data.get("plus_ones", rsvp.get("plus_ones") or [])
    check_plus_ones(wedding, plus_ones)
    set_data["plus_one_count"] = len(plus_ones)
    answers = set_data.get("custom_answers", rsvp.get("custom_answers") or [])
    answers = check_custom_answers(wedding, answers)
    if "custom_answers" in set_data:
        set_data["custom_answers"] = answers
    if "dietary_selected" in set_data:
        check_dietary(wedding, set_data["dietary_selected"])

    set_data["updated_at"] = bump_timestamp(rsvp.get("updated_at") or rsvp.get("submitted_at"))
    update = {"$set": set_data}
    if unset_data:
        update["$unset"] = unset_data

    try:
        updated = await db.rsvps.find_one_and_update(
            {"id": rsvp_id},
            update,
            projection=HIDDEN_FIELDS,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        raise DuplicateRSVPError("An RSVP with this email already exists for this wedding", field="email")
    if not updated:
        raise RSVPNotFoundError("RSVP not found")

    status_changed = updated.get("status") != rsvp.get("status")
    if updated.get("guest_id") and status_changed:
        try:
            await db.guests.update_one(
                {"id": updated["guest_id"], "rsvp_id": rsvp_id},
                {"$set": {"rsvp_status": updated["status"], "updated_at": utc_now_iso()}}
            )
        except PyMongoError as e:
            logger.error(f"Failed to mirror RSVP status onto guest {updated['guest_id']}: {e}")

    counts_changed = (
        status_changed
        or updated.get("attendance_count") != rsvp.get("attendance_count")
        or updated.get("plus_one_count") != rsvp.get("plus_one_count")
    )
    if counts_changed:
        await reconciler.trigger(rsvp["wedding_id"])
    return updated


@storage_operation()
async def delete_rsvp(db, reconciler, rsvp_id: str, caller_id: Optional[str]):
    """Owner-only delete; the guest back-reference is cleared first"""
    rsvp = await get_rsvp(db, rsvp_id)
    wedding = await db.weddings.find_one({"id": rsvp["wedding_id"]}, {"_id": 0, "user_id": 1})
    if not wedding or caller_id is None or wedding.get("user_id") != caller_id:
        raise PermissionDeniedError("Only the couple can delete RSVPs")

    if rsvp.get("guest_id"):
        await db.guests.update_one(
            {"id": rsvp["guest_id"], "rsvp_id": rsvp_id},
            {"$unset": {"rsvp_id": "", "rsvp_status": "", "rsvp_submitted_at": ""},
             "$set": {"updated_at": utc_now_iso()}}
        )

    result = await db.rsvps.delete_one({"id": rsvp_id})
    if result.deleted_count == 0:
        raise RSVPNotFoundError("RSVP not found")

    logger.info(f"Deleted RSVP {rsvp_id} from wedding {rsvp['wedding_id']}")
    await reconciler.trigger(rsvp["wedding_id"])


@storage_operation()
async def mark_confirmation_sent(db, rsvp_id: str) -> dict:
    """Record that the guest was sent a confirmation. Marking twice keeps the first time."""
    updated = await db.rsvps.find_one_and_update(
        {"id": rsvp_id, "confirmation_sent": {"$ne": True}},
        {"$set": {"confirmation_sent": True, "confirmation_sent_at": utc_now_iso()}},
        projection=HIDDEN_FIELDS,
        return_document=ReturnDocument.AFTER,
    )
    if updated:
        logger.info(f"Confirmation recorded for RSVP {rsvp_id}")
        return updated
    return await get_rsvp(db, rsvp_id)


def _rsvp_query(
    wedding_id: str,
    status: Optional[str] = None,
    source: Optional[str] = None,
    search: Optional[str] = None,
    submitted_after: Optional[str] = None,
    submitted_before: Optional[str] = None,
) -> dict:
    query = {"wedding_id": wedding_id}
    if status:
        status = normalize_status(status)
        if status not in RSVP_STATUSES:
            raise ValidationError(f"Unknown status: {status}", field="status")
        query["status"] = status
    if source:
        if source not in RSVP_SOURCES:
            raise ValidationError(f"Unknown source: {source}", field="source")
        query["source"] = source
    if search:
        pattern = contains_pattern(search)
        query["$or"] = [{"first_name": pattern}, {"last_name": pattern}, {"email": pattern}]

    submitted = {}
    for field, value, op, end_of_day in (
        ("submitted_after", submitted_after, "$gte", False),
        ("submitted_before", submitted_before, "$lte", True),
    ):
        if not value:
            continue
        try:
            submitted[op] = to_iso(parse_datetime(value, end_of_day=end_of_day))
        except ValueError:
            raise ValidationError(f"Invalid date: {value}", field=field)
    if submitted:
        query["submitted_at"] = submitted
    return query


@storage_operation()
async def list_rsvps(db, wedding_id: str, page: int = 1, page_size: int = 20, **filters) -> dict:
    """Newest first. Filters: status, source, search, submitted_after, submitted_before."""
    query = _rsvp_query(wedding_id, **filters)
    page, page_size = normalize_pagination(page, page_size)
    total = await db.rsvps.count_documents(query)
    rsvps = await db.rsvps.find(query, HIDDEN_FIELDS).sort(
        [("submitted_at", -1), ("id", -1)]
    ).skip((page - 1) * page_size).limit(page_size).to_list(page_size)
    return page_response(rsvps, total, page, page_size)


@storage_operation(LONG_READ_TIMEOUT_SECONDS)
async def export_rsvps(db, wedding_id: str, **filters) -> list:
    """Every matching RSVP, newest first, without pagination"""
    query = _rsvp_query(wedding_id, **filters)
    return await db.rsvps.find(query, HIDDEN_FIELDS).sort(
        [("submitted_at", -1), ("id", -1)]
    ).to_list(None)
