"""
Utility helper functions for the wedding invitation backend
"""
import math
import re
import secrets
import string
from datetime import datetime, timezone, timedelta
from typing import Optional, Tuple

from bson import ObjectId

from core.config import (
    SLUG_MIN_LENGTH, SLUG_MAX_LENGTH, SLUG_PATTERN, RESERVED_SLUGS,
    DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE,
)
from core.errors import ValidationError

_slug_re = re.compile(SLUG_PATTERN)


# ============ Identifiers ============

def new_id() -> str:
    """96-bit id, time-prefixed so ids sort roughly by creation second"""
    return str(ObjectId())


def generate_random_string(length: int = 6) -> str:
    """Generate a random lowercase alphanumeric string"""
    characters = string.ascii_lowercase + string.digits
    return ''.join(secrets.choice(characters) for _ in range(length))


# ============ Slugs ============

def validate_slug(raw: str) -> str:
    """Normalize a slug to lowercase and check it can be used in a public URL"""
    slug = (raw or "").strip().lower()
    if len(slug) < SLUG_MIN_LENGTH or len(slug) > SLUG_MAX_LENGTH:
        raise ValidationError(
            f"Slug must be between {SLUG_MIN_LENGTH} and {SLUG_MAX_LENGTH} characters",
            field="slug",
        )
    if not _slug_re.match(slug):
        raise ValidationError(
            "Slug may only contain lowercase letters, digits and single hyphens",
            field="slug",
        )
    if slug in RESERVED_SLUGS:
        raise ValidationError(f"Slug '{slug}' is reserved", field="slug")
    return slug


def slugify(text: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """Turn arbitrary text into kebab-case ("J&J Wedding" -> "j-j-wedding")"""
    slug = re.sub(r'[^a-z0-9]+', '-', (text or "").lower()).strip('-')
    return slug[:max_length].rstrip('-')


# ============ Time ============

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    # Fixed precision keeps string order equal to time order
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def utc_now_iso() -> str:
    return to_iso(utc_now())


def parse_datetime(value, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse an ISO date or datetime string into an aware UTC datetime.

    Date-only values mean the start of that UTC day, or its last second
    when end_of_day is set (used for RSVP deadlines).
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if 'T' not in text and ' ' not in text:
            suffix = "T23:59:59.999999+00:00" if end_of_day else "T00:00:00+00:00"
            text = text + suffix
        dt = datetime.fromisoformat(text.replace('Z', '+00:00'))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def bump_timestamp(previous: Optional[str]) -> str:
    """Current time, or one microsecond past `previous` if the clock has not moved"""
    now = utc_now()
    prev = parse_datetime(previous) if previous else None
    if prev is not None and now <= prev:
        now = prev + timedelta(microseconds=1)
    return to_iso(now)


# ============ Queries ============

def contains_pattern(text: str) -> dict:
    """Case-insensitive substring match for a Mongo query"""
    return {"$regex": re.escape(text), "$options": "i"}


def normalize_pagination(page: Optional[int], page_size: Optional[int]) -> Tuple[int, int]:
    page = page if page and page >= 1 else 1
    if not page_size or page_size < 1 or page_size > MAX_PAGE_SIZE:
        page_size = DEFAULT_PAGE_SIZE
    return page, page_size


def page_response(data: list, total: int, page: int, page_size: int) -> dict:
    return {
        "data": data,
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": math.ceil(total / page_size) if page_size else 0,
    }
