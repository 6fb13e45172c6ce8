"""
Utils package for the wedding invitation backend
"""
from .helpers import (
    new_id,
    generate_random_string,
    validate_slug,
    slugify,
    utc_now,
    utc_now_iso,
    to_iso,
    parse_datetime,
    bump_timestamp,
    contains_pattern,
    normalize_pagination,
    page_response,
)

__all__ = [
    'new_id',
    'generate_random_string',
    'validate_slug',
    'slugify',
    'utc_now',
    'utc_now_iso',
    'to_iso',
    'parse_datetime',
    'bump_timestamp',
    'contains_pattern',
    'normalize_pagination',
    'page_response',
]
