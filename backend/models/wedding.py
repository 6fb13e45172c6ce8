"""
Wedding invitation Pydantic models
"""
from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator, model_validator
from typing import Optional, List, Literal

from core.config import MAX_PLUS_ONES_PER_WEDDING
from utils.helpers import parse_datetime

HEX_COLOR = r'^#(?:[0-9a-fA-F]{3}){1,2}$'


def _check_date(value: Optional[str]) -> Optional[str]:
    if value:
        try:
            parse_datetime(value)
        except ValueError:
            raise ValueError("must be an ISO date (YYYY-MM-DD) or datetime")
    return value


# Couple
class Partner(BaseModel):
    """One half of the couple; accepts `first`/`last` shorthand"""
    first_name: str = Field("", max_length=50, validation_alias=AliasChoices("first_name", "first"))
    last_name: str = Field("", max_length=50, validation_alias=AliasChoices("last_name", "last"))
    photo_url: Optional[str] = None


class Couple(BaseModel):
    partner1: Partner = Field(default_factory=Partner)
    partner2: Partner = Field(default_factory=Partner)
    story: Optional[str] = Field(None, max_length=2000)


# Event
class Event(BaseModel):
    title: str = Field("", max_length=100)
    date: Optional[str] = None  # YYYY-MM-DD or ISO datetime
    time: Optional[str] = None
    venue_name: str = Field("", max_length=100)
    venue_address: str = Field("", max_length=200)
    venue_map_url: Optional[str] = None
    dress_code: Optional[str] = None
    additional_info: Optional[str] = None

    @field_validator("date")
    @classmethod
    def valid_date(cls, value):
        return _check_date(value)


# Theme
class Theme(BaseModel):
    theme_id: str = "default"
    primary_color: Optional[str] = Field(None, pattern=HEX_COLOR)
    secondary_color: Optional[str] = Field(None, pattern=HEX_COLOR)
    background_color: Optional[str] = Field(None, pattern=HEX_COLOR)
    font_family: Optional[str] = None
    custom_settings: dict = Field(default_factory=dict)


# RSVP settings
class CustomQuestion(BaseModel):
    """A question shown on the RSVP form"""
    id: Optional[str] = None  # minted on save when missing
    question: str = Field(..., min_length=1, max_length=200)
    type: Literal["text", "textarea", "select", "checkbox", "radio"] = "text"
    required: bool = False
    options: List[str] = Field(default_factory=list)
    order: int = 0

    @model_validator(mode="after")
    def options_for_choices(self):
        if self.type in ("select", "radio") and not self.options:
            raise ValueError(f"{self.type} questions need at least one option")
        return self


class RSVPSettings(BaseModel):
    enabled: bool = True
    deadline: Optional[str] = None
    allow_plus_one: bool = True
    max_plus_ones: int = Field(1, ge=0, le=MAX_PLUS_ONES_PER_WEDDING)
    collect_email: bool = True
    collect_phone: bool = False
    collect_dietary: bool = False
    dietary_options: List[str] = Field(default_factory=list)
    custom_questions: List[CustomQuestion] = Field(default_factory=list)

    @field_validator("deadline")
    @classmethod
    def valid_deadline(cls, value):
        return _check_date(value)


# Requests
class WeddingCreate(BaseModel):
    """Create wedding request; slug is generated from the title when omitted"""
    title: str = Field(..., min_length=1, max_length=100)
    slug: Optional[str] = None
    couple: Couple = Field(default_factory=Couple)
    event: Event = Field(default_factory=Event)
    theme: Theme = Field(default_factory=Theme)
    rsvp: RSVPSettings = Field(default_factory=RSVPSettings)
    cover_image_url: Optional[str] = None
    share_message: Optional[str] = Field(None, max_length=280)
    is_public: bool = True


class WeddingUpdate(BaseModel):
    """Partial update; nested objects are merged field by field"""
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    slug: Optional[str] = None
    couple: Optional[Couple] = None
    event: Optional[Event] = None
    theme: Optional[Theme] = None
    rsvp: Optional[RSVPSettings] = None
    cover_image_url: Optional[str] = None
    share_message: Optional[str] = Field(None, max_length=280)
    is_public: Optional[bool] = None
    status: Optional[Literal["draft", "published", "expired", "archived"]] = None


# Responses
class Wedding(BaseModel):
    """Full wedding document as seen by its owner"""
    model_config = ConfigDict(extra="ignore")
    id: str
    user_id: str
    slug: str
    title: str
    couple: Couple
    event: Event
    theme: Theme
    rsvp: RSVPSettings
    cover_image_url: Optional[str] = None
    share_message: Optional[str] = None
    is_public: bool = True
    status: str = "draft"
    published_at: Optional[str] = None
    rsvp_count: int = 0
    guest_count: int = 0
    total_attending: int = 0
    view_count: int = 0
    last_viewed_at: Optional[str] = None
    created_at: str
    updated_at: str
    counters_updated_at: Optional[str] = None


class PublicWedding(BaseModel):
    """What guests see at /public/weddings/{slug}"""
    model_config = ConfigDict(extra="ignore")
    id: str
    slug: str
    title: str
    couple: Couple
    event: Event
    theme: Theme
    rsvp: RSVPSettings
    cover_image_url: Optional[str] = None
    share_message: Optional[str] = None
    published_at: Optional[str] = None
