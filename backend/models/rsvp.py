"""
RSVP Pydantic models
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Literal, Any

from models.guest import check_email

RSVPStatus = Literal["attending", "not-attending", "maybe"]
RSVPSource = Literal["web", "direct_link", "qr_code", "manual"]


def normalize_status(value):
    # Accept not_attending / Not Attending from older clients
    if isinstance(value, str):
        value = value.strip().lower().replace("_", "-").replace(" ", "-")
    return value


class PlusOne(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field("", max_length=50)
    dietary: Optional[str] = Field(None, max_length=200)


class CustomAnswer(BaseModel):
    question_id: str
    question: Optional[str] = None  # filled from the wedding's question text
    answer: Any = None


class RSVPCreate(BaseModel):
    """Public RSVP submission"""
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=30)
    status: RSVPStatus
    attendance_count: int = Field(1, ge=1)
    plus_ones: List[PlusOne] = Field(default_factory=list)
    dietary_restrictions: Optional[str] = Field(None, max_length=500)
    dietary_selected: List[str] = Field(default_factory=list)
    additional_notes: Optional[str] = Field(None, max_length=500)
    custom_answers: List[CustomAnswer] = Field(default_factory=list)
    guest_id: Optional[str] = None  # set when arriving from a personal invitation link
    source: RSVPSource = "web"

    @field_validator("status", mode="before")
    @classmethod
    def status_alias(cls, value):
        return normalize_status(value)

    @field_validator("email")
    @classmethod
    def valid_email(cls, value):
        return check_email(value)


class ManualRSVPCreate(RSVPCreate):
    """RSVP entered by the couple (phone call, in person)"""
    source: RSVPSource = "manual"
    notes: Optional[str] = Field(None, max_length=1000)


class RSVPUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    email: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=30)
    status: Optional[RSVPStatus] = None
    attendance_count: Optional[int] = Field(None, ge=1)
    plus_ones: Optional[List[PlusOne]] = None
    dietary_restrictions: Optional[str] = Field(None, max_length=500)
    dietary_selected: Optional[List[str]] = None
    additional_notes: Optional[str] = Field(None, max_length=500)
    custom_answers: Optional[List[CustomAnswer]] = None
    notes: Optional[str] = Field(None, max_length=1000)  # owner only

    @field_validator("status", mode="before")
    @classmethod
    def status_alias(cls, value):
        return normalize_status(value)

    @field_validator("email")
    @classmethod
    def valid_email(cls, value):
        return check_email(value)


class RSVP(BaseModel):
    """Stored RSVP without request metadata (ip, user agent)"""
    model_config = ConfigDict(extra="ignore")
    id: str
    wedding_id: str
    guest_id: Optional[str] = None
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    status: str
    attendance_count: int = 1
    plus_ones: List[PlusOne] = Field(default_factory=list)
    plus_one_count: int = 0
    dietary_restrictions: Optional[str] = None
    dietary_selected: List[str] = Field(default_factory=list)
    additional_notes: Optional[str] = None
    custom_answers: List[CustomAnswer] = Field(default_factory=list)
    source: str = "web"
    submitted_at: str
    updated_at: Optional[str] = None
    confirmation_sent: bool = False
    confirmation_sent_at: Optional[str] = None
    notes: Optional[str] = None


class TrendPoint(BaseModel):
    date: str  # YYYY-MM-DD (UTC)
    count: int


class RSVPStatistics(BaseModel):
    total_responses: int = 0
    attending: int = 0
    not_attending: int = 0
    maybe: int = 0
    total_guests: int = 0
    plus_ones_count: int = 0
    dietary_counts: dict = Field(default_factory=dict)
    submission_trend: List[TrendPoint] = Field(default_factory=list)
