"""
Guest roster Pydantic models
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Literal

from core.config import MAX_PLUS_ONES_PER_GUEST


def check_email(value: Optional[str]) -> Optional[str]:
    """Loose shape check; empty means no email"""
    if value is None:
        return None
    value = value.strip().lower()
    if not value:
        return None
    if len(value) > 100:
        raise ValueError("email must be at most 100 characters")
    if "@" not in value or "." not in value.split("@")[-1]:
        raise ValueError("invalid email address")
    return value


class GuestCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=30)
    relationship: Optional[str] = Field(None, max_length=50)
    side: Literal["bride", "groom", "both"] = "both"
    allow_plus_one: bool = False
    max_plus_ones: int = Field(0, ge=0, le=MAX_PLUS_ONES_PER_GUEST)
    invitation_status: Literal["pending", "sent", "delivered", "opened", "bounced"] = "pending"
    dietary_notes: Optional[str] = None
    address: Optional[str] = None
    vip: bool = False
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("email")
    @classmethod
    def valid_email(cls, value):
        return check_email(value)


class GuestUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    email: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=30)
    relationship: Optional[str] = Field(None, max_length=50)
    side: Optional[Literal["bride", "groom", "both"]] = None
    allow_plus_one: Optional[bool] = None
    max_plus_ones: Optional[int] = Field(None, ge=0, le=MAX_PLUS_ONES_PER_GUEST)
    invitation_status: Optional[Literal["pending", "sent", "delivered", "opened", "bounced"]] = None
    dietary_notes: Optional[str] = None
    address: Optional[str] = None
    vip: Optional[bool] = None
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("email")
    @classmethod
    def valid_email(cls, value):
        return check_email(value)


class Guest(BaseModel):
    """A pre-registered invitee"""
    model_config = ConfigDict(extra="ignore")
    id: str
    wedding_id: str
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    relationship: Optional[str] = None
    side: str = "both"
    allow_plus_one: bool = False
    max_plus_ones: int = 0
    invitation_status: str = "pending"
    rsvp_id: Optional[str] = None
    rsvp_status: Optional[str] = None
    rsvp_submitted_at: Optional[str] = None
    dietary_notes: Optional[str] = None
    address: Optional[str] = None
    vip: bool = False
    notes: Optional[str] = None
    import_batch_id: Optional[str] = None
    created_by: str
    created_at: str
    updated_at: str


class BulkGuestCreate(BaseModel):
    """Rows already parsed from the import file; each is validated on its own"""
    guests: List[dict] = Field(..., min_length=1, max_length=1000)


class BulkRowError(BaseModel):
    row: int  # 0-based position in the submitted list
    field: Optional[str] = None
    error: str


class BulkGuestResult(BaseModel):
    batch_id: str
    success_count: int
    error_count: int
    errors: List[BulkRowError] = Field(default_factory=list)
    guest_ids: List[str] = Field(default_factory=list)
