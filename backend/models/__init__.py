# Models package
from .wedding import (
    Partner, Couple, Event, Theme, CustomQuestion, RSVPSettings,
    WeddingCreate, WeddingUpdate, Wedding, PublicWedding,
)
from .guest import (
    GuestCreate, GuestUpdate, Guest,
    BulkGuestCreate, BulkRowError, BulkGuestResult,
)
from .rsvp import (
    PlusOne, CustomAnswer,
    RSVPCreate, ManualRSVPCreate, RSVPUpdate, RSVP,
    TrendPoint, RSVPStatistics,
)
