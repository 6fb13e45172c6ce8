"""
Application configuration and constants
"""
import os
from pathlib import Path
from dotenv import load_dotenv
import logging

ROOT_DIR = Path(__file__).parent.parent
load_dotenv(ROOT_DIR / '.env')

# Logging
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'wedding_invitations')
MONGO_MAX_POOL_SIZE = int(os.environ.get('MONGO_MAX_POOL_SIZE', '100'))
MONGO_USE_TRANSACTIONS = os.environ.get('MONGO_USE_TRANSACTIONS', 'false').lower() in ('1', 'true', 'yes')

# JWT configuration - will fail if not set (secure by default)
SECRET_KEY = os.environ['JWT_SECRET_KEY']
ALGORITHM = 'HS256'
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24 * 7

# HTTP
API_PREFIX = '/api/v1'
PORT = int(os.environ.get('PORT', '8001'))
CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')

# Storage deadlines (seconds). Nested operations inherit the tighter one.
OPERATION_TIMEOUT_SECONDS = float(os.environ.get('OPERATION_TIMEOUT_SECONDS', '5'))
LONG_READ_TIMEOUT_SECONDS = float(os.environ.get('LONG_READ_TIMEOUT_SECONDS', '15'))

# Counter reconciliation
RECONCILE_DEBOUNCE_MS = int(os.environ.get('RECONCILE_DEBOUNCE_MS', '500'))

# Orphan / dangling reference sweeper
SWEEP_INTERVAL_SECONDS = int(os.environ.get('SWEEP_INTERVAL_SECONDS', str(15 * 60)))

# ============================================
# DOMAIN CONSTANTS
# ============================================

# Slugs
SLUG_MIN_LENGTH = 3
SLUG_MAX_LENGTH = 50
SLUG_PATTERN = r'^[a-z0-9]+(?:-[a-z0-9]+)*$'
RESERVED_SLUGS = {"admin", "api", "public", "health"}

# Wedding lifecycle
WEDDING_STATUS_DRAFT = "draft"
WEDDING_STATUS_PUBLISHED = "published"
WEDDING_STATUS_EXPIRED = "expired"
WEDDING_STATUS_ARCHIVED = "archived"
WEDDING_STATUSES = [WEDDING_STATUS_DRAFT, WEDDING_STATUS_PUBLISHED, WEDDING_STATUS_EXPIRED, WEDDING_STATUS_ARCHIVED]

# RSVP
RSVP_ATTENDING = "attending"
RSVP_NOT_ATTENDING = "not-attending"
RSVP_MAYBE = "maybe"
RSVP_STATUSES = [RSVP_ATTENDING, RSVP_NOT_ATTENDING, RSVP_MAYBE]
RSVP_SOURCES = ["web", "direct_link", "qr_code", "manual"]
RSVP_EDIT_WINDOW_HOURS = 24
MAX_PLUS_ONES_PER_WEDDING = 5

# Guests
GUEST_SIDES = ["bride", "groom", "both"]
INVITATION_STATUSES = ["pending", "sent", "delivered", "opened", "bounced"]
MAX_PLUS_ONES_PER_GUEST = 3

# Pagination
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# Statistics
TREND_DAYS = 30
