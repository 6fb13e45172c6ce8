# Core module exports
from .config import *
from .database import db, client, create_database_indexes, storage_operation
from .dependencies import get_current_user, get_optional_user, security
from .errors import ServiceError
