"""
Service error taxonomy

Every error raised by the service layer carries a contract-level code and the
HTTP status it maps to at the API boundary.
"""
from typing import Optional


class ServiceError(Exception):
    code = "SERVICE_ERROR"
    status_code = 500

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        self.message = message or self.code
        self.field = field
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.field:
            body["field"] = self.field
        return body


class NotFoundError(ServiceError):
    code = "NOT_FOUND"
    status_code = 404


class RSVPNotFoundError(NotFoundError):
    code = "RSVP_NOT_FOUND"


class WeddingNotPublicError(NotFoundError):
    """Drafts and private weddings look missing to the public."""
    code = "WEDDING_NOT_PUBLIC"


class ConflictError(ServiceError):
    code = "CONFLICT"
    status_code = 409


class SlugTakenError(ConflictError):
    code = "SLUG_TAKEN"


class DuplicateRSVPError(ConflictError):
    code = "DUPLICATE_RSVP"


class DuplicateGuestError(ConflictError):
    code = "DUPLICATE_GUEST"


class DomainRuleError(ServiceError):
    code = "DOMAIN_RULE"
    status_code = 422


class TooManyPlusOnesError(DomainRuleError):
    code = "TOO_MANY_PLUS_ONES"


class RSVPClosedError(DomainRuleError):
    code = "RSVP_CLOSED"


class RSVPCannotModifyError(DomainRuleError):
    code = "RSVP_CANNOT_MODIFY"


class PermissionDeniedError(ServiceError):
    code = "UNAUTHORIZED"
    status_code = 403


class AuthenticationError(ServiceError):
    code = "AUTHENTICATION"
    status_code = 401


class ValidationError(ServiceError):
    code = "VALIDATION"
    status_code = 400


class StorageError(ServiceError):
    code = "STORAGE"
    status_code = 500
