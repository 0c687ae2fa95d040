"""
Error taxonomy for the submission lifecycle.
Each error carries the HTTP status a handler should answer with and a stable code.
"""


class MarketplaceError(Exception):
    """Base error for every failure the core reports to its caller."""
    status_code = 500
    code = 'INTERNAL_ERROR'

    def __init__(self, message: str = None):
        super().__init__(message or self.__class__.__doc__)

    @property
    def message(self) -> str:
        return str(self)


class InvalidInput(MarketplaceError):
    """Request data is missing or malformed."""
    status_code = 400
    code = 'INVALID_INPUT'


class NotFound(MarketplaceError):
    """The referenced resource does not exist."""
    status_code = 404
    code = 'NOT_FOUND'


class AlreadyLocked(MarketplaceError):
    """Task is currently unavailable or locked by another user."""
    status_code = 409
    code = 'ALREADY_LOCKED'


class NotOwner(MarketplaceError):
    """Only the user who locked the task can unlock it."""
    status_code = 403
    code = 'NOT_OWNER'


class DuplicateSubmission(MarketplaceError):
    """You have already submitted this task."""
    status_code = 400
    code = 'DUPLICATE_SUBMISSION'


class CapacityExceeded(MarketplaceError):
    """This project has reached its maximum submission limit."""
    status_code = 403
    code = 'CAPACITY_EXCEEDED'


class InvalidProjectConfiguration(MarketplaceError):
    """Project pay rate is not set or is zero."""
    status_code = 400
    code = 'INVALID_PROJECT_CONFIGURATION'


class InvalidStatus(MarketplaceError):
    """Invalid status value."""
    status_code = 400
    code = 'INVALID_STATUS'


class Forbidden(MarketplaceError):
    """Caller is not allowed to perform this action."""
    status_code = 403
    code = 'FORBIDDEN'


class PersistenceFailure(MarketplaceError):
    """Failed to read or write platform data."""
    status_code = 500
    code = 'PERSISTENCE_FAILURE'


class TriageEngineUnavailable(Exception):
    """
    The classification service could not be reached or answered badly.
    Never leaves the triage module: it is always downgraded to PENDING.
    """
