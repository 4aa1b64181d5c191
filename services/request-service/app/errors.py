class DomainError(Exception):
    """
    Business-rule failure surfaced to the caller as a typed error.

    None of these are retried except `Conflict`: the others describe an
    action that is not legal for the current state of the request, while
    `Conflict` is a lost race against a concurrent write.
    """

    status_code = 400
    code = "domain_error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.__class__.__doc__.strip().splitlines()[0]
        super().__init__(self.detail)


class ValidationError(DomainError):
    """Invalid input data."""
    status_code = 400
    code = "validation_error"


class PaymentNotSelected(DomainError):
    """Payment method not set."""
    status_code = 400
    code = "payment_not_selected"


class InvalidDayIndex(DomainError):
    """Day index out of range."""
    status_code = 400
    code = "invalid_day_index"


class Forbidden(DomainError):
    """Caller has no standing for this action."""
    status_code = 403
    code = "forbidden"


class NotEligible(DomainError):
    """Action is not available yet for this request."""
    status_code = 403
    code = "not_eligible"


class RequestNotFound(DomainError):
    """Request not found."""
    status_code = 404
    code = "request_not_found"


class NegotiationNotFound(DomainError):
    """Negotiation not found."""
    status_code = 404
    code = "negotiation_not_found"


class InvalidState(DomainError):
    """Action not allowed for the current request status."""
    status_code = 409
    code = "invalid_state"


class InvalidTransition(DomainError):
    """Requested status is not reachable from the current one."""
    status_code = 409
    code = "invalid_transition"


class StaleNegotiation(DomainError):
    """Negotiation was superseded by a newer proposal."""
    status_code = 409
    code = "stale_negotiation"


class AlreadyConfirmed(DomainError):
    """Completion already confirmed by this party."""
    status_code = 409
    code = "already_confirmed"


class AlreadyReviewed(DomainError):
    """Request already reviewed by this user."""
    status_code = 409
    code = "already_reviewed"


class Conflict(DomainError):
    """Request was modified concurrently, retry the action."""
    status_code = 409
    code = "conflict"
