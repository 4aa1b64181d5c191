"""
Read-time status derivation.

The stored status of a request only changes on gate-crossing events
(accept, reject, payment, completion). What each party sees is rebuilt on
every read from the stored status plus the negotiation ledger, so the ledger
stays the single source of truth for who proposed what and when.

Nothing in this module writes to the request or its negotiations.
"""

from .models import NegotiationStatus, Party, PricingType, RequestStatus

_PASSTHROUGH = {
    RequestStatus.COMPLETED,
    RequestStatus.ACCEPTED,
    RequestStatus.PAYMENT_PENDING,
    RequestStatus.CANCELLED,
}


def head_negotiation(negotiations):
    """Latest proposal of the ledger, or None when nothing was proposed."""
    if not negotiations:
        return None
    return max(negotiations, key=lambda n: n.sequence)


def effective_negotiation_status(request, negotiation) -> NegotiationStatus:
    """
    Status of one proposal as shown to both parties.

    A proposal answered explicitly keeps its answer. An unanswered proposal is
    `pending` only while it is the head of the ledger; any newer proposal
    supersedes it and it is reported as `rejected`.
    """
    status = NegotiationStatus(negotiation.status)
    if status is not NegotiationStatus.PENDING:
        return status

    head = head_negotiation(request.negotiations)
    if head is not None and head.id == negotiation.id:
        return NegotiationStatus.PENDING
    return NegotiationStatus.REJECTED


def effective_request_status(request) -> RequestStatus:
    stored = RequestStatus(request.status)

    if stored in _PASSTHROUGH:
        return stored

    # already agreed; only the completion confirmation is outstanding
    if stored is RequestStatus.PENDING_COMPLETION:
        return RequestStatus.ACCEPTED

    negotiations = request.negotiations or []

    if stored is RequestStatus.PENDING and not negotiations:
        return RequestStatus.PENDING

    if stored is RequestStatus.NEGOTIATING:
        head = head_negotiation(negotiations)
        if head is None:
            return stored
        head_status = NegotiationStatus(head.status)
        if head_status is NegotiationStatus.REJECTED:
            return RequestStatus.CANCELLED
        if head_status is NegotiationStatus.ACCEPTED:
            return RequestStatus.ACCEPTED
        return RequestStatus.NEGOTIATING

    return stored


def confirmation_markers(request) -> dict[Party, bool]:
    """Which party has confirmed the whole engagement as done."""
    if request.pricing_type == PricingType.DAILY:
        sessions = request.daily_sessions or []
        return {
            Party.CLIENT: bool(sessions) and all(s["client_completed"] for s in sessions),
            Party.PROVIDER: bool(sessions) and all(s["provider_completed"] for s in sessions),
        }
    return {
        Party.CLIENT: request.client_completed_at is not None,
        Party.PROVIDER: request.provider_completed_at is not None,
    }


def awaiting_completion_confirmation(request) -> bool:
    """
    True while a request displayed as `accepted` still needs a completion
    confirmation from at least one party.
    """
    stored = RequestStatus(request.status)
    if stored is RequestStatus.PENDING_COMPLETION:
        return True
    if stored is RequestStatus.ACCEPTED and request.payment_completed_at is not None:
        return not all(confirmation_markers(request).values())
    return False


def awaiting_response_from(request) -> str | None:
    """User id expected to answer the head proposal, if one is open."""
    if RequestStatus(request.status) is not RequestStatus.NEGOTIATING:
        return None
    head = head_negotiation(request.negotiations)
    if head is None or NegotiationStatus(head.status) is not NegotiationStatus.PENDING:
        return None
    return request.counterparty_id(head.proposer_id)
