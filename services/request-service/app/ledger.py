"""
Negotiation ledger.

Proposals are appended, never rewritten. The only write a proposal ever sees
after creation is its single answer (accepted or rejected) by the counter-party.
A newer proposal supersedes an unanswered older one implicitly; see
`derivation.effective_negotiation_status`.
"""

import enum
from datetime import datetime

from .errors import (
    Forbidden,
    InvalidState,
    NegotiationNotFound,
    StaleNegotiation,
    ValidationError,
)
from .events import record
from .gate import require_party, transition
from .derivation import head_negotiation
from .models import Negotiation, NegotiationStatus, PricingType, RequestStatus, new_id, utcnow
from .pricing import ProviderRates, Terms, calculated_price, units_for, validate_terms
from .sessions import build_sessions


class Decision(str, enum.Enum):
    ACCEPT = "accept"
    REJECT = "reject"

    @classmethod
    def parse(cls, value) -> "Decision":
        value = (value or "").strip().lower()
        # "accepted"/"rejected" are what negotiation status fields carry
        aliases = {"accepted": cls.ACCEPT, "rejected": cls.REJECT}
        if value in aliases:
            return aliases[value]
        try:
            return cls(value)
        except ValueError:
            raise ValidationError("decision must be 'accept' or 'reject'")


_OPEN = (RequestStatus.PENDING, RequestStatus.NEGOTIATING)


def find_negotiation(request, negotiation_id: str) -> Negotiation:
    for negotiation in request.negotiations:
        if negotiation.id == negotiation_id:
            return negotiation
    raise NegotiationNotFound()


def _check_daily_terms(request, terms: Terms):
    if terms.pricing_type != PricingType.DAILY:
        return
    days = terms.proposed_days or (request.proposed_days if request.pricing_type == PricingType.DAILY else None)
    start = terms.proposed_date or request.scheduled_date
    if not days or start is None:
        raise ValidationError("Daily pricing needs proposed_days and a start date")


def propose(
    request,
    proposer_id: str,
    terms: Terms,
    message: str,
    now: datetime | None = None,
    events: list | None = None,
) -> Negotiation:
    require_party(request, proposer_id)

    status = RequestStatus(request.status)
    if status not in _OPEN:
        raise InvalidState(f"Cannot negotiate a request that is {status.value}")

    if not (message or "").strip():
        raise ValidationError("message is required")
    validate_terms(terms)
    _check_daily_terms(request, terms)

    negotiation = Negotiation(
        id=new_id(),
        request_id=request.id,
        sequence=len(request.negotiations) + 1,
        proposer_id=proposer_id,
        pricing_type=PricingType(terms.pricing_type),
        proposed_price=terms.proposed_price,
        proposed_hours=terms.proposed_hours,
        proposed_days=terms.proposed_days,
        proposed_date=terms.proposed_date,
        message=message.strip(),
        status=NegotiationStatus.PENDING,
        created_at=now or utcnow(),
    )
    request.negotiations.append(negotiation)

    if status is RequestStatus.PENDING:
        transition(request, RequestStatus.NEGOTIATING, events)

    record(
        events,
        "negotiation.proposed",
        request,
        negotiation_id=negotiation.id,
        proposer_id=proposer_id,
        pricing_type=negotiation.pricing_type.value,
        proposed_price=negotiation.proposed_price,
    )
    return negotiation


def _check_answerable(request, negotiation, responder_id: str):
    require_party(request, responder_id)
    if negotiation.proposer_id == responder_id:
        raise Forbidden("Cannot respond to your own negotiation")
    if NegotiationStatus(negotiation.status) is not NegotiationStatus.PENDING:
        raise InvalidState("Negotiation was already answered")

    head = head_negotiation(request.negotiations)
    if head is None or head.id != negotiation.id:
        raise StaleNegotiation()

    status = RequestStatus(request.status)
    if status is not RequestStatus.NEGOTIATING:
        raise InvalidState(f"Cannot answer a proposal while request is {status.value}")


def counter_propose(
    request,
    negotiation_id: str,
    proposer_id: str,
    terms: Terms,
    message: str,
    now: datetime | None = None,
    events: list | None = None,
) -> Negotiation:
    """Answer the head proposal with new terms instead of accepting or rejecting it."""
    current = find_negotiation(request, negotiation_id)
    _check_answerable(request, current, proposer_id)
    return propose(request, proposer_id, terms, message, now=now, events=events)


def apply_accepted_terms(request, negotiation, rates: ProviderRates | None = None):
    """Copy the agreed terms onto the request, filling gaps from its current values."""
    pricing_type = PricingType(negotiation.pricing_type)
    same_type = request.pricing_type == pricing_type

    hours = days = None
    if pricing_type == PricingType.HOURLY:
        hours = negotiation.proposed_hours or (request.proposed_hours if same_type else None)
    elif pricing_type == PricingType.DAILY:
        days = negotiation.proposed_days or (request.proposed_days if same_type else None)

    price = negotiation.proposed_price
    if price is None:
        price = calculated_price(rates, pricing_type, units_for(pricing_type, hours, days))
    if price is None:
        price = request.proposed_price

    request.pricing_type = pricing_type
    request.proposed_price = price
    request.proposed_hours = hours
    request.proposed_days = days
    request.scheduled_date = negotiation.proposed_date or request.scheduled_date

    if pricing_type == PricingType.DAILY:
        request.daily_sessions = build_sessions(request.scheduled_date, days)
    else:
        request.daily_sessions = []


def respond(
    request,
    negotiation_id: str,
    responder_id: str,
    decision,
    rates: ProviderRates | None = None,
    now: datetime | None = None,
    events: list | None = None,
) -> Negotiation:
    """
    Accept or reject the head proposal.

    Acceptance adopts the proposal's terms and moves the request to
    `payment_pending`. Rejection of the head closes the negotiation and
    cancels the request, whichever party rejects.
    """
    decision = Decision.parse(decision)
    negotiation = find_negotiation(request, negotiation_id)
    _check_answerable(request, negotiation, responder_id)

    negotiation.responded_at = now or utcnow()

    if decision is Decision.ACCEPT:
        negotiation.status = NegotiationStatus.ACCEPTED
        apply_accepted_terms(request, negotiation, rates)
        transition(request, RequestStatus.PAYMENT_PENDING, events)
        record(
            events,
            "negotiation.accepted",
            request,
            negotiation_id=negotiation.id,
            responder_id=responder_id,
            proposed_price=request.proposed_price,
        )
    else:
        negotiation.status = NegotiationStatus.REJECTED
        transition(request, RequestStatus.CANCELLED, events)
        record(
            events,
            "negotiation.rejected",
            request,
            negotiation_id=negotiation.id,
            responder_id=responder_id,
        )
    return negotiation
