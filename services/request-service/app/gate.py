"""
Completion & payment gate.

Owns the stored-status transition graph of a service request and every
guard that decides whether an action is legal before it is committed:

    pending            -> negotiating | payment_pending | cancelled
    negotiating        -> payment_pending | cancelled
    payment_pending    -> accepted              (payment completed)
    accepted           -> pending_completion    (first party confirms, non-daily)
                       -> completed             (every daily session confirmed)
    pending_completion -> completed             (second party confirms)

`completed` and `cancelled` are terminal.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from .errors import (
    AlreadyConfirmed,
    Forbidden,
    InvalidState,
    InvalidTransition,
    PaymentNotSelected,
    ValidationError,
)
from .events import record
from .models import Party, PaymentMethod, PricingType, RequestStatus, utcnow

DEFAULT_FEE_RATE = Decimal("0.05")

TRANSITIONS = {
    RequestStatus.PENDING: {
        RequestStatus.NEGOTIATING,
        RequestStatus.PAYMENT_PENDING,
        RequestStatus.CANCELLED,
    },
    RequestStatus.NEGOTIATING: {
        RequestStatus.PAYMENT_PENDING,
        RequestStatus.CANCELLED,
    },
    RequestStatus.PAYMENT_PENDING: {RequestStatus.ACCEPTED},
    RequestStatus.ACCEPTED: {
        RequestStatus.PENDING_COMPLETION,
        RequestStatus.COMPLETED,
    },
    RequestStatus.PENDING_COMPLETION: {RequestStatus.COMPLETED},
}

TERMINAL = {RequestStatus.COMPLETED, RequestStatus.CANCELLED}


def can_transition(current, target) -> bool:
    return RequestStatus(target) in TRANSITIONS.get(RequestStatus(current), set())


def transition(request, target: RequestStatus, events: list | None = None):
    current = RequestStatus(request.status)
    target = RequestStatus(target)
    if not can_transition(current, target):
        raise InvalidTransition(f"Cannot move request from {current.value} to {target.value}")
    request.status = target
    record(events, "request.status_changed", request, previous=current.value, status=target.value)


def require_party(request, user_id: str | None) -> Party:
    party = request.party_of(user_id)
    if party is None:
        raise Forbidden("Only the client or the provider of this request may act on it")
    return party


def _require_provider(request, user_id: str):
    if require_party(request, user_id) is not Party.PROVIDER:
        raise Forbidden("Only the provider may do this")


def _require_client_or_system(request, user_id: str | None):
    # user_id None is the payment processor acting through the event consumer
    if user_id is not None and require_party(request, user_id) is not Party.CLIENT:
        raise Forbidden("Only the client may handle payment")


def accept_directly(request, provider_id: str, events: list | None = None):
    _require_provider(request, provider_id)
    if RequestStatus(request.status) is not RequestStatus.PENDING:
        raise InvalidTransition("Only a pending request can be accepted directly; answer the open proposal instead")
    transition(request, RequestStatus.PAYMENT_PENDING, events)


def cancel(request, provider_id: str, events: list | None = None):
    _require_provider(request, provider_id)
    transition(request, RequestStatus.CANCELLED, events)


def select_payment_method(request, caller_id: str | None, method, events: list | None = None):
    _require_client_or_system(request, caller_id)
    try:
        method = PaymentMethod(method)
    except ValueError:
        raise ValidationError("Invalid payment method")

    if RequestStatus(request.status) is not RequestStatus.PAYMENT_PENDING:
        raise InvalidState("Request is not in payment pending status")

    request.payment_method = method
    record(events, "request.payment_method_selected", request, payment_method=method.value)


def complete_payment(request, caller_id: str | None, now: datetime | None = None, events: list | None = None):
    _require_client_or_system(request, caller_id)
    if RequestStatus(request.status) is not RequestStatus.PAYMENT_PENDING:
        raise InvalidState("Request is not in payment pending status")
    if not request.payment_method:
        raise PaymentNotSelected()

    request.payment_completed_at = now or utcnow()
    transition(request, RequestStatus.ACCEPTED, events)
    record(
        events,
        "request.payment_completed",
        request,
        payment_method=PaymentMethod(request.payment_method).value,
        amount=request.proposed_price,
    )


def provider_payout(price: Decimal | None, fee_rate: Decimal = DEFAULT_FEE_RATE) -> Decimal | None:
    if price is None or price <= 0:
        return None
    amount = Decimal(price) * (Decimal(1) - fee_rate)
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def finalize(request, now: datetime | None = None, events: list | None = None, fee_rate: Decimal = DEFAULT_FEE_RATE):
    """
    Terminal transition once both confirmation signals exist. The provider
    payout is credited at most once, guarded by `balance_added_at`.
    """
    now = now or utcnow()
    transition(request, RequestStatus.COMPLETED, events)

    payout = None
    if request.payment_completed_at is not None and request.balance_added_at is None:
        payout = provider_payout(request.proposed_price, fee_rate)
        if payout is not None:
            request.balance_added_at = now

    record(
        events,
        "request.completed",
        request,
        payout_user_id=request.provider_id,
        payout_amount=payout,
        platform_fee_rate=fee_rate,
    )


def confirm_completion(
    request,
    actor_id: str,
    now: datetime | None = None,
    events: list | None = None,
    fee_rate: Decimal = DEFAULT_FEE_RATE,
) -> bool:
    """
    Record one party's completion confirmation on a non-daily request.

    The first confirmation moves the request to `pending_completion`; the
    second completes it. Returns True when this call completed the request.
    """
    party = require_party(request, actor_id)
    now = now or utcnow()

    if request.pricing_type == PricingType.DAILY:
        raise InvalidState("Daily requests are completed by confirming every day")

    status = RequestStatus(request.status)
    if status not in (RequestStatus.ACCEPTED, RequestStatus.PENDING_COMPLETION):
        raise InvalidState(f"Cannot confirm completion while request is {status.value}")
    if request.payment_completed_at is None:
        raise InvalidState("Payment has not been completed")

    if party is Party.CLIENT:
        if request.client_completed_at is not None:
            raise AlreadyConfirmed()
        request.client_completed_at = now
    else:
        if request.provider_completed_at is not None:
            raise AlreadyConfirmed()
        request.provider_completed_at = now

    record(events, "request.completion_confirmed", request, party=party.value)

    if request.client_completed_at is not None and request.provider_completed_at is not None:
        if status is RequestStatus.ACCEPTED:
            transition(request, RequestStatus.PENDING_COMPLETION, events)
        finalize(request, now, events, fee_rate)
        return True

    if status is RequestStatus.ACCEPTED:
        transition(request, RequestStatus.PENDING_COMPLETION, events)
    return False


def update_status(
    request,
    caller_id: str,
    new_status,
    now: datetime | None = None,
    events: list | None = None,
    fee_rate: Decimal = DEFAULT_FEE_RATE,
):
    """Generic status change, restricted to the caller-driven edges of the graph."""
    try:
        target = RequestStatus(new_status)
    except ValueError:
        raise InvalidTransition(f"Unknown status: {new_status}")

    require_party(request, caller_id)

    if target is RequestStatus.PAYMENT_PENDING:
        accept_directly(request, caller_id, events)
    elif target is RequestStatus.CANCELLED:
        cancel(request, caller_id, events)
    elif target in (RequestStatus.PENDING_COMPLETION, RequestStatus.COMPLETED):
        confirm_completion(request, caller_id, now, events, fee_rate)
    else:
        current = RequestStatus(request.status)
        raise InvalidTransition(f"Cannot move request from {current.value} to {target.value}")
