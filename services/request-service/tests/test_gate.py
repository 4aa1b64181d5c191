from decimal import Decimal

import pytest

from app.errors import (
    AlreadyConfirmed,
    Forbidden,
    InvalidState,
    InvalidTransition,
    PaymentNotSelected,
    ValidationError,
)
from app.gate import (
    can_transition,
    complete_payment,
    confirm_completion,
    provider_payout,
    select_payment_method,
    update_status,
)
from app.models import PaymentMethod, RequestStatus

from conftest import CLIENT_ID, OUTSIDER_ID, PROVIDER_ID, event_types, make_daily_request, make_request, paid


def test_transition_graph() -> None:
    assert can_transition(RequestStatus.PENDING, RequestStatus.NEGOTIATING)
    assert can_transition(RequestStatus.PAYMENT_PENDING, RequestStatus.ACCEPTED)
    assert can_transition(RequestStatus.PENDING_COMPLETION, RequestStatus.COMPLETED)
    assert not can_transition(RequestStatus.PENDING, RequestStatus.COMPLETED)
    assert not can_transition(RequestStatus.COMPLETED, RequestStatus.CANCELLED)
    assert not can_transition(RequestStatus.CANCELLED, RequestStatus.PENDING)


class TestPayment:
    def test_client_selects_method_then_pays(self) -> None:
        request = make_request(status=RequestStatus.PAYMENT_PENDING)
        events = []
        select_payment_method(request, CLIENT_ID, "pix", events=events)
        complete_payment(request, CLIENT_ID, events=events)

        assert request.payment_method is PaymentMethod.PIX
        assert request.payment_completed_at is not None
        assert request.status is RequestStatus.ACCEPTED
        assert "request.payment_completed" in event_types(events)

    def test_payment_needs_a_method(self) -> None:
        request = make_request(status=RequestStatus.PAYMENT_PENDING)
        with pytest.raises(PaymentNotSelected):
            complete_payment(request, CLIENT_ID)
        assert request.status is RequestStatus.PAYMENT_PENDING

    def test_only_while_payment_pending(self) -> None:
        request = make_request(status=RequestStatus.NEGOTIATING)
        with pytest.raises(InvalidState):
            select_payment_method(request, CLIENT_ID, "boleto")
        with pytest.raises(InvalidState):
            complete_payment(request, CLIENT_ID)

    def test_provider_cannot_pay(self) -> None:
        request = make_request(status=RequestStatus.PAYMENT_PENDING)
        with pytest.raises(Forbidden):
            select_payment_method(request, PROVIDER_ID, "credit_card")

    def test_unknown_method(self) -> None:
        request = make_request(status=RequestStatus.PAYMENT_PENDING)
        with pytest.raises(ValidationError):
            select_payment_method(request, CLIENT_ID, "cash")

    def test_system_actor_can_settle(self) -> None:
        request = make_request(status=RequestStatus.PAYMENT_PENDING)
        select_payment_method(request, None, "credit_card")
        complete_payment(request, None)
        assert request.status is RequestStatus.ACCEPTED


class TestCompletion:
    def test_requires_both_confirmations(self) -> None:
        request = paid(make_request(proposed_price=Decimal("200.00")))
        events = []

        assert confirm_completion(request, CLIENT_ID, events=events) is False
        assert request.status is RequestStatus.PENDING_COMPLETION
        assert request.balance_added_at is None

        assert confirm_completion(request, PROVIDER_ID, events=events) is True
        assert request.status is RequestStatus.COMPLETED
        assert request.balance_added_at is not None

        completed = [e for e in events if e["event_type"] == "request.completed"]
        assert len(completed) == 1
        assert completed[0]["data"]["payout_amount"] == Decimal("190.00")

    def test_provider_may_confirm_first(self) -> None:
        request = paid(make_request())
        confirm_completion(request, PROVIDER_ID)
        assert request.provider_completed_at is not None
        assert request.client_completed_at is None
        assert request.status is RequestStatus.PENDING_COMPLETION

    def test_repeat_confirmation_is_rejected(self) -> None:
        request = paid(make_request())
        confirm_completion(request, CLIENT_ID)
        with pytest.raises(AlreadyConfirmed):
            confirm_completion(request, CLIENT_ID)

    def test_unpaid_request_cannot_complete(self) -> None:
        request = make_request(status=RequestStatus.PAYMENT_PENDING)
        with pytest.raises(InvalidState):
            confirm_completion(request, CLIENT_ID)

    def test_daily_request_completes_per_day(self) -> None:
        request = paid(make_daily_request())
        with pytest.raises(InvalidState):
            confirm_completion(request, CLIENT_ID)

    def test_outsider_cannot_confirm(self) -> None:
        with pytest.raises(Forbidden):
            confirm_completion(paid(make_request()), OUTSIDER_ID)

    def test_completed_is_terminal(self) -> None:
        request = paid(make_request())
        confirm_completion(request, CLIENT_ID)
        confirm_completion(request, PROVIDER_ID)
        with pytest.raises(InvalidState):
            confirm_completion(request, CLIENT_ID)


def test_provider_payout() -> None:
    assert provider_payout(Decimal("100")) == Decimal("95.00")
    assert provider_payout(Decimal("99.99"), Decimal("0.10")) == Decimal("89.99")
    assert provider_payout(None) is None
    assert provider_payout(Decimal("0")) is None


class TestUpdateStatus:
    def test_provider_accepts_pending_request(self) -> None:
        request = make_request()
        update_status(request, PROVIDER_ID, "payment_pending")
        assert request.status is RequestStatus.PAYMENT_PENDING

    def test_client_cannot_accept_directly(self) -> None:
        with pytest.raises(Forbidden):
            update_status(make_request(), CLIENT_ID, "payment_pending")

    def test_direct_accept_not_allowed_while_negotiating(self) -> None:
        with pytest.raises(InvalidTransition):
            update_status(make_request(status=RequestStatus.NEGOTIATING), PROVIDER_ID, "payment_pending")

    def test_provider_cancels(self) -> None:
        request = make_request(status=RequestStatus.NEGOTIATING)
        update_status(request, PROVIDER_ID, "cancelled")
        assert request.status is RequestStatus.CANCELLED

    def test_cannot_cancel_after_payment(self) -> None:
        with pytest.raises(InvalidTransition):
            update_status(paid(make_request()), PROVIDER_ID, "cancelled")

    def test_completed_goes_through_confirmation(self) -> None:
        request = paid(make_request())
        update_status(request, CLIENT_ID, "completed")
        assert request.status is RequestStatus.PENDING_COMPLETION

    def test_unknown_or_unreachable_status(self) -> None:
        with pytest.raises(InvalidTransition):
            update_status(make_request(), PROVIDER_ID, "archived")
        with pytest.raises(InvalidTransition):
            update_status(make_request(), PROVIDER_ID, "accepted")
