from decimal import Decimal

import pytest

from app.errors import Forbidden, InvalidState, NegotiationNotFound, StaleNegotiation, ValidationError
from app.ledger import Decision, counter_propose, propose, respond
from app.models import NegotiationStatus, PricingType, RequestStatus
from app.pricing import ProviderRates, Terms

from conftest import CLIENT_ID, OUTSIDER_ID, PROVIDER_ID, event_types, future, make_request


def fixed(price: str) -> Terms:
    return Terms(pricing_type=PricingType.FIXED, proposed_price=Decimal(price))


class TestPropose:
    def test_first_proposal_opens_negotiation(self) -> None:
        request = make_request()
        events = []
        n = propose(request, CLIENT_ID, fixed("150"), "Can you do 150?", events=events)

        assert request.status is RequestStatus.NEGOTIATING
        assert n.sequence == 1
        assert n.status is NegotiationStatus.PENDING
        assert event_types(events) == ["request.status_changed", "negotiation.proposed"]

    def test_sequence_grows_with_the_ledger(self) -> None:
        request = make_request()
        propose(request, CLIENT_ID, fixed("150"), "Can you do 150?")
        n = propose(request, PROVIDER_ID, fixed("190"), "190 with materials")
        assert n.sequence == 2
        assert [x.sequence for x in request.negotiations] == [1, 2]

    def test_outsider_cannot_propose(self) -> None:
        with pytest.raises(Forbidden):
            propose(make_request(), OUTSIDER_ID, fixed("150"), "Hello")

    def test_message_is_required(self) -> None:
        with pytest.raises(ValidationError):
            propose(make_request(), CLIENT_ID, fixed("150"), "   ")

    def test_hours_only_for_hourly(self) -> None:
        terms = Terms(pricing_type=PricingType.FIXED, proposed_price=Decimal("10"), proposed_hours=2)
        with pytest.raises(ValidationError):
            propose(make_request(), CLIENT_ID, terms, "Two hours?")

    def test_date_must_be_in_the_future(self) -> None:
        terms = Terms(pricing_type=PricingType.FIXED, proposed_price=Decimal("10"), proposed_date=future(days=-1))
        with pytest.raises(ValidationError):
            propose(make_request(), CLIENT_ID, terms, "Yesterday?")

    def test_daily_terms_need_a_start_date(self) -> None:
        terms = Terms(pricing_type=PricingType.DAILY, proposed_price=Decimal("300"), proposed_days=2)
        with pytest.raises(ValidationError):
            propose(make_request(), CLIENT_ID, terms, "Two days")

    def test_closed_request_cannot_be_negotiated(self) -> None:
        for stored in (RequestStatus.PAYMENT_PENDING, RequestStatus.ACCEPTED, RequestStatus.CANCELLED):
            with pytest.raises(InvalidState):
                propose(make_request(status=stored), CLIENT_ID, fixed("150"), "Late offer")


class TestRespond:
    def test_accept_adopts_terms_and_awaits_payment(self) -> None:
        request = make_request()
        propose(request, CLIENT_ID, fixed("150"), "Can you do 150?")
        counter = propose(request, PROVIDER_ID, fixed("175"), "175 and we have a deal")

        events = []
        respond(request, counter.id, CLIENT_ID, "accept", events=events)

        assert request.status is RequestStatus.PAYMENT_PENDING
        assert request.proposed_price == Decimal("175")
        assert counter.status is NegotiationStatus.ACCEPTED
        assert counter.responded_at is not None
        assert "negotiation.accepted" in event_types(events)

    def test_reject_cancels_whichever_party_answers(self) -> None:
        request = make_request()
        n = propose(request, PROVIDER_ID, fixed("300"), "300 is my price")
        respond(request, n.id, CLIENT_ID, "rejected")

        assert n.status is NegotiationStatus.REJECTED
        assert request.status is RequestStatus.CANCELLED

    def test_cannot_answer_own_proposal(self) -> None:
        request = make_request()
        n = propose(request, CLIENT_ID, fixed("150"), "Can you do 150?")
        with pytest.raises(Forbidden):
            respond(request, n.id, CLIENT_ID, "accept")

    def test_superseded_proposal_is_stale(self) -> None:
        request = make_request()
        first = propose(request, CLIENT_ID, fixed("150"), "Can you do 150?")
        propose(request, CLIENT_ID, fixed("160"), "Fine, 160")

        with pytest.raises(StaleNegotiation):
            respond(request, first.id, PROVIDER_ID, "accept")
        assert request.status is RequestStatus.NEGOTIATING

    def test_answer_is_written_once(self) -> None:
        request = make_request()
        n = propose(request, CLIENT_ID, fixed("150"), "Can you do 150?")
        respond(request, n.id, PROVIDER_ID, "accept")
        with pytest.raises(InvalidState):
            respond(request, n.id, PROVIDER_ID, "reject")

    def test_unknown_negotiation(self) -> None:
        with pytest.raises(NegotiationNotFound):
            respond(make_request(), "missing", PROVIDER_ID, "accept")

    def test_unknown_decision(self) -> None:
        with pytest.raises(ValidationError):
            Decision.parse("maybe")

    def test_accept_fills_price_from_provider_rates(self) -> None:
        request = make_request()
        terms = Terms(pricing_type=PricingType.HOURLY, proposed_hours=4)
        n = propose(request, CLIENT_ID, terms, "Four hours at your rate")

        respond(request, n.id, PROVIDER_ID, "accept", rates=ProviderRates(min_hourly_rate=Decimal("45")))

        assert request.pricing_type is PricingType.HOURLY
        assert request.proposed_hours == 4
        assert request.proposed_price == Decimal("180")

    def test_accept_without_rates_keeps_current_price(self) -> None:
        request = make_request(proposed_price=Decimal("120"))
        n = propose(request, CLIENT_ID, Terms(pricing_type=PricingType.FIXED), "Same price, new date?")
        respond(request, n.id, PROVIDER_ID, "accept")
        assert request.proposed_price == Decimal("120")

    def test_accepting_daily_terms_builds_sessions(self) -> None:
        request = make_request()
        start = future(days=5, hour=8)
        terms = Terms(
            pricing_type=PricingType.DAILY,
            proposed_price=Decimal("900"),
            proposed_days=3,
            proposed_date=start,
        )
        n = propose(request, PROVIDER_ID, terms, "Three days starting next week")
        respond(request, n.id, CLIENT_ID, "accept")

        assert [s["day"] for s in request.daily_sessions] == [1, 2, 3]
        assert request.daily_sessions[0]["scheduled_time"] == "08:00"
        assert not any(s["client_completed"] or s["provider_completed"] for s in request.daily_sessions)


class TestCounterProposal:
    def test_counter_supersedes_the_head(self) -> None:
        request = make_request()
        first = propose(request, CLIENT_ID, fixed("150"), "Can you do 150?")
        counter = counter_propose(request, first.id, PROVIDER_ID, fixed("170"), "170?")

        assert counter.sequence == 2
        assert first.status is NegotiationStatus.PENDING
        with pytest.raises(StaleNegotiation):
            respond(request, first.id, PROVIDER_ID, "accept")

    def test_counter_needs_standing_on_the_head(self) -> None:
        request = make_request()
        first = propose(request, CLIENT_ID, fixed("150"), "Can you do 150?")
        with pytest.raises(Forbidden):
            counter_propose(request, first.id, CLIENT_ID, fixed("140"), "Or 140")
