import asyncio
from decimal import Decimal

import pytest

from app.consumer import handle_payment_event
from app.errors import Conflict
from app.events import build_event
from app.gate import accept_directly
from app.models import PaymentMethod, PricingType, RequestStatus, utcnow
from app.pricing import Terms
from app.store import RequestStore, new_service_request

from conftest import CLIENT_ID, PROVIDER_ID, FakeRedis, InterferingStore


async def seed_payment_pending(store) -> str:
    request = await store.add(
        new_service_request(
            client_id=CLIENT_ID,
            provider_id=PROVIDER_ID,
            title="Unclog drain",
            description="Kitchen",
            terms=Terms(pricing_type=PricingType.FIXED, proposed_price=Decimal("90")),
        )
    )
    await store.mutate(request.id, lambda r, events: accept_directly(r, PROVIDER_ID, events))
    return request.id


def test_payment_event_settles_once(store) -> None:
    redis_client = FakeRedis()

    async def scenario():
        request_id = await seed_payment_pending(store)
        event = build_event("payment.completed", {"request_id": request_id, "payment_method": "boleto"})
        first = await handle_payment_event(event, store, redis_client)
        again = await handle_payment_event(event, store, redis_client)
        return first, again, await store.get(request_id)

    first, again, loaded = asyncio.run(scenario())
    assert first is True
    assert again is False
    assert loaded.status is RequestStatus.ACCEPTED
    assert loaded.payment_method is PaymentMethod.BOLETO
    assert loaded.payment_completed_at is not None


def test_event_for_wrong_state_is_dropped(store) -> None:
    redis_client = FakeRedis()

    async def scenario():
        request = await store.add(
            new_service_request(
                client_id=CLIENT_ID,
                provider_id=PROVIDER_ID,
                title="Unclog drain",
                description="Kitchen",
                terms=Terms(pricing_type=PricingType.FIXED, proposed_price=Decimal("90")),
            )
        )
        event = build_event("payment.completed", {"request_id": request.id, "payment_method": "pix"})
        handled = await handle_payment_event(event, store, redis_client)
        return event, handled, await store.get(request.id)

    event, handled, loaded = asyncio.run(scenario())
    assert handled is False
    assert loaded.status is RequestStatus.PENDING
    assert f"processed_event:{event['event_id']}" in redis_client.values


def test_unrelated_events_are_ignored(store) -> None:
    redis_client = FakeRedis()
    event = build_event("booking.created", {"request_id": "r-1"})
    assert asyncio.run(handle_payment_event(event, store, redis_client)) is False
    assert redis_client.values == {}


def test_lost_race_is_left_for_redelivery(session_factory, publisher) -> None:
    redis_client = FakeRedis()
    store = RequestStore(session_factory, publisher)

    async def touch(request_id):
        await store.mutate(request_id, lambda r, events: setattr(r, "updated_at", utcnow()))

    racing = InterferingStore(session_factory, publisher, interfere=touch, times=2)

    async def scenario():
        request_id = await seed_payment_pending(store)
        event = build_event("payment.completed", {"request_id": request_id, "payment_method": "pix"})

        with pytest.raises(Conflict):
            await handle_payment_event(event, racing, redis_client)
        marked_after_conflict = dict(redis_client.values)

        # the broker hands the same event over again
        redelivered = await handle_payment_event(event, store, redis_client)
        return marked_after_conflict, redelivered, await store.get(request_id)

    marked_after_conflict, redelivered, loaded = asyncio.run(scenario())
    assert marked_after_conflict == {}
    assert redelivered is True
    assert loaded.status is RequestStatus.ACCEPTED
    assert loaded.payment_method is PaymentMethod.PIX
    assert len(redis_client.values) == 1
