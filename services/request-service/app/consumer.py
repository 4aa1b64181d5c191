import json
import aio_pika

from shared.idempotency import is_processed, mark_processed

from .config import SERVICE_NAME
from .errors import Conflict, DomainError
from .gate import complete_payment, select_payment_method
from .models import RequestStatus
from .rabbitmq import EXCHANGE_NAME
from .redis_client import get_redis

QUEUE_NAME = "request_service_payment_events"
ROUTING_KEYS = ["payment.completed"]


def settle_payment(request, payment_method: str | None, events: list | None = None):
    """
    Payment processor confirmation for one request. The processor acts as
    the system actor, so no party check applies.
    """
    if payment_method and RequestStatus(request.status) is RequestStatus.PAYMENT_PENDING:
        select_payment_method(request, None, payment_method, events=events)
    complete_payment(request, None, events=events)


async def handle_payment_event(payload: dict, store, redis_client) -> bool:
    """
    Returns True when the event changed a request.

    `Conflict` propagates without marking the event processed so the broker
    can redeliver it; other domain errors are final.
    """
    event_id = payload.get("event_id")
    event_type = payload.get("event_type")
    data = payload.get("data") or {}
    request_id = data.get("request_id")

    if not event_id or event_type not in ROUTING_KEYS or not request_id:
        return False

    if await is_processed(redis_client, event_id):
        return False

    try:
        await store.mutate(
            request_id,
            lambda r, events: settle_payment(r, data.get("payment_method"), events=events),
        )
    except Conflict:
        print(f"[{SERVICE_NAME}] payment event {event_id} for {request_id} lost a concurrent write; requeueing")
        raise
    except DomainError as e:
        # business-rule failures are final; redelivery would fail the same way
        print(f"[{SERVICE_NAME}] payment event {event_id} for {request_id} dropped: {e.code}: {e.detail}")
        await mark_processed(redis_client, event_id)
        return False

    await mark_processed(redis_client, event_id)
    return True


def make_handler(store):
    redis_client = get_redis()

    async def handle_message(message: aio_pika.IncomingMessage):
        async with message.process(requeue=False, ignore_processed=True):
            try:
                payload = json.loads(message.body.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError):
                return
            try:
                await handle_payment_event(payload, store, redis_client)
            except Conflict:
                await message.nack(requeue=True)

    return handle_message


async def start_consumer(rabbit_url: str, store):
    conn = await aio_pika.connect_robust(rabbit_url)
    channel = await conn.channel()
    await channel.set_qos(prefetch_count=50)

    exchange = await channel.declare_exchange(
        EXCHANGE_NAME, aio_pika.ExchangeType.TOPIC, durable=True
    )

    queue = await channel.declare_queue(QUEUE_NAME, durable=True)
    for rk in ROUTING_KEYS:
        await queue.bind(exchange, routing_key=rk)

    await queue.consume(make_handler(store))
    print(f"[{SERVICE_NAME}] payment consumer started")
    return conn
