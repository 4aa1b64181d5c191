IDEMPOTENCY_TTL_SECONDS = 60 * 60 * 24

def processed_key(event_id: str) -> str:
    return f"processed_event:{event_id}"

async def is_processed(redis_client, event_id: str) -> bool:
    return bool(await redis_client.exists(processed_key(event_id)))

async def mark_processed(redis_client, event_id: str):
    await redis_client.set(processed_key(event_id), "1", ex=IDEMPOTENCY_TTL_SECONDS)
