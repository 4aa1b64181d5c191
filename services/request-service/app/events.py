import json
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

def build_event(event_type: str, data: dict) -> dict:
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "data": data,
    }

def record(events: list | None, event_type: str, request, **data):
    """Queue a domain event about `request`; published only after commit."""
    if events is None:
        return
    payload = {
        "request_id": request.id,
        "client_id": request.client_id,
        "provider_id": request.provider_id,
    }
    payload.update(data)
    events.append(build_event(event_type, payload))

def _default(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"{type(value).__name__} is not JSON serializable")

def to_json(event: dict) -> str:
    return json.dumps(event, separators=(",", ":"), ensure_ascii=False, default=_default)
