from datetime import datetime
from typing import Callable

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from .config import SERVICE_NAME
from .errors import AlreadyReviewed, Conflict, NegotiationNotFound, RequestNotFound, ValidationError
from .events import record, to_json
from .models import Negotiation, Party, PricingType, RequestStatus, Review, ServiceRequest, new_id, utcnow
from .pricing import ProviderRates, Terms, calculated_price, check_minimum, ensure_future, units_for, validate_terms
from .sessions import build_sessions

# one retry after a concurrent write, then Conflict
MAX_ATTEMPTS = 2


def new_service_request(
    client_id: str,
    provider_id: str,
    title: str,
    description: str,
    terms: Terms,
    rates: ProviderRates | None = None,
    now: datetime | None = None,
) -> ServiceRequest:
    if client_id == provider_id:
        raise ValidationError("A client cannot request a service from themselves")
    if not (title or "").strip() or not (description or "").strip():
        raise ValidationError("title and description are required")

    validate_terms(terms)
    pricing_type = PricingType(terms.pricing_type)
    if pricing_type == PricingType.DAILY and (not terms.proposed_days or terms.proposed_date is None):
        raise ValidationError("Daily requests need proposed_days and scheduled_date")

    ensure_future(terms.proposed_date, "scheduled_date")
    check_minimum(rates, terms)

    price = terms.proposed_price
    if price is None and pricing_type != PricingType.FIXED:
        price = calculated_price(rates, pricing_type, units_for(pricing_type, terms.proposed_hours, terms.proposed_days))

    now = now or utcnow()
    return ServiceRequest(
        id=new_id(),
        client_id=client_id,
        provider_id=provider_id,
        title=title.strip(),
        description=description.strip(),
        status=RequestStatus.PENDING,
        pricing_type=pricing_type,
        proposed_price=price,
        proposed_hours=terms.proposed_hours,
        proposed_days=terms.proposed_days,
        scheduled_date=terms.proposed_date,
        daily_sessions=build_sessions(terms.proposed_date, terms.proposed_days) if pricing_type == PricingType.DAILY else [],
        negotiations=[],
        created_at=now,
        updated_at=now,
    )


def _changed(db) -> bool:
    return bool(db.new) or any(db.is_modified(obj) for obj in db.dirty)


class RequestStore:
    """
    Persistence of service requests with their ledger and day sessions.

    Every mutation runs as one read-modify-write transaction on a single
    request row: the row is locked where the database supports it and the
    `version` column rejects a write based on a stale read. A rejected write
    is retried once from a fresh read before surfacing `Conflict`.
    Events gathered by an action are published only after its commit.
    """

    def __init__(self, session_factory, publisher=None):
        self._session_factory = session_factory
        self._publisher = publisher

    async def _publish(self, events: list):
        if not self._publisher:
            return
        for event in events:
            await self._publisher.publish(event["event_type"], to_json(event))

    async def _load(self, db, request_id: str, lock: bool = False) -> ServiceRequest:
        stmt = select(ServiceRequest).where(ServiceRequest.id == request_id)
        if lock:
            stmt = stmt.with_for_update()
        res = await db.execute(stmt)
        request = res.scalar_one_or_none()
        if not request:
            raise RequestNotFound()
        return request

    async def add(self, request: ServiceRequest) -> ServiceRequest:
        events = []
        async with self._session_factory() as db:
            db.add(request)
            record(
                events,
                "request.created",
                request,
                pricing_type=PricingType(request.pricing_type).value,
                proposed_price=request.proposed_price,
            )
            await db.commit()
        await self._publish(events)
        return request

    async def get(self, request_id: str) -> ServiceRequest:
        async with self._session_factory() as db:
            return await self._load(db, request_id)

    async def list_for(self, user_id: str, role: Party | None = None) -> list[ServiceRequest]:
        if role is Party.CLIENT:
            cond = ServiceRequest.client_id == user_id
        elif role is Party.PROVIDER:
            cond = ServiceRequest.provider_id == user_id
        else:
            cond = or_(ServiceRequest.client_id == user_id, ServiceRequest.provider_id == user_id)

        async with self._session_factory() as db:
            res = await db.execute(
                select(ServiceRequest).where(cond).order_by(ServiceRequest.created_at.desc())
            )
            return list(res.scalars().all())

    async def request_id_for_negotiation(self, negotiation_id: str) -> str:
        async with self._session_factory() as db:
            res = await db.execute(select(Negotiation.request_id).where(Negotiation.id == negotiation_id))
            request_id = res.scalar_one_or_none()
        if not request_id:
            raise NegotiationNotFound()
        return request_id

    async def mutate(self, request_id: str, action: Callable):
        """
        Apply `action(request, events)` atomically and return
        `(request, action_result)`. Domain errors raised by the action roll
        the transaction back and propagate unchanged. An action that changes
        nothing commits nothing and keeps the current version.
        """
        for attempt in range(1, MAX_ATTEMPTS + 1):
            events = []
            async with self._session_factory() as db:
                request = await self._load(db, request_id, lock=True)
                result = action(request, events)
                if not _changed(db):
                    # no-op actions leave the version alone
                    return request, result
                request.updated_at = utcnow()
                try:
                    await db.commit()
                except StaleDataError:
                    await db.rollback()
                    print(f"[{SERVICE_NAME}] concurrent update on request {request_id} (attempt {attempt})")
                    continue

            await self._publish(events)
            return request, result

        raise Conflict()

    async def reviews_for_request(self, request_id: str) -> list[Review]:
        async with self._session_factory() as db:
            res = await db.execute(select(Review).where(Review.request_id == request_id))
            return list(res.scalars().all())

    async def add_review(self, request_id: str, build: Callable) -> Review:
        """`build(request, existing_reviews)` returns the Review to insert."""
        events = []
        async with self._session_factory() as db:
            request = await self._load(db, request_id)
            res = await db.execute(select(Review).where(Review.request_id == request_id))
            review = build(request, list(res.scalars().all()))
            db.add(review)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise AlreadyReviewed()
            record(
                events,
                "review.created",
                request,
                review_id=review.id,
                reviewer_id=review.reviewer_id,
                reviewee_id=review.reviewee_id,
                rating=review.rating,
            )

        await self._publish(events)
        return review

    async def reviews_received(self, user_id: str) -> list[Review]:
        async with self._session_factory() as db:
            res = await db.execute(
                select(Review).where(Review.reviewee_id == user_id).order_by(Review.created_at.desc())
            )
            return list(res.scalars().all())

    async def reviews_sent(self, user_id: str) -> list[Review]:
        async with self._session_factory() as db:
            res = await db.execute(
                select(Review).where(Review.reviewer_id == user_id).order_by(Review.created_at.desc())
            )
            return list(res.scalars().all())
