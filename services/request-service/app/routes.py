import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, Request

from .clients import ProviderDirectory, UserDirectory, provider_directory, user_directory
from .config import PLATFORM_FEE_RATE
from .db import SessionLocal
from .gate import (
    complete_payment,
    confirm_completion,
    require_party,
    select_payment_method,
    update_status,
)
from .ledger import Decision, counter_propose, propose, respond
from .models import Party
from .rabbitmq import publisher
from .reviews import build_review, can_review
from .schemas import (
    CreateReview,
    CreateServiceRequest,
    NegotiationResponse,
    ProposeNegotiation,
    RespondNegotiation,
    ReviewEligibilityResponse,
    ReviewResponse,
    SelectPaymentMethod,
    ServiceRequestResponse,
    UpdateDailySession,
    UpdateStatus,
    negotiation_response,
    request_response,
    review_response,
)
from .security import get_current_user
from .sessions import confirm_day, reschedule_day
from .store import RequestStore, new_service_request

router = APIRouter()

store = RequestStore(SessionLocal, publisher)


def get_store() -> RequestStore:
    return store


def get_provider_directory() -> ProviderDirectory:
    return provider_directory


def get_user_directory() -> UserDirectory:
    return user_directory


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


# ================= REQUESTS =================

@router.post("/requests", response_model=ServiceRequestResponse)
async def create_request(
    data: CreateServiceRequest,
    request: Request,
    user_id: str = Depends(get_current_user),
    requests: RequestStore = Depends(get_store),
    providers: ProviderDirectory = Depends(get_provider_directory),
):
    rates = await providers.rates(data.provider_id, request_id=_request_id(request))
    service_request = new_service_request(
        client_id=user_id,
        provider_id=data.provider_id,
        title=data.title,
        description=data.description,
        terms=data.to_terms(),
        rates=rates,
    )
    await requests.add(service_request)
    return request_response(service_request)


@router.get("/requests", response_model=List[ServiceRequestResponse])
async def list_requests(
    role: Optional[Party] = None,
    user_id: str = Depends(get_current_user),
    requests: RequestStore = Depends(get_store),
):
    items = await requests.list_for(user_id, role)
    return [request_response(r) for r in items]


@router.get("/requests/{request_id}", response_model=ServiceRequestResponse)
async def get_request(
    request_id: str,
    request: Request,
    user_id: str = Depends(get_current_user),
    requests: RequestStore = Depends(get_store),
    users: UserDirectory = Depends(get_user_directory),
):
    service_request = await requests.get(request_id)
    require_party(service_request, user_id)

    party_ids = [service_request.client_id, service_request.provider_id]
    found = await asyncio.gather(
        *[users.display_name(uid, request_id=_request_id(request)) for uid in party_ids]
    )
    return request_response(service_request, names=dict(zip(party_ids, found)))


@router.put("/requests/{request_id}/status", response_model=ServiceRequestResponse)
async def update_request_status(
    request_id: str,
    data: UpdateStatus,
    user_id: str = Depends(get_current_user),
    requests: RequestStore = Depends(get_store),
):
    service_request, _ = await requests.mutate(
        request_id,
        lambda r, events: update_status(r, user_id, data.status, events=events, fee_rate=PLATFORM_FEE_RATE),
    )
    return request_response(service_request)


# ================= NEGOTIATIONS =================

@router.get("/requests/{request_id}/negotiations", response_model=List[NegotiationResponse])
async def list_negotiations(
    request_id: str,
    user_id: str = Depends(get_current_user),
    requests: RequestStore = Depends(get_store),
):
    service_request = await requests.get(request_id)
    require_party(service_request, user_id)
    return [negotiation_response(service_request, n) for n in service_request.negotiations]


@router.post("/requests/{request_id}/negotiations", response_model=ServiceRequestResponse)
async def propose_negotiation(
    request_id: str,
    data: ProposeNegotiation,
    user_id: str = Depends(get_current_user),
    requests: RequestStore = Depends(get_store),
):
    service_request, _ = await requests.mutate(
        request_id,
        lambda r, events: propose(r, user_id, data.to_terms(), data.message, events=events),
    )
    return request_response(service_request)


@router.post("/negotiations/{negotiation_id}/respond", response_model=ServiceRequestResponse)
async def respond_negotiation(
    negotiation_id: str,
    data: RespondNegotiation,
    request: Request,
    user_id: str = Depends(get_current_user),
    requests: RequestStore = Depends(get_store),
    providers: ProviderDirectory = Depends(get_provider_directory),
):
    decision = Decision.parse(data.decision)
    request_id = await requests.request_id_for_negotiation(negotiation_id)

    rates = None
    if decision is Decision.ACCEPT:
        current = await requests.get(request_id)
        require_party(current, user_id)
        rates = await providers.rates(current.provider_id, request_id=_request_id(request))

    service_request, _ = await requests.mutate(
        request_id,
        lambda r, events: respond(r, negotiation_id, user_id, decision, rates=rates, events=events),
    )
    return request_response(service_request)


@router.post("/negotiations/{negotiation_id}/counter-proposal", response_model=ServiceRequestResponse)
async def counter_proposal(
    negotiation_id: str,
    data: ProposeNegotiation,
    user_id: str = Depends(get_current_user),
    requests: RequestStore = Depends(get_store),
):
    request_id = await requests.request_id_for_negotiation(negotiation_id)
    service_request, _ = await requests.mutate(
        request_id,
        lambda r, events: counter_propose(r, negotiation_id, user_id, data.to_terms(), data.message, events=events),
    )
    return request_response(service_request)


# ================= PAYMENT =================

@router.post("/requests/{request_id}/payment-method", response_model=ServiceRequestResponse)
async def choose_payment_method(
    request_id: str,
    data: SelectPaymentMethod,
    user_id: str = Depends(get_current_user),
    requests: RequestStore = Depends(get_store),
):
    service_request, _ = await requests.mutate(
        request_id,
        lambda r, events: select_payment_method(r, user_id, data.payment_method, events=events),
    )
    return request_response(service_request)


@router.post("/requests/{request_id}/complete-payment", response_model=ServiceRequestResponse)
async def finish_payment(
    request_id: str,
    user_id: str = Depends(get_current_user),
    requests: RequestStore = Depends(get_store),
):
    service_request, _ = await requests.mutate(
        request_id,
        lambda r, events: complete_payment(r, user_id, events=events),
    )
    return request_response(service_request)


# ================= COMPLETION =================

@router.put("/requests/{request_id}/daily-sessions/{day}", response_model=ServiceRequestResponse)
async def update_daily_session(
    request_id: str,
    day: int,
    data: UpdateDailySession,
    user_id: str = Depends(get_current_user),
    requests: RequestStore = Depends(get_store),
):
    reschedule = data.scheduled_date is not None or data.scheduled_time is not None
    completed = data.completed
    if completed is None and not reschedule:
        completed = True

    def action(r, events):
        if reschedule:
            reschedule_day(r, day, user_id, data.scheduled_date, data.scheduled_time, events=events)
        if completed is not None:
            confirm_day(r, day, user_id, completed=completed, events=events, fee_rate=PLATFORM_FEE_RATE)

    service_request, _ = await requests.mutate(request_id, action)
    return request_response(service_request)


@router.post("/requests/{request_id}/complete", response_model=ServiceRequestResponse)
async def mark_complete(
    request_id: str,
    user_id: str = Depends(get_current_user),
    requests: RequestStore = Depends(get_store),
):
    service_request, _ = await requests.mutate(
        request_id,
        lambda r, events: confirm_completion(r, user_id, events=events, fee_rate=PLATFORM_FEE_RATE),
    )
    return request_response(service_request)


# ================= REVIEWS =================

@router.get("/requests/{request_id}/review-eligibility", response_model=ReviewEligibilityResponse)
async def review_eligibility(
    request_id: str,
    user_id: str = Depends(get_current_user),
    requests: RequestStore = Depends(get_store),
):
    service_request = await requests.get(request_id)
    existing = await requests.reviews_for_request(request_id)
    return ReviewEligibilityResponse(
        request_id=request_id,
        reviewer_id=user_id,
        can_review=can_review(service_request, user_id, existing),
    )


@router.post("/reviews", response_model=ReviewResponse)
async def submit_review(
    data: CreateReview,
    user_id: str = Depends(get_current_user),
    requests: RequestStore = Depends(get_store),
):
    review = await requests.add_review(
        data.request_id,
        lambda r, existing: build_review(r, user_id, data.reviewee_id, data.rating, data.comment, existing),
    )
    return review_response(review)


@router.get("/reviews/user/{user_id}/received", response_model=List[ReviewResponse])
async def reviews_received(user_id: str, requests: RequestStore = Depends(get_store)):
    return [review_response(r) for r in await requests.reviews_received(user_id)]


@router.get("/reviews/user/{user_id}/sent", response_model=List[ReviewResponse])
async def reviews_sent(user_id: str, requests: RequestStore = Depends(get_store)):
    return [review_response(r) for r in await requests.reviews_sent(user_id)]
