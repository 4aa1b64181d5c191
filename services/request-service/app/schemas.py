from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from .derivation import (
    awaiting_completion_confirmation,
    awaiting_response_from,
    effective_negotiation_status,
    effective_request_status,
)
from .models import NegotiationStatus, PaymentMethod, PricingType, RequestStatus
from .pricing import Terms


# ---- Inputs ----

class CreateServiceRequest(BaseModel):
    provider_id: str
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    pricing_type: PricingType
    proposed_price: Optional[Decimal] = Field(default=None, gt=0)
    proposed_hours: Optional[int] = Field(default=None, ge=1)
    proposed_days: Optional[int] = Field(default=None, ge=1)
    scheduled_date: Optional[datetime] = None

    def to_terms(self) -> Terms:
        return Terms(
            pricing_type=self.pricing_type,
            proposed_price=self.proposed_price,
            proposed_hours=self.proposed_hours,
            proposed_days=self.proposed_days,
            proposed_date=self.scheduled_date,
        )


class ProposeNegotiation(BaseModel):
    pricing_type: PricingType
    proposed_price: Optional[Decimal] = Field(default=None, gt=0)
    proposed_hours: Optional[int] = Field(default=None, ge=1)
    proposed_days: Optional[int] = Field(default=None, ge=1)
    proposed_date: Optional[datetime] = None
    message: str = Field(min_length=1)

    def to_terms(self) -> Terms:
        return Terms(
            pricing_type=self.pricing_type,
            proposed_price=self.proposed_price,
            proposed_hours=self.proposed_hours,
            proposed_days=self.proposed_days,
            proposed_date=self.proposed_date,
        )


class RespondNegotiation(BaseModel):
    decision: str


class UpdateStatus(BaseModel):
    status: str


class SelectPaymentMethod(BaseModel):
    payment_method: PaymentMethod


class UpdateDailySession(BaseModel):
    completed: Optional[bool] = None
    scheduled_date: Optional[datetime] = None
    scheduled_time: Optional[str] = None


class CreateReview(BaseModel):
    request_id: str
    reviewee_id: str
    rating: int = Field(ge=1, le=5)
    comment: str = Field(min_length=10)


# ---- Outputs ----

class NegotiationResponse(BaseModel):
    id: str
    request_id: str
    sequence: int
    proposer_id: str
    pricing_type: PricingType
    proposed_price: Optional[Decimal] = None
    proposed_hours: Optional[int] = None
    proposed_days: Optional[int] = None
    proposed_date: Optional[datetime] = None
    message: str
    status: NegotiationStatus
    effective_status: NegotiationStatus
    responded_at: Optional[datetime] = None
    created_at: datetime


class DailySessionResponse(BaseModel):
    day: int
    scheduled_date: datetime
    scheduled_time: str
    client_completed: bool
    provider_completed: bool


class ServiceRequestResponse(BaseModel):
    id: str
    client_id: str
    provider_id: str
    client_name: Optional[str] = None
    provider_name: Optional[str] = None
    title: str
    description: str
    status: RequestStatus
    effective_status: RequestStatus
    awaiting_completion_confirmation: bool
    awaiting_response_from: Optional[str] = None
    pricing_type: PricingType
    proposed_price: Optional[Decimal] = None
    proposed_hours: Optional[int] = None
    proposed_days: Optional[int] = None
    scheduled_date: Optional[datetime] = None
    daily_sessions: List[DailySessionResponse] = Field(default_factory=list)
    client_completed_at: Optional[datetime] = None
    provider_completed_at: Optional[datetime] = None
    payment_method: Optional[PaymentMethod] = None
    payment_completed_at: Optional[datetime] = None
    balance_added_at: Optional[datetime] = None
    negotiations: List[NegotiationResponse] = Field(default_factory=list)
    version: int
    created_at: datetime
    updated_at: datetime


class ReviewResponse(BaseModel):
    id: str
    request_id: str
    reviewer_id: str
    reviewee_id: str
    rating: int
    comment: str
    created_at: datetime


class ReviewEligibilityResponse(BaseModel):
    request_id: str
    reviewer_id: str
    can_review: bool


def negotiation_response(request, negotiation) -> NegotiationResponse:
    return NegotiationResponse(
        id=negotiation.id,
        request_id=negotiation.request_id,
        sequence=negotiation.sequence,
        proposer_id=negotiation.proposer_id,
        pricing_type=negotiation.pricing_type,
        proposed_price=negotiation.proposed_price,
        proposed_hours=negotiation.proposed_hours,
        proposed_days=negotiation.proposed_days,
        proposed_date=negotiation.proposed_date,
        message=negotiation.message,
        status=negotiation.status,
        effective_status=effective_negotiation_status(request, negotiation),
        responded_at=negotiation.responded_at,
        created_at=negotiation.created_at,
    )


def request_response(request, names: dict | None = None) -> ServiceRequestResponse:
    names = names or {}
    return ServiceRequestResponse(
        id=request.id,
        client_id=request.client_id,
        provider_id=request.provider_id,
        client_name=names.get(request.client_id),
        provider_name=names.get(request.provider_id),
        title=request.title,
        description=request.description,
        status=request.status,
        effective_status=effective_request_status(request),
        awaiting_completion_confirmation=awaiting_completion_confirmation(request),
        awaiting_response_from=awaiting_response_from(request),
        pricing_type=request.pricing_type,
        proposed_price=request.proposed_price,
        proposed_hours=request.proposed_hours,
        proposed_days=request.proposed_days,
        scheduled_date=request.scheduled_date,
        daily_sessions=[DailySessionResponse(**s) for s in (request.daily_sessions or [])],
        client_completed_at=request.client_completed_at,
        provider_completed_at=request.provider_completed_at,
        payment_method=request.payment_method,
        payment_completed_at=request.payment_completed_at,
        balance_added_at=request.balance_added_at,
        negotiations=[negotiation_response(request, n) for n in request.negotiations],
        version=request.version,
        created_at=request.created_at,
        updated_at=request.updated_at,
    )


def review_response(review) -> ReviewResponse:
    return ReviewResponse(
        id=review.id,
        request_id=review.request_id,
        reviewer_id=review.reviewer_id,
        reviewee_id=review.reviewee_id,
        rating=review.rating,
        comment=review.comment,
        created_at=review.created_at,
    )
