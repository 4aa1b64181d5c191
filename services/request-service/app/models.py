import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    NEGOTIATING = "negotiating"
    PAYMENT_PENDING = "payment_pending"
    ACCEPTED = "accepted"
    PENDING_COMPLETION = "pending_completion"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class NegotiationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class PricingType(str, enum.Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    FIXED = "fixed"


class PaymentMethod(str, enum.Enum):
    BOLETO = "boleto"
    PIX = "pix"
    CREDIT_CARD = "credit_card"


class Party(str, enum.Enum):
    CLIENT = "client"
    PROVIDER = "provider"


def _str_enum(enum_cls, name: str):
    # stored as plain strings, loaded back as enum members
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


class ServiceRequest(Base):
    __tablename__ = "service_requests"

    id = Column(String, primary_key=True, default=new_id)

    client_id = Column(String, nullable=False, index=True)
    provider_id = Column(String, nullable=False, index=True)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)

    status = Column(_str_enum(RequestStatus, "request_status"), nullable=False, index=True)
    pricing_type = Column(_str_enum(PricingType, "pricing_type"), nullable=False)
    proposed_price = Column(Numeric(10, 2), nullable=True)
    proposed_hours = Column(Integer, nullable=True)
    proposed_days = Column(Integer, nullable=True)
    scheduled_date = Column(DateTime(timezone=True), nullable=True)

    # [{"day", "scheduled_date", "scheduled_time", "client_completed", "provider_completed"}]
    daily_sessions = Column(JSON, nullable=False, default=list)

    client_completed_at = Column(DateTime(timezone=True), nullable=True)
    provider_completed_at = Column(DateTime(timezone=True), nullable=True)

    payment_method = Column(_str_enum(PaymentMethod, "payment_method"), nullable=True)
    payment_completed_at = Column(DateTime(timezone=True), nullable=True)
    balance_added_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    version = Column(Integer, nullable=False)

    negotiations = relationship(
        "Negotiation",
        back_populates="request",
        order_by="Negotiation.sequence",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    def party_of(self, user_id: str | None) -> Party | None:
        if user_id is None:
            return None
        if user_id == self.client_id:
            return Party.CLIENT
        if user_id == self.provider_id:
            return Party.PROVIDER
        return None

    def counterparty_id(self, user_id: str) -> str | None:
        party = self.party_of(user_id)
        if party is Party.CLIENT:
            return self.provider_id
        if party is Party.PROVIDER:
            return self.client_id
        return None


class Negotiation(Base):
    __tablename__ = "negotiations"
    __table_args__ = (
        UniqueConstraint("request_id", "sequence", name="uq_negotiations_request_sequence"),
    )

    id = Column(String, primary_key=True, default=new_id)
    request_id = Column(String, ForeignKey("service_requests.id"), nullable=False, index=True)

    # position in the request's ledger, assigned in created_at order
    sequence = Column(Integer, nullable=False)

    proposer_id = Column(String, nullable=False)
    pricing_type = Column(_str_enum(PricingType, "pricing_type"), nullable=False)
    proposed_price = Column(Numeric(10, 2), nullable=True)
    proposed_hours = Column(Integer, nullable=True)
    proposed_days = Column(Integer, nullable=True)
    proposed_date = Column(DateTime(timezone=True), nullable=True)
    message = Column(Text, nullable=False)

    status = Column(_str_enum(NegotiationStatus, "negotiation_status"), nullable=False)
    responded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    request = relationship("ServiceRequest", back_populates="negotiations")


class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("request_id", "reviewer_id", name="uq_reviews_request_reviewer"),
    )

    id = Column(String, primary_key=True, default=new_id)
    request_id = Column(String, ForeignKey("service_requests.id"), nullable=False, index=True)
    reviewer_id = Column(String, nullable=False, index=True)
    reviewee_id = Column(String, nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
