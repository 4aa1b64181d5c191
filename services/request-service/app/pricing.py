from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from .errors import ValidationError
from .models import PricingType, utcnow


@dataclass(frozen=True)
class Terms:
    """Price and schedule proposed for an engagement."""
    pricing_type: PricingType
    proposed_price: Decimal | None = None
    proposed_hours: int | None = None
    proposed_days: int | None = None
    proposed_date: datetime | None = None


@dataclass(frozen=True)
class ProviderRates:
    """Minimum rates a provider accepts, from the provider directory."""
    min_hourly_rate: Decimal | None = None
    min_daily_rate: Decimal | None = None
    min_fixed_rate: Decimal | None = None

    def rate_for(self, pricing_type: PricingType) -> Decimal | None:
        if pricing_type == PricingType.HOURLY:
            return self.min_hourly_rate
        if pricing_type == PricingType.DAILY:
            return self.min_daily_rate
        return self.min_fixed_rate


def as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def ensure_future(dt: datetime | None, field: str):
    if dt is None:
        return
    if as_utc(dt) <= utcnow():
        raise ValidationError(f"{field} must be in the future")


def units_for(pricing_type: PricingType, hours: int | None, days: int | None) -> int | None:
    if pricing_type == PricingType.HOURLY:
        return hours
    if pricing_type == PricingType.DAILY:
        return days
    return None


def validate_terms(terms: Terms):
    """
    Schema-level checks shared by request creation and proposals.

    Hours belong to hourly pricing and days to daily pricing; a fixed price
    carries neither.
    """
    pricing_type = PricingType(terms.pricing_type)

    if terms.proposed_price is not None and terms.proposed_price <= 0:
        raise ValidationError("proposed_price must be greater than zero")

    for field, value in (("proposed_hours", terms.proposed_hours), ("proposed_days", terms.proposed_days)):
        if value is not None and value < 1:
            raise ValidationError(f"{field} must be at least 1")

    if terms.proposed_hours is not None and pricing_type != PricingType.HOURLY:
        raise ValidationError("proposed_hours is only valid for hourly pricing")
    if terms.proposed_days is not None and pricing_type != PricingType.DAILY:
        raise ValidationError("proposed_days is only valid for daily pricing")

    ensure_future(terms.proposed_date, "proposed_date")


def minimum_price(rates: ProviderRates | None, pricing_type: PricingType, units: int | None) -> Decimal | None:
    if rates is None:
        return None
    rate = rates.rate_for(PricingType(pricing_type))
    if rate is None:
        return None
    if pricing_type != PricingType.FIXED and units:
        return rate * units
    return rate


def calculated_price(rates: ProviderRates | None, pricing_type: PricingType, units: int | None) -> Decimal | None:
    """Rate times units for hourly and daily pricing; the fixed minimum otherwise."""
    if rates is None:
        return None
    rate = rates.rate_for(PricingType(pricing_type))
    if rate is None:
        return None
    if pricing_type == PricingType.FIXED:
        return rate
    if not units:
        return None
    return rate * units


def check_minimum(rates: ProviderRates | None, terms: Terms):
    units = units_for(PricingType(terms.pricing_type), terms.proposed_hours, terms.proposed_days)
    floor = minimum_price(rates, terms.pricing_type, units)
    if floor is not None and terms.proposed_price is not None and terms.proposed_price < floor:
        raise ValidationError(
            f"proposed_price ({terms.proposed_price:.2f}) must be at least the provider minimum of {floor:.2f}"
        )
