from decimal import Decimal, InvalidOperation

import httpx

from .config import PROVIDER_SERVICE_URL, SERVICE_NAME, USER_SERVICE_URL
from .errors import ValidationError
from .pricing import ProviderRates

HTTP_TIMEOUT = 2.0


def _headers(request_id: str | None) -> dict:
    return {"X-Request-Id": request_id} if request_id else {}


def _decimal(value) -> Decimal | None:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class ProviderDirectory:
    """
    Provider pricing defaults (id -> minimum rates).

    Best effort: when the directory is not configured or unreachable the
    caller gets None and skips minimum-price checks.
    """

    def __init__(self, base_url: str | None, timeout: float = HTTP_TIMEOUT):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout

    async def rates(self, provider_id: str, request_id: str | None = None) -> ProviderRates | None:
        if not self.base_url:
            return None

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.get(f"{self.base_url}/providers/{provider_id}", headers=_headers(request_id))
        except httpx.HTTPError as e:
            print(f"[{SERVICE_NAME}] provider directory unreachable: {e}")
            return None

        if r.status_code == 404:
            raise ValidationError("Provider not found")
        if r.status_code != 200:
            return None

        try:
            data = r.json()
        except ValueError:
            return None
        return ProviderRates(
            min_hourly_rate=_decimal(data.get("min_hourly_rate")),
            min_daily_rate=_decimal(data.get("min_daily_rate")),
            min_fixed_rate=_decimal(data.get("min_fixed_rate")),
        )


class UserDirectory:
    """Display names for request parties (id -> name), None when unknown."""

    def __init__(self, base_url: str | None, timeout: float = HTTP_TIMEOUT):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout

    async def display_name(self, user_id: str, request_id: str | None = None) -> str | None:
        if not self.base_url:
            return None
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.get(f"{self.base_url}/users/{user_id}", headers=_headers(request_id))
                if r.status_code != 200:
                    return None
                data = r.json()
        except (httpx.HTTPError, ValueError):
            return None
        return data.get("full_name") or data.get("name") or data.get("email")


provider_directory = ProviderDirectory(PROVIDER_SERVICE_URL)
user_directory = UserDirectory(USER_SERVICE_URL)
