import os
from decimal import Decimal

SERVICE_NAME = "request-service"

DATABASE_URL = os.getenv("REQUEST_DB")
if not DATABASE_URL:
    raise RuntimeError("REQUEST_DB environment variable is not set")

SQL_ECHO = (os.getenv("SQL_ECHO") or "").lower() in ("1", "true", "yes")

JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM") or "HS256"

if not JWT_SECRET:
    raise RuntimeError("JWT_SECRET environment variable is not set")

RABBIT_URL = os.getenv("RABBIT_URL")  # optional in dev, required if you want events
REDIS_URL = os.getenv("REDIS_URL")  # only needed by the payment consumer

PROVIDER_SERVICE_URL = os.getenv("PROVIDER_SERVICE_URL")
USER_SERVICE_URL = os.getenv("USER_SERVICE_URL")

PLATFORM_FEE_RATE = Decimal(os.getenv("PLATFORM_FEE_RATE") or "0.05")
