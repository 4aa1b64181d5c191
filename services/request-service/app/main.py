from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import RABBIT_URL, REDIS_URL, SERVICE_NAME
from .consumer import start_consumer
from .errors import DomainError, ValidationError
from .middleware import RequestLoggingMiddleware
from .rabbitmq import publisher
from .routes import router, store

app = FastAPI(title="Service Request Service")
app.add_middleware(RequestLoggingMiddleware)
app.include_router(router)

_consumer_conn = None


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={
            "detail": ValidationError().detail,
            "code": ValidationError.code,
            "errors": jsonable_errors(exc),
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "events_enabled": publisher.enabled,
        "payment_consumer": _consumer_conn is not None,
    }


@app.on_event("startup")
async def startup():
    global _consumer_conn
    # Never crash service if RabbitMQ is temporarily unavailable
    try:
        await publisher.connect()
    except Exception as e:
        print(f"[{SERVICE_NAME}] RabbitMQ connect failed at startup; continuing without events: {e}")

    if RABBIT_URL and REDIS_URL:
        try:
            _consumer_conn = await start_consumer(RABBIT_URL, store)
        except Exception as e:
            _consumer_conn = None
            print(f"[{SERVICE_NAME}] payment consumer failed to start: {e}")


@app.on_event("shutdown")
async def shutdown():
    global _consumer_conn
    try:
        if _consumer_conn and not _consumer_conn.is_closed:
            await _consumer_conn.close()
    except Exception as e:
        print(f"[{SERVICE_NAME}] consumer close failed: {e}")
    _consumer_conn = None
    try:
        await publisher.close()
    except Exception as e:
        print(f"[{SERVICE_NAME}] publisher close failed: {e}")
