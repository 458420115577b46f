from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from backoffice.api.routes_checkout import router as checkout_router
from backoffice.api.routes_orders import customer_orders_router, purchase_orders_router
from backoffice.api.routes_payments import router as payments_router
from backoffice.core.config import get_settings
from backoffice.core.errors import BackofficeError, FieldError, UnavailableError, ValidationFailed
from backoffice.core.logging import configure_logging
from backoffice.persistence.db import init_db

configure_logging()
logger = logging.getLogger(__name__)
settings = get_settings()

STATUS_BY_KIND = {
    "validation": 422,
    "domain": 400,
    "not_found": 404,
    "conflict": 409,
    "unavailable": 503,
}

RETRY_MESSAGE = "The service is temporarily unavailable. Please try again."

app = FastAPI(title=settings.app_name)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    logger.info("backoffice ready: env=%s", settings.env)


@app.exception_handler(BackofficeError)
async def backoffice_error_handler(_: Request, exc: BackofficeError):
    content = exc.to_dict()
    if exc.kind == "unavailable":
        content["detail"] = RETRY_MESSAGE
    return JSONResponse(status_code=STATUS_BY_KIND.get(exc.kind, 400), content=content)


@app.exception_handler(OperationalError)
async def database_unavailable_handler(request: Request, exc: OperationalError):
    logger.warning("database unavailable: %s", exc)
    return await backoffice_error_handler(request, UnavailableError())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(_: Request, exc: RequestValidationError):
    errors = [
        FieldError(".".join(str(part) for part in err.get("loc", ())[1:]) or "body", err.get("msg", "invalid"))
        for err in exc.errors()
    ]
    return JSONResponse(status_code=422, content=ValidationFailed(errors).to_dict())


@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


app.include_router(purchase_orders_router)
app.include_router(customer_orders_router)
app.include_router(payments_router)
app.include_router(checkout_router)
