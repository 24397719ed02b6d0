"""FastAPI entry point for instruction processing."""
from __future__ import annotations

import os

from common.logging import configure_logging

configure_logging(os.getenv("LOG_FORMAT", "json"), service_name="fx_booking")

import logging
from typing import Optional

import pydantic
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from pydantic import BaseModel, Field

from .exceptions import (BookingError, BusinessError, DataAccessError,
                         MappingError, TransformationError, ValidationError)
from .models import InstructionRequest
from .publisher import KafkaTradePublisher
from .repository import SqlDataSource, SqlStagingSink
from .service import InstructionProcessingService

_LOG = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Dependency injection helpers
# ---------------------------------------------------------------------------


def get_service() -> InstructionProcessingService:  # pragma: no cover - wiring
    return InstructionProcessingService(
        SqlDataSource(), SqlStagingSink(), KafkaTradePublisher()
    )


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------


class ProcessResponse(BaseModel):
    status: str = "SUCCESS"
    trades: int
    staging_records: int = Field(serialization_alias="stagingRecords")


# ---------------------------------------------------------------------------
# Router definition
# ---------------------------------------------------------------------------

router = APIRouter(tags=["instructions"])


@router.get("/process-instruction", response_model=ProcessResponse, response_model_by_alias=True)
def process_instruction(
    business_date: str = Query(..., alias="businessDate"),
    instruction_event: str = Query(..., alias="instructionEvent"),
    currency: str = Query(..., min_length=3),
    hedge_method: Optional[str] = Query(None, alias="hedgeMethod"),
    hedge_instrument_type: Optional[str] = Query(None, alias="hedgeInstrumentType"),
    external_trade_ids: Optional[str] = Query(None, alias="externalTradeIds"),
    service: InstructionProcessingService = Depends(get_service),
):
    try:
        request = InstructionRequest(
            business_date=business_date,
            instruction_event=instruction_event,
            currency=currency,
            hedge_method=hedge_method,
            hedge_instrument_type=hedge_instrument_type,
            external_trade_ids=external_trade_ids or [],
        )
    except (pydantic.ValidationError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"invalid_request: {exc}") from exc
    result = service.process_instruction(request)
    return ProcessResponse(trades=len(result.trades), staging_records=len(result.staging_records))


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

_STATUS_BY_ERROR = (
    (ValidationError, 400, "VALIDATION_ERROR"),
    (BusinessError, 400, "BUSINESS_ERROR"),
    (TransformationError, 422, "TRANSFORMATION_ERROR"),
    (MappingError, 500, "MAPPING_ERROR"),
    (DataAccessError, 503, "DATA_ACCESS_ERROR"),
)


def _error_body(code: str, exc: Exception) -> dict:
    body = {"error": code, "message": str(exc)}
    if isinstance(exc, BookingError):
        body.update({k: v for k, v in exc.context().items() if v is not None})
    return body


async def _booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    for error_type, status_code, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            _LOG.warning("%s on %s: %s", code, request.url.path, exc)
            return JSONResponse(status_code=status_code, content=_error_body(code, exc))
    return await _unexpected_error_handler(request, exc)


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    _LOG.exception("unhandled error on %s", request.url.path)
    return JSONResponse(status_code=500, content=_error_body("INTERNAL_ERROR", exc))


# ---------------------------------------------------------------------------
# ASGI app factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    app = FastAPI(title="FX Booking Instruction Service")
    app.include_router(router)
    app.add_exception_handler(BookingError, _booking_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unexpected_error_handler)
    app.mount("/metrics", make_asgi_app())

    @app.get("/healthz", tags=["health"])
    async def healthz():
        return {"ok": True}

    @app.on_event("startup")
    def _startup_init_db() -> None:  # pragma: no cover
        from .db import init_db

        init_db()

    return app
