"""
API routes for MoneyFusion payments.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from fusion_payments.core.exceptions import (
    ConcurrentUpdateError,
    GatewayError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from fusion_payments.core.payloads import PaymentRequest, normalize_line_items
from fusion_payments.services import PaymentServices

from .schemas import (
    CancelPaymentRequest,
    HealthCheckResponse,
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    PaymentStatusResponse,
    WebhookResponse,
)

logger = structlog.get_logger(__name__)

API_PREFIX = "/api/moneyfusion"

payment_router = APIRouter(prefix=f"{API_PREFIX}/payments", tags=["payments"])
webhook_router = APIRouter(prefix=API_PREFIX, tags=["webhooks"])
monitoring_router = APIRouter(tags=["monitoring"])


def get_services(request: Request) -> PaymentServices:
    """Service graph attached to the application."""
    return request.app.state.services


@payment_router.post(
    "/initiate",
    response_model=InitiatePaymentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Initiate a payment",
    description="Create a payment on MoneyFusion and return the payment URL",
)
async def initiate_payment(
    request: InitiatePaymentRequest,
    services: PaymentServices = Depends(get_services),
) -> Dict[str, Any]:
    logger.info(
        "api_initiate_payment_request",
        amount=str(request.amount),
        user_id=request.user_id,
        order_id=request.order_id,
    )

    try:
        payment_request = PaymentRequest(
            amount=request.amount,
            line_items=normalize_line_items(request.line_items),
            customer_name=request.customer_name,
            customer_phone=request.customer_phone,
            user_id=request.user_id,
            order_id=request.order_id,
            return_url=request.return_url,
            webhook_url=request.webhook_url,
            metadata=request.metadata,
        )
        result = await services.engine.create_payment(payment_request)

    except ValidationError as e:
        logger.warning("api_initiate_payment_validation_error", error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    except GatewayError as e:
        logger.error("api_initiate_payment_gateway_error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Payment creation failed: {str(e)}",
        )

    logger.info("api_initiate_payment_success", token=result["token"])
    return {
        "success": True,
        "token": result["token"],
        "payment_url": result["payment_url"],
        "message": result.get("message") or "Payment created",
    }


@payment_router.get(
    "/{token}/status",
    response_model=PaymentStatusResponse,
    summary="Get payment status",
    description="Refresh a payment from MoneyFusion, falling back to the local record",
)
async def get_payment_status(
    token: str,
    services: PaymentServices = Depends(get_services),
) -> Dict[str, Any]:
    try:
        return await services.engine.check_status(token)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@payment_router.post(
    "/{token}/cancel",
    response_model=PaymentStatusResponse,
    summary="Cancel a payment",
    description="Cancel a payment that is still pending",
)
async def cancel_payment(
    token: str,
    request: Optional[CancelPaymentRequest] = None,
    services: PaymentServices = Depends(get_services),
) -> Dict[str, Any]:
    actor = request.actor if request else None
    try:
        return await services.engine.cancel(token, actor=actor)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidStateError as e:
        logger.warning("api_cancel_payment_invalid_state", token=token, error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ConcurrentUpdateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@payment_router.get(
    "",
    response_model=List[PaymentStatusResponse],
    summary="List payments",
    description="List a user's payments from the local store, newest first",
)
async def list_payments(
    user_id: str = Query(..., description="User identifier"),
    state: Optional[str] = Query(default=None, description="Filter by state"),
    limit: int = Query(default=50, ge=1, le=500),
    services: PaymentServices = Depends(get_services),
) -> List[Dict[str, Any]]:
    return await services.engine.list_payments(user_id, state=state, limit=limit)


def _webhook_response(status_code: int, status_text: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "status": status_text,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


@webhook_router.post(
    "/webhook",
    response_model=WebhookResponse,
    summary="MoneyFusion webhook endpoint",
    description="Receive payment notifications from MoneyFusion (unsigned)",
)
async def moneyfusion_webhook(
    request: Request,
    services: PaymentServices = Depends(get_services),
) -> JSONResponse:
    try:
        body = await request.json()
    except ValueError:
        logger.warning("api_webhook_invalid_json")
        return _webhook_response(status.HTTP_400_BAD_REQUEST, "error", "Invalid JSON body")

    try:
        result = await services.webhook_ingress.ingest(body)
    except ValidationError as e:
        return _webhook_response(status.HTTP_400_BAD_REQUEST, "error", str(e))
    except NotFoundError as e:
        return _webhook_response(status.HTTP_404_NOT_FOUND, "error", str(e))
    except ConcurrentUpdateError as e:
        return _webhook_response(status.HTTP_409_CONFLICT, "error", str(e))

    return _webhook_response(status.HTTP_200_OK, result["status"], result["message"])


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check overall system health",
)
async def health(services: PaymentServices = Depends(get_services)) -> Dict[str, Any]:
    return await services.health.check_all()


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness probe",
    description="Kubernetes liveness probe endpoint",
)
async def liveness(services: PaymentServices = Depends(get_services)) -> Dict[str, Any]:
    return await services.health.liveness()


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness probe",
    description="Kubernetes readiness probe endpoint",
)
async def readiness(services: PaymentServices = Depends(get_services)) -> Dict[str, Any]:
    result = await services.health.readiness()
    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
