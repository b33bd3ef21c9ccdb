"""
MoneyFusion API client with retry logic and error classification.

Implements:
- Configurable timeout and TLS verification
- Bounded retry with fixed or exponential backoff on transient failures
- Payment creation retried only when the connection was never made
- No retry on definitive 4xx rejections or malformed payloads
"""
import time
from typing import Any, Dict, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from fusion_payments.config import Settings
from fusion_payments.core.exceptions import GatewayError, NetworkError
from fusion_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

CREATE_PATH = "/create-payment"
CHECK_PATH = "/check-payment"

# Failures raised before the request reached the gateway.
CONNECT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)


def _is_connect_failure(error: BaseException) -> bool:
    return isinstance(error, NetworkError) and isinstance(error.original_error, CONNECT_ERRORS)


class MoneyFusionClient:
    """
    Thin async adapter over the MoneyFusion HTTP API.

    ``create`` and ``check`` return the decoded JSON body. ``check`` retries
    transport failures and 5xx answers. ``create`` is not idempotent and only
    retries connection failures. Whatever is still failing afterwards surfaces
    as GatewayError.
    """

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the gateway client.

        Args:
            settings: Application settings
            http_client: Optional preconfigured httpx client (tests inject a
                MockTransport-backed client here)
        """
        self.settings = settings
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=settings.gateway_timeout_seconds,
            verify=settings.gateway_verify_tls,
        )

        metrics.set_gateway_tls_mode(settings.gateway_verify_tls)
        if not settings.gateway_verify_tls:
            logger.warning(
                "gateway_tls_verification_disabled",
                api_url=settings.moneyfusion_api_url,
                app_env=settings.app_env,
            )

        logger.info(
            "gateway_client_initialized",
            api_url=settings.moneyfusion_api_url,
            timeout_seconds=settings.gateway_timeout_seconds,
            tls_mode="verified" if settings.gateway_verify_tls else "insecure",
            max_attempts=settings.gateway_attempts,
        )

    def check_url(self, token: str) -> str:
        """Status endpoint for a token."""
        if self.settings.moneyfusion_check_url:
            return f"{self.settings.moneyfusion_check_url.rstrip('/')}/{token}"
        api_url = self.settings.moneyfusion_api_url
        if CREATE_PATH in api_url:
            return api_url.replace(CREATE_PATH, f"{CHECK_PATH}/{token}")
        return f"{api_url.rstrip('/')}{CHECK_PATH}/{token}"

    def _wait_strategy(self) -> Any:
        delay = self.settings.gateway_retry_delay_seconds
        if self.settings.gateway_retry_backoff == "exponential":
            return wait_exponential(multiplier=delay, min=delay, max=max(delay * 16, delay))
        return wait_fixed(delay)

    async def _send(
        self, method: str, url: str, operation: str, payload: Optional[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """Single attempt. Raises NetworkError for anything worth retrying."""
        start_time = time.time()
        try:
            response = await self._client.request(method, url, json=payload)
        except httpx.TimeoutException as e:
            metrics.record_gateway_call(operation, "timeout", time.time() - start_time)
            raise NetworkError(f"Gateway {operation} timed out", original_error=e)
        except httpx.TransportError as e:
            metrics.record_gateway_call(operation, "network_error", time.time() - start_time)
            raise NetworkError(f"Gateway {operation} transport error: {e}", original_error=e)

        metrics.record_gateway_call(
            operation, str(response.status_code), time.time() - start_time
        )

        if response.status_code >= 500:
            raise NetworkError(f"Gateway {operation} returned HTTP {response.status_code}")

        if response.status_code >= 400:
            metrics.record_gateway_error(operation, "rejected")
            logger.error(
                "gateway_request_rejected",
                operation=operation,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise GatewayError(
                f"Gateway {operation} rejected with HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            metrics.record_gateway_error(operation, "malformed")
            raise GatewayError(
                f"Gateway {operation} returned invalid JSON",
                status_code=response.status_code,
                original_error=e,
            )
        if not isinstance(body, dict):
            metrics.record_gateway_error(operation, "malformed")
            raise GatewayError(
                f"Gateway {operation} returned a non-object body",
                status_code=response.status_code,
            )
        return body

    async def _request(
        self,
        method: str,
        url: str,
        operation: str,
        payload: Optional[Dict[str, Any]] = None,
        idempotent: bool = True,
    ) -> Dict[str, Any]:
        attempts = self.settings.gateway_attempts
        retry = retry_if_exception_type(NetworkError)
        if not idempotent:
            retry = retry_if_exception(_is_connect_failure)
        try:
            async for attempt in AsyncRetrying(
                retry=retry,
                stop=stop_after_attempt(attempts),
                wait=self._wait_strategy(),
                reraise=True,
            ):
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    if attempt_number > 1:
                        logger.warning(
                            "gateway_request_retry",
                            operation=operation,
                            attempt=attempt_number,
                            max_attempts=attempts,
                        )
                    return await self._send(method, url, operation, payload)
        except NetworkError as e:
            metrics.record_gateway_error(operation, "transient")
            logger.error(
                "gateway_request_failed",
                operation=operation,
                attempts=attempts,
                error=str(e),
            )
            raise GatewayError(str(e), transient=True, original_error=e)
        raise GatewayError(f"Gateway {operation} made no attempt")  # pragma: no cover

    async def create(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a payment on the gateway.

        Args:
            payload: create-payment request body

        Returns:
            Dict[str, Any]: Decoded gateway response

        Raises:
            GatewayError: If the call fails or the body is not JSON
        """
        logger.info(
            "gateway_create_payment",
            total_price=payload.get("totalPrice"),
            articles=len(payload.get("article") or []),
        )
        return await self._request(
            "POST", self.settings.moneyfusion_api_url, "create", payload, idempotent=False
        )

    async def check(self, token: str) -> Dict[str, Any]:
        """
        Fetch the gateway's view of a payment.

        Raises:
            GatewayError: If the call fails or the body is not JSON
        """
        logger.info("gateway_check_payment", token=token)
        return await self._request("GET", self.check_url(token), "check")

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()
