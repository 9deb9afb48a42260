"""Async HTTP client for an x402 payment facilitator (verify / settle)."""

from __future__ import annotations

from typing import Any

import httpx


# ---------------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------------


class FacilitatorError(Exception):
    """Base exception for facilitator operations."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FacilitatorAuthError(FacilitatorError):
    """401/403: authentication or authorization failure."""


class FacilitatorValidationError(FacilitatorError):
    """400/422: the facilitator rejected the request body."""


class FacilitatorServerError(FacilitatorError):
    """5xx: server-side error."""


class FacilitatorConnectionError(FacilitatorError):
    """Network/DNS failure."""


class FacilitatorTimeoutError(FacilitatorError):
    """Request timeout."""


_STATUS_MAP: dict[int, type[FacilitatorError]] = {
    400: FacilitatorValidationError,
    401: FacilitatorAuthError,
    403: FacilitatorAuthError,
    422: FacilitatorValidationError,
}


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class FacilitatorClient:
    """Async client for the facilitator's ``/supported``, ``/verify`` and ``/settle``.

    Takes its base URL and timeout explicitly. ``/settle`` is the only call
    that moves funds.
    """

    def __init__(self, base_url: str, timeout: float = 30.0) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"X402-Version": "1"},
            timeout=httpx.Timeout(connect=5.0, read=timeout, write=10.0, pool=5.0),
        )

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_data: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request and map errors to the facilitator exception hierarchy."""
        try:
            response = await self._client.request(method, endpoint, json=json_data)
        except httpx.ConnectError as exc:
            raise FacilitatorConnectionError(str(exc)) from exc
        except httpx.TimeoutException as exc:
            raise FacilitatorTimeoutError(str(exc)) from exc
        except httpx.HTTPError as exc:
            raise FacilitatorConnectionError(str(exc)) from exc

        if response.status_code >= 400:
            body = response.text
            exc_cls = _STATUS_MAP.get(response.status_code)
            if exc_cls is not None:
                raise exc_cls(body, status_code=response.status_code)
            if response.status_code >= 500:
                raise FacilitatorServerError(body, status_code=response.status_code)
            raise FacilitatorError(body, status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as exc:
            raise FacilitatorError(
                f"Non-JSON response from {endpoint}: {response.text[:200]}",
                status_code=response.status_code,
            ) from exc
        if not isinstance(body, dict):
            raise FacilitatorError(
                f"Unexpected response from {endpoint}: {body!r}",
                status_code=response.status_code,
            )
        return body

    # -- public API methods ---------------------------------------------------

    async def get_supported(self) -> dict[str, Any]:
        """GET /supported: payment kinds (scheme + network) the facilitator accepts."""
        return await self._request("GET", "/supported")

    async def verify(
        self,
        payment_header: str,
        payment_requirements: dict[str, Any],
    ) -> dict[str, Any]:
        """POST /verify: off-chain check of a signed payment header.

        Returns the raw body: ``{"isValid": bool, "invalidReason": str | None}``.
        """
        return await self._request(
            "POST", "/verify", json_data=build_request_body(payment_header, payment_requirements)
        )

    async def settle(
        self,
        payment_header: str,
        payment_requirements: dict[str, Any],
    ) -> dict[str, Any]:
        """POST /settle: submit the authorization on-chain.

        Returns the raw body; a successful settlement carries ``txHash``.
        """
        return await self._request(
            "POST", "/settle", json_data=build_request_body(payment_header, payment_requirements)
        )

    # -- lifecycle ------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> FacilitatorClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()


def build_request_body(
    payment_header: str, payment_requirements: dict[str, Any],
) -> dict[str, Any]:
    """Body shared by /verify and /settle."""
    return {
        "x402Version": 1,
        "paymentHeader": payment_header,
        "paymentRequirements": payment_requirements,
    }
