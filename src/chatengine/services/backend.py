"""HTTP client for the order and appointment backend."""

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0  # seconds


class BackendError(Exception):
    """Exception raised when a backend call fails."""

    def __init__(self, message: str, status_code: int | None = None, is_retryable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.is_retryable = is_retryable


class BackendClient:
    """Async JSON client for the backend API.

    Every submission carries an ``Idempotency-Key`` header so a retried
    request updates the record created by the first attempt.
    """

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        api_key: str | None = None,
    ):
        """Initialize the backend client.

        Args:
            base_url: Backend API root, e.g. "https://api.example.com".
            http_client: Optional shared HTTP client. If not provided,
                a new client is created and closed with ``close``.
            timeout: Request timeout in seconds.
            api_key: Optional bearer token.
        """
        self._base_url = base_url.rstrip("/")
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None
        self._timeout = timeout
        self._api_key = api_key

    async def post(
        self, path: str, payload: dict[str, Any], idempotency_key: str | None = None
    ) -> dict[str, Any]:
        """POST a JSON payload.

        Raises:
            BackendError: On transport failure or a non-2xx response.
        """
        headers = self._headers()
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return await self._request("POST", path, json=payload, headers=headers)

    async def get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """GET a JSON resource.

        Raises:
            BackendError: On transport failure or a non-2xx response.
        """
        return await self._request("GET", path, params=params, headers=self._headers())

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self._base_url}/{path.lstrip('/')}"
        logger.debug("Backend request %s %s", method, url)
        try:
            response = await self._http_client.request(method, url, timeout=self._timeout, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("Backend request timed out: %s", e)
            raise BackendError(f"Request timed out: {e}", is_retryable=True) from e
        except httpx.RequestError as e:
            logger.error("Backend request failed: %s", e)
            raise BackendError(f"Request failed: {e}", is_retryable=True) from e

        if response.status_code >= 400:
            logger.error(
                "Backend returned error: status=%d, body=%s",
                response.status_code,
                response.text[:200],
            )
            raise BackendError(
                f"Backend returned HTTP {response.status_code}",
                status_code=response.status_code,
                is_retryable=response.status_code == 429 or response.status_code >= 500,
            )

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as e:
            raise BackendError(f"Invalid JSON from backend: {e}") from e
        return body if isinstance(body, dict) else {"data": body}
