"""Outbound HTTP relay to the upstream music-library service"""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from ..core.errors import TransportError, UpstreamError

logger = logging.getLogger(__name__)

# Returned for 2xx responses that carry no usable JSON body
SUCCESS_SENTINEL: Dict[str, Any] = {"success": True}


class UpstreamRelay:
    """
    Relay calls to the upstream service and normalize its responses.

    Behavior:
    1. Endpoints are normalized to start with "/" and joined to the base URL
    2. GET requests never carry a body; every other method sends JSON
    3. A 404 with a fallback endpoint triggers exactly one retry against the
       fallback, with the same method and body
    4. Non-2xx responses raise UpstreamError(status, message)
    5. Network failures raise TransportError and are not retried
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the relay.

        Args:
            client: Shared async HTTP client
            base_url: Upstream base URL (e.g., http://localhost:5000)
            timeout: Per-request timeout in seconds, None for no timeout
        """
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def build_url(self, endpoint: str) -> str:
        if not endpoint.startswith("/"):
            endpoint = f"/{endpoint}"
        return f"{self.base_url}{endpoint}"

    async def call(
        self,
        endpoint: str,
        data: Optional[Any] = None,
        method: str = "POST",
        fallback_endpoint: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Call an upstream endpoint and return its normalized JSON result.

        Args:
            endpoint: Upstream path, with or without leading "/"
            data: Request body for non-GET methods
            method: HTTP method
            fallback_endpoint: Endpoint to retry once on a 404
            headers: Extra headers to send upstream

        Returns:
            Parsed JSON body, or SUCCESS_SENTINEL for non-JSON 2xx responses

        Raises:
            UpstreamError: If the upstream answers with a non-2xx status
            TransportError: If the upstream cannot be reached
        """
        method = method.upper()
        response = await self._send(endpoint, data, method, headers)

        if response.status_code == 404 and fallback_endpoint:
            logger.info(
                f"Upstream {method} {endpoint} -> 404, retrying fallback {fallback_endpoint}"
            )
            response = await self._send(fallback_endpoint, data, method, headers)

        if not response.is_success:
            message = self._extract_error(response)
            logger.warning(
                f"Upstream {method} {response.request.url.path} failed "
                f"with {response.status_code}: {message}"
            )
            # Redirects and other non-error statuses are not valid error responses
            status_code = response.status_code if response.status_code >= 400 else 502
            raise UpstreamError(status_code, message)

        return self._parse_success(response)

    async def _send(
        self,
        endpoint: str,
        data: Optional[Any],
        method: str,
        headers: Optional[Dict[str, str]],
    ) -> httpx.Response:
        url = self.build_url(endpoint)
        request_headers = {"Content-Type": "application/json"}
        if headers:
            request_headers.update(headers)

        content = None
        if method != "GET":
            content = json.dumps(data if data is not None else {})

        try:
            response = await self.client.request(
                method,
                url,
                headers=request_headers,
                content=content,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            logger.error(f"Upstream timeout for {method} {url}")
            raise TransportError(f"Upstream service timed out: {e}") from e
        except httpx.RequestError as e:
            logger.error(f"Upstream request error for {method} {url}: {str(e)}")
            raise TransportError(f"Failed to connect to upstream service: {e}") from e

        logger.info(f"Relayed {method} {endpoint} -> {response.status_code}")
        return response

    def _extract_error(self, response: httpx.Response) -> str:
        """Pull a descriptive message out of an upstream error response."""
        text = response.text
        try:
            body = json.loads(text)
        except ValueError:
            body = None

        if isinstance(body, dict):
            message = body.get("error") or body.get("message")
            if message:
                return str(message)

        if text:
            return text
        return response.reason_phrase or f"HTTP {response.status_code}"

    def _parse_success(self, response: httpx.Response) -> Any:
        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            return dict(SUCCESS_SENTINEL)

        try:
            return response.json()
        except ValueError as e:
            logger.warning(
                f"Upstream {response.request.url.path} returned invalid JSON: {e}"
            )
            return dict(SUCCESS_SENTINEL)
