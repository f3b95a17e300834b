"""
Base API client providing common functionality for the external service clients.
Includes async HTTP session handling, transport retries, and the shared error taxonomy.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
import aiohttp
import backoff

logger = logging.getLogger(__name__)

class APIError(Exception):
    """Base exception for API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.headers = {str(key).lower(): value for key, value in (headers or {}).items()}
        self.body = body

class RateLimitError(APIError):
    """Exception raised when rate limit is exceeded (HTTP 429)."""

    def __init__(self, message: str = "Rate limit exceeded", headers: Optional[Dict[str, str]] = None, body: Any = None):
        super().__init__(message, status_code=429, headers=headers, body=body)

class AuthenticationError(APIError):
    """Exception raised when authentication fails."""

    def __init__(self, message: str = "Authentication failed", status_code: Optional[int] = 401, **kwargs):
        super().__init__(message, status_code=status_code, **kwargs)

class MissingTokenError(AuthenticationError):
    """Raised when no access token is available at all."""

    def __init__(self, message: str = "Spotify authentication required."):
        super().__init__(message, status_code=None)

class LLMResponseError(APIError):
    """Raised when the language model returns unusable output."""
    pass

def _stringify_body(body: Any) -> str:
    if not body:
        return "undefined"
    if isinstance(body, str):
        return body
    try:
        return json.dumps(body, indent=2)
    except (TypeError, ValueError):
        return str(body)

def format_catalog_error(error: BaseException) -> str:
    """Render an API error for logs."""
    status_code = getattr(error, "status_code", None)
    body = getattr(error, "body", None)
    details = "Unknown"
    reason = "Unknown"
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        details = body["error"].get("message") or "Unknown"
        reason = body["error"].get("reason") or "Unknown"

    lines = [
        "Spotify API Error:",
        f"  Status: {status_code}",
        f"  Message: {error}",
        f"  Details: {details}",
        f"  Reason: {reason}",
        f"  Raw Body: {_stringify_body(body)}",
    ]
    headers = getattr(error, "headers", None)
    if headers:
        lines.append(f"  Headers: {_stringify_body(headers)}")
    return "\n".join(lines)

class BaseAPIClient(ABC):
    """Base class for the external API clients."""

    def __init__(self, base_url: str, timeout: int = 30, session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = session
        self._owns_session = session is None

    async def __aenter__(self):
        """Async context manager entry."""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def _ensure_session(self):
        """Ensure HTTP session is created."""
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            self.session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    def use_session(self, session: aiohttp.ClientSession):
        """Borrow a session owned by someone else; ``close`` leaves it open."""
        self.session = session
        self._owns_session = False

    async def close(self):
        """Close the HTTP session."""
        if self._owns_session and self.session and not self.session.closed:
            await self.session.close()

    @abstractmethod
    def _get_auth_headers(self) -> Dict[str, str]:
        """Get authentication headers."""
        pass

    def _get_auth_params(self) -> Dict[str, str]:
        """Get authentication query parameters. Override in subclasses."""
        return {}

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """Make HTTP request, retrying transport failures and mapping HTTP errors."""
        await self._ensure_session()

        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        request_headers = self._get_auth_headers()
        if headers:
            request_headers.update(headers)

        request_params = dict(self._get_auth_params())
        if params:
            request_params.update(params)

        try:
            return await self._send(method, url, request_params, data, request_headers)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"HTTP request failed: {method} {url} - {e}")
            raise APIError(f"Request failed: {e}") from e

    @backoff.on_exception(
        backoff.expo,
        (aiohttp.ClientError, asyncio.TimeoutError),
        max_tries=3,
        max_time=60
    )
    async def _send(
        self,
        method: str,
        url: str,
        params: Dict[str, Any],
        data: Optional[Any],
        headers: Dict[str, str]
    ) -> Dict[str, Any]:
        async with self.session.request(
            method, url, params=params or None, json=data, headers=headers
        ) as response:
            body = await self._read_body(response)

            if response.status == 429:
                logger.warning(f"Rate limited on {method} {url}")
                raise RateLimitError(
                    f"Rate limit exceeded for {url}",
                    headers=dict(response.headers),
                    body=body
                )

            if response.status == 401:
                raise AuthenticationError(
                    "Authentication failed",
                    headers=dict(response.headers),
                    body=body
                )

            if response.status >= 400:
                raise APIError(
                    f"{method} {url} failed with status {response.status}",
                    status_code=response.status,
                    headers=dict(response.headers),
                    body=body
                )

            return body if body is not None else {}

    @staticmethod
    async def _read_body(response: aiohttp.ClientResponse) -> Any:
        text = await response.text()
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            return text
