"""HTTP client shared by the Atlassian REST clients.

Handles:
- Credential resolution (configuration, environment, keyring, .env)
- HTTP Basic auth with username + API token
- Retries with exponential backoff for timeouts and 5xx responses
- Rate limiting (429) with Retry-After support
- Mapping HTTP failures onto the confluence_connect exception hierarchy
"""

import logging
import time
from typing import Any

import requests
from requests.auth import HTTPBasicAuth

from confluence_connect.atlassian.credentials import (
    DEFAULT_SERVICE,
    ConfluenceCredentials,
    get_credentials,
)
from confluence_connect.core.exceptions import (
    AuthenticationError,
    ConnectorConnectionError,
    NotFoundError,
    ProviderError,
    RateLimitError,
)
from confluence_connect.core.models import ConnectionInfo

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30  # seconds
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_FACTOR = 2.0
DEFAULT_RETRY_STATUSES = (429, 500, 502, 503, 504)


class _RetryableStatus(Exception):
    """Internal signal: the response may succeed on a later attempt."""

    def __init__(self, response: requests.Response, delay: float) -> None:
        super().__init__(response.status_code)
        self.response = response
        self.delay = delay


class AtlassianClient:
    """Base HTTP client for Atlassian REST APIs.

    Attributes:
        base_url: Site URL all request paths are appended to
        timeout: Request timeout in seconds
        max_retries: Maximum number of retry attempts
        backoff_factor: Multiplier for exponential backoff
    """

    provider_name = "atlassian"

    def __init__(
        self,
        host: str | None = None,
        username: str | None = None,
        api_token: str | None = None,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        service: str | None = None,
    ) -> None:
        """Initialize the client.

        No request is made here; credentials are only resolved.

        Args:
            host: Site URL (e.g., https://company.atlassian.net)
            username: Account username or email
            api_token: API token
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts for failed requests
            backoff_factor: Exponential backoff multiplier
            service: Keyring service name for credential lookup

        Raises:
            ValueError: If credentials cannot be resolved
        """
        creds = get_credentials(
            ConnectionInfo(host=host, username=username, api_token=api_token),
            service=service or DEFAULT_SERVICE,
        )
        self._credentials: ConfluenceCredentials = creds
        self.base_url = creds.host
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor

        self._session = requests.Session()
        self._session.auth = HTTPBasicAuth(creds.username, creds.api_token)
        self._session.headers.update(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )

        logger.debug(
            "Initialized %s client for %s (user: %s)",
            self.provider_name,
            self.base_url,
            creds.username,
        )

    @property
    def credentials(self) -> ConfluenceCredentials:
        """Resolved credentials this client authenticates with."""
        return self._credentials

    def __enter__(self) -> "AtlassianClient":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit - close session."""
        self.close()

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()
        logger.debug("Closed %s client session", self.provider_name)

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | list[Any] | None = None,
        data: Any = None,
        headers: dict[str, str] | None = None,
        retry_statuses: tuple[int, ...] = DEFAULT_RETRY_STATUSES,
    ) -> requests.Response:
        """Make an HTTP request with retry logic.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, etc.)
            path: API path (appended to base_url)
            params: Query parameters
            json: JSON body
            data: Raw body data
            headers: Additional headers
            retry_statuses: HTTP status codes that trigger retry

        Returns:
            Response object

        Raises:
            AuthenticationError: If authentication fails (401/403)
            NotFoundError: If resource not found (404)
            RateLimitError: If rate limit exceeded and retries exhausted
            ConnectorConnectionError: If the host cannot be reached
            ProviderError: For other HTTP errors
        """
        url = f"{self.base_url}{path}"
        attempts = self.max_retries + 1
        last_exception: Exception | None = None

        for attempt in range(attempts):
            logger.debug("%s %s (attempt %d/%d)", method, url, attempt + 1, attempts)
            try:
                response = self._session.request(
                    method=method,
                    url=url,
                    params=params,
                    json=json,
                    data=data,
                    headers=headers,
                    timeout=self.timeout,
                )
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                last_exception = e
                if attempt < self.max_retries:
                    wait_time = self._calculate_backoff(attempt)
                    logger.warning(
                        "%s. Waiting %.1f seconds before retry.",
                        "Request timed out"
                        if isinstance(e, requests.exceptions.Timeout)
                        else "Connection error",
                        wait_time,
                    )
                    time.sleep(wait_time)
                continue

            logger.debug(
                "%s %s -> %d (%d bytes)",
                method,
                path,
                response.status_code,
                len(response.content),
            )

            try:
                self._check_response(response, url, path, attempt, retry_statuses)
            except _RetryableStatus as retry:
                logger.warning(
                    "Status %d from %s. Waiting %.1f seconds before retry.",
                    retry.response.status_code,
                    path,
                    retry.delay,
                )
                time.sleep(retry.delay)
                continue
            return response

        if isinstance(last_exception, requests.exceptions.Timeout):
            raise ConnectorConnectionError(
                f"Request timed out after {attempts} attempts",
                provider=self.provider_name,
                details={"url": url, "timeout": self.timeout},
            ) from last_exception

        raise ConnectorConnectionError(
            f"Connection failed after {attempts} attempts",
            provider=self.provider_name,
            details={"url": url},
        ) from last_exception

    def _check_response(
        self,
        response: requests.Response,
        url: str,
        path: str,
        attempt: int,
        retry_statuses: tuple[int, ...],
    ) -> None:
        """Raise the matching error for a failed response.

        Raises _RetryableStatus when another attempt is allowed.
        """
        status = response.status_code
        retries_left = attempt < self.max_retries

        if status == 401:
            raise AuthenticationError(
                "Authentication failed. Check your credentials.",
                provider=self.provider_name,
                details={"status_code": 401},
            )
        if status == 403:
            raise AuthenticationError(
                "Access forbidden. Check your permissions.",
                provider=self.provider_name,
                details={"status_code": 403, "url": url},
            )
        if status == 404:
            raise NotFoundError(
                f"Resource not found: {path}",
                provider=self.provider_name,
                details={"status_code": 404, "url": url},
            )
        if status == 429:
            retry_after = self._get_retry_after(response, attempt)
            if retries_left:
                raise _RetryableStatus(response, retry_after)
            raise RateLimitError(
                "Rate limit exceeded. Try again later.",
                retry_after=retry_after,
                provider=self.provider_name,
                details={"status_code": 429},
            )
        if status in retry_statuses and retries_left:
            raise _RetryableStatus(response, self._calculate_backoff(attempt))
        if status >= 400:
            raise ProviderError(
                f"Request failed: {status}",
                status_code=status,
                provider=self.provider_name,
                details={"url": url, "response": self._safe_json(response)},
            )

    def _get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Make a GET request and return the JSON body."""
        response = self._request("GET", path, params=params, **kwargs)
        return dict(response.json())

    def _post(
        self,
        path: str,
        json: dict[str, Any] | list[Any] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Make a POST request and return the JSON body ({} for 204)."""
        response = self._request("POST", path, json=json, **kwargs)
        if response.status_code == 204:
            return {}
        return dict(response.json())

    def _put(self, path: str, json: dict[str, Any] | None = None, **kwargs: Any) -> dict[str, Any]:
        """Make a PUT request and return the JSON body ({} for 204)."""
        response = self._request("PUT", path, json=json, **kwargs)
        if response.status_code == 204:
            return {}
        return dict(response.json())

    def _delete(self, path: str, **kwargs: Any) -> dict[str, Any] | None:
        """Make a DELETE request; None for 204 responses."""
        response = self._request("DELETE", path, **kwargs)
        if response.status_code == 204:
            return None
        return dict(response.json())

    def _calculate_backoff(self, attempt: int) -> float:
        """Calculate exponential backoff delay for a 0-indexed attempt."""
        return self.backoff_factor**attempt

    def _get_retry_after(self, response: requests.Response, attempt: int) -> int:
        """Get retry delay from the Retry-After header or fall back to backoff."""
        retry_after = response.headers.get("Retry-After")
        if retry_after:
            try:
                return int(retry_after)
            except ValueError:
                pass
        return int(self._calculate_backoff(attempt))

    def _safe_json(self, response: requests.Response) -> dict[str, Any] | str:
        try:
            return dict(response.json())
        except (ValueError, TypeError):
            return response.text
