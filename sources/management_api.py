"""
Management API log source with client-credentials authentication and retry logic.

This module fetches tenant logs page by page with:
- Client-credentials token exchange, cached until shortly before expiry
- Exponential backoff retry logic for transient failures
- Rate limiting protection (Retry-After)
- Client-side log level / log type filtering
- Outdated page detection near the source's retention horizon
"""

import httpx
import asyncio
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Iterable, List, Optional
from datetime import datetime, timedelta, timezone
from core.exceptions import (
    AuthenticationError,
    FetchError,
    NetworkError,
    RateLimitError,
)
from processor.records import Page, Record
from sources.base import LogSource
import logging

logger = logging.getLogger(__name__)

# Severity per log type code: 0 debug, 1 info, 2 warning, 3 error, 4 critical
LOG_TYPE_LEVELS: Dict[str, int] = {
    "s": 1,         # Success login
    "ss": 1,        # Success signup
    "slo": 1,       # Success logout
    "sapi": 1,      # Success API operation
    "seacft": 1,    # Success exchange (authorization code)
    "seccft": 1,    # Success exchange (client credentials)
    "sce": 1,       # Success change email
    "scp": 1,       # Success change password
    "du": 1,        # Deleted user
    "w": 2,         # Warning during login
    "depnote": 2,   # Deprecation notice
    "api_limit": 2, # Rate limit on the API
    "f": 3,         # Failed login
    "fp": 3,        # Failed login (incorrect password)
    "fu": 3,        # Failed login (invalid email/username)
    "fs": 3,        # Failed signup
    "fapi": 3,      # Failed API operation
    "feacft": 3,    # Failed exchange (authorization code)
    "feccft": 3,    # Failed exchange (client credentials)
    "fcp": 3,       # Failed change password
    "limit_wc": 4,  # Blocked account
    "limit_mu": 4,  # Blocked IP address
    "pwd_leak": 4,  # Breached password
}
DEFAULT_LOG_TYPE_LEVEL = 1


class ManagementApiLogSource(LogSource):
    """
    Fetch tenant logs from a Management API ``/api/v2/logs`` endpoint.

    Attributes:
        max_retries: Maximum number of attempts per request (default: 3)
        retry_delay: Initial retry delay in seconds (default: 1.0)
        timeout: Request timeout in seconds (default: 30.0)
    """

    def __init__(
        self,
        domain: str,
        client_id: str,
        client_secret: str,
        log_level: Optional[int] = None,
        log_types: Optional[Iterable[str]] = None,
        outdated_after_hours: float = 48,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0
    ):
        self.domain = domain.replace("https://", "").rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.log_level = log_level
        self.log_types = set(log_types or [])
        self.outdated_after = timedelta(hours=outdated_after_hours)
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.name = self.domain

        self._access_token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None

    @classmethod
    def from_options(cls, options) -> "ManagementApiLogSource":
        return cls(
            domain=options.domain,
            client_id=options.client_id,
            client_secret=options.client_secret,
            log_level=options.log_level,
            log_types=options.log_types,
            outdated_after_hours=options.outdated_after_hours,
        )

    @property
    def base_url(self) -> str:
        return f"https://{self.domain}"

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _token_valid(self) -> bool:
        if self._access_token is None or self._token_expires_at is None:
            return False
        return datetime.now(timezone.utc) < self._token_expires_at

    async def _get_access_token(self, client: httpx.AsyncClient) -> str:
        """Exchange client credentials for an access token"""
        if self._token_valid():
            return self._access_token

        response = await self._make_request_with_retry(
            client,
            "POST",
            f"{self.base_url}/oauth/token",
            json={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "audience": f"{self.base_url}/api/v2/",
            }
        )

        try:
            data = response.json()
            token = data["access_token"]
        except Exception as e:
            raise AuthenticationError(
                "Token response did not contain an access token",
                context={"domain": self.domain, "response_body": response.text[:500]},
                original_exception=e
            )

        # Refresh a minute early so a page fetch never races the expiry
        expires_in = int(data.get("expires_in", 86400))
        self._access_token = token
        self._token_expires_at = datetime.now(timezone.utc) + timedelta(seconds=max(expires_in - 60, 0))
        logger.debug(f"Obtained access token for {self.domain} (expires in {expires_in}s)")
        return token

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def _make_request_with_retry(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        **kwargs: Any
    ) -> httpx.Response:
        """
        Make HTTP request with retry logic and exponential backoff.

        Raises:
            AuthenticationError: For 401/403 responses (not retried)
            RateLimitError: When still rate limited after max retries
            NetworkError: For server errors, timeouts and transport errors after max retries
            FetchError: For other unexpected HTTP errors
        """
        for attempt in range(self.max_retries):
            last_attempt = attempt == self.max_retries - 1
            delay = self.retry_delay * (2 ** attempt)

            try:
                logger.debug(f"{method} attempt {attempt + 1}/{self.max_retries} to {url}")
                response = await client.request(method, url, timeout=self.timeout, **kwargs)
            except httpx.TimeoutException as e:
                if last_attempt:
                    raise NetworkError(
                        f"Request timeout after {self.max_retries} retries",
                        context={"url": url, "timeout": self.timeout, "retry_count": attempt + 1},
                        original_exception=e
                    )
                logger.warning(f"Request timeout. Retrying in {delay} seconds")
                await asyncio.sleep(delay)
                continue
            except httpx.TransportError as e:
                if last_attempt:
                    raise NetworkError(
                        f"Network error after {self.max_retries} retries",
                        context={"url": url, "retry_count": attempt + 1},
                        original_exception=e
                    )
                logger.warning(f"Network error. Retrying in {delay} seconds")
                await asyncio.sleep(delay)
                continue

            if response.status_code in (401, 403):
                self._access_token = None
                raise AuthenticationError(
                    f"Authentication failed for {url}",
                    context={"status_code": response.status_code, "url": url}
                )

            if response.status_code == 429:
                retry_after = self.parse_retry_after(response.headers.get("Retry-After"), delay)
                if last_attempt:
                    raise RateLimitError(
                        f"Rate limit exceeded for {url}",
                        context={"status_code": 429, "url": url, "retry_count": attempt + 1},
                        retry_after=retry_after
                    )
                logger.warning(f"Rate limited. Retrying after {retry_after} seconds")
                await asyncio.sleep(retry_after)
                continue

            if response.status_code >= 500:
                if last_attempt:
                    raise NetworkError(
                        f"Server error after {self.max_retries} retries",
                        context={
                            "status_code": response.status_code,
                            "url": url,
                            "retry_count": attempt + 1,
                            "response_body": response.text[:500]
                        }
                    )
                logger.warning(
                    f"Server error {response.status_code}. "
                    f"Retrying in {delay} seconds (attempt {attempt + 1}/{self.max_retries})"
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code >= 400:
                raise FetchError(
                    f"Request failed with status {response.status_code}",
                    context={
                        "status_code": response.status_code,
                        "url": url,
                        "response_body": response.text[:500]
                    }
                )

            return response

        raise FetchError("Max retries exceeded", context={"url": url})

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    async def fetch_page(self, cursor: Optional[str], page_size: int) -> Page:
        """
        Fetch the logs following ``cursor``.

        Args:
            cursor: Log id of the last log already read
            page_size: Number of logs to request

        Returns:
            Page of the logs that pass the configured filters. The page keeps
            the position of the last log returned by the API even when that
            log was filtered out.

        Raises:
            FetchError: For API, authentication and network failures
        """
        params: Dict[str, Any] = {"take": page_size}
        if cursor:
            params["from"] = cursor

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            token = await self._get_access_token(client)
            response = await self._make_request_with_retry(
                client,
                "GET",
                f"{self.base_url}/api/v2/logs",
                headers={"Authorization": f"Bearer {token}"},
                params=params
            )

        try:
            data = response.json()
        except Exception as e:
            raise FetchError(
                "Failed to parse JSON response",
                context={"cursor": cursor, "page_size": page_size, "response_body": response.text[:500]},
                original_exception=e
            )

        if not isinstance(data, list):
            raise FetchError(
                "Unexpected logs response",
                context={"cursor": cursor, "response_type": type(data).__name__}
            )

        if not data:
            return Page()

        records = [Record.create(self.extract_position(log), log) for log in data]
        kept = [r for r in records if self._accepts(r.payload)]

        logger.debug(f"Fetched {len(records)} logs from {self.domain}, {len(kept)} kept after filters")

        return Page(
            records=kept,
            outdated=self._is_outdated(data),
            last_position=records[-1].position
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def parse_retry_after(value: Optional[str], default: float) -> float:
        """Seconds to wait from a Retry-After header given in seconds or as an HTTP date"""
        if value is None:
            return default
        try:
            return max(0.0, float(value))
        except ValueError:
            pass
        try:
            retry_at = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return default
        if retry_at is None:
            return default
        if retry_at.tzinfo is None:
            retry_at = retry_at.replace(tzinfo=timezone.utc)
        return max(0.0, (retry_at - datetime.now(timezone.utc)).total_seconds())

    @staticmethod
    def extract_position(log: Dict[str, Any]) -> str:
        position = log.get("log_id") or log.get("_id")
        if position is None:
            raise FetchError("Log entry without an id", context={"log": str(log)[:200]})
        return str(position)

    @staticmethod
    def extract_timestamp(log: Dict[str, Any]) -> Optional[datetime]:
        timestamp_str = log.get("date")
        if not timestamp_str:
            return None
        try:
            timestamp = datetime.fromisoformat(timestamp_str.replace("Z", "+00:00"))
        except (AttributeError, TypeError, ValueError):
            return None
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return timestamp

    def _accepts(self, log: Dict[str, Any]) -> bool:
        log_type = log.get("type")
        if self.log_types and log_type not in self.log_types:
            return False
        if self.log_level is not None:
            return LOG_TYPE_LEVELS.get(log_type, DEFAULT_LOG_TYPE_LEVEL) >= self.log_level
        return True

    def _is_outdated(self, logs: List[Dict[str, Any]]) -> bool:
        timestamps = [t for t in (self.extract_timestamp(log) for log in logs) if t]
        if not timestamps:
            return False
        return min(timestamps) < datetime.now(timezone.utc) - self.outdated_after
