"""HTTP client for the remote record-management service."""

import logging
import re
from typing import Any

import httpx

from lossdash.config import get_settings
from lossdash.errors import AuthenticationError, TransportError

logger = logging.getLogger(__name__)
settings = get_settings()

_TOKEN_PREFIX = re.compile(r"^(Bearer|Token)\s+", re.IGNORECASE)


def unwrap_collection(payload: Any) -> list[dict[str, Any]]:
    """Return the rows of a collection that is a bare array or a {count, results} envelope."""
    if isinstance(payload, list):
        rows = payload
    elif isinstance(payload, dict) and isinstance(payload.get("results"), list):
        rows = payload["results"]
    else:
        raise TransportError(f"Unexpected collection payload: {type(payload).__name__}")
    return [row for row in rows if isinstance(row, dict)]


class RecordServiceClient:
    """
    Client for the record-management REST API.

    Features:
    - Bearer token forwarded from the caller's session
    - One request per call, no retries (callers decide what to re-request)
    - Accepts bare-array and paginated-envelope collection responses
    """

    def __init__(
        self,
        token: str | None,
        base_url: str = settings.record_service_url,
        timeout: float = settings.request_timeout_seconds,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = _TOKEN_PREFIX.sub("", token).strip() if token else None
        self.timeout = timeout
        self._transport = transport

        # Build headers
        self.headers: dict[str, str] = {
            "Accept": "application/json",
        }
        if self.token:
            self.headers["Authorization"] = f"Bearer {self.token}"

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _request(
        self,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make a single GET request and decode the JSON body."""
        if not self.token:
            raise AuthenticationError("No bearer token available for the record service")

        url = self._url(path)
        query = {**(params or {}), "format": "json"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url, headers=self.headers, params=query)
                response.raise_for_status()
                return response.json()

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning(f"Record service returned {status} for {url}")
            raise TransportError(f"HTTP error {status} from {url}", status_code=status, url=url) from e

        except httpx.RequestError as e:
            logger.warning(f"Request error talking to {url}: {e}")
            raise TransportError(f"Request error: {e}", url=url) from e

        except ValueError as e:
            # Body was not JSON
            raise TransportError(f"Invalid JSON from {url}", url=url) from e

    async def fetch_incidents(self, params: dict[str, Any]) -> dict[str, Any]:
        """
        Fetch one page of the incidents collection.

        Args:
            params: page, page_size, ordering and filter parameters

        Returns:
            The raw {count, next, previous, results} envelope
        """
        payload = await self._request(settings.incidents_path, params)
        if not isinstance(payload, dict) or not isinstance(payload.get("results"), list):
            raise TransportError(
                "Incidents response is not a paginated envelope",
                url=self._url(settings.incidents_path),
            )
        return payload

    async def fetch_collection(
        self,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Fetch a reference collection.

        Returns:
            The collection rows, whichever response shape the service used
        """
        payload = await self._request(path, params)
        rows = unwrap_collection(payload)
        logger.info(f"Fetched {len(rows)} rows from {path}")
        return rows
