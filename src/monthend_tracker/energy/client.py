"""HTTP client for the device usage API.

GET {base_url}/usage/{address} returns {"usage": {"month_energy": <number>}}.
Basic credentials travel in a forwarding header, not Authorization.
"""

from __future__ import annotations

import base64
import logging
import math

import httpx

from monthend_tracker.config.schema import EnergyApiConfig
from monthend_tracker.errors import FetchError

logger = logging.getLogger(__name__)


def basic_credentials(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
    return f"Basic {token}"


class UsageApiClient:
    """Reads cumulative month-to-date energy per device address.

    Uses an httpx async client limited to a single connection.
    """

    def __init__(self, config: EnergyApiConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout_seconds),
            limits=httpx.Limits(max_connections=1),
        )
        self._owns_client = client is None
        self._base_url = config.base_url.rstrip("/")
        self._headers = {
            "Content-Type": "application/json",
            config.auth_header: basic_credentials(config.username, config.password),
        }

    async def read_month_energy(self, address: str) -> float:
        """Return the device's cumulative month energy."""
        try:
            resp = await self._client.get(
                f"{self._base_url}/usage/{address}", headers=self._headers,
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as e:
            raise FetchError(address, f"request failed: {e}") from e
        except ValueError as e:
            raise FetchError(address, "response is not valid JSON") from e

        value = self._parse_month_energy(address, data)
        logger.debug("Energy reading for %s: %.3f", address, value)
        return value

    @staticmethod
    def _parse_month_energy(address: str, data: object) -> float:
        usage = data.get("usage") if isinstance(data, dict) else None
        if not isinstance(usage, dict) or "month_energy" not in usage:
            raise FetchError(address, "response has no usage.month_energy")
        raw = usage["month_energy"]
        # bool is an int subclass but never a meaningful reading
        if isinstance(raw, bool):
            raise FetchError(address, f"month_energy is not numeric: {raw!r}")
        try:
            value = float(raw)
        except (TypeError, ValueError) as e:
            raise FetchError(address, f"month_energy is not numeric: {raw!r}") from e
        if not math.isfinite(value):
            raise FetchError(address, f"month_energy is not finite: {raw!r}")
        return value

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client:
            await self._client.aclose()
