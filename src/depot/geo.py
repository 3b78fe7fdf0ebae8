"""Best-effort IP geolocation for download logging.

Lookups run after the response has been sent and carry a hard timeout. Any
failure (timeout, HTTP error, unexpected body) yields None: a missing location
only makes a log line less informative.
"""

import ipaddress
import logging
from typing import Optional

import httpx


logger = logging.getLogger(__name__)


class GeoLocator:
    """Looks up the location of a client IP address."""

    def __init__(self, url_template: str, timeout: float = 2.0) -> None:
        """Initialize the locator.

        Args:
            url_template: Lookup URL with an ``{ip}`` placeholder, expected to
                          return a JSON object
            timeout: Hard limit for the whole request, in seconds
        """
        self.url_template = url_template
        self.timeout = timeout
        self._client: Optional[httpx.Client] = None

    @property
    def client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                timeout=self.timeout,
                headers={"User-Agent": "Depot-Update-Server"},
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> "GeoLocator":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    @staticmethod
    def is_public(ip: Optional[str]) -> bool:
        """Only public addresses are worth looking up."""
        if not ip:
            return False
        try:
            address = ipaddress.ip_address(ip)
        except ValueError:
            return False
        return address.is_global

    def lookup(self, ip: Optional[str]) -> Optional[dict]:
        """Return the lookup service's JSON object for ``ip``, or None."""
        if not self.is_public(ip):
            return None
        url = self.url_template.format(ip=ip)
        try:
            response = self.client.get(url)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException:
            logger.debug("Geolocation lookup for %s timed out", ip)
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("Geolocation lookup for %s failed: %s", ip, e)
            return None
        return data if isinstance(data, dict) else None

    def describe(self, ip: Optional[str]) -> Optional[str]:
        """Short "city, country" label for log lines."""
        data = self.lookup(ip)
        if not data:
            return None
        parts = [
            data.get("city"),
            data.get("regionName") or data.get("region"),
            data.get("country") or data.get("country_name"),
        ]
        label = ", ".join(str(p) for p in parts if p)
        return label or None
