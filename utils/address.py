"""Public address lookup"""
from typing import Optional
import httpx
from errors import AddressResolutionError
from logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_IP_CHECK_URL = "http://checkip.amazonaws.com"


class AddressResolver:
    """Resolve the public address of this host through an address reflection endpoint"""

    def __init__(self, url: str = DEFAULT_IP_CHECK_URL, timeout: float = 5.0,
                 client: Optional[httpx.Client] = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    def resolve(self) -> str:
        """Return the trimmed response body of a single GET request.

        Raises AddressResolutionError when the request fails, the endpoint
        answers with a non-2xx status, or the body is blank.
        """
        try:
            if self._client is not None:
                response = self._client.get(self.url, timeout=self.timeout)
            else:
                response = httpx.get(self.url, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise AddressResolutionError(f"Address lookup against {self.url} failed: {e}") from e

        address = response.text.strip()
        if not address:
            raise AddressResolutionError(f"Address lookup against {self.url} returned an empty body")

        logger.debug("Resolved public address", address=address, event_type="address_resolved")
        return address
