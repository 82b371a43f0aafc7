"""Geocoding module for resolving postal addresses to coordinates.

Talks to a Nominatim-compatible search endpoint over HTTP. The client is
synchronous; callers on the event loop go through AddressGeocoder, which
runs lookups in a worker thread and memoizes the result per address.
"""
import logging
from typing import Optional, Tuple
import requests

logger = logging.getLogger(__name__)

Coordinates = Tuple[float, float]


class GeocodingError(Exception):
    """Base exception for geocoding errors"""
    pass


class GeocoderConnectionError(GeocodingError):
    """Raised when the geocoder cannot be reached or times out"""
    pass


class GeocoderResponseError(GeocodingError):
    """Raised when the geocoder returns something we cannot parse"""
    pass


class GeocoderClient:
    """HTTP client for a Nominatim-compatible geocoder"""

    def __init__(
        self,
        url: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout: Optional[int] = None
    ):
        """Initialize the client, falling back to settings.conf values"""
        from config import settings_conf

        self.url = url or settings_conf['geocoder_url']
        self.timeout = timeout or settings_conf['geocoder_timeout']

        self.session = requests.Session()
        self.session.headers['User-Agent'] = user_agent or settings_conf['geocoder_user_agent']
        self.session.headers['Accept'] = 'application/json'

    def geocode(self, query: str) -> Optional[Coordinates]:
        """Resolve a free-form address to (lat, lon).

        Args:
            query: Address text, e.g. "1 Main St, Springfield, IL 62701"

        Returns:
            (lat, lon) in degrees, or None if the geocoder found no match

        Raises:
            GeocoderConnectionError: Connection failed, timed out or returned an HTTP error
            GeocoderResponseError: Response body was not the expected shape
        """
        params = {'q': query, 'format': 'json', 'limit': 1}

        try:
            response = self.session.get(self.url, params=params, timeout=self.timeout)
            response.raise_for_status()
            results = response.json()

        except requests.exceptions.Timeout as e:
            raise GeocoderConnectionError(
                f"Request timed out after {self.timeout} seconds"
            ) from e
        except requests.exceptions.ConnectionError as e:
            raise GeocoderConnectionError(
                f"Failed to connect to geocoder at {self.url}"
            ) from e
        except requests.exceptions.HTTPError as e:
            raise GeocoderConnectionError(
                f"HTTP error occurred: {str(e)}"
            ) from e
        except requests.exceptions.RequestException as e:
            raise GeocoderConnectionError(
                f"Request failed: {str(e)}"
            ) from e
        except ValueError as e:
            raise GeocoderResponseError(
                f"Invalid response format: {str(e)}"
            ) from e

        if not isinstance(results, list):
            raise GeocoderResponseError("Expected a list of results")
        if not results:
            return None

        try:
            lat = float(results[0]['lat'])
            lon = float(results[0]['lon'])
        except (KeyError, TypeError, ValueError) as e:
            raise GeocoderResponseError(
                f"Invalid result format: {str(e)}"
            ) from e

        if not (-90 <= lat <= 90 and -180 <= lon <= 180):
            raise GeocoderResponseError(f"Coordinates out of range: {lat}, {lon}")

        return lat, lon


def format_address(address) -> str:
    """Build the geocoder query string for an address record"""
    street = ' '.join(
        part for part in (address['line_one'], address.get('line_two')) if part
    )
    return f"{street}, {address['city']}, {address['state']} {address['zip_code']}"


from .address import AddressGeocoder, GeocodeStatus  # noqa: E402

__all__ = [
    'GeocoderClient',
    'AddressGeocoder',
    'GeocodeStatus',
    'GeocodingError',
    'GeocoderConnectionError',
    'GeocoderResponseError',
    'format_address',
    'Coordinates'
]
