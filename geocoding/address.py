"""Lazy, memoized geocoding of stored addresses."""
import asyncio
import logging
from enum import Enum
from typing import Dict, Optional, Union
from uuid import UUID

from database import get_pool
from . import GeocoderClient, GeocodingError, GeocoderConnectionError, Coordinates, format_address

logger = logging.getLogger(__name__)


class GeocodeStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"


class AddressGeocoder:
    """Ensures addresses have coordinates, geocoding each one at most once.

    Results are cached in-process by address id and persisted on the
    address row (geocode_status plus coordinates). A definite no-match is
    persisted as 'failed'. Transient errors are not persisted, so the next
    call tries again.
    """

    def __init__(self, pool=None, client: Optional[GeocoderClient] = None):
        self.pool = pool
        self.client = client
        self._cache: Dict[UUID, Optional[Coordinates]] = {}

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    def _get_client(self) -> GeocoderClient:
        if self.client is None:
            self.client = GeocoderClient()
        return self.client

    async def ensure_geocoded(self, address_id: Union[str, UUID]) -> bool:
        """Make sure an address has coordinates.

        Returns:
            True if coordinates are available now, False otherwise
        """
        return await self.coordinates(address_id) is not None

    async def coordinates(self, address_id: Union[str, UUID]) -> Optional[Coordinates]:
        """Get (lat, lon) for an address, geocoding it if still pending."""
        if address_id is None:
            return None
        address_id = UUID(str(address_id))

        if address_id in self._cache:
            return self._cache[address_id]

        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            address = await conn.fetchrow(
                '''
                SELECT id, line_one, line_two, city, state, zip_code,
                       geocoded_lat, geocoded_lon, geocode_status
                FROM addresses
                WHERE id = $1
                ''',
                address_id
            )

        if not address:
            return None

        status = GeocodeStatus(address['geocode_status'])

        if status == GeocodeStatus.RESOLVED:
            coords = (address['geocoded_lat'], address['geocoded_lon'])
            self._cache[address_id] = coords
            return coords

        if status == GeocodeStatus.FAILED:
            self._cache[address_id] = None
            return None

        query = format_address(address)
        try:
            coords = await asyncio.to_thread(self._get_client().geocode, query)
        except GeocoderConnectionError as e:
            logger.warning(f"Geocoder unavailable for address {address_id}: {e}")
            return None
        except GeocodingError as e:
            logger.error(f"Geocoding failed for address {address_id}: {e}")
            return None

        async with self.pool.acquire() as conn:
            if coords is None:
                logger.info(f"No geocoder match for address {address_id}")
                await conn.execute(
                    '''
                    UPDATE addresses
                    SET geocode_status = $2, geocoded_at = now()
                    WHERE id = $1
                    ''',
                    address_id,
                    GeocodeStatus.FAILED.value
                )
            else:
                await conn.execute(
                    '''
                    UPDATE addresses
                    SET geocoded_lat = $2, geocoded_lon = $3,
                        geocode_status = $4, geocoded_at = now()
                    WHERE id = $1
                    ''',
                    address_id,
                    coords[0],
                    coords[1],
                    GeocodeStatus.RESOLVED.value
                )

        self._cache[address_id] = coords
        return coords

    async def geocode_pending(self, address_ids) -> int:
        """Geocode every still-pending address in address_ids.

        Returns:
            Number of addresses that resolved
        """
        resolved = 0
        for address_id in address_ids:
            if await self.ensure_geocoded(address_id):
                resolved += 1
        return resolved

