"""Listings module for managing rental listings.

This module provides functionality for:
- Creating and managing listings for owned tools
- Pausing and resuming listings
- Searching listings by text and distance
- Searching and creating tool makers and categories
"""

import logging
import uuid
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Union, Any

from database import get_pool
from geocoding import AddressGeocoder
from tools import ToolNotFoundError, ToolPermissionError, TOOL_SELECT, tool_from_row
from . import search as listing_search
from .lookup import LookupKind, search_lookup, create_lookup, build_prefix_query
from .search import build_text_query, distance_km

logger = logging.getLogger(__name__)


class BillingInterval(str, Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class ListingError(Exception):
    """Base exception for listing operations."""
    pass


class ListingNotFoundError(ListingError):
    """Raised when a listing is not found."""
    pass


class ListingPermissionError(ListingError):
    """Raised when someone other than the tool's owner modifies a listing."""
    pass


class ListingActiveError(ListingError):
    """Raised when deleting a listing that is still active."""
    pass


class InvalidPriceError(ListingError):
    """Raised when price or billing terms are invalid."""
    pass


def validate_terms(
    price: Decimal,
    billing_interval: Union[str, BillingInterval],
    max_billing_intervals: Optional[int]
) -> BillingInterval:
    """Check price and billing terms.

    Raises:
        InvalidPriceError: If the price or intervals are not positive or the interval is unknown
    """
    try:
        price = Decimal(str(price))
    except (TypeError, ValueError, ArithmeticError) as e:
        raise InvalidPriceError(f"Invalid price format: {e}")
    if price <= 0:
        raise InvalidPriceError("Price must be positive")
    if max_billing_intervals is not None and max_billing_intervals < 1:
        raise InvalidPriceError("max_billing_intervals must be at least 1")
    try:
        return BillingInterval(billing_interval)
    except ValueError:
        raise InvalidPriceError(f"Unknown billing interval: {billing_interval}")


def listing_from_row(row) -> Dict[str, Any]:
    return {
        'id': row['id'],
        'price': row['price'],
        'billing_interval': row['billing_interval'],
        'max_billing_intervals': row['max_billing_intervals'],
        'tool_id': row['tool_id'],
        'active': row['active'],
        'created_at': row['created_at'],
        'updated_at': row['updated_at']
    }


class ListingManager:
    """Manager class for handling listing operations."""

    def __init__(self, pool=None, geocoder: Optional[AddressGeocoder] = None):
        """Initialize the listing manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
            geocoder: Optional geocoding capability shared across requests
        """
        self.pool = pool
        self.geocoder = geocoder

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()
        if self.geocoder is None:
            self.geocoder = AddressGeocoder(self.pool)

    async def _get_owned(self, conn, listing_id: uuid.UUID, user_id: uuid.UUID):
        """Fetch a listing row, checking it exists and its tool belongs to user_id."""
        row = await conn.fetchrow(
            '''
            SELECT l.*, t.owner_id
            FROM listings l
            JOIN tools t ON t.id = l.tool_id
            WHERE l.id = $1
            ''',
            listing_id
        )
        if not row:
            raise ListingNotFoundError(f"Listing {listing_id} not found")
        if row['owner_id'] != user_id:
            raise ListingPermissionError("not your listing!")
        return row

    async def create_listing(
        self,
        user_id: Union[str, uuid.UUID],
        tool_id: Union[str, uuid.UUID],
        price: Decimal,
        billing_interval: Union[str, BillingInterval],
        max_billing_intervals: Optional[int] = None
    ) -> Dict[str, Any]:
        """Create a new active listing for a tool.

        Args:
            user_id: The user creating the listing, must own the tool
            tool_id: Tool being offered
            price: Price per billing interval
            billing_interval: hour, day, week or month
            max_billing_intervals: Optional cap on rental length in intervals

        Returns:
            Dict containing the created listing

        Raises:
            ToolNotFoundError: If the tool doesn't exist
            ToolPermissionError: If user_id doesn't own the tool
            InvalidPriceError: If the terms are invalid
        """
        await self.ensure_pool()

        interval = validate_terms(price, billing_interval, max_billing_intervals)
        tool_id = uuid.UUID(str(tool_id))

        async with self.pool.acquire() as conn:
            owner_id = await conn.fetchval('SELECT owner_id FROM tools WHERE id = $1', tool_id)
            if owner_id is None:
                raise ToolNotFoundError(f"Tool {tool_id} not found")
            if owner_id != uuid.UUID(str(user_id)):
                raise ToolPermissionError("You are not authorized to list this tool.")

            row = await conn.fetchrow(
                '''
                INSERT INTO listings (
                    price, billing_interval, max_billing_intervals, tool_id, active
                ) VALUES ($1, $2, $3, $4, true)
                RETURNING *
                ''',
                Decimal(str(price)),
                interval.value,
                max_billing_intervals,
                tool_id
            )

        logger.info(f"Created listing {row['id']} for tool {tool_id}")
        return listing_from_row(row)

    async def get_listing(
        self,
        listing_id: Union[str, uuid.UUID],
        active_only: bool = False
    ) -> Dict[str, Any]:
        """Get a listing by ID with its tool.

        Args:
            listing_id: The listing UUID
            active_only: Treat inactive listings as missing

        Returns:
            Dict containing listing details and the tool with category, maker and manual

        Raises:
            ListingNotFoundError: If listing doesn't exist
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            listing = await conn.fetchrow(
                'SELECT * FROM listings WHERE id = $1' + (' AND active' if active_only else ''),
                uuid.UUID(str(listing_id))
            )
            if not listing:
                raise ListingNotFoundError(f"Listing {listing_id} not found")

            tool = await conn.fetchrow(TOOL_SELECT + ' WHERE t.id = $1', listing['tool_id'])

        result = listing_from_row(listing)
        result['tool'] = tool_from_row(tool) if tool else None
        return result

    async def get_listing_details(self, listing_id: Union[str, uuid.UUID]) -> Dict[str, Any]:
        """Public view of an active listing."""
        return await self.get_listing(listing_id, active_only=True)

    async def get_tool_listings(self, tool_id: Union[str, uuid.UUID]) -> List[Dict[str, Any]]:
        """All listings of a tool, active or not."""
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                'SELECT * FROM listings WHERE tool_id = $1 ORDER BY created_at DESC',
                uuid.UUID(str(tool_id))
            )
        return [listing_from_row(row) for row in rows]

    async def get_user_listings(self, owner_id: Union[str, uuid.UUID]) -> List[Dict[str, Any]]:
        """Active listings of a user's tools, with the tool."""
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT l.*
                FROM listings l
                JOIN tools t ON t.id = l.tool_id
                WHERE l.active AND t.owner_id = $1
                ORDER BY l.created_at DESC
                ''',
                uuid.UUID(str(owner_id))
            )
            tool_ids = list({row['tool_id'] for row in rows})
            tools = await conn.fetch(TOOL_SELECT + ' WHERE t.id = ANY($1::uuid[])', tool_ids)

        tools_by_id = {tool['id']: tool_from_row(tool) for tool in tools}
        listings = []
        for row in rows:
            listing = listing_from_row(row)
            listing['tool'] = tools_by_id.get(row['tool_id'])
            listings.append(listing)
        return listings

    async def update_listing(
        self,
        listing_id: Union[str, uuid.UUID],
        user_id: Union[str, uuid.UUID],
        price: Decimal,
        billing_interval: Union[str, BillingInterval],
        max_billing_intervals: Optional[int] = None
    ) -> Dict[str, Any]:
        """Change a listing's price and billing terms.

        Raises:
            ListingNotFoundError: If listing doesn't exist
            ListingPermissionError: If user_id doesn't own the listed tool
            InvalidPriceError: If the terms are invalid
        """
        await self.ensure_pool()

        interval = validate_terms(price, billing_interval, max_billing_intervals)
        listing_id = uuid.UUID(str(listing_id))

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await self._get_owned(conn, listing_id, uuid.UUID(str(user_id)))

                row = await conn.fetchrow(
                    '''
                    UPDATE listings
                    SET price = $2,
                        billing_interval = $3,
                        max_billing_intervals = $4,
                        updated_at = now()
                    WHERE id = $1
                    RETURNING *
                    ''',
                    listing_id,
                    Decimal(str(price)),
                    interval.value,
                    max_billing_intervals
                )

        return listing_from_row(row)

    async def set_active(
        self,
        listing_id: Union[str, uuid.UUID],
        user_id: Union[str, uuid.UUID],
        active: bool
    ) -> Dict[str, Any]:
        """Pause (active=False) or resume (active=True) a listing.

        Raises:
            ListingNotFoundError: If listing doesn't exist
            ListingPermissionError: If user_id doesn't own the listed tool
        """
        await self.ensure_pool()
        listing_id = uuid.UUID(str(listing_id))

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await self._get_owned(conn, listing_id, uuid.UUID(str(user_id)))

                row = await conn.fetchrow(
                    '''
                    UPDATE listings
                    SET active = $2, updated_at = now()
                    WHERE id = $1
                    RETURNING *
                    ''',
                    listing_id,
                    active
                )

        logger.info(f"Listing {listing_id} {'resumed' if active else 'paused'}")
        return listing_from_row(row)

    async def delete_listing(
        self,
        listing_id: Union[str, uuid.UUID],
        user_id: Union[str, uuid.UUID]
    ) -> None:
        """Delete an inactive listing.

        Raises:
            ListingNotFoundError: If listing doesn't exist
            ListingPermissionError: If user_id doesn't own the listed tool
            ListingActiveError: If the listing is still active
        """
        await self.ensure_pool()
        listing_id = uuid.UUID(str(listing_id))

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                listing = await self._get_owned(conn, listing_id, uuid.UUID(str(user_id)))
                if listing['active']:
                    raise ListingActiveError("Pause the listing before deleting it")

                await conn.execute('DELETE FROM listings WHERE id = $1', listing_id)

        logger.info(f"Deleted listing {listing_id}")

    async def search_listings(
        self,
        query: Optional[str] = None,
        origin_lat: Optional[float] = None,
        origin_lon: Optional[float] = None,
        radius_km: Optional[float] = None,
        category_id: Optional[uuid.UUID] = None,
        user: Optional[Dict[str, Any]] = None,
        use_user_address: bool = False,
        limit: int = 50,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        """Search active listings by text and distance.

        When use_user_address is set and a user is given, the user's own
        address (geocoded on demand) replaces origin_lat/origin_lon.

        Returns:
            Listings with tool, owner, address and distance, nearest first
        """
        await self.ensure_pool()

        origin_address_id = None
        if user is not None and use_user_address:
            origin_address_id = user.get('address_id')
            if origin_address_id is None:
                return []

        return await listing_search.search(
            self.pool,
            self.geocoder,
            query=query,
            origin_lat=origin_lat,
            origin_lon=origin_lon,
            radius_km=radius_km,
            category_id=category_id,
            origin_address_id=origin_address_id,
            limit=limit,
            offset=offset
        )

    async def search_lookup(self, kind: LookupKind, q: Optional[str] = None) -> List[Dict[str, Any]]:
        """Search tool makers or categories by name prefix."""
        await self.ensure_pool()
        return await search_lookup(self.pool, kind, q)

    async def create_lookup(self, kind: LookupKind, name: str) -> Dict[str, Any]:
        """Create a tool maker or category."""
        await self.ensure_pool()
        return await create_lookup(self.pool, kind, name)


__all__ = [
    'ListingManager',
    'BillingInterval',
    'LookupKind',
    'ListingError',
    'ListingNotFoundError',
    'ListingPermissionError',
    'ListingActiveError',
    'InvalidPriceError',
    'build_text_query',
    'build_prefix_query',
    'distance_km'
]
