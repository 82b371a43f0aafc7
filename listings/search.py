"""Search active listings by text relevance and distance from an origin.

All user input reaches SQL as bind parameters. The distance column is a
computed expression over the owner's address coordinates, using the
spherical law of cosines in kilometres.
"""
import logging
import math
import re
from typing import Optional, List, Dict, Any, Tuple
from uuid import UUID

from auth import public_user
from config import settings_conf
from geocoding import AddressGeocoder
from tools import tool_from_row

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371

# Upper bound on geocoder calls made by one search
GEOCODES_PER_SEARCH = settings_conf['geocode_per_search']

_TOKEN_STRIP = re.compile(r'[^\w]+', re.UNICODE)

LISTING_SEARCH_COLUMNS = '''
    l.id, l.price, l.billing_interval, l.max_billing_intervals, l.tool_id,
    l.active, l.created_at AS listing_created_at, l.updated_at AS listing_updated_at,
    t.id AS tool_row_id, t.name, t.description, t.owner_id,
    t.tool_category_id, t.tool_maker_id, t.manual_file_id,
    t.created_at, t.updated_at,
    c.name AS category_name,
    m.name AS maker_name,
    f.original_name AS manual_original_name,
    f.mime_type AS manual_mime_type,
    f.size AS manual_size,
    f.path AS manual_path,
    u.first_name AS owner_first_name, u.last_name AS owner_last_name,
    u.active AS owner_active,
    a.id AS address_id, a.city, a.state, a.zip_code,
    a.geocoded_lat, a.geocoded_lon
'''

LISTING_SEARCH_FROM = '''
    FROM listings l
    JOIN tools t ON t.id = l.tool_id
    JOIN users u ON u.id = t.owner_id
    JOIN addresses a ON a.id = u.address_id
    LEFT JOIN tool_categories c ON c.id = t.tool_category_id
    LEFT JOIN tool_makers m ON m.id = t.tool_maker_id
    LEFT JOIN file_uploads f ON f.id = t.manual_file_id
'''


def build_text_query(query: Optional[str]) -> Optional[str]:
    """Turn free text into a to_tsquery string requiring every word.

    "cordless  drill!" -> "cordless & drill". Returns None when nothing
    searchable is left, meaning no text filter.
    """
    if not query:
        return None
    tokens = [_TOKEN_STRIP.sub('', token) for token in query.split()]
    tokens = [token for token in tokens if token]
    if not tokens:
        return None
    return ' & '.join(tokens)


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in km, the same formula the SQL uses."""
    lat1, lon1, lat2, lon2 = map(math.radians, (lat1, lon1, lat2, lon2))
    cos_angle = (
        math.cos(lat1) * math.cos(lat2) * math.cos(lon1 - lon2)
        + math.sin(lat1) * math.sin(lat2)
    )
    # Rounding can push the cosine just outside [-1, 1]
    return EARTH_RADIUS_KM * math.acos(max(-1.0, min(1.0, cos_angle)))


def distance_sql(lat_param: str, lon_param: str) -> str:
    """SQL expression for the distance from a bound origin to the owner's address."""
    return (
        f"({EARTH_RADIUS_KM} * acos(LEAST(1.0, GREATEST(-1.0, "
        f"cos(radians({lat_param})) * cos(radians(a.geocoded_lat)) "
        f"* cos(radians({lon_param}) - radians(a.geocoded_lon)) "
        f"+ sin(radians({lat_param})) * sin(radians(a.geocoded_lat))))))"
    )


def build_search_query(
    text_query: Optional[str] = None,
    origin: Optional[Tuple[float, float]] = None,
    radius_km: Optional[float] = None,
    category_id: Optional[UUID] = None,
    limit: int = 50,
    offset: int = 0
) -> Tuple[str, List[Any]]:
    """Build the listing search SQL and its parameters.

    Args:
        text_query: Output of build_text_query, or None
        origin: (lat, lon) in degrees, or None
        radius_km: Keep rows strictly closer than this. Needs origin.
        category_id: Restrict to tools in this category
        limit: Maximum number of rows
        offset: Rows to skip

    Returns:
        (query, params) ready for conn.fetch(query, *params)
    """
    params: List[Any] = []
    param_idx = 1

    columns = LISTING_SEARCH_COLUMNS
    conditions = [
        "l.active",
        "a.geocoded_lat IS NOT NULL",
        "a.geocoded_lon IS NOT NULL"
    ]
    order_by = []

    if origin is not None:
        distance = distance_sql(f"${param_idx}::float8", f"${param_idx + 1}::float8")
        params.extend([float(origin[0]), float(origin[1])])
        param_idx += 2
        columns += f", {distance} AS distance"

        if radius_km is not None:
            conditions.append(f"{distance} < ${param_idx}::float8")
            params.append(float(radius_km))
            param_idx += 1

        order_by.append("distance ASC")
    else:
        columns += ", NULL::float8 AS distance"

    if text_query:
        tsquery = f"to_tsquery('english', ${param_idx})"
        params.append(text_query)
        param_idx += 1
        conditions.append(f"t.search_vector @@ {tsquery}")
        columns += f", ts_rank(t.search_vector, {tsquery}) AS rank"
        order_by.append("rank DESC")

    if category_id is not None:
        conditions.append(f"t.tool_category_id = ${param_idx}")
        params.append(category_id)
        param_idx += 1

    order_by.extend(["l.created_at DESC", "l.id"])

    query = (
        f"SELECT {columns} {LISTING_SEARCH_FROM} "
        f"WHERE {' AND '.join(conditions)} "
        f"ORDER BY {', '.join(order_by)} "
        f"LIMIT ${param_idx} OFFSET ${param_idx + 1}"
    )
    params.extend([limit, offset])
    return query, params


def build_pending_address_query(
    text_query: Optional[str] = None,
    category_id: Optional[UUID] = None,
    limit: int = 50
) -> Tuple[str, List[Any]]:
    """Owner addresses of matching active listings that were never geocoded."""
    params: List[Any] = []
    conditions = ["l.active", "a.geocode_status = 'pending'"]

    if text_query:
        params.append(text_query)
        conditions.append(f"t.search_vector @@ to_tsquery('english', ${len(params)})")

    if category_id is not None:
        params.append(category_id)
        conditions.append(f"t.tool_category_id = ${len(params)}")

    params.append(limit)
    query = (
        "SELECT DISTINCT a.id "
        "FROM listings l "
        "JOIN tools t ON t.id = l.tool_id "
        "JOIN users u ON u.id = t.owner_id "
        "JOIN addresses a ON a.id = u.address_id "
        f"WHERE {' AND '.join(conditions)} "
        f"LIMIT ${len(params)}"
    )
    return query, params


def result_from_row(row) -> Dict[str, Any]:
    """Shape a search row into a listing with its tool, owner, address and distance."""
    tool = tool_from_row(row)
    tool['id'] = row['tool_row_id']
    return {
        'id': row['id'],
        'price': row['price'],
        'billing_interval': row['billing_interval'],
        'max_billing_intervals': row['max_billing_intervals'],
        'tool_id': row['tool_id'],
        'active': row['active'],
        'created_at': row['listing_created_at'],
        'updated_at': row['listing_updated_at'],
        'tool': tool,
        'owner': public_user({
            'id': row['owner_id'],
            'first_name': row['owner_first_name'],
            'last_name': row['owner_last_name'],
            'active': row['owner_active']
        }),
        'address': {
            'id': row['address_id'],
            'city': row['city'],
            'state': row['state'],
            'zip_code': row['zip_code'],
            'geocoded_lat': row['geocoded_lat'],
            'geocoded_lon': row['geocoded_lon']
        },
        'distance': row['distance']
    }


async def search(
    pool,
    geocoder: AddressGeocoder,
    query: Optional[str] = None,
    origin_lat: Optional[float] = None,
    origin_lon: Optional[float] = None,
    radius_km: Optional[float] = None,
    category_id: Optional[UUID] = None,
    origin_address_id: Optional[UUID] = None,
    limit: int = 50,
    offset: int = 0,
    max_geocodes: Optional[int] = None
) -> List[Dict[str, Any]]:
    """Search active listings.

    Args:
        pool: Database pool
        geocoder: Geocoding capability used for the origin and for owners
        query: Free text matched against the tool's name and description
        origin_lat: Origin latitude in degrees
        origin_lon: Origin longitude in degrees
        radius_km: Only listings strictly closer than this
        category_id: Only tools in this category
        origin_address_id: Use this stored address as origin instead of origin_lat/lon
        limit: Maximum number of results to return (default: 50)
        offset: Number of results to skip (default: 0)
        max_geocodes: Pending owner addresses to geocode first
            (default: GEOCODES_PER_SEARCH, capped at limit)

    Returns:
        Listings ordered by ascending distance when there is an origin.
        An origin that cannot be resolved while a radius is requested
        gives an empty list.
    """
    origin = None
    if origin_address_id is not None:
        origin = await geocoder.coordinates(origin_address_id)
        if origin is None:
            logger.info(f"Origin address {origin_address_id} could not be geocoded")
            return []
    elif origin_lat is not None and origin_lon is not None:
        origin = (origin_lat, origin_lon)

    if radius_km is not None and origin is None:
        return []

    text_query = build_text_query(query)

    if max_geocodes is None:
        max_geocodes = GEOCODES_PER_SEARCH
    pending_limit = min(limit, max_geocodes)
    if pending_limit > 0:
        pending_query, pending_params = build_pending_address_query(
            text_query, category_id, pending_limit
        )
        async with pool.acquire() as conn:
            pending = await conn.fetch(pending_query, *pending_params)
        if pending:
            resolved = await geocoder.geocode_pending([row['id'] for row in pending])
            logger.debug(f"Geocoded {resolved} of {len(pending)} pending owner addresses")

    sql, params = build_search_query(text_query, origin, radius_km, category_id, limit, offset)
    logger.debug("Executing search query: %s with params: %r", sql, params)

    async with pool.acquire() as conn:
        rows = await conn.fetch(sql, *params)

    return [result_from_row(row) for row in rows]
