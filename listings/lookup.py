"""Tool makers and tool categories: small lookup tables searched by name prefix."""
import logging
import re
from enum import Enum
from typing import Optional, List, Dict, Any

logger = logging.getLogger(__name__)

MIN_TOKEN_LENGTH = 3

# Characters with meaning inside to_tsquery
_TSQUERY_META = re.compile(r"[&|!():*<>'\\]")


class LookupKind(str, Enum):
    MAKER = "maker"
    CATEGORY = "category"

    @property
    def table(self) -> str:
        return _LOOKUP_TABLES[self]


_LOOKUP_TABLES = {
    LookupKind.MAKER: 'tool_makers',
    LookupKind.CATEGORY: 'tool_categories',
}


def build_prefix_query(q: Optional[str]) -> Optional[str]:
    """Build a prefix-matching tsquery from user input.

    Tokens of two characters or fewer are dropped; the rest must appear in
    order: "black decker" -> "black:* <-> decker:*".
    """
    tokens = [_TSQUERY_META.sub('', token) for token in (q or '').split()]
    tokens = [token for token in tokens if len(token) >= MIN_TOKEN_LENGTH]
    if not tokens:
        return None
    return ' <-> '.join(f"{token}:*" for token in tokens)


async def search_lookup(pool, kind: LookupKind, q: Optional[str] = None) -> List[Dict[str, Any]]:
    """Rows of a lookup table matching q, ordered by name.

    With nothing searchable in q, every row is returned.
    """
    prefix_query = build_prefix_query(q)

    async with pool.acquire() as conn:
        if prefix_query is None:
            rows = await conn.fetch(
                f'SELECT id, name FROM {kind.table} ORDER BY name ASC'
            )
        else:
            rows = await conn.fetch(
                f'''
                SELECT id, name FROM {kind.table}
                WHERE search_vector @@ to_tsquery('simple', $1)
                ORDER BY name ASC
                ''',
                prefix_query
            )
    return [dict(row) for row in rows]


async def create_lookup(pool, kind: LookupKind, name: str) -> Dict[str, Any]:
    """Insert a maker or category. Names are not required to be unique."""
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            f'INSERT INTO {kind.table} (name) VALUES ($1) RETURNING id, name',
            name
        )
    logger.info(f"Created {kind.value} {row['id']}: {name}")
    return dict(row)
