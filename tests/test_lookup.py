"""Tests for maker and category lookups."""

from uuid import uuid4

import pytest

from listings import ListingManager, LookupKind
from listings.lookup import build_prefix_query, search_lookup, create_lookup


def test_kind_maps_to_table():
    assert LookupKind('maker').table == 'tool_makers'
    assert LookupKind('category').table == 'tool_categories'
    with pytest.raises(ValueError):
        LookupKind('users')


def test_prefix_query():
    assert build_prefix_query("black decker") == "black:* <-> decker:*"
    assert build_prefix_query("De") is None
    assert build_prefix_query("De Walt") == "Walt:*"
    assert build_prefix_query("mak*it") == "makit:*"
    assert build_prefix_query("") is None
    assert build_prefix_query(None) is None


@pytest.mark.asyncio
async def test_short_query_returns_everything_by_name(pool, conn):
    rows = [{'id': uuid4(), 'name': 'Bosch'}, {'id': uuid4(), 'name': 'DeWalt'}]
    conn.queue('fetch', rows)

    results = await search_lookup(pool, LookupKind.MAKER, "De")

    assert results == rows
    method, query, args = conn.calls[0]
    assert 'FROM tool_makers' in query
    assert 'ORDER BY name ASC' in query
    assert 'to_tsquery' not in query
    assert args == ()


@pytest.mark.asyncio
async def test_prefix_search_binds_query(pool, conn):
    conn.queue('fetch', [])

    await search_lookup(pool, LookupKind.CATEGORY, "power saw")

    _, query, args = conn.calls[0]
    assert 'FROM tool_categories' in query
    assert "to_tsquery('simple', $1)" in query
    assert args == ("power:* <-> saw:*",)


@pytest.mark.asyncio
async def test_create_lookup(pool, conn):
    row = {'id': uuid4(), 'name': 'Makita'}
    conn.queue('fetchrow', row)

    assert await create_lookup(pool, LookupKind.MAKER, 'Makita') == row
    _, query, args = conn.calls[0]
    assert 'INSERT INTO tool_makers' in query
    assert args == ('Makita',)


@pytest.mark.asyncio
async def test_manager_wrappers(pool, conn):
    conn.queue('fetch', [])
    manager = ListingManager(pool, geocoder=object())

    assert await manager.search_lookup(LookupKind.CATEGORY) == []
    assert 'FROM tool_categories' in conn.queries('fetch')[0]
