"""Tests for the tools module."""

import uuid
from datetime import datetime

import asyncpg
import pytest

from tools import (
    ToolManager, ToolNotFoundError, ToolPermissionError, ToolHasActiveListingsError,
    ToolLookupNotFoundError,
    tool_from_row
)

OWNER_ID = uuid.uuid4()


def tool_row(**overrides):
    now = datetime(2024, 5, 1)
    row = {
        'id': uuid.uuid4(), 'name': 'Orbital Sander', 'description': '5 inch',
        'owner_id': OWNER_ID, 'tool_category_id': uuid.uuid4(), 'tool_maker_id': None,
        'manual_file_id': None, 'created_at': now, 'updated_at': now,
        'category_name': 'Sanders', 'maker_name': None,
        'manual_original_name': None, 'manual_mime_type': None,
        'manual_size': None, 'manual_path': None
    }
    row.update(overrides)
    return row


@pytest.fixture
def tool_manager(pool):
    return ToolManager(pool)


def test_tool_from_row_nests_relations():
    row = tool_row()
    tool = tool_from_row(row)

    assert tool['category'] == {'id': row['tool_category_id'], 'name': 'Sanders'}
    assert tool['maker'] is None
    assert tool['manual'] is None


@pytest.mark.asyncio
async def test_get_missing_tool(tool_manager, conn):
    conn.queue('fetchrow', None)
    with pytest.raises(ToolNotFoundError):
        await tool_manager.get_tool(uuid.uuid4())


@pytest.mark.asyncio
async def test_create_tool(tool_manager, conn):
    row = tool_row()
    conn.queue('fetchval', row['id'])
    conn.queue('fetchrow', row)

    tool = await tool_manager.create_tool(OWNER_ID, 'Orbital Sander', '5 inch', row['tool_category_id'])

    assert tool['id'] == row['id']
    _, _, args = conn.calls[0]
    assert args == ('Orbital Sander', '5 inch', OWNER_ID, row['tool_category_id'], None, None)


@pytest.mark.asyncio
async def test_update_someone_elses_tool(tool_manager, conn):
    conn.queue('fetchrow', {'id': uuid.uuid4(), 'owner_id': uuid.uuid4()})
    with pytest.raises(ToolPermissionError):
        await tool_manager.update_tool(uuid.uuid4(), OWNER_ID, 'Mine now')
    assert conn.queries('execute') == []


@pytest.mark.asyncio
async def test_delete_tool_with_active_listings_refused(tool_manager, conn):
    conn.queue('fetchrow', {'id': uuid.uuid4(), 'owner_id': OWNER_ID})
    conn.queue('fetchval', 2)

    with pytest.raises(ToolHasActiveListingsError):
        await tool_manager.delete_tool(uuid.uuid4(), OWNER_ID)
    assert conn.queries('execute') == []


@pytest.mark.asyncio
async def test_delete_tool_removes_paused_listings(tool_manager, conn):
    tool_id = uuid.uuid4()
    conn.queue('fetchrow', {'id': tool_id, 'owner_id': OWNER_ID})
    conn.queue('fetchval', 0)

    await tool_manager.delete_tool(tool_id, OWNER_ID)

    assert conn.queries('execute') == [
        'DELETE FROM listings WHERE tool_id = $1',
        'DELETE FROM tools WHERE id = $1'
    ]


@pytest.mark.asyncio
async def test_delete_someone_elses_tool(tool_manager, conn):
    conn.queue('fetchrow', {'id': uuid.uuid4(), 'owner_id': uuid.uuid4()})
    with pytest.raises(ToolPermissionError):
        await tool_manager.delete_tool(uuid.uuid4(), OWNER_ID)
    assert conn.queries('fetchval') == []


@pytest.mark.asyncio
async def test_check_lookups(tool_manager, conn):
    category_id, maker_id = uuid.uuid4(), uuid.uuid4()
    conn.queue('fetchval', True, True)

    await tool_manager.check_lookups(category_id, maker_id)

    assert [args for _, _, args in conn.calls] == [(category_id,), (maker_id,)]
    assert 'FROM tool_categories' in conn.calls[0][1]
    assert 'FROM tool_makers' in conn.calls[1][1]


@pytest.mark.asyncio
async def test_check_lookups_skips_missing_ids(tool_manager, conn):
    await tool_manager.check_lookups(None, None)
    assert conn.calls == []


@pytest.mark.asyncio
async def test_check_lookups_unknown_maker(tool_manager, conn):
    conn.queue('fetchval', False)
    with pytest.raises(ToolLookupNotFoundError):
        await tool_manager.check_lookups(None, uuid.uuid4())


@pytest.mark.asyncio
async def test_create_tool_with_unknown_category(tool_manager, conn):
    conn.queue('fetchval', asyncpg.ForeignKeyViolationError('violates foreign key constraint'))
    with pytest.raises(ToolLookupNotFoundError):
        await tool_manager.create_tool(OWNER_ID, 'Orbital Sander', None, uuid.uuid4())
    assert conn.queries('fetchrow') == []


@pytest.mark.asyncio
async def test_update_tool_with_unknown_maker(tool_manager, conn):
    conn.queue('fetchrow', {'id': uuid.uuid4(), 'owner_id': OWNER_ID})
    conn.queue('execute', asyncpg.ForeignKeyViolationError('violates foreign key constraint'))
    with pytest.raises(ToolLookupNotFoundError):
        await tool_manager.update_tool(uuid.uuid4(), OWNER_ID, 'Sander', tool_maker_id=uuid.uuid4())
