"""Tools module for managing the tools users own and rent out.

This module provides functionality for:
- Creating, editing and deleting tools
- Attaching uploaded manuals
- Loading tools with their category, maker and manual
"""

import logging
from typing import Dict, List, Optional, Any, Union
from uuid import UUID

import asyncpg

from database import get_pool

logger = logging.getLogger(__name__)


# Columns selected for a tool with its related lookup rows and manual
TOOL_SELECT = '''
    SELECT t.id, t.name, t.description, t.owner_id,
           t.tool_category_id, t.tool_maker_id, t.manual_file_id,
           t.created_at, t.updated_at,
           c.name AS category_name,
           m.name AS maker_name,
           f.original_name AS manual_original_name,
           f.mime_type AS manual_mime_type,
           f.size AS manual_size,
           f.path AS manual_path
    FROM tools t
    LEFT JOIN tool_categories c ON c.id = t.tool_category_id
    LEFT JOIN tool_makers m ON m.id = t.tool_maker_id
    LEFT JOIN file_uploads f ON f.id = t.manual_file_id
'''


class ToolError(Exception):
    """Base exception for tool operations."""
    pass


class ToolNotFoundError(ToolError):
    """Raised when a tool is not found."""
    pass


class ToolPermissionError(ToolError):
    """Raised when someone other than the owner modifies a tool."""
    pass


class ToolHasActiveListingsError(ToolError):
    """Raised when deleting a tool that still has active listings."""
    pass


class ToolLookupNotFoundError(ToolError):
    """Raised when a tool refers to a category or maker that doesn't exist."""
    pass


def tool_from_row(row) -> Dict[str, Any]:
    """Shape a TOOL_SELECT row into a tool dict with nested relations."""
    return {
        'id': row['id'],
        'name': row['name'],
        'description': row['description'],
        'owner_id': row['owner_id'],
        'tool_category_id': row['tool_category_id'],
        'tool_maker_id': row['tool_maker_id'],
        'category': {'id': row['tool_category_id'], 'name': row['category_name']}
        if row['tool_category_id'] else None,
        'maker': {'id': row['tool_maker_id'], 'name': row['maker_name']}
        if row['tool_maker_id'] else None,
        'manual': {
            'id': row['manual_file_id'],
            'original_name': row['manual_original_name'],
            'mime_type': row['manual_mime_type'],
            'size': row['manual_size'],
            'path': row['manual_path']
        } if row['manual_file_id'] else None,
        'created_at': row['created_at'],
        'updated_at': row['updated_at']
    }


class ToolManager:
    """Manager class for handling tool operations."""

    def __init__(self, pool=None):
        """Initialize the tool manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
        """
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def check_lookups(
        self,
        tool_category_id: Optional[UUID] = None,
        tool_maker_id: Optional[UUID] = None
    ) -> None:
        """Check that the given category and maker exist.

        Raises:
            ToolLookupNotFoundError: If either one is given but missing
        """
        await self.ensure_pool()

        lookups = (
            ('tool_categories', 'Tool category', tool_category_id),
            ('tool_makers', 'Tool maker', tool_maker_id)
        )
        async with self.pool.acquire() as conn:
            for table, label, lookup_id in lookups:
                if lookup_id is None:
                    continue
                exists = await conn.fetchval(
                    f'SELECT EXISTS(SELECT 1 FROM {table} WHERE id = $1)',
                    lookup_id
                )
                if not exists:
                    raise ToolLookupNotFoundError(f"{label} {lookup_id} not found")

    async def create_tool(
        self,
        owner_id: Union[str, UUID],
        name: str,
        description: Optional[str] = None,
        tool_category_id: Optional[UUID] = None,
        tool_maker_id: Optional[UUID] = None,
        manual_file_id: Optional[UUID] = None
    ) -> Dict[str, Any]:
        """Create a new tool owned by owner_id.

        Returns:
            The created tool with category, maker and manual

        Raises:
            ToolLookupNotFoundError: If the category or maker doesn't exist
        """
        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                tool_id = await conn.fetchval(
                    '''
                    INSERT INTO tools (
                        name, description, owner_id, tool_category_id, tool_maker_id, manual_file_id
                    ) VALUES ($1, $2, $3, $4, $5, $6)
                    RETURNING id
                    ''',
                    name,
                    description,
                    UUID(str(owner_id)),
                    tool_category_id,
                    tool_maker_id,
                    manual_file_id
                )
        except asyncpg.ForeignKeyViolationError:
            raise ToolLookupNotFoundError("Unknown tool category or maker")

        logger.info(f"Created tool {tool_id} for {owner_id}")
        return await self.get_tool(tool_id)

    async def get_tool(self, tool_id: Union[str, UUID]) -> Dict[str, Any]:
        """Get a tool by ID.

        Raises:
            ToolNotFoundError: If tool doesn't exist
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(TOOL_SELECT + ' WHERE t.id = $1', UUID(str(tool_id)))

        if not row:
            raise ToolNotFoundError(f"Tool {tool_id} not found")
        return tool_from_row(row)

    async def get_user_tools(self, owner_id: Union[str, UUID]) -> List[Dict[str, Any]]:
        """All tools owned by a user, newest first."""
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                TOOL_SELECT + ' WHERE t.owner_id = $1 ORDER BY t.created_at DESC',
                UUID(str(owner_id))
            )
        return [tool_from_row(row) for row in rows]

    async def _get_owned(self, conn, tool_id: UUID, user_id: UUID):
        """Fetch a tool row, checking it exists and belongs to user_id."""
        tool = await conn.fetchrow('SELECT id, owner_id FROM tools WHERE id = $1', tool_id)
        if not tool:
            raise ToolNotFoundError(f"Tool {tool_id} not found")
        if tool['owner_id'] != user_id:
            raise ToolPermissionError("You are not authorized to edit this tool.")
        return tool

    async def update_tool(
        self,
        tool_id: Union[str, UUID],
        user_id: Union[str, UUID],
        name: str,
        description: Optional[str] = None,
        tool_category_id: Optional[UUID] = None,
        tool_maker_id: Optional[UUID] = None,
        manual_file_id: Optional[UUID] = None
    ) -> Dict[str, Any]:
        """Replace a tool's editable fields.

        The manual is only replaced when manual_file_id is given.

        Raises:
            ToolNotFoundError: If tool doesn't exist
            ToolPermissionError: If user_id doesn't own the tool
            ToolLookupNotFoundError: If the category or maker doesn't exist
        """
        await self.ensure_pool()
        tool_id = UUID(str(tool_id))

        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    await self._get_owned(conn, tool_id, UUID(str(user_id)))

                    await conn.execute(
                        '''
                        UPDATE tools
                        SET name = $2,
                            description = $3,
                            tool_category_id = $4,
                            tool_maker_id = $5,
                            manual_file_id = COALESCE($6, manual_file_id),
                            updated_at = now()
                        WHERE id = $1
                        ''',
                        tool_id,
                        name,
                        description,
                        tool_category_id,
                        tool_maker_id,
                        manual_file_id
                    )
        except asyncpg.ForeignKeyViolationError:
            raise ToolLookupNotFoundError("Unknown tool category or maker")

        return await self.get_tool(tool_id)

    async def delete_tool(self, tool_id: Union[str, UUID], user_id: Union[str, UUID]) -> None:
        """Delete a tool and its inactive listings.

        Raises:
            ToolNotFoundError: If tool doesn't exist
            ToolPermissionError: If user_id doesn't own the tool
            ToolHasActiveListingsError: If any listing of the tool is still active
        """
        await self.ensure_pool()
        tool_id = UUID(str(tool_id))

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await self._get_owned(conn, tool_id, UUID(str(user_id)))

                active = await conn.fetchval(
                    'SELECT COUNT(*) FROM listings WHERE tool_id = $1 AND active',
                    tool_id
                )
                if active:
                    raise ToolHasActiveListingsError(
                        f"Tool has {active} active listing(s); deactivate them first"
                    )

                await conn.execute('DELETE FROM listings WHERE tool_id = $1', tool_id)
                await conn.execute('DELETE FROM tools WHERE id = $1', tool_id)

        logger.info(f"Deleted tool {tool_id}")


__all__ = [
    'ToolManager',
    'ToolError',
    'ToolNotFoundError',
    'ToolPermissionError',
    'ToolHasActiveListingsError',
    'ToolLookupNotFoundError',
    'TOOL_SELECT',
    'tool_from_row'
]
