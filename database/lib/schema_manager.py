"""Database schema management module.

This module handles database schema versioning and migrations.
It supports creating tables, indexes (including GIN indexes for
full-text search), foreign keys, and incremental migrations.
"""
import importlib
import logging
from pathlib import Path
from typing import Dict, Any, Optional

from ..exceptions import DatabaseSchemaError

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent.parent / 'schema'


class SchemaManager:
    """Manages database schema versioning and migrations."""

    def __init__(self, pool, schema_dir: Optional[Path] = None) -> None:
        """Initialize schema manager.

        Args:
            pool: Database connection pool
            schema_dir: Directory containing schema version files
        """
        self.pool = pool
        self._schema_dir = Path(schema_dir) if schema_dir else SCHEMA_DIR
        self.current_version = 0
        self._schema_files = {}

    async def initialize(self) -> None:
        """Initialize schema management.

        Creates schema version table if it doesn't exist and runs any pending migrations.

        Raises:
            DatabaseSchemaError: If schema initialization fails or no valid schema files are found
        """
        try:
            async with self.pool.acquire() as conn:
                await conn.execute('''
                    CREATE TABLE IF NOT EXISTS schema_version (
                        version INT8 PRIMARY KEY,
                        applied_at TIMESTAMP NOT NULL DEFAULT now()
                    )
                ''')

                row = await conn.fetchrow(
                    'SELECT version FROM schema_version ORDER BY version DESC LIMIT 1'
                )
                self.current_version = row['version'] if row else 0

            schema_files = self.load_schema_files()
            if not schema_files:
                logger.error("No valid schema files found in schema directory")
                raise DatabaseSchemaError("No valid schema files found in schema directory")

            await self._apply_migrations(schema_files)

        except DatabaseSchemaError:
            raise
        except Exception as e:
            logger.error(f"Schema initialization failed: {e}")
            raise DatabaseSchemaError(f"Failed to initialize schema: {e}")

    def load_schema_files(self) -> Dict[int, Dict[str, Any]]:
        """Load all schema version files.

        Returns:
            Dict mapping version numbers to schema definitions, sorted by version
        """
        schema_files = {}

        if not self._schema_dir.exists():
            return schema_files

        for file in self._schema_dir.glob('v*.py'):
            try:
                version = int(file.stem[1:])
            except ValueError:
                logger.warning(f"Invalid schema filename: {file}")
                continue

            module = importlib.import_module(f"database.schema.{file.stem}")

            if not hasattr(module, 'schema'):
                raise DatabaseSchemaError(
                    f"Schema file {file} missing 'schema' definition"
                )

            schema = module.schema
            if schema['version'] != version:
                raise DatabaseSchemaError(
                    f"Schema version mismatch in {file}: "
                    f"Expected v{version}, got v{schema['version']}"
                )

            schema_files[version] = schema

        self._schema_files = dict(sorted(schema_files.items()))
        return self._schema_files

    async def _apply_migrations(self, schema_files: Dict[int, Dict[str, Any]]) -> None:
        """Apply any pending schema migrations.

        Args:
            schema_files: Dict mapping version numbers to schema definitions
        """
        latest_version = max(schema_files.keys())
        if self.current_version >= latest_version:
            logger.info("Schema is up to date")
            return

        logger.info(
            f"Updating schema from version {self.current_version} to {latest_version}"
        )

        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    if self.current_version == 0:
                        await self._create_fresh_schema(conn, schema_files[latest_version])
                    else:
                        for version in range(self.current_version + 1, latest_version + 1):
                            if version in schema_files:
                                await self._apply_version_migrations(conn, schema_files[version])

                                await conn.execute(
                                    'INSERT INTO schema_version (version) VALUES ($1)',
                                    version
                                )
                                logger.info(f"Successfully migrated to version {version}")

        except Exception as e:
            logger.error(f"Schema migration failed: {e}")
            raise DatabaseSchemaError(f"Failed to apply schema migrations: {e}")

    async def _create_fresh_schema(self, conn, schema: Dict[str, Any]) -> None:
        """Create a fresh schema installation.

        Args:
            conn: Database connection
            schema: Latest schema definition
        """
        await self._drop_all_tables(conn)

        # Tables first, then foreign keys and indexes once every table exists
        for table in schema.get('tables', []):
            await conn.execute(build_create_table(table))
            logger.info(f"Created table {table['name']}")

        for table in schema.get('tables', []):
            for statement in build_constraints(table):
                await conn.execute(statement)

        await conn.execute(
            'INSERT INTO schema_version (version) VALUES ($1)',
            schema['version']
        )
        logger.info(f"Successfully created fresh schema version {schema['version']}")

    async def _apply_version_migrations(self, conn, schema: Dict[str, Any]) -> None:
        """Apply migrations for a specific version.

        Args:
            conn: Database connection
            schema: Schema definition for this version
        """
        for migration in schema.get('migrations', []):
            await conn.execute(migration)

    async def _drop_all_tables(self, conn) -> None:
        """Drop all existing tables except schema_version.

        Args:
            conn: Database connection
        """
        tables = await conn.fetch('''
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'public'
            AND table_type = 'BASE TABLE'
            AND table_name != 'schema_version'
        ''')

        for table in tables:
            await conn.execute(f'DROP TABLE IF EXISTS "{table["table_name"]}" CASCADE')
            logger.info(f"Dropped table {table['table_name']}")


def build_create_table(table: Dict[str, Any]) -> str:
    """Build the CREATE TABLE statement for a table definition, without foreign keys.

    Columns may carry 'generated' with a SQL expression, which becomes a
    stored generated column.
    """
    columns = []
    constraints = []

    for col in table['columns']:
        col_def = f"{col['name']} {col['type']}"

        if col.get('primary_key'):
            constraints.append(f"PRIMARY KEY ({col['name']})")
        elif col.get('unique'):
            constraints.append(f"UNIQUE ({col['name']})")

        if 'generated' in col:
            col_def += f" GENERATED ALWAYS AS ({col['generated']}) STORED"
        elif 'default' in col:
            col_def += f" DEFAULT {col['default']}"

        if col.get('nullable') is False:
            col_def += " NOT NULL"

        columns.append(col_def)

    if isinstance(table.get('primary_key'), list):
        constraints.append(f"PRIMARY KEY ({', '.join(table['primary_key'])})")

    return f"CREATE TABLE {table['name']} ({', '.join(columns + constraints)})"


def build_constraints(table: Dict[str, Any]) -> list:
    """Build foreign key and index statements for a table definition."""
    statements = []

    for fk in table.get('foreign_keys', []):
        on_delete = f" ON DELETE {fk['on_delete']}" if 'on_delete' in fk else ''
        statements.append(
            f"ALTER TABLE {table['name']} "
            f"ADD CONSTRAINT fk_{table['name']}_{fk['columns'][0]} "
            f"FOREIGN KEY ({', '.join(fk['columns'])}) "
            f"REFERENCES {fk['references']}{on_delete}"
        )

    for idx in table.get('indexes', []):
        unique = 'UNIQUE ' if idx.get('unique') else ''
        using = f" USING {idx['using']}" if 'using' in idx else ''
        where = f" WHERE {idx['where']}" if 'where' in idx else ''
        statements.append(
            f"CREATE {unique}INDEX {idx['name']} "
            f"ON {table['name']}{using} ({', '.join(idx['columns'])}){where}"
        )

    return statements
