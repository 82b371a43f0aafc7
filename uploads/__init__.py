"""File upload storage for tool manuals."""

import logging
import os
import secrets
from pathlib import Path
from typing import Dict, Any, Optional, Union
from uuid import UUID

import aiofiles
from fastapi import UploadFile

from config import settings_conf
from database import get_pool

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class UploadError(Exception):
    """Base exception for upload errors."""
    pass


class UploadTooLargeError(UploadError):
    """Raised when an upload exceeds max_upload_size_mb."""
    pass


class UploadStore:
    """Writes uploaded files to disk and records them in file_uploads."""

    def __init__(self, pool=None, upload_dir: Optional[str] = None, max_size: Optional[int] = None):
        self.pool = pool
        self.upload_dir = Path(upload_dir or settings_conf['upload_dir'])
        self.max_size = max_size or settings_conf['max_upload_size_mb'] * 1024 * 1024

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def save(self, upload: UploadFile, uploader_id: Union[str, UUID]) -> Dict[str, Any]:
        """Store an uploaded file.

        Args:
            upload: The uploaded file
            uploader_id: User who uploaded it

        Returns:
            The file_uploads record: id, original_name, mime_type, size, path, uploader_id

        Raises:
            UploadTooLargeError: If the file exceeds the size limit
            UploadError: If writing or recording the file fails
        """
        await self.ensure_pool()

        os.makedirs(self.upload_dir, exist_ok=True)

        suffix = Path(upload.filename or '').suffix.lower()
        stored_name = f"{secrets.token_hex(16)}{suffix}"
        file_path = self.upload_dir / stored_name

        size = 0
        try:
            async with aiofiles.open(file_path, 'wb') as f:
                while True:
                    chunk = await upload.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > self.max_size:
                        raise UploadTooLargeError(
                            f"File exceeds {self.max_size // (1024 * 1024)} MB limit"
                        )
                    await f.write(chunk)
        except UploadTooLargeError:
            file_path.unlink(missing_ok=True)
            raise
        except OSError as e:
            file_path.unlink(missing_ok=True)
            logger.error(f"Error writing upload: {e}")
            raise UploadError(f"Failed to store file: {str(e)}")

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                '''
                INSERT INTO file_uploads (original_name, mime_type, size, path, uploader_id)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING id, original_name, mime_type, size, path, uploader_id, created_at
                ''',
                upload.filename or stored_name,
                upload.content_type or 'application/octet-stream',
                size,
                stored_name,
                UUID(str(uploader_id))
            )

        logger.info(f"Stored upload {row['id']} ({size} bytes)")
        return dict(row)


__all__ = ['UploadStore', 'UploadError', 'UploadTooLargeError']
