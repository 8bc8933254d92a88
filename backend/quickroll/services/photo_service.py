"""Attendance photo storage."""
import base64
import binascii
import io
import logging
import os
import re
import secrets
import time
from pathlib import Path
from typing import Dict, Union

from PIL import Image, UnidentifiedImageError

from quickroll.services.errors import ValidationError

logger = logging.getLogger(__name__)

DATA_URI_PREFIX = re.compile(r'^data:image/\w+;base64,')
MAX_DIMENSIONS = (640, 480)
JPEG_QUALITY = 80


class PhotoStorage:
    """Stores compressed attendance photos and hands back an opaque photoRef."""

    def __init__(self, storage_path: Union[str, Path], max_size_kb: int = 500):
        self.storage_path = Path(storage_path)
        self.max_size_kb = max_size_kb

    def _ensure_storage(self) -> None:
        self.storage_path.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def decode(photo_data: Union[str, bytes]) -> bytes:
        if isinstance(photo_data, bytes):
            return photo_data
        if not photo_data:
            raise ValidationError('Photo data is required')
        try:
            return base64.b64decode(DATA_URI_PREFIX.sub('', photo_data), validate=True)
        except (binascii.Error, ValueError):
            raise ValidationError('Photo must be a base64 data URI')

    def compress(self, raw: bytes) -> bytes:
        try:
            img = Image.open(io.BytesIO(raw))
            img = img.convert('RGB')
        except (UnidentifiedImageError, OSError):
            raise ValidationError('Uploaded file is not a valid image')

        img.thumbnail(MAX_DIMENSIONS, Image.Resampling.LANCZOS)
        out = io.BytesIO()
        img.save(out, format='JPEG', quality=JPEG_QUALITY, optimize=True)
        data = out.getvalue()

        if len(data) > self.max_size_kb * 1024:
            raise ValidationError(f'Photo exceeds maximum size of {self.max_size_kb}KB after compression')
        return data

    @staticmethod
    def session_prefix(key) -> str:
        return f'{key.room}_'.replace(' ', '-')

    @classmethod
    def owner_prefix(cls, key, identity: str) -> str:
        safe_identity = re.sub(r'[^A-Za-z0-9@._-]', '-', str(identity))
        return f'{cls.session_prefix(key)}{safe_identity}_'

    def save(self, photo_data: Union[str, bytes], key, identity: str) -> Dict:
        """Decode, compress and store one photo; returns its reference."""
        data = self.compress(self.decode(photo_data))
        self._ensure_storage()

        filename = (
            f'{self.owner_prefix(key, identity)}'
            f'{int(time.time() * 1000)}_{secrets.token_hex(4)}.jpg'
        )
        (self.storage_path / filename).write_bytes(data)
        logger.info('Saved attendance photo %s (%d bytes)', filename, len(data))

        return {
            'photoRef': filename,
            'size': len(data),
            'timestamp': int(time.time() * 1000)
        }

    def exists(self, photo_ref: str) -> bool:
        if not isinstance(photo_ref, str) or os.path.basename(photo_ref) != photo_ref:
            return False
        return (self.storage_path / photo_ref).is_file()

    def belongs_to(self, photo_ref: str, key, identity: str) -> bool:
        """The photo was uploaded by `identity` for this session."""
        return self.exists(photo_ref) and photo_ref.startswith(self.owner_prefix(key, identity))

    def delete_session_photos(self, key) -> int:
        """Remove every photo stored for the session; returns the count."""
        if not self.storage_path.exists():
            return 0

        prefix = self.session_prefix(key)
        deleted = 0
        for path in self.storage_path.iterdir():
            if path.is_file() and path.name.startswith(prefix):
                path.unlink()
                deleted += 1

        if deleted:
            logger.info('Deleted %d photos for session %s', deleted, key.room)
        return deleted
