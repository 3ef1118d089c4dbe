from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from takeoff_portal.config import settings


logger = logging.getLogger(__name__)

PHOTO_FIELD_NAME = 'deliveryPhoto'


@dataclass(frozen=True)
class StoredPhoto:
    path: Path
    size: int
    content_type: str


def validate_photo(*, content_type: str | None, size: int, max_bytes: int | None = None) -> None:
    limit = settings.delivery_photo_max_bytes if max_bytes is None else max_bytes
    if not (content_type or '').startswith('image/'):
        raise ValueError('Only image files are allowed')
    if size <= 0:
        raise ValueError('No photo uploaded')
    if size > limit:
        raise ValueError(f'File size must be less than {limit // (1024 * 1024)}MB')


def _extension(filename: str | None) -> str:
    suffix = Path(filename or '').suffix.lower().lstrip('.')
    if not suffix or not suffix.isalnum():
        return 'jpg'
    return suffix


def save_delivery_photo(*, content: bytes, filename: str | None, content_type: str | None) -> StoredPhoto:
    validate_photo(content_type=content_type, size=len(content))

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    stamp = int(datetime.now(tz=timezone.utc).timestamp() * 1000)
    target = upload_dir / f'{PHOTO_FIELD_NAME}-{stamp}-{secrets.randbelow(10**9)}.{_extension(filename)}'
    target.write_bytes(content)
    logger.info('Stored delivery photo %s (%d bytes)', target.name, len(content))
    return StoredPhoto(path=target, size=len(content), content_type=content_type or '')


def discard_photo(path: Path | str | None) -> None:
    if not path:
        return
    Path(path).unlink(missing_ok=True)
