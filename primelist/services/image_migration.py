import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from primelist.models.property_images import PropertyImage
from primelist.services.legacy_paths import guess_mime_type, resolve_legacy_path

logger = logging.getLogger(__name__)


@dataclass
class MigrationSummary:
    total: int = 0
    succeeded: int = 0
    failed: int = 0


class ImageMigrationError(Exception):
    pass


def pending_image_ids(db: Session) -> List[int]:
    """Ids of rows that still only carry a file reference."""
    result = db.execute(
        select(PropertyImage.id)
        .where(PropertyImage.image_data.is_(None), PropertyImage.image_url.isnot(None))
        .order_by(PropertyImage.id)
    )
    return list(result.scalars().all())


def _migrate_one(db: Session, image_id: int, upload_root: Path, url_prefix: str):
    image = db.get(PropertyImage, image_id)
    if image is None:
        raise ImageMigrationError("Image no longer exists")
    path = resolve_legacy_path(image.image_url, upload_root, url_prefix)
    if path is None:
        raise ImageMigrationError(f"Reference outside upload root: {image.image_url}")
    if not path.is_file():
        raise ImageMigrationError(f"File not found: {path}")

    data = path.read_bytes()
    image.image_data = data
    image.mime_type = guess_mime_type(path)
    image.file_size = len(data)
    db.commit()
    return path


def migrate_legacy_images(
    db: Session, upload_root: Path, url_prefix: str = ""
) -> MigrationSummary:
    """Copy file-backed images into ``image_data``.

    Each row is committed on its own; a failure is logged and counted and
    the batch carries on. Rows that already have bytes are never selected,
    so running this again only picks up what is left.
    """
    image_ids = pending_image_ids(db)
    summary = MigrationSummary(total=len(image_ids))
    logger.info(f"Found {summary.total} images to migrate")

    for image_id in image_ids:
        try:
            path = _migrate_one(db, image_id, Path(upload_root), url_prefix)
        except (ImageMigrationError, OSError, SQLAlchemyError) as e:
            db.rollback()
            summary.failed += 1
            logger.error(f"Failed to migrate image ID {image_id}: {e}")
            continue
        summary.succeeded += 1
        logger.info(f"Migrated image ID {image_id} ({path.name})")

    logger.info(
        f"Image migration finished: total={summary.total} "
        f"succeeded={summary.succeeded} failed={summary.failed}"
    )
    return summary
