import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, func
from sqlalchemy.orm import Session, undefer

from primelist.config import settings
from primelist.models.property_images import PropertyImage
from primelist.services.legacy_paths import (
    EXTENSIONS_BY_MIME_TYPE,
    guess_mime_type,
    resolve_legacy_path,
    try_delete_legacy_file,
)

logger = logging.getLogger(__name__)


class ImageStoreError(Exception):
    """Raised when image bytes cannot be written or read."""


@dataclass(frozen=True)
class StoredImage:
    data: bytes
    mime_type: str


class ImageStore:
    """Persists property images and hands them back by id.

    Subclasses decide where the bytes live. Rows are flushed, never
    committed: the caller owns the transaction. Primary flags are written
    as given and never adjusted on other rows.
    """

    def __init__(self, db: Session, upload_root: Path, url_prefix: str = ""):
        self.db = db
        self.upload_root = Path(upload_root)
        self.url_prefix = url_prefix.rstrip("/")

    def put(
        self,
        property_id: Optional[int],
        data: bytes,
        mime_type: str,
        is_primary: bool = False,
    ) -> int:
        image = PropertyImage(property_id=property_id, is_primary=is_primary)
        self._write_payload(image, data, mime_type)
        self.db.add(image)
        self.db.flush()
        return image.id

    def get(self, image_id: int) -> Optional[StoredImage]:
        image = self.db.get(
            PropertyImage, image_id, options=[undefer(PropertyImage.image_data)]
        )
        if image is None:
            return None
        return self._read_payload(image)

    def delete(self, image_id: int, property_id: Optional[int] = None) -> bool:
        """Delete one image. With ``property_id`` set, only if it belongs there."""
        image = self.db.get(PropertyImage, image_id)
        if image is None:
            return False
        if property_id is not None and image.property_id != property_id:
            return False
        self._discard(image)
        self.db.flush()
        return True

    def delete_for_property(self, property_id: int) -> List[int]:
        images = self.list_for_property(property_id)
        for image in images:
            self._discard(image)
        self.db.flush()
        return [image.id for image in images]

    def list_for_property(self, property_id: int) -> List[PropertyImage]:
        result = self.db.execute(
            select(PropertyImage)
            .where(PropertyImage.property_id == property_id)
            .order_by(PropertyImage.is_primary.desc(), PropertyImage.id.asc())
        )
        return list(result.scalars().all())

    def list_for_properties(
        self, property_ids: Iterable[int]
    ) -> Dict[int, List[PropertyImage]]:
        ids = list(property_ids)
        grouped: Dict[int, List[PropertyImage]] = {pid: [] for pid in ids}
        if not ids:
            return grouped
        result = self.db.execute(
            select(PropertyImage)
            .where(PropertyImage.property_id.in_(ids))
            .order_by(PropertyImage.is_primary.desc(), PropertyImage.id.asc())
        )
        for image in result.scalars().all():
            grouped[image.property_id].append(image)
        return grouped

    def count_for_property(self, property_id: int) -> int:
        return self.db.execute(
            select(func.count(PropertyImage.id)).where(
                PropertyImage.property_id == property_id
            )
        ).scalar_one()

    def attach_staged(
        self, image_ids: Iterable[int], property_id: int, first_primary: bool = False
    ) -> List[int]:
        """Attach staged images (no property yet) to a property.

        Ids that are unknown or already belong to a property are skipped.
        With ``first_primary`` the first attached id, in request order, is
        marked primary and the rest are not. Returns the attached ids in
        the order they were requested.
        """
        wanted = list(dict.fromkeys(image_ids))
        if not wanted:
            return []
        result = self.db.execute(
            select(PropertyImage).where(
                PropertyImage.id.in_(wanted), PropertyImage.property_id.is_(None)
            )
        )
        staged = {image.id: image for image in result.scalars().all()}
        attached = []
        for image_id in wanted:
            image = staged.get(image_id)
            if image is None:
                continue
            image.property_id = property_id
            image.is_primary = first_primary and not attached
            attached.append(image_id)
        self.db.flush()
        return attached

    def purge_staged(self, older_than: datetime) -> List[int]:
        """Delete staged images never attached to a property before ``older_than``."""
        result = self.db.execute(
            select(PropertyImage)
            .where(
                PropertyImage.property_id.is_(None),
                PropertyImage.created_at < older_than,
            )
            .order_by(PropertyImage.id)
        )
        images = list(result.scalars().all())
        for image in images:
            self._discard(image)
        self.db.flush()
        logger.info(f"Purged {len(images)} staged images created before {older_than}")
        return [image.id for image in images]

    def _discard(self, image: PropertyImage) -> None:
        if image.image_url:
            outcome = try_delete_legacy_file(
                image.image_url, self.upload_root, self.url_prefix
            )
            if not outcome.deleted:
                logger.warning(
                    f"Could not delete file for image {image.id} "
                    f"({outcome.reference}): {outcome.error}"
                )
        self.db.delete(image)

    def _read_legacy(self, image: PropertyImage) -> Optional[StoredImage]:
        path = resolve_legacy_path(image.image_url, self.upload_root, self.url_prefix)
        if path is None or not path.is_file():
            logger.warning(f"Image {image.id} file not found: {image.image_url}")
            return None
        try:
            data = path.read_bytes()
        except OSError as e:
            raise ImageStoreError(f"Failed to read image {image.id}: {e}") from e
        return StoredImage(data=data, mime_type=image.mime_type or guess_mime_type(path))

    def _write_payload(self, image: PropertyImage, data: bytes, mime_type: str) -> None:
        raise NotImplementedError

    def _read_payload(self, image: PropertyImage) -> Optional[StoredImage]:
        if image.image_data is not None:
            return StoredImage(data=image.image_data, mime_type=image.mime_type)
        # Rows written by the filesystem backend, or not migrated yet
        if image.image_url:
            return self._read_legacy(image)
        return None


class DatabaseImageStore(ImageStore):
    """Keeps the bytes inline in ``property_images.image_data``."""

    def _write_payload(self, image, data, mime_type):
        image.image_data = data
        image.mime_type = mime_type
        image.file_size = len(data)


class FilesystemImageStore(ImageStore):
    """Writes the bytes under ``<upload_root>/properties`` and keeps a reference."""

    subdirectory = "properties"

    def _write_payload(self, image, data, mime_type):
        extension = EXTENSIONS_BY_MIME_TYPE.get(mime_type, ".jpg")
        filename = f"{uuid.uuid4().hex}{extension}"
        directory = self.upload_root / self.subdirectory
        try:
            directory.mkdir(parents=True, exist_ok=True)
            (directory / filename).write_bytes(data)
        except OSError as e:
            raise ImageStoreError(f"Failed to save image file: {e}") from e

        image.image_url = f"{self.url_prefix}/{self.subdirectory}/{filename}"
        image.mime_type = mime_type
        image.file_size = len(data)


def get_image_store(db: Session) -> ImageStore:
    store_class = (
        FilesystemImageStore
        if settings.IMAGE_STORAGE_BACKEND == "filesystem"
        else DatabaseImageStore
    )
    return store_class(db, settings.UPLOAD_ROOT, settings.LEGACY_URL_PREFIX)
