"""Reconcile a property's persisted images with what the client submitted.

Clients describe the desired image set loosely: the ids they still show,
the ids they removed, whether the upload replaces everything, plus any new
files. ``ImageChangeRequest.from_payload`` turns the loose shapes into typed
ids at the request boundary; ``ImageReconciler`` applies the minimal set of
deletes and inserts and then restores the single-primary invariant.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from primelist.models.property_images import PropertyImage
from primelist.services.image_store import ImageStore
from primelist.services.upload_intake import ImageUpload

logger = logging.getLogger(__name__)

# Bare ids, or delivery URLs such as https://api.example.com/images/42
_IMAGE_REFERENCE = re.compile(r"^(?:.*/images/)?(\d+)/?$")


class InvalidImageReference(ValueError):
    pass


def _reference_text(item: Any) -> str:
    if isinstance(item, dict):
        item = item.get("id")
    if item is None:
        return ""
    # JSON clients may send 5.0 for an id
    if isinstance(item, float) and item.is_integer():
        item = int(item)
    return str(item).strip()


def normalize_references(value: Any) -> List[str]:
    """Normalize a loosely shaped list of references to ``list[str]``.

    Accepts a list, a scalar, an ``{"id": ..}`` object, any of those
    JSON-encoded, or a comma-separated string. ``None`` and empty values
    give ``[]``.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [text for text in map(_reference_text, value) if text]
    if isinstance(value, (dict, int, float)) and not isinstance(value, bool):
        return normalize_references([value])

    text = str(value).strip()
    if not text or text == "null":
        return []
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, list):
        return normalize_references(parsed)
    if isinstance(parsed, (dict, int, float)) and not isinstance(parsed, bool):
        return normalize_references([parsed])
    if isinstance(parsed, str) and parsed != text:
        return normalize_references(parsed)
    return [part.strip() for part in text.split(",") if part.strip()]


def coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return value in ("true", "1")


def parse_image_id(reference: str) -> int:
    match = _IMAGE_REFERENCE.match(reference.strip())
    if not match:
        raise InvalidImageReference(f"Invalid image reference: {reference}")
    return int(match.group(1))


@dataclass(frozen=True)
class ImageChangeRequest:
    keep: List[int] = field(default_factory=list)
    remove: List[int] = field(default_factory=list)
    replace_all: bool = False

    @classmethod
    def from_payload(
        cls, images: Any = None, images_to_remove: Any = None, replace_images: Any = None
    ) -> "ImageChangeRequest":
        return cls(
            keep=[parse_image_id(ref) for ref in normalize_references(images)],
            remove=[parse_image_id(ref) for ref in normalize_references(images_to_remove)],
            replace_all=coerce_bool(replace_images),
        )


@dataclass
class ReconciliationResult:
    property_id: int
    removed: List[int] = field(default_factory=list)
    attached: List[int] = field(default_factory=list)
    inserted: List[int] = field(default_factory=list)
    image_ids: List[int] = field(default_factory=list)
    primary_image_id: Optional[int] = None
    promoted: bool = False


class ImageReconciler:
    def __init__(self, store: ImageStore):
        self.store = store

    async def reconcile(
        self,
        property_id: int,
        changes: ImageChangeRequest,
        uploads: Sequence[ImageUpload] = (),
    ) -> ReconciliationResult:
        """Apply ``changes`` and ``uploads`` to the images of one property.

        Runs every store call sequentially so the row count used for primary
        assignment is accurate. Does not commit.
        """
        result = ReconciliationResult(property_id=property_id)

        if changes.replace_all:
            result.removed = self.store.delete_for_property(property_id)
            result.inserted = self._insert_uploads(property_id, uploads, first_primary=True)
        else:
            current = {image.id for image in self.store.list_for_property(property_id)}

            for image_id in dict.fromkeys(changes.remove):
                if image_id in current and self.store.delete(image_id, property_id):
                    result.removed.append(image_id)
                    current.discard(image_id)

            # Ids cannot be re-created without bytes; only staged uploads can join
            missing = [
                image_id
                for image_id in changes.keep
                if image_id not in current and image_id not in result.removed
            ]
            if missing:
                # Into an empty set, the first id the client listed becomes primary
                result.attached = self.store.attach_staged(
                    missing, property_id, first_primary=not current
                )
                skipped = set(missing) - set(result.attached)
                if skipped:
                    logger.debug(
                        f"Ignoring unknown image ids {sorted(skipped)} for property {property_id}"
                    )

            remaining = self.store.count_for_property(property_id)
            result.inserted = self._insert_uploads(
                property_id, uploads, first_primary=remaining == 0
            )

        images = self.store.list_for_property(property_id)
        result.primary_image_id, result.promoted = self._restore_primary(images)
        result.image_ids = [
            image.id for image in sorted(images, key=lambda i: (not i.is_primary, i.id))
        ]

        logger.info(
            f"Reconciled images for property {property_id}: "
            f"removed={len(result.removed)} attached={len(result.attached)} "
            f"inserted={len(result.inserted)} primary={result.primary_image_id}"
        )
        return result

    def _insert_uploads(
        self, property_id: int, uploads: Sequence[ImageUpload], first_primary: bool
    ) -> List[int]:
        return [
            self.store.put(
                property_id,
                upload.data,
                upload.mime_type,
                is_primary=first_primary and index == 0,
            )
            for index, upload in enumerate(uploads)
        ]

    def _restore_primary(self, images: List[PropertyImage]):
        """Leave exactly one primary image, promoting the earliest if needed."""
        if not images:
            return None, False

        by_insertion = sorted(images, key=lambda image: image.id)
        primaries = [image for image in by_insertion if image.is_primary]

        if not primaries:
            by_insertion[0].is_primary = True
            self.store.db.flush()
            logger.info(
                f"Promoted image {by_insertion[0].id} to primary for property "
                f"{by_insertion[0].property_id}"
            )
            return by_insertion[0].id, True

        for extra in primaries[1:]:
            extra.is_primary = False
        if len(primaries) > 1:
            self.store.db.flush()
        return primaries[0].id, False
