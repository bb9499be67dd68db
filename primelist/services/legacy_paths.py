"""Map legacy image references back to files under the upload root.

Images created before blobs moved into the database were stored as a
reference string such as ``/uploads/properties/1699999-photo.jpg``. These
helpers turn such a reference into an absolute path, refusing anything that
would resolve outside the upload root.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


MIME_TYPES_BY_EXTENSION = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}
DEFAULT_MIME_TYPE = "image/jpeg"

EXTENSIONS_BY_MIME_TYPE = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


@dataclass(frozen=True)
class DeletionOutcome:
    reference: str
    deleted: bool
    error: Optional[str] = None


def guess_mime_type(path: Path) -> str:
    return MIME_TYPES_BY_EXTENSION.get(path.suffix.lower(), DEFAULT_MIME_TYPE)


def resolve_legacy_path(
    reference: str, upload_root: Path, url_prefix: str = ""
) -> Optional[Path]:
    """Return the absolute path for ``reference`` or None if it escapes the root."""
    if not reference:
        return None

    relative = reference.strip()
    prefix = url_prefix.rstrip("/")
    if prefix and (relative == prefix or relative.startswith(prefix + "/")):
        relative = relative[len(prefix):]
    relative = relative.lstrip("/")
    if not relative:
        return None

    root = Path(upload_root).resolve()
    try:
        candidate = (root / relative).resolve()
    except (OSError, ValueError):
        return None
    if not candidate.is_relative_to(root) or candidate == root:
        logger.warning(f"Rejected image reference outside upload root: {reference}")
        return None
    return candidate


def try_delete_legacy_file(
    reference: str, upload_root: Path, url_prefix: str = ""
) -> DeletionOutcome:
    """Delete the file behind ``reference``. Never raises."""
    try:
        path = resolve_legacy_path(reference, upload_root, url_prefix)
        if path is None:
            return DeletionOutcome(reference, False, "outside upload root")
        if not path.exists():
            return DeletionOutcome(reference, False, "missing")
        path.unlink()
        return DeletionOutcome(reference, True)
    except (OSError, ValueError) as e:
        logger.warning(f"File delete failed: {reference}: {e}")
        return DeletionOutcome(reference, False, str(e))
