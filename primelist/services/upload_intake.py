from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Sequence

from fastapi import HTTPException, UploadFile
from starlette import status

from primelist.config import Settings


@dataclass(frozen=True)
class UploadConfig:
    allowed_types: FrozenSet[str] = field(
        default_factory=lambda: frozenset({"jpeg", "jpg", "png", "gif", "webp"})
    )
    max_file_size: int = 5 * 1024 * 1024
    max_files: int = 20

    @classmethod
    def from_settings(cls, settings: Settings, max_files: Optional[int] = None):
        return cls(
            allowed_types=frozenset(settings.ALLOWED_IMAGE_TYPES),
            max_file_size=settings.MAX_IMAGE_SIZE_BYTES,
            max_files=max_files if max_files is not None else settings.MAX_PROPERTY_IMAGES,
        )

    def accepts(self, mime_type: Optional[str]) -> bool:
        if not mime_type:
            return False
        major, _, subtype = mime_type.lower().partition("/")
        return major == "image" and subtype in self.allowed_types


@dataclass(frozen=True)
class ImageUpload:
    data: bytes
    mime_type: str
    filename: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


async def read_uploads(
    files: Sequence[UploadFile], config: UploadConfig
) -> List[ImageUpload]:
    """Read multipart image parts into memory, rejecting bad type or size.

    Every part is checked before anything is returned, so a bad file
    rejects the whole request before any mutation happens.
    """
    if len(files) > config.max_files:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Too many files (maximum {config.max_files})",
        )

    allowed = ", ".join(sorted(config.allowed_types))
    uploads = []
    for file in files:
        if not config.accepts(file.content_type):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Only image files are allowed ({allowed})",
            )
        data = await file.read(config.max_file_size + 1)
        if len(data) > config.max_file_size:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"File '{file.filename}' exceeds the {config.max_file_size} byte limit",
            )
        uploads.append(
            ImageUpload(
                data=data,
                mime_type=file.content_type.lower(),
                filename=file.filename,
            )
        )
    return uploads
