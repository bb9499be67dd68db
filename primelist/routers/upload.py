from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from starlette import status

from primelist.config import settings
from primelist.dependencies import db_dependency, require_permission, Permission
from primelist.limits import limiter, UPLOAD_RATE_LIMIT
from primelist.schemas.image import StagedImagesResponse
from primelist.services.image_store import get_image_store
from primelist.services.upload_intake import UploadConfig, read_uploads

router = APIRouter(prefix="/upload", tags=["upload"])

user_dependency = Annotated[dict, Depends(require_permission(Permission.UPLOAD_IMAGES))]


@limiter.limit(UPLOAD_RATE_LIMIT)
@router.post("/images", response_model=StagedImagesResponse)
async def upload_images(
    request: Request,
    db: db_dependency,
    current_user: user_dependency,
    images: Optional[List[UploadFile]] = File(None),
):
    """Stage images before the property exists; attach them later by id."""
    if not images:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No files uploaded",
        )
    uploads = await read_uploads(
        images, UploadConfig.from_settings(settings, settings.MAX_STAGED_IMAGES)
    )

    store = get_image_store(db)
    image_ids = [
        store.put(None, upload.data, upload.mime_type, is_primary=False)
        for upload in uploads
    ]
    db.commit()

    return {"message": "Images uploaded successfully", "images": image_ids}
