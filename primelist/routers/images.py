from fastapi import APIRouter, HTTPException, Response
from starlette import status

from primelist.dependencies import db_dependency
from primelist.services.image_store import get_image_store

router = APIRouter(prefix="/images", tags=["images"])

# Image ids are never reused, so the bytes behind one can be cached for a year
CACHE_CONTROL = "public, max-age=31536000"


@router.get("/{image_id}", status_code=status.HTTP_200_OK)
async def get_image(db: db_dependency, image_id: int):
    image = get_image_store(db).get(image_id)
    if image is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Image not found",
        )
    return Response(
        content=image.data,
        media_type=image.mime_type,
        headers={"Cache-Control": CACHE_CONTROL},
    )
