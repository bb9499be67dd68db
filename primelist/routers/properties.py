import json
from typing import Annotated, Any, List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette import status
from starlette.datastructures import UploadFile as StarletteUploadFile

from primelist.config import settings
from primelist.dependencies import db_dependency, require_permission, Permission
from primelist.models.property import ListingType, PropertyStatus, PropertyType
from primelist.schemas.property import (
    MessageResponse,
    PropertyCreate,
    PropertyCreatedResponse,
    PropertyDetailResponse,
    PropertyListResponse,
    PropertyUpdate,
)
from primelist.services.image_reconciler import (
    ImageChangeRequest,
    InvalidImageReference,
)
from primelist.services.property_locks import property_locks
from primelist.services.property_service import PropertyService
from primelist.services.upload_intake import UploadConfig, read_uploads

router = APIRouter(prefix="/properties", tags=["properties"])

create_dependency = Annotated[
    dict, Depends(require_permission(Permission.CREATE_PROPERTIES))
]
update_dependency = Annotated[
    dict, Depends(require_permission(Permission.UPDATE_PROPERTIES))
]
delete_dependency = Annotated[
    dict, Depends(require_permission(Permission.DELETE_PROPERTIES))
]

IMAGE_FIELDS = ("images", "imagesToRemove", "replaceImages")


async def read_property_payload(
    request: Request, max_files: int
) -> Tuple[dict, List[UploadFile]]:
    """Read a JSON body, or a multipart form with a ``propertyData`` JSON field
    and ``images`` file parts."""
    content_type = request.headers.get("content-type", "")
    files: List[UploadFile] = []

    if content_type.startswith("multipart/form-data"):
        # One extra part so an oversized request is detected rather than cut off
        form = await request.form(max_files=max_files + 1)
        files = [
            part for part in form.getlist("images") if isinstance(part, StarletteUploadFile)
        ]
        form_fields = {}
        for key, value in form.multi_items():
            if isinstance(value, StarletteUploadFile):
                continue
            if key in ("images", "imagesToRemove"):
                form_fields.setdefault(key, []).append(value)
            else:
                form_fields[key] = value
        for key in ("images", "imagesToRemove"):
            if len(form_fields.get(key, ())) == 1:
                form_fields[key] = form_fields[key][0]

        raw = form_fields.pop("propertyData", None)
        if raw is not None:
            try:
                body = json.loads(raw)
            except (TypeError, json.JSONDecodeError):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="propertyData invalid JSON",
                )
            # Image instructions may also travel as separate form fields
            if isinstance(body, dict):
                for key in IMAGE_FIELDS:
                    if key not in body and key in form_fields:
                        body[key] = form_fields[key]
        else:
            body = form_fields
    else:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Request body is not valid JSON",
            )

    if not isinstance(body, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Property data must be a JSON object",
        )
    return body, files


def split_image_instructions(body: dict) -> Tuple[dict, ImageChangeRequest]:
    fields = {key: value for key, value in body.items() if key not in IMAGE_FIELDS}
    try:
        changes = ImageChangeRequest.from_payload(
            body.get("images"), body.get("imagesToRemove"), body.get("replaceImages")
        )
    except InvalidImageReference as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return fields, changes


def validate_fields(schema, fields: dict) -> Any:
    try:
        return schema.model_validate(fields)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False))


@router.get("", response_model=PropertyListResponse)
async def get_properties(
    db: db_dependency,
    city: Optional[str] = Query(None, description="Filter by city (partial match)"),
    property_type: Optional[PropertyType] = Query(None),
    listing_type: Optional[ListingType] = Query(None),
    min_price: Optional[float] = Query(None, description="Minimum price"),
    max_price: Optional[float] = Query(None, description="Maximum price"),
    bedrooms: Optional[int] = Query(None, ge=0, description="Minimum number of bedrooms"),
    status: Optional[PropertyStatus] = Query(None),
    featured: Optional[str] = Query(None, description="'true' for featured available listings"),
):
    properties = PropertyService(db).list_properties(
        city=city,
        property_type=property_type,
        listing_type=listing_type,
        min_price=min_price,
        max_price=max_price,
        bedrooms=bedrooms,
        status=status,
        featured=featured,
    )
    return {"properties": properties}


@router.get("/{property_id}", response_model=PropertyDetailResponse)
async def get_property(db: db_dependency, property_id: int):
    return {"property": PropertyService(db).get_property(property_id)}


@router.post(
    "", response_model=PropertyCreatedResponse, status_code=status.HTTP_201_CREATED
)
async def create_property(
    db: db_dependency, current_user: create_dependency, request: Request
):
    body, files = await read_property_payload(request, settings.MAX_PROPERTY_IMAGES)
    fields, changes = split_image_instructions(body)
    property_data = validate_fields(PropertyCreate, fields)
    uploads = await read_uploads(
        files, UploadConfig.from_settings(settings, settings.MAX_PROPERTY_IMAGES)
    )

    new_property = await PropertyService(db).create_property(
        property_data, current_user.get("id"), changes, uploads
    )
    return {"message": "Property created successfully", "propertyId": new_property.id}


@router.put("/{property_id}", response_model=MessageResponse)
async def update_property(
    db: db_dependency,
    current_user: update_dependency,
    property_id: int,
    request: Request,
):
    body, files = await read_property_payload(request, settings.MAX_PROPERTY_IMAGES)
    fields, changes = split_image_instructions(body)
    property_data = validate_fields(PropertyUpdate, fields)

    async with property_locks.hold(property_id):
        service = PropertyService(db)
        prop = service.get_owned_property(property_id, current_user)
        uploads = await read_uploads(
            files, UploadConfig.from_settings(settings, settings.MAX_PROPERTY_IMAGES)
        )
        await service.update_property(prop, property_data, changes, uploads)

    return {"message": "Property updated successfully"}


@router.delete("/{property_id}", response_model=MessageResponse)
async def delete_property(
    db: db_dependency, current_user: delete_dependency, property_id: int
):
    async with property_locks.hold(property_id):
        service = PropertyService(db)
        prop = service.get_owned_property(property_id, current_user)
        await service.delete_property(prop)

    return {"message": "Property deleted successfully"}
