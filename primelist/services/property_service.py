import logging
from typing import Dict, List, Optional, Sequence

from fastapi import HTTPException, status
from sqlalchemy import select, and_, func
from sqlalchemy.orm import Session, joinedload

from primelist.dependencies import Permission, has_permission
from primelist.models.property import (
    ListingType,
    Property,
    PropertyStatus,
    PropertyType,
)
from primelist.models.property_images import PropertyImage
from primelist.schemas.image import ImageSummary
from primelist.schemas.property import PropertyCreate, PropertyResponse, PropertyUpdate
from primelist.services.image_reconciler import (
    ImageChangeRequest,
    ImageReconciler,
    ReconciliationResult,
)
from primelist.services.image_store import get_image_store
from primelist.services.upload_intake import ImageUpload

logger = logging.getLogger(__name__)


class PropertyService:

    def __init__(self, db: Session):
        self.db = db
        self.store = get_image_store(db)
        self.reconciler = ImageReconciler(self.store)

    def _to_response(self, prop: Property, images: List[PropertyImage]) -> PropertyResponse:
        data = {column.key: getattr(prop, column.key) for column in Property.__table__.columns}
        agent = prop.agent
        data.update(
            agent_name=agent.full_name if agent else None,
            agent_email=agent.email if agent else None,
            agent_phone=agent.phone if agent else None,
            images=[ImageSummary.model_validate(image) for image in images],
        )
        return PropertyResponse.model_validate(data)

    def list_properties(
        self,
        city: Optional[str] = None,
        property_type: Optional[PropertyType] = None,
        listing_type: Optional[ListingType] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        bedrooms: Optional[int] = None,
        status: Optional[PropertyStatus] = None,
        featured: Optional[str] = None,
    ) -> List[PropertyResponse]:
        query = select(Property).options(joinedload(Property.agent))

        conditions = []
        if city:
            conditions.append(func.lower(Property.city).contains(func.lower(city)))
        if property_type:
            conditions.append(Property.property_type == property_type)
        if listing_type:
            conditions.append(Property.listing_type == listing_type)
        if min_price is not None:
            conditions.append(Property.price >= min_price)
        if max_price is not None:
            conditions.append(Property.price <= max_price)
        if bedrooms is not None:
            conditions.append(Property.bedrooms >= bedrooms)
        if status:
            conditions.append(Property.status == status)
        # Homepage strip: featured listings that can still be bought or rented
        if featured == "true":
            conditions.append(Property.featured == True)
            conditions.append(Property.status == PropertyStatus.AVAILABLE)

        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(Property.featured.desc(), Property.created_at.desc(), Property.id.desc())

        properties = self.db.execute(query).scalars().all()
        images: Dict[int, List[PropertyImage]] = self.store.list_for_properties(
            prop.id for prop in properties
        )
        return [self._to_response(prop, images[prop.id]) for prop in properties]

    def get_property(self, property_id: int) -> PropertyResponse:
        prop = self._load(property_id)
        return self._to_response(prop, self.store.list_for_property(property_id))

    def _load(self, property_id: int) -> Property:
        result = self.db.execute(
            select(Property)
            .options(joinedload(Property.agent))
            .where(Property.id == property_id)
        )
        prop = result.scalar_one_or_none()
        if not prop:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Property not found",
            )
        return prop

    def get_owned_property(self, property_id: int, user: dict) -> Property:
        """Load a property the caller may change: its agent, or any admin."""
        prop = self._load(property_id)
        if prop.agent_id != user.get("id") and not has_permission(
            user, Permission.MANAGE_ALL_PROPERTIES
        ):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied",
            )
        return prop

    async def create_property(
        self,
        property_data: PropertyCreate,
        agent_id: int,
        changes: ImageChangeRequest,
        uploads: Sequence[ImageUpload] = (),
    ) -> Property:
        new_property = Property(**property_data.model_dump(), agent_id=agent_id)
        self.db.add(new_property)
        self.db.flush()

        # Staged uploads are attached first, so the first of them becomes primary
        await self.reconciler.reconcile(
            new_property.id,
            ImageChangeRequest(keep=changes.keep),
            uploads,
        )
        self.db.commit()
        self.db.refresh(new_property)
        logger.info(f"Property {new_property.id} created by user {agent_id}")
        return new_property

    async def update_property(
        self,
        prop: Property,
        property_data: PropertyUpdate,
        changes: ImageChangeRequest,
        uploads: Sequence[ImageUpload] = (),
    ) -> ReconciliationResult:
        update_data = property_data.model_dump(exclude_unset=True, exclude_none=True)
        for key, value in update_data.items():
            setattr(prop, key, value)
        self.db.flush()

        result = await self.reconciler.reconcile(prop.id, changes, uploads)
        self.db.commit()
        return result

    async def delete_property(self, prop: Property) -> None:
        property_id = prop.id
        removed = self.store.delete_for_property(property_id)
        self.db.delete(prop)
        self.db.commit()
        logger.info(f"Property {property_id} deleted with {len(removed)} images")
