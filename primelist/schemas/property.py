from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime
from primelist.models.property import PropertyType, PropertyStatus, ListingType
from primelist.schemas.image import ImageSummary


class PropertyBase(BaseModel):
    title: str = Field(..., max_length=200)
    description: Optional[str] = None
    property_type: PropertyType
    listing_type: ListingType
    price: float = Field(..., gt=0)
    address: str = Field(..., max_length=500)
    city: str = Field(..., max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    zip_code: Optional[str] = Field(None, max_length=20)
    country: str = Field(default="USA", max_length=100)
    bedrooms: int = Field(0, ge=0)
    bathrooms: float = Field(0, ge=0)
    area_sqft: Optional[int] = Field(None, gt=0)
    year_built: Optional[int] = Field(None, ge=1800, le=2100)
    featured: bool = False


class PropertyCreate(PropertyBase):
    pass


class PropertyUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    property_type: Optional[PropertyType] = None
    listing_type: Optional[ListingType] = None
    price: Optional[float] = Field(None, gt=0)
    address: Optional[str] = Field(None, max_length=500)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    zip_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)
    bedrooms: Optional[int] = Field(None, ge=0)
    bathrooms: Optional[float] = Field(None, ge=0)
    area_sqft: Optional[int] = Field(None, gt=0)
    year_built: Optional[int] = Field(None, ge=1800, le=2100)
    status: Optional[PropertyStatus] = None
    featured: Optional[bool] = None


class PropertyResponse(PropertyBase):
    id: int
    status: PropertyStatus
    agent_id: int
    agent_name: Optional[str] = None
    agent_email: Optional[str] = None
    agent_phone: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    images: List[ImageSummary] = []

    model_config = ConfigDict(from_attributes=True)


class PropertyListResponse(BaseModel):
    properties: List[PropertyResponse]


class PropertyDetailResponse(BaseModel):
    property: PropertyResponse


class PropertyCreatedResponse(BaseModel):
    message: str
    propertyId: int


class MessageResponse(BaseModel):
    message: str
