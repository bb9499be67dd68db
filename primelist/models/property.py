from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Float,
    Boolean,
    DateTime,
    ForeignKey,
    Enum,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from primelist.database import Base
import enum


class ListingType(str, enum.Enum):
    SALE = "sale"
    RENT = "rent"


class PropertyType(str, enum.Enum):
    HOUSE = "house"
    APARTMENT = "apartment"
    CONDO = "condo"
    TOWNHOUSE = "townhouse"
    VILLA = "villa"
    LAND = "land"
    COMMERCIAL = "commercial"


class PropertyStatus(str, enum.Enum):
    AVAILABLE = "available"
    PENDING = "pending"
    SOLD = "sold"
    RENTED = "rented"


class Property(Base):
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    property_type = Column(Enum(PropertyType), nullable=False)
    listing_type = Column(Enum(ListingType), nullable=False)
    price = Column(Float, nullable=False)

    # Location
    address = Column(String(500), nullable=False)
    city = Column(String(100), nullable=False, index=True)
    state = Column(String(100), nullable=True)
    zip_code = Column(String(20), nullable=True)
    country = Column(String(100), default="USA")

    # Property Details
    bedrooms = Column(Integer, default=0)
    bathrooms = Column(Float, default=0)
    area_sqft = Column(Integer, nullable=True)
    year_built = Column(Integer, nullable=True)
    status = Column(Enum(PropertyStatus), default=PropertyStatus.AVAILABLE)
    featured = Column(Boolean, default=False)

    # Agent/Owner
    agent_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    agent = relationship("User", back_populates="properties")
    # Ordering and primary bookkeeping go through the image store, not this collection
    images = relationship(
        "PropertyImage",
        back_populates="property",
        cascade="all, delete",
    )
