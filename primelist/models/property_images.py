from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    LargeBinary,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship, deferred
from primelist.database import Base


class PropertyImage(Base):
    __tablename__ = "property_images"

    id = Column(Integer, primary_key=True, index=True)
    # NULL while staged through /upload/images, before a property exists
    property_id = Column(
        Integer,
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    # Legacy reference, relative to the upload root (e.g. /uploads/properties/x.jpg)
    image_url = Column(String(1000), nullable=True)
    image_data = deferred(Column(LargeBinary, nullable=True))
    mime_type = Column(String(100), nullable=True)
    file_size = Column(Integer, nullable=True)
    is_primary = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    property = relationship("Property", back_populates="images")
