# Import all models so they're registered with Base.metadata
from primelist.models.user import User
from primelist.models.property import Property
from primelist.models.property_images import PropertyImage

__all__ = [
    "User",
    "Property",
    "PropertyImage",
]
