from pydantic import BaseModel, ConfigDict, computed_field
from typing import List, Optional


class ImageSummary(BaseModel):
    id: int
    is_primary: bool
    mime_type: Optional[str] = None
    file_size: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def url(self) -> str:
        return f"/images/{self.id}"


class StagedImagesResponse(BaseModel):
    message: str
    images: List[int]
